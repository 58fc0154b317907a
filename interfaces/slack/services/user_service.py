"""
Slack User Service

Owner Directory for digest runs: enumerates workspace members from Slack's
users.list and filters out bots and deactivated accounts. Queried fresh on
every run; nothing is cached between runs.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import aiohttp
from slack_sdk.errors import SlackApiError, SlackClientError

from models import DirectoryUser
from runtime.errors import DirectoryFailure

logger = logging.getLogger(__name__)


class SlackUserService:
    """Service for enumerating Slack users"""

    def __init__(self, slack_client=None, page_size: int = 200):
        self.slack_client = slack_client
        self.page_size = page_size

    @staticmethod
    def to_directory_user(member: Dict[str, Any]) -> DirectoryUser:
        """Map a users.list member to a DirectoryUser"""
        return DirectoryUser(
            id=member.get("id", ""),
            name=member.get("name") or member.get("real_name") or member.get("id", ""),
            is_bot=bool(member.get("is_bot", False)),
            is_deactivated=bool(member.get("deleted", False)),
        )

    async def list_users(self) -> List[DirectoryUser]:
        """
        Enumerate every member, following cursor pagination.

        Raises DirectoryFailure on any API or transport error; a partial list
        is never returned.
        """
        if not self.slack_client:
            raise DirectoryFailure("Slack client not set - cannot list users")

        users: List[DirectoryUser] = []
        cursor: Optional[str] = None
        try:
            while True:
                kwargs = {"limit": self.page_size}
                if cursor:
                    kwargs["cursor"] = cursor
                response = await self.slack_client.users_list(**kwargs)
                if not response.get("ok", False):
                    raise DirectoryFailure(f"users.list failed: {response.get('error', 'unknown error')}")

                for member in response.get("members", []):
                    if member.get("id"):
                        users.append(self.to_directory_user(member))

                cursor = (response.get("response_metadata") or {}).get("next_cursor")
                if not cursor:
                    break
        except SlackApiError as e:
            error = e.response.get("error") if e.response is not None else str(e)
            raise DirectoryFailure(f"users.list failed: {error}") from e
        except (SlackClientError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise DirectoryFailure(f"users.list transport error: {e}") from e

        logger.info(f"Fetched {len(users)} users from Slack")
        return users

    async def list_owners(self) -> List[DirectoryUser]:
        """Users eligible for digests: not bots, not deactivated"""
        users = await self.list_users()
        owners = [user for user in users if user.is_eligible]
        logger.info(f"{len(owners)} of {len(users)} users eligible for digest")
        return owners
