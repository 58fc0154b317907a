"""
Slack Notification Service

Delivers a text block, optionally with structured title/value fields, to a
named channel using the credential bound to that destination. One
AsyncWebClient is kept per credential. Failures are raised as
DeliveryFailure and never retried here.
"""

import asyncio
import logging
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import aiohttp
from slack_sdk.errors import SlackApiError, SlackClientError
from slack_sdk.web.async_client import AsyncWebClient

from runtime.errors import DeliveryFailure

logger = logging.getLogger(__name__)

DIGEST_ATTACHMENT_COLOR = "#7CD197"

Field = Tuple[str, str]


class SlackNotificationService:
    """Notification Sink backed by chat.postMessage"""

    supports_fields = True

    def __init__(self, client_factory: Optional[Callable[[str], AsyncWebClient]] = None,
                 default_icon_url: Optional[str] = None,
                 default_display_name: Optional[str] = None):
        self._client_factory = client_factory or (lambda token: AsyncWebClient(token=token))
        self._clients: Dict[str, AsyncWebClient] = {}
        self.default_icon_url = default_icon_url
        self.default_display_name = default_display_name

    def _client_for(self, credential: str) -> AsyncWebClient:
        client = self._clients.get(credential)
        if client is None:
            client = self._client_factory(credential)
            self._clients[credential] = client
        return client

    @staticmethod
    def build_attachments(fields: Sequence[Field]) -> List[Dict]:
        """One attachment grouping every (title, value) pair"""
        return [{
            "color": DIGEST_ATTACHMENT_COLOR,
            "fields": [
                {"title": title, "value": value, "short": False}
                for title, value in fields
            ],
        }]

    async def deliver(self, credential: str, destination: str, text: str,
                      icon_url: Optional[str] = None,
                      display_name: Optional[str] = None,
                      fields: Optional[Sequence[Field]] = None) -> None:
        """Post `text` to `destination`. Raises DeliveryFailure."""
        if not credential:
            raise DeliveryFailure(destination, "no credential configured")

        params = {
            "channel": destination,
            "text": text,
        }
        icon_url = icon_url or self.default_icon_url
        display_name = display_name or self.default_display_name
        if icon_url:
            params["icon_url"] = icon_url
        if display_name:
            params["username"] = display_name
        if fields:
            params["attachments"] = self.build_attachments(fields)

        try:
            response = await self._client_for(credential).chat_postMessage(**params)
        except SlackApiError as e:
            error = e.response.get("error") if e.response is not None else str(e)
            logger.error(f"Slack API error posting to {destination}: {error}")
            raise DeliveryFailure(destination, str(error)) from e
        except (SlackClientError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Transport error posting to {destination}: {e}")
            raise DeliveryFailure(destination, str(e) or e.__class__.__name__) from e

        if not response.get("ok", False):
            error = response.get("error", "unknown error")
            logger.error(f"Slack rejected message to {destination}: {error}")
            raise DeliveryFailure(destination, error)

        logger.info(f"Delivered message to {destination} (ts={response.get('ts')})")
