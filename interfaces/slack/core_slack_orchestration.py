import logging
from typing import Any, Dict, Optional

from slack_bolt.adapter.fastapi.async_handler import AsyncSlackRequestHandler
from slack_bolt.async_app import AsyncApp

from models import MessageType
from runtime.errors import InvalidInput, PersistenceFailure
from runtime.fanout_router import FanoutRouter

logger = logging.getLogger(__name__)

COMMAND_TYPES = {
    "/on": MessageType.on,
    "/til": MessageType.til,
    "/done": MessageType.done,
}

USAGE_HINTS = {
    MessageType.on: "Usage: /on <what you are working on>",
    MessageType.til: "Usage: /til <what you learned today>",
    MessageType.done: "Usage: /done <what you finished>",
}


class SlackInterface:
    """
    Slash commands in, fan-out out.

    `/on`, `/til` and `/done` all go through the Fan-out Router; the user
    gets an ephemeral acknowledgement either way.
    """

    def __init__(self, router: FanoutRouter, bot_token: Optional[str] = None,
                 signing_secret: Optional[str] = None, app: Optional[AsyncApp] = None):
        self.router = router
        self.app = app or AsyncApp(token=bot_token, signing_secret=signing_secret)

        # Setup handlers
        self._setup_handlers()

        # Create FastAPI handler
        self.handler = AsyncSlackRequestHandler(self.app)

    def _setup_handlers(self):
        """Register one handler per slash command"""

        async def handle_command(ack, command):
            await self._handle_command(command, ack)

        for name in COMMAND_TYPES:
            self.app.command(name)(handle_command)

    async def _handle_command(self, command: Dict[str, Any], ack) -> None:
        message_type = COMMAND_TYPES.get(command.get("command", ""), MessageType.on)
        user_id = command.get("user_id", "")
        user_name = command.get("user_name", "")

        try:
            result = await self.router.submit(
                command.get("text", ""), user_id, user_name, message_type
            )
        except InvalidInput as e:
            logger.info(f"Rejected {command.get('command')} from {user_name or user_id}: {e}")
            await ack(USAGE_HINTS[message_type])
            return
        except PersistenceFailure as e:
            logger.error(f"Could not store {command.get('command')} from {user_name or user_id}: {e}")
            await ack("Sorry, your status could not be saved. Please try again in a moment.")
            return

        reply = f"Got it! Posted to {', '.join(result.delivered)}" if result.delivered else "Got it!"
        if result.failed:
            reply += f" (could not reach {', '.join(result.failed)})"
        await ack(reply)

    def get_fastapi_handler(self):
        """Get the FastAPI request handler"""
        return self.handler


def create_slack_app(router: FanoutRouter, bot_token: str, signing_secret: str) -> AsyncSlackRequestHandler:
    """Factory function to create the Slack slash-command handler"""
    slack_interface = SlackInterface(router, bot_token=bot_token, signing_secret=signing_secret)
    return slack_interface.get_fastapi_handler()
