import asyncio
import logging
import sys
import argparse
from typing import List, Optional

from models import MessageType
from runtime.errors import StatusBotError
from runtime.service_container import StatusBotServices, build_services
from runtime.settings import Settings, configure_logging, load_settings

logger = logging.getLogger(__name__)


class CLIInterface:
    """
    Operator command line for the status bot

    Runs one digest immediately or submits one status item, using the same
    services the web server builds.
    """

    def __init__(self, services: StatusBotServices):
        self.services = services

    async def run_digest(self) -> int:
        """Run the Digest Aggregator once, now"""
        await self.services.store.initialize()
        try:
            result = await self.services.aggregator.run()
        finally:
            await self.services.store.close()

        print(f"Digest window: {result.window.start.isoformat()} -> {result.window.end.isoformat()}")
        for destination in result.delivered:
            print(f"  posted  {destination}")
        for destination in result.skipped:
            print(f"  empty   {destination}")
        for destination in result.failed:
            print(f"  FAILED  {destination}")
        return 1 if result.failed else 0

    async def post(self, text: str, user_id: str, user_name: str, message_type: MessageType) -> int:
        """Submit one item through the Fan-out Router"""
        await self.services.store.initialize()
        try:
            result = await self.services.router.submit(text, user_id, user_name, message_type)
        finally:
            await self.services.store.close()

        print(f"Stored item {result.item.id}")
        for destination in result.delivered:
            print(f"  sent    {destination}")
        for destination in result.failed:
            print(f"  FAILED  {destination}")
        return 1 if result.failed else 0


def serve(settings: Settings):
    """Run the web server (form endpoints, Slack commands, scheduler)"""
    import uvicorn

    uvicorn.run(
        "slack_webhook_server:create_app",
        factory=True,
        host="0.0.0.0",
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


def create_argument_parser():
    """Create command line argument parser"""
    parser = argparse.ArgumentParser(
        description="Status bot: tag fan-out and daily digests",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m interfaces.cli_interface serve
  python -m interfaces.cli_interface digest
  python -m interfaces.cli_interface post --user-id U1 --user-name alice "fixing #bugfix in parser"
        """
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose output with detailed logs"
    )

    subparsers = parser.add_subparsers(dest="action", required=True)

    subparsers.add_parser("serve", help="Run the HTTP server and the daily scheduler")
    subparsers.add_parser("digest", help="Run the daily digest now")

    post_parser = subparsers.add_parser("post", help="Submit a status item")
    post_parser.add_argument("text", help="Status text")
    post_parser.add_argument(
        "--type",
        dest="message_type",
        choices=[t.value for t in MessageType],
        default=MessageType.on.value,
        help="Kind of status (default: on)"
    )
    post_parser.add_argument("--user-id", default="", help="Slack user id of the author")
    post_parser.add_argument("--user-name", default="", help="Display name of the author")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point"""
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    try:
        settings = load_settings()
        configure_logging("DEBUG" if args.verbose else settings.log_level)
        settings.validate()

        if args.action == "serve":
            serve(settings)
            return 0

        cli = CLIInterface(build_services(settings))
        if args.action == "digest":
            return asyncio.run(cli.run_digest())
        return asyncio.run(cli.post(args.text, args.user_id, args.user_name, MessageType(args.message_type)))

    except StatusBotError as e:
        print(f"❌ {e}", file=sys.stderr)
        if args.verbose:
            logger.exception("Error details:")
        return 1
    except KeyboardInterrupt:
        print("\n👋 Goodbye!")
        return 130


def run():
    sys.exit(main())


if __name__ == "__main__":
    run()
