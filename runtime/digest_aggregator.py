"""
Digest Aggregator

Once per day, for every routing rule, collects each eligible owner's items
from the previous UTC calendar day up to now, keeps those matching the
rule's tags, and posts one consolidated digest to the rule's destination.

A rule whose digest would be empty posts nothing. A failure on one rule
never stops the others; a failure to enumerate owners aborts the whole run.
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional, Protocol, Sequence, Tuple

from interfaces.slack.formatters.message_formatter import (
    format_digest_line,
    format_digest_title,
    format_owner,
    render_digest_fields,
    render_digest_text,
)
from models import (
    DirectoryUser,
    Digest,
    DigestBlock,
    DigestRunResult,
    DigestWindow,
    RoutingConfiguration,
    RoutingRule,
    StatusItem,
)
from runtime.errors import DeliveryFailure, DirectoryFailure, PersistenceFailure
from runtime.time_utils import digest_window, utcnow, yesterday

logger = logging.getLogger(__name__)


class ItemQuery(Protocol):
    async def query_by_owner_and_window(self, owner_id: str, window_start: datetime,
                                        window_end: datetime) -> List[StatusItem]:
        ...


class OwnerDirectory(Protocol):
    async def list_owners(self) -> List[DirectoryUser]:
        ...


class DigestAggregator:
    """Builds and posts the daily per-destination digests"""

    def __init__(self, store: ItemQuery, sink, directory: OwnerDirectory,
                 routing: RoutingConfiguration,
                 icon_url: Optional[str] = None, display_name: Optional[str] = None,
                 display_timezone: str = "UTC",
                 clock: Callable[[], datetime] = utcnow):
        self._store = store
        self._sink = sink
        self._directory = directory
        self._routing = routing
        self._icon_url = icon_url
        self._display_name = display_name
        self.display_timezone = display_timezone
        self._clock = clock

    def digest_title(self, window: DigestWindow) -> str:
        # The digest covers "yesterday" as seen in the display zone
        return format_digest_title(yesterday(window.end, self.display_timezone), self.display_timezone)

    async def build_digest(self, rule: RoutingRule, owners: Sequence[DirectoryUser],
                           window: DigestWindow) -> Digest:
        """
        Assemble the digest for one rule.

        Owners are visited in directory order. Items keep store order. An owner
        whose query fails is left out and logged; the rest of the digest stands.
        """
        blocks: List[DigestBlock] = []
        for owner in owners:
            try:
                items = await self._store.query_by_owner_and_window(owner.id, window.start, window.end)
            except PersistenceFailure as e:
                logger.error(f"Digest for {rule.destination}: skipping {owner.name}: {e}")
                continue

            lines = tuple(
                format_digest_line(item.text)
                for item in items
                if not rule.tags or rule.matches(item.text)
            )
            if lines:
                blocks.append(DigestBlock(title=format_owner(owner.id, owner.name), lines=lines))

        return Digest(title=self.digest_title(window), blocks=tuple(blocks))

    async def post_digest(self, rule: RoutingRule, digest: Digest) -> None:
        """Deliver a non-empty digest. Raises DeliveryFailure."""
        if getattr(self._sink, "supports_fields", False):
            fields: Optional[List[Tuple[str, str]]] = render_digest_fields(digest)
            text = digest.title
        else:
            fields = None
            text = render_digest_text(digest)

        kwargs = {"icon_url": self._icon_url, "display_name": self._display_name}
        if fields is not None:
            kwargs["fields"] = fields
        await self._sink.deliver(rule.credential, rule.destination, text, **kwargs)

    async def run(self, now: Optional[datetime] = None) -> DigestRunResult:
        """
        One aggregation run over all rules.

        Raises:
            DirectoryFailure: owners could not be enumerated; nothing was posted
        """
        window = digest_window(now or self._clock())
        logger.info(f"Digest run for window [{window.start.isoformat()}, {window.end.isoformat()})")

        try:
            owners = await self._directory.list_owners()
        except DirectoryFailure as e:
            logger.error(f"Digest run aborted, owner directory unavailable: {e}")
            raise

        result = DigestRunResult(window=window)
        for rule in self._routing.items:
            await self._run_rule(rule, owners, window, result)

        return result

    async def _run_rule(self, rule: RoutingRule, owners: Sequence[DirectoryUser],
                        window: DigestWindow, result: DigestRunResult) -> None:
        """Build and post one rule's digest; any failure is recorded against this rule only"""
        try:
            digest = await self.build_digest(rule, owners, window)
            if digest.is_empty:
                logger.info(f"No digest content for {rule.destination}")
                result.skipped.append(rule.destination)
                return
            await self.post_digest(rule, digest)
        except DeliveryFailure as e:
            logger.error(f"Digest delivery failed: {e}")
            result.failed.append(rule.destination)
            return
        except Exception as e:
            logger.exception(f"Digest for {rule.destination} failed: {e}")
            result.failed.append(rule.destination)
            return

        logger.info(f"Posted digest with {digest.owner_count} owners to {rule.destination}")
        result.delivered.append(rule.destination)
