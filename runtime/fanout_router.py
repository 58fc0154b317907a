"""
Fan-out Router

Ingests one status submission: validates it, persists exactly one StatusItem,
then relays the formatted message to the primary working-status channel and
to every routing rule whose tags match the text.

Persistence happens before any delivery; if it fails nothing is sent.
Deliveries are isolated per destination: one failing channel never stops the
others, and never rolls back the stored item.
"""

import logging
import uuid
from datetime import datetime
from typing import Callable, List, Optional, Protocol, Tuple

from interfaces.slack.formatters.message_formatter import format_item_message
from models import FanoutResult, MessageType, RoutingConfiguration, RoutingRule, StatusItem
from runtime.errors import DeliveryFailure, InvalidInput
from runtime.time_utils import utcnow

logger = logging.getLogger(__name__)


class RecordStore(Protocol):
    async def insert(self, item: StatusItem) -> None:
        ...


class NotificationSink(Protocol):
    async def deliver(self, credential: str, destination: str, text: str,
                      icon_url: Optional[str] = None, display_name: Optional[str] = None,
                      fields=None) -> None:
        ...


def new_item_id() -> str:
    return uuid.uuid4().hex


class FanoutRouter:
    """Immediate tag-based fan-out of newly submitted status items"""

    def __init__(self, store: RecordStore, sink: NotificationSink,
                 routing: RoutingConfiguration,
                 primary_destination: str, primary_credential: str,
                 icon_url: Optional[str] = None, display_name: Optional[str] = None,
                 clock: Callable[[], datetime] = utcnow,
                 id_factory: Callable[[], str] = new_item_id):
        self._store = store
        self._sink = sink
        self._routing = routing
        self.primary_destination = primary_destination
        self._primary_credential = primary_credential
        self._icon_url = icon_url
        self._display_name = display_name
        self._clock = clock
        self._id_factory = id_factory

    def matching_rules(self, text: str) -> List[RoutingRule]:
        """
        Secondary destinations for `text`.

        Only rules with a non-empty tag set take part; a rule matches when any
        of its tags is a literal, case-sensitive substring of the text.
        Duplicate rules each produce their own delivery.
        """
        return [rule for rule in self._routing.items if rule.tags and rule.matches(text)]

    def _build_item(self, text: str, user_id: str, user_name: str) -> StatusItem:
        text = (text or "").strip()
        if not text:
            raise InvalidInput("Message text is empty")
        user_id = (user_id or "").strip()
        user_name = (user_name or "").strip()
        if not user_id and not user_name:
            raise InvalidInput("Submission has no user_id or user_name")
        return StatusItem(
            id=self._id_factory(),
            user_id=user_id,
            user_name=user_name or user_id,
            text=text,
            created_at=self._clock(),
        )

    async def submit(self, text: str, user_id: str, user_name: str,
                     message_type: MessageType = MessageType.on) -> FanoutResult:
        """
        Persist and relay one submission.

        Raises:
            InvalidInput: blank text or no author; nothing is stored or sent
            PersistenceFailure: the store rejected the write; nothing is sent
        """
        item = self._build_item(text, user_id, user_name)

        # PersistenceFailure propagates before any notification is attempted
        await self._store.insert(item)
        logger.info(f"Stored {MessageType(message_type).value} item {item.id} from {item.user_name}")

        message = format_item_message(message_type, item.user_id, item.user_name, item.text)

        targets: List[Tuple[str, str]] = [(self.primary_destination, self._primary_credential)]
        for rule in self.matching_rules(item.text):
            logger.info(f"Tag hit for {rule.destination}: {[t for t in rule.tags if t in item.text]}")
            targets.append((rule.destination, rule.credential))

        result = FanoutResult(item=item)
        for destination, credential in targets:
            await self._deliver(destination, credential, message, result)

        if result.failed:
            logger.warning(f"Item {item.id}: {len(result.failed)} of {len(targets)} deliveries failed")
        return result

    async def _deliver(self, destination: str, credential: str, message: str,
                       result: FanoutResult) -> None:
        try:
            await self._sink.deliver(
                credential,
                destination,
                message,
                icon_url=self._icon_url,
                display_name=self._display_name,
            )
        except DeliveryFailure as e:
            logger.error(f"Fan-out delivery failed: {e}")
            result.failed.append(destination)
            return
        result.delivered.append(destination)
