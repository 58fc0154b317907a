"""Shared in-memory fakes for the store, sink and owner directory"""

from datetime import datetime, timezone
from typing import Dict, List, Optional, Set

import pytest

from models import DirectoryUser, RoutingConfiguration, RoutingRule, StatusItem
from runtime.errors import DeliveryFailure, DirectoryFailure, PersistenceFailure


class FakeStore:
    def __init__(self):
        self.items: List[StatusItem] = []
        self.fail_insert = False
        self.fail_query_for: Set[str] = set()
        self.queries: List[tuple] = []

    async def initialize(self):
        pass

    async def close(self):
        pass

    async def insert(self, item: StatusItem) -> None:
        if self.fail_insert:
            raise PersistenceFailure("store offline")
        self.items.append(item)

    async def query_by_owner_and_window(self, owner_id, window_start, window_end):
        self.queries.append((owner_id, window_start, window_end))
        if owner_id in self.fail_query_for:
            raise PersistenceFailure("query failed")
        return [
            item for item in self.items
            if item.user_id == owner_id and window_start <= item.created_at < window_end
        ]

    async def count_items(self) -> int:
        return len(self.items)


class FakeSink:
    supports_fields = True

    def __init__(self, failing: Optional[Set[str]] = None):
        self.failing = failing or set()
        self.sent: List[Dict] = []

    async def deliver(self, credential, destination, text, icon_url=None, display_name=None, fields=None):
        if destination in self.failing:
            raise DeliveryFailure(destination, "channel_not_found")
        self.sent.append({
            "credential": credential,
            "destination": destination,
            "text": text,
            "icon_url": icon_url,
            "display_name": display_name,
            "fields": fields,
        })

    def destinations(self) -> List[str]:
        return [message["destination"] for message in self.sent]


class TextOnlySink(FakeSink):
    supports_fields = False


class FakeDirectory:
    def __init__(self, users: List[DirectoryUser], fail: bool = False):
        self.users = users
        self.fail = fail
        self.calls = 0

    async def list_owners(self) -> List[DirectoryUser]:
        self.calls += 1
        if self.fail:
            raise DirectoryFailure("users.list failed: ratelimited")
        return [user for user in self.users if user.is_eligible]


def at(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def rules(*entries) -> RoutingConfiguration:
    return RoutingConfiguration(items=tuple(
        RoutingRule(destination=destination, tags=tuple(tags), credential=credential)
        for destination, tags, credential in entries
    ))


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def sink():
    return FakeSink()
