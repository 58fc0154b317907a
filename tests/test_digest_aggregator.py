import asyncio

import pytest

from models import DirectoryUser, StatusItem
from runtime.digest_aggregator import DigestAggregator
from runtime.errors import DirectoryFailure
from conftest import FakeDirectory, FakeSink, TextOnlySink, at, rules

ALICE = DirectoryUser(id="U1", name="alice")
BOB = DirectoryUser(id="U2", name="bob")
NOW = at(2024, 3, 15, 9, 30)


def add_item(store, user, text, created_at):
    store.items.append(StatusItem(
        id=f"{user.id}-{len(store.items)}",
        user_id=user.id,
        user_name=user.name,
        text=text,
        created_at=created_at,
    ))


def make_aggregator(store, sink, routing, users=(ALICE, BOB), directory=None, **kwargs):
    return DigestAggregator(
        store,
        sink,
        directory or FakeDirectory(list(users)),
        routing,
        icon_url="http://icon",
        display_name="oshin",
        **kwargs,
    )


def test_tagged_digest_end_to_end(store, sink):
    add_item(store, ALICE, "fixing #bugfix in parser", at(2024, 3, 14, 15, 0))
    add_item(store, ALICE, "lunch", at(2024, 3, 14, 12, 0))
    routing = rules(("#bugs", ["#bugfix"], "bugs-token"))

    result = asyncio.run(make_aggregator(store, sink, routing).run(NOW))

    assert result.delivered == ["#bugs"]
    message = sink.sent[0]
    assert message["credential"] == "bugs-token"
    assert message["text"] == ":rocket::rocket: >> Team daily digest for *2024-03-14*"
    assert message["fields"] == [("<@U1|alice>", "+ fixing #bugfix in parser")]


def test_untagged_rule_gets_everything_grouped_by_owner(store, sink):
    add_item(store, BOB, "reviewing PRs", at(2024, 3, 14, 10, 0))
    add_item(store, ALICE, "first", at(2024, 3, 14, 11, 0))
    add_item(store, ALICE, "second", at(2024, 3, 15, 8, 0))
    routing = rules(("#standup", [], "t"))

    asyncio.run(make_aggregator(store, sink, routing).run(NOW))

    assert sink.sent[0]["fields"] == [
        ("<@U1|alice>", "+ first\n+ second"),
        ("<@U2|bob>", "+ reviewing PRs"),
    ]


def test_items_outside_window_are_excluded(store, sink):
    add_item(store, ALICE, "too old", at(2024, 3, 13, 23, 59, 59))
    add_item(store, ALICE, "at start", at(2024, 3, 14))
    add_item(store, ALICE, "at end", NOW)
    routing = rules(("#standup", [], "t"))

    asyncio.run(make_aggregator(store, sink, routing).run(NOW))

    assert sink.sent[0]["fields"] == [("<@U1|alice>", "+ at start")]


def test_window_passed_to_store(store, sink):
    routing = rules(("#standup", [], "t"))
    asyncio.run(make_aggregator(store, sink, routing, users=[ALICE]).run(NOW))
    assert store.queries == [("U1", at(2024, 3, 14), NOW)]


def test_empty_digest_posts_nothing(store, sink):
    add_item(store, ALICE, "nothing tagged here", at(2024, 3, 14, 15, 0))
    routing = rules(("#bugs", ["#bugfix"], "t"))

    result = asyncio.run(make_aggregator(store, sink, routing).run(NOW))

    assert sink.sent == []
    assert result.skipped == ["#bugs"]
    assert result.delivered == []


def test_bots_and_deactivated_users_excluded(store, sink):
    bot = DirectoryUser(id="B1", name="deploybot", is_bot=True)
    gone = DirectoryUser(id="U9", name="carol", is_deactivated=True)
    add_item(store, bot, "deployed", at(2024, 3, 14, 15, 0))
    add_item(store, gone, "farewell", at(2024, 3, 14, 15, 0))
    routing = rules(("#standup", [], "t"))

    result = asyncio.run(make_aggregator(store, sink, routing, users=[bot, gone]).run(NOW))

    assert sink.sent == []
    assert result.skipped == ["#standup"]


def test_directory_failure_aborts_run(store, sink):
    add_item(store, ALICE, "work", at(2024, 3, 14, 15, 0))
    routing = rules(("#standup", [], "t"))
    aggregator = make_aggregator(store, sink, routing, directory=FakeDirectory([ALICE], fail=True))

    with pytest.raises(DirectoryFailure):
        asyncio.run(aggregator.run(NOW))
    assert sink.sent == []


def test_directory_queried_once_per_run(store, sink):
    directory = FakeDirectory([ALICE])
    routing = rules(("#a", [], "t"), ("#b", [], "t"))
    asyncio.run(make_aggregator(store, sink, routing, directory=directory).run(NOW))
    assert directory.calls == 1


def test_delivery_failure_isolated_per_rule(store):
    sink = FakeSink(failing={"#bugs"})
    add_item(store, ALICE, "fixing #bugfix", at(2024, 3, 14, 15, 0))
    routing = rules(("#bugs", ["#bugfix"], "t"), ("#standup", [], "t"))

    result = asyncio.run(make_aggregator(store, sink, routing).run(NOW))

    assert result.failed == ["#bugs"]
    assert result.delivered == ["#standup"]


def test_owner_query_failure_leaves_other_owners(store, sink):
    add_item(store, ALICE, "alice work", at(2024, 3, 14, 15, 0))
    add_item(store, BOB, "bob work", at(2024, 3, 14, 15, 0))
    store.fail_query_for = {"U1"}
    routing = rules(("#standup", [], "t"))

    asyncio.run(make_aggregator(store, sink, routing).run(NOW))

    assert sink.sent[0]["fields"] == [("<@U2|bob>", "+ bob work")]


def test_text_only_sink_gets_flat_rendering(store):
    sink = TextOnlySink()
    add_item(store, ALICE, "fixing #bugfix", at(2024, 3, 14, 15, 0))
    routing = rules(("#bugs", ["#bugfix"], "t"))

    asyncio.run(make_aggregator(store, sink, routing).run(NOW))

    assert sink.sent[0]["fields"] is None
    assert sink.sent[0]["text"] == (
        ":rocket::rocket: >> Team daily digest for *2024-03-14*\n\n"
        "*<@U1|alice>*\n+ fixing #bugfix"
    )


def test_title_date_uses_display_zone(store, sink):
    add_item(store, ALICE, "work", at(2024, 3, 14, 15, 0))
    routing = rules(("#standup", [], "t"))
    aggregator = make_aggregator(store, sink, routing, display_timezone="Asia/Tokyo")

    # 2024-03-15 23:30 UTC is already March 16 in Tokyo
    asyncio.run(aggregator.run(at(2024, 3, 15, 23, 30)))

    assert sink.sent[0]["text"].endswith("*2024-03-15*")


def test_no_rules_no_posts(store, sink):
    add_item(store, ALICE, "work", at(2024, 3, 14, 15, 0))
    result = asyncio.run(make_aggregator(store, sink, rules()).run(NOW))
    assert sink.sent == []
    assert result.delivered == [] and result.skipped == []


def test_login_bug_reaches_only_matching_destination(store, sink):
    add_item(store, ALICE, "-fixed the login bug #bugfix", at(2024, 3, 14, 12, 0))
    routing = rules(("#eng", ["#bugfix"], "t"), ("#design", ["#figma"], "t"))

    result = asyncio.run(make_aggregator(store, sink, routing).run(at(2024, 3, 15, 9, 30)))

    assert sink.destinations() == ["#eng"]
    assert sink.sent[0]["fields"] == [("<@U1|alice>", "+ -fixed the login bug #bugfix")]
    assert result.skipped == ["#design"]


class BrokenSink(FakeSink):
    async def deliver(self, credential, destination, text, icon_url=None, display_name=None, fields=None):
        if destination == "#bugs":
            raise RuntimeError("unexpected payload error")
        await super().deliver(credential, destination, text, icon_url, display_name, fields)


def test_unexpected_error_on_one_rule_does_not_stop_others(store):
    sink = BrokenSink()
    add_item(store, ALICE, "fixing #bugfix", at(2024, 3, 14, 15, 0))
    routing = rules(("#bugs", ["#bugfix"], "t"), ("#standup", [], "t"))

    result = asyncio.run(make_aggregator(store, sink, routing).run(NOW))

    assert result.failed == ["#bugs"]
    assert result.delivered == ["#standup"]
    assert sink.destinations() == ["#standup"]
