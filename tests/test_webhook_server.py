import pytest
from fastapi.testclient import TestClient

from models import DirectoryUser
from runtime.service_container import DAILYSCRUM_JOB, DIGEST_JOB, build_services
from runtime.settings import Settings
from slack_webhook_server import create_app
from conftest import FakeDirectory, FakeSink, FakeStore, rules


@pytest.fixture
def services():
    settings = Settings(bot_token="bot-token", working_channel="#working")
    return build_services(
        settings,
        routing=rules(("#bugs", ["#bugfix"], "bugs-token")),
        store=FakeStore(),
        sink=FakeSink(),
        directory=FakeDirectory([DirectoryUser(id="U1", name="alice")]),
    )


@pytest.fixture
def client(services):
    return TestClient(create_app(services))


def test_on_endpoint_stores_and_fans_out(client, services):
    response = client.post("/on", data={"text": "fixing #bugfix", "user_id": "U1", "user_name": "alice"})

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["id"] == services.store.items[0].id
    assert body["delivered"] == ["#working", "#bugs"]
    assert services.sink.sent[0]["text"] == "<@U1|alice> is working on: fixing #bugfix"


@pytest.mark.parametrize("path,expected", [
    ("/til", "<@U1|alice> #til - Today I learned: pytest fixtures"),
    ("/done", "<@U1|alice> has done: pytest fixtures"),
])
def test_til_and_done_endpoints(client, services, path, expected):
    response = client.post(path, data={"text": "pytest fixtures", "user_id": "U1", "user_name": "alice"})
    assert response.status_code == 200
    assert services.sink.sent[0]["text"] == expected


def test_blank_text_is_400(client, services):
    response = client.post("/on", data={"text": "   ", "user_id": "U1", "user_name": "alice"})
    assert response.status_code == 400
    assert services.store.items == []


def test_store_failure_is_503(client, services):
    services.store.fail_insert = True
    response = client.post("/on", data={"text": "hello", "user_id": "U1", "user_name": "alice"})
    assert response.status_code == 503
    assert services.sink.sent == []


def test_delivery_failure_still_200(client, services):
    services.sink.failing.add("#working")
    response = client.post("/on", data={"text": "hello", "user_id": "U1", "user_name": "alice"})
    assert response.status_code == 200
    assert response.json()["failed"] == ["#working"]


def test_health(client, services):
    client.post("/on", data={"text": "hello", "user_id": "U1", "user_name": "alice"})
    body = client.get("/health").json()
    assert body["status"] == "healthy"
    assert body["items"] == 1
    assert body["routing_rules"] == 1
    assert body["jobs"] == [DIGEST_JOB]


def test_slack_endpoint_absent_without_signing_secret(client):
    assert "/slack/commands" not in client.get("/").json()["endpoints"]
    assert client.post("/slack/commands").status_code == 404


def test_dailyscrum_job_registered_when_configured():
    settings = Settings(
        bot_token="bot-token",
        dailyscrum_time="10:00",
        dailyscrum_url="https://meet.example/scrum",
    )
    services = build_services(settings, routing=rules(), store=FakeStore(), sink=FakeSink(),
                              directory=FakeDirectory([]))
    assert sorted(services.scheduler.jobs) == sorted([DIGEST_JOB, DAILYSCRUM_JOB])
    assert services.digest_routing is services.routing
