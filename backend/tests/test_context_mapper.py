from datetime import datetime
from datetime import timedelta

import pytest

from agentos.services.context_mapper import ContextMapper


class Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return Clock(datetime(2024, 3, 20, 12, 0, 0))


@pytest.fixture
def mapper(repository, clock):
    return ContextMapper(repository, clock=clock)


def test_lookup_both_directions(mapper):
    mapper.create_mapping("a1", "asana", "project-123", "120045")

    assert mapper.get_external_id("a1", "asana", "project-123") == "120045"
    assert mapper.get_context_key("a1", "asana", "120045") == "project-123"
    assert mapper.get_external_id("a2", "asana", "project-123") is None
    assert mapper.get_external_id("a1", "notion", "project-123") is None


def test_create_replaces_existing_key(mapper):
    first = mapper.create_mapping("a1", "asana", "project-123", "old")
    second = mapper.create_mapping("a1", "asana", "project-123", "new")

    assert first.id == second.id
    assert mapper.get_external_id("a1", "asana", "project-123") == "new"
    assert len(mapper.list_mappings("a1", "asana")) == 1


def test_expired_mappings_are_absent(mapper, clock):
    mapper.create_mapping("a1", "slack", "standup", "C123", expires_at=clock.now + timedelta(hours=1))
    mapper.create_mapping("a1", "slack", "forever", "C456")

    assert mapper.get_external_id("a1", "slack", "standup") == "C123"

    clock.now += timedelta(hours=1)
    assert mapper.get_external_id("a1", "slack", "standup") is None
    assert mapper.get_context_key("a1", "slack", "C123") is None
    assert [m.context_key for m in mapper.list_mappings("a1", "slack")] == ["forever"]


def test_delete(mapper):
    mapper.create_mapping("a1", "notion", "notes", "page-1")

    assert mapper.delete_mapping("a1", "notion", "notes") is True
    assert mapper.delete_mapping("a1", "notion", "notes") is False
    assert mapper.get_external_id("a1", "notion", "notes") is None


def test_mapping_routes(client, test_user):
    base = "/api/plugin-engine/context-mappings"

    created = client.post(
        base, json={"agentId": "a1", "tool": "asana", "contextKey": "project-123", "externalId": "120045"}
    )
    assert created.status_code == 201
    assert created.json()["mapping"]["externalId"] == "120045"

    one = client.get(base, params={"agentId": "a1", "tool": "asana", "contextKey": "project-123"})
    assert one.json() == {"agentId": "a1", "tool": "asana", "contextKey": "project-123", "externalId": "120045"}

    listed = client.get(base, params={"agentId": "a1", "tool": "asana"}).json()["mappings"]
    assert [m["contextKey"] for m in listed] == ["project-123"]

    missing = client.get(base, params={"agentId": "a1", "tool": "asana", "contextKey": "nope"})
    assert missing.status_code == 404

    deleted = client.request("DELETE", base, json={"agentId": "a1", "tool": "asana", "contextKey": "project-123"})
    assert deleted.json() == {"success": True}
    again = client.request("DELETE", base, json={"agentId": "a1", "tool": "asana", "contextKey": "project-123"})
    assert again.status_code == 404


def test_mapping_routes_validate_input(client, test_user):
    base = "/api/plugin-engine/context-mappings"

    assert client.post(base, json={"agentId": "a1", "tool": "asana"}).status_code == 400
    bad_expiry = client.post(
        base,
        json={"agentId": "a1", "tool": "asana", "contextKey": "k", "externalId": "e", "expiresAt": "someday"},
    )
    assert bad_expiry.status_code == 400
    assert bad_expiry.json()["detail"] == "Invalid expiresAt"
    assert client.get(base, params={"agentId": "a1"}).status_code == 400


def test_bulk_upsert_and_delete(mapper):
    count = mapper.bulk_upsert_mappings(
        [
            {"agent_id": "a1", "tool": "asana", "context_key": "p1", "external_id": "1"},
            {"agent_id": "a1", "tool": "asana", "context_key": "p2", "external_id": "2"},
            {"agent_id": "a1", "tool": "asana", "context_key": "p1", "external_id": "3"},
        ]
    )

    assert count == 3
    assert mapper.get_external_id("a1", "asana", "p1") == "3"
    assert len(mapper.list_mappings("a1", "asana")) == 2

    removed = mapper.bulk_delete_mappings([("a1", "asana", "p1"), ("a1", "asana", "missing")])
    assert removed == 1
    assert [m.context_key for m in mapper.list_mappings("a1", "asana")] == ["p2"]


def test_lookup_route(client, test_user):
    base = "/api/plugin-engine/context-mappings"
    client.post(base, json={"agentId": "a1", "tool": "asana", "contextKey": "project-123", "externalId": "120045"})

    by_external = client.get(f"{base}/lookup", params={"agentId": "a1", "tool": "asana", "externalId": "120045"})
    assert by_external.json() == {"contextKey": "project-123"}

    by_key = client.get(f"{base}/lookup", params={"agentId": "a1", "tool": "asana", "contextKey": "project-123"})
    assert by_key.json() == {"externalId": "120045"}

    missing = client.get(f"{base}/lookup", params={"agentId": "a1", "tool": "asana", "externalId": "999"})
    assert missing.status_code == 404

    neither = client.get(f"{base}/lookup", params={"agentId": "a1", "tool": "asana"})
    assert neither.status_code == 400
    assert neither.json()["detail"] == "Either contextKey or externalId must be provided"
    assert client.get(f"{base}/lookup", params={"externalId": "120045"}).status_code == 400


def test_bulk_routes(client, test_user):
    base = "/api/plugin-engine/context-mappings"

    upserted = client.post(
        f"{base}/bulk",
        json={
            "mappings": [
                {"agentId": "a1", "tool": "slack", "contextKey": "standup", "externalId": "C1"},
                {"agentId": "a1", "tool": "slack", "contextKey": "alerts", "externalId": "C2"},
            ]
        },
    )
    assert upserted.status_code == 200
    assert upserted.json() == {"success": True, "count": 2, "message": "Processed 2 mappings"}

    listed = client.get(base, params={"agentId": "a1", "tool": "slack"}).json()["mappings"]
    assert sorted(m["contextKey"] for m in listed) == ["alerts", "standup"]

    deleted = client.request(
        "DELETE",
        f"{base}/bulk",
        json={
            "keys": [
                {"agentId": "a1", "tool": "slack", "contextKey": "standup"},
                {"agentId": "a1", "tool": "slack", "contextKey": "gone"},
            ]
        },
    )
    assert deleted.json() == {"success": True, "count": 1, "message": "Deleted 1 of 2 mappings"}
    assert [m["contextKey"] for m in client.get(base, params={"agentId": "a1", "tool": "slack"}).json()["mappings"]] == [
        "alerts"
    ]


def test_bulk_routes_validate_every_item(client, test_user):
    base = "/api/plugin-engine/context-mappings"

    empty = client.post(f"{base}/bulk", json={"mappings": []})
    assert empty.status_code == 400
    assert empty.json()["detail"] == "mappings must be a non-empty array"

    partial = client.post(
        f"{base}/bulk",
        json={
            "mappings": [
                {"agentId": "a1", "tool": "slack", "contextKey": "ok", "externalId": "C1"},
                {"agentId": "a1", "tool": "slack", "contextKey": "no-external-id"},
            ]
        },
    )
    assert partial.status_code == 400
    assert partial.json()["detail"].startswith("Invalid mapping at index 1")
    # nothing from the rejected batch was written
    assert client.get(base, params={"agentId": "a1", "tool": "slack"}).json()["mappings"] == []

    no_keys = client.request("DELETE", f"{base}/bulk", json={"keys": "standup"})
    assert no_keys.status_code == 400
    assert no_keys.json()["detail"] == "keys must be a non-empty array"
