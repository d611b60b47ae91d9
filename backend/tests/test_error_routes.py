import pytest

from agentos.services.error_handler import DEFAULT_FALLBACK_MESSAGES

BASE = "/api/plugin-engine/errors"


def _log(client, **overrides):
    body = {"agentId": "a1", "tool": "gmail", "action": "send_email", "errorCode": "500", "errorMessage": "boom"}
    body.update(overrides)
    return client.post(BASE, json=body)


def test_log_error_returns_fallback(client, repository, test_user):
    response = _log(client)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["fallbackMessage"] == DEFAULT_FALLBACK_MESSAGES["gmail"]
    assert repository.get_error(body["errorId"]).user_id == test_user.id


def test_log_error_requires_fields(client, test_user):
    response = client.post(BASE, json={"agentId": "a1", "tool": "gmail"})
    assert response.status_code == 400
    assert response.json()["detail"] == "Missing required fields: agentId, tool, action, errorCode, errorMessage"


def test_list_errors(client, test_user):
    for n in range(3):
        _log(client, errorMessage=f"boom {n}")

    errors = client.get(BASE, params={"agentId": "a1", "limit": "2"}).json()["errors"]
    assert len(errors) == 2
    assert set(errors[0]) >= {"id", "agentId", "tool", "action", "errorCode", "errorMessage", "createdAt", "resolved"}
    assert client.get(BASE).status_code == 400


def test_resolve_and_bulk(client, test_user):
    ids = [_log(client).json()["errorId"] for _ in range(3)]

    assert client.patch(BASE, json={"errorId": ids[0]}).json() == {"success": True, "errorId": ids[0]}
    assert client.patch(BASE, json={"errorId": "missing"}).status_code == 404

    bulk = client.post(f"{BASE}/bulk", json={"action": "resolve", "errorIds": ids[1:] + ["missing"]})
    assert bulk.json() == {"success": True, "action": "resolve", "count": 2, "errorIds": ids[1:] + ["missing"]}

    resolved = client.get(BASE, params={"agentId": "a1"}).json()["errors"]
    assert all(error["resolved"] for error in resolved)


def test_bulk_validation(client, test_user):
    unsupported = client.post(f"{BASE}/bulk", json={"action": "delete", "errorIds": []})
    assert unsupported.status_code == 400
    assert unsupported.json()["detail"] == "Unsupported action: delete"

    not_list = client.post(f"{BASE}/bulk", json={"action": "resolve", "errorIds": "abc"})
    assert not_list.status_code == 400
    assert not_list.json()["detail"] == "errorIds must be a list"


def test_stats(client, test_user):
    _log(client, errorCode="401")
    _log(client, errorCode="401")
    _log(client, tool="slack", errorCode="429")

    body = client.get(f"{BASE}/stats").json()
    assert body["stats"] == {"gmail": 2, "slack": 1}
    assert body["topErrorCodes"][0] == {"error_code": "401", "count": 2}
    assert body["period"]["days"] == 7


def test_trends_default_window(client, test_user):
    _log(client)

    trends = client.get(f"{BASE}/trends", params={"days": "invalid"}).json()["trends"]
    assert len(trends) == 30
    assert trends[-1]["count"] == 1

    assert len(client.get(f"{BASE}/trends", params={"days": "5", "tool": "slack"}).json()["trends"]) == 5


@pytest.mark.parametrize("days", ["366", "99999999", "1000000000"])
def test_oversized_window_uses_default(client, test_user, days):
    _log(client)

    trends = client.get(f"{BASE}/trends", params={"days": days})
    assert trends.status_code == 200
    assert len(trends.json()["trends"]) == 30

    stats = client.get(f"{BASE}/stats", params={"days": days})
    assert stats.status_code == 200
    assert stats.json()["period"]["days"] == 7


def test_oversized_limit_uses_default(client, test_user):
    for _ in range(12):
        _log(client)

    response = client.get(BASE, params={"agentId": "a1", "limit": "10000000000000000000000"})
    assert response.status_code == 200
    assert len(response.json()["errors"]) == 10


def test_fallback_routes(client, repository, test_user):
    assert client.get(f"{BASE}/fallbacks").status_code == 400

    saved = client.post(f"{BASE}/fallbacks", json={"tool": "slack", "message": "Try later", "agentId": "a1"})
    assert saved.json() == {"success": True, "tool": "slack", "agentId": "a1", "message": "Try later"}
    assert repository.get_fallback("slack", "a1").updated_by == "dev@local"

    agent_scoped = client.get(f"{BASE}/fallbacks", params={"tool": "slack", "agentId": "a1"}).json()
    assert agent_scoped["message"] == "Try later"
    tool_wide = client.get(f"{BASE}/fallbacks", params={"tool": "slack"}).json()
    assert tool_wide["message"] == DEFAULT_FALLBACK_MESSAGES["slack"]

    empty = client.post(f"{BASE}/fallbacks", json={"tool": "slack", "message": "   "})
    assert empty.status_code == 400
