from datetime import timedelta

import pytest

import agentos.dependencies.auth as auth_mod
from agentos.auth.strategy import issue_access_token


@pytest.fixture
def jwt_auth(monkeypatch):
    """Switch the app to bearer-token validation for one test."""
    monkeypatch.setattr(auth_mod, "AUTH_DISABLED", False)


def test_dev_mode_creates_dev_user(client, repository):
    assert repository.get_user_by_email("dev@local") is None

    assert client.get("/api/agents").status_code == 200
    assert repository.get_user_by_email("dev@local") is not None


def test_missing_token_is_401(client, jwt_auth, test_user):
    response = client.get("/api/agents")
    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"


def test_valid_token(client, jwt_auth, other_user):
    token = issue_access_token(other_user.id)
    client.post("/api/agents", json={"name": "Mine"}, headers={"Authorization": f"Bearer {token}"})

    agents = client.get("/api/agents", headers={"Authorization": f"Bearer {token}"}).json()
    assert [agent["owner_id"] for agent in agents] == [other_user.id]


@pytest.mark.parametrize(
    "header",
    [
        "Bearer not-a-jwt",
        "Basic abc",
        "Bearer ",
    ],
)
def test_bad_tokens(client, jwt_auth, other_user, header):
    assert client.get("/api/agents", headers={"Authorization": header}).status_code == 401


def test_expired_and_foreign_tokens(client, jwt_auth, other_user):
    expired = issue_access_token(other_user.id, expires_in=timedelta(seconds=-10))
    forged = issue_access_token(other_user.id, secret="some-other-secret")
    unknown_user = issue_access_token(9999)

    for token in (expired, forged, unknown_user):
        assert client.get("/api/agents", headers={"Authorization": f"Bearer {token}"}).status_code == 401


def test_admin_guard(client, jwt_auth, other_user, admin_user):
    user_token = issue_access_token(other_user.id)
    admin_token = issue_access_token(admin_user.id)

    denied = client.get("/api/admin/dead-letters", headers={"Authorization": f"Bearer {user_token}"})
    assert denied.status_code == 403
    allowed = client.get("/api/admin/dead-letters", headers={"Authorization": f"Bearer {admin_token}"})
    assert allowed.status_code == 200
    assert allowed.json() == []


def test_oauth_callback_needs_no_user(client, jwt_auth):
    response = client.get("/api/integrations/oauth/callback", follow_redirects=False)
    assert response.status_code == 302
    assert response.headers["location"].endswith("error=invalid_callback")
