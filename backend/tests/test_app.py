from fastapi.testclient import TestClient

from agentos.core.factory import get_repository
from agentos.main import app


def test_root(client):
    assert client.get("/").json() == {"message": "AgentOS API is running"}


def test_metrics_endpoint(client, test_user):
    client.get("/api/integrations/tools")

    response = client.get("/metrics")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert "integration_calls_total" in response.text


def test_unhandled_exception_returns_500(client, test_user):
    class ExplodingRepository:
        def list_agents(self, owner_id):
            raise RuntimeError("kaboom")

    app.dependency_overrides[get_repository] = lambda: ExplodingRepository()
    unsafe_client = TestClient(app, raise_server_exceptions=False)

    response = unsafe_client.get("/api/agents")

    assert response.status_code == 500
    assert response.json() == {"detail": "Internal server error", "details": "kaboom"}
