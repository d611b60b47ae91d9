import os

# Configuration is read at import time – set the test environment first.
os.environ["TESTING"] = "1"
os.environ["FERNET_SECRET"] = "Mj7MFJspDPjiFBGHZJ5hnx70XAFJ_En6ofIEhn3BoXw="
os.environ["CRON_SECRET_TOKEN"] = "test-cron-secret"
os.environ["JWT_SECRET"] = "test-jwt-secret-0123456789"
os.environ["GOOGLE_CLIENT_ID"] = "google-client"
os.environ["GOOGLE_CLIENT_SECRET"] = "google-secret"
os.environ["SLACK_CLIENT_ID"] = "slack-client"
os.environ["SLACK_CLIENT_SECRET"] = "slack-secret"
os.environ["NOTION_CLIENT_ID"] = "notion-client"
os.environ["NOTION_CLIENT_SECRET"] = "notion-secret"
os.environ["ASANA_CLIENT_ID"] = "asana-client"
os.environ["ASANA_CLIENT_SECRET"] = "asana-secret"
os.environ["APP_PUBLIC_URL"] = "http://testserver"

from datetime import timedelta  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import agentos.database as _db_mod  # noqa: E402
from agentos.config import get_settings  # noqa: E402
from agentos.core.factory import build_services  # noqa: E402
from agentos.core.implementations import SQLAlchemyRepository  # noqa: E402
from agentos.database import Base  # noqa: E402
from agentos.database import get_db  # noqa: E402
from agentos.database import make_engine  # noqa: E402
from agentos.database import make_sessionmaker  # noqa: E402
from agentos.integrations.credentials import CredentialStore  # noqa: E402
from agentos.models.enums import UserRole  # noqa: E402
from agentos.utils.time import utc_now_naive  # noqa: E402

# Create a test database - using in-memory SQLite for tests
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

test_engine = make_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,  # Use StaticPool for in-memory database
)

TestingSessionLocal = make_sessionmaker(test_engine)

# Services that open their own sessions (chat persistence, scheduler jobs)
# resolve the factory at call time and pick this one up.
_db_mod.default_session_factory = TestingSessionLocal

# Import app after the engine override is in place
from agentos.main import app  # noqa: E402


class FakeHTTP:
    """``httpx.MockTransport`` handler with canned responses per ``METHOD url``.

    ``routes`` maps ``"POST https://slack.com/api/chat.postMessage"`` to either
    ``(status, json_body)`` or a callable ``request -> httpx.Response``.
    """

    def __init__(self):
        self.routes = {}
        self.requests = []

    def add(self, method, url, status=200, json=None, handler=None):
        self.routes[f"{method} {url}"] = handler or (status, json)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = f"{request.method} {request.url.scheme}://{request.url.host}{request.url.path}"
        route = self.routes.get(key)
        if route is None:
            return httpx.Response(404, json={"error": f"no fake route for {key}"})
        if callable(route):
            return route(request)
        status, body = route
        return httpx.Response(status, json=body)


class FakeLLM:
    """Streams the configured tokens and records every prompt."""

    def __init__(self, tokens=None):
        self.tokens = tokens or ["Hello", ", ", "world"]
        self.calls = []

    async def stream(self, model, messages, max_tokens):
        self.calls.append({"model": model, "messages": messages, "max_tokens": max_tokens})
        for token in self.tokens:
            yield token


@pytest.fixture
def db_session():
    """
    Creates a fresh database for each test, then tears it down after the test is done.
    """
    Base.metadata.create_all(bind=test_engine)

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def repository(db_session):
    return SQLAlchemyRepository(db_session)


@pytest.fixture
def fake_http():
    return FakeHTTP()


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def transport(fake_http):
    return httpx.MockTransport(fake_http)


@pytest.fixture
def services(transport, fake_llm):
    return build_services(get_settings(), transport=transport, llm=fake_llm)


@pytest.fixture
def credential_store(repository, services):
    return CredentialStore(repository, services.providers)


@pytest.fixture
def client(db_session, services):
    """
    Create a FastAPI TestClient with the test database dependency and fake
    outbound services.
    """

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    original_services = app.state.services
    app.dependency_overrides[get_db] = override_get_db
    app.state.services = services

    client = TestClient(app, backend="asyncio")
    yield client

    app.dependency_overrides = {}
    app.state.services = original_services


@pytest.fixture
def test_user(repository):
    """The user the development auth strategy resolves every request to."""
    return repository.create_user("dev@local", provider="dev", role=UserRole.USER.value, display_name="Dev User")


@pytest.fixture
def other_user(repository):
    return repository.create_user("other@example.com", provider="google", role=UserRole.USER.value)


@pytest.fixture
def admin_user(repository):
    return repository.create_user("admin@example.com", provider="google", role=UserRole.ADMIN.value)


@pytest.fixture
def connect_tool(credential_store):
    """Store an active credential for ``(user, tool)``."""

    def _connect(user, tool, access_token="access-token", refresh_token="refresh-token", expires_in=3600, **kw):
        expires_at = utc_now_naive() + timedelta(seconds=expires_in) if expires_in is not None else None
        return credential_store.store(
            user.id,
            tool,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=expires_at,
            scopes=kw.pop("scopes", ["read", "write"]),
            metadata=kw.pop("metadata", {}),
        )

    return _connect
