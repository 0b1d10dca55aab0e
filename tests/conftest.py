"""Shared test configuration and fixtures."""
import os

# Required settings must exist before any patchouli module is imported.
os.environ.setdefault("GOOGLE_CLIENT_ID", "test-client-id")
os.environ.setdefault("GOOGLE_CLIENT_SECRET", "test-client-secret")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-with-enough-length-for-hs256")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("DISCORD_BOT_URL", "http://bot.test")

import pytest  # noqa: E402
from sqlalchemy import create_engine, event  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from patchouli.db.database import Base  # noqa: E402
import patchouli.db.models_auth  # noqa: E402,F401


# Create in-memory SQLite database for testing
engine = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


@event.listens_for(engine, "connect")
def _enable_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    """Override database dependency for testing."""
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def db_session():
    """Fresh schema and session per test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


# ===== Fakes for external collaborators =====

class FakeProvider:
    """Identity provider stand-in: maps authorization codes to profiles."""

    def __init__(self):
        self.profiles = {}

    def authorize_url(self, state):
        return f"https://provider.test/auth?state={state}"

    async def authenticate(self, code):
        from patchouli.services.exceptions import UpstreamAuthFailure
        if code not in self.profiles:
            raise UpstreamAuthFailure(f"unknown code {code}")
        return self.profiles[code]

    def add(self, code, email, external_id=None, name=None):
        from patchouli.services.oauth import Profile
        self.profiles[code] = Profile(
            id=external_id or f"g-{email}", email=email, name=name or email.split("@")[0].title()
        )


class FakeNotifier:
    """Records auth-complete notifications instead of sending them."""

    def __init__(self):
        self.sent = []

    async def send_auth_complete(self, auth_token, user_email):
        self.sent.append((auth_token, user_email))
        return True


class Gateway:
    """Test app wired to in-memory collaborators."""

    def __init__(self, issuer):
        from fastapi import FastAPI
        from fastapi.testclient import TestClient

        from patchouli.api.auth import router as auth_router
        from patchouli.api.content import router as content_router
        from patchouli.api.invites import router as invites_router
        from patchouli.api.users import router as users_router
        from patchouli.db.database import get_db
        from patchouli.services.correlation import CorrelationStore, get_correlation_store
        from patchouli.services.credentials import get_issuer
        from patchouli.services.notifier import get_notifier
        from patchouli.services.oauth import get_provider_client
        from patchouli.services.pending import PendingAuthRegistry, get_pending_registry

        self.issuer = issuer
        self.provider = FakeProvider()
        self.notifier = FakeNotifier()
        self.pending = PendingAuthRegistry()
        self.correlations = CorrelationStore()

        app = FastAPI()
        for router in (auth_router, users_router, invites_router, content_router):
            app.include_router(router)
        app.dependency_overrides[get_db] = override_get_db
        app.dependency_overrides[get_issuer] = lambda: self.issuer
        app.dependency_overrides[get_provider_client] = lambda: self.provider
        app.dependency_overrides[get_notifier] = lambda: self.notifier
        app.dependency_overrides[get_pending_registry] = lambda: self.pending
        app.dependency_overrides[get_correlation_store] = lambda: self.correlations
        self.app = app
        self.client = TestClient(app)

    def callback(self, code, register=False, invite=None, token=None):
        """Run /login then /callback for ``code`` without following redirects."""
        params = {"register": str(register).lower()}
        if invite:
            params["invite"] = invite
        if token:
            params["token"] = token
        login = self.client.get("/login", params=params, follow_redirects=False)
        state = login.headers["location"].split("state=", 1)[1]
        return self.client.get("/callback", params={"code": code, "state": state}, follow_redirects=False)

    def exchange(self, code, register=False, invite=None):
        """Open a login state, then POST /auth/tokens with the authorization_code grant."""
        from patchouli.services.correlation import Purpose
        purpose = Purpose.REGISTER if register else Purpose.LOGIN
        state = self.correlations.open(purpose, invite_code=invite)
        return self.client.post("/auth/tokens", json={
            "grant_type": "authorization_code", "code": code, "state": state,
        })

    def auth(self, token):
        return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def token_issuer():
    from patchouli.services.credentials import TokenIssuer
    return TokenIssuer(secret_key="test-secret-key-with-enough-length-for-hs256")


@pytest.fixture
def gateway(db_session, token_issuer):
    """Gateway issuing signed tokens."""
    return Gateway(token_issuer)


@pytest.fixture
def session_gateway(db_session):
    """Gateway issuing in-memory sessions."""
    from patchouli.services.credentials import SessionIssuer
    return Gateway(SessionIssuer())


class FakeClock:
    """Monotonic clock the test advances by hand."""

    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()
