"""
Pytest configuration and fixtures for testing.

This file provides reusable test fixtures for:
- Database setup/teardown
- A controllable clock for expiry tests
- A fake email channel and the verification flow built on it
- FastAPI test client with overridden dependencies
"""

import os

# Keep the app away from real infrastructure before settings are loaded
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REDIS_URL"] = ""
os.environ["RESEND_API_KEY"] = ""
os.environ["ENVIRONMENT"] = "development"

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.database import Base, get_db
from app.core.deps import get_verification_flow
from app.core.identity import IdentityResolver
from app.core.sessions import SessionManager
from app.core.verification import VerificationFlow
from app.core.verification_store import VerificationStore
from app.services.email_service import Notifier
from main import app


# Use in-memory SQLite for testing (fast, isolated)
SQLALCHEMY_TEST_DATABASE_URL = "sqlite://"

engine = create_engine(
    SQLALCHEMY_TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start=None):
        self.now = start or datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class FakeEmailService:
    """Stands in for EmailService; records what would have been sent."""

    def __init__(self, configured=False, succeed=True):
        self.configured = configured
        self.succeed = succeed
        self.sent = []

    @property
    def is_configured(self):
        return self.configured

    def send_verification_email(self, to_email, verification_code):
        if not self.configured:
            return False
        self.sent.append({"to": to_email, "code": verification_code})
        return self.succeed


@pytest.fixture
def db_session():
    """
    Create a fresh database session for each test.
    Tables are dropped after the test completes.
    """
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    """In-process verification store driven by the fake clock"""
    return VerificationStore(redis_client=None, clock=clock)


@pytest.fixture
def email_service():
    """Unconfigured email channel (development default)"""
    return FakeEmailService(configured=False)


@pytest.fixture
def notifier(email_service):
    return Notifier(email_service, allow_disclosure=True)


@pytest.fixture
def flow(store, notifier, clock):
    return VerificationFlow(
        store=store,
        notifier=notifier,
        identities=IdentityResolver(clock=clock),
        sessions=SessionManager(expire_days=30, clock=clock),
        email_domain="@essex.ac.uk",
        code_ttl_minutes=10,
        max_attempts=5,
    )


@pytest.fixture
def client(db_session, flow):
    """
    FastAPI test client with overridden database and flow dependencies.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_verification_flow] = lambda: flow

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
