"""Shared pytest fixtures for test suite"""
import os
import sys
from pathlib import Path
from typing import Generator
from unittest.mock import MagicMock, patch

# Settings are read at import time, so the test environment goes first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "development"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test"
os.environ["ADMIN_API_KEY"] = "test-admin-key"
os.environ["SUPABASE_URL"] = "https://project.supabase.test"
os.environ["OTEL_EXPORTER_OTLP_ENDPOINT"] = ""

import pytest
import fakeredis
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

from app.main import app
from app.core.security import require_auth, get_optional_user
from app.db.session import get_db
from app.db import redis as redis_module
from app.models import Base
from app.models.enums import SubscriptionTier
from app.models.subscription import UserSubscription
from app.models.token_usage import TokenUsage
from app.schemas.auth import AuthUser
from app.services.token_service import first_of_next_month


# SQLite in-memory database for testing
TEST_DATABASE_URL = "sqlite:///:memory:"

# Create test engine with StaticPool for in-memory database
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

# Create test session factory
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

TEST_USER_ID = "user-uuid-1"
OTHER_USER_ID = "user-uuid-2"


class StripeSignatureError(Exception):
    """Stands in for stripe.SignatureVerificationError on the mocked module"""


class StripeAPIError(Exception):
    """Stands in for stripe.StripeError on the mocked module"""


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh SQLite in-memory database session for each test"""
    Base.metadata.create_all(bind=test_engine)
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function")
def mock_redis():
    """Mock Redis client using fakeredis"""
    fake_redis = fakeredis.FakeStrictRedis(decode_responses=True)
    with patch.object(redis_module, '_client', fake_redis):
        yield fake_redis


@pytest.fixture(scope="function", autouse=True)
def mock_stripe():
    """The Stripe SDK is never reached from tests"""
    with patch('app.services.stripe_service.stripe') as stripe_mock:
        stripe_mock.SignatureVerificationError = StripeSignatureError
        stripe_mock.StripeError = StripeAPIError
        yield stripe_mock


@pytest.fixture(scope="function")
def test_user() -> AuthUser:
    return AuthUser(id=TEST_USER_ID, email="writer@example.com")


@pytest.fixture(scope="function")
def client(db_session: Session, mock_redis) -> Generator[TestClient, None, None]:
    """FastAPI test client with test database and mocked Redis"""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass  # Closed by the db_session fixture

    app.dependency_overrides[get_db] = override_get_db

    try:
        with patch('app.main.init_db'):
            with patch('app.core.otel.instrument_sqlalchemy'):
                with TestClient(app) as test_client:
                    yield test_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def authenticated_client(client: TestClient, test_user: AuthUser) -> TestClient:
    """Client whose requests resolve to test_user without calling the auth provider"""
    app.dependency_overrides[require_auth] = lambda: test_user
    app.dependency_overrides[get_optional_user] = lambda: test_user
    return client


def make_subscription(
    db: Session,
    user_id: str = TEST_USER_ID,
    tier: SubscriptionTier = SubscriptionTier.FREE,
    is_active: bool = True,
    **fields
) -> UserSubscription:
    record = UserSubscription(
        user_id=user_id,
        subscription_tier=tier.value,
        is_active=is_active,
        **fields
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def make_balance(db: Session, user_id: str = TEST_USER_ID, remaining: int = 50, used: int = 0, reset_date=None) -> TokenUsage:
    usage = TokenUsage(
        user_id=user_id,
        tokens_remaining=remaining,
        tokens_used=used,
        reset_date=reset_date or first_of_next_month()
    )
    db.add(usage)
    db.commit()
    db.refresh(usage)
    return usage


@pytest.fixture(scope="function")
def pro_user(db_session: Session, test_user: AuthUser) -> AuthUser:
    """test_user on an active PRO plan with 100 tokens"""
    make_subscription(
        db_session, tier=SubscriptionTier.PRO,
        stripe_customer_id="cus_test123", stripe_subscription_id="sub_test123"
    )
    make_balance(db_session, remaining=100)
    return test_user


@pytest.fixture(scope="function")
def anthropic_client():
    """Mocked text model client returning one text block"""
    client_mock = MagicMock()
    with patch('app.services.generation_service.get_anthropic_client', return_value=client_mock):
        yield client_mock
