"""Shared pytest fixtures for test suite"""
import os
import sys
from pathlib import Path
from typing import Callable, Generator
from unittest.mock import patch

import pytest

# Point the application at throwaway settings before anything imports it
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("PAYSTACK_SECRET_KEY", "sk_test_secret")
os.environ.setdefault("PAYSTACK_PLAN_PREMIUM", "PLN_premium")
os.environ.setdefault("PAYSTACK_PLAN_PRO", "PLN_pro")

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from paygate.main import app
from paygate.core.config import PaystackConfig, get_paystack_config
from paygate.db.session import get_db
from paygate.models import Base
from paygate.models.user import User
from paygate.services.webhook_signature import compute_signature


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

TEST_SECRET = "sk_test_secret"
PREMIUM_PLAN_CODE = "PLN_premium"
PRO_PLAN_CODE = "PLN_pro"


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
def paystack_config() -> PaystackConfig:
    """Paystack configuration with known secret and plan codes"""
    return PaystackConfig(
        webhook_secret=TEST_SECRET,
        premium_plan_code=PREMIUM_PLAN_CODE,
        pro_plan_code=PRO_PLAN_CODE,
        currency="GHS",
    )


@pytest.fixture(scope="function")
def client(db_session: Session, paystack_config: PaystackConfig) -> Generator[TestClient, None, None]:
    """FastAPI test client with test database and Paystack config"""

    # Override get_db dependency to use test database
    def override_get_db():
        try:
            yield db_session
        finally:
            pass  # Don't close session here, handled by fixture

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_paystack_config] = lambda: paystack_config

    try:
        with patch('paygate.main.initialize_otel', return_value=False):
            with patch('paygate.main.init_db'):
                with TestClient(app) as test_client:
                    yield test_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def test_user(db_session: Session) -> User:
    """A user who has already been seen by the system"""
    user = User(email="a@x.com")
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture(scope="function")
def sign() -> Callable[[bytes], str]:
    """Sign a raw body the way Paystack does"""
    def _sign(body: bytes, secret: str = TEST_SECRET) -> str:
        return compute_signature(body, secret)
    return _sign


@pytest.fixture(scope="function")
def charge_success_data() -> dict:
    """data object of a charge.success delivery for the premium plan"""
    return {
        "customer": {"email": "a@x.com"},
        "reference": "ref1",
        "plan": PREMIUM_PLAN_CODE,
        "amount": 4900,
        "currency": "GHS",
    }
