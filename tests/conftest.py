"""Test configuration and fixtures."""

import os
from decimal import Decimal
from typing import Any

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DISABLE_TRACING", "1")

from core.settings import Settings  # noqa: E402
from db.models import Base  # noqa: E402
from main import app  # noqa: E402


class MockResponse:
    """Stand-in for requests.Response with an explicit integer status code."""

    def __init__(self, status_code, json_data=None, text="", invalid_json=False):
        self.status_code = status_code
        self._json_data = json_data if json_data is not None else {}
        self._invalid_json = invalid_json
        self.text = text

    def json(self):
        if self._invalid_json:
            raise ValueError("No JSON object could be decoded")
        return self._json_data


class FakeBilling:
    """In-memory billing record satisfying payments.base.BillingRecord."""

    def __init__(
        self,
        identifier: str = "ORD-1",
        amount: Any = Decimal("25.00"),
        payload: dict | None = None,
        fail_save: bool = False,
        currency: str = "USD",
    ):
        self.identifier = identifier
        self.currency = currency
        self.refreshes = 0
        self._amount = amount
        self.payload = dict(payload or {})
        self.fail_save = fail_save
        self.saves: list[dict] = []

    def get_identifier(self):
        return self.identifier

    def amount(self):
        return self._amount

    def get_payload(self, key, default=None):
        return self.payload.get(key, default)

    def set_payload(self, key, value):
        self.payload[key] = value
        return self

    def forget_payload(self, key):
        self.payload.pop(key, None)
        return self

    def save(self):
        if self.fail_save:
            raise RuntimeError("database unavailable")
        self.saves.append(dict(self.payload))

    def refresh(self):
        self.refreshes += 1
        return self


class StaticTokenProvider:
    def __init__(self, token="test_token"):
        self.value = token
        self.calls = 0

    def token(self):
        self.calls += 1
        return self.value


def capture_response(capture_id="CAP-1"):
    return {
        "id": "EC-1",
        "status": "COMPLETED",
        "purchase_units": [
            {
                "reference_id": "ORD-1",
                "payments": {"captures": [{"id": capture_id, "status": "COMPLETED"}]},
            }
        ],
    }


@pytest.fixture(autouse=True)
def setup_test_environment():
    """Setup test environment variables before each test."""
    original_env = dict(os.environ)

    os.environ.update(
        {
            "DATABASE_URL": "sqlite:///:memory:",
            "PAYPAL_CLIENT_ID": "test_client_id",
            "PAYPAL_SECRET": "test_secret",
            "PAYPAL_SANDBOX": "true",
            "PAYPAL_TOKEN_CACHE": "false",
            "PAYPAL_IDEMPOTENCY": "false",
            "PAYMENT_RETRY_ATTEMPTS": "1",
            "APP_NAME": "Test Billing Gateways",
            "ENVIRONMENT": "test",
            "DISABLE_TRACING": "1",
            "DEBUG": "true",
        }
    )

    yield

    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture(autouse=True)
def reset_gateway_state():
    from core.dependencies import clear_settings
    from payments.registry import clear_token_caches

    clear_token_caches()
    clear_settings()
    yield
    clear_token_caches()
    clear_settings()


@pytest.fixture
def mock_settings():
    return Settings(
        DATABASE_URL="sqlite:///:memory:",
        PAYPAL_CLIENT_ID="test_client_id",
        PAYPAL_SECRET="test_secret",
        PAYPAL_SANDBOX=True,
        PAYPAL_TOKEN_CACHE=True,
        PAYPAL_IDEMPOTENCY=False,
        APP_NAME="Test Billing Gateways",
        DEBUG=True,
        ENVIRONMENT="test",
    )


@pytest.fixture
def billing():
    return FakeBilling()


@pytest.fixture
def token_provider():
    return StaticTokenProvider()


@pytest.fixture
def test_db_engine():
    """Create a test database engine and setup tables."""
    engine = create_engine(
        "sqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def test_db_session(test_db_engine):
    """Create test database session using the shared engine."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_db_engine)
    session = SessionLocal()

    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(test_db_engine):
    """Test client with the database dependency bound to the test engine."""
    from db.session import get_db, reset_engines

    reset_engines()

    TestingSessionLocal = sessionmaker(
        autocommit=False, autoflush=False, bind=test_db_engine
    )

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    reset_engines()


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (HTTP API + database)"
    )
    config.addinivalue_line("markers", "unit: marks tests as unit tests")
