"""
BankDash - Test Configuration

Pytest fixtures for authentication testing.
Provides a frozen clock, an app on in-memory SQLite, a test client and
account factories.
"""

import pytest
from datetime import datetime, timedelta
from typing import Generator, Optional

from fastapi.testclient import TestClient

from backend.app import create_app
from backend.config import Settings
from backend.auth.accounts import AccountRepository
from backend.auth.database import get_engine, init_db, get_session_factory
from backend.auth.models import Account, AccountStatus, Role, utcnow
from backend.auth.password import hash_password


# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite:///:memory:"
TEST_WORK_FACTOR = 4
DEFAULT_PASSWORD = "Sup3r$ecret"


class FrozenClock:
    """Naive-UTC clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def make_settings(**overrides) -> Settings:
    values = dict(
        SECRET_KEY="test-signing-key-with-enough-entropy-0123456789",
        DATABASE_URL=TEST_DATABASE_URL,
        BCRYPT_WORK_FACTOR=TEST_WORK_FACTOR,
        EXTERNAL_AUTH_ENABLED=False,
        EXTERNAL_AUTH_CLIENT_ID="",
        EXTERNAL_AUTH_API_KEY="",
        LOG_LEVEL="WARNING",
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture(scope="function")
def clock() -> FrozenClock:
    """Starts a minute ahead of real time, on a whole second."""
    return FrozenClock((utcnow() + timedelta(minutes=1)).replace(microsecond=0))


@pytest.fixture(scope="function")
def test_settings() -> Settings:
    return make_settings()


@pytest.fixture(scope="function")
def client(test_settings, clock) -> Generator[TestClient, None, None]:
    """Create a test client with a fresh database."""
    app = create_app(test_settings, clock=clock)
    with TestClient(app) as c:
        yield c


@pytest.fixture(scope="function")
def service(client):
    return client.app.state.auth_service


@pytest.fixture(scope="function")
def repository(clock) -> Generator[AccountRepository, None, None]:
    """Standalone repository for unit tests that do not need the app."""
    engine = get_engine(TEST_DATABASE_URL)
    init_db(engine)
    yield AccountRepository(get_session_factory(engine))
    engine.dispose()


def create_account(
    repository: AccountRepository,
    created_at: datetime,
    email: str = "customer@test.com",
    password: str = DEFAULT_PASSWORD,
    role: Role = Role.USER,
    status: AccountStatus = AccountStatus.ACTIVE,
    work_factor: int = TEST_WORK_FACTOR,
) -> Account:
    return repository.create(
        email=email,
        password_hash=hash_password(password, work_factor),
        first_name="Test",
        last_name="Customer",
        role=role,
        account_status=status,
        is_verified=status == AccountStatus.ACTIVE,
        created_at=created_at,
    )


@pytest.fixture(scope="function")
def make_account(service, clock):
    """Factory creating accounts in the app's database."""
    def _make(**kwargs) -> Account:
        return create_account(service.repository, clock(), **kwargs)
    return _make


@pytest.fixture(scope="function")
def active_account(make_account) -> Account:
    return make_account()


def login_user(
    client: TestClient,
    email: str = "customer@test.com",
    password: str = DEFAULT_PASSWORD,
    remember_me: bool = False,
) -> Optional[dict]:
    """Helper function to login and return the response body."""
    response = client.post(
        "/api/v1/auth/login",
        json={"email": email, "password": password, "remember_me": remember_me},
    )
    return response.json() if response.status_code == 200 else None


def auth_headers(access_token: str) -> dict:
    """Create authorization headers for authenticated requests."""
    return {"Authorization": f"Bearer {access_token}"}
