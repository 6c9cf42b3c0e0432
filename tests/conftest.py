# tests/conftest.py

"""
Pytest configuration and shared fixtures for testing.
"""

import pytest
from datetime import datetime, timedelta, timezone
from fastapi.testclient import TestClient
from unittest.mock import patch
from typing import Generator

from core.config import settings
from core.storage import MemoryStorage
from dependencies.auth import CurrentUser, get_current_user
from dependencies.services import get_lifecycle
from main import create_app
from models.enums import AccountRole, AccountStatus
from services.lifecycle import build_lifecycle

ACCOUNTS = settings.ACCOUNTS_TABLE
SLOTS = settings.AUTHORIZED_MEMBERS_TABLE

ADMIN_EMAIL = "admin@example.com"


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def add_slot(storage):
    """Seed one authorized-member row as an import would have written it."""
    def _add(slot_id: str = None, **fields) -> dict:
        return storage.create_or_replace(SLOTS, fields, key=slot_id)
    return _add


@pytest.fixture
def add_account(storage):
    def _add(account_id: str, **fields) -> dict:
        record = {
            "name": "Existing Member",
            "email": f"{account_id}@example.com",
            "member_id": account_id,
            "phone": "",
            "account_status": AccountStatus.pending.value,
        }
        record.update(fields)
        return storage.create_or_replace(ACCOUNTS, record, key=account_id)
    return _add


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def lifecycle(storage, clock):
    return build_lifecycle(storage, admin_emails=[ADMIN_EMAIL], clock=clock)


@pytest.fixture(scope="function")
def app(lifecycle):
    """Create a test FastAPI application instance wired to the memory store."""
    app = create_app()
    app.dependency_overrides[get_lifecycle] = lambda: lifecycle
    return app


@pytest.fixture(scope="function")
def client(app) -> Generator[TestClient, None, None]:
    """Create a test client for the FastAPI application."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def mock_admin_user():
    """Create a mock admin user for testing."""
    return CurrentUser(
        id="admin-account-id",
        email=ADMIN_EMAIL,
        name="Admin",
        role=AccountRole.admin,
        member_id="ADMIN",
        account_status=AccountStatus.approved,
    )


@pytest.fixture
def mock_member_user():
    """Create a mock non-admin user for testing."""
    return CurrentUser(
        id="member-account-id",
        email="member@example.com",
        name="Member",
        role=AccountRole.user,
        member_id="M-1",
        account_status=AccountStatus.approved,
    )


@pytest.fixture
def admin_client(app, mock_admin_user) -> Generator[TestClient, None, None]:
    app.dependency_overrides[get_current_user] = lambda: mock_admin_user
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def mock_credentials():
    """Patch the Supabase Auth helpers used by the auth router."""
    with patch("routers.auth.register_credentials") as register, patch(
        "routers.auth.sign_in"
    ) as sign_in:
        register.return_value = "auth-user-id"
        sign_in.return_value = "test-token"
        yield register, sign_in


@pytest.fixture(autouse=True)
def no_email():
    """Never talk to SMTP from tests."""
    with patch("core.notifications.send_email", return_value=False) as send:
        yield send
