# tests/test_auth.py

"""
Tests for signup, login and current-user endpoints.
"""

from fastapi.testclient import TestClient
from unittest.mock import patch

from core.config import settings
from core.errors import AuthenticationFailed, StorageError

SLOTS = settings.AUTHORIZED_MEMBERS_TABLE
PHONE = "9876543210"


def signup(client: TestClient, **overrides):
    body = {
        "name": "Jane Doe",
        "email": "jane@example.com",
        "password": "password123",
        "memberId": "M-1",
        "phone": "+91 98765 43210",
    }
    body.update(overrides)
    return client.post("/auth/signup", json=body)


# ============================================================
# SIGNUP
# ============================================================
def test_signup_verified_member(client: TestClient, add_slot, storage, mock_credentials):
    register, sign_in = mock_credentials
    add_slot("row-1", member_id="M-1", phone_number=PHONE)

    response = signup(client)

    assert response.status_code == 201
    data = response.json()
    assert data["success"] is True
    assert data["token"] == "test-token"
    assert data["account"]["account_status"] == "approved"
    assert data["account"]["requires_admin_approval"] is False
    assert data["message"] == "Account created successfully!"

    account_id = data["account"]["id"]
    register.assert_called_once_with(
        "jane@example.com", "password123", account_id=account_id, auth_user_id=None
    )
    assert storage.get_by_key(settings.ACCOUNTS_TABLE, account_id)["auth_user_id"] == "auth-user-id"
    assert storage.get_by_key(SLOTS, "row-1")["used_by"] == account_id


def test_signup_unverified_member_is_pending(client: TestClient, mock_credentials):
    register, sign_in = mock_credentials

    response = signup(client, memberId=12345.0)

    assert response.status_code == 201
    data = response.json()
    assert data["token"] is None
    assert data["account"]["member_id"] == "12345"
    assert data["account"]["account_status"] == "pending"
    assert "pending admin approval" in data["message"]
    sign_in.assert_not_called()


def test_signup_invalid_phone(client: TestClient, mock_credentials):
    register, _ = mock_credentials

    response = signup(client, phone="12345")

    assert response.status_code == 400
    assert "Invalid phone number" in response.json()["detail"]
    register.assert_not_called()


def test_signup_missing_member_id(client: TestClient, mock_credentials):
    response = signup(client, memberId=None)

    assert response.status_code == 400
    assert "Member ID" in response.json()["detail"]


def test_signup_duplicate(client: TestClient, add_slot, mock_credentials):
    add_slot("row-1", member_id="M-1", phone_number=PHONE)
    assert signup(client).status_code == 201

    response = signup(client, email="someone-else@example.com")

    assert response.status_code == 409


def test_signup_reapply_keeps_auth_user(client: TestClient, lifecycle, mock_credentials):
    register, _ = mock_credentials
    first = signup(client, phone="").json()["account"]
    lifecycle.reject(first["id"], admin_id="admin-1", reason="Missing phone")

    response = signup(client, phone="")

    assert response.status_code == 201
    data = response.json()
    assert data["reapplied"] is True
    assert data["account"]["id"] == first["id"]
    assert data["account"]["rejection_reason"] is None
    assert register.call_args.kwargs["auth_user_id"] == "auth-user-id"


def test_signup_retry_after_credential_failure(client: TestClient, add_slot, storage, mock_credentials):
    register, _ = mock_credentials
    register.side_effect = [StorageError("auth down"), "auth-user-id"]
    add_slot("row-1", member_id="M-1", phone_number=PHONE)

    failed = signup(client)

    assert failed.status_code == 500
    assert storage.list_all(settings.ACCOUNTS_TABLE) == []
    assert storage.get_by_key(SLOTS, "row-1")["is_used"] is False

    response = signup(client)

    assert response.status_code == 201
    account = response.json()["account"]
    assert account["account_status"] == "approved"
    assert storage.get_by_key(SLOTS, "row-1")["used_by"] == account["id"]


# ============================================================
# LOGIN
# ============================================================
def test_login_success(client: TestClient, add_slot, mock_credentials):
    add_slot("row-1", member_id="M-1", phone_number=PHONE)
    signup(client)

    response = client.post(
        "/auth/login",
        json={"email": "Jane@Example.com", "password": "password123"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["access_token"] == "test-token"
    assert data["token_type"] == "bearer"
    assert data["account"]["email"] == "jane@example.com"


def test_login_invalid_credentials(client: TestClient, mock_credentials):
    _, sign_in = mock_credentials
    sign_in.side_effect = AuthenticationFailed()

    response = client.post(
        "/auth/login",
        json={"email": "test@example.com", "password": "wrongpassword"},
    )

    assert response.status_code == 401
    assert "Invalid email or password" in response.json()["detail"]


def test_login_pending_account(client: TestClient, mock_credentials):
    signup(client, phone="")

    response = client.post(
        "/auth/login",
        json={"email": "jane@example.com", "password": "password123"},
    )

    assert response.status_code == 403
    assert response.json()["detail"] == "Your account is pending admin approval."


def test_login_rejected_account(client: TestClient, lifecycle, mock_credentials):
    account = signup(client, phone="").json()["account"]
    lifecycle.reject(account["id"], admin_id="admin-1", reason="Not a member")

    response = client.post(
        "/auth/login",
        json={"email": "jane@example.com", "password": "password123"},
    )

    assert response.status_code == 403
    data = response.json()
    assert data["detail"] == "Your account has been rejected. Please contact admin."
    assert data["rejection_reason"] == "Not a member"


def test_login_without_account_row(client: TestClient, mock_credentials):
    response = client.post(
        "/auth/login",
        json={"email": "ghost@example.com", "password": "password123"},
    )

    assert response.status_code == 401


# ============================================================
# CURRENT USER
# ============================================================
def test_read_me(client: TestClient, add_slot, mock_credentials):
    add_slot("row-1", member_id="M-1", phone_number=PHONE)
    signup(client)

    with patch("dependencies.auth.resolve_token_email", return_value="jane@example.com"):
        response = client.get("/auth/me", headers={"Authorization": "Bearer test-token"})

    assert response.status_code == 200
    data = response.json()
    assert data["email"] == "jane@example.com"
    assert data["member_id"] == "M-1"
    assert data["role"] == "user"


def test_read_me_invalid_token(client: TestClient):
    with patch(
        "dependencies.auth.resolve_token_email",
        side_effect=AuthenticationFailed("Invalid or expired authentication token"),
    ):
        response = client.get("/auth/me", headers={"Authorization": "Bearer bad"})

    assert response.status_code == 401


def test_read_me_pending_account(client: TestClient, mock_credentials):
    signup(client, phone="")

    with patch("dependencies.auth.resolve_token_email", return_value="jane@example.com"):
        response = client.get("/auth/me", headers={"Authorization": "Bearer test-token"})

    assert response.status_code == 403
