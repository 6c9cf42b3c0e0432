# core/auth_helpers.py

from typing import Optional

from core.errors import AuthenticationFailed, StorageError, extract_storage_error
from core.logging_config import logger
from core.supabase_client import get_supabase_client


# ============================================================
# Credentials live in Supabase Auth; accounts only keep the UID
# ============================================================
def _client():
    client = get_supabase_client()
    if not client:
        raise StorageError("Supabase client not configured")
    return client


# ============================================================
# 🔐 Register (or re-register) credentials for an account
# ============================================================
def register_credentials(
    email: str,
    password: str,
    account_id: str,
    auth_user_id: Optional[str] = None,
) -> str:
    """
    Creates the Supabase Auth user for a new account, or resets the
    password of the existing one on re-application.
    Returns the Supabase Auth UID.
    """
    client = _client()

    try:
        if auth_user_id:
            client.auth.admin.update_user_by_id(auth_user_id, {"password": password})
            logger.info(f"Auth credentials updated for account {account_id}")
            return auth_user_id

        resp = client.auth.admin.create_user(
            {
                "email": email,
                "password": password,
                "email_confirm": True,
                "user_metadata": {"account_id": account_id},
            }
        )
    except Exception as e:
        detail = extract_storage_error(e)
        logger.error(f"Auth user registration failed for {email}: {detail}")
        raise StorageError(f"Failed to register credentials: {detail}")

    if not resp or not resp.user:
        raise StorageError("Failed to register credentials: no user returned")

    logger.info(f"Auth user {resp.user.id} created for account {account_id}")
    return resp.user.id


# ============================================================
# 🔐 Password sign-in → access token
# ============================================================
def sign_in(email: str, password: str) -> str:
    client = _client()

    try:
        response = client.auth.sign_in_with_password(
            {"email": email, "password": password}
        )
    except Exception as e:
        # Don't expose details to the caller
        logger.warning(f"Login attempt failed for {email}: {type(e).__name__}")
        raise AuthenticationFailed()

    if not response.session or not response.session.access_token:
        raise AuthenticationFailed()

    return response.session.access_token


# ============================================================
# 🔐 Bearer token → e-mail of the Supabase Auth user
# ============================================================
def resolve_token_email(token: str) -> str:
    client = _client()

    try:
        auth_resp = client.auth.get_user(token)
    except Exception:
        raise AuthenticationFailed("Invalid or expired authentication token")

    if not auth_resp or not auth_resp.user or not auth_resp.user.email:
        raise AuthenticationFailed("Invalid or expired authentication token")

    return auth_resp.user.email
