# routers/auth.py

from fastapi import APIRouter, Depends

from core.auth_helpers import register_credentials, sign_in
from core.errors import AuthenticationFailed, StorageError
from core.logging_config import logger
from core.notifications import notify_signup
from dependencies.auth import CurrentUser, get_current_user
from dependencies.services import get_lifecycle
from models.account import (
    AccountRead,
    LoginRequest,
    SignupRequest,
    SignupResponse,
    TokenResponse,
)
from services.lifecycle import AccountLifecycle


router = APIRouter(
    prefix="/auth",
    tags=["Auth"],
)


# ============================================================
# SIGNUP (registry verification + Supabase credentials)
# ============================================================
@router.post(
    "/signup",
    response_model=SignupResponse,
    status_code=201,
    summary="Register with member ID and phone",
)
def signup(
    payload: SignupRequest,
    lifecycle: AccountLifecycle = Depends(get_lifecycle),
):
    # Credentials are part of the signup: a failure rolls the account back
    def register(account):
        return register_credentials(
            account.email,
            payload.password,
            account_id=account.id,
            auth_user_id=account.auth_user_id,
        )

    result = lifecycle.signup(
        name=payload.name,
        email=payload.email,
        member_id=payload.member_id,
        phone=payload.phone,
        register=register,
    )
    account = result.account

    # Token only for accounts that can log in right away
    token = None
    if not result.requires_admin_approval:
        try:
            token = sign_in(account.email, payload.password)
        except (AuthenticationFailed, StorageError) as e:
            logger.warning(f"Post-signup sign-in failed for {account.email}: {e.message}")

    notify_signup(account)

    if result.requires_admin_approval:
        message = "Account created successfully. Your account is pending admin approval."
        if result.reapplied:
            message = "Application resubmitted. Your account is pending admin approval."
    else:
        message = "Account created successfully!"

    return SignupResponse(
        message=message,
        reapplied=result.reapplied,
        token=token,
        account=AccountRead.from_account(account),
    )


# ============================================================
# LOGIN (SUPABASE AUTH + approval gate)
# ============================================================
@router.post("/login", response_model=TokenResponse, summary="Authenticate user")
def login(
    payload: LoginRequest,
    lifecycle: AccountLifecycle = Depends(get_lifecycle),
):
    email = payload.email.strip().lower()

    access_token = sign_in(email, payload.password)

    account = lifecycle.find_by_email(email)
    if account is None:
        logger.warning(f"Auth user {email} has no account row")
        raise AuthenticationFailed()

    lifecycle.ensure_can_login(account)

    logger.info(f"Login: account={account.id}")
    return TokenResponse(
        access_token=access_token,
        account=AccountRead.from_account(account),
    )


# ============================================================
# CURRENT USER
# ============================================================
@router.get("/me", response_model=CurrentUser, summary="Current authenticated user")
def read_me(current_user: CurrentUser = Depends(get_current_user)):
    return current_user
