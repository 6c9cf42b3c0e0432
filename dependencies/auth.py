# dependencies/auth.py

from typing import List, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel

from core.auth_helpers import resolve_token_email
from core.errors import AuthenticationFailed
from dependencies.services import get_lifecycle
from models.account import Account
from models.enums import AccountRole, AccountStatus
from services.lifecycle import AccountLifecycle


bearer_scheme = HTTPBearer()


# ============================================================
# Current User Model (account behind the bearer token)
# ============================================================
class CurrentUser(BaseModel):
    id: str                         # account id
    auth_user_id: Optional[str] = None
    email: str
    name: str
    role: AccountRole
    member_id: str
    phone: Optional[str] = None
    account_status: AccountStatus

    @classmethod
    def from_account(cls, account: Account) -> "CurrentUser":
        return cls(
            id=account.id,
            auth_user_id=account.auth_user_id,
            email=account.email,
            name=account.name,
            role=account.role,
            member_id=account.member_id,
            phone=account.phone,
            account_status=account.account_status,
        )


# ============================================================
# AUTH DECODING (Supabase validates the JWT, accounts table holds the rest)
# ============================================================
def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    lifecycle: AccountLifecycle = Depends(get_lifecycle),
) -> CurrentUser:

    unauthorized = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired authentication token",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        email = resolve_token_email(credentials.credentials)
    except AuthenticationFailed:
        raise unauthorized

    account = lifecycle.find_by_email(email)
    if account is None:
        raise unauthorized

    # Pending / rejected accounts keep their token useless
    lifecycle.ensure_can_login(account)

    return CurrentUser.from_account(account)


# ============================================================
# ROLE CHECKER (basic role list guard)
# ============================================================
def requires_role(allowed_roles: List[str]):
    def checker(current_user: CurrentUser = Depends(get_current_user)):
        if current_user.role not in allowed_roles:
            raise HTTPException(
                status_code=403,
                detail="Admin privileges required for this action.",
            )
        return current_user
    return checker
