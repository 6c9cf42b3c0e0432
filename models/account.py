# models/account.py

from typing import Any, Dict, Optional, Union
from datetime import datetime
from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field

from models.enums import AccountRole, AccountStatus, VerificationStatus


# ===============================================================
# STORED ACCOUNT (accounts table / collection)
# ===============================================================
class Account(BaseModel):
    """
    One registrant. Mutated in place on re-application and admin decisions;
    never hard-deleted by the verification services.
    """

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str = ""
    email: str = ""
    phone: Optional[str] = ""
    member_id: str = ""
    role: AccountRole = AccountRole.user

    account_status: AccountStatus = AccountStatus.pending
    verification_status: VerificationStatus = VerificationStatus.pending_admin
    requires_admin_approval: bool = True
    verification_reason: Optional[str] = None
    rejection_reason: Optional[str] = None

    claimed_slot_id: Optional[str] = None
    auth_user_id: Optional[str] = None

    reapplied_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Account":
        return cls.model_validate(record)


# ===============================================================
# API REQUEST BODIES
# ===============================================================
class SignupRequest(BaseModel):
    name: str = Field(min_length=1)
    email: EmailStr
    password: str = Field(min_length=6)

    # Either spelling; numbers are accepted and normalized
    member_id: Union[str, int, float, None] = Field(
        None, validation_alias=AliasChoices("member_id", "memberId")
    )
    phone: Union[str, int, float, None] = None


class LoginRequest(BaseModel):
    email: str
    password: str


class RejectRequest(BaseModel):
    reason: Optional[str] = None


# ===============================================================
# API RESPONSES
# ===============================================================
class AccountRead(BaseModel):
    """What the API returns for an account (no auth identifiers)."""

    id: str
    name: str
    email: str
    phone: Optional[str] = None
    member_id: str
    role: AccountRole
    account_status: AccountStatus
    verification_status: VerificationStatus
    requires_admin_approval: bool
    verification_reason: Optional[str] = None
    rejection_reason: Optional[str] = None
    reapplied_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_account(cls, account: Account) -> "AccountRead":
        return cls.model_validate(account.model_dump())


class SignupResponse(BaseModel):
    success: bool = True
    message: str
    reapplied: bool = False
    token: Optional[str] = None
    account: AccountRead


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    account: AccountRead
