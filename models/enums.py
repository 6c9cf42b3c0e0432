from enum import Enum


class BaseStrEnum(str, Enum):
    """
    Base enum that serializes cleanly to a string
    and provides a .list() method for UI dropdowns.
    """

    def __str__(self):
        return str(self.value)

    @classmethod
    def list(cls):
        return [item.value for item in cls]


# -----------------------------------------------------
# ACCOUNT STATUS
# -----------------------------------------------------
class AccountStatus(BaseStrEnum):
    """Lifecycle state of an account. Only approved accounts may log in."""

    pending = "pending"
    approved = "approved"
    rejected = "rejected"

    @property
    def reappliable(self) -> bool:
        return self in (AccountStatus.pending, AccountStatus.rejected)


# -----------------------------------------------------
# VERIFICATION STATUS
# -----------------------------------------------------
class VerificationStatus(BaseStrEnum):
    """How the account's identity was (or was not) established."""

    verified = "verified"
    pending_admin = "pending_admin"
    unverified = "unverified"


# -----------------------------------------------------
# ACCOUNT ROLE
# -----------------------------------------------------
class AccountRole(BaseStrEnum):
    user = "user"
    admin = "admin"


# -----------------------------------------------------
# REGISTRY MATCH QUALITY
# -----------------------------------------------------
class MatchQuality(BaseStrEnum):
    """Signup identifiers compared against one authorization slot."""

    exact = "exact"
    partial = "partial"
    none = "none"


# -----------------------------------------------------
# REGISTRY SLOT LOCK STATE
# -----------------------------------------------------
class LockState(BaseStrEnum):
    unused = "unused"
    live_claim = "live_claim"
    stale = "stale"
