# core/errors.py

from typing import Optional


# ============================================================
# Domain errors (raised by services, mapped to HTTP in main.py)
# ============================================================
class MembershipError(Exception):
    """Base class for membership / verification errors."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidInput(MembershipError):
    """Malformed phone, missing required field. Never retried."""

    status_code = 400


class DuplicateActiveAccount(MembershipError):
    """E-mail / member ID held by an approved account, or a live registry claim."""

    status_code = 409


class AccountNotFound(MembershipError):
    status_code = 404


class InvalidTransition(MembershipError):
    """Lifecycle transition not allowed from the account's current status."""

    status_code = 400


class AuthenticationFailed(MembershipError):
    """Bad e-mail / password, or an invalid bearer token."""

    status_code = 401

    def __init__(self, message: str = "Invalid email or password"):
        super().__init__(message)


class LoginRefused(MembershipError):
    status_code = 403


class AccountPendingApproval(LoginRefused):
    def __init__(self, message: str = "Your account is pending admin approval."):
        super().__init__(message)


class AccountRejected(LoginRefused):
    def __init__(
        self,
        message: str = "Your account has been rejected. Please contact admin.",
        rejection_reason: Optional[str] = None,
    ):
        super().__init__(message)
        self.rejection_reason = rejection_reason


class StorageError(MembershipError):
    """The storage collaborator failed (network, PostgREST, bad response)."""


class RegistryLookupFailure(StorageError):
    pass


class LockResetFailed(MembershipError):
    """A stale registry claim could not be cleared."""


# ============================================================
# Storage error text extraction
# ============================================================
def extract_storage_error(error: Exception) -> str:
    """
    Safely extract readable details from Supabase Python client errors.
    Handles:
      • PostgREST errors (APIError carries .message)
      • GoTrue (Auth) errors
      • Generic Python exceptions
    """

    if hasattr(error, "message"):
        try:
            return str(error.message)
        except Exception:
            pass

    if hasattr(error, "args") and error.args:
        try:
            return str(error.args[0])
        except Exception:
            pass

    try:
        return str(error)
    except Exception:
        return "Unknown storage error"
