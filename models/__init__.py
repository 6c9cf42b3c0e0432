# -------------------------
# Enums
# -------------------------
from .enums import (
    AccountRole,
    AccountStatus,
    LockState,
    MatchQuality,
    VerificationStatus,
)

# -------------------------
# Account Models
# -------------------------
from .account import (
    Account,
    AccountRead,
    LoginRequest,
    RejectRequest,
    SignupRequest,
    SignupResponse,
    TokenResponse,
)

# -------------------------
# Authorized member registry
# -------------------------
from .authorized_member import AuthorizationSlot
