# services/verification.py

"""
Signup verification decision.

Given the member ID and phone a user typed, decide whether the account is
auto-approved (exact registry match on an unclaimed slot), parked for admin
review, or refused because the registry slot is already held by a live
account. The only write performed here is the stale-lock reset done by
the LockArbiter; claiming the slot is the caller's job.
"""

from typing import Any, List, Optional, Sequence

from pydantic import BaseModel

from core.config import settings
from core.errors import DuplicateActiveAccount, InvalidInput, LockResetFailed
from core.logging_config import get_logger
from models.authorized_member import AuthorizationSlot
from models.enums import AccountStatus, LockState, MatchQuality, VerificationStatus
from services.identifiers import normalize_member_id, normalize_phone
from services.locks import LockArbiter
from services.matching import NO_MATCH, MatchClassifier, MatchResult
from services.registry import AuthorizedRegistryLookup

log = get_logger("verification")

REASON_PHONE_MISSING = "phone not provided"
REASON_NOT_IN_REGISTRY = "not in authorized registry"
REASON_VERIFICATION_ERROR = "verification error"

INVALID_PHONE_MESSAGE = (
    "Invalid phone number. Please enter a 10-digit phone number (or +91 / leading 0)."
)
ALREADY_REGISTERED_MESSAGE = (
    "This Member ID / phone number is already registered. Please login or contact admin."
)


class Decision(BaseModel):
    verified: bool
    account_status: AccountStatus
    verification_status: VerificationStatus
    reason: Optional[str] = None

    member_id: str = ""
    phone: str = ""

    # Slot to claim; only set when verified
    claimed_slot: Optional[AuthorizationSlot] = None
    # Slot that was consulted, whatever the outcome
    slot: Optional[AuthorizationSlot] = None
    match: MatchResult = NO_MATCH

    @classmethod
    def approve(cls, member_id: str, phone: str, slot: AuthorizationSlot, match: MatchResult):
        return cls(
            verified=True,
            account_status=AccountStatus.approved,
            verification_status=VerificationStatus.verified,
            member_id=member_id,
            phone=phone,
            claimed_slot=slot,
            slot=slot,
            match=match,
        )

    @classmethod
    def pending(
        cls,
        reason: str,
        member_id: str,
        phone: str,
        slot: Optional[AuthorizationSlot] = None,
        match: MatchResult = NO_MATCH,
    ):
        return cls(
            verified=False,
            account_status=AccountStatus.pending,
            verification_status=VerificationStatus.pending_admin,
            reason=reason,
            member_id=member_id,
            phone=phone,
            slot=slot,
            match=match,
        )


def mismatch_reason(match: MatchResult) -> str:
    """Reason text shown to admins for a PARTIAL / NONE registry match."""
    if match.quality == MatchQuality.partial:
        matched: List[str] = match.matched_fields
        return f"partial registry match: only {matched[0]} matched"
    return "registry record found but member_id and phone do not match"


class VerificationDecisionEngine:
    def __init__(
        self,
        registry: AuthorizedRegistryLookup,
        classifier: MatchClassifier,
        arbiter: LockArbiter,
        country_codes: Optional[Sequence[str]] = None,
    ):
        self.registry = registry
        self.classifier = classifier
        self.arbiter = arbiter
        self.country_codes = tuple(country_codes or settings.PHONE_COUNTRY_CODES)

    def normalize_signup_phone(self, raw: Any) -> str:
        phone = normalize_phone(raw, self.country_codes)
        if phone is None:
            raise InvalidInput(INVALID_PHONE_MESSAGE)
        return phone

    def decide(self, member_id: Any, phone: Any) -> Decision:
        canonical_id = normalize_member_id(member_id)
        canonical_phone = self.normalize_signup_phone(phone)

        # Phone is mandatory for auto-approval
        if not canonical_phone:
            log.info(f"Member {canonical_id!r}: no phone supplied, requires admin approval")
            return Decision.pending(REASON_PHONE_MISSING, canonical_id, canonical_phone)

        try:
            decision = self._decide(canonical_id, canonical_phone)
        except (InvalidInput, DuplicateActiveAccount):
            raise
        except Exception:
            # Fail closed: never approve on an unexpected error
            log.exception(f"Verification check failed for member {canonical_id!r}")
            return Decision.pending(REASON_VERIFICATION_ERROR, canonical_id, canonical_phone)

        log.info(
            f"Member {canonical_id!r}: verified={decision.verified} "
            f"match={decision.match.quality} reason={decision.reason!r}"
        )
        return decision

    def decide_after_lost_claim(self, decision: Decision) -> Decision:
        """
        Re-evaluate after a conditional claim failed: the slot is now held
        by someone else, so treat it as a live claim.
        """
        slot = decision.claimed_slot or decision.slot
        log.warning(f"Lost claim race on slot {slot.id if slot else None} for member {decision.member_id!r}")
        match = self.classifier.classify(decision.member_id, decision.phone, slot)
        return self._live_claim(decision.member_id, decision.phone, slot, match)

    # -----------------------------------------------------
    # internals
    # -----------------------------------------------------
    def _decide(self, member_id: str, phone: str) -> Decision:
        slot = self.registry.find(member_id, phone)
        if slot is None:
            return Decision.pending(REASON_NOT_IN_REGISTRY, member_id, phone)

        match = self.classifier.classify(member_id, phone, slot)

        if slot.used:
            try:
                state = self.arbiter.resolve_lock(slot)
            except LockResetFailed:
                # Claim could not be cleared; it still holds the slot
                return self._live_claim(member_id, phone, slot, match)

            if state == LockState.live_claim:
                return self._live_claim(member_id, phone, slot, match)

            match = self.classifier.classify(member_id, phone, slot)

        if match.quality == MatchQuality.exact:
            return Decision.approve(member_id, phone, slot, match)

        return Decision.pending(mismatch_reason(match), member_id, phone, slot, match)

    def _live_claim(
        self,
        member_id: str,
        phone: str,
        slot: Optional[AuthorizationSlot],
        match: MatchResult,
    ) -> Decision:
        if match.any_field:
            log.info(f"Slot {slot.id} already claimed by live account {slot.used_by}; blocking signup")
            raise DuplicateActiveAccount(ALREADY_REGISTERED_MESSAGE)

        # Slot reached through the phone fallback belongs to someone else
        return Decision.pending(mismatch_reason(match), member_id, phone, slot, match)
