# tests/test_verification.py

"""
Tests for the signup verification decision.
"""

import pytest
from datetime import timedelta
from unittest.mock import Mock

from core.config import settings
from core.errors import DuplicateActiveAccount, InvalidInput, LockResetFailed, RegistryLookupFailure
from models.enums import AccountStatus, MatchQuality, VerificationStatus
from services.verification import (
    REASON_NOT_IN_REGISTRY,
    REASON_PHONE_MISSING,
    REASON_VERIFICATION_ERROR,
    VerificationDecisionEngine,
)

SLOTS = settings.AUTHORIZED_MEMBERS_TABLE


@pytest.fixture
def engine(lifecycle):
    return lifecycle.engine


def test_exact_match_on_unused_slot_is_verified(engine, storage, add_slot):
    add_slot("row-1", member_id="M-1", phone_number="9876543210", is_used=False)

    decision = engine.decide("M-1", "+91 98765 43210")

    assert decision.verified
    assert decision.account_status == AccountStatus.approved
    assert decision.verification_status == VerificationStatus.verified
    assert decision.claimed_slot.id == "row-1"
    assert decision.phone == "9876543210"
    # Claiming is left to the lifecycle
    assert storage.get_by_key(SLOTS, "row-1")["is_used"] is False


def test_numeric_registry_cells_verify(engine, add_slot):
    add_slot("row-1", member_id=1234, phone_number=9876543210.0)

    decision = engine.decide("1234.0", "09876543210")

    assert decision.verified
    assert decision.member_id == "1234"


def test_partial_match_requires_admin(engine, add_slot):
    add_slot("row-1", member_id="M-1", phone_number="9876543210")

    decision = engine.decide("M-1", "1111111111")

    assert not decision.verified
    assert decision.account_status == AccountStatus.pending
    assert decision.verification_status == VerificationStatus.pending_admin
    assert decision.match.quality == MatchQuality.partial
    assert "member_id" in decision.reason
    assert decision.claimed_slot is None


def test_not_in_registry(engine):
    decision = engine.decide("M-404", "9876543210")

    assert decision.account_status == AccountStatus.pending
    assert decision.reason == REASON_NOT_IN_REGISTRY


def test_missing_phone_skips_registry():
    registry = Mock()
    engine = VerificationDecisionEngine(registry, Mock(), Mock(), country_codes=["91"])

    decision = engine.decide("M-1", "")

    assert decision.account_status == AccountStatus.pending
    assert decision.reason == REASON_PHONE_MISSING
    registry.find.assert_not_called()


def test_invalid_phone_is_rejected(engine):
    with pytest.raises(InvalidInput):
        engine.decide("M-1", "12345")


def test_live_claim_blocks_signup(engine, add_slot, add_account):
    add_account("acct-1", account_status="approved")
    add_slot("row-1", member_id="M-1", phone_number="9876543210", is_used=True, used_by="acct-1")

    with pytest.raises(DuplicateActiveAccount):
        engine.decide("M-1", "9876543210")

    # Same slot reached by phone alone
    with pytest.raises(DuplicateActiveAccount):
        engine.decide("M-77", "9876543210")


def test_live_claim_on_unrelated_slot_goes_to_admin(engine, add_slot, add_account):
    add_account("acct-1")
    # Keyed by the typed ID but describing someone else
    add_slot("M-1", member_id="X-9", phone_number="9876543210", is_used=True, used_by="acct-1")

    decision = engine.decide("M-1", "1111111111")

    assert decision.account_status == AccountStatus.pending
    assert decision.match.quality == MatchQuality.none


def test_stale_claim_is_recovered_and_verified(engine, storage, add_slot, clock):
    used_at = (clock() - timedelta(days=1)).isoformat()
    add_slot("row-1", member_id="M-1", phone_number="9876543210", is_used=True, used_by="deleted", used_at=used_at)

    decision = engine.decide("M-1", "9876543210")

    assert decision.verified
    assert decision.claimed_slot.used is False
    assert storage.get_by_key(SLOTS, "row-1")["is_used"] is False


def test_stale_claim_with_partial_match_stays_pending(engine, storage, add_slot):
    add_slot("row-1", member_id="M-1", phone_number="9876543210", is_used=True, used_by="deleted")

    decision = engine.decide("M-1", "1111111111")

    assert decision.account_status == AccountStatus.pending
    assert storage.get_by_key(SLOTS, "row-1")["is_used"] is False


def test_registry_failure_fails_closed():
    registry = Mock()
    registry.find.side_effect = RegistryLookupFailure("boom")
    engine = VerificationDecisionEngine(registry, Mock(), Mock(), country_codes=["91"])

    decision = engine.decide("M-1", "9876543210")

    assert not decision.verified
    assert decision.account_status == AccountStatus.pending
    assert decision.reason == REASON_VERIFICATION_ERROR


def test_lock_reset_failure_counts_as_live_claim(engine, add_slot):
    add_slot("row-1", member_id="M-1", phone_number="9876543210", is_used=True, used_by="deleted")
    engine.arbiter = Mock()
    engine.arbiter.resolve_lock.side_effect = LockResetFailed("stuck")

    with pytest.raises(DuplicateActiveAccount):
        engine.decide("M-1", "9876543210")

    # Reached through the primary key but describing someone else
    add_slot("M-2", member_id="X-9", phone_number="1111111111", is_used=True, used_by="deleted")
    decision = engine.decide("M-2", "2222222222")

    assert decision.account_status == AccountStatus.pending
    assert decision.match.quality == MatchQuality.none


def test_lost_claim_becomes_duplicate(engine, add_slot):
    add_slot("row-1", member_id="M-1", phone_number="9876543210")
    decision = engine.decide("M-1", "9876543210")

    with pytest.raises(DuplicateActiveAccount):
        engine.decide_after_lost_claim(decision)
