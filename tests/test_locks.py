# tests/test_locks.py

"""
Tests for stale-claim detection and reset on registry slots.
"""

import pytest
from datetime import timedelta
from unittest.mock import Mock

from core.config import settings
from core.errors import LockResetFailed, StorageError
from core.storage import MemoryStorage
from models.authorized_member import AuthorizationSlot
from models.enums import LockState
from services.locks import LockArbiter

SLOTS = settings.AUTHORIZED_MEMBERS_TABLE
ACCOUNTS = settings.ACCOUNTS_TABLE


@pytest.fixture
def arbiter(storage, clock):
    return LockArbiter(
        storage,
        account_exists=lambda account_id: storage.exists(ACCOUNTS, account_id),
        clock=clock,
        grace_seconds=60,
    )


def load(storage, slot_id) -> AuthorizationSlot:
    return AuthorizationSlot.from_record(storage.get_by_key(SLOTS, slot_id))


def test_unused_slot(storage, arbiter, add_slot):
    add_slot("row-1", member_id="M-1", is_used=False)

    assert arbiter.resolve_lock(load(storage, "row-1")) == LockState.unused


def test_live_claim_when_claimant_exists(storage, arbiter, add_slot, add_account):
    add_account("acct-1")
    add_slot("row-1", member_id="M-1", is_used=True, used_by="acct-1")

    assert arbiter.resolve_lock(load(storage, "row-1")) == LockState.live_claim
    assert storage.get_by_key(SLOTS, "row-1")["is_used"] is True


def test_stale_claim_is_reset(storage, arbiter, add_slot, clock):
    old = (clock() - timedelta(days=3)).isoformat()
    add_slot("row-1", member_id="M-1", is_used=True, used_by="deleted-acct", used_at=old)
    slot = load(storage, "row-1")

    assert arbiter.resolve_lock(slot) == LockState.stale

    stored = storage.get_by_key(SLOTS, "row-1")
    assert stored["is_used"] is False
    assert stored["used_by"] is None
    assert stored["used_at"] is None
    assert slot.used is False
    assert slot.used_by is None


def test_used_without_claimant_is_stale(storage, arbiter, add_slot):
    add_slot("row-1", member_id="M-1", is_used=True)

    assert arbiter.resolve_lock(load(storage, "row-1")) == LockState.stale
    assert storage.get_by_key(SLOTS, "row-1")["is_used"] is False


def test_recent_dangling_claim_is_treated_as_live(storage, arbiter, add_slot, clock):
    add_slot("row-1", member_id="M-1", is_used=True, used_by="acct-in-flight", used_at=clock().isoformat())
    clock.advance(10)

    assert arbiter.resolve_lock(load(storage, "row-1")) == LockState.live_claim
    assert storage.get_by_key(SLOTS, "row-1")["used_by"] == "acct-in-flight"

    clock.advance(120)

    assert arbiter.resolve_lock(load(storage, "row-1")) == LockState.stale


def test_reset_is_idempotent(storage, arbiter, add_slot):
    add_slot("row-1", member_id="M-1", is_used=True, used_by="deleted-acct")

    assert arbiter.resolve_lock(load(storage, "row-1")) == LockState.stale
    assert arbiter.resolve_lock(load(storage, "row-1")) == LockState.unused


class ReclaimingStorage(MemoryStorage):
    """Another signup claims the slot between our read and our reset."""

    def conditional_update(self, collection, key, expected, patch):
        if expected.get("used_by") == "deleted-acct":
            super().update(collection, key, {"is_used": True, "used_by": "acct-new"})
        return super().conditional_update(collection, key, expected, patch)


def test_reset_loses_to_concurrent_claim(clock):
    storage = ReclaimingStorage()
    storage.create_or_replace(SLOTS, {"member_id": "M-1", "is_used": True, "used_by": "deleted-acct"}, key="row-1")
    arbiter = LockArbiter(storage, account_exists=lambda _id: False, clock=clock, grace_seconds=0)
    slot = load(storage, "row-1")

    assert arbiter.resolve_lock(slot) == LockState.live_claim
    assert slot.used_by == "acct-new"
    assert storage.get_by_key(SLOTS, "row-1")["used_by"] == "acct-new"


def test_reset_storage_failure(clock):
    storage = Mock()
    storage.conditional_update.side_effect = StorageError("timeout")
    arbiter = LockArbiter(storage, account_exists=lambda _id: False, table=SLOTS, clock=clock, grace_seconds=0)
    slot = AuthorizationSlot.from_record({"id": "row-1", "is_used": True, "used_by": "gone"})

    with pytest.raises(LockResetFailed):
        arbiter.resolve_lock(slot)


def test_stale_camel_case_row_is_reset_in_its_own_columns(arbiter, storage, add_slot):
    add_slot("row-1", memberId="M-1", isUsed=True, usedBy="deleted-acct")

    assert arbiter.resolve_lock(load(storage, "row-1")) == LockState.stale

    stored = storage.get_by_key(SLOTS, "row-1")
    assert stored["isUsed"] is False
    assert stored["usedBy"] is None
    assert "is_used" not in stored


def test_text_flags_are_parsed(arbiter, storage, add_slot):
    add_slot("row-1", member_id="M-1", is_used="false")
    add_slot("row-2", member_id="M-2", is_used="TRUE", used_by="deleted-acct")

    assert load(storage, "row-1").used is False
    assert arbiter.resolve_lock(load(storage, "row-1")) == LockState.unused

    assert arbiter.resolve_lock(load(storage, "row-2")) == LockState.stale
    assert storage.get_by_key(SLOTS, "row-2")["is_used"] is False
