# services/locks.py

"""
Stale-lock recovery for registry slots.

Administrators can delete accounts without touching the registry, which
leaves ``is_used`` set with a ``used_by`` that points nowhere. Such a slot
would never be claimable again, so the arbiter clears it on sight.

A claim is written before its account row, so a claimant that does not
exist yet is treated as live for CLAIM_GRACE_SECONDS after ``used_at``.
This also holds when an admin deletes the account inside that window: the
slot stays locked until the window passes.
"""

from datetime import timedelta
from typing import Callable, Optional

from core.config import settings
from core.errors import LockResetFailed, StorageError
from core.logging_config import get_logger
from core.storage import Storage
from core.utils import parse_timestamp, utcnow
from models.authorized_member import AuthorizationSlot
from models.enums import LockState

log = get_logger("locks")


class LockArbiter:
    def __init__(
        self,
        storage: Storage,
        account_exists: Callable[[str], bool],
        table: Optional[str] = None,
        clock: Callable = utcnow,
        grace_seconds: Optional[int] = None,
    ):
        self.storage = storage
        self.account_exists = account_exists
        self.table = table or settings.AUTHORIZED_MEMBERS_TABLE
        self.clock = clock
        self.grace = timedelta(
            seconds=settings.CLAIM_GRACE_SECONDS if grace_seconds is None else grace_seconds
        )

    def resolve_lock(self, slot: AuthorizationSlot) -> LockState:
        """
        UNUSED, LIVE_CLAIM, or STALE. A STALE slot has already been reset
        (in storage and on ``slot``) when this returns.
        """
        if not slot.used:
            return LockState.unused

        if slot.used_by and self.account_exists(slot.used_by):
            return LockState.live_claim

        if self._claim_in_flight(slot):
            log.info(f"Slot {slot.id} claimed by {slot.used_by} moments ago; treating as live")
            return LockState.live_claim

        log.warning(
            f"Slot {slot.id} marked used by missing account {slot.used_by!r}; resetting stale lock"
        )
        return self._reset(slot)

    def _claim_in_flight(self, slot: AuthorizationSlot) -> bool:
        # Claims are written before the account row exists
        if not slot.used_by or self.grace.total_seconds() <= 0:
            return False
        used_at = parse_timestamp(slot.used_at)
        if used_at is None:
            return False
        return self.clock() - used_at < self.grace

    def _reset(self, slot: AuthorizationSlot) -> LockState:
        try:
            if self.storage.conditional_update(
                self.table, slot.id, slot.held_guard(), slot.release_patch()
            ):
                slot.mark_unused()
                return LockState.stale

            # Someone else touched the slot between our read and the reset
            record = self.storage.get_by_key(self.table, slot.id)
        except StorageError as e:
            log.error(f"Failed to reset stale lock on slot {slot.id}: {e.message}")
            raise LockResetFailed(f"Could not reset slot {slot.id}") from e

        if record is None:
            raise LockResetFailed(f"Slot {slot.id} disappeared during reset")

        fresh = AuthorizationSlot.from_record(record)
        slot.refresh_claim(fresh)

        if fresh.used:
            log.info(f"Slot {slot.id} re-claimed by {fresh.used_by} during reset")
            return LockState.live_claim

        return LockState.stale
