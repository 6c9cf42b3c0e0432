# services/lifecycle.py

"""
Account lifecycle: signup (and re-application), admin approval and
rejection, and the login gate.

    pending  --admin approve-->        approved
    pending  --admin reject(reason)--> rejected
    pending / rejected --re-signup-->  pending | approved

Registry slots are claimed with a conditional update *before* the account
row is written, so a failed account write leaves at most a dangling claim
that the LockArbiter recovers later.
"""

import uuid
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from pydantic import BaseModel

from core.config import settings
from core.errors import (
    AccountNotFound,
    AccountPendingApproval,
    AccountRejected,
    DuplicateActiveAccount,
    InvalidInput,
    InvalidTransition,
    LockResetFailed,
    RegistryLookupFailure,
    StorageError,
)
from core.logging_config import get_logger
from core.storage import Storage
from core.utils import utcnow
from models.account import Account
from models.authorized_member import AuthorizationSlot
from models.enums import AccountRole, AccountStatus, LockState, VerificationStatus
from services.identifiers import normalize_email, normalize_member_id
from services.locks import LockArbiter
from services.matching import MatchClassifier
from services.registry import AuthorizedRegistryLookup
from services.verification import (
    REASON_VERIFICATION_ERROR,
    Decision,
    VerificationDecisionEngine,
)

log = get_logger("lifecycle")

REGISTRY_CLAIMANT = "registry"
ADMIN_ALLOWLIST_REASON = "admin allowlist"
REASON_CREDENTIALS_FAILED = "credential registration failed"


class SignupResult(BaseModel):
    account: Account
    decision: Decision
    reapplied: bool = False

    @property
    def requires_admin_approval(self) -> bool:
        return self.account.account_status != AccountStatus.approved


class AccountLifecycle:
    def __init__(
        self,
        storage: Storage,
        engine: VerificationDecisionEngine,
        admin_emails: Iterable[str] = (),
        clock: Callable[[], datetime] = utcnow,
        accounts_table: Optional[str] = None,
    ):
        self.storage = storage
        self.engine = engine
        self.admin_emails = frozenset(e.strip().lower() for e in admin_emails if e and e.strip())
        self.clock = clock
        self.accounts_table = accounts_table or settings.ACCOUNTS_TABLE

    @property
    def registry(self) -> AuthorizedRegistryLookup:
        return self.engine.registry

    # ============================================================
    # Reads
    # ============================================================
    def get_account(self, account_id: str) -> Account:
        record = self.storage.get_by_key(self.accounts_table, account_id)
        if not record:
            raise AccountNotFound("User not found")
        return Account.from_record(record)

    def account_exists(self, account_id: str) -> bool:
        return self.storage.exists(self.accounts_table, account_id)

    def find_by_email(self, email: str) -> Optional[Account]:
        email = normalize_email(email)
        if not email:
            return None
        record = self.storage.find_one_by_field(self.accounts_table, "email", email)
        return Account.from_record(record) if record else None

    def find_by_member_id(self, member_id: Any) -> Optional[Account]:
        member_id = normalize_member_id(member_id)
        if not member_id:
            return None
        record = self.storage.find_one_by_field(self.accounts_table, "member_id", member_id)
        return Account.from_record(record) if record else None

    def list_by_status(self, status: AccountStatus) -> List[Account]:
        records = self.storage.find_by_field(self.accounts_table, "account_status", status.value)
        accounts = [Account.from_record(r) for r in records]
        accounts.sort(key=lambda a: a.created_at.timestamp() if a.created_at else 0, reverse=True)
        return accounts

    def count_by_status(self, status: AccountStatus) -> int:
        return len(self.storage.find_by_field(self.accounts_table, "account_status", status.value))

    def registry_match(self, account: Account) -> Dict[str, Any]:
        """Read-only comparison of an account with its registry row, for review screens."""
        try:
            slot = self.registry.find(account.member_id, account.phone or "")
        except RegistryLookupFailure as e:
            log.warning(f"Registry lookup failed for review of {account.id}: {e.message}")
            return {"match_status": "lookup_failed", "matched_fields": [], "match_details": {}}

        if slot is None:
            return {"match_status": "not_found", "matched_fields": [], "match_details": {}}

        match = self.engine.classifier.classify(account.member_id, account.phone or "", slot)
        return {
            "match_status": match.quality.value,
            "matched_fields": match.matched_fields,
            "match_details": {
                **slot.summary(),
                "is_used": slot.used,
                "used_by": slot.used_by,
            },
        }

    # ============================================================
    # Signup / re-application
    # ============================================================
    def signup(
        self,
        name: str,
        email: str,
        member_id: Any,
        phone: Any = None,
        register: Optional[Callable[[Account], str]] = None,
    ) -> SignupResult:
        """
        Verify, claim and write the account. ``register`` creates the login
        credentials for the written account and returns the auth user id;
        if it raises, the signup is rolled back and the error propagates.
        """
        name = (name or "").strip()
        email = normalize_email(email)
        canonical_id = normalize_member_id(member_id)

        if not name or not email or not canonical_id:
            raise InvalidInput("Please provide name, email, password, and Member ID")

        log.info(f"Signup attempt: email={email} member_id={canonical_id!r}")

        target = self._reapply_target(email, canonical_id)
        account_id = target.id if target else str(uuid.uuid4())
        is_admin = email in self.admin_emails

        if is_admin:
            decision = self._admin_decision(canonical_id, phone)
        else:
            decision = self.engine.decide(canonical_id, phone)

        if decision.claimed_slot is not None:
            decision = self._claim_slot(decision, account_id)

        record = self._signup_record(name, email, decision, is_admin)

        try:
            if target:
                account = self._reapply(target, record)
            else:
                account = self._create(account_id, record)
        except Exception:
            if decision.claimed_slot is not None:
                self._release_claim(decision.claimed_slot, account_id)
            raise

        if register is not None:
            try:
                auth_user_id = register(account)
            except Exception:
                log.exception(f"Credential registration failed for account {account.id}")
                self._roll_back_signup(account, decision, reapplied=target is not None)
                raise
            if auth_user_id and auth_user_id != account.auth_user_id:
                account = self.attach_auth_user(account.id, auth_user_id)

        log.info(
            f"Signup {'re-applied' if target else 'created'}: account={account.id} "
            f"status={account.account_status} reason={decision.reason!r}"
        )
        return SignupResult(account=account, decision=decision, reapplied=target is not None)

    def _reapply_target(self, email: str, member_id: str) -> Optional[Account]:
        by_member_id = self.find_by_member_id(member_id)
        by_email = self.find_by_email(email)

        if by_member_id and not by_member_id.account_status.reappliable:
            log.info(f"Member ID {member_id!r} already held by approved account {by_member_id.id}")
            raise DuplicateActiveAccount("Member ID already exists. Please use a different Member ID.")

        if by_email and not by_email.account_status.reappliable:
            log.info(f"E-mail {email} already held by approved account {by_email.id}")
            raise DuplicateActiveAccount("User already exists with this email")

        if by_member_id and by_email and by_member_id.id != by_email.id:
            raise DuplicateActiveAccount("Email / Member ID conflict. Please contact admin.")

        target = by_member_id or by_email
        if target:
            log.info(f"Re-apply detected for account {target.id} ({target.account_status})")
        return target

    def _admin_decision(self, member_id: str, phone: Any) -> Decision:
        canonical_phone = self.engine.normalize_signup_phone(phone)
        return Decision(
            verified=True,
            account_status=AccountStatus.approved,
            verification_status=VerificationStatus.verified,
            reason=ADMIN_ALLOWLIST_REASON,
            member_id=member_id,
            phone=canonical_phone,
        )

    def _claim_slot(self, decision: Decision, account_id: str) -> Decision:
        slot = decision.claimed_slot
        now = self.clock()

        try:
            claimed = self.storage.conditional_update(
                self.registry.table, slot.id, slot.unused_guard(), slot.claim_patch(account_id, now)
            )
        except StorageError:
            log.exception(f"Claim write failed for slot {slot.id}")
            return Decision.pending(
                REASON_VERIFICATION_ERROR, decision.member_id, decision.phone, slot, decision.match
            )

        if not claimed:
            return self.engine.decide_after_lost_claim(decision)

        slot.mark_claimed(account_id, now)
        log.info(f"Slot {slot.id} claimed by account {account_id}")
        return decision

    def _release_claim(self, slot: AuthorizationSlot, account_id: str) -> None:
        try:
            self.storage.conditional_update(
                self.registry.table,
                slot.id,
                slot.held_guard(account_id),
                slot.release_patch(),
            )
        except StorageError:
            log.warning(f"Could not release claim on slot {slot.id}; left for stale-lock recovery")

    def _roll_back_signup(self, account: Account, decision: Decision, reapplied: bool) -> None:
        """
        Undo a signup whose credentials could not be registered: the claim
        is released, a new row is deleted and a re-applied row goes back to
        pending, so the next signup with the same details starts over.
        """
        if decision.claimed_slot is not None:
            self._release_claim(decision.claimed_slot, account.id)

        try:
            if not reapplied:
                self.storage.delete(self.accounts_table, account.id)
                return
            self.storage.update(
                self.accounts_table,
                account.id,
                {
                    "account_status": AccountStatus.pending.value,
                    "verification_status": VerificationStatus.pending_admin.value,
                    "requires_admin_approval": True,
                    "verification_reason": REASON_CREDENTIALS_FAILED,
                    "claimed_slot_id": None,
                    "approved_at": None,
                    "approved_by": None,
                    "updated_at": self.clock(),
                },
            )
        except StorageError:
            log.error(f"Could not roll back signup for account {account.id}")

    def _signup_record(self, name: str, email: str, decision: Decision, is_admin: bool) -> Dict[str, Any]:
        approved = decision.account_status == AccountStatus.approved
        now = self.clock()
        return {
            "name": name,
            "email": email,
            "phone": decision.phone,
            "member_id": decision.member_id,
            "role": (AccountRole.admin if is_admin else AccountRole.user).value,
            "account_status": decision.account_status.value,
            "verification_status": decision.verification_status.value,
            "requires_admin_approval": not approved,
            "verification_reason": decision.reason,
            "claimed_slot_id": decision.claimed_slot.id if decision.claimed_slot else None,
            "approved_at": now if approved else None,
            "approved_by": REGISTRY_CLAIMANT if approved else None,
            "updated_at": now,
        }

    def _create(self, account_id: str, record: Dict[str, Any]) -> Account:
        record = {**record, "created_at": self.clock()}
        return Account.from_record(
            self.storage.create_or_replace(self.accounts_table, record, key=account_id)
        )

    def _reapply(self, target: Account, record: Dict[str, Any]) -> Account:
        patch = {
            **record,
            "rejection_reason": None,
            "rejected_at": None,
            "rejected_by": None,
            "reapplied_at": self.clock(),
        }
        updated = self.storage.update(self.accounts_table, target.id, patch)
        if updated is None:
            raise AccountNotFound("User not found")
        return Account.from_record(updated)

    # ============================================================
    # Admin decisions
    # ============================================================
    def approve(self, account_id: str, admin_id: str) -> Account:
        account = self.get_account(account_id)
        if account.account_status != AccountStatus.pending:
            raise InvalidTransition("User is not in pending status")

        now = self.clock()
        slot_id = account.claimed_slot_id or self._claim_for_approval(account)

        updated = self.storage.update(
            self.accounts_table,
            account.id,
            {
                "account_status": AccountStatus.approved.value,
                "verification_status": VerificationStatus.verified.value,
                "requires_admin_approval": False,
                "claimed_slot_id": slot_id,
                "approved_at": now,
                "approved_by": admin_id,
                "updated_at": now,
            },
        )
        if updated is None:
            raise AccountNotFound("User not found")

        log.info(f"Admin {admin_id} approved account {account.id} (slot={slot_id})")
        return Account.from_record(updated)

    def _claim_for_approval(self, account: Account) -> Optional[str]:
        """Claim the registry slot matching this account's member ID, if it is free."""
        try:
            slot = self.registry.find(account.member_id, account.phone or "")
        except RegistryLookupFailure:
            log.warning(f"Registry lookup failed while approving {account.id}; approving without claim")
            return None

        if slot is None:
            return None

        match = self.engine.classifier.classify(account.member_id, account.phone or "", slot)
        if not match.member_id_matches:
            return None

        if slot.used:
            if slot.used_by == account.id:
                return slot.id
            try:
                state = self.engine.arbiter.resolve_lock(slot)
            except (LockResetFailed, StorageError):
                return None
            if state == LockState.live_claim:
                log.warning(f"Slot {slot.id} is held by account {slot.used_by}; approving {account.id} without claim")
                return None

        try:
            claimed = self.storage.conditional_update(
                self.registry.table,
                slot.id,
                slot.unused_guard(),
                slot.claim_patch(account.id, self.clock()),
            )
        except StorageError:
            log.warning(f"Claim write failed for slot {slot.id} while approving {account.id}")
            return None

        return slot.id if claimed else None

    def reject(self, account_id: str, admin_id: str, reason: Optional[str] = None) -> Account:
        account = self.get_account(account_id)
        if account.account_status != AccountStatus.pending:
            raise InvalidTransition("User is not in pending status")

        now = self.clock()
        updated = self.storage.update(
            self.accounts_table,
            account.id,
            {
                "account_status": AccountStatus.rejected.value,
                "verification_status": VerificationStatus.unverified.value,
                "requires_admin_approval": False,
                "rejection_reason": (reason or "").strip() or "No reason provided",
                "rejected_at": now,
                "rejected_by": admin_id,
                "updated_at": now,
            },
        )
        if updated is None:
            raise AccountNotFound("User not found")

        log.info(f"Admin {admin_id} rejected account {account.id}")
        return Account.from_record(updated)

    # ============================================================
    # Login gate
    # ============================================================
    @staticmethod
    def ensure_can_login(account: Account) -> None:
        if account.account_status == AccountStatus.rejected:
            raise AccountRejected(rejection_reason=account.rejection_reason)
        if account.account_status == AccountStatus.pending:
            raise AccountPendingApproval()

    def attach_auth_user(self, account_id: str, auth_user_id: str) -> Account:
        updated = self.storage.update(
            self.accounts_table,
            account_id,
            {"auth_user_id": auth_user_id, "updated_at": self.clock()},
        )
        if updated is None:
            raise AccountNotFound("User not found")
        return Account.from_record(updated)


# ============================================================
# Wiring
# ============================================================
def build_lifecycle(
    storage: Storage,
    admin_emails: Optional[Iterable[str]] = None,
    clock: Callable[[], datetime] = utcnow,
    grace_seconds: Optional[int] = None,
) -> AccountLifecycle:
    """Assemble the verification components over one storage backend."""
    accounts_table = settings.ACCOUNTS_TABLE

    registry = AuthorizedRegistryLookup(storage)
    arbiter = LockArbiter(
        storage,
        account_exists=lambda account_id: storage.exists(accounts_table, account_id),
        clock=clock,
        grace_seconds=grace_seconds,
    )
    engine = VerificationDecisionEngine(registry, MatchClassifier(), arbiter)

    return AccountLifecycle(
        storage,
        engine,
        admin_emails=settings.ADMIN_EMAILS if admin_emails is None else admin_emails,
        clock=clock,
        accounts_table=accounts_table,
    )
