# models/authorized_member.py

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel

from services.identifiers import (
    MEMBER_ID_ALIASES,
    MEMBER_ID_SHADOW_ALIASES,
    PHONE_ALIASES,
    PHONE_SHADOW_ALIASES,
    normalize_member_id,
    normalize_phone_lenient,
    parse_flag,
    resolve_alias,
)

# Claim columns and their camelCase spelling in document-style imports
CLAIM_FIELDS = {
    "is_used": "isUsed",
    "used_by": "usedBy",
    "used_at": "usedAt",
}
CAMEL_CASE_MARKERS = ("isUsed", "usedBy", "memberId", "phoneNumber")


def _opt_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _claim_value(record: Dict[str, Any], field: str) -> Any:
    value = record.get(field)
    if value is None:
        value = record.get(CLAIM_FIELDS[field])
    return value


# ===============================================================
# AUTHORIZATION SLOT (one imported authorized-member row)
# ===============================================================
class AuthorizationSlot(BaseModel):
    """
    A registry row as read from storage. ``member_id`` and ``phone_number``
    keep their raw imported values (str, int or float); use the canonical_*
    properties for comparisons.

    ``is_used_raw`` is the flag exactly as stored ("FALSE", 0, True, ...)
    and ``camel_case`` records how the row spells its claim columns, so
    conditional writes match the row as it really is.
    """

    id: str
    member_id: Any = None
    phone_number: Any = None
    member_id_normalized: Optional[str] = None
    phone_normalized: Optional[str] = None

    name: Optional[str] = None
    email: Optional[str] = None
    notes: Optional[str] = None

    # None means the import never wrote the flag
    is_used: Optional[bool] = None
    is_used_raw: Any = None
    used_by: Optional[str] = None
    used_at: Optional[datetime] = None
    imported_at: Optional[datetime] = None

    camel_case: bool = False

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "AuthorizationSlot":
        raw_flag = _claim_value(record, "is_used")
        return cls(
            id=str(record.get("id")),
            member_id=resolve_alias(record, MEMBER_ID_ALIASES),
            phone_number=resolve_alias(record, PHONE_ALIASES),
            member_id_normalized=_opt_str(resolve_alias(record, MEMBER_ID_SHADOW_ALIASES)),
            phone_normalized=_opt_str(resolve_alias(record, PHONE_SHADOW_ALIASES)),
            name=_opt_str(record.get("name")),
            email=_opt_str(record.get("email")),
            notes=_opt_str(record.get("notes")),
            is_used=parse_flag(raw_flag),
            is_used_raw=raw_flag,
            used_by=_opt_str(_claim_value(record, "used_by")),
            used_at=_claim_value(record, "used_at") or None,
            imported_at=record.get("imported_at") or record.get("importedAt") or None,
            camel_case="is_used" not in record and any(m in record for m in CAMEL_CASE_MARKERS),
        )

    # -----------------------------------------------------
    # Canonical identifiers
    # -----------------------------------------------------
    @property
    def canonical_member_id(self) -> str:
        return (
            normalize_member_id(self.member_id)
            or normalize_member_id(self.member_id_normalized)
            or normalize_member_id(self.id)
        )

    @property
    def canonical_phone(self) -> str:
        return normalize_phone_lenient(self.phone_number) or normalize_phone_lenient(
            self.phone_normalized
        )

    @property
    def used(self) -> bool:
        return bool(self.is_used)

    # -----------------------------------------------------
    # Claim writes
    # -----------------------------------------------------
    def column(self, field: str) -> str:
        """Storage column for a claim field, in the row's own spelling."""
        return CLAIM_FIELDS[field] if self.camel_case else field

    def unused_guard(self) -> Dict[str, Any]:
        """Precondition for claiming this slot with a conditional update."""
        return {self.column("is_used"): self.is_used_raw}

    def held_guard(self, account_id: Optional[str] = None) -> Dict[str, Any]:
        """Precondition for clearing a claim held by ``account_id`` (default: the one read)."""
        if account_id is not None:
            return {self.column("is_used"): True, self.column("used_by"): account_id}
        return {self.column("is_used"): self.is_used_raw, self.column("used_by"): self.used_by}

    def claim_patch(self, account_id: str, now: datetime) -> Dict[str, Any]:
        return {
            self.column("is_used"): True,
            self.column("used_by"): account_id,
            self.column("used_at"): now,
        }

    def release_patch(self) -> Dict[str, Any]:
        return {
            self.column("is_used"): False,
            self.column("used_by"): None,
            self.column("used_at"): None,
        }

    def mark_claimed(self, account_id: str, now: datetime) -> None:
        self.is_used = True
        self.is_used_raw = True
        self.used_by = account_id
        self.used_at = now

    def mark_unused(self) -> None:
        self.is_used = False
        self.is_used_raw = False
        self.used_by = None
        self.used_at = None

    def refresh_claim(self, fresh: "AuthorizationSlot") -> None:
        self.is_used = fresh.is_used
        self.is_used_raw = fresh.is_used_raw
        self.used_by = fresh.used_by
        self.used_at = fresh.used_at

    def summary(self) -> Dict[str, Any]:
        """Registry side of a match, for admin review screens and logs."""
        return {
            "slot_id": self.id,
            "member_id": self.canonical_member_id,
            "phone": self.canonical_phone,
            "name": self.name,
        }
