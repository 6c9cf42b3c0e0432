# services/registry.py

"""
Lookup of authorized-member rows.

Imports are inconsistent about cell types, about column spelling
(``member_id`` vs ``memberId`` vs ``Member ID``) and about whether a
normalized shadow column was written, so reads try, in order:

    1. the identifier as the row's primary key
    2. equality on the string form, over every field alias
    3. equality on the numeric form (all-digit identifiers only)
    4. equality on the normalized shadow column

and return the first hit.
"""

from typing import Any, Callable, List, Optional, Sequence, Tuple

from core.config import settings
from core.errors import RegistryLookupFailure, StorageError
from core.logging_config import get_logger
from core.storage import Storage
from models.authorized_member import AuthorizationSlot
from services.identifiers import (
    MEMBER_ID_ALIASES,
    MEMBER_ID_SHADOW_ALIASES,
    PHONE_ALIASES,
    PHONE_SHADOW_ALIASES,
    maybe_number,
)

log = get_logger("registry")


class AuthorizedRegistryLookup:
    def __init__(self, storage: Storage, table: Optional[str] = None):
        self.storage = storage
        self.table = table or settings.AUTHORIZED_MEMBERS_TABLE

    def find_by_member_id(self, member_id: str) -> Optional[AuthorizationSlot]:
        return self._find(member_id, MEMBER_ID_ALIASES, MEMBER_ID_SHADOW_ALIASES)

    def find_by_phone(self, phone: str) -> Optional[AuthorizationSlot]:
        return self._find(phone, PHONE_ALIASES, PHONE_SHADOW_ALIASES)

    def find(self, member_id: str, phone: str) -> Optional[AuthorizationSlot]:
        """By member ID first, falling back to phone."""
        return self.find_by_member_id(member_id) or self.find_by_phone(phone)

    def list_slots(self) -> List[AuthorizationSlot]:
        records = self._call(lambda: self.storage.list_all(self.table))
        return [AuthorizationSlot.from_record(r) for r in records]

    # -----------------------------------------------------
    # internals
    # -----------------------------------------------------
    def _by_field(self, field: str, value: Any) -> Callable:
        return lambda: self.storage.find_one_by_field(self.table, field, value)

    def _strategies(
        self,
        value: str,
        fields: Sequence[str],
        shadow_fields: Sequence[str],
    ) -> List[Tuple[str, Callable]]:
        strategies = [("primary key", lambda: self.storage.get_by_key(self.table, value))]
        strategies += [(f"{f} (string)", self._by_field(f, value)) for f in fields]

        as_number = maybe_number(value)
        if as_number is not None:
            strategies += [(f"{f} (number)", self._by_field(f, as_number)) for f in fields]

        strategies += [(f, self._by_field(f, value)) for f in shadow_fields]
        return strategies

    def _find(
        self,
        value: str,
        fields: Sequence[str],
        shadow_fields: Sequence[str],
    ) -> Optional[AuthorizationSlot]:
        if not value:
            return None

        for label, fetch in self._strategies(value, fields, shadow_fields):
            record = self._call(fetch)
            if record:
                log.info(f"Registry hit for {value!r} via {label}")
                return AuthorizationSlot.from_record(record)

        return None

    @staticmethod
    def _call(fetch: Callable) -> Any:
        try:
            return fetch()
        except StorageError as e:
            raise RegistryLookupFailure(e.message) from e
