# services/matching.py

from typing import List, Optional

from pydantic import BaseModel

from models.authorized_member import AuthorizationSlot
from models.enums import MatchQuality


class MatchResult(BaseModel):
    quality: MatchQuality
    member_id_matches: bool = False
    phone_matches: bool = False

    @property
    def any_field(self) -> bool:
        return self.member_id_matches or self.phone_matches

    @property
    def matched_fields(self) -> List[str]:
        fields = []
        if self.member_id_matches:
            fields.append("member_id")
        if self.phone_matches:
            fields.append("phone")
        return fields


NO_MATCH = MatchResult(quality=MatchQuality.none)


class MatchClassifier:
    """
    Compares canonical signup identifiers with a registry slot.

    A field only matches when it is present on both sides and equal; a
    field missing from the registry never counts. Auto-approval needs EXACT.
    """

    def classify(
        self,
        member_id: str,
        phone: str,
        slot: Optional[AuthorizationSlot],
    ) -> MatchResult:
        if slot is None:
            return NO_MATCH

        slot_member_id = slot.canonical_member_id
        slot_phone = slot.canonical_phone

        member_id_matches = bool(member_id) and bool(slot_member_id) and member_id == slot_member_id
        phone_matches = bool(phone) and bool(slot_phone) and phone == slot_phone

        if member_id_matches and phone_matches:
            quality = MatchQuality.exact
        elif member_id_matches or phone_matches:
            quality = MatchQuality.partial
        else:
            quality = MatchQuality.none

        return MatchResult(
            quality=quality,
            member_id_matches=member_id_matches,
            phone_matches=phone_matches,
        )
