# services/identifiers.py

"""
Canonical forms for member IDs and phone numbers.

Registry rows come from spreadsheets, so the same identifier can show up as
"1234", 1234, "1234.0", "1.234E3", "+91 98765-43210" or 9876543210.0.
Everything is compared in canonical form:

    member ID  → trimmed opaque token; numeric artifacts become an integer string
    phone      → exactly 10 digits
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional, Sequence

PHONE_LENGTH = 10
TRUNK_PREFIX = "0"
DEFAULT_COUNTRY_CODES = ("91",)

_DECIMAL_INTEGER_RE = re.compile(r"^[+-]?\d+\.0+$")
_SCIENTIFIC_RE = re.compile(r"^[+-]?\d+(\.\d+)?[eE][+-]?\d+$")
_NON_DIGITS_RE = re.compile(r"\D")
_DIGITS_RE = re.compile(r"^\d+$")


# -----------------------------------------------------
# Field aliases seen in imported registry rows
# -----------------------------------------------------
MEMBER_ID_ALIASES = (
    "member_id",
    "memberId",
    "memberid",
    "MemberId",
    "MemberID",
    "MEMBER_ID",
    "Member_ID",
    "Member ID",
)

PHONE_ALIASES = (
    "phone_number",
    "phoneNumber",
    "phonenumber",
    "PhoneNumber",
    "Phone Number",
    "phone",
    "Phone",
    "mobile",
    "Mobile",
)

MEMBER_ID_SHADOW_ALIASES = ("member_id_normalized", "memberIdNormalized")

PHONE_SHADOW_ALIASES = ("phone_normalized", "phoneNormalized")

_FALSE_FLAGS = frozenset({"false", "no", "n", "0", "unused"})


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def resolve_alias(record: Optional[dict], aliases: Iterable[str]) -> Any:
    """Value of the first alias present and non-blank in ``record``, else None."""
    if not record:
        return None
    for name in aliases:
        value = record.get(name)
        if not _is_blank(value):
            return value
    return None


def _as_text(raw: Any) -> str:
    if raw is None or isinstance(raw, bool):
        return ""
    if isinstance(raw, float):
        if raw != raw or raw in (float("inf"), float("-inf")):
            return ""
        if raw.is_integer():
            return str(int(raw))
        return repr(raw)
    return str(raw).strip()


def _coerce_numeric_artifact(text: str) -> Optional[str]:
    """"1234.0" / "9.99999E5" → integer string (truncated); None if not such an artifact."""
    if not (_DECIMAL_INTEGER_RE.match(text) or _SCIENTIFIC_RE.match(text)):
        return None
    try:
        number = Decimal(text)
    except InvalidOperation:
        return None
    if not number.is_finite():
        return None
    return str(int(number))


# -----------------------------------------------------
# Member ID
# -----------------------------------------------------
def normalize_member_id(raw: Any) -> str:
    text = _as_text(raw)
    if not text:
        return ""
    return _coerce_numeric_artifact(text) or text


# -----------------------------------------------------
# Phone
# -----------------------------------------------------
def _phone_digits(raw: Any) -> str:
    text = _as_text(raw)
    if not text:
        return ""
    text = _coerce_numeric_artifact(text) or text
    return _NON_DIGITS_RE.sub("", text)


def normalize_phone(
    raw: Any,
    country_codes: Sequence[str] = DEFAULT_COUNTRY_CODES,
) -> Optional[str]:
    """
    Strict normalization for user-supplied phones.

    Returns the 10-digit canonical form, "" when nothing was supplied, or
    None when the number is ambiguous (caller must reject it).
    """
    if _is_blank(raw):
        return ""

    digits = _phone_digits(raw)
    if not digits:
        return None

    if len(digits) == PHONE_LENGTH + 1 and digits.startswith(TRUNK_PREFIX):
        digits = digits[1:]
    elif len(digits) == PHONE_LENGTH + 2 and digits[:2] in country_codes:
        digits = digits[2:]

    if len(digits) == PHONE_LENGTH:
        return digits
    return None


def normalize_phone_lenient(raw: Any) -> str:
    """
    Lenient normalization for legacy registry data only: keeps the last
    10 digits. Never use it to validate user input.
    """
    digits = _phone_digits(raw)
    if len(digits) > PHONE_LENGTH:
        return digits[-PHONE_LENGTH:]
    return digits


def maybe_number(value: Any) -> Optional[int]:
    """int(value) for all-digit strings (registry cells stored as numbers)."""
    text = _as_text(value)
    if not text or not _DIGITS_RE.match(text):
        return None
    return int(text)


def normalize_email(raw: Any) -> str:
    return _as_text(raw).lower()


def parse_flag(raw: Any) -> Optional[bool]:
    """
    Boolean cell from an import: True/False, 1/0 or spreadsheet text such
    as "FALSE" / "yes". None when the cell is blank; unrecognized text
    counts as set.
    """
    if raw is None or isinstance(raw, bool):
        return raw
    if isinstance(raw, str):
        text = raw.strip().lower()
        if not text:
            return None
        return text not in _FALSE_FLAGS
    return bool(raw)
