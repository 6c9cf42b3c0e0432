# core/utils.py

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Wall-clock source for used_at / reapplied_at / reviewed timestamps."""
    return datetime.now(timezone.utc)


def sanitize(data: dict) -> dict:
    """
    Sanitize a record before it is written:
    - Strip string whitespace
    - Datetimes → ISO 8601 strings
    - Preserve None, booleans and numbers

    Strings are never coerced to numbers: member IDs and phone
    numbers must stay strings once they are written by this service.
    """
    clean = {}

    for k, v in data.items():
        if isinstance(v, datetime):
            clean[k] = v.isoformat()
            continue

        if isinstance(v, str):
            clean[k] = v.strip()
            continue

        clean[k] = v

    return clean


def parse_timestamp(value) -> datetime | None:
    """Read back a stored timestamp (ISO string or datetime); naive values are UTC."""
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt
