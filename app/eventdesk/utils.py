from __future__ import annotations

from datetime import date, datetime, timezone


def utcnow() -> datetime:
    """Naive UTC timestamp, the convention used by every table."""
    return datetime.utcnow()


def parse_timestamp(value: object) -> datetime | None:
    """
    Parse a stored timestamp into a naive UTC datetime.

    Accepts datetime/date objects as well as ISO strings with or without an
    offset (``Z`` included).
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    else:
        raw = str(value).strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        dt = datetime.fromisoformat(raw)
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def parse_date(s: object) -> date | None:
    """Parse YYYY-MM-DD (or a full timestamp) into a date."""
    if s is None:
        return None
    if isinstance(s, datetime):
        return s.date()
    if isinstance(s, date):
        return s
    raw = str(s).strip()
    if not raw:
        return None
    return date.fromisoformat(raw[:10])


def to_jsonable(value: object) -> object:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value
