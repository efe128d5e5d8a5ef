from __future__ import annotations

from datetime import date, datetime, timezone, tzinfo
from typing import Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_rfc3339(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_rfc3339(value: str) -> datetime:
    """
    Parse a Canvas timestamp.

    Accepts full RFC 3339 values ("2024-01-05T10:00:00Z") as well as bare dates
    ("2024-01-05"). Naive values are taken to be UTC.
    """
    raw = value.strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    parsed = datetime.fromisoformat(raw)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def try_parse_rfc3339(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return parse_rfc3339(value)
    except ValueError:
        return None


def local_date(value: str, tz: Optional[tzinfo]) -> date:
    """Calendar date of a timestamp in ``tz`` (system local time when None)."""
    return parse_rfc3339(value).astimezone(tz).date()
