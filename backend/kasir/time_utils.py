from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Optional


def utcnow() -> datetime:
    """Naive UTC 'now'; every stored timestamp uses this convention."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _is_date_only(text: str) -> bool:
    return len(text) == 10 and text[4] == "-" and text[7] == "-"


def parse_iso_datetime(value: Optional[str], end_of_day: bool = False) -> Optional[datetime]:
    """
    Parse ISO-8601 into a naive UTC datetime.

    - None / "" -> None
    - "YYYY-MM-DD" is midnight UTC, or 23:59:59.999999 with end_of_day=True
      so that an end date includes the whole day
    - offsets ("Z", "+07:00") are converted to UTC; naive input is taken as UTC

    Raises ValueError for anything else.
    """
    if value is None:
        return None
    text = value.strip()
    if not text:
        return None

    if _is_date_only(text):
        day = date.fromisoformat(text)
        return datetime.combine(day, time.max if end_of_day else time.min)

    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"

    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Second-precision ISO-8601 with a trailing 'Z'. Naive values are UTC."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.replace(microsecond=0).isoformat() + "Z"
