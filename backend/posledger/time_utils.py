from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

# Timestamps are stored UTC-naive and rendered with a trailing "Z".


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a client timestamp (list filters, purchase order expected_at).

    Blank means "no bound". An offset or "Z" is folded into UTC; a bare
    timestamp is already UTC. Raises ValueError for anything fromisoformat
    rejects.
    """
    if value is None or not value.strip():
        return None

    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"

    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_time_range(start: Optional[str], end: Optional[str]) -> tuple[Optional[datetime], Optional[datetime]]:
    """Inclusive start/end query bounds; an inverted range is a ValueError."""
    lower = parse_iso_datetime(start)
    upper = parse_iso_datetime(end)
    if lower is not None and upper is not None and lower > upper:
        raise ValueError("start is after end")
    return lower, upper


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")
