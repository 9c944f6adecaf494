# Overview: UTC clock helpers shared by orders, sessions, pricing and guest tokens.

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    """UTC-naive 'now'; every stored timestamp uses this form."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_utc_naive(dt: datetime) -> datetime:
    """SQLite hands back naive values, other backends aware ones."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def age_of(dt: datetime) -> timedelta:
    return utcnow() - as_utc_naive(dt)


def is_older_than(dt: datetime, window: timedelta) -> bool:
    """True once more than `window` has passed since dt."""
    return age_of(dt) > window


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a date or datetime query parameter.

    "2026-10-01", "2026-10-01T09:30" and "...Z" / "...+05:30" are accepted;
    naive input is read as UTC. Raises ValueError on anything else.
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    return as_utc_naive(datetime.fromisoformat(s))


def day_after(dt: datetime) -> datetime:
    """Exclusive upper bound for an end_date filter given as a calendar day."""
    return dt + timedelta(days=1)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Serialize as ISO-8601 with a trailing Z, seconds precision."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")
