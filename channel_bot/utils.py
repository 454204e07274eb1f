"""Shared utility helpers for channel-bot."""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone


def now_utc() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


def db_timestamp(dt: datetime) -> str:
    """Format a datetime the way SQLite's DATETIME('now') does (UTC, no zone)."""
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%d %H:%M:%S")


def parse_timestamp(ts: str | None) -> datetime | None:
    """Parse SQLite TIMESTAMP string to timezone-aware datetime, or None."""
    if not ts:
        return None
    try:
        dt = datetime.fromisoformat(ts)
        # SQLite stores naive timestamps as UTC
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt
    except (ValueError, TypeError):
        return None


def fmt_duration(delta: timedelta | float | int) -> str:
    """Render a duration as e.g. '2d 3h 4m 5s', omitting zero units."""
    total = int(delta.total_seconds()) if isinstance(delta, timedelta) else int(delta)
    if total <= 0:
        return "0s"
    parts = []
    for unit, size in (("d", 86400), ("h", 3600), ("m", 60), ("s", 1)):
        value, total = divmod(total, size)
        if value:
            parts.append(f"{value}{unit}")
    return " ".join(parts)


def fmt_age(since: datetime, now: datetime | None = None) -> str:
    """'1.52 years' past half a year, otherwise 'N days'."""
    days = ((now or now_utc()) - since).days
    years = days / 365.24
    if years > 0.5:
        return f"{years:.2f} years"
    return f"{days} days"


_HM_RE = re.compile(r"^\((\d+)h,(\d+)m\)$")
_LANG_PAIR_RE = re.compile(r"^\(([A-Za-z-]+),([A-Za-z-]+)\)$")


def parse_hm(token: str) -> timedelta | None:
    """Parse '(Xh,Ym)' into a timedelta."""
    m = _HM_RE.match(token.strip())
    if not m:
        return None
    return timedelta(hours=int(m.group(1)), minutes=int(m.group(2)))


def parse_lang_pair(token: str) -> tuple[str, str] | None:
    """Parse '(en,de)' into ('en', 'de')."""
    m = _LANG_PAIR_RE.match(token.strip())
    if not m:
        return None
    return m.group(1), m.group(2)
