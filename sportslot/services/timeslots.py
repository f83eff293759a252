from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from sportslot.core.config import get_settings

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_SLOT_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*-\s*(\d{1,2}):(\d{2})\s*$")


def reference_tz() -> ZoneInfo:
    return ZoneInfo(get_settings().timezone)


def local_now(now: datetime | None = None) -> datetime:
    """Current time in the reference zone. Naive `now` is taken as already local."""
    tz = reference_tz()
    if now is None:
        return datetime.now(tz=tz)
    if now.tzinfo is None:
        return now.replace(tzinfo=tz)
    return now.astimezone(tz)


def today_str(now: datetime | None = None) -> str:
    return local_now(now).date().isoformat()


def minutes_of_day(now: datetime | None = None) -> int:
    n = local_now(now)
    return n.hour * 60 + n.minute


def normalize_date(value: object) -> str | None:
    """Canonical YYYY-MM-DD for a booking date, or None when unparseable.

    Plain date strings are kept as-is; timestamps are shifted into the
    reference zone before the calendar day is taken.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return local_now(value).date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if not isinstance(value, str):
        return None

    raw = value.strip()
    if not raw:
        return None
    if _DATE_RE.match(raw):
        try:
            return date.fromisoformat(raw).isoformat()
        except ValueError:
            return None

    # ISO timestamp; a trailing Z is not accepted by fromisoformat on older interpreters
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return None
    return local_now(parsed).date().isoformat()


def parse_slot(slot: str) -> tuple[int, int] | None:
    """'09:00-10:00' -> (540, 600)."""
    if not isinstance(slot, str):
        return None
    m = _SLOT_RE.match(slot)
    if not m:
        return None
    sh, sm, eh, em = (int(g) for g in m.groups())
    if sh > 24 or eh > 24 or sm > 59 or em > 59:
        return None
    return sh * 60 + sm, eh * 60 + em


def earliest_start_minutes(slots: list[str] | None) -> int | None:
    starts = [p[0] for p in (parse_slot(s) for s in slots or []) if p is not None]
    return min(starts) if starts else None


def latest_end_minutes(slots: list[str] | None) -> int | None:
    ends = [p[1] for p in (parse_slot(s) for s in slots or []) if p is not None]
    return max(ends) if ends else None


def operational_date(now: datetime | None, boundary_hour: int) -> str:
    """Rights are counted against this day: yesterday until boundary_hour:00, then today."""
    n = local_now(now)
    if n.hour < boundary_hour:
        return (n.date() - timedelta(days=1)).isoformat()
    return n.date().isoformat()


def next_reset_at(now: datetime | None, boundary_hour: int) -> datetime:
    n = local_now(now)
    boundary = n.replace(hour=boundary_hour, minute=0, second=0, microsecond=0)
    if n < boundary:
        return boundary
    return boundary + timedelta(days=1)
