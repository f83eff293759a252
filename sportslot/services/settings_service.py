from __future__ import annotations

import logging
import threading
import time
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from sportslot.core.config import get_settings
from sportslot.models.settings import PolicySetting

logger = logging.getLogger(__name__)

POLICY_DEFAULTS: dict[str, Any] = {
    "daily_rights_per_user": 1,
    "checkin_grace_minutes": 15,
    "cancel_free_hours": 1,
    "penalty_late_cancel": 0,
    "penalty_no_checkin_auto_cancel": 50,
    "no_show_extra_rights_penalty": 1,
    "bonus_completed_booking": 5,
    "reset_boundary_hour": None,  # falls back to Settings.reset_boundary_hour
    "require_qr_verification": True,
    "require_location_verification": True,
}

_TRUE = {"true", "1", "yes", "on"}
_FALSE = {"false", "0", "no", "off"}


class PolicyStore:
    """Read-through TTL cache over the `settings` table.

    Values are eventually consistent: a write made by another process is
    seen once the cached entry expires or `invalidate` is called.
    """

    def __init__(self, ttl_seconds: float = 60.0) -> None:
        self.ttl_seconds = ttl_seconds
        self._cache: dict[str, tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def _default(self, key: str, default: Any) -> Any:
        if default is not None:
            return default
        if key == "reset_boundary_hour":
            return get_settings().reset_boundary_hour
        return POLICY_DEFAULTS.get(key)

    def get_value(self, db: Session, key: str, default: Any = None) -> Any:
        now = time.monotonic()
        with self._lock:
            hit = self._cache.get(key)
            if hit is not None and now - hit[0] < self.ttl_seconds:
                value = hit[1]
                return self._default(key, default) if value is None else value

        row = db.get(PolicySetting, key)
        value = row.value if row is not None else None
        with self._lock:
            self._cache[key] = (now, value)
        return self._default(key, default) if value is None else value

    def get_number(self, db: Session, key: str, default: float | int | None = None) -> int | float:
        value = self.get_value(db, key, default)
        fallback = self._default(key, default)
        if isinstance(value, bool):
            return int(value)
        if isinstance(value, (int, float)):
            return value
        if isinstance(value, str):
            try:
                num = float(value.strip())
            except ValueError:
                logger.warning("Policy %s has non-numeric value %r; using default", key, value)
                return fallback if fallback is not None else 0
            return int(num) if num.is_integer() else num
        return fallback if fallback is not None else 0

    def get_int(self, db: Session, key: str, default: int | None = None) -> int:
        return int(self.get_number(db, key, default))

    def get_boolean(self, db: Session, key: str, default: bool | None = None) -> bool:
        value = self.get_value(db, key, default)
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return value != 0
        if isinstance(value, str):
            v = value.strip().lower()
            if v in _TRUE:
                return True
            if v in _FALSE:
                return False
        fallback = self._default(key, default)
        return bool(fallback)

    def invalidate(self, key: str | None = None) -> dict[str, Any]:
        with self._lock:
            if key is not None:
                self._cache.pop(key, None)
                return {"cleared": key}
            count = len(self._cache)
            self._cache.clear()
        return {"cleared": "all", "count": count}

    def snapshot(self, db: Session) -> dict[str, Any]:
        """Every known key with its effective value (stored or default)."""
        stored = {row.key: row.value for row in db.execute(select(PolicySetting)).scalars().all()}
        out: dict[str, Any] = {}
        for key in POLICY_DEFAULTS:
            value = stored.get(key)
            out[key] = self._default(key, None) if value is None else value
        for key, value in stored.items():
            out.setdefault(key, value)
        return out


def write_setting(db: Session, store: PolicyStore, *, key: str, value: Any, updated_by: str = "") -> PolicySetting:
    row = db.get(PolicySetting, key)
    if row is None:
        row = PolicySetting(key=key, value=value, updated_by=updated_by)
        db.add(row)
    else:
        row.value = value
        row.updated_by = updated_by
    db.commit()
    db.refresh(row)
    store.invalidate(key)
    logger.info("Policy %s set to %r by %s", key, value, updated_by or "system")
    return row


def seed_defaults(db: Session) -> int:
    """Insert missing policy rows; existing values are left alone."""
    added = 0
    for key, value in POLICY_DEFAULTS.items():
        if value is None:
            continue
        if db.get(PolicySetting, key) is None:
            db.add(PolicySetting(key=key, value=value, updated_by="seed"))
            added += 1
    db.commit()
    return added


def reset_boundary_hour(db: Session, store: PolicyStore) -> int:
    hour = store.get_int(db, "reset_boundary_hour")
    return min(23, max(0, hour))
