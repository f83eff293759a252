from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from sportslot.core.config import get_settings
from sportslot.models.booking import Booking, BookingKind, BookingStatus
from sportslot.services import conflict_service, points_service, rights_service
from sportslot.services.points_service import BatchResult
from sportslot.services.settings_service import PolicyStore
from sportslot.services.timeslots import earliest_start_minutes, latest_end_minutes, local_now, minutes_of_day, normalize_date

logger = logging.getLogger(__name__)


@dataclass
class NoShowOutcome:
    booking_id: str
    penalties: BatchResult = field(default_factory=BatchResult)
    rights: BatchResult = field(default_factory=BatchResult)


@dataclass
class SweepReport:
    processed: list[NoShowOutcome] = field(default_factory=list)
    skipped: int = 0
    errors: list[tuple[str, str]] = field(default_factory=list)

    @property
    def processed_ids(self) -> list[str]:
        return [o.booking_id for o in self.processed]


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive values
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_considered_verified(booking: Booking, *, require_qr: bool, require_location: bool) -> bool:
    # Same test as check-in; a pending or confirmed row never passes it
    return (
        booking.status == BookingStatus.CHECKED_IN
        and (not require_qr or booking.is_qr_verified)
        and (not require_location or booking.is_location_verified)
    )


def is_startup_protected(booking: Booking, now: datetime | None, window_minutes: int) -> bool:
    if booking.startup_protected_at is None:
        return False
    elapsed = local_now(now).astimezone(timezone.utc) - _as_utc(booking.startup_protected_at)
    return elapsed < timedelta(minutes=window_minutes)


def apply_no_show(
    db: Session,
    store: PolicyStore,
    booking: Booking,
    *,
    grace_minutes: int,
    now: datetime | None = None,
) -> NoShowOutcome | None:
    """Auto-cancel a missed check-in and penalize every involved user.

    Returns None when another sweep already handled the booking.
    """
    if booking.no_show_processed:
        return None

    stamp = local_now(now).astimezone(timezone.utc)
    reason = f"No check-in within {grace_minutes} minutes of the start (auto-cancelled)"
    stmt = (
        update(Booking)
        .where(
            Booking.id == booking.id,
            Booking.status.in_(BookingStatus.AWAITING_CHECKIN),
            Booking.no_show_processed.is_(False),
        )
        .values(
            status=BookingStatus.CANCELLED,
            auto_cancelled=True,
            no_show_processed=True,
            cancellation_reason=reason,
            cancelled_at=stamp,
            expired_at=stamp,
        )
    )
    if db.execute(stmt).rowcount != 1:
        db.rollback()
        return None
    conflict_service.release_claims(db, booking.id)
    db.commit()
    db.refresh(booking)

    penalty = store.get_int(db, "penalty_no_checkin_auto_cancel")
    extra = store.get_int(db, "no_show_extra_rights_penalty")
    users = booking.involved_user_ids

    outcome = NoShowOutcome(booking_id=booking.id)
    outcome.penalties = points_service.penalize_users(db, booking=booking, user_ids=users, points=penalty, reason=reason)
    outcome.rights = rights_service.consume_for_users(db, users, booking.date, 1 + max(0, extra))
    logger.info(
        "No-show on booking %s: %s user(s), penalty=%s, rights=%s, failed=%s",
        booking.id,
        len(users),
        penalty,
        1 + max(0, extra),
        outcome.penalties.failed + outcome.rights.failed,
    )
    return outcome


def sweep_missed_checkins(db: Session, store: PolicyStore, now: datetime | None = None) -> SweepReport:
    """One pass over today's pending/confirmed bookings whose check-in window has closed."""
    settings = get_settings()
    report = SweepReport()
    today = local_now(now).date().isoformat()
    now_minutes = minutes_of_day(now)

    require_qr = store.get_boolean(db, "require_qr_verification")
    require_location = store.get_boolean(db, "require_location_verification")
    grace = store.get_int(db, "checkin_grace_minutes")

    candidates = db.execute(select(Booking).where(Booking.status.in_(BookingStatus.AWAITING_CHECKIN))).scalars().all()
    for booking in candidates:
        if (
            booking.admin_created
            or booking.booking_kind == BookingKind.ACTIVITY
            or booking.no_show_processed
            or normalize_date(booking.date) != today
            or is_considered_verified(booking, require_qr=require_qr, require_location=require_location)
        ):
            report.skipped += 1
            continue
        if settings.startup_protection_enabled and is_startup_protected(booking, now, settings.startup_protection_minutes):
            report.skipped += 1
            continue

        start = earliest_start_minutes(booking.time_slots)
        if start is None or now_minutes <= start + grace:
            report.skipped += 1
            continue

        try:
            outcome = apply_no_show(db, store, booking, grace_minutes=grace, now=now)
        except Exception as exc:
            db.rollback()
            logger.exception("Expiry sweep failed for booking %s", booking.id)
            report.errors.append((booking.id, str(exc)))
            continue
        if outcome is None:
            report.skipped += 1
        else:
            report.processed.append(outcome)

    if report.processed or report.errors:
        logger.info("Expiry sweep: processed=%s errors=%s", report.processed_ids, len(report.errors))
    return report


def protect_on_startup(db: Session, store: PolicyStore, now: datetime | None = None) -> int:
    """Stamp pending bookings whose check-in window is still open so the first sweeps leave them alone."""
    today = local_now(now).date().isoformat()
    now_minutes = minutes_of_day(now)
    grace = store.get_int(db, "checkin_grace_minutes")
    stamp = local_now(now).astimezone(timezone.utc)

    q = select(Booking).where(Booking.status == BookingStatus.PENDING, Booking.is_location_verified.is_(False))
    protected = 0
    for booking in db.execute(q).scalars().all():
        date = normalize_date(booking.date)
        if date is None:
            still_valid = True
        elif date > today:
            still_valid = True
        elif date == today:
            end = latest_end_minutes(booking.time_slots)
            still_valid = end is None or now_minutes <= end + grace
        else:
            still_valid = False
        if still_valid:
            booking.startup_protected_at = stamp
            protected += 1
    db.commit()
    if protected:
        logger.info("Startup protection applied to %s booking(s)", protected)
    return protected


class ExpiryWatcher:
    """Runs the expiry sweep on a worker thread every `interval_seconds`.

    Each pass opens its own session and never raises into the loop.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        store: PolicyStore,
        *,
        interval_seconds: float = 60.0,
        clock: Callable[[], datetime | None] = lambda: None,
    ) -> None:
        self.session_factory = session_factory
        self.store = store
        self.interval_seconds = interval_seconds
        self.clock = clock
        self._stop = threading.Event()
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def run_once(self) -> SweepReport | None:
        db = self.session_factory()
        try:
            return sweep_missed_checkins(db, self.store, now=self.clock())
        except Exception:
            logger.exception("Expiry watcher pass failed")
            return None
        finally:
            db.close()

    def _worker(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            self.run_once()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._task = asyncio.create_task(asyncio.to_thread(self._worker))
        logger.info("Expiry watcher started (interval=%ss)", self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop.set()
        task, self._task = self._task, None
        try:
            await task
        except Exception:
            logger.exception("Expiry watcher worker exited with an error")
        logger.info("Expiry watcher stopped")


def auto_cancelled_today(db: Session, store: PolicyStore, user_id: str, now: datetime | None = None) -> dict:
    """Run a sweep, then report the user's bookings auto-cancelled today."""
    sweep_missed_checkins(db, store, now=now)

    today = local_now(now).date().isoformat()
    penalty = store.get_int(db, "penalty_no_checkin_auto_cancel")
    rows = db.execute(
        select(Booking).where(Booking.status == BookingStatus.CANCELLED, Booking.auto_cancelled.is_(True))
    ).scalars().all()

    expired = [
        {
            "booking_id": b.id,
            "court_name": b.court_name,
            "date": b.date,
            "time_slots": list(b.time_slots or []),
            "penalty_points": penalty,
        }
        for b in rows
        if normalize_date(b.date) == today and user_id in b.involved_user_ids
    ]
    return {
        "expired_bookings": expired,
        "total_penalty_points": len(expired) * penalty,
        "message": "Missed check-ins were auto-cancelled and penalized" if expired else "No expired bookings found",
    }
