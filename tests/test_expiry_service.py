import asyncio

import pytest
from sqlalchemy import func, select

from helpers import DAY, NEXT_DAY, at
from sportslot.models.booking import Booking, BookingKind, BookingStatus, SlotClaim
from sportslot.models.penalty import Penalty
from sportslot.services import expiry_service, points_service, rights_service
from sportslot.services.expiry_service import ExpiryWatcher
from sportslot.services.settings_service import write_setting


def test_missed_checkin_is_cancelled_and_penalized(db, store, make_user, make_court, make_booking):
    owner = make_user()
    mate = make_user(points=30)
    booking = make_booking(owner, make_court(), participants=[mate])

    report = expiry_service.sweep_missed_checkins(db, store, now=at(9, 16))
    assert report.processed_ids == [booking.id]
    assert report.errors == []

    db.refresh(booking)
    assert booking.status == BookingStatus.CANCELLED
    assert booking.auto_cancelled and booking.no_show_processed
    assert booking.expired_at is not None
    assert "15 minutes" in booking.cancellation_reason

    assert points_service.get_points(db, owner.id) == 50
    assert points_service.get_points(db, mate.id) == 0
    # One right plus the configured extra
    assert rights_service.get_consumed_rights(db, owner.id, DAY) == 2
    assert rights_service.get_consumed_rights(db, mate.id, DAY) == 2
    assert db.execute(select(func.count(SlotClaim.id))).scalar_one() == 0


def test_sweep_is_idempotent(db, store, make_user, make_court, make_booking):
    owner = make_user()
    booking = make_booking(owner, make_court())

    expiry_service.sweep_missed_checkins(db, store, now=at(9, 16))
    again = expiry_service.sweep_missed_checkins(db, store, now=at(9, 30))
    assert again.processed == []

    assert points_service.get_points(db, owner.id) == 50
    assert db.execute(select(func.count(Penalty.id))).scalar_one() == 1
    assert rights_service.get_consumed_rights(db, owner.id, DAY) == 2

    db.refresh(booking)
    assert expiry_service.apply_no_show(db, store, booking, grace_minutes=15, now=at(9, 40)) is None


def test_grace_window_is_inclusive(db, store, make_user, make_court, make_booking):
    booking = make_booking(make_user(), make_court())
    report = expiry_service.sweep_missed_checkins(db, store, now=at(9, 15))
    assert report.processed == []
    db.refresh(booking)
    assert booking.status == BookingStatus.PENDING


def test_grace_minutes_come_from_policy(db, store, make_user, make_court, make_booking):
    write_setting(db, store, key="checkin_grace_minutes", value=30)
    make_booking(make_user(), make_court())
    assert expiry_service.sweep_missed_checkins(db, store, now=at(9, 20)).processed == []
    assert len(expiry_service.sweep_missed_checkins(db, store, now=at(9, 31)).processed) == 1


def test_sweep_skips_exempt_bookings(db, store, make_user, make_court, make_booking):
    court = make_court()
    owner = make_user()
    make_booking(owner, court, time_slots=["08:00-09:00"], admin_created=True)
    make_booking(owner, court, time_slots=["07:00-08:00"], booking_kind=BookingKind.ACTIVITY)
    make_booking(owner, court, time_slots=["06:00-07:00"], date=NEXT_DAY)
    make_booking(owner, court, time_slots=["05:00-06:00"], status=BookingStatus.CHECKED_IN, is_qr_verified=True, is_location_verified=True)

    report = expiry_service.sweep_missed_checkins(db, store, now=at(12))
    assert report.processed == []
    assert points_service.get_points(db, owner.id) == 100


def test_confirmed_bookings_are_swept_too(db, store, make_user, make_court, make_booking):
    booking = make_booking(make_user(), make_court(), status=BookingStatus.CONFIRMED)
    assert expiry_service.sweep_missed_checkins(db, store, now=at(10)).processed_ids == [booking.id]


def test_zero_extra_rights_policy(db, store, make_user, make_court, make_booking):
    write_setting(db, store, key="no_show_extra_rights_penalty", value=0)
    owner = make_user()
    make_booking(owner, make_court())
    expiry_service.sweep_missed_checkins(db, store, now=at(9, 16))
    assert rights_service.get_consumed_rights(db, owner.id, DAY) == 1


def test_startup_protection_defers_the_sweep(db, store, make_user, make_court, make_booking):
    owner = make_user()
    court = make_court()
    booking = make_booking(owner, court)
    finished = make_booking(owner, court, time_slots=["06:00-07:00"])

    # Only bookings whose window is still open get stamped
    assert expiry_service.protect_on_startup(db, store, now=at(9, 10)) == 1
    db.refresh(finished)
    assert finished.startup_protected_at is None

    assert expiry_service.sweep_missed_checkins(db, store, now=at(9, 16)).processed_ids == [finished.id]
    assert expiry_service.sweep_missed_checkins(db, store, now=at(9, 39)).processed == []
    assert expiry_service.sweep_missed_checkins(db, store, now=at(9, 41)).processed_ids == [booking.id]


def test_protect_on_startup_covers_future_days(db, store, make_user, make_court, make_booking):
    court = make_court()
    make_booking(make_user(), court, date=NEXT_DAY)
    make_booking(make_user(), court, date="2026-03-01")
    assert expiry_service.protect_on_startup(db, store, now=at(9)) == 1


def test_per_booking_failure_is_reported(db, store, make_user, make_court, make_booking, monkeypatch):
    court = make_court()
    bad = make_booking(make_user(), court, time_slots=["08:00-09:00"])
    good = make_booking(make_user(), court, time_slots=["09:00-10:00"])

    real = expiry_service.apply_no_show

    def flaky(session, policy, booking, **kwargs):
        if booking.id == bad.id:
            raise RuntimeError("boom")
        return real(session, policy, booking, **kwargs)

    monkeypatch.setattr(expiry_service, "apply_no_show", flaky)
    report = expiry_service.sweep_missed_checkins(db, store, now=at(10))
    assert report.processed_ids == [good.id]
    assert report.errors == [(bad.id, "boom")]


def test_auto_cancelled_today(db, store, make_user, make_court, make_booking):
    owner = make_user()
    mate = make_user()
    court = make_court()
    booking = make_booking(owner, court, participants=[mate])
    make_booking(make_user(), court, time_slots=["10:00-11:00"])

    out = expiry_service.auto_cancelled_today(db, store, mate.id, now=at(9, 20))
    assert [e["booking_id"] for e in out["expired_bookings"]] == [booking.id]
    assert out["total_penalty_points"] == 50

    nothing = expiry_service.auto_cancelled_today(db, store, make_user().id, now=at(9, 20))
    assert nothing["expired_bookings"] == []
    assert nothing["message"] == "No expired bookings found"


def test_watcher_run_once_uses_its_own_session(db, session_factory, store, make_user, make_court, make_booking):
    owner = make_user()
    booking = make_booking(owner, make_court())
    db.commit()

    watcher = ExpiryWatcher(session_factory, store, interval_seconds=60, clock=lambda: at(9, 16))
    report = watcher.run_once()
    assert report.processed_ids == [booking.id]

    db.expire_all()
    assert db.get(Booking, booking.id).status == BookingStatus.CANCELLED


def test_watcher_run_once_swallows_errors(store):
    class _BrokenSession:
        closed = False

        def get(self, *args, **kwargs):
            raise RuntimeError("database unavailable")

        def close(self):
            self.closed = True

    session = _BrokenSession()
    watcher = ExpiryWatcher(lambda: session, store, clock=lambda: at(9, 16))
    assert watcher.run_once() is None
    assert session.closed


def test_watcher_start_and_stop(store, session_factory):
    watcher = ExpiryWatcher(session_factory, store, interval_seconds=3600)

    async def cycle():
        watcher.start()
        await asyncio.sleep(0)
        assert watcher.running
        watcher.start()
        await watcher.stop()
        assert not watcher.running

    asyncio.run(cycle())


def test_verified_confirmed_booking_is_still_swept(db, store, make_user, make_court, make_booking):
    booking = make_booking(
        make_user(), make_court(), status=BookingStatus.CONFIRMED, is_qr_verified=True, is_location_verified=True
    )
    assert expiry_service.sweep_missed_checkins(db, store, now=at(9, 16)).processed_ids == [booking.id]


def test_watcher_stop_logs_worker_failure(store, session_factory, monkeypatch):
    watcher = ExpiryWatcher(session_factory, store, interval_seconds=3600)

    def boom():
        raise RuntimeError("worker died")

    monkeypatch.setattr(watcher, "_worker", boom)

    async def cycle():
        watcher.start()
        await asyncio.sleep(0.05)
        await watcher.stop()
        assert not watcher.running

    asyncio.run(cycle())


def test_watcher_stop_does_not_hide_cancellation(store, session_factory):
    watcher = ExpiryWatcher(session_factory, store, interval_seconds=3600)

    async def cycle():
        watcher.start()
        await asyncio.sleep(0)
        watcher._task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await watcher.stop()
        assert not watcher.running

    asyncio.run(cycle())
