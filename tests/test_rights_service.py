import pytest
from sqlalchemy import select

from helpers import DAY, NEXT_DAY, at
from sportslot.core.errors import QuotaExceeded
from sportslot.models.booking import BookingStatus
from sportslot.models.user import UserDailyRights
from sportslot.services import rights_service
from sportslot.services.settings_service import write_setting


def test_involvement_counts_owner_and_participant(db, make_user, make_court, make_booking):
    owner = make_user()
    mate = make_user()
    make_booking(owner, make_court(), participants=[mate])

    assert rights_service.count_active_involvements(db, owner.id, DAY) == 1
    assert rights_service.count_active_involvements(db, mate.id, DAY) == 1
    assert rights_service.count_active_involvements(db, mate.id, NEXT_DAY) == 0


def test_cancelled_and_expired_do_not_count(db, make_user, make_court, make_booking):
    owner = make_user()
    court = make_court()
    make_booking(owner, court, status=BookingStatus.CANCELLED, time_slots=["09:00-10:00"])
    make_booking(owner, court, status=BookingStatus.EXPIRED, time_slots=["10:00-11:00"])
    make_booking(owner, court, status=BookingStatus.COMPLETED, time_slots=["11:00-12:00"])

    assert rights_service.count_active_involvements(db, owner.id, DAY) == 1
    assert [b.status for b in rights_service.list_involvements(db, owner.id, DAY)] == [BookingStatus.COMPLETED]


def test_add_consumed_rights_inserts_then_increments(db, make_user):
    user = make_user()
    rights_service.add_consumed_rights(db, user.id, DAY, 1)
    db.commit()
    rights_service.add_consumed_rights(db, user.id, DAY, 2)
    db.commit()
    rights_service.add_consumed_rights(db, user.id, DAY, 0)
    db.commit()

    assert rights_service.get_consumed_rights(db, user.id, DAY) == 3
    rows = db.execute(select(UserDailyRights).where(UserDailyRights.user_id == user.id)).scalars().all()
    assert len(rows) == 1


def test_consume_for_users_is_per_user(db, make_user):
    a = make_user()
    b = make_user()
    result = rights_service.consume_for_users(db, [a.id, b.id], DAY, 2)
    assert result.ok
    assert rights_service.get_consumed_rights(db, a.id, DAY) == 2
    assert rights_service.get_consumed_rights(db, b.id, DAY) == 2
    db.refresh(a)
    assert a.consumed_rights_by_date == {DAY: 2}


def test_used_total_combines_involvement_and_consumed(db, store, make_user, make_court, make_booking):
    user = make_user()
    make_booking(user, make_court())
    rights_service.add_consumed_rights(db, user.id, DAY, 1)
    db.commit()

    assert rights_service.used_total(db, user.id, DAY) == 2
    assert rights_service.remaining_rights(db, store, user, DAY) == 0


def test_effective_rights_ignores_negative_extra(db, store, make_user):
    user = make_user(extra_daily_rights=-3)
    assert rights_service.get_effective_rights(db, store, user) == 1

    write_setting(db, store, key="daily_rights_per_user", value=2)
    user.extra_daily_rights = 2
    assert rights_service.get_effective_rights(db, store, user) == 4


def test_set_extra_daily_rights_clamps(db, make_user):
    user = make_user()
    assert rights_service.set_extra_daily_rights(db, user, 99) == 50
    assert rights_service.set_extra_daily_rights(db, user, -99) == -10
    assert rights_service.set_extra_daily_rights(db, user, 3) == 3


def test_ensure_quota_names_the_exhausted_participant(db, store, make_user, make_court, make_booking):
    owner = make_user()
    mate = make_user()
    make_booking(mate, make_court(), status=BookingStatus.CONFIRMED)

    with pytest.raises(QuotaExceeded) as exc:
        rights_service.ensure_quota(db, store, [owner, mate], DAY, requester_id=owner.id)
    assert exc.value.user_id == mate.id
    assert mate.user_code in exc.value.message
    assert exc.value.detail["user"] == mate.user_code


def test_ensure_quota_requester_message(db, store, make_user):
    owner = make_user()
    rights_service.add_consumed_rights(db, owner.id, DAY, 1)
    db.commit()

    with pytest.raises(QuotaExceeded) as exc:
        rights_service.ensure_quota(db, store, [owner], DAY, requester_id=owner.id)
    assert exc.value.message.startswith("You have used all 1")


def test_extra_rights_open_another_booking(db, store, make_user, make_court, make_booking):
    owner = make_user(extra_daily_rights=1)
    make_booking(owner, make_court())
    rights_service.ensure_quota(db, store, [owner], DAY, requester_id=owner.id)


def test_code_status_on_a_fresh_day(db, store, make_user):
    user = make_user()
    status = rights_service.code_status(db, store, user, now=at(13, 30))
    assert status["date"] == DAY
    assert status["used_total"] == 0
    assert status["remaining_rights"] == 1
    assert status["effective_daily_rights"] == 1
    assert status["next_available_at"] == at(0, day=NEXT_DAY).isoformat()
    assert status["seconds_until_reset"] == (10 * 60 + 30) * 60


def test_code_status_counts_bookings_and_consumption(db, store, make_user, make_court, make_booking):
    user = make_user(extra_daily_rights=2)
    make_booking(user, make_court())
    rights_service.add_consumed_rights(db, user.id, DAY, 1)
    db.commit()

    status = rights_service.code_status(db, store, user, now=at(12))
    assert status["used_count"] == 1
    assert status["consumed_count"] == 1
    assert status["used_total"] == 2
    assert status["effective_daily_rights"] == 3
    assert status["remaining_rights"] == 1


def test_code_status_before_reset_boundary_uses_previous_day(db, store, make_user, make_court, make_booking):
    write_setting(db, store, key="reset_boundary_hour", value=6)
    user = make_user()
    make_booking(user, make_court(), date="2026-03-09")

    status = rights_service.code_status(db, store, user, now=at(5))
    assert status["date"] == "2026-03-09"
    assert status["remaining_rights"] == 0
    assert status["seconds_until_reset"] == 3600

    later = rights_service.code_status(db, store, user, now=at(6))
    assert later["date"] == DAY
    assert later["remaining_rights"] == 1
