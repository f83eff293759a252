from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import distinct, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from sportslot.core.errors import QuotaExceeded
from sportslot.models.booking import Booking, BookingParticipant, BookingStatus
from sportslot.models.user import EXTRA_RIGHTS_MAX, EXTRA_RIGHTS_MIN, User, UserDailyRights
from sportslot.services.points_service import BatchResult
from sportslot.services.settings_service import PolicyStore, reset_boundary_hour
from sportslot.services.timeslots import local_now, next_reset_at, operational_date

logger = logging.getLogger(__name__)


def _involvement_query(user_id: str, date: str, statuses: Iterable[str], *columns):
    return (
        select(*(columns or (Booking,)))
        .select_from(Booking)
        .outerjoin(BookingParticipant, BookingParticipant.booking_id == Booking.id)
        .where(Booking.date == date)
        .where(Booking.status.in_(tuple(statuses)))
        .where(or_(Booking.owner_id == user_id, BookingParticipant.user_id == user_id))
    )


def count_active_involvements(db: Session, user_id: str, date: str) -> int:
    """Distinct bookings on `date` the user owns or joins, in a status that holds a right."""
    q = _involvement_query(user_id, date, BookingStatus.INVOLVEMENT, func.count(distinct(Booking.id)))
    return int(db.execute(q).scalar_one())


def list_involvements(db: Session, user_id: str, date: str) -> list[Booking]:
    q = _involvement_query(user_id, date, BookingStatus.INVOLVEMENT).order_by(Booking.created_at.asc())
    return list(db.execute(q).scalars().unique().all())


def get_consumed_rights(db: Session, user_id: str, date: str) -> int:
    q = select(UserDailyRights.consumed).where(UserDailyRights.user_id == user_id, UserDailyRights.date == date)
    value = db.execute(q).scalar_one_or_none()
    return max(0, int(value or 0))


def base_daily_rights(db: Session, store: PolicyStore) -> int:
    return max(0, store.get_int(db, "daily_rights_per_user"))


def get_effective_rights(db: Session, store: PolicyStore, user: User) -> int:
    return base_daily_rights(db, store) + max(0, int(user.extra_daily_rights or 0))


def used_total(db: Session, user_id: str, date: str) -> int:
    return count_active_involvements(db, user_id, date) + get_consumed_rights(db, user_id, date)


def remaining_rights(db: Session, store: PolicyStore, user: User, date: str) -> int:
    return max(0, get_effective_rights(db, store, user) - used_total(db, user.id, date))


def ensure_quota(db: Session, store: PolicyStore, users: Iterable[User], date: str, *, requester_id: str | None = None) -> None:
    """Raise QuotaExceeded naming the first involved user with no right left on `date`."""
    for user in users:
        effective = get_effective_rights(db, store, user)
        if used_total(db, user.id, date) >= effective:
            if user.id == requester_id:
                message = f"You have used all {effective} booking right(s) for {date}"
            else:
                label = user.user_code or user.display_name
                message = f"User {label} has no booking rights left for {date}"
            raise QuotaExceeded(message, user_id=user.id, user_label=user.user_code or user.display_name, limit=effective)


def add_consumed_rights(db: Session, user_id: str, date: str, amount: int) -> None:
    """Atomically add `amount` to the user's consumed counter for `date`. Does not commit."""
    if amount <= 0:
        return
    stmt = (
        update(UserDailyRights)
        .where(UserDailyRights.user_id == user_id, UserDailyRights.date == date)
        .values(consumed=UserDailyRights.consumed + amount)
    )
    if db.execute(stmt).rowcount:
        return
    try:
        with db.begin_nested():
            db.add(UserDailyRights(user_id=user_id, date=date, consumed=amount))
    except IntegrityError:
        # Row created concurrently
        db.execute(stmt)


def consume_for_users(db: Session, user_ids: Iterable[str], date: str, amount: int) -> BatchResult:
    """Per-user consumption; each user is committed on its own and failures do not undo the others."""
    result = BatchResult()
    for uid in user_ids:
        try:
            add_consumed_rights(db, uid, date, amount)
            db.commit()
            result.succeeded.append(uid)
        except Exception as exc:
            db.rollback()
            logger.warning("Failed to consume %s right(s) for user %s on %s: %s", amount, uid, date, exc)
            result.failed.append((uid, str(exc)))
    return result


def set_extra_daily_rights(db: Session, user: User, value: int) -> int:
    user.extra_daily_rights = max(EXTRA_RIGHTS_MIN, min(EXTRA_RIGHTS_MAX, int(value)))
    db.commit()
    db.refresh(user)
    return user.extra_daily_rights


def code_status(db: Session, store: PolicyStore, user: User, now: datetime | None = None) -> dict:
    """Quota summary for the operational day that `now` falls in."""
    boundary = reset_boundary_hour(db, store)
    op_date = operational_date(now, boundary)
    used_count = count_active_involvements(db, user.id, op_date)
    consumed = get_consumed_rights(db, user.id, op_date)
    base = base_daily_rights(db, store)
    extra = max(0, int(user.extra_daily_rights or 0))
    effective = base + extra
    total = used_count + consumed
    current = local_now(now)
    next_reset = next_reset_at(current, boundary)
    return {
        "date": op_date,
        "used_count": used_count,
        "consumed_count": consumed,
        "used_total": total,
        "base_daily_rights": base,
        "extra_daily_rights": extra,
        "effective_daily_rights": effective,
        "remaining_rights": max(0, effective - total),
        "next_available_at": next_reset.isoformat(),
        "seconds_until_reset": max(0, int((next_reset - current).total_seconds())),
    }
