from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from sqlalchemy import case, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from sportslot.core.errors import BookingValidationError
from sportslot.models.booking import Booking
from sportslot.models.penalty import Penalty
from sportslot.models.user import MAX_POINTS, User
from sportslot.services import notification_service

logger = logging.getLogger(__name__)


@dataclass
class BatchResult:
    """Outcome of a per-user fan-out; users are processed independently."""

    succeeded: list[str] = field(default_factory=list)
    failed: list[tuple[str, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def as_dict(self) -> dict:
        return {"succeeded": list(self.succeeded), "failed": [{"user_id": u, "error": e} for u, e in self.failed]}


def get_points(db: Session, user_id: str) -> int:
    return int(db.execute(select(User.points).where(User.id == user_id)).scalar_one_or_none() or 0)


def deduct_points(db: Session, user_id: str, amount: int) -> None:
    """points = max(0, points - amount) as one UPDATE. Does not commit."""
    if amount <= 0:
        return
    new_value = User.points - amount
    db.execute(update(User).where(User.id == user_id).values(points=case((new_value < 0, 0), else_=new_value)))


def add_capped_bonus(db: Session, user_id: str, bonus: int) -> bool:
    """points = min(MAX_POINTS, points + bonus); no write when already at the cap. Does not commit."""
    if bonus <= 0:
        return False
    new_value = User.points + bonus
    stmt = (
        update(User)
        .where(User.id == user_id, User.points < MAX_POINTS)
        .values(points=case((new_value > MAX_POINTS, MAX_POINTS), else_=new_value))
    )
    return bool(db.execute(stmt).rowcount)


def adjust_points(db: Session, user: User, *, action: str, amount: int) -> int:
    """Admin correction: add, subtract (floored at 0) or set (>= 0)."""
    if amount < 0:
        raise BookingValidationError("Amount must not be negative")
    if action == "add":
        db.execute(update(User).where(User.id == user.id).values(points=User.points + amount))
    elif action == "subtract":
        deduct_points(db, user.id, amount)
    elif action == "set":
        db.execute(update(User).where(User.id == user.id).values(points=amount))
    else:
        raise BookingValidationError("Action must be one of add, subtract, set")
    db.commit()
    db.refresh(user)
    return user.points


def has_penalty(db: Session, booking_id: str, user_id: str) -> bool:
    q = select(Penalty.id).where(Penalty.booking_id == booking_id, Penalty.user_id == user_id).limit(1)
    return db.execute(q).first() is not None


def apply_penalty(db: Session, *, booking: Booking, user_id: str, points: int, reason: str) -> bool:
    """Record one penalty for (booking, user) and deduct its points.

    Returns False when the penalty already exists. Commits.
    """
    if has_penalty(db, booking.id, user_id):
        return False
    try:
        db.add(
            Penalty(
                user_id=user_id,
                booking_id=booking.id,
                penalty_points=points,
                reason=reason,
                court_name=booking.court_name,
                booking_date=booking.date,
                booking_kind=booking.booking_kind,
            )
        )
        db.flush()
    except IntegrityError:
        db.rollback()
        return False
    deduct_points(db, user_id, points)
    db.commit()
    return True


def penalize_users(db: Session, *, booking: Booking, user_ids: Iterable[str], points: int, reason: str) -> BatchResult:
    result = BatchResult()
    for uid in user_ids:
        try:
            if apply_penalty(db, booking=booking, user_id=uid, points=points, reason=reason):
                notification_service.notify(
                    db,
                    user_id=uid,
                    kind="penalty",
                    title="Points deducted",
                    body=f"{points} point(s) deducted: {reason} ({booking.court_name} {booking.date})",
                    related_id=booking.id,
                )
            result.succeeded.append(uid)
        except Exception as exc:
            db.rollback()
            logger.warning("Penalty for user %s on booking %s failed: %s", uid, booking.id, exc)
            result.failed.append((uid, str(exc)))
    return result


def award_bonus(db: Session, *, booking: Booking, user_ids: Iterable[str], bonus: int) -> BatchResult:
    result = BatchResult()
    if bonus <= 0:
        return result
    for uid in user_ids:
        try:
            changed = add_capped_bonus(db, uid, bonus)
            db.commit()
            if changed:
                notification_service.notify(
                    db,
                    user_id=uid,
                    kind="points_bonus",
                    title="Bonus points",
                    body=f"You received up to {bonus} point(s) for using {booking.court_name} on {booking.date}",
                    related_id=booking.id,
                )
            result.succeeded.append(uid)
        except Exception as exc:
            db.rollback()
            logger.warning("Bonus for user %s on booking %s failed: %s", uid, booking.id, exc)
            result.failed.append((uid, str(exc)))
    return result


def claim_points_award(db: Session, booking_id: str) -> bool:
    """Set bookings.points_awarded if still false; True only for the caller that flipped it. Does not commit."""
    stmt = update(Booking).where(Booking.id == booking_id, Booking.points_awarded.is_(False)).values(points_awarded=True)
    return db.execute(stmt).rowcount == 1


def penalty_history(db: Session, user_id: str) -> tuple[list[Penalty], int]:
    rows = db.execute(select(Penalty).where(Penalty.user_id == user_id).order_by(Penalty.created_at.desc())).scalars().all()
    return list(rows), sum(int(p.penalty_points or 0) for p in rows)
