from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from sportslot.core.config import get_settings
from sportslot.core.errors import (
    BookingForbidden,
    BookingNotFound,
    BookingValidationError,
    InvalidTransition,
    QuotaExceeded,
    ReplacementRequired,
    RequestLimitExceeded,
)
from sportslot.models.booking import Booking, BookingKind, BookingParticipant, BookingStatus
from sportslot.models.court import Court
from sportslot.models.penalty import Penalty
from sportslot.models.user import User
from sportslot.services import conflict_service, notification_service, points_service, rights_service
from sportslot.services.cancellation_policy import evaluate_cancellation
from sportslot.services.points_service import BatchResult
from sportslot.services.settings_service import PolicyStore
from sportslot.services.timeslots import earliest_start_minutes, local_now, normalize_date, parse_slot

logger = logging.getLogger(__name__)

TRANSITIONS: dict[str, tuple[str, ...]] = {
    BookingStatus.PENDING: (BookingStatus.CONFIRMED, BookingStatus.CANCELLED, BookingStatus.EXPIRED),
    BookingStatus.CONFIRMED: (BookingStatus.CHECKED_IN, BookingStatus.CANCELLED, BookingStatus.EXPIRED),
    BookingStatus.CHECKED_IN: (BookingStatus.COMPLETED,),
    BookingStatus.COMPLETED: (),
    BookingStatus.CANCELLED: (),
    BookingStatus.EXPIRED: (),
}

ADMIN_SETTABLE_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.CANCELLED)

_NOT_CANCELLABLE = {
    BookingStatus.CANCELLED: "This booking has already been cancelled",
    BookingStatus.CHECKED_IN: "Cannot cancel: the booking is already checked in",
    BookingStatus.COMPLETED: "Cannot cancel: the booking is already completed",
    BookingStatus.EXPIRED: "Cannot cancel: the booking has expired",
}


@dataclass
class CreateResult:
    booking: Booking
    message: str
    warning: str


@dataclass
class CancelResult:
    booking: Booking
    late: bool
    penalty_points: int
    message: str
    rights: BatchResult = field(default_factory=BatchResult)
    penalties: BatchResult = field(default_factory=BatchResult)

    @property
    def penalty_applied(self) -> bool:
        return self.penalty_points > 0


def _utc(now: datetime | None) -> datetime:
    return local_now(now).astimezone(timezone.utc)


def get_booking(db: Session, booking_id: str) -> Booking:
    booking = db.get(Booking, booking_id)
    if booking is None:
        raise BookingNotFound("Booking not found")
    return booking


def booking_summary(b: Booking) -> dict[str, Any]:
    return {
        "id": b.id,
        "court_id": b.court_id,
        "court_name": b.court_name,
        "time_slots": list(b.time_slots or []),
        "date": b.date,
        "status": b.status,
    }


def no_show_warning(db: Session, store: PolicyStore, booking_kind: str) -> str:
    if booking_kind == BookingKind.ACTIVITY:
        return "Activity booking: no points are deducted automatically if nobody checks in"
    penalty = store.get_int(db, "penalty_no_checkin_auto_cancel")
    return f"If you do not check in on time the system will cancel the booking and deduct {penalty} points"


def _success_message(db: Session, store: PolicyStore, booking_kind: str) -> str:
    noun = "Activity" if booking_kind == BookingKind.ACTIVITY else "Court"
    if store.get_boolean(db, "require_qr_verification"):
        return f"{noun} booked. Please scan the QR code at the court on the booked date and time"
    return f"{noun} booked. Please follow the check-in steps on the booked date and time"


def _count_requests_today(db: Session, user_id: str, now: datetime | None) -> int:
    day_start = local_now(now).replace(hour=0, minute=0, second=0, microsecond=0)
    start = day_start.astimezone(timezone.utc)
    end = (day_start + timedelta(days=1)).astimezone(timezone.utc)
    q = select(func.count(Booking.id)).where(Booking.owner_id == user_id, Booking.created_at >= start, Booking.created_at < end)
    return int(db.execute(q).scalar_one())


def _owned_on(db: Session, user_id: str, date: str) -> list[Booking]:
    q = (
        select(Booking)
        .where(Booking.owner_id == user_id, Booking.date == date, Booking.status.in_(BookingStatus.INVOLVEMENT))
        .order_by(Booking.created_at.asc())
    )
    return list(db.execute(q).scalars().all())


def _normalize_codes(codes: list[str] | None) -> list[str]:
    out: list[str] = []
    for c in codes or []:
        code = str(c).strip().upper()
        if code and code not in out:
            out.append(code)
    return out


def _resolve_participants(db: Session, codes: list[str]) -> list[User]:
    users: list[User] = []
    for code in codes:
        u = db.execute(select(User).where(User.user_code == code)).scalar_one_or_none()
        if u is None:
            raise BookingValidationError(f"User code not found: {code}")
        if not u.is_active or not u.is_email_verified:
            raise BookingValidationError(f"Code {code} cannot be used (account inactive or email not verified)")
        if (u.points or 0) <= 0:
            raise BookingValidationError(f"Code {code} has 0 points and cannot be used for booking")
        users.append(u)
    return users


def _stage_booking(
    db: Session,
    store: PolicyStore,
    *,
    requester: User,
    court_id: str,
    date: Any,
    time_slots: list[str],
    booking_kind: str = BookingKind.REGULAR,
    activity_type: str = "",
    note: str = "",
    responsible_person: str = "",
    participant_codes: list[str] | None = None,
    now: datetime | None = None,
) -> tuple[Booking, list[User]]:
    """Validate and stage a booking with its slot claims. Flushes but does not commit."""
    privileged = requester.is_admin

    if not court_id or not date or not time_slots:
        raise BookingValidationError("Missing required booking fields")
    target = normalize_date(date)
    if target is None:
        raise BookingValidationError("Invalid booking date")
    slots = list(dict.fromkeys(time_slots))
    for slot in slots:
        if parse_slot(slot) is None:
            raise BookingValidationError(f"Invalid time slot: {slot}")
    if booking_kind not in (BookingKind.REGULAR, BookingKind.ACTIVITY):
        raise BookingValidationError("booking_kind must be regular or activity")

    if not privileged:
        if requester.is_request_blocked:
            raise BookingForbidden("Your account is blocked from submitting booking requests")
        if requester.booking_ban_date and requester.booking_ban_date == target:
            raise BookingForbidden("You are banned from booking on this date because of an earlier violation")
        limit = get_settings().daily_request_limit
        if _count_requests_today(db, requester.id, now) >= limit:
            raise RequestLimitExceeded(f"You have already submitted {limit} booking requests today")

    court = db.get(Court, court_id)
    if court is None:
        raise BookingNotFound("Court not found")
    if not court.is_available:
        raise BookingValidationError("Court is not available for booking")

    if not privileged:
        owned = _owned_on(db, requester.id, target)
        effective = rights_service.get_effective_rights(db, store, requester)
        if len(owned) >= effective:
            non_pending = [b for b in owned if b.status != BookingStatus.PENDING]
            if non_pending:
                raise QuotaExceeded(
                    "You have reached the maximum number of bookings for this day",
                    user_id=requester.id,
                    user_label=requester.user_code or requester.display_name,
                    limit=effective,
                )
            if owned:
                raise ReplacementRequired(
                    "You already have a pending booking. Cancel it to book this one instead?",
                    existing_bookings=[booking_summary(b) for b in owned],
                    new_booking={
                        "court_id": court_id,
                        "court_name": court.name,
                        "date": target,
                        "time_slots": slots,
                        "booking_kind": booking_kind,
                        "activity_type": activity_type,
                        "note": note,
                        "participant_codes": list(participant_codes or []),
                    },
                )

    required_players = court.effective_required_players
    codes = _normalize_codes(participant_codes)
    participants: list[User] = []
    if not privileged:
        needed = max(0, required_players - 1)
        if len(codes) != needed:
            raise BookingValidationError(f"Exactly {needed} participant code(s) are required")
        if not requester.user_code:
            raise BookingValidationError("Your account has no user code yet; please sign in again")
        if requester.user_code in codes:
            raise BookingValidationError("You cannot use your own code")
        if (requester.points or 0) <= 0:
            raise BookingValidationError("Your points are 0; you cannot book until points are restored")
        participants = _resolve_participants(db, codes)
        rights_service.ensure_quota(db, store, [requester, *participants], target, requester_id=requester.id)

    conflict_service.ensure_no_conflict(db, court_id=court_id, date=target, slots=slots)

    stamp = _utc(now)
    booking = Booking(
        owner_id=requester.id,
        owner_name=requester.display_name,
        owner_student_id=requester.student_id,
        court_id=court.id,
        court_name=court.name,
        date=target,
        time_slots=slots,
        status=BookingStatus.CHECKED_IN if privileged else BookingStatus.PENDING,
        booking_kind=booking_kind,
        required_players=required_players,
        activity_type=activity_type or "",
        note=note or "",
        responsible_person=(responsible_person or "") if booking_kind == BookingKind.ACTIVITY else "",
        is_qr_verified=privileged,
        is_location_verified=privileged,
        admin_created=privileged,
        confirmed_at=stamp if privileged else None,
        checked_in_at=stamp if privileged else None,
        created_at=stamp,
        updated_at=stamp,
    )
    booking.participants = [
        BookingParticipant(user_id=u.id, user_code=u.user_code or "", user_name=u.display_name) for u in participants
    ]
    db.add(booking)
    db.flush()
    conflict_service.add_claims(db, booking)
    return booking, participants


def _announce(db: Session, store: PolicyStore, booking: Booking, requester: User, participants: list[User]) -> CreateResult:
    db.refresh(booking)
    logger.info(
        "Booking %s created by %s: court=%s date=%s slots=%s status=%s",
        booking.id, requester.id, booking.court_id, booking.date, booking.time_slots, booking.status,
    )

    when = ", ".join(booking.time_slots)
    who = requester.display_name + (f" ({requester.student_id})" if requester.student_id else "")
    for u in participants:
        notification_service.notify(
            db,
            user_id=u.id,
            kind="code_usage_notice",
            title="Your code was used for a court booking",
            body=f"{who} used your code ({u.user_code}) to book {booking.court_name} on {booking.date} at {when}",
            related_id=booking.id,
        )

    return CreateResult(
        booking=booking,
        message=_success_message(db, store, booking.booking_kind),
        warning=no_show_warning(db, store, booking.booking_kind),
    )


def create_booking(db: Session, store: PolicyStore, *, requester: User, now: datetime | None = None, **fields: Any) -> CreateResult:
    """Create a booking for `requester`.

    `fields` are court_id, date, time_slots, booking_kind, activity_type, note,
    responsible_person and participant_codes. Admins get a checked-in booking
    without code, quota or verification checks. Participants are notified
    after the commit.
    """
    booking, participants = _stage_booking(db, store, requester=requester, now=now, **fields)
    db.commit()
    return _announce(db, store, booking, requester, participants)


def replace_pending_bookings(
    db: Session,
    store: PolicyStore,
    *,
    requester: User,
    booking_ids: list[Any],
    now: datetime | None = None,
    **new_booking: Any,
) -> tuple[list[str], CreateResult]:
    """Cancel the requester's own pending bookings and create the new booking in one commit.

    Cancellation here consumes no rights. If the new booking fails validation
    the cancellations are rolled back and the old bookings stay pending.
    """
    if not isinstance(booking_ids, list):
        raise BookingValidationError("booking_ids must be a list")
    for i, bid in enumerate(booking_ids):
        if not isinstance(bid, str):
            raise BookingValidationError(f"Invalid booking id at index {i}: expected string")

    targets: list[Booking] = []
    for bid in booking_ids:
        b = get_booking(db, bid)
        if b.owner_id != requester.id:
            raise BookingForbidden("You can only replace your own bookings")
        if b.status != BookingStatus.PENDING:
            raise InvalidTransition(
                f"Booking {bid} is {b.status} and cannot be replaced",
                current_status=b.status,
                target_status=BookingStatus.CANCELLED,
            )
        targets.append(b)

    stamp = _utc(now)
    for b in targets:
        b.status = BookingStatus.CANCELLED
        b.cancelled_at = stamp
        b.cancellation_reason = "Cancelled to make a new booking (confirmed by user)"
        conflict_service.release_claims(db, b.id)
    db.flush()

    try:
        booking, participants = _stage_booking(db, store, requester=requester, now=now, **new_booking)
    except Exception:
        db.rollback()
        raise
    db.commit()
    cancelled = [b.id for b in targets]
    logger.info("User %s replaced pending bookings %s with %s", requester.id, cancelled, booking.id)

    return cancelled, _announce(db, store, booking, requester, participants)


def cancel_booking(
    db: Session,
    store: PolicyStore,
    *,
    booking_id: str,
    requester: User,
    reason: str = "",
    now: datetime | None = None,
) -> CancelResult:
    booking = get_booking(db, booking_id)
    if booking.owner_id != requester.id:
        raise BookingForbidden("Only the booking owner can cancel this booking")
    if booking.status not in BookingStatus.AWAITING_CHECKIN:
        raise InvalidTransition(
            _NOT_CANCELLABLE.get(booking.status, f"Cannot cancel a booking with status {booking.status}"),
            current_status=booking.status,
            target_status=BookingStatus.CANCELLED,
        )

    booking_date = normalize_date(booking.date)
    free_hours = store.get_number(db, "cancel_free_hours")
    decision = evaluate_cancellation(now, booking_date, earliest_start_minutes(booking.time_slots), free_hours)
    if not decision.allowed:
        raise BookingValidationError(decision.reason)

    late_penalty = store.get_int(db, "penalty_late_cancel")
    penalize = decision.late and late_penalty > 0
    if not reason:
        reason = (
            f"Cancelled within {free_hours} hour(s) of the start" if decision.late else f"Cancelled at least {free_hours} hour(s) ahead"
        )

    stmt = (
        update(Booking)
        .where(Booking.id == booking.id, Booking.status.in_(BookingStatus.AWAITING_CHECKIN))
        .values(
            status=BookingStatus.CANCELLED,
            cancelled_at=_utc(now),
            cancellation_reason=reason,
            is_late_cancellation=decision.late,
        )
    )
    if db.execute(stmt).rowcount != 1:
        db.rollback()
        db.refresh(booking)
        raise InvalidTransition(
            _NOT_CANCELLABLE.get(booking.status, "Booking status changed; cannot cancel"),
            current_status=booking.status,
            target_status=BookingStatus.CANCELLED,
        )
    conflict_service.release_claims(db, booking.id)
    db.commit()
    db.refresh(booking)

    users = booking.involved_user_ids
    rights = rights_service.consume_for_users(db, users, booking_date, 1)
    penalties = BatchResult()
    if penalize:
        penalties = points_service.penalize_users(
            db,
            booking=booking,
            user_ids=users,
            points=late_penalty,
            reason=f"Late cancellation (within {free_hours} hour(s) of the start)",
        )
    logger.info(
        "Booking %s cancelled by owner (late=%s, penalty=%s, rights_failed=%s, penalty_failed=%s)",
        booking.id,
        decision.late,
        late_penalty if penalize else 0,
        rights.failed,
        penalties.failed,
    )

    if penalize:
        message = f"Cancelled late (within {free_hours} hour(s)); {late_penalty} points and 1 booking right deducted"
    else:
        message = "Cancelled; 1 booking right deducted"
    return CancelResult(
        booking=booking,
        late=decision.late,
        penalty_points=late_penalty if penalize else 0,
        message=message,
        rights=rights,
        penalties=penalties,
    )


def _award_once(db: Session, store: PolicyStore, booking: Booking) -> BatchResult:
    """Capped bonus for every involved user, at most once per booking."""
    if not points_service.claim_points_award(db, booking.id):
        db.commit()
        return BatchResult()
    db.commit()
    bonus = store.get_int(db, "bonus_completed_booking")
    result = points_service.award_bonus(db, booking=booking, user_ids=booking.involved_user_ids, bonus=bonus)
    if result.failed:
        logger.warning("Bonus for booking %s failed for %s", booking.id, result.failed)
    return result


def update_status(
    db: Session,
    store: PolicyStore,
    *,
    booking_id: str,
    requester: User,
    status: str,
    reason: str = "",
    now: datetime | None = None,
) -> tuple[Booking, str, BatchResult]:
    booking = get_booking(db, booking_id)
    if booking.owner_id != requester.id:
        raise BookingForbidden("Only the booking owner can update this booking")
    if status not in BookingStatus.ALL:
        raise BookingValidationError(f"Unknown status: {status}")

    old_status = booking.status
    if status not in TRANSITIONS.get(old_status, ()):
        raise InvalidTransition(
            f"Cannot change status from {old_status} to {status}",
            current_status=old_status,
            target_status=status,
        )

    stamp = _utc(now)
    values: dict[str, Any] = {"status": status}
    if status == BookingStatus.CONFIRMED:
        values["confirmed_at"] = stamp
        if not store.get_boolean(db, "require_qr_verification"):
            values["is_qr_verified"] = True
    elif status == BookingStatus.CHECKED_IN:
        values["checked_in_at"] = stamp
        if not store.get_boolean(db, "require_location_verification"):
            values["is_location_verified"] = True
    elif status == BookingStatus.COMPLETED:
        values["completed_at"] = stamp
    elif status == BookingStatus.CANCELLED:
        values["cancelled_at"] = stamp
        if reason:
            values["cancellation_reason"] = reason
    elif status == BookingStatus.EXPIRED:
        values["expired_at"] = stamp

    stmt = update(Booking).where(Booking.id == booking.id, Booking.status == old_status).values(**values)
    if db.execute(stmt).rowcount != 1:
        db.rollback()
        raise InvalidTransition("Booking status changed concurrently", current_status=old_status, target_status=status)
    if status in BookingStatus.RELEASED:
        conflict_service.release_claims(db, booking.id)
    db.commit()
    db.refresh(booking)
    logger.info("Booking %s: %s -> %s", booking.id, old_status, status)

    awarded = BatchResult()
    if status in (BookingStatus.CHECKED_IN, BookingStatus.COMPLETED):
        awarded = _award_once(db, store, booking)
        db.refresh(booking)
    return booking, old_status, awarded


def confirm_with_verification(
    db: Session,
    store: PolicyStore,
    *,
    booking_id: str,
    requester: User,
    qr_data: dict | None = None,
    location: dict | None = None,
    now: datetime | None = None,
) -> tuple[Booking, int, BatchResult]:
    """QR/location check-in by the owner or a participant; returns the caller's points afterwards."""
    booking = get_booking(db, booking_id)
    if requester.id != booking.owner_id and requester.id not in booking.participant_ids:
        raise BookingForbidden("Only the owner or a participant added by code can confirm this booking")
    if booking.status not in BookingStatus.AWAITING_CHECKIN:
        raise InvalidTransition(
            f"Cannot confirm a booking with status {booking.status}",
            current_status=booking.status,
            target_status=BookingStatus.CHECKED_IN,
        )

    values: dict[str, Any] = {
        "status": BookingStatus.CHECKED_IN,
        "is_qr_verified": True,
        "is_location_verified": True,
        "checked_in_at": _utc(now),
    }
    if qr_data:
        values["qr_data"] = qr_data
    if location:
        values["location"] = location
    stmt = (
        update(Booking)
        .where(Booking.id == booking.id, Booking.status.in_(BookingStatus.AWAITING_CHECKIN))
        .values(**values)
    )
    if db.execute(stmt).rowcount != 1:
        db.rollback()
        raise InvalidTransition("Booking status changed concurrently", target_status=BookingStatus.CHECKED_IN)
    db.commit()
    db.refresh(booking)
    logger.info("Booking %s checked in by %s via verification", booking.id, requester.id)

    awarded = _award_once(db, store, booking)
    db.refresh(booking)
    return booking, points_service.get_points(db, requester.id), awarded


def admin_set_status(db: Session, *, booking_id: str, status: str, reason: str = "", now: datetime | None = None) -> Booking:
    """Administrative override restricted to pending, confirmed and cancelled."""
    if status not in ADMIN_SETTABLE_STATUSES:
        raise BookingValidationError("Status must be one of pending, confirmed, cancelled")
    booking = get_booking(db, booking_id)
    old_status = booking.status
    if old_status == status:
        return booking

    stamp = _utc(now)
    booking.status = status
    if status == BookingStatus.CONFIRMED:
        booking.confirmed_at = stamp
    elif status == BookingStatus.CANCELLED:
        booking.cancelled_at = stamp
        booking.cancellation_reason = reason or "Cancelled by administrator"

    if old_status not in BookingStatus.RELEASED and status in BookingStatus.RELEASED:
        conflict_service.release_claims(db, booking.id)
    elif old_status in BookingStatus.RELEASED and status not in BookingStatus.RELEASED:
        conflict_service.add_claims(db, booking)
    db.commit()
    db.refresh(booking)
    logger.info("Admin override on booking %s: %s -> %s", booking.id, old_status, status)
    return booking


def purge_booking(db: Session, *, booking_id: str) -> None:
    booking = get_booking(db, booking_id)
    conflict_service.release_claims(db, booking.id)
    db.execute(update(Penalty).where(Penalty.booking_id == booking.id).values(booking_id=None))
    db.delete(booking)
    db.commit()
    logger.info("Booking %s purged", booking_id)


def list_user_bookings(db: Session, user_id: str) -> list[tuple[Booking, str]]:
    """Bookings the user owns or joins, newest first, each with the user's role."""
    q = (
        select(Booking)
        .outerjoin(BookingParticipant, BookingParticipant.booking_id == Booking.id)
        .where(or_(Booking.owner_id == user_id, BookingParticipant.user_id == user_id))
        .order_by(Booking.created_at.desc())
    )
    rows = db.execute(q).scalars().unique().all()
    return [(b, "owner" if b.owner_id == user_id else "participant") for b in rows]


def day_schedule(db: Session, date: str) -> list[Booking]:
    target = normalize_date(date)
    if target is None:
        raise BookingValidationError("Invalid date")
    rows = db.execute(select(Booking).where(Booking.date == target).order_by(Booking.court_name)).scalars().all()
    return sorted(rows, key=lambda b: (b.court_name, earliest_start_minutes(b.time_slots) or 0))


def list_bookings(
    db: Session,
    *,
    date: str | None = None,
    court_id: str | None = None,
    status: str | None = None,
    limit: int = 1000,
) -> list[Booking]:
    q = select(Booking)
    if date:
        q = q.where(Booking.date == date)
    if court_id:
        q = q.where(Booking.court_id == court_id)
    if status:
        q = q.where(Booking.status == status)
    q = q.order_by(Booking.date.desc(), Booking.created_at.desc())
    return list(db.execute(q.limit(limit)).scalars().all())
