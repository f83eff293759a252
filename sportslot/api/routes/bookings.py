from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from sportslot.core.deps import get_current_user, get_db, get_now, get_policy
from sportslot.core.errors import BookingForbidden
from sportslot.models.user import User
from sportslot.schemas.booking import (
    BookingCreate,
    BookingCreated,
    BookingOut,
    CancelOut,
    CancelRequest,
    CheckExpiredOut,
    CodeStatusOut,
    ConfirmQrOut,
    ConfirmQrRequest,
    ConfirmReplaceRequest,
    CourtScheduleOut,
    MyBookingOut,
    ReplaceCreated,
    StatusUpdate,
    StatusUpdated,
)
from sportslot.services import booking_service, conflict_service, expiry_service, rights_service
from sportslot.services.audit_service import write_audit_log
from sportslot.services.settings_service import PolicyStore
from sportslot.services.timeslots import normalize_date

router = APIRouter()


@router.post("", response_model=BookingCreated, status_code=status.HTTP_201_CREATED)
def create_booking(
    payload: BookingCreate,
    request: Request,
    db: Session = Depends(get_db),
    store: PolicyStore = Depends(get_policy),
    user: User = Depends(get_current_user),
    now: datetime | None = Depends(get_now),
):
    result = booking_service.create_booking(db, store, requester=user, now=now, **payload.model_dump())
    write_audit_log(
        db,
        actor_user_id=user.id,
        action="BOOKING_CREATE",
        target_type="booking",
        target_id=result.booking.id,
        summary=f"Booked {result.booking.court_name} {result.booking.date}",
        details={"time_slots": result.booking.time_slots, "status": result.booking.status},
        request=request,
    )
    return BookingCreated(
        booking_id=result.booking.id,
        message=result.message,
        warning=result.warning,
        booking=BookingOut.model_validate(result.booking),
    )


@router.post("/confirm-replace", response_model=ReplaceCreated, status_code=status.HTTP_201_CREATED)
def confirm_replace(
    payload: ConfirmReplaceRequest,
    request: Request,
    db: Session = Depends(get_db),
    store: PolicyStore = Depends(get_policy),
    user: User = Depends(get_current_user),
    now: datetime | None = Depends(get_now),
):
    cancelled, result = booking_service.replace_pending_bookings(
        db,
        store,
        requester=user,
        booking_ids=payload.booking_ids_to_cancel,
        now=now,
        **payload.new_booking.model_dump(),
    )
    write_audit_log(
        db,
        actor_user_id=user.id,
        action="BOOKING_REPLACE",
        target_type="booking",
        target_id=result.booking.id,
        summary=f"Replaced {len(cancelled)} pending booking(s)",
        details={"cancelled": cancelled},
        request=request,
    )
    return ReplaceCreated(
        booking_id=result.booking.id,
        message="Previous booking cancelled and new booking created",
        warning=result.warning,
        booking=BookingOut.model_validate(result.booking),
        cancelled_bookings=cancelled,
    )


@router.post("/confirm-qr", response_model=ConfirmQrOut)
def confirm_qr(
    payload: ConfirmQrRequest,
    request: Request,
    db: Session = Depends(get_db),
    store: PolicyStore = Depends(get_policy),
    user: User = Depends(get_current_user),
    now: datetime | None = Depends(get_now),
):
    booking, points, _ = booking_service.confirm_with_verification(
        db,
        store,
        booking_id=payload.booking_id,
        requester=user,
        qr_data=payload.qr_data,
        location=payload.location,
        now=now,
    )
    write_audit_log(
        db,
        actor_user_id=user.id,
        action="BOOKING_CHECKIN",
        target_type="booking",
        target_id=booking.id,
        summary="Checked in with verification",
        request=request,
    )
    return ConfirmQrOut(message="Booking confirmed and checked in", booking=BookingOut.model_validate(booking), points=points)


@router.get("/code-status", response_model=CodeStatusOut)
def code_status(
    db: Session = Depends(get_db),
    store: PolicyStore = Depends(get_policy),
    user: User = Depends(get_current_user),
    now: datetime | None = Depends(get_now),
):
    return rights_service.code_status(db, store, user, now=now)


@router.get("/mine", response_model=list[MyBookingOut])
def my_bookings(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return [
        MyBookingOut(**BookingOut.model_validate(b).model_dump(), role=role)
        for b, role in booking_service.list_user_bookings(db, user.id)
    ]


@router.get("/schedule/{date}", response_model=list[BookingOut])
def schedule(date: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return booking_service.day_schedule(db, date)


@router.get("/court-schedule/{court_id}/{date}", response_model=CourtScheduleOut)
def court_schedule(court_id: str, date: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    target = normalize_date(date) or date
    return CourtScheduleOut(court_id=court_id, date=target, booked_slots=conflict_service.booked_slots(db, court_id=court_id, date=target))


@router.post("/check-expired", response_model=CheckExpiredOut)
def check_expired(
    db: Session = Depends(get_db),
    store: PolicyStore = Depends(get_policy),
    user: User = Depends(get_current_user),
    now: datetime | None = Depends(get_now),
):
    return expiry_service.auto_cancelled_today(db, store, user.id, now=now)


@router.get("/{booking_id}", response_model=BookingOut)
def get_booking(booking_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    booking = booking_service.get_booking(db, booking_id)
    if not user.is_admin and user.id not in booking.involved_user_ids:
        raise BookingForbidden("You are not part of this booking")
    return booking


@router.delete("/{booking_id}", response_model=CancelOut)
def cancel_booking(
    booking_id: str,
    request: Request,
    payload: CancelRequest | None = None,
    db: Session = Depends(get_db),
    store: PolicyStore = Depends(get_policy),
    user: User = Depends(get_current_user),
    now: datetime | None = Depends(get_now),
):
    reason = payload.reason if payload else ""
    result = booking_service.cancel_booking(db, store, booking_id=booking_id, requester=user, reason=reason, now=now)
    write_audit_log(
        db,
        actor_user_id=user.id,
        action="BOOKING_CANCEL",
        target_type="booking",
        target_id=booking_id,
        summary="Cancelled by owner",
        details={"late": result.late, "penalty_points": result.penalty_points},
        request=request,
    )
    return CancelOut(
        message=result.message,
        booking=BookingOut.model_validate(result.booking),
        is_late_cancellation=result.late,
        penalty_applied=result.penalty_applied,
        penalty_points=result.penalty_points,
    )


@router.patch("/{booking_id}/status", response_model=StatusUpdated)
def update_status(
    booking_id: str,
    payload: StatusUpdate,
    request: Request,
    db: Session = Depends(get_db),
    store: PolicyStore = Depends(get_policy),
    user: User = Depends(get_current_user),
    now: datetime | None = Depends(get_now),
):
    booking, old_status, bonus = booking_service.update_status(
        db, store, booking_id=booking_id, requester=user, status=payload.status, reason=payload.reason, now=now
    )
    write_audit_log(
        db,
        actor_user_id=user.id,
        action="BOOKING_STATUS",
        target_type="booking",
        target_id=booking.id,
        summary=f"{old_status} -> {booking.status}",
        request=request,
    )
    return StatusUpdated(
        message=f"Booking status updated to {booking.status}",
        old_status=old_status,
        new_status=booking.status,
        booking=BookingOut.model_validate(booking),
        bonus=bonus.as_dict(),
    )
