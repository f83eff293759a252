from __future__ import annotations

from datetime import date, datetime

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from sportslot.core.deps import get_db, get_now, require_admin
from sportslot.schemas.booking import AdminStatusUpdate, BookingOut
from sportslot.services import booking_service
from sportslot.services.audit_service import write_audit_log

router = APIRouter()


@router.get("", response_model=list[BookingOut])
def list_bookings(
    on_date: date | None = Query(default=None, alias="date"),
    court_id: str | None = None,
    status: str | None = None,
    db: Session = Depends(get_db),
    user=Depends(require_admin),
):
    return booking_service.list_bookings(
        db,
        date=on_date.isoformat() if on_date else None,
        court_id=court_id,
        status=status,
    )


@router.patch("/{booking_id}/status", response_model=BookingOut)
def set_booking_status(
    booking_id: str,
    payload: AdminStatusUpdate,
    request: Request,
    db: Session = Depends(get_db),
    user=Depends(require_admin),
    now: datetime | None = Depends(get_now),
):
    old_status = booking_service.get_booking(db, booking_id).status
    booking = booking_service.admin_set_status(db, booking_id=booking_id, status=payload.status, reason=payload.reason, now=now)

    write_audit_log(
        db,
        actor_user_id=user.id,
        action="BOOKING_ADMIN_STATUS",
        target_type="booking",
        target_id=booking.id,
        summary=f"{old_status} -> {booking.status}",
        details={"reason": payload.reason},
        request=request,
    )
    return booking


@router.delete("/{booking_id}")
def purge_booking(booking_id: str, request: Request, db: Session = Depends(get_db), user=Depends(require_admin)):
    booking_service.purge_booking(db, booking_id=booking_id)
    write_audit_log(
        db,
        actor_user_id=user.id,
        action="BOOKING_PURGE",
        target_type="booking",
        target_id=booking_id,
        summary="Purged booking",
        request=request,
    )
    return {"ok": True, "deleted": booking_id}
