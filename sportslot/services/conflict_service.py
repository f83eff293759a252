from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from sportslot.core.errors import SlotConflict
from sportslot.models.booking import Booking, BookingStatus, SlotClaim
from sportslot.services.timeslots import normalize_date

logger = logging.getLogger(__name__)


@dataclass
class Conflict:
    slot: str
    booking_id: str
    occupant: str


def find_conflict(
    db: Session,
    *,
    court_id: str,
    date: str,
    slots: list[str],
    exclude_booking_id: str | None = None,
) -> Conflict | None:
    """First requested slot already held by an active booking on the court that day.

    Dates are normalized on both sides so legacy rows stored as timestamps still match.
    """
    target = normalize_date(date)
    q = select(Booking).where(Booking.court_id == court_id, Booking.status.in_(BookingStatus.OCCUPYING))
    if exclude_booking_id:
        q = q.where(Booking.id != exclude_booking_id)
    bookings = [b for b in db.execute(q).scalars().all() if normalize_date(b.date) == target]

    for slot in slots:
        for b in bookings:
            if slot in (b.time_slots or []):
                return Conflict(slot=slot, booking_id=b.id, occupant=b.owner_name or "another user")
    return None


def ensure_no_conflict(db: Session, *, court_id: str, date: str, slots: list[str]) -> None:
    conflict = find_conflict(db, court_id=court_id, date=date, slots=slots)
    if conflict is not None:
        raise SlotConflict(
            f"Slot {conflict.slot} already booked by {conflict.occupant}",
            slot=conflict.slot,
            occupant=conflict.occupant,
        )


def add_claims(db: Session, booking: Booking) -> None:
    """Stage one claim per slot and flush; the unique index rejects a slot that is already held.

    Raises SlotConflict after rolling back the caller's transaction.
    """
    for slot in booking.time_slots:
        db.add(SlotClaim(court_id=booking.court_id, date=booking.date, slot=slot, booking_id=booking.id))
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        logger.info("Slot claim lost for court %s on %s %s", booking.court_id, booking.date, booking.time_slots)
        raise SlotConflict(
            "One of the requested slots was just booked by someone else",
            slot=",".join(booking.time_slots),
        )


def release_claims(db: Session, booking_id: str) -> None:
    """Drop the booking's claims. Does not commit."""
    db.execute(delete(SlotClaim).where(SlotClaim.booking_id == booking_id))


def booked_slots(db: Session, *, court_id: str, date: str) -> list[str]:
    """Slot tokens held by active bookings on the court that day."""
    target = normalize_date(date)
    q = select(Booking).where(Booking.court_id == court_id, Booking.status.in_(BookingStatus.OCCUPYING))
    out: list[str] = []
    for b in db.execute(q).scalars().all():
        if normalize_date(b.date) == target:
            out.extend(b.time_slots or [])
    return list(dict.fromkeys(out))
