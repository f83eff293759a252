from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sportslot.db.base import Base
from sportslot.models._mixins import TimestampMixin


class BookingStatus:
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked-in"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"

    ALL = (PENDING, CONFIRMED, CHECKED_IN, COMPLETED, CANCELLED, EXPIRED)
    TERMINAL = (COMPLETED, CANCELLED, EXPIRED)

    # Counted against a user's daily rights
    INVOLVEMENT = (PENDING, CONFIRMED, CHECKED_IN, COMPLETED)
    # Block other bookings from taking the same slot
    OCCUPYING = (PENDING, CONFIRMED, CHECKED_IN)
    # Still waiting for check-in
    AWAITING_CHECKIN = (PENDING, CONFIRMED)
    # Slot claims are dropped on entering these
    RELEASED = (CANCELLED, EXPIRED)


class BookingKind:
    REGULAR = "regular"
    ACTIVITY = "activity"


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    owner_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    owner_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    owner_student_id: Mapped[str | None] = mapped_column(String(32), nullable=True)

    court_id: Mapped[str] = mapped_column(String(36), ForeignKey("courts.id"), nullable=False, index=True)
    court_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    # Calendar day in the reference timezone, YYYY-MM-DD
    date: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    time_slots: Mapped[list] = mapped_column(JSON, nullable=False, default=list)  # ["09:00-10:00", ...]

    status: Mapped[str] = mapped_column(String(16), nullable=False, default=BookingStatus.PENDING, index=True)
    booking_kind: Mapped[str] = mapped_column(String(16), nullable=False, default=BookingKind.REGULAR)
    required_players: Mapped[int] = mapped_column(Integer, nullable=False, default=2)

    activity_type: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    note: Mapped[str] = mapped_column(String(1000), nullable=False, default="")
    responsible_person: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    is_qr_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_location_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    admin_created: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Idempotency flags
    auto_cancelled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    no_show_processed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    points_awarded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Payloads submitted with the QR check-in
    qr_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    location: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    is_late_cancellation: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    cancellation_reason: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    checked_in_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    expired_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Written once at process start for bookings that must not be swept yet
    startup_protected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    participants: Mapped[list["BookingParticipant"]] = relationship(
        "BookingParticipant", back_populates="booking", cascade="all, delete-orphan", lazy="selectin"
    )

    @property
    def participant_ids(self) -> list[str]:
        return [p.user_id for p in self.participants]

    @property
    def participant_codes(self) -> list[str]:
        return [p.user_code for p in self.participants]

    @property
    def involved_user_ids(self) -> list[str]:
        ids = [self.owner_id]
        for uid in self.participant_ids:
            if uid and uid not in ids:
                ids.append(uid)
        return ids


class BookingParticipant(Base):
    __tablename__ = "booking_participants"
    __table_args__ = (UniqueConstraint("booking_id", "user_id", name="uq_booking_participant"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    booking_id: Mapped[str] = mapped_column(String(36), ForeignKey("bookings.id"), nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    user_code: Mapped[str] = mapped_column(String(16), nullable=False, default="")
    user_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    booking: Mapped[Booking] = relationship("Booking", back_populates="participants")


class SlotClaim(Base):
    """Occupancy index: at most one row per (court, date, slot).

    Inserted with the booking in the same transaction; the unique constraint
    settles concurrent creations for the same slot.
    """

    __tablename__ = "slot_claims"
    __table_args__ = (UniqueConstraint("court_id", "date", "slot", name="uq_slot_claim"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    court_id: Mapped[str] = mapped_column(String(36), ForeignKey("courts.id"), nullable=False)
    date: Mapped[str] = mapped_column(String(10), nullable=False)
    slot: Mapped[str] = mapped_column(String(16), nullable=False)
    booking_id: Mapped[str] = mapped_column(String(36), ForeignKey("bookings.id"), nullable=False, index=True)
