from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from sportslot.db.base import Base
from sportslot.models._mixins import utcnow


class Penalty(Base):
    __tablename__ = "penalties"
    __table_args__ = (UniqueConstraint("booking_id", "user_id", name="uq_penalty_booking_user"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    booking_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("bookings.id", ondelete="SET NULL"), nullable=True, index=True)

    penalty_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reason: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    # Snapshot of the booking, kept for history after a purge
    court_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    booking_date: Mapped[str] = mapped_column(String(10), nullable=False, default="")
    booking_kind: Mapped[str] = mapped_column(String(16), nullable=False, default="regular")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
