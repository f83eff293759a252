from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from sportslot.db.base import Base
from sportslot.models._mixins import TimestampMixin


class PointsRequestStatus:
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"


class PointsRequest(Base, TimestampMixin):
    """A user's request to have points restored, decided by an admin."""

    __tablename__ = "points_requests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)

    requested_points: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(String(1000), nullable=False, default="")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=PointsRequestStatus.PENDING, index=True)

    approved_points: Mapped[int | None] = mapped_column(Integer, nullable=True)
    admin_message: Mapped[str] = mapped_column(String(1000), nullable=False, default="")
    admin_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    decided_by: Mapped[str | None] = mapped_column(String(36), ForeignKey("users.id"), nullable=True)
