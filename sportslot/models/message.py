from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from sportslot.db.base import Base
from sportslot.models._mixins import utcnow


class Message(Base):
    """In-app notification for a single user, or for the shared admin inbox."""

    __tablename__ = "messages"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    # NULL when to_admins is set
    user_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    to_admins: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)

    kind: Mapped[str] = mapped_column(String(32), nullable=False, default="")  # code_usage_notice|points_bonus|penalty|points_request|admin_notice
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    body: Mapped[str] = mapped_column(Text, nullable=False, default="")
    related_id: Mapped[str] = mapped_column(String(36), nullable=False, default="")
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
