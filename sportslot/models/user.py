from __future__ import annotations

import uuid

from sqlalchemy import Boolean, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sportslot.db.base import Base
from sportslot.models._mixins import TimestampMixin

MAX_POINTS = 100
EXTRA_RIGHTS_MIN = -10
EXTRA_RIGHTS_MAX = 50


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    first_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    last_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    student_id: Mapped[str | None] = mapped_column(String(32), nullable=True)

    # Code other users enter to add this user as a participant
    user_code: Mapped[str | None] = mapped_column(String(16), nullable=True, unique=True, index=True)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default="user")  # user|admin

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_email_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_request_blocked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    booking_ban_date: Mapped[str | None] = mapped_column(String(10), nullable=True)

    points: Mapped[int] = mapped_column(Integer, nullable=False, default=MAX_POINTS)
    extra_daily_rights: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    daily_rights: Mapped[list["UserDailyRights"]] = relationship(
        "UserDailyRights", back_populates="user", cascade="all, delete-orphan"
    )

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip() or self.email

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def consumed_rights_by_date(self) -> dict[str, int]:
        return {row.date: row.consumed for row in self.daily_rights}


class UserDailyRights(Base):
    """One row per (user, operational date) of rights consumed outside active bookings."""

    __tablename__ = "user_daily_rights"
    __table_args__ = (UniqueConstraint("user_id", "date", name="uq_user_daily_rights"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    date: Mapped[str] = mapped_column(String(10), nullable=False)
    consumed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    user: Mapped[User] = relationship("User", back_populates="daily_rights")
