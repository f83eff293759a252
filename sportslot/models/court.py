from __future__ import annotations

import uuid

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from sportslot.db.base import Base
from sportslot.models._mixins import TimestampMixin

DEFAULT_REQUIRED_PLAYERS = {
    "badminton": 2,
    "tennis": 2,
    "futsal": 10,
    "football": 22,
    "basketball": 10,
    "volleyball": 10,
    "multipurpose": 10,
}


class Court(Base, TimestampMixin):
    __tablename__ = "courts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    required_players: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    @property
    def effective_required_players(self) -> int:
        return self.required_players or DEFAULT_REQUIRED_PLAYERS.get(self.category, 2)
