from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class PenaltyOut(BaseModel):
    id: str
    booking_id: str | None
    penalty_points: int
    reason: str
    court_name: str
    booking_date: str
    booking_kind: str
    created_at: datetime

    class Config:
        from_attributes = True


class PenaltyHistoryOut(BaseModel):
    penalties: list[PenaltyOut]
    total_penalty_points: int
