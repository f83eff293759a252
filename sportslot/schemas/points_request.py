from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class PointsRequestCreate(BaseModel):
    requested_points: int
    reason: str = Field(default="", max_length=1000)


class PointsRequestOut(BaseModel):
    id: str
    user_id: str
    requested_points: int
    reason: str
    status: str
    approved_points: int | None
    admin_message: str
    decided_at: datetime | None
    created_at: datetime

    class Config:
        from_attributes = True


class AdminPointsRequestOut(PointsRequestOut):
    user_name: str
    current_points: int
    penalties_count: int
    approved_count: int


class PointsDecision(BaseModel):
    decision: str  # approve|deny
    # Defaults to the requested amount on approval
    points: int | None = None
    message: str = Field(default="", max_length=1000)


class PointsRequestStats(BaseModel):
    pending: int
    unread_pending: int
