from __future__ import annotations

from pydantic import BaseModel, Field

from sportslot.models.user import EXTRA_RIGHTS_MAX, EXTRA_RIGHTS_MIN


class UserOut(BaseModel):
    id: str
    email: str
    first_name: str
    last_name: str
    user_code: str | None
    role: str
    is_active: bool
    is_request_blocked: bool
    points: int
    extra_daily_rights: int

    class Config:
        from_attributes = True


class ExtraRightsUpdate(BaseModel):
    # Out-of-range values are clamped, not rejected
    extra_daily_rights: int = Field(ge=-1000, le=1000)


class ExtraRightsOut(BaseModel):
    user_id: str
    extra_daily_rights: int = Field(ge=EXTRA_RIGHTS_MIN, le=EXTRA_RIGHTS_MAX)


class BlockUpdate(BaseModel):
    is_request_blocked: bool


class PointsAdjust(BaseModel):
    action: str  # add|subtract|set
    amount: int = Field(ge=0, le=10000)
    reason: str = Field(default="", max_length=255)


class PointsOut(BaseModel):
    user_id: str
    points: int
