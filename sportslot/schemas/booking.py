from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class BookingCreate(BaseModel):
    court_id: str = Field(min_length=1)
    date: str = Field(min_length=1, max_length=40)  # YYYY-MM-DD or ISO timestamp
    time_slots: list[str] = Field(min_length=1)
    booking_kind: str = Field(default="regular")  # regular|activity
    activity_type: str = Field(default="", max_length=255)
    note: str = Field(default="", max_length=1000)
    responsible_person: str = Field(default="", max_length=255)
    participant_codes: list[str] = Field(default_factory=list)


class ConfirmReplaceRequest(BaseModel):
    booking_ids_to_cancel: list[Any]
    new_booking: BookingCreate


class CancelRequest(BaseModel):
    reason: str = Field(default="", max_length=255)


class StatusUpdate(BaseModel):
    status: str
    reason: str = Field(default="", max_length=255)


class ConfirmQrRequest(BaseModel):
    booking_id: str
    qr_data: dict | None = None
    location: dict | None = None


class ParticipantOut(BaseModel):
    user_id: str
    user_code: str
    user_name: str

    class Config:
        from_attributes = True


class BookingOut(BaseModel):
    id: str
    owner_id: str
    owner_name: str
    court_id: str
    court_name: str
    date: str
    time_slots: list[str]
    status: str
    booking_kind: str
    required_players: int
    activity_type: str
    note: str
    participants: list[ParticipantOut] = Field(default_factory=list)

    is_qr_verified: bool
    is_location_verified: bool
    admin_created: bool
    auto_cancelled: bool
    no_show_processed: bool
    points_awarded: bool
    is_late_cancellation: bool
    cancellation_reason: str

    created_at: datetime
    confirmed_at: datetime | None = None
    checked_in_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None

    class Config:
        from_attributes = True


class MyBookingOut(BookingOut):
    role: str  # owner|participant


class BookingCreated(BaseModel):
    booking_id: str
    message: str
    warning: str
    booking: BookingOut


class ReplaceCreated(BookingCreated):
    cancelled_bookings: list[str]


class BatchOut(BaseModel):
    succeeded: list[str] = Field(default_factory=list)
    failed: list[dict] = Field(default_factory=list)


class CancelOut(BaseModel):
    message: str
    booking: BookingOut
    is_late_cancellation: bool
    penalty_applied: bool
    penalty_points: int


class StatusUpdated(BaseModel):
    message: str
    old_status: str
    new_status: str
    booking: BookingOut
    bonus: BatchOut


class ConfirmQrOut(BaseModel):
    message: str
    booking: BookingOut
    points: int


class CodeStatusOut(BaseModel):
    date: str
    used_count: int
    consumed_count: int
    used_total: int
    base_daily_rights: int
    extra_daily_rights: int
    effective_daily_rights: int
    remaining_rights: int
    next_available_at: str
    seconds_until_reset: int


class CourtScheduleOut(BaseModel):
    court_id: str
    date: str
    booked_slots: list[str]


class ExpiredBookingOut(BaseModel):
    booking_id: str
    court_name: str
    date: str
    time_slots: list[str]
    penalty_points: int


class CheckExpiredOut(BaseModel):
    expired_bookings: list[ExpiredBookingOut]
    total_penalty_points: int
    message: str


class AdminStatusUpdate(BaseModel):
    status: str  # pending|confirmed|cancelled
    reason: str = Field(default="", max_length=255)
