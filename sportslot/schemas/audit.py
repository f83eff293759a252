from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class AuditLogOut(BaseModel):
    """One audit row; `details` was redacted when it was written."""

    id: str
    action: str  # BOOKING_CREATE, BOOKING_CANCEL, POLICY_UPDATE, ...
    actor_user_id: str | None  # None for the expiry sweep
    target_type: str  # booking|user|setting
    target_id: str
    summary: str
    details: dict | None = None
    ip_address: str = ""
    created_at: datetime

    class Config:
        from_attributes = True
