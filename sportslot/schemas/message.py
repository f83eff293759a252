from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class MessageOut(BaseModel):
    id: str
    kind: str
    title: str
    body: str
    related_id: str
    to_admins: bool
    is_read: bool
    created_at: datetime

    class Config:
        from_attributes = True


class UnreadCountOut(BaseModel):
    unread: int


class MarkedOut(BaseModel):
    marked: int
