from __future__ import annotations

import logging

from fastapi import HTTPException
from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from sportslot.models.message import Message
from sportslot.models.user import User

logger = logging.getLogger(__name__)


def notify(db: Session, *, user_id: str, kind: str, title: str, body: str, related_id: str = "") -> bool:
    """Best-effort in-app message. A failed write is logged and reported as False."""
    try:
        db.add(Message(user_id=user_id, kind=kind, title=title, body=body, related_id=related_id or ""))
        db.commit()
        return True
    except Exception as exc:
        db.rollback()
        logger.warning("Failed to deliver %s message to user %s: %s", kind, user_id, exc)
        return False


def notify_admins(db: Session, *, kind: str, title: str, body: str, related_id: str = "") -> bool:
    """Best-effort message to the inbox every admin shares."""
    try:
        db.add(Message(user_id=None, to_admins=True, kind=kind, title=title, body=body, related_id=related_id or ""))
        db.commit()
        return True
    except Exception as exc:
        db.rollback()
        logger.warning("Failed to deliver %s message to admins: %s", kind, exc)
        return False


def _inbox(user: User):
    # Admins also see the shared admin inbox
    if user.is_admin:
        return or_(Message.user_id == user.id, Message.to_admins.is_(True))
    return Message.user_id == user.id


def list_messages(db: Session, user: User, *, limit: int = 200) -> list[Message]:
    q = select(Message).where(_inbox(user)).order_by(Message.created_at.desc()).limit(limit)
    return list(db.execute(q).scalars().all())


def unread_count(db: Session, user: User) -> int:
    q = select(func.count(Message.id)).where(_inbox(user), Message.is_read.is_(False))
    return int(db.execute(q).scalar_one())


def mark_read(db: Session, user: User, message_id: str) -> Message:
    msg = db.get(Message, message_id)
    if msg is None:
        raise HTTPException(status_code=404, detail="Message not found")
    if msg.user_id != user.id and not (msg.to_admins and user.is_admin):
        raise HTTPException(status_code=403, detail="Not your message")
    msg.is_read = True
    db.commit()
    return msg


def mark_all_read(db: Session, user: User) -> int:
    marked = db.execute(update(Message).where(_inbox(user), Message.is_read.is_(False)).values(is_read=True)).rowcount
    db.commit()
    return int(marked or 0)
