from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from sportslot.core.deps import get_current_user, get_db
from sportslot.models.user import User
from sportslot.schemas.message import MarkedOut, MessageOut, UnreadCountOut
from sportslot.services import notification_service

router = APIRouter()


@router.get("", response_model=list[MessageOut])
def list_messages(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return notification_service.list_messages(db, user)


@router.get("/unread-count", response_model=UnreadCountOut)
def unread_count(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return UnreadCountOut(unread=notification_service.unread_count(db, user))


@router.post("/mark-all-read", response_model=MarkedOut)
def mark_all_read(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return MarkedOut(marked=notification_service.mark_all_read(db, user))


@router.post("/{message_id}/read", response_model=MessageOut)
def mark_read(message_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return notification_service.mark_read(db, user, message_id)
