from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from sportslot.core.deps import get_db, get_now, get_policy, require_admin
from sportslot.models.user import User
from sportslot.schemas.booking import CodeStatusOut
from sportslot.schemas.user import BlockUpdate, ExtraRightsOut, ExtraRightsUpdate, PointsAdjust, PointsOut, UserOut
from sportslot.services import points_service, rights_service
from sportslot.services.audit_service import write_audit_log
from sportslot.services.settings_service import PolicyStore

router = APIRouter()


def _get_user(db: Session, user_id: str) -> User:
    u = db.get(User, user_id)
    if not u:
        raise HTTPException(status_code=404, detail="User not found")
    return u


@router.get("", response_model=list[UserOut])
def list_users(db: Session = Depends(get_db), user=Depends(require_admin)):
    return db.execute(select(User).order_by(User.email)).scalars().all()


@router.patch("/{user_id}/extra-rights", response_model=ExtraRightsOut)
def set_extra_rights(user_id: str, payload: ExtraRightsUpdate, request: Request, db: Session = Depends(get_db), user=Depends(require_admin)):
    u = _get_user(db, user_id)
    value = rights_service.set_extra_daily_rights(db, u, payload.extra_daily_rights)

    write_audit_log(
        db,
        actor_user_id=user.id,
        action="USER_EXTRA_RIGHTS",
        target_type="user",
        target_id=u.id,
        summary=f"Extra daily rights set to {value}",
        details={"requested": payload.extra_daily_rights, "applied": value},
        request=request,
    )
    return ExtraRightsOut(user_id=u.id, extra_daily_rights=value)


@router.get("/{user_id}/code-status", response_model=CodeStatusOut)
def user_code_status(
    user_id: str,
    db: Session = Depends(get_db),
    store: PolicyStore = Depends(get_policy),
    user=Depends(require_admin),
    now: datetime | None = Depends(get_now),
):
    return rights_service.code_status(db, store, _get_user(db, user_id), now=now)


@router.patch("/{user_id}/block", response_model=UserOut)
def set_request_block(user_id: str, payload: BlockUpdate, request: Request, db: Session = Depends(get_db), user=Depends(require_admin)):
    u = _get_user(db, user_id)
    u.is_request_blocked = payload.is_request_blocked
    db.commit()
    db.refresh(u)

    write_audit_log(
        db,
        actor_user_id=user.id,
        action="USER_BLOCK" if payload.is_request_blocked else "USER_UNBLOCK",
        target_type="user",
        target_id=u.id,
        summary="Updated booking request block",
        request=request,
    )
    return u


@router.patch("/{user_id}/points", response_model=PointsOut)
def adjust_points(user_id: str, payload: PointsAdjust, request: Request, db: Session = Depends(get_db), user=Depends(require_admin)):
    u = _get_user(db, user_id)
    points = points_service.adjust_points(db, u, action=payload.action, amount=payload.amount)

    write_audit_log(
        db,
        actor_user_id=user.id,
        action="USER_POINTS",
        target_type="user",
        target_id=u.id,
        summary=f"Points {payload.action} {payload.amount}",
        details={"action": payload.action, "amount": payload.amount, "reason": payload.reason, "points": points},
        request=request,
    )
    return PointsOut(user_id=u.id, points=points)
