from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from sportslot.core.deps import get_current_user, get_db, get_now
from sportslot.models.user import User
from sportslot.schemas.points_request import PointsRequestCreate, PointsRequestOut
from sportslot.services import points_request_service
from sportslot.services.audit_service import write_audit_log

router = APIRouter()


@router.post("", response_model=PointsRequestOut, status_code=status.HTTP_201_CREATED)
def create_points_request(
    payload: PointsRequestCreate,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    now: datetime | None = Depends(get_now),
):
    req = points_request_service.create_request(db, user, requested_points=payload.requested_points, reason=payload.reason, now=now)
    write_audit_log(
        db,
        actor_user_id=user.id,
        action="POINTS_REQUEST_CREATE",
        target_type="points_request",
        target_id=req.id,
        summary=f"Requested {req.requested_points} points",
        request=request,
    )
    return req


@router.get("", response_model=list[PointsRequestOut])
def my_points_requests(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return points_request_service.list_user_requests(db, user.id)
