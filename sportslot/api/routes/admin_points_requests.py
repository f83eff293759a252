from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from sportslot.core.deps import get_db, get_now, require_admin
from sportslot.schemas.message import MarkedOut
from sportslot.schemas.points_request import AdminPointsRequestOut, PointsDecision, PointsRequestOut, PointsRequestStats
from sportslot.services import points_request_service
from sportslot.services.audit_service import write_audit_log

router = APIRouter()


@router.get("", response_model=list[AdminPointsRequestOut])
def list_points_requests(status: str | None = None, db: Session = Depends(get_db), user=Depends(require_admin)):
    rows = points_request_service.list_requests(db, status=status)
    return [
        AdminPointsRequestOut(
            **PointsRequestOut.model_validate(row["request"]).model_dump(),
            user_name=row["user_name"],
            current_points=row["current_points"],
            penalties_count=row["penalties_count"],
            approved_count=row["approved_count"],
        )
        for row in rows
    ]


@router.get("/stats", response_model=PointsRequestStats)
def points_request_stats(db: Session = Depends(get_db), user=Depends(require_admin)):
    return points_request_service.request_stats(db)


@router.post("/mark-read", response_model=MarkedOut)
def mark_points_requests_read(db: Session = Depends(get_db), user=Depends(require_admin)):
    return MarkedOut(marked=points_request_service.mark_pending_read(db))


@router.post("/{request_id}/decision", response_model=PointsRequestOut)
def decide_points_request(
    request_id: str,
    payload: PointsDecision,
    request: Request,
    db: Session = Depends(get_db),
    user=Depends(require_admin),
    now: datetime | None = Depends(get_now),
):
    req = points_request_service.decide_request(
        db,
        request_id,
        admin=user,
        decision=payload.decision,
        points=payload.points,
        message=payload.message,
        now=now,
    )
    write_audit_log(
        db,
        actor_user_id=user.id,
        action="POINTS_REQUEST_DECISION",
        target_type="points_request",
        target_id=req.id,
        summary=f"Points request {req.status}",
        details={"user_id": req.user_id, "approved_points": req.approved_points},
        request=request,
    )
    return req
