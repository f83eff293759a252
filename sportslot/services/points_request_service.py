from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from fastapi import HTTPException
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from sportslot.core.config import get_settings
from sportslot.models.penalty import Penalty
from sportslot.models.points_request import PointsRequest, PointsRequestStatus
from sportslot.models.user import User
from sportslot.services import notification_service, points_service
from sportslot.services.timeslots import local_now

logger = logging.getLogger(__name__)

ALLOWED_POINTS = tuple(range(10, 101, 10))


def _check_points(points: int) -> int:
    if points not in ALLOWED_POINTS:
        raise HTTPException(status_code=400, detail="Points must be a multiple of 10 between 10 and 100")
    return points


def _count_today(db: Session, user_id: str, now: datetime | None) -> int:
    day_start = local_now(now).replace(hour=0, minute=0, second=0, microsecond=0)
    start = day_start.astimezone(timezone.utc)
    end = (day_start + timedelta(days=1)).astimezone(timezone.utc)
    q = select(func.count(PointsRequest.id)).where(
        PointsRequest.user_id == user_id, PointsRequest.created_at >= start, PointsRequest.created_at < end
    )
    return int(db.execute(q).scalar_one())


def get_request(db: Session, request_id: str) -> PointsRequest:
    req = db.get(PointsRequest, request_id)
    if req is None:
        raise HTTPException(status_code=404, detail="Points request not found")
    return req


def create_request(db: Session, user: User, *, requested_points: int, reason: str = "", now: datetime | None = None) -> PointsRequest:
    _check_points(requested_points)
    if user.is_request_blocked:
        raise HTTPException(status_code=403, detail="Your account is blocked from submitting requests")
    limit = get_settings().daily_points_request_limit
    if _count_today(db, user.id, now) >= limit:
        raise HTTPException(status_code=429, detail=f"You have already sent {limit} points requests today")

    stamp = local_now(now).astimezone(timezone.utc)
    req = PointsRequest(user_id=user.id, requested_points=requested_points, reason=reason or "", created_at=stamp, updated_at=stamp)
    db.add(req)
    db.commit()
    db.refresh(req)
    logger.info("Points request %s from %s for %s points", req.id, user.id, requested_points)

    notification_service.notify_admins(
        db,
        kind="admin_notice",
        title="New points request",
        body=f"{user.display_name} asks for {requested_points} points",
        related_id=req.id,
    )
    notification_service.notify(
        db,
        user_id=user.id,
        kind="points_request",
        title="Points request received",
        body=f"Your request for {requested_points} points is waiting for an admin",
        related_id=req.id,
    )
    return req


def list_user_requests(db: Session, user_id: str) -> list[PointsRequest]:
    q = select(PointsRequest).where(PointsRequest.user_id == user_id).order_by(PointsRequest.created_at.desc())
    return list(db.execute(q).scalars().all())


def list_requests(db: Session, *, status: str | None = None) -> list[dict]:
    """Admin view: each request with the requester's name, points and history counts."""
    q = select(PointsRequest).order_by(PointsRequest.created_at.desc())
    if status:
        q = q.where(PointsRequest.status == status)

    out: list[dict] = []
    for req in db.execute(q).scalars().all():
        owner = db.get(User, req.user_id)
        penalties = db.execute(select(func.count(Penalty.id)).where(Penalty.user_id == req.user_id)).scalar_one()
        approved = db.execute(
            select(func.count(PointsRequest.id)).where(
                PointsRequest.user_id == req.user_id, PointsRequest.status == PointsRequestStatus.APPROVED
            )
        ).scalar_one()
        out.append(
            {
                "request": req,
                "user_name": owner.display_name if owner else "",
                "current_points": owner.points if owner else 0,
                "penalties_count": int(penalties),
                "approved_count": int(approved),
            }
        )
    return out


def request_stats(db: Session) -> dict:
    pending = PointsRequest.status == PointsRequestStatus.PENDING
    total = db.execute(select(func.count(PointsRequest.id)).where(pending)).scalar_one()
    unread = db.execute(select(func.count(PointsRequest.id)).where(pending, PointsRequest.admin_read.is_(False))).scalar_one()
    return {"pending": int(total), "unread_pending": int(unread)}


def mark_pending_read(db: Session) -> int:
    stmt = (
        update(PointsRequest)
        .where(PointsRequest.status == PointsRequestStatus.PENDING, PointsRequest.admin_read.is_(False))
        .values(admin_read=True)
    )
    marked = db.execute(stmt).rowcount
    db.commit()
    return int(marked or 0)


def decide_request(
    db: Session,
    request_id: str,
    *,
    admin: User,
    decision: str,
    points: int | None = None,
    message: str = "",
    now: datetime | None = None,
) -> PointsRequest:
    """Approve or deny a pending request. Approval adds the points to the requester's balance.

    The pending -> decided step is a conditional UPDATE, so a request is decided at most once.
    """
    if decision not in ("approve", "deny"):
        raise HTTPException(status_code=400, detail="Decision must be approve or deny")
    req = get_request(db, request_id)
    if req.status != PointsRequestStatus.PENDING:
        raise HTTPException(status_code=400, detail="This request has already been decided")

    approving = decision == "approve"
    amount = _check_points(req.requested_points if points is None else points) if approving else None
    owner = db.get(User, req.user_id)
    if owner is None:
        raise HTTPException(status_code=404, detail="Requesting user not found")

    stamp = local_now(now).astimezone(timezone.utc)
    stmt = (
        update(PointsRequest)
        .where(PointsRequest.id == req.id, PointsRequest.status == PointsRequestStatus.PENDING)
        .values(
            status=PointsRequestStatus.APPROVED if approving else PointsRequestStatus.DENIED,
            approved_points=amount,
            admin_message=message or "",
            admin_read=True,
            decided_at=stamp,
            decided_by=admin.id,
            updated_at=stamp,
        )
    )
    if not db.execute(stmt).rowcount:
        db.rollback()
        raise HTTPException(status_code=400, detail="This request has already been decided")

    if approving:
        # Commits the request update together with the points
        points_service.adjust_points(db, owner, action="add", amount=amount)
        title = "Points request approved"
        body = message or f"{amount} points were added to your account"
    else:
        db.commit()
        title = "Points request denied"
        body = message or "Your points request was denied"
    db.refresh(req)
    logger.info("Points request %s %s by %s", req.id, req.status, admin.id)

    notification_service.notify(db, user_id=owner.id, kind="points_request", title=title, body=body, related_id=req.id)
    return req
