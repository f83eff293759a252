from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from sportslot.core.deps import get_current_user, get_db
from sportslot.models.user import User
from sportslot.schemas.penalty import PenaltyHistoryOut, PenaltyOut
from sportslot.schemas.user import PointsOut
from sportslot.services import points_service

router = APIRouter()


@router.get("/history", response_model=PenaltyHistoryOut)
def penalty_history(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    rows, total = points_service.penalty_history(db, user.id)
    return PenaltyHistoryOut(penalties=[PenaltyOut.model_validate(p) for p in rows], total_penalty_points=total)


@router.get("/points", response_model=PointsOut)
def my_points(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return PointsOut(user_id=user.id, points=points_service.get_points(db, user.id))
