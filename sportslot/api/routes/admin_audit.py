from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from sportslot.core.deps import get_db, require_admin
from sportslot.schemas.audit import AuditLogOut
from sportslot.services.audit_service import list_audit_logs

router = APIRouter()


@router.get("/audit-logs", response_model=list[AuditLogOut])
def get_audit_logs(
    action: str | None = None,
    actor_user_id: str | None = None,
    target_type: str | None = None,
    target_id: str | None = None,
    limit: int = Query(default=200, ge=1, le=1000),
    db: Session = Depends(get_db),
    user=Depends(require_admin),
):
    return list_audit_logs(
        db,
        action=action,
        actor_user_id=actor_user_id,
        target_type=target_type,
        target_id=target_id,
        limit=limit,
    )
