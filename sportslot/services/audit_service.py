from __future__ import annotations

import logging
from typing import Any, Mapping

from fastapi import Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from sportslot.models.audit_log import AuditLog

logger = logging.getLogger(__name__)

# Identity and check-in payloads stay out of the audit trail
REDACTED_KEYS = {
    "email",
    "student_id",
    "first_name",
    "last_name",
    "qr_data",
    "location",
    "token",
}


def _redact(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {k: ("<redacted>" if k in REDACTED_KEYS else _redact(v)) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_redact(v) for v in obj]
    return obj


def _client_ip(request: Request | None) -> str:
    if request is None:
        return ""
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else ""


def write_audit_log(
    db: Session,
    *,
    actor_user_id: str | None,
    action: str,
    target_type: str = "",
    target_id: str = "",
    summary: str = "",
    details: Mapping[str, Any] | None = None,
    request: Request | None = None,
) -> AuditLog:
    entry = AuditLog(
        actor_user_id=actor_user_id,
        action=action,
        target_type=target_type,
        target_id=str(target_id),
        summary=summary[:255],
        details=_redact(dict(details)) if details is not None else None,
        ip_address=_client_ip(request),
    )
    db.add(entry)
    db.commit()
    logger.debug("audit %s %s:%s by %s", action, target_type, target_id, actor_user_id or "system")
    return entry


def list_audit_logs(
    db: Session,
    *,
    action: str | None = None,
    actor_user_id: str | None = None,
    target_type: str | None = None,
    target_id: str | None = None,
    limit: int = 200,
) -> list[AuditLog]:
    q = select(AuditLog)
    if action:
        q = q.where(AuditLog.action == action)
    if actor_user_id:
        q = q.where(AuditLog.actor_user_id == actor_user_id)
    if target_type:
        q = q.where(AuditLog.target_type == target_type)
    if target_id:
        q = q.where(AuditLog.target_id == target_id)
    return list(db.execute(q.order_by(AuditLog.created_at.desc()).limit(limit)).scalars().all())
