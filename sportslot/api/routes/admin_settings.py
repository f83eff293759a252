from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from sportslot.core.deps import get_db, get_policy, require_admin
from sportslot.schemas.settings import ClearCacheRequest, PolicyOut, PolicyWrite, PolicyWritten
from sportslot.services.audit_service import write_audit_log
from sportslot.services.settings_service import PolicyStore, write_setting

router = APIRouter()


@router.get("", response_model=PolicyOut)
def get_policy_settings(db: Session = Depends(get_db), store: PolicyStore = Depends(get_policy), user=Depends(require_admin)):
    return PolicyOut(settings=store.snapshot(db))


@router.patch("", response_model=PolicyWritten)
def update_policy_setting(
    payload: PolicyWrite,
    request: Request,
    db: Session = Depends(get_db),
    store: PolicyStore = Depends(get_policy),
    user=Depends(require_admin),
):
    row = write_setting(db, store, key=payload.key, value=payload.value, updated_by=user.id)

    write_audit_log(
        db,
        actor_user_id=user.id,
        action="POLICY_UPDATE",
        target_type="setting",
        target_id=row.key,
        summary=f"Set {row.key}",
        details={"value": row.value},
        request=request,
    )
    return PolicyWritten(key=row.key, value=row.value, cache={"cleared": row.key})


@router.post("/clear-cache")
def clear_cache(
    request: Request,
    payload: ClearCacheRequest | None = None,
    db: Session = Depends(get_db),
    store: PolicyStore = Depends(get_policy),
    user=Depends(require_admin),
):
    key = payload.key if payload else None
    result = store.invalidate(key)
    write_audit_log(
        db,
        actor_user_id=user.id,
        action="POLICY_CACHE_CLEAR",
        target_type="setting",
        target_id=key or "*",
        summary="Cleared policy cache",
        request=request,
    )
    return result
