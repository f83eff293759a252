from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from sportslot.core.config import get_settings


def create_access_token(user_id: str, *, role: Optional[str] = None, extra_claims: Optional[Dict[str, Any]] = None) -> str:
    """Mint a bearer token for `user_id`.

    In production tokens come from the identity service sharing `secret_key`;
    scripts and tests use this to act as a given user.
    """
    settings = get_settings()
    issued = datetime.now(timezone.utc)

    claims: Dict[str, Any] = {
        "sub": user_id,
        "iat": int(issued.timestamp()),
        "exp": int((issued + timedelta(minutes=settings.access_token_exp_minutes)).timestamp()),
    }
    if role:
        claims["role"] = role
    claims.update(extra_claims or {})
    return jwt.encode(claims, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Dict[str, Any]:
    settings = get_settings()
    return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])


def subject_from_token(token: str) -> str:
    """User id carried in `sub`. Raises JWTError for a bad signature, expiry or a missing subject."""
    subject = decode_access_token(token).get("sub")
    if not subject:
        raise JWTError("token has no subject")
    return str(subject)
