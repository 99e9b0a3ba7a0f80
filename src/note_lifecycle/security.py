from __future__ import annotations

import hashlib
from contextvars import ContextVar
from typing import FrozenSet, Optional

from fastapi import Depends, Header, HTTPException, Security, status
from fastapi.security import APIKeyHeader

from src.note_lifecycle.config import settings
from src.note_lifecycle.domain.models.user import User, UserRole

_api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

# Hashed identifier of the API key used on the current request. The audit log
# records this instead of the key itself.
_current_subject: ContextVar[Optional[str]] = ContextVar("current_subject", default=None)


def get_current_subject() -> Optional[str]:
    return _current_subject.get()


def _allowed_api_keys() -> FrozenSet[str]:
    """API_KEYS as a set; comma separated, blanks ignored."""

    return frozenset(key.strip() for key in (settings.api_keys or "").split(",") if key.strip())


def _subject_for_key(api_key: str) -> str:
    return "api-key:" + hashlib.sha256(api_key.encode("utf-8")).hexdigest()[:16]


async def get_api_key(api_key: Optional[str] = Security(_api_key_header)) -> str:
    """Router-level gate for every note endpoint.

    A no-op unless ENABLE_API_AUTH is set. When enabled, the X-API-Key header
    must carry one of the configured API_KEYS.
    """

    if not settings.enable_api_auth:
        _current_subject.set(None)
        return ""

    allowed = _allowed_api_keys()
    if not allowed:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API authentication is enabled but no API keys are configured.",
        )
    if api_key is None or api_key not in allowed:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key.",
        )

    _current_subject.set(_subject_for_key(api_key))
    return api_key


async def get_current_user(
    api_key: str = Depends(get_api_key),
    x_user_id: Optional[str] = Header(None, alias="X-User-ID"),
    x_user_name: Optional[str] = Header(None, alias="X-User-Name"),
    x_user_role: Optional[UserRole] = Header(None, alias="X-User-Role"),
) -> User:
    """Resolve the acting user from the identity headers.

    The engine keeps no session state, so the caller identifies itself on
    every request. Without identity headers the caller is the auth subject
    (or "anonymous" when auth is disabled) acting as an admin, which is only
    meant for local development.
    """

    if x_user_id:
        return User(
            id=x_user_id,
            name=x_user_name or x_user_id,
            role=x_user_role or UserRole.CLINICIAN,
        )

    subject = get_current_subject() or "anonymous"
    return User(id=subject, name=x_user_name or subject, role=x_user_role or UserRole.ADMIN)
