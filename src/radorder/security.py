from __future__ import annotations

import logging
from contextvars import ContextVar
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional
from uuid import UUID

import jwt
from fastapi import Depends, HTTPException, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.radorder.config import settings
from src.radorder.domain.models.user import User, UserRole
from src.radorder.services.users.service import user_service

logger = logging.getLogger("security")

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

_bearer = HTTPBearer(auto_error=False)

# Opaque identifier for the current caller ("user:<uuid>"). The audit logger
# reads it so events can be correlated without carrying names or emails.
_current_subject: ContextVar[Optional[str]] = ContextVar("current_subject", default=None)


def get_current_subject() -> Optional[str]:
    """Return the current subject identifier, if any.

    Set by ``get_current_user`` once a bearer token has been verified.
    """

    return _current_subject.get()


def _signing_secret(token_type: str) -> str:
    if not settings.jwt_secret:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Authentication is not configured.",
        )
    if token_type == REFRESH_TOKEN_TYPE and settings.jwt_refresh_secret:
        return settings.jwt_refresh_secret
    return settings.jwt_secret


def _encode(user: User, token_type: str, lifetime: timedelta) -> str:
    now = datetime.now(timezone.utc)
    claims: Dict[str, Any] = {
        "sub": str(user.id),
        "org": str(user.organization_id),
        "role": user.role.value,
        "type": token_type,
        "iat": now,
        "exp": now + lifetime,
    }
    return jwt.encode(claims, _signing_secret(token_type), algorithm=settings.jwt_algorithm)


def create_access_token(user: User) -> str:
    return _encode(user, ACCESS_TOKEN_TYPE, timedelta(minutes=settings.access_token_expire_minutes))


def create_refresh_token(user: User) -> str:
    return _encode(user, REFRESH_TOKEN_TYPE, timedelta(days=settings.refresh_token_expire_days))


def decode_token(token: str, *, token_type: str = ACCESS_TOKEN_TYPE) -> Dict[str, Any]:
    """Verify ``token`` and return its claims.

    Raises HTTP 401 for expired, tampered or wrong-type tokens.
    """

    try:
        claims = jwt.decode(token, _signing_secret(token_type), algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token has expired.")
    except jwt.InvalidTokenError:
        logger.info("Rejected invalid %s token", token_type)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token.")

    if claims.get("type") != token_type:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token.")
    return claims


def resolve_token_user(claims: Dict[str, Any]) -> User:
    """Return the active user named by verified token claims."""

    try:
        user_id = UUID(str(claims.get("sub")))
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token.")

    user = user_service.get_user(user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown user.")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User account is inactive.")
    return user


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(_bearer),
) -> User:
    """FastAPI dependency resolving the bearer token to a ``User``."""

    if credentials is None or credentials.scheme.lower() != "bearer":
        _current_subject.set(None)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing bearer token.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = resolve_token_user(decode_token(credentials.credentials))
    _current_subject.set(f"user:{user.id}")
    return user


def require_roles(*roles: UserRole) -> Callable[..., Any]:
    """Return a dependency that admits only users holding one of ``roles``."""

    allowed = set(roles)

    async def _dependency(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Not authorized for this operation",
            )
        return current_user

    return _dependency
