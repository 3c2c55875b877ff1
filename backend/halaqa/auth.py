"""
Signed bearer tokens for admin and student sessions.

Tokens are HS256 JWTs carrying ``sub`` (student id, or "admin"), ``role``
and ``exp``. Every protected route verifies the signature and expiry; a
token that merely looks like a bearer token is not enough.
"""

import hmac
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from halaqa.errors import AuthenticationFailed, PermissionDenied
from halaqa.logging_config import actor_var, get_logger, log_with_context

_DEV_SECRET = "halaqa-dev-secret-change-me"

JWT_SECRET = os.getenv("JWT_SECRET", _DEV_SECRET)
JWT_ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(24 * 60)))
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "admin")

ROLE_ADMIN = "admin"
ROLE_STUDENT = "student"

logger = get_logger("auth")
security = HTTPBearer(auto_error=False)


def create_access_token(subject: str, role: str, expires_minutes: int = ACCESS_TOKEN_EXPIRE_MINUTES) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    claims = {"sub": subject, "role": role, "exp": expire}
    return jwt.encode(claims, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    """Verify ``token`` and return its claims."""
    try:
        claims = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM],
                            options={"require": ["exp", "sub"]})
    except jwt.ExpiredSignatureError:
        raise AuthenticationFailed("Session expired, please log in again")
    except jwt.InvalidTokenError:
        raise AuthenticationFailed("Invalid token")

    if not claims.get("sub") or claims.get("role") not in (ROLE_ADMIN, ROLE_STUDENT):
        raise AuthenticationFailed("Invalid token")
    return claims


def check_admin_password(password: str) -> bool:
    return hmac.compare_digest((password or "").encode("utf-8"), ADMIN_PASSWORD.encode("utf-8"))


async def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Dict[str, Any]:
    """
    FastAPI dependency: claims of the verified bearer token.

    Async so that the actor it records stays in the request's logging
    context for the handler that follows.
    """
    if not credentials or not credentials.credentials:
        raise AuthenticationFailed("Please log in first")
    claims = decode_token(credentials.credentials)
    actor_var.set(describe_actor(claims))
    return claims


def describe_actor(claims: Dict[str, Any]) -> str:
    """Actor label for logs: "admin", or "student:<id>" for a student."""
    if claims["role"] == ROLE_ADMIN:
        return ROLE_ADMIN
    return "{}:{}".format(ROLE_STUDENT, claims["sub"])


def require_admin(principal: Dict[str, Any] = Depends(get_current_principal)) -> Dict[str, Any]:
    """FastAPI dependency: only admin tokens pass."""
    if principal["role"] != ROLE_ADMIN:
        log_with_context(logger, "WARNING", "Non-admin token used on an admin route",
            context={"subject": principal["sub"]})
        raise PermissionDenied("Admin access required")
    return principal


def using_dev_secret() -> bool:
    return JWT_SECRET == _DEV_SECRET
