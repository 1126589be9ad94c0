from __future__ import annotations

import logging
from typing import Annotated

import jwt
from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from course_platform.core.errors import AuthenticationError, AuthorizationError
from course_platform.db.engine import get_async_session
from course_platform.middleware.request_context import user_id_var
from course_platform.models.principal import Principal
from course_platform.services import token_service

logger = logging.getLogger(__name__)

# auto_error=False: a missing header goes through the same 401 path as a
# bad token, so every auth failure has one body shape.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)

SessionDep = Annotated[AsyncSession, Depends(get_async_session)]


def _principal_from_token(raw_token: str) -> Principal:
    try:
        claims = token_service.decode_access_token(raw_token)
    except jwt.ExpiredSignatureError:
        logger.warning("Expired token rejected")
        raise AuthenticationError("Token expired") from None
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid token rejected: %s", e)
        raise AuthenticationError("Invalid token") from None

    try:
        user_id = int(claims["sub"])
    except ValueError:
        logger.warning("Token with non-numeric subject rejected")
        raise AuthenticationError("Invalid token") from None
    return Principal(user_id=user_id, role=claims["rol"])


async def require_user(
    raw_token: Annotated[str | None, Depends(oauth2_scheme)],
) -> Principal:
    """Extract and validate the JWT bearer token. Returns a Principal.

    Used as a FastAPI dependency on any protected endpoint.
    """
    if not raw_token:
        raise AuthenticationError("Token required")
    principal = _principal_from_token(raw_token)
    user_id_var.set(principal.user_id)
    logger.debug(
        "Token validated for user=%s role=%s", principal.user_id, principal.role
    )
    return principal


async def optional_user(
    raw_token: Annotated[str | None, Depends(oauth2_scheme)],
) -> Principal | None:
    """Like require_user, but anonymous callers get None.

    A token that is present but invalid is still rejected.
    """
    if not raw_token:
        return None
    return _principal_from_token(raw_token)


def require_role(role: str):
    """Dependency factory: demand a specific role.

    Usage: Depends(require_role("admin"))
    Returns the Principal if the role matches, else 403.
    """

    async def _guard(
        principal: Annotated[Principal, Depends(require_user)],
    ) -> Principal:
        if not principal.has_role(role):
            logger.warning(
                "Access denied: user=%s role=%s required=%s",
                principal.user_id,
                principal.role,
                role,
            )
            raise AuthorizationError("Insufficient permissions")
        return principal

    return _guard


CurrentUser = Annotated[Principal, Depends(require_user)]
AdminUser = Annotated[Principal, Depends(require_role("admin"))]
