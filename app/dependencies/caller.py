"""
Caller context resolution for AI routes.

Builds the CallerContext the router's identity stage consumes. A missing
or invalid session token is not rejected here: the context is returned
without a user id, and the router answers Unauthenticated (and records a
security event).
"""

import logging
from typing import Any, Dict, Optional

import jwt
from fastapi import Header, Request
from starlette.concurrency import run_in_threadpool

from app.auth import is_clerk_jwt_configured, verify_clerk_session_token
from memospark.config import get_settings
from memospark.suggestions.identity import CallerContext

logger = logging.getLogger(__name__)

DEV_USER_HEADER = "X-User-Id"


def _is_dev_mode_safe() -> bool:
    """
    Check if DEV_MODE can be safely enabled.

    Blocked when ENVIRONMENT or SENTRY_ENVIRONMENT is "production", or when
    ALLOWED_ORIGINS contains non-localhost domains.
    """
    settings = get_settings()
    if settings.security.is_production:
        return False
    if settings.sentry.sentry_environment.lower() == "production":
        return False
    for origin in settings.security.origins_list:
        origin = origin.lower()
        if "localhost" not in origin and "127.0.0.1" not in origin:
            return False
    return True


_dev_mode_warning_logged = False


def _dev_user(header_value: Optional[str]) -> Optional[str]:
    global _dev_mode_warning_logged

    if not header_value or not get_settings().is_dev_mode:
        return None

    if not _is_dev_mode_safe():
        logger.error(
            "DEV_MODE was requested but BLOCKED due to production indicators. "
            "Check ENVIRONMENT, SENTRY_ENVIRONMENT and ALLOWED_ORIGINS settings."
        )
        return None

    if not _dev_mode_warning_logged:
        logger.warning(
            f"DEV_MODE is enabled - {DEV_USER_HEADER} is trusted without a session token! "
            "Never use this in production."
        )
        _dev_mode_warning_logged = True
    return header_value.strip() or None


async def _verify_bearer(authorization: Optional[str]) -> Dict[str, Any]:
    if not authorization:
        return {}
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return {}
    if not is_clerk_jwt_configured():
        logger.warning("Bearer token received but CLERK_JWKS_URL is not configured")
        return {}

    try:
        return await run_in_threadpool(verify_clerk_session_token, token.strip())
    except jwt.PyJWTError as e:
        logger.info(f"Rejected session token: {e.__class__.__name__}")
        return {}


async def get_caller_context(
    request: Request,
    authorization: Optional[str] = Header(default=None),
    x_user_id: Optional[str] = Header(default=None, alias=DEV_USER_HEADER),
) -> CallerContext:
    """FastAPI dependency: what the transport knows about the caller."""
    claims = await _verify_bearer(authorization)

    user_id = claims.get("sub")
    auth_method = "clerk_jwt" if user_id else None
    if not user_id:
        user_id = _dev_user(x_user_id)
        auth_method = "dev_header" if user_id else None

    if user_id:
        request.state.user_id = user_id

    return CallerContext(
        user_id=user_id,
        session_claims=claims,
        auth_method=auth_method,
        request_id=getattr(request.state, "request_id", None),
        client_ip=request.client.host if request.client else None,
    )
