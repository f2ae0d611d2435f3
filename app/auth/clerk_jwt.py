"""
Clerk JWT verification helpers.

The web client authenticates users with Clerk and sends the session token
as `Authorization: Bearer <jwt>`. The token is verified against the Clerk
JWKS.

Configuration (see AuthSettings):
- CLERK_JWKS_URL (required): JWKS URL for your Clerk instance.
- CLERK_JWT_ISSUER (recommended): expected `iss` claim.
- CLERK_JWT_AUDIENCE (optional): expected `aud` claim.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Dict, Optional

import jwt
from jwt import PyJWKClient

from memospark.config import get_settings


def get_clerk_jwks_url() -> str:
    jwks_url = (get_settings().auth.clerk_jwks_url or "").strip()
    if not jwks_url:
        raise ValueError("CLERK_JWKS_URL is not configured (required for Clerk JWT auth)")
    return jwks_url.rstrip("/")


def get_clerk_jwt_issuer() -> Optional[str]:
    issuer = (get_settings().auth.clerk_jwt_issuer or "").strip()
    return issuer.rstrip("/") if issuer else None


def get_clerk_jwt_audience() -> Optional[str]:
    raw = (get_settings().auth.clerk_jwt_audience or "").strip()
    if not raw or raw.lower() in ("none", "null", "disabled"):
        return None
    return raw


def is_clerk_jwt_configured() -> bool:
    return get_settings().auth.is_configured


@lru_cache(maxsize=4)
def _get_jwks_client(jwks_url: str) -> PyJWKClient:
    return PyJWKClient(jwks_url)


def verify_clerk_session_token(token: str) -> Dict[str, Any]:
    """
    Verify a Clerk session token (JWT) and return decoded claims.

    Raises jwt.PyJWTError subclasses on invalid tokens.
    """
    issuer = get_clerk_jwt_issuer()
    audience = get_clerk_jwt_audience()

    signing_key = _get_jwks_client(get_clerk_jwks_url()).get_signing_key_from_jwt(token)

    # Narrow algorithms from the header; a malformed header fails in decode.
    alg = None
    try:
        alg = jwt.get_unverified_header(token).get("alg")
    except jwt.PyJWTError:
        alg = None

    kwargs: Dict[str, Any] = {
        "options": {
            "verify_aud": audience is not None,
            "verify_iss": issuer is not None,
        }
    }
    if issuer is not None:
        kwargs["issuer"] = issuer
    if audience is not None:
        kwargs["audience"] = audience

    return jwt.decode(
        token,
        signing_key.key,
        algorithms=[alg] if alg else ["RS256"],
        **kwargs,
    )
