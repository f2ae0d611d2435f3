"""Authentication components for the MemoSpark AI API."""

from .clerk_jwt import (
    is_clerk_jwt_configured,
    verify_clerk_session_token,
)

__all__ = [
    "is_clerk_jwt_configured",
    "verify_clerk_session_token",
]
