"""
Caller identity resolution.

The HTTP layer verifies the session token and builds a CallerContext; the
resolver turns that context into a caller id or fails the request as
unauthenticated, publishing a security event on the way out.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

from memospark.config import get_settings
from memospark.exceptions import InternalRouterError, UnauthenticatedError
from memospark.suggestions.audit import AuditPublisher, get_audit_publisher

logger = logging.getLogger(__name__)


@dataclass
class CallerContext:
    """What the transport knows about the caller for one request."""

    user_id: Optional[str] = None
    session_claims: Dict[str, Any] = field(default_factory=dict)
    auth_method: Optional[str] = None
    request_id: Optional[str] = None
    client_ip: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.user_id)


IdentityProvider = Callable[[CallerContext], Awaitable[Optional[str]]]


async def session_identity(context: CallerContext) -> Optional[str]:
    """Default provider: the user id verified by the transport."""
    return context.user_id


class IdentityResolver:
    """Resolves a caller id once per request; never caches."""

    def __init__(
        self,
        provider: Optional[IdentityProvider] = None,
        audit: Optional[AuditPublisher] = None,
        timeout: Optional[float] = None,
        action: str = "generateAISuggestions",
    ):
        self._provider = provider or session_identity
        self._audit = audit or get_audit_publisher()
        self._timeout = timeout or get_settings().timeouts.identity_timeout_seconds
        self._action = action

    async def resolve_caller(self, context: CallerContext) -> str:
        """
        Return the caller id.

        Raises:
            UnauthenticatedError: No identity in the context.
            InternalRouterError: The identity provider failed or timed out.
        """
        try:
            caller_id = await asyncio.wait_for(
                self._provider(context), timeout=self._timeout
            )
        except asyncio.TimeoutError as e:
            raise InternalRouterError(
                stage="identity",
                internal_message=f"Identity provider timed out after {self._timeout}s",
            ) from e
        except Exception as e:
            raise InternalRouterError(
                stage="identity",
                internal_message=f"Identity provider error: {e}",
            ) from e

        if not caller_id:
            self._audit.security_event(
                "authentication",
                "medium",
                user_id="anonymous",
                details={
                    "action": self._action,
                    "reason": "missing_auth",
                    "request_id": context.request_id,
                },
            )
            logger.info("Rejected AI request without caller identity")
            raise UnauthenticatedError()

        return caller_id
