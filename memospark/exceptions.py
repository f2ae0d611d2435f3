"""
Failure types for the AI suggestion pipeline.

Every stage of the pipeline raises one of these; the router catches them
at its boundary and turns them into a failed ResponseEnvelope. Each class
carries the HTTP status the API layer answers with.

Exception Hierarchy:
    SuggestionRouterError (base, 500)
    ├── UnauthenticatedError (401)
    ├── ValidationFailedError (422)
    ├── AccessDeniedError (403)
    ├── QuotaExceededError (429)
    ├── MissingInputError (400)
    ├── HandlerUnavailableError (503)
    └── InternalRouterError (500)
"""

from enum import Enum
from typing import Any, Dict, List, Optional


class FailureReason(str, Enum):
    """Typed reason carried by every failed response."""

    UNAUTHENTICATED = "Unauthenticated"
    VALIDATION_FAILED = "ValidationFailed"
    ACCESS_DENIED = "AccessDenied"
    QUOTA_EXCEEDED = "QuotaExceeded"
    MISSING_INPUT = "MissingInput"
    HANDLER_UNAVAILABLE = "HandlerUnavailable"
    INTERNAL_ERROR = "InternalError"


class SuggestionRouterError(Exception):
    """
    Base exception for pipeline failures.

    Attributes:
        message: Client-safe message.
        reason: FailureReason reported in the envelope.
        status_code: HTTP status for the API layer.
        details: Extra client-safe context.
        internal_message: Detail for logs only, never returned.
    """

    status_code: int = 500
    reason: FailureReason = FailureReason.INTERNAL_ERROR
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        internal_message: Optional[str] = None,
    ):
        self.message = message or self.default_message
        self.details = details or {}
        self.internal_message = internal_message
        super().__init__(self.message)

    @property
    def upgrade_required(self) -> bool:
        return False

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"reason={self.reason.value!r}, "
            f"status_code={self.status_code})"
        )


class UnauthenticatedError(SuggestionRouterError):
    """No caller identity could be resolved."""

    status_code = 401
    reason = FailureReason.UNAUTHENTICATED
    default_message = "Authentication required. Please sign in and try again."


class ValidationFailedError(SuggestionRouterError):
    """
    The payload failed structural validation.

    field_errors maps each offending top-level field to all of its
    messages; validation never stops at the first problem.
    """

    status_code = 422
    reason = FailureReason.VALIDATION_FAILED
    default_message = "Invalid request data. Please check your input."

    def __init__(
        self,
        field_errors: Dict[str, List[str]],
        message: Optional[str] = None,
        internal_message: Optional[str] = None,
    ):
        self.field_errors = field_errors
        super().__init__(message=message, internal_message=internal_message)


class AccessDeniedError(SuggestionRouterError):
    """The caller's tier does not include the requested feature."""

    status_code = 403
    reason = FailureReason.ACCESS_DENIED
    default_message = "This feature requires an upgraded plan"

    def __init__(
        self,
        feature: str,
        tier: str,
        required_tier: str,
        message: Optional[str] = None,
    ):
        self.feature = feature
        self.tier = tier
        self.required_tier = required_tier
        super().__init__(
            message=message,
            details={
                "feature": feature,
                "current_tier": tier,
                "required_tier": required_tier,
            },
        )

    @property
    def upgrade_required(self) -> bool:
        return True


class QuotaExceededError(SuggestionRouterError):
    """The caller has used their whole daily allowance."""

    status_code = 429
    reason = FailureReason.QUOTA_EXCEEDED
    default_message = "Daily AI request limit reached"

    def __init__(
        self,
        tier: str,
        used: int,
        limit: int,
        retry_after: Optional[int] = None,
    ):
        self.tier = tier
        self.used = used
        self.limit = limit
        self.retry_after = retry_after
        super().__init__(details={"limit": limit, "current_usage": used})

    @property
    def upgrade_required(self) -> bool:
        return True


class MissingInputError(SuggestionRouterError):
    """A feature-specific input is absent (e.g. audio for voice processing)."""

    status_code = 400
    reason = FailureReason.MISSING_INPUT
    default_message = "Required input missing for this feature"

    def __init__(self, field: str, message: Optional[str] = None):
        self.field = field
        super().__init__(message=message, details={"field": field})


class HandlerUnavailableError(SuggestionRouterError):
    """The generation engine failed or produced nothing usable."""

    status_code = 503
    reason = FailureReason.HANDLER_UNAVAILABLE
    default_message = "AI service temporarily unavailable"

    def __init__(
        self,
        feature: str,
        internal_message: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.feature = feature
        self.original_error = original_error
        super().__init__(internal_message=internal_message)


class InternalRouterError(SuggestionRouterError):
    """Unexpected failure, including collaborator timeouts."""

    status_code = 500
    reason = FailureReason.INTERNAL_ERROR
    default_message = "An unexpected error occurred"

    def __init__(
        self,
        stage: str,
        internal_message: Optional[str] = None,
        message: Optional[str] = None,
    ):
        self.stage = stage
        super().__init__(message=message, internal_message=internal_message)


def is_client_error(exc: SuggestionRouterError) -> bool:
    """True for failures caused by the request rather than the service."""
    return exc.status_code < 500
