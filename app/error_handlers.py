"""
FastAPI exception handlers for the MemoSpark AI API.

Every error body is the same envelope the router returns:
{
    "success": false,
    "error": "Human-readable message",
    "reason": "ValidationFailed",
    "upgradeRequired": false,
    ...
}

Unexpected exceptions are reported to Sentry and answered with a generic
InternalError envelope.
"""

import logging
import re
import uuid
from typing import Any, Dict, List, Optional

import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from memospark.exceptions import (
    FailureReason,
    SuggestionRouterError,
    ValidationFailedError,
)
from memospark.types.ai import ResponseEnvelope

logger = logging.getLogger(__name__)

SENSITIVE_PATTERNS = [
    r"api[_-]?key",
    r"secret",
    r"password",
    r"token",
    r"bearer",
    r"credential",
    r"postgres(ql)?://",
    r"/home/",
    r"/Users/",
    r"/var/",
    r"/etc/",
]

SENSITIVE_REGEX = re.compile("|".join(SENSITIVE_PATTERNS), re.IGNORECASE)

STATUS_REASONS = {
    400: FailureReason.MISSING_INPUT,
    401: FailureReason.UNAUTHENTICATED,
    403: FailureReason.ACCESS_DENIED,
    422: FailureReason.VALIDATION_FAILED,
    429: FailureReason.QUOTA_EXCEEDED,
    503: FailureReason.HANDLER_UNAVAILABLE,
}


def sanitize_error_message(message: str) -> str:
    """Replace messages that look like they leak secrets or paths."""
    if not message:
        return message
    if SENSITIVE_REGEX.search(message):
        return "An error occurred while processing your request"
    message = re.sub(r"\b\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}\b", "[ip]", message)
    if len(message) > 500:
        message = message[:500] + "..."
    return message


def format_pydantic_errors(errors: List[Dict[str, Any]]) -> Dict[str, List[str]]:
    """Group FastAPI validation errors by top-level field."""
    grouped: Dict[str, List[str]] = {}
    for error in errors:
        parts = [str(p) for p in error.get("loc", ()) if p not in ("body", "query", "path")]
        field = parts[0] if parts else "request"
        path = ".".join(parts) if parts else "request"

        if error.get("type") == "missing":
            msg = f"{path}: field is required"
        else:
            msg = f"{path}: {sanitize_error_message(error.get('msg', 'Invalid value'))}"
        grouped.setdefault(field, []).append(msg)
    return grouped


def envelope_response(envelope: ResponseEnvelope) -> JSONResponse:
    """Serialize an envelope with its status code and Retry-After header."""
    headers = None
    if envelope.retry_after:
        headers = {"Retry-After": str(envelope.retry_after)}
    return JSONResponse(
        status_code=envelope.status_code,
        content=envelope.to_response(),
        headers=headers,
    )


def error_envelope(error: SuggestionRouterError) -> ResponseEnvelope:
    return ResponseEnvelope(
        success=False,
        error=sanitize_error_message(error.message),
        reason=error.reason.value,
        upgrade_required=error.upgrade_required,
        field_errors=getattr(error, "field_errors", None),
    ).with_status(error.status_code, retry_after=getattr(error, "retry_after", None))


def report_to_sentry(
    exc: Exception,
    request: Optional[Request] = None,
    extra_context: Optional[Dict[str, Any]] = None,
) -> Optional[str]:
    """
    Report an exception to Sentry with request context.

    Returns:
        Sentry event ID if reported, None otherwise.
    """
    try:
        if not sentry_sdk.get_client().is_active():
            return None

        with sentry_sdk.new_scope() as scope:
            if request:
                scope.set_context("request", {
                    "method": request.method,
                    "path": request.url.path,
                })
                user_id = getattr(request.state, "user_id", None)
                if user_id:
                    scope.set_user({"id": user_id})
                request_id = getattr(request.state, "request_id", None)
                if request_id:
                    scope.set_tag("request_id", request_id)

            if extra_context:
                scope.set_context("extra", extra_context)

            return sentry_sdk.capture_exception(exc)

    except Exception as e:
        logger.warning(f"Failed to report exception to Sentry: {e}")
        return None


# =============================================================================
# Exception Handlers
# =============================================================================


async def router_exception_handler(
    request: Request,
    exc: SuggestionRouterError,
) -> JSONResponse:
    """Handle SuggestionRouterError raised outside SuggestionRouter.route."""
    log_message = f"{exc.__class__.__name__}: {exc.message}"
    if exc.internal_message:
        log_message += f" | Internal: {exc.internal_message}"

    if exc.status_code >= 500:
        logger.error(log_message)
        report_to_sentry(exc, request)
    else:
        logger.warning(log_message)

    return envelope_response(error_envelope(exc))


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Request-level validation errors (query and path parameters)."""
    field_errors = format_pydantic_errors(exc.errors())
    logger.warning(
        f"Validation error on {request.method} {request.url.path}: "
        f"{sorted(field_errors)}"
    )
    return envelope_response(error_envelope(ValidationFailedError(field_errors)))


async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    """Map HTTPException (404, 405, ...) onto the envelope."""
    reason = STATUS_REASONS.get(exc.status_code, FailureReason.INTERNAL_ERROR)
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)

    if exc.status_code >= 500:
        logger.error(f"HTTP {exc.status_code}: {detail}")
    else:
        logger.info(f"HTTP {exc.status_code}: {detail}")

    envelope = ResponseEnvelope(
        success=False,
        error=sanitize_error_message(detail),
        reason=reason.value,
    ).with_status(exc.status_code)
    return envelope_response(envelope)


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Catch-all: log with a reference id, report to Sentry, answer InternalError."""
    error_reference = str(uuid.uuid4())[:8]

    logger.error(
        f"Unhandled exception [ref:{error_reference}] on "
        f"{request.method} {request.url.path}: {exc}",
        exc_info=True,
    )
    report_to_sentry(exc, request, extra_context={"error_reference": error_reference})

    envelope = ResponseEnvelope(
        success=False,
        error="An unexpected error occurred. Please try again later.",
        reason=FailureReason.INTERNAL_ERROR.value,
        message=f"Reference: {error_reference}",
    ).with_status(500)
    return envelope_response(envelope)


# =============================================================================
# Handler Registration
# =============================================================================


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application."""
    app.add_exception_handler(SuggestionRouterError, router_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    logger.info("Exception handlers registered successfully")
