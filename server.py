"""
API server for MemoSpark AI.

Routes AI study-suggestion requests through identity, tier access and
daily quota checks before dispatching them to the suggestion engine.

This is the main entry point that assembles the modular components
from the app package.
"""

import logging
import os
import re
from contextlib import asynccontextmanager

import sentry_sdk
import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

load_dotenv()

# Configure structured logging FIRST, before other imports that use logging
from memospark.utils.logging import setup_logging

logger = setup_logging(service_name="memospark-ai")

from memospark.config import Settings, get_settings

settings: Settings = get_settings()
logger.info("Configuration loaded", extra={"config": settings.get_config_summary()})

from app.error_handlers import register_exception_handlers
from app.middleware import RequestLoggingMiddleware
from app.routes import health_router, suggestions_router
from memospark.db import close_pool
from memospark.suggestions.audit import get_audit_publisher

# =============================================================================
# Sentry Error Tracking Configuration
# =============================================================================

SENSITIVE_KEYS = [
    "password", "api_key", "apikey", "secret", "token",
    "authorization", "bearer", "credential", "x-user-id",
]


def filter_sensitive_breadcrumbs(crumb, hint):
    """Strip auth headers and secret-looking query params from breadcrumbs."""
    if crumb.get("category") == "http" and isinstance(crumb.get("data"), dict):
        data = crumb["data"]
        if isinstance(data.get("headers"), dict):
            for key in list(data["headers"].keys()):
                if any(s in key.lower() for s in SENSITIVE_KEYS):
                    data["headers"][key] = "[FILTERED]"
        if "url" in data:
            for key in SENSITIVE_KEYS:
                pattern = re.compile(f"({re.escape(key)}=)[^&]*", re.IGNORECASE)
                data["url"] = pattern.sub(r"\1[FILTERED]", data["url"])

    if crumb.get("category") in ("console", "log") and "message" in crumb:
        message = str(crumb["message"]).lower()
        if any(key in message for key in SENSITIVE_KEYS):
            crumb["message"] = "[FILTERED - may contain sensitive data]"

    return crumb


if settings.is_sentry_configured:
    sentry_settings = settings.sentry
    sentry_sdk.init(
        dsn=sentry_settings.sentry_dsn,
        environment=sentry_settings.sentry_environment,
        sample_rate=1.0,
        traces_sample_rate=sentry_settings.sentry_traces_sample_rate,
        integrations=[
            StarletteIntegration(transaction_style="endpoint"),
            FastApiIntegration(transaction_style="endpoint"),
        ],
        before_breadcrumb=filter_sensitive_breadcrumbs,
        send_default_pii=False,
        attach_stacktrace=True,
        release=sentry_settings.sentry_release,
    )
    logger.info(f"Sentry initialized for environment: {sentry_settings.sentry_environment}")
else:
    logger.info("Sentry DSN not configured, error tracking disabled")


# =============================================================================
# Initialize FastAPI App
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup/shutdown for shared resources."""
    yield
    try:
        await get_audit_publisher().drain()
    except Exception as e:
        logger.warning("Failed to flush security events: %s", e)
    try:
        await close_pool()
    except Exception as e:
        logger.warning("Failed to close Postgres pool: %s", e)


app = FastAPI(
    title="MemoSpark AI API",
    description="""
## Tiered AI Study Suggestions

Every request to `/ai/*` passes through the same pipeline: the caller is
identified, the payload validated, the caller's subscription tier checked
against the requested feature and the daily quota read. Only then is the
feature dispatched, and quota is consumed only when it succeeds.

### Authentication

Clerk session JWT via `Authorization: Bearer <token>`.

### Daily limits

- **Free**: 10 AI requests per day (basic suggestions)
- **Premium**: 100 AI requests per day
- **Premium Plus**: 500 AI requests per day (includes premium analytics)
""",
    version="1.0.0",
    lifespan=lifespan,
    openapi_tags=[
        {"name": "health", "description": "Liveness and system status"},
        {"name": "ai", "description": "AI suggestions, usage and tier catalogue"},
    ],
)

register_exception_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.security.origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=[
        "Authorization",
        "Content-Type",
        "X-Request-ID",
        "X-User-Id",
        "Accept",
        "Origin",
    ],
    expose_headers=["X-Request-ID", "X-Response-Time", "Retry-After"],
    max_age=600,
)

# Added last so it wraps every other middleware
if settings.logging.request_logging_enabled:
    app.add_middleware(RequestLoggingMiddleware)
    logger.info("Request logging middleware enabled")

app.include_router(health_router)
app.include_router(suggestions_router)


if __name__ == "__main__":
    reload_enabled = os.environ.get("UVICORN_RELOAD", "false").lower() == "true"
    port = int(os.environ.get("PORT", "8000"))
    uvicorn.run("server:app", host="0.0.0.0", port=port, reload=reload_enabled)
