"""
Pytest configuration for MemoSpark AI tests.

Environment is fixed before any project import: no database, static tier
lookup and dev-mode caller headers.
"""

import os
import sys

import pytest

# Environment setup before any imports
os.environ["DEV_MODE"] = "true"
os.environ["ENVIRONMENT"] = "development"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["TIER_SOURCE"] = "static"
os.environ.pop("DATABASE_URL", None)
os.environ.pop("SENTRY_DSN", None)
os.environ.pop("CLERK_JWKS_URL", None)

# Ensure project root is in path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))


@pytest.fixture(autouse=True)
def reset_singletons():
    """Drop process-wide router, ledger and audit singletons between tests."""
    yield
    import memospark.suggestions.audit as audit_module
    from memospark.suggestions.router import reset_suggestion_router
    from memospark.usage.quota_service import reset_quota_ledger

    reset_suggestion_router()
    reset_quota_ledger()
    audit_module._audit_publisher = None
