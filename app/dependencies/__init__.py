"""
FastAPI dependencies for the MemoSpark AI API.

Usage:
    from app.dependencies import get_caller_context, get_router
"""

from memospark.suggestions.router import SuggestionRouter, get_suggestion_router

from app.dependencies.caller import get_caller_context


def get_router() -> SuggestionRouter:
    """The process-wide SuggestionRouter (overridable in tests)."""
    return get_suggestion_router()


__all__ = [
    "get_caller_context",
    "get_router",
]
