"""API routes for the MemoSpark AI application."""

from .health import router as health_router
from .suggestions import router as suggestions_router

__all__ = [
    "health_router",
    "suggestions_router",
]
