"""
AI suggestion request routing.

SuggestionRouter is the entry point; the other modules are its stages.
"""

from .identity import CallerContext, IdentityResolver
from .router import SuggestionRouter, get_suggestion_router, reset_suggestion_router

__all__ = [
    "CallerContext",
    "IdentityResolver",
    "SuggestionRouter",
    "get_suggestion_router",
    "reset_suggestion_router",
]
