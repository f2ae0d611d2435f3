"""Shared utilities for the MemoSpark AI service."""

from .logging import (
    clear_request_context,
    get_request_id,
    get_user_id,
    set_request_context,
    setup_logging,
    Timer,
)

__all__ = [
    "clear_request_context",
    "get_request_id",
    "get_user_id",
    "set_request_context",
    "setup_logging",
    "Timer",
]
