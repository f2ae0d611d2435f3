"""Middleware components for the MemoSpark AI API."""

from .logging import RequestLoggingMiddleware

__all__ = [
    "RequestLoggingMiddleware",
]
