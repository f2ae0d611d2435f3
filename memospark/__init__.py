"""MemoSpark AI: tiered routing for AI study suggestions."""

__version__ = "1.0.0"
