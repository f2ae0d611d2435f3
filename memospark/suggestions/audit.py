"""
Fire-and-forget security event publishing.

The router publishes events (such as an unauthenticated request) without
awaiting delivery. Events are handed to a background task that fans out
to every configured sink. A failing sink is logged and skipped; it can
never change the outcome of the request that produced the event.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, Set

from pydantic import BaseModel, Field

from memospark.db import execute as db_execute

logger = logging.getLogger(__name__)

# Keys that are redacted before an event leaves the process
SENSITIVE_FIELDS = frozenset({
    "password",
    "secret",
    "token",
    "authorization",
    "api_key",
    "audio",
})

MAX_VALUE_SIZE = 2000


class SecurityEvent(BaseModel):
    type: str
    severity: Literal["low", "medium", "high", "critical"]
    user_id: str = "anonymous"
    details: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def sanitize_details(data: Dict[str, Any]) -> Dict[str, Any]:
    """Redact sensitive keys and truncate long strings, recursively."""
    sanitized: Dict[str, Any] = {}
    for key, value in data.items():
        if any(s in key.lower() for s in SENSITIVE_FIELDS):
            sanitized[key] = "[REDACTED]"
        elif isinstance(value, dict):
            sanitized[key] = sanitize_details(value)
        elif isinstance(value, str) and len(value) > MAX_VALUE_SIZE:
            sanitized[key] = value[:MAX_VALUE_SIZE] + "...[truncated]"
        else:
            sanitized[key] = value
    return sanitized


# =============================================================================
# Sinks
# =============================================================================


class AuditSink(ABC):
    @abstractmethod
    async def write(self, event: SecurityEvent) -> None:
        """Persist or forward one event. May raise; the publisher handles it."""


class LoggingAuditSink(AuditSink):
    """Writes events to the structured log."""

    def __init__(self, logger_name: str = "memospark.security"):
        self._logger = logging.getLogger(logger_name)

    async def write(self, event: SecurityEvent) -> None:
        level = logging.WARNING if event.severity in ("medium", "high", "critical") else logging.INFO
        self._logger.log(
            level,
            f"Security event: {event.type} ({event.severity})",
            extra={
                "event": "security_event",
                "security_event_type": event.type,
                "severity": event.severity,
                "subject": event.user_id,
                "details": event.details,
            },
        )


class PostgresAuditSink(AuditSink):
    """Inserts events into the security_events table."""

    async def write(self, event: SecurityEvent) -> None:
        await db_execute(
            """
            INSERT INTO security_events (event_type, severity, user_id, details, created_at)
            VALUES ($1, $2, $3, $4::jsonb, $5)
            """,
            event.type,
            event.severity,
            event.user_id,
            json.dumps(event.details, default=str),
            event.timestamp,
        )


# =============================================================================
# Publisher
# =============================================================================


class AuditPublisher:
    """
    Schedules event delivery on the running loop and returns immediately.

    Pending deliveries are tracked so they are not garbage collected
    mid-flight and can be drained on shutdown.
    """

    def __init__(self, sinks: Optional[List[AuditSink]] = None):
        self.sinks: List[AuditSink] = sinks if sinks is not None else [LoggingAuditSink()]
        self._pending: Set[asyncio.Task] = set()

    def publish(self, event: SecurityEvent) -> Optional[asyncio.Task]:
        """Schedule delivery of ``event``. Never raises."""
        try:
            event = event.model_copy(update={"details": sanitize_details(event.details)})
            task = asyncio.get_running_loop().create_task(self._deliver(event))
        except Exception as e:
            logger.error(f"Failed to schedule security event {event.type}: {e}")
            return None

        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    def security_event(
        self,
        event_type: str,
        severity: str,
        user_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> Optional[asyncio.Task]:
        return self.publish(
            SecurityEvent(
                type=event_type,
                severity=severity,
                user_id=user_id or "anonymous",
                details=details or {},
            )
        )

    async def _deliver(self, event: SecurityEvent) -> None:
        for sink in self.sinks:
            try:
                await sink.write(event)
            except Exception as e:
                logger.error(
                    f"Audit sink {sink.__class__.__name__} failed: {e}",
                    extra={"security_event_type": event.type},
                )

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for every scheduled delivery to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


_audit_publisher: Optional[AuditPublisher] = None


def get_audit_publisher() -> AuditPublisher:
    global _audit_publisher
    if _audit_publisher is None:
        from memospark.config import get_settings

        sinks: List[AuditSink] = [LoggingAuditSink()]
        if get_settings().logging.audit_to_database:
            sinks.append(PostgresAuditSink())
        _audit_publisher = AuditPublisher(sinks)
        logger.info(f"AuditPublisher initialized with {len(sinks)} sink(s)")
    return _audit_publisher
