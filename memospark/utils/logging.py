"""
Structured logging for the MemoSpark AI service.

Provides:
- JSON logs in production, colored single-line logs in development
- request_id / user_id propagation through contextvars
- Redaction of tokens and credentials before records are emitted
- A Timer context manager for stage timings
"""

import json
import logging
import re
import sys
import time
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
user_id_var: ContextVar[Optional[str]] = ContextVar("user_id", default=None)

REDACTED = "[REDACTED]"

SENSITIVE_PATTERNS: list[re.Pattern] = [
    re.compile(r'bearer\s+[\w.-]+', re.IGNORECASE),
    re.compile(r'eyJ[\w-]+\.eyJ[\w-]+\.[\w-]+'),  # JWTs
    re.compile(r'authorization["\']?\s*[:=]\s*["\']?[^\s,}]+', re.IGNORECASE),
    re.compile(r'(?:api[_-]?key|secret|password)["\']?\s*[:=]\s*["\']?[^\s,}]+', re.IGNORECASE),
    re.compile(r'postgres(?:ql)?://\S+', re.IGNORECASE),
    re.compile(r'sk_(?:test|live)_\w+'),  # Clerk secret keys
]

_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "request_id", "user_id", "taskName"}


def redact_sensitive_data(message: str) -> str:
    """Replace credentials and tokens in a message with [REDACTED]."""
    if not message:
        return message
    for pattern in SENSITIVE_PATTERNS:
        message = pattern.sub(REDACTED, message)
    return message


def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        k: v for k, v in record.__dict__.items()
        if k not in _RESERVED_ATTRS and not k.startswith("_")
    }


class RequestContextFilter(logging.Filter):
    """Stamp every record with the current request and user ids."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get() or "-"
        record.user_id = user_id_var.get() or "-"
        return True


class SensitiveDataFilter(logging.Filter):
    """Redact secrets from the message template and its string args."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.msg:
            record.msg = redact_sensitive_data(str(record.msg))
        if isinstance(record.args, tuple):
            record.args = tuple(
                redact_sensitive_data(arg) if isinstance(arg, str) else arg
                for arg in record.args
            )
        return True


class JSONFormatter(logging.Formatter):
    """
    One JSON object per line:

    {"timestamp": ..., "level": "INFO", "logger": "memospark.suggestions.router",
     "message": ..., "service": "memospark-ai", "request_id": ..., "user_id": ...,
     "extra": {...}}
    """

    def __init__(self, service_name: str = "memospark-ai"):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
            "request_id": getattr(record, "request_id", "-"),
            "user_id": getattr(record, "user_id", "-"),
        }

        if record.levelno >= logging.ERROR:
            log_data["source"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        extra = _extra_fields(record)
        if extra:
            log_data["extra"] = extra

        return json.dumps(log_data, default=str, ensure_ascii=False)


class DevelopmentFormatter(logging.Formatter):
    """Format: [time] LEVEL [req_id] [user_id] logger - message {extra}"""

    COLORS: Dict[str, str] = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"
    DIM = "\033[2m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        request_id = getattr(record, "request_id", "-")[:8]
        user_id = getattr(record, "user_id", "-")[:8]
        timestamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]

        formatted = (
            f"{self.DIM}[{timestamp}]{self.RESET} "
            f"{color}{record.levelname:8}{self.RESET} "
            f"{self.DIM}[{request_id:>8}] [{user_id:>8}]{self.RESET} "
            f"{record.name} - {record.getMessage()}"
        )

        extra = _extra_fields(record)
        if extra:
            formatted += f" {self.DIM}{extra}{self.RESET}"

        if record.exc_info:
            formatted += f"\n{self.formatException(record.exc_info)}"

        return formatted


def setup_logging(
    service_name: str = "memospark-ai",
    log_level: Optional[str] = None,
    force_json: bool = False,
) -> logging.Logger:
    """
    Configure the root logger once at startup.

    Level and format come from LoggingSettings unless overridden.
    JSON output is used in production or when LOG_FORMAT_JSON is set.
    """
    from memospark.config import get_settings

    settings = get_settings()
    level_name = log_level or settings.logging.log_level
    level = logging.getLevelName(level_name.upper())
    if not isinstance(level, int):
        level = logging.INFO

    use_json = (
        force_json
        or settings.logging.log_format_json
        or settings.security.is_production
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(RequestContextFilter())
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(
        JSONFormatter(service_name) if use_json else DevelopmentFormatter()
    )
    root_logger.addHandler(handler)

    for noisy in ("uvicorn.access", "httpx", "httpcore", "asyncio"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    root_logger.info(
        "Logging configured",
        extra={
            "log_level": logging.getLevelName(level),
            "format": "json" if use_json else "development",
            "service": service_name,
        },
    )
    return root_logger


def set_request_context(
    request_id: Optional[str] = None,
    user_id: Optional[str] = None,
) -> None:
    """Set request context for the current async context."""
    if request_id is not None:
        request_id_var.set(request_id)
    if user_id is not None:
        user_id_var.set(user_id)


def clear_request_context() -> None:
    request_id_var.set(None)
    user_id_var.set(None)


def get_request_id() -> Optional[str]:
    return request_id_var.get()


def get_user_id() -> Optional[str]:
    return user_id_var.get()


class Timer:
    """
    Context manager for timing a block.

        with Timer("dispatch.study_planning", logger) as timer:
            ...
        timer.elapsed_ms
    """

    def __init__(
        self,
        name: str,
        logger: Optional[logging.Logger] = None,
        log_level: int = logging.DEBUG,
    ):
        self.name = name
        self.logger = logger
        self.log_level = log_level
        self.start_time: Optional[float] = None
        self.elapsed_ms: float = 0

    def __enter__(self) -> "Timer":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self.start_time is not None:
            self.elapsed_ms = (time.perf_counter() - self.start_time) * 1000

        if self.logger:
            self.logger.log(
                self.log_level,
                f"{self.name} completed in {self.elapsed_ms:.2f}ms",
                extra={
                    "operation": self.name,
                    "duration_ms": round(self.elapsed_ms, 2),
                    "success": exc_type is None,
                },
            )
