"""Logging setup for the DingTalk relay.

Every log line emitted while a message is being relayed carries that
message's ``msg_id`` and ``conversation_id``. The orchestrator opens a
``message_context`` per inbound message, and ``MessageContextFilter``
copies the bound values onto each record passing through the relay's
handlers. Records from outside any message get ``-``.
"""

import json
import logging
import logging.handlers
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

CONTEXT_FIELDS = ("msg_id", "conversation_id")
UNBOUND = "-"

_message_context: ContextVar[dict[str, str] | None] = ContextVar(
    "relay_message_context", default=None
)

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RESERVED_RECORD_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "msecs",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "getMessage",
    }
)


class LogLevel(str, Enum):
    """Valid log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogStream(str, Enum):
    """Console stream for log output."""

    STDOUT = "stdout"
    STDERR = "stderr"


class LoggingConfig(BaseModel):
    """Handler and format settings applied by ``setup_logging``."""

    level: LogLevel = Field(default=LogLevel.INFO, description="Root log level")
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - [%(msg_id)s] %(message)s",
        description="Text format; msg_id and conversation_id are always available",
    )
    date_format: str = Field(default="%Y-%m-%d %H:%M:%S", description="Text date format")
    json_format: bool = Field(default=False, description="Emit one JSON object per line")
    console_enabled: bool = Field(default=True, description="Log to the console")
    console_stream: LogStream = Field(
        default=LogStream.STDOUT,
        description="Console stream; the server logs to stderr",
    )
    file_enabled: bool = Field(default=False, description="Also log to a rotating file")
    file_path: Path | None = Field(default=None, description="Rotating log file path")
    max_bytes: int = Field(default=10_485_760, description="Rotate after this many bytes")  # 10MB
    backup_count: int = Field(default=5, description="Rotated files to keep")
    quiet_loggers: list[str] = Field(
        default_factory=lambda: ["httpx", "httpcore"],
        description="Loggers held at WARNING unless the level is DEBUG",
    )

    @field_validator("file_path")
    @classmethod
    def validate_file_path(cls, v: Path | None) -> Path | None:
        """Ensure file path directory exists."""
        if v is not None:
            v.parent.mkdir(parents=True, exist_ok=True)
        return v


@contextmanager
def message_context(**fields: str | None) -> Iterator[None]:
    """Bind relay message fields to every record logged inside the block.

    The binding lives in a context variable, so each asyncio task handling
    a message sees only its own values.
    """
    token = _message_context.set({k: v for k, v in fields.items() if v})
    try:
        yield
    finally:
        _message_context.reset(token)


def bind_message_context(**fields: str | None) -> None:
    """Add fields to the innermost open ``message_context``; no-op outside one."""
    bound = _message_context.get()
    if bound is not None:
        bound.update({k: v for k, v in fields.items() if v})


def current_message_context() -> dict[str, str]:
    """Return a copy of the fields bound in the current context."""
    return dict(_message_context.get() or {})


class MessageContextFilter(logging.Filter):
    """Stamps msg_id and conversation_id onto records.

    Values passed explicitly through ``extra`` win over the bound context.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        bound = _message_context.get() or {}
        for field in CONTEXT_FIELDS:
            if not hasattr(record, field):
                setattr(record, field, bound.get(field, UNBOUND))
        return True


class StructuredFormatter(logging.Formatter):
    """Formats records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _RESERVED_RECORD_ATTRS:
                continue
            if key in CONTEXT_FIELDS and value == UNBOUND:
                continue
            log_data[key] = value

        return json.dumps(log_data, default=str, ensure_ascii=False)


def _build_handlers(config: LoggingConfig) -> list[logging.Handler]:
    handlers: list[logging.Handler] = []
    if config.console_enabled:
        stream = sys.stderr if config.console_stream == LogStream.STDERR else sys.stdout
        handlers.append(logging.StreamHandler(stream))
    if config.file_enabled and config.file_path:
        handlers.append(
            logging.handlers.RotatingFileHandler(
                filename=config.file_path,
                maxBytes=config.max_bytes,
                backupCount=config.backup_count,
                encoding="utf-8",
            )
        )
    return handlers


def setup_logging(config: LoggingConfig | None = None) -> None:
    """
    Replace the root logger's handlers according to ``config``.

    Args:
        config: Logging configuration. If None, uses defaults.
    """
    if config is None:
        config = LoggingConfig()

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(config.level.value)

    formatter: logging.Formatter
    if config.json_format:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(config.format, datefmt=config.date_format)

    context_filter = MessageContextFilter()
    for handler in _build_handlers(config):
        handler.setFormatter(formatter)
        handler.addFilter(context_filter)
        root_logger.addHandler(handler)

    quiet_level = logging.DEBUG if config.level == LogLevel.DEBUG else logging.WARNING
    for name in config.quiet_loggers:
        logging.getLogger(name).setLevel(quiet_level)

    logging.getLogger(__name__).info(
        "Logging configured", extra={"config": config.model_dump(mode="json")}
    )


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


def log_error_with_trace(
    logger: logging.Logger, error: Exception, message: str = "Error occurred", **context: object
) -> None:
    """
    Log an error with its traceback and exception type.

    Args:
        logger: Logger instance
        error: Exception instance
        message: Error message
        **context: Additional fields for the record
    """
    logger.error(
        message,
        exc_info=error,
        extra={"error_type": type(error).__name__, **context},
    )
