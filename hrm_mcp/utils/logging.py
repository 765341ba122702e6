"""Logging configuration for the Hierarchical Reasoning MCP server.

Provides:
- Human-readable text output for development, JSON lines for production
- Request context (session id, operation) injected into every record
- Level, format and file sink read from the environment

All modules log through ``loguru.logger`` directly; this module only
configures sinks and manages the per-request context.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

import orjson
from loguru import logger

if TYPE_CHECKING:
    from loguru import Record

# Request context, set by the engine around each tool call
_session_id: ContextVar[str | None] = ContextVar("session_id", default=None)
_operation: ContextVar[str | None] = ContextVar("operation", default=None)


class LogFormat(str, Enum):
    """Supported log output formats."""

    JSON = "json"
    TEXT = "text"


class LogLevel(str, Enum):
    """Supported log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


def current_context() -> dict[str, str]:
    """Return the request context fields that are currently set."""
    context: dict[str, str] = {}
    if session_id := _session_id.get():
        context["session_id"] = session_id
    if operation := _operation.get():
        context["operation"] = operation
    return context


def _base_entry(record: Record) -> dict[str, Any]:
    return {
        "timestamp": datetime.now(UTC).isoformat(),
        "level": record["level"].name,
        "message": record["message"],
        "module": record["name"],
        "function": record["function"],
        "line": record["line"],
    }


def json_serializer(record: Record) -> str:
    """Render one record as a single JSON line, request context included."""
    entry = _base_entry(record)
    entry.update(current_context())

    bound = {key: value for key, value in record["extra"].items() if key != "serialized"}
    if bound:
        entry["extra"] = bound

    failure = record["exception"]
    if failure:
        entry["exception"] = {
            "type": None if failure.type is None else failure.type.__name__,
            "value": None if failure.value is None else str(failure.value),
        }

    return orjson.dumps(entry, default=str, option=orjson.OPT_NON_STR_KEYS).decode()


def text_format(record: Record) -> str:
    """Build the loguru console format, prefixed with ``[sess=.. op=..]`` when set."""
    tags = []
    if session_id := _session_id.get():
        tags.append(f"sess={session_id[:8]}")
    if operation := _operation.get():
        tags.append(f"op={operation}")
    # loguru would treat braces in user text as format fields
    prefix = f"[{' '.join(tags)}] ".replace("{", "{{").replace("}", "}}") if tags else ""

    return (
        "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
        "<cyan>{name}:{function}:{line}</cyan> | " + prefix + "<level>{message}</level>\n{exception}"
    )


def _json_sink_patcher(record: Record) -> None:
    record["extra"]["serialized"] = json_serializer(record)


def _resolve_level(level: LogLevel | str | None) -> LogLevel:
    if isinstance(level, LogLevel):
        return level
    return LogLevel((level or os.getenv("LOG_LEVEL") or "INFO").upper())


def _resolve_format(log_format: LogFormat | str | None) -> LogFormat:
    if isinstance(log_format, LogFormat):
        return log_format
    return LogFormat((log_format or os.getenv("LOG_FORMAT") or "text").lower())


def configure_logging(
    level: LogLevel | str | None = None,
    log_format: LogFormat | str | None = None,
    log_file: str | Path | None = None,
) -> None:
    """Install the stderr sink and, optionally, a rotating JSON file sink.

    Unset arguments come from ``LOG_LEVEL``, ``LOG_FORMAT`` and ``LOG_FILE``.
    ``HRM_DEBUG=true`` overrides the level with DEBUG. Nothing is written to
    stdout because the stdio transport owns it.

    Raises:
        ValueError: If the level or format name is unknown.

    """
    if os.getenv("HRM_DEBUG", "").lower() in ("true", "1", "yes"):
        level = LogLevel.DEBUG
    min_level = _resolve_level(level).value
    fmt = _resolve_format(log_format)
    target = log_file or os.getenv("LOG_FILE") or None

    logger.remove()
    logger.configure(patcher=_json_sink_patcher)

    if fmt is LogFormat.JSON:
        logger.add(sys.stderr, format="{extra[serialized]}", level=min_level)
    else:
        logger.add(sys.stderr, format=text_format, level=min_level, colorize=True)

    if target:
        path = Path(target)
        path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(path, format="{extra[serialized]}", level=min_level, rotation="100 MB", retention="7 days")

    logger.debug(f"Logging configured (level={min_level}, format={fmt.value})")


@contextmanager
def log_context(session_id: str | None = None, operation: str | None = None) -> Iterator[None]:
    """Tag every record logged inside the block with the given request fields."""
    tokens = []
    if session_id:
        tokens.append(_session_id.set(session_id))
    if operation:
        tokens.append(_operation.set(operation))
    try:
        yield
    finally:
        for token in reversed(tokens):
            token.var.reset(token)
