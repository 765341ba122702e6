"""Utility modules for Hierarchical Reasoning MCP."""

from .errors import (
    ConfigException,
    HRMException,
    InvalidWorkspaceError,
    ParameterValidationError,
    SessionNotFoundError,
    ToolExecutionError,
    UnsupportedOperationError,
)
from .logging import LogFormat, LogLevel, configure_logging, log_context
from .session import HasUpdatedAt, InMemorySessionBackend, LRUEvictionPolicy, SessionBackend
from .text import (
    RecentSignatures,
    append_context,
    normalize_thought,
    summary_from_context,
    thought_signature,
)

__all__ = [
    # Errors
    "ConfigException",
    "HRMException",
    "InvalidWorkspaceError",
    "ParameterValidationError",
    "SessionNotFoundError",
    "ToolExecutionError",
    "UnsupportedOperationError",
    # Logging
    "LogFormat",
    "LogLevel",
    "configure_logging",
    "log_context",
    # Session persistence
    "HasUpdatedAt",
    "InMemorySessionBackend",
    "LRUEvictionPolicy",
    "SessionBackend",
    # Text
    "RecentSignatures",
    "append_context",
    "normalize_thought",
    "summary_from_context",
    "thought_signature",
]
