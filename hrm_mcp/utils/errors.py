"""Custom exceptions for the Hierarchical Reasoning MCP server."""

from __future__ import annotations

from typing import Any


class HRMException(Exception):
    """Base exception for the hierarchical reasoning engine."""

    pass


class ConfigException(HRMException):
    """Raised when a configuration value is outside its documented bounds."""

    pass


class UnsupportedOperationError(HRMException):
    """Raised when an operation outside the known set reaches dispatch."""

    def __init__(self, operation: Any) -> None:
        self.operation = operation
        super().__init__(f"Unsupported operation {operation}")


class InvalidWorkspaceError(HRMException):
    """Raised by a framework advisor when a workspace path is rejected.

    The engine treats this as a skip-with-note rather than a failure.
    """

    pass


class SessionNotFoundError(HRMException):
    """Raised when a session ID is not found in the store."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id}")


class ParameterValidationError(HRMException):
    """Raised when request arguments fail validation.

    Raised before any session is loaded or mutated, so callers can retry
    with corrected arguments.
    """

    def __init__(self, issues: list[dict[str, str]]) -> None:
        """Initialize validation error.

        Args:
            issues: One entry per violated field, each with ``field`` and
                ``message`` keys.

        """
        self.issues = issues
        fields = ", ".join(issue["field"] for issue in issues) or "request"
        super().__init__(f"Validation failed for: {fields}")

    def to_dict(self) -> dict[str, Any]:
        """Convert to a structured validation failure."""
        return {
            "is_error": True,
            "error": "validation_failed",
            "message": str(self),
            "issues": self.issues,
            "suggested_next_operation": "evaluate",
        }


class ToolExecutionError(Exception):
    """Raised when tool execution fails in MCP context.

    Provides structured error information that can be returned
    to the client in a parseable format.
    """

    def __init__(
        self,
        tool_name: str,
        error_message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize tool execution error.

        Args:
            tool_name: Name of the tool that failed.
            error_message: Human-readable error message.
            details: Optional dictionary with additional error details.

        """
        self.tool_name = tool_name
        self.error_message = error_message
        self.details = details or {}
        super().__init__(f"Tool {tool_name} failed: {error_message}")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "is_error": True,
            "tool": self.tool_name,
            "message": self.error_message,
            "details": self.details,
            "suggested_next_operation": "evaluate",
        }
