"""Unit tests for hrm_mcp/utils/logging.py."""

from __future__ import annotations

import json
import sys
from collections.abc import Iterator
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest
from loguru import logger

from hrm_mcp.utils.logging import (
    LogFormat,
    LogLevel,
    _operation,
    configure_logging,
    current_context,
    json_serializer,
    log_context,
    text_format,
)


def _record(level: str = "INFO", message: str = "Test message", **overrides: Any) -> dict[str, Any]:
    record: dict[str, Any] = {
        "level": MagicMock(),
        "message": message,
        "name": "test_module",
        "function": "test_func",
        "line": 42,
        "extra": {},
        "exception": None,
    }
    record["level"].name = level
    record.update(overrides)
    return record


@pytest.fixture
def restore_logger() -> Iterator[None]:
    """Return loguru to a plain stderr sink after reconfiguring it."""
    yield
    logger.remove()
    logger.configure(patcher=lambda record: None)
    logger.add(sys.stderr)


def _read_json_lines(path: Path) -> list[dict[str, Any]]:
    return [json.loads(line) for line in path.read_text().splitlines() if line.strip()]


class TestEnums:
    """Test format and level enums."""

    def test_formats(self) -> None:
        """Format values are lowercase names."""
        assert LogFormat.JSON.value == "json"
        assert LogFormat.TEXT.value == "text"

    def test_levels(self) -> None:
        """All log levels are defined."""
        assert [level.value for level in LogLevel] == ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class TestContext:
    """Test request context variables."""

    def test_log_context_scopes_values(self) -> None:
        """Values are set inside the block and restored after it."""
        assert current_context() == {}
        with log_context(session_id="sess-1", operation="h_plan"):
            assert current_context() == {"session_id": "sess-1", "operation": "h_plan"}
        assert current_context() == {}

    def test_nested_contexts(self) -> None:
        """Inner blocks add to, then restore, the outer context."""
        with log_context(operation="auto_reason"):
            with log_context(session_id="abc"):
                assert current_context() == {"session_id": "abc", "operation": "auto_reason"}
            assert current_context() == {"operation": "auto_reason"}

    def test_restored_after_exception(self) -> None:
        """Context is restored even when the block raises."""
        with pytest.raises(ValueError), log_context(session_id="boom"):
            raise ValueError("x")
        assert current_context() == {}


class TestJsonSerializer:
    """Test JSON log serialization."""

    def test_basic_serialization(self) -> None:
        """Core record fields are serialized."""
        parsed = json.loads(json_serializer(_record()))  # type: ignore[arg-type]
        assert parsed["level"] == "INFO"
        assert parsed["message"] == "Test message"
        assert parsed["module"] == "test_module"
        assert parsed["function"] == "test_func"
        assert parsed["line"] == 42
        assert "timestamp" in parsed
        assert "extra" not in parsed

    def test_includes_context(self) -> None:
        """Active request context is merged into the entry."""
        with log_context(session_id="sess-2", operation="evaluate"):
            parsed = json.loads(json_serializer(_record()))  # type: ignore[arg-type]
        assert parsed["session_id"] == "sess-2"
        assert parsed["operation"] == "evaluate"

    def test_extra_without_serialized(self) -> None:
        """Bound extras are kept; the cached serialization is not."""
        record = _record(extra={"step": 3, "serialized": "{}"})
        parsed = json.loads(json_serializer(record))  # type: ignore[arg-type]
        assert parsed["extra"] == {"step": 3}

    def test_exception_info(self) -> None:
        """Exception type and value are serialized."""
        exception = MagicMock()
        exception.type = ValueError
        exception.value = ValueError("bad value")
        parsed = json.loads(json_serializer(_record(level="ERROR", exception=exception)))  # type: ignore[arg-type]
        assert parsed["exception"] == {"type": "ValueError", "value": "bad value"}


class TestTextFormat:
    """Test the human-readable format."""

    def test_without_context(self) -> None:
        """No context prefix is added outside a request."""
        fmt = text_format(_record())  # type: ignore[arg-type]
        assert "sess=" not in fmt
        assert fmt.endswith("{exception}")

    def test_with_context(self) -> None:
        """Session prefix is shortened and the operation shown."""
        with log_context(session_id="1234567890abcdef", operation="h_plan"):
            fmt = text_format(_record())  # type: ignore[arg-type]
        assert "[sess=12345678 op=h_plan] " in fmt

    def test_braces_escaped(self) -> None:
        """Braces in context values cannot be read as format fields."""
        token = _operation.set("{weird}")
        try:
            fmt = text_format(_record())  # type: ignore[arg-type]
        finally:
            _operation.reset(token)
        assert "op={{weird}}" in fmt


@pytest.mark.usefixtures("restore_logger")
class TestConfigureLogging:
    """Test sink configuration."""

    def test_json_file_sink(self, tmp_path: Path) -> None:
        """The file sink writes one JSON object per record."""
        log_file = tmp_path / "logs" / "hrm.log"
        configure_logging(level="INFO", log_format="json", log_file=log_file)
        with log_context(session_id="sess-3"):
            logger.info("hello")
        logger.remove()

        entries = _read_json_lines(log_file)
        hello = [entry for entry in entries if entry["message"] == "hello"]
        assert len(hello) == 1
        assert hello[0]["session_id"] == "sess-3"

    def test_level_filters(self, tmp_path: Path) -> None:
        """Records below the configured level are dropped."""
        log_file = tmp_path / "hrm.log"
        configure_logging(level="WARNING", log_format="text", log_file=log_file)
        logger.info("quiet")
        logger.warning("loud")
        logger.remove()

        messages = [entry["message"] for entry in _read_json_lines(log_file)]
        assert messages == ["loud"]

    def test_debug_env_forces_debug(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """HRM_DEBUG lowers the level to DEBUG."""
        monkeypatch.setenv("HRM_DEBUG", "true")
        log_file = tmp_path / "hrm.log"
        configure_logging(level="ERROR", log_file=log_file)
        logger.debug("details")
        logger.remove()

        messages = [entry["message"] for entry in _read_json_lines(log_file)]
        assert "details" in messages

    def test_env_configuration(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Level, format and file are read from the environment."""
        log_file = tmp_path / "env.log"
        monkeypatch.setenv("LOG_LEVEL", "error")
        monkeypatch.setenv("LOG_FORMAT", "JSON")
        monkeypatch.setenv("LOG_FILE", str(log_file))
        configure_logging()
        logger.warning("dropped")
        logger.error("kept")
        logger.remove()

        messages = [entry["message"] for entry in _read_json_lines(log_file)]
        assert messages == ["kept"]

    def test_enum_arguments(self, tmp_path: Path) -> None:
        """LogLevel and LogFormat members are accepted as-is."""
        log_file = tmp_path / "enum.log"
        configure_logging(level=LogLevel.INFO, log_format=LogFormat.JSON, log_file=log_file)
        logger.debug("hidden")
        logger.info("shown")
        logger.remove()

        messages = [entry["message"] for entry in _read_json_lines(log_file)]
        assert messages == ["shown"]

    def test_debug_env_without_level_argument(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """HRM_DEBUG alone configures logging without error."""
        monkeypatch.setenv("HRM_DEBUG", "1")
        configure_logging()

    def test_invalid_level_rejected(self) -> None:
        """Unknown level names raise."""
        with pytest.raises(ValueError):
            configure_logging(level="VERBOSE")
