"""Hierarchical Reasoning MCP Configuration.

Centralized configuration with environment variable support. Values are
read from the environment once, when a config object is built, and checked
against their documented bounds.

Usage:
    from hrm_mcp.config import get_config
    print(get_config().reasoning.plateau_window)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from hrm_mcp.utils.errors import ConfigException


def _get_env(key: str, default: str = "") -> str:
    """Get environment variable, treating empty string as unset."""
    value = os.getenv(key, default)
    return value if value else default


def _get_env_int(key: str, default: int, minimum: int | None = None, maximum: int | None = None) -> int:
    """Get environment variable as integer, falling back on bad or out-of-range values."""
    value = os.getenv(key)
    if not value:
        return default
    try:
        parsed = int(value)
    except ValueError:
        logger.warning(f"Invalid integer for {key}: {value}, using default {default}")
        return default
    if (minimum is not None and parsed < minimum) or (maximum is not None and parsed > maximum):
        logger.warning(f"Out-of-range value for {key}: {value}, using default {default}")
        return default
    return parsed


def _get_env_float(
    keys: tuple[str, ...],
    default: float,
    minimum: float | None = None,
    maximum: float | None = None,
) -> float:
    """Get the first set environment variable among ``keys`` as a float."""
    for key in keys:
        value = os.getenv(key)
        if not value:
            continue
        try:
            parsed = float(value)
        except ValueError:
            logger.warning(f"Invalid number for {key}: {value}, using default {default}")
            return default
        if (minimum is not None and parsed < minimum) or (maximum is not None and parsed > maximum):
            logger.warning(f"Out-of-range value for {key}: {value}, using default {default}")
            return default
        return parsed
    return default


def _get_env_bool(key: str, default: bool = False) -> bool:
    """Get environment variable as boolean."""
    value = _get_env(key, "").lower()
    if not value:
        return default
    return value in ("true", "1", "yes")


def _check_range(name: str, value: float, minimum: float, maximum: float) -> None:
    if not minimum <= value <= maximum:
        raise ConfigException(f"{name} must be within [{minimum}, {maximum}], got {value}")


@dataclass(frozen=True)
class ReasoningConfig:
    """Engine, metric and session-lifecycle configuration.

    ``convergence_threshold`` seeds new sessions that do not request one.
    The convergence required to halt is
    ``max(convergence_floor, session.convergence_threshold)``.
    """

    convergence_threshold: float = field(
        default_factory=lambda: _get_env_float(
            ("HRM_CONVERGENCE_THRESHOLD", "HRM_CONFIDENCE_THRESHOLD"), 0.85, 0.5, 0.99
        )
    )
    convergence_floor: float = field(
        default_factory=lambda: _get_env_float(("HRM_CONVERGENCE_FLOOR",), 0.5, 0.5, 0.99)
    )
    min_confidence_for_completion: float = 0.8
    plateau_window: int = field(
        default_factory=lambda: _get_env_int("HRM_PLATEAU_WINDOW", 3, 2, 20)
    )
    plateau_delta: float = field(
        default_factory=lambda: _get_env_float(("HRM_PLATEAU_DELTA",), 0.02, 1e-6, 0.999)
    )
    max_plateau_before_halt: int = 2
    session_ttl_seconds: float = field(
        default_factory=lambda: _get_env_float(("HRM_SESSION_TTL_SECONDS",), 900.0)
    )
    max_sessions: int = field(default_factory=lambda: _get_env_int("HRM_MAX_SESSIONS", 1000, 1))
    auto_reason_max_steps: int = field(
        default_factory=lambda: _get_env_int("HRM_MAX_AUTO_STEPS", 24, 1, 200)
    )
    auto_reason_timeout_seconds: float = field(
        default_factory=lambda: _get_env_float(("HRM_AUTO_REASON_TIMEOUT_SECONDS",), 30.0, 0.001)
    )
    include_text_trace: bool = field(
        default_factory=lambda: _get_env_bool("HRM_INCLUDE_TEXT_TRACE", False)
    )
    max_thought_length: int = 2000
    max_context_length: int = 2000

    def __post_init__(self) -> None:
        """Reject values outside their documented bounds."""
        _check_range("convergence_threshold", self.convergence_threshold, 0.5, 0.99)
        _check_range("convergence_floor", self.convergence_floor, 0.5, 0.99)
        _check_range("plateau_window", self.plateau_window, 2, 20)
        _check_range("auto_reason_max_steps", self.auto_reason_max_steps, 1, 200)
        if not 0.0 < self.min_confidence_for_completion <= 1.0:
            raise ConfigException("min_confidence_for_completion must be within (0, 1]")
        if not 0.0 < self.plateau_delta < 1.0:
            raise ConfigException("plateau_delta must be within (0, 1)")
        if self.max_plateau_before_halt < 1:
            raise ConfigException("max_plateau_before_halt must be at least 1")
        if self.max_sessions < 1:
            raise ConfigException("max_sessions must be at least 1")
        if self.auto_reason_timeout_seconds <= 0:
            raise ConfigException("auto_reason_timeout_seconds must be positive")
        if self.max_thought_length < 16 or self.max_context_length < 16:
            raise ConfigException("max_thought_length and max_context_length must be >= 16")

    @property
    def ttl_enabled(self) -> bool:
        """Whether sessions expire after inactivity."""
        return self.session_ttl_seconds > 0


@dataclass(frozen=True)
class ServerConfig:
    """Server runtime configuration."""

    name: str = field(default_factory=lambda: _get_env("SERVER_NAME", "Hierarchical-Reasoning-MCP"))
    transport: str = field(default_factory=lambda: _get_env("SERVER_TRANSPORT", "stdio"))
    host: str = field(default_factory=lambda: _get_env("SERVER_HOST", "127.0.0.1"))
    port: int = field(default_factory=lambda: _get_env_int("SERVER_PORT", 8000))


@dataclass(frozen=True)
class SessionConfig:
    """Background session housekeeping configuration."""

    cleanup_interval_seconds: int = field(
        default_factory=lambda: _get_env_int("CLEANUP_INTERVAL_SECONDS", 60, 1)
    )


@dataclass(frozen=True)
class Config:
    """Root configuration object."""

    reasoning: ReasoningConfig = field(default_factory=ReasoningConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    session: SessionConfig = field(default_factory=SessionConfig)

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary (for logging/debugging)."""
        return {
            "server": {
                "name": self.server.name,
                "transport": self.server.transport,
                "host": self.server.host,
                "port": self.server.port,
            },
            "reasoning": {
                "convergence_threshold": self.reasoning.convergence_threshold,
                "convergence_floor": self.reasoning.convergence_floor,
                "plateau_window": self.reasoning.plateau_window,
                "plateau_delta": self.reasoning.plateau_delta,
                "max_auto_steps": self.reasoning.auto_reason_max_steps,
                "auto_reason_timeout_seconds": self.reasoning.auto_reason_timeout_seconds,
            },
            "session": {
                "ttl_seconds": self.reasoning.session_ttl_seconds,
                "max_sessions": self.reasoning.max_sessions,
                "cleanup_interval_seconds": self.session.cleanup_interval_seconds,
            },
        }


# Global config instance (lazy-loaded)
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def reload_config() -> Config:
    """Reload configuration (for testing)."""
    global _config
    _config = Config()
    return _config
