"""pytest configuration and fixtures."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

import pytest

from hrm_mcp.config import ReasoningConfig
from hrm_mcp.tools.hierarchical_reasoner import HierarchicalReasoningEngine
from hrm_mcp.tools.reasoning_types import HRMOperation, HRMParameters, ReasoningSession
from hrm_mcp.tools.session_store import ReasoningSessionStore

HRM_ENV_VARS = (
    "HRM_CONVERGENCE_THRESHOLD",
    "HRM_CONFIDENCE_THRESHOLD",
    "HRM_CONVERGENCE_FLOOR",
    "HRM_PLATEAU_WINDOW",
    "HRM_PLATEAU_DELTA",
    "HRM_SESSION_TTL_SECONDS",
    "HRM_MAX_SESSIONS",
    "HRM_MAX_AUTO_STEPS",
    "HRM_AUTO_REASON_TIMEOUT_SECONDS",
    "HRM_INCLUDE_TEXT_TRACE",
    "HRM_DEBUG",
)


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeTimer:
    """Monotonic timer that advances a fixed step on every read."""

    def __init__(self, step: float = 0.0) -> None:
        self.value = 0.0
        self.step = step

    def __call__(self) -> float:
        current = self.value
        self.value += self.step
        return current


@pytest.fixture(autouse=True)
def clean_hrm_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep HRM_* variables from the outer environment out of tests."""
    for name in HRM_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config() -> ReasoningConfig:
    """Default engine configuration, independent of the environment."""
    return ReasoningConfig(
        convergence_threshold=0.85,
        convergence_floor=0.5,
        plateau_window=3,
        plateau_delta=0.02,
        session_ttl_seconds=900.0,
        max_sessions=1000,
        auto_reason_max_steps=24,
        auto_reason_timeout_seconds=30.0,
        include_text_trace=False,
    )


@pytest.fixture
def clock() -> FakeClock:
    """Controllable clock for TTL tests."""
    return FakeClock()


@pytest.fixture
def store(config: ReasoningConfig, clock: FakeClock) -> ReasoningSessionStore:
    """Session store backed by memory and the fake clock."""
    return ReasoningSessionStore(config, clock=clock)


@pytest.fixture
def engine(config: ReasoningConfig, store: ReasoningSessionStore) -> HierarchicalReasoningEngine:
    """Engine wired to the fixture store."""
    return HierarchicalReasoningEngine(config=config, store=store)


def make_params(operation: HRMOperation | str = HRMOperation.EVALUATE, **kwargs: Any) -> HRMParameters:
    """Build validated parameters."""
    return HRMParameters(operation=HRMOperation(operation), **kwargs)


def make_session(**kwargs: Any) -> ReasoningSession:
    """Build a session with a fixed ID."""
    kwargs.setdefault("session_id", "00000000-0000-4000-8000-000000000000")
    return ReasoningSession(**kwargs)
