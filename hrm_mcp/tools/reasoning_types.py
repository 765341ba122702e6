"""Reasoning types and data structures.

This module contains the enums, dataclasses, request model and constants
shared by the hierarchical reasoning engine, its operation handlers and
the session store.
"""

from __future__ import annotations

import uuid
from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from hrm_mcp.utils.errors import ParameterValidationError
from hrm_mcp.utils.text import RecentSignatures

# =============================================================================
# Enums
# =============================================================================


class HRMOperation(str, Enum):
    """Operations accepted by the reasoning engine."""

    H_PLAN = "h_plan"  # High-level planning to outline strategic direction
    L_EXECUTE = "l_execute"  # Low-level execution handling details
    H_UPDATE = "h_update"  # High-level synthesis of low-level outcomes
    EVALUATE = "evaluate"  # Evaluation of solution quality and alignment
    HALT_CHECK = "halt_check"  # Decide whether to continue
    AUTO_REASON = "auto_reason"  # Chain the above until a halt fires


class HaltTrigger(str, Enum):
    """Tagged reason an automatic run stopped."""

    CONFIDENCE_CONVERGENCE = "confidence_convergence"
    PLATEAU = "plateau"
    MAX_STEPS = "max_steps"


class ConvergenceStatus(str, Enum):
    """Tri-state convergence status reported in responses."""

    CONVERGING = "converging"
    CONVERGED = "converged"
    DIVERGING = "diverging"


# =============================================================================
# Constants
# =============================================================================

DEFAULT_MAX_L_CYCLES_PER_H = 3
DEFAULT_MAX_H_CYCLES = 4
DEFAULT_CONVERGENCE_THRESHOLD = 0.85
DEFAULT_COMPLEXITY_ESTIMATE = 5.0

MAX_RECENT_DECISIONS = 12
MAX_PENDING_ACTIONS = 6
MAX_RECENT_SIGNATURES = 5
MAX_FRAMEWORK_NOTES = 20
MAX_PERFORMANCE_SAMPLES = 50

# Lower value = preferred when breaking ties between candidate operations.
OPERATION_PRIORITIES: dict[HRMOperation, int] = {
    HRMOperation.AUTO_REASON: 0,
    HRMOperation.H_PLAN: 1,
    HRMOperation.L_EXECUTE: 2,
    HRMOperation.H_UPDATE: 3,
    HRMOperation.EVALUATE: 4,
    HRMOperation.HALT_CHECK: 5,
}

AUTO_REASONING_OPERATIONS: frozenset[HRMOperation] = frozenset(
    {
        HRMOperation.H_PLAN,
        HRMOperation.L_EXECUTE,
        HRMOperation.EVALUATE,
        HRMOperation.HALT_CHECK,
    }
)

PROBLEM_SUMMARY_TEMPLATE = (
    "Provide a concise summary of the problem, key constraints, and desired outcomes."
)


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class ReasoningMetrics:
    """Last-computed heuristic metrics for a session."""

    confidence_score: float = 0.2
    convergence_score: float = 0.1
    complexity_assessment: float = DEFAULT_COMPLEXITY_ESTIMATE
    should_continue: bool = True

    def copy(self) -> ReasoningMetrics:
        """Return an independent snapshot."""
        return ReasoningMetrics(
            confidence_score=self.confidence_score,
            convergence_score=self.convergence_score,
            complexity_assessment=self.complexity_assessment,
            should_continue=self.should_continue,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "confidence_score": self.confidence_score,
            "convergence_score": self.convergence_score,
            "complexity_assessment": self.complexity_assessment,
            "should_continue": self.should_continue,
        }


@dataclass
class RunningMean:
    """Count and total of every value seen, independent of sample retention."""

    count: int = 0
    total: float = 0.0

    def add(self, value: float) -> None:
        self.count += 1
        self.total += value

    @property
    def mean(self) -> float:
        return self.total / self.count if self.count else 0.0


def _push(samples: list, value: Any) -> None:
    samples.append(value)
    del samples[:-MAX_PERFORMANCE_SAMPLES]


@dataclass
class PerformanceMetrics:
    """Timing and thought-length tracking for a session.

    Sample lists keep the most recent ``MAX_PERFORMANCE_SAMPLES`` values;
    averages and ``total_cycles`` cover the whole session.
    """

    cycle_durations: list[float] = field(default_factory=list)  # milliseconds
    h_thought_lengths: list[int] = field(default_factory=list)
    l_thought_lengths: list[int] = field(default_factory=list)
    context_growth_ratios: list[float] = field(default_factory=list)
    total_duration: float | None = None  # last auto_reason run, milliseconds
    duration_stats: RunningMean = field(default_factory=RunningMean)
    h_length_stats: RunningMean = field(default_factory=RunningMean)
    l_length_stats: RunningMean = field(default_factory=RunningMean)
    growth_stats: RunningMean = field(default_factory=RunningMean)

    def record_duration(self, duration_ms: float) -> None:
        """Record how long one operation took."""
        _push(self.cycle_durations, duration_ms)
        self.duration_stats.add(duration_ms)

    def record_thought(self, thought: str, layer: str) -> None:
        """Record the length of an appended thought for layer ``h`` or ``l``."""
        if layer == "h":
            _push(self.h_thought_lengths, len(thought))
            self.h_length_stats.add(len(thought))
        else:
            _push(self.l_thought_lengths, len(thought))
            self.l_length_stats.add(len(thought))

    def record_context_growth(self, previous_size: int, current_size: int) -> None:
        """Record relative context growth of one append."""
        ratio = (current_size - previous_size) / max(previous_size, 1)
        _push(self.context_growth_ratios, ratio)
        self.growth_stats.add(ratio)

    def aggregate(self) -> dict[str, Any]:
        """Summarize tracked values; averages are 0.0 when nothing was recorded."""
        summary: dict[str, Any] = {
            "cycle_durations": list(self.cycle_durations),
            "avg_cycle_duration": self.duration_stats.mean,
            "h_thought_lengths": list(self.h_thought_lengths),
            "l_thought_lengths": list(self.l_thought_lengths),
            "avg_h_thought_length": self.h_length_stats.mean,
            "avg_l_thought_length": self.l_length_stats.mean,
            "context_growth_ratios": list(self.context_growth_ratios),
            "avg_context_growth": self.growth_stats.mean,
            "total_cycles": self.duration_stats.count,
        }
        if self.total_duration is not None:
            summary["total_duration"] = self.total_duration
        return summary


@dataclass
class ReasoningSession:
    """State of one hierarchical reasoning conversation.

    Invariants: ``0 <= l_cycle < max_l_cycles_per_h`` and
    ``0 <= h_cycle <= max_h_cycles``.
    """

    session_id: str
    h_cycle: int = 0
    l_cycle: int = 0
    max_l_cycles_per_h: int = DEFAULT_MAX_L_CYCLES_PER_H
    max_h_cycles: int = DEFAULT_MAX_H_CYCLES
    h_context: list[str] = field(default_factory=list)
    l_context: list[str] = field(default_factory=list)
    solution_candidates: list[str] = field(default_factory=list)
    convergence_threshold: float = DEFAULT_CONVERGENCE_THRESHOLD
    metrics: ReasoningMetrics = field(default_factory=ReasoningMetrics)
    metric_history: list[float] = field(default_factory=list)
    plateau_count: int = 0
    recent_decisions: deque[str] = field(
        default_factory=lambda: deque(maxlen=MAX_RECENT_DECISIONS)
    )
    pending_actions: deque[HRMOperation] = field(
        default_factory=lambda: deque(maxlen=MAX_PENDING_ACTIONS)
    )
    recent_l_signatures: RecentSignatures = field(
        default_factory=lambda: RecentSignatures(MAX_RECENT_SIGNATURES)
    )
    auto_mode: bool = False
    complexity_estimate: float = DEFAULT_COMPLEXITY_ESTIMATE
    problem: str | None = None
    workspace_path: str | None = None
    framework_insight: Any = None
    framework_insight_path: str | None = None
    framework_notes: list[str] = field(default_factory=list)
    cycle_opened: bool = False
    performance: PerformanceMetrics = field(default_factory=PerformanceMetrics)
    updated_at: datetime = field(default_factory=datetime.now)

    def add_framework_notes(self, notes: list[str]) -> None:
        """Append advisory notes, keeping only the most recent ones."""
        self.framework_notes.extend(notes)
        if len(self.framework_notes) > MAX_FRAMEWORK_NOTES:
            self.framework_notes = self.framework_notes[-MAX_FRAMEWORK_NOTES:]


@dataclass
class TraceEntry:
    """One step recorded during an automatic reasoning run."""

    step: int
    operation: HRMOperation
    h_cycle: int
    l_cycle: int
    note: str
    metrics: ReasoningMetrics

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "step": self.step,
            "operation": self.operation.value,
            "h_cycle": self.h_cycle,
            "l_cycle": self.l_cycle,
            "note": self.note,
            "metrics": self.metrics.to_dict(),
        }


@dataclass
class HaltDecision:
    """Outcome of a halt check."""

    should_halt: bool
    rationale: str
    trigger: HaltTrigger | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "should_halt": self.should_halt,
            "rationale": self.rationale,
            "trigger": self.trigger.value if self.trigger else None,
        }


@dataclass
class HRMResponse:
    """Response returned for every engine request."""

    content: list[dict[str, str]]
    current_state: dict[str, Any]
    reasoning_metrics: ReasoningMetrics
    session_id: str
    suggested_next_operation: HRMOperation | None = None
    trace: list[TraceEntry] = field(default_factory=list)
    halt_trigger: HaltTrigger | None = None
    is_error: bool = False
    error_message: str | None = None
    diagnostics: dict[str, Any] = field(default_factory=dict)

    @property
    def text(self) -> str:
        """All text content blocks joined together."""
        return "\n".join(block["text"] for block in self.content)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "content": self.content,
            "current_state": self.current_state,
            "reasoning_metrics": self.reasoning_metrics.to_dict(),
            "suggested_next_operation": (
                self.suggested_next_operation.value if self.suggested_next_operation else None
            ),
            "session_id": self.session_id,
            "diagnostics": self.diagnostics,
        }
        if self.trace:
            result["trace"] = [entry.to_dict() for entry in self.trace]
        if self.halt_trigger:
            result["halt_trigger"] = self.halt_trigger.value
        if self.is_error:
            result["is_error"] = True
            result["error_message"] = self.error_message
        return result


# =============================================================================
# Request Model
# =============================================================================


class HRMParameters(BaseModel):
    """Validated request arguments for the reasoning engine."""

    model_config = ConfigDict(extra="forbid")

    operation: HRMOperation
    h_thought: str | None = None
    l_thought: str | None = None
    problem: str | None = None
    h_cycle: int | None = Field(default=None, ge=0)
    l_cycle: int | None = Field(default=None, ge=0)
    max_l_cycles_per_h: int | None = Field(default=None, ge=1, le=20)
    max_h_cycles: int | None = Field(default=None, ge=1, le=20)
    confidence_score: float | None = Field(default=None, ge=0.0, le=1.0)
    complexity_estimate: float | None = Field(default=None, ge=1.0, le=10.0)
    convergence_threshold: float | None = Field(default=None, ge=0.5, le=0.99)
    h_context: str | None = None
    l_context: str | None = None
    solution_candidates: list[str] | None = None
    session_id: str | None = None
    reset_state: bool = False
    workspace_path: str | None = None

    @field_validator("session_id")
    @classmethod
    def _session_id_is_uuid(cls, value: str | None) -> str | None:
        if value is None:
            return value
        try:
            uuid.UUID(value)
        except ValueError as e:
            raise ValueError("session_id must be a UUID") from e
        return value


def parse_parameters(arguments: Mapping[str, Any]) -> HRMParameters:
    """Validate raw request arguments.

    Args:
        arguments: Raw keyword arguments from the transport.

    Returns:
        Validated parameters.

    Raises:
        ParameterValidationError: Listing each violated field.

    """
    try:
        return HRMParameters.model_validate(dict(arguments))
    except ValidationError as e:
        issues = [
            {
                "field": ".".join(str(part) for part in error["loc"]) or "request",
                "message": error["msg"],
            }
            for error in e.errors()
        ]
        raise ParameterValidationError(issues) from e
