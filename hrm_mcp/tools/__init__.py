"""Hierarchical reasoning tools - session state, operations and orchestration."""

from .framework_advisor import (
    FrameworkAdvice,
    FrameworkAdvisor,
    FrameworkPattern,
    NullFrameworkAdvisor,
)
from .reasoning_types import (
    ConvergenceStatus,
    HaltDecision,
    HaltTrigger,
    HRMOperation,
    HRMParameters,
    HRMResponse,
    ReasoningMetrics,
    ReasoningSession,
    TraceEntry,
)

__all__ = [
    # Framework advice
    "FrameworkAdvice",
    "FrameworkAdvisor",
    "FrameworkPattern",
    "NullFrameworkAdvisor",
    # Reasoning types
    "ConvergenceStatus",
    "HaltDecision",
    "HaltTrigger",
    "HRMOperation",
    "HRMParameters",
    "HRMResponse",
    "ReasoningMetrics",
    "ReasoningSession",
    "TraceEntry",
]
