"""Heuristic reasoning metrics.

Confidence and convergence are deterministic functions of context length,
lexical diversity and simple counts. The weights below are calibrated
constants; each group sums to 1.0 and must stay that way for scores to be
reproducible.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from hrm_mcp.tools.reasoning_types import ReasoningMetrics

if TYPE_CHECKING:
    from hrm_mcp.tools.reasoning_types import ReasoningSession

# =============================================================================
# Weights and Constants
# =============================================================================

CONVERGENCE_WEIGHTS: dict[str, float] = {
    "high_level_density": 0.35,
    "low_level_density": 0.35,
    "candidate_strength": 0.2,
    "high_level_diversity": 0.1,
}

CONFIDENCE_WEIGHTS: dict[str, float] = {
    "convergence": 0.45,
    "candidate_strength": 0.25,
    "complexity_headroom": 0.15,
    "momentum": 0.15,
}

CANDIDATE_SATURATION = 5
SINGLE_ENTRY_DIVERSITY = 0.2
TARGET_ENTRY_LENGTH = 400
MOMENTUM_SATURATION = 10
MAX_COMPLEXITY = 10.0
MIN_COMPLEXITY_PENALTY = 0.1

MIN_CONFIDENCE_FOR_COMPLETION = 0.8
DEFAULT_CONVERGENCE_FLOOR = 0.5

# ASCII word boundaries; case-sensitive on purpose.
_TOKEN_SPLIT = re.compile(r"\W+", re.ASCII)


def clamp(value: float, minimum: float, maximum: float) -> float:
    """Clamp ``value`` into ``[minimum, maximum]``."""
    return min(max(value, minimum), maximum)


def weighted_average(values: dict[str, float], weights: dict[str, float]) -> float:
    """Weighted mean of ``values`` keyed like ``weights``."""
    total_weight = sum(weights.values())
    if not total_weight:
        return 0.0
    return sum(values[key] * weight for key, weight in weights.items()) / total_weight


def text_density(entries: list[str]) -> float:
    """Mean entry length relative to the target length, saturating at 1."""
    if not entries:
        return 0.0
    mean_length = sum(len(entry) for entry in entries) / len(entries)
    return clamp(mean_length / TARGET_ENTRY_LENGTH, 0.0, 1.0)


def diversity(entries: list[str]) -> float:
    """Lexical diversity proxy: unique tokens over total tokens."""
    if not entries:
        return 0.0
    if len(entries) == 1:
        return SINGLE_ENTRY_DIVERSITY
    unique_tokens = {token for entry in entries for token in _TOKEN_SPLIT.split(entry)}
    total_tokens = len(_TOKEN_SPLIT.split(" ".join(entries)))
    return clamp(len(unique_tokens) / (total_tokens + 1), 0.0, 1.0)


def candidate_strength(num_candidates: int) -> float:
    """Candidate count relative to the saturation point."""
    return clamp(num_candidates / CANDIDATE_SATURATION, 0.0, 1.0)


def required_convergence(
    session: ReasoningSession,
    convergence_floor: float = DEFAULT_CONVERGENCE_FLOOR,
) -> float:
    """Convergence a session must reach before it may halt."""
    return max(convergence_floor, session.convergence_threshold)


def compute_metrics(
    session: ReasoningSession,
    *,
    convergence_floor: float = DEFAULT_CONVERGENCE_FLOOR,
    min_confidence: float = MIN_CONFIDENCE_FOR_COMPLETION,
) -> ReasoningMetrics:
    """Compute metrics from the current session state.

    Pure function: the session is not modified.

    Args:
        session: Session to score.
        convergence_floor: Engine-level lower bound on the convergence
            required to stop.
        min_confidence: Confidence required to stop.

    Returns:
        Fresh metrics with scores in [0, 1].

    """
    strength = candidate_strength(len(session.solution_candidates))

    convergence_score = clamp(
        weighted_average(
            {
                "high_level_density": text_density(session.h_context),
                "low_level_density": text_density(session.l_context),
                "candidate_strength": strength,
                "high_level_diversity": diversity(session.h_context),
            },
            CONVERGENCE_WEIGHTS,
        ),
        0.0,
        1.0,
    )

    complexity_penalty = clamp(
        session.complexity_estimate / MAX_COMPLEXITY, MIN_COMPLEXITY_PENALTY, 1.0
    )
    momentum = clamp(len(session.recent_decisions) / MOMENTUM_SATURATION, 0.0, 1.0)

    confidence_score = clamp(
        weighted_average(
            {
                "convergence": convergence_score,
                "candidate_strength": strength,
                "complexity_headroom": 1.0 - complexity_penalty,
                "momentum": momentum,
            },
            CONFIDENCE_WEIGHTS,
        ),
        0.0,
        1.0,
    )

    should_continue = confidence_score < min_confidence or convergence_score < required_convergence(
        session, convergence_floor
    )

    return ReasoningMetrics(
        confidence_score=confidence_score,
        convergence_score=convergence_score,
        complexity_assessment=clamp(session.complexity_estimate, 1.0, MAX_COMPLEXITY),
        should_continue=should_continue,
    )
