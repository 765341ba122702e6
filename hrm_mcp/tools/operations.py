"""Operation handlers for the hierarchical reasoning engine.

Each handler mutates the session it is given and returns a short,
human-readable summary. ``perform_operation`` dispatches one operation,
times it and advances the cycle counters.
"""

from __future__ import annotations

import time
from dataclasses import dataclass

from loguru import logger

from hrm_mcp.config import ReasoningConfig
from hrm_mcp.tools.cycle_policy import advance_cycles
from hrm_mcp.tools.reasoning_types import (
    HaltDecision,
    HaltTrigger,
    HRMOperation,
    HRMParameters,
    ReasoningMetrics,
    ReasoningSession,
)
from hrm_mcp.utils.errors import UnsupportedOperationError
from hrm_mcp.utils.metrics import compute_metrics, required_convergence
from hrm_mcp.utils.text import (
    append_context,
    context_to_text,
    normalize_thought,
    summary_from_context,
    thought_signature,
    truncate_input,
)

NO_GUIDANCE_FALLBACK = "No explicit high-level guidance provided yet."
NO_LOW_LEVEL_FALLBACK = "No low-level context available"
DUPLICATE_SIGNATURE_PREVIEW = 80


@dataclass
class OperationOutcome:
    """Result of dispatching one operation."""

    summary: str
    halt_trigger: HaltTrigger | None = None


def score_session(session: ReasoningSession, config: ReasoningConfig) -> ReasoningMetrics:
    """Compute metrics for ``session`` under ``config`` thresholds."""
    return compute_metrics(
        session,
        convergence_floor=config.convergence_floor,
        min_confidence=config.min_confidence_for_completion,
    )


def _append_high_level(session: ReasoningSession, thought: str, config: ReasoningConfig) -> None:
    previous_size = len(context_to_text(session.h_context))
    session.h_context = append_context(session.h_context, thought, config.max_context_length)
    session.performance.record_thought(thought, "h")
    session.performance.record_context_growth(previous_size, len(context_to_text(session.h_context)))


# =============================================================================
# High-Level Operations
# =============================================================================


def handle_h_plan(session: ReasoningSession, params: HRMParameters, config: ReasoningConfig) -> str:
    """Record a high-level plan.

    Without an ``h_thought`` the plan falls back to a summary of the
    low-level context, or the stated problem when that is empty.
    """
    raw = truncate_input(params.h_thought, config.max_thought_length, "h_thought")
    fallback = summary_from_context(
        session.l_context, params.problem or session.problem or NO_GUIDANCE_FALLBACK
    )
    thought = (
        normalize_thought(raw, config.max_thought_length)
        or normalize_thought(fallback, config.max_thought_length)
        or NO_GUIDANCE_FALLBACK
    )
    _append_high_level(session, thought, config)
    logger.debug(f"High-level plan updated: {thought[:120]}")
    return thought


def handle_h_update(session: ReasoningSession, params: HRMParameters, config: ReasoningConfig) -> str:
    """Synthesize low-level outcomes into the high-level context.

    Supplied solution candidates replace the existing ones wholesale.
    """
    raw = truncate_input(params.h_thought, config.max_thought_length, "h_thought")
    synthesis = normalize_thought(raw, config.max_thought_length) or normalize_thought(
        f"Synthesis after cycle {session.h_cycle}: "
        f"{summary_from_context(session.l_context, NO_LOW_LEVEL_FALLBACK)}",
        config.max_thought_length,
    )
    _append_high_level(session, synthesis, config)
    if params.solution_candidates:
        session.solution_candidates = list(params.solution_candidates)
    logger.debug(
        f"High-level update recorded (candidates={len(session.solution_candidates)})"
    )
    return synthesis


# =============================================================================
# Low-Level Operations
# =============================================================================


def handle_l_execute(session: ReasoningSession, params: HRMParameters, config: ReasoningConfig) -> str:
    """Record a low-level execution step, suppressing recent duplicates.

    A thought whose signature matches one of the recent signatures is not
    appended, and the signature list is left untouched.
    """
    raw = truncate_input(params.l_thought, config.max_thought_length, "l_thought")
    thought = normalize_thought(raw, config.max_thought_length) or (
        f"Detail exploration for H-cycle {session.h_cycle}, L-cycle {session.l_cycle}"
    )

    signature = thought_signature(thought)
    if signature and signature in session.recent_l_signatures:
        logger.debug(f"Low-level execution duplicate suppressed: {signature[:DUPLICATE_SIGNATURE_PREVIEW]}")
        return f"Duplicate low-level thought ignored (signature: {signature[:DUPLICATE_SIGNATURE_PREVIEW]})"

    previous_size = len(context_to_text(session.l_context))
    session.l_context = append_context(session.l_context, thought, config.max_context_length)
    session.recent_l_signatures.add(signature)

    session.performance.record_thought(thought, "l")
    session.performance.record_context_growth(previous_size, len(context_to_text(session.l_context)))
    logger.debug(f"Low-level execution recorded: {thought[:120]}")
    return thought


# =============================================================================
# Evaluation and Halting
# =============================================================================


def handle_evaluate(
    session: ReasoningSession,
    params: HRMParameters | None,
    config: ReasoningConfig,
) -> ReasoningMetrics:
    """Recompute metrics and update the plateau window.

    An explicit ``confidence_score`` is written to the current metrics
    before recomputation, so it is superseded by the computed score; an
    explicit ``complexity_estimate`` persists on the session.

    Returns:
        The freshly computed metrics (also stored on the session).

    """
    if params is not None:
        if params.confidence_score is not None:
            session.metrics.confidence_score = params.confidence_score
        if params.complexity_estimate is not None:
            session.complexity_estimate = params.complexity_estimate

    metrics = score_session(session, config)
    session.metrics = metrics

    session.metric_history.append(metrics.confidence_score)
    if len(session.metric_history) > config.plateau_window:
        session.metric_history = session.metric_history[-config.plateau_window :]

    if len(session.metric_history) >= config.plateau_window:
        improvement = session.metric_history[-1] - session.metric_history[0]
        if improvement < config.plateau_delta:
            session.plateau_count += 1
        else:
            session.plateau_count = 0
    else:
        session.plateau_count = 0

    logger.info(
        f"Evaluation complete (confidence={metrics.confidence_score:.3f}, "
        f"convergence={metrics.convergence_score:.3f}, plateau_count={session.plateau_count})"
    )
    return metrics


def handle_halt_check(session: ReasoningSession, config: ReasoningConfig) -> HaltDecision:
    """Decide whether reasoning should stop.

    Pure over the current metrics and plateau count, so repeated calls
    without an intervening evaluation agree. A plateau takes precedence
    over the confidence/convergence condition when both hold.
    """
    metrics = session.metrics
    confidence_ready = metrics.confidence_score >= config.min_confidence_for_completion
    convergence_ready = metrics.convergence_score >= required_convergence(
        session, config.convergence_floor
    )
    plateau_ready = session.plateau_count >= config.max_plateau_before_halt
    should_halt = (confidence_ready and convergence_ready) or plateau_ready

    if plateau_ready:
        decision = HaltDecision(
            should_halt=True,
            rationale=(
                f"Halting due to confidence plateau (Δ < {config.plateau_delta} "
                f"across {config.plateau_window} evaluations)."
            ),
            trigger=HaltTrigger.PLATEAU,
        )
    elif should_halt:
        decision = HaltDecision(
            should_halt=True,
            rationale="Conditions met for halting",
            trigger=HaltTrigger.CONFIDENCE_CONVERGENCE,
        )
    else:
        decision = HaltDecision(
            should_halt=False,
            rationale=(
                f"Continue reasoning: confidence {metrics.confidence_score:.2f}, "
                f"convergence {metrics.convergence_score:.2f}"
            ),
        )

    logger.info(f"Halt check evaluated (should_halt={decision.should_halt}): {decision.rationale}")
    return decision


# =============================================================================
# Dispatch
# =============================================================================


def perform_operation(
    operation: HRMOperation,
    session: ReasoningSession,
    params: HRMParameters,
    config: ReasoningConfig,
) -> OperationOutcome:
    """Run one operation against ``session`` and advance its cycles.

    Raises:
        UnsupportedOperationError: If ``operation`` is not a content
            operation this dispatcher knows.

    """
    started = time.perf_counter()
    halt_trigger: HaltTrigger | None = None

    if operation == HRMOperation.H_PLAN:
        summary = handle_h_plan(session, params, config)
    elif operation == HRMOperation.L_EXECUTE:
        summary = handle_l_execute(session, params, config)
    elif operation == HRMOperation.H_UPDATE:
        summary = handle_h_update(session, params, config)
    elif operation == HRMOperation.EVALUATE:
        metrics = handle_evaluate(session, params, config)
        summary = (
            f"Confidence {metrics.confidence_score:.2f}, "
            f"convergence {metrics.convergence_score:.2f}"
        )
    elif operation == HRMOperation.HALT_CHECK:
        decision = handle_halt_check(session, config)
        summary = decision.rationale
        halt_trigger = decision.trigger
    else:
        raise UnsupportedOperationError(getattr(operation, "value", operation))

    advance_cycles(session, operation)
    session.performance.record_duration((time.perf_counter() - started) * 1000)
    logger.debug(
        f"Operation performed: {operation.value} "
        f"(h_cycle={session.h_cycle}, l_cycle={session.l_cycle})"
    )
    return OperationOutcome(summary=summary, halt_trigger=halt_trigger)
