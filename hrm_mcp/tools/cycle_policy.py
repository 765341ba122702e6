"""Cycle progression and next-operation suggestion.

The suggestion policy is a finite transition table keyed by
``(phase, last operation, metric state)``. ``ANY`` entries act as
wildcards; lookups try the most specific key first, except that the
plateau row applies in every phase.
"""

from __future__ import annotations

from enum import Enum

from hrm_mcp.tools.reasoning_types import (
    OPERATION_PRIORITIES,
    HRMOperation,
    ReasoningSession,
)

# =============================================================================
# Cycle Progression
# =============================================================================


def _advance_high_level(session: ReasoningSession) -> None:
    session.h_cycle = min(session.h_cycle + 1, session.max_h_cycles)
    session.l_cycle = 0


def advance_cycles(session: ReasoningSession, completed: HRMOperation) -> None:
    """Advance H/L counters after ``completed`` ran.

    ``l_execute`` increments ``l_cycle`` and rolls into the next H-cycle
    once the per-H budget is used up. ``h_plan`` and ``h_update`` move to
    the next H-cycle, except that the first ``h_plan`` of a fresh session
    opens H-cycle 0 instead of skipping it. ``evaluate``, ``halt_check``
    and ``auto_reason`` leave the counters alone.
    """
    if completed == HRMOperation.L_EXECUTE:
        session.cycle_opened = True
        next_l_cycle = session.l_cycle + 1
        if next_l_cycle >= session.max_l_cycles_per_h:
            _advance_high_level(session)
        else:
            session.l_cycle = next_l_cycle
    elif completed == HRMOperation.H_PLAN and not session.cycle_opened:
        session.cycle_opened = True
        session.l_cycle = 0
    elif completed in (HRMOperation.H_PLAN, HRMOperation.H_UPDATE):
        session.cycle_opened = True
        _advance_high_level(session)


# =============================================================================
# Suggestion Transition Table
# =============================================================================


class Phase(str, Enum):
    """Where a session sits within its cycle budget."""

    # Automatic mode
    AUTO_OPEN = "auto_open"  # l_cycle == 0 with L-cycle budget available
    AUTO_OPEN_NO_BUDGET = "auto_open_no_budget"  # l_cycle == 0, one L-cycle per H
    AUTO_BUDGET = "auto_budget"  # mid H-cycle, L-cycle budget remains
    AUTO_EXHAUSTED = "auto_exhausted"  # last L-cycle of the H-cycle
    # Manual mode
    UNPLANNED = "unplanned"  # no high-level context yet
    EXECUTING = "executing"  # fewer low-level entries than the per-H budget
    SYNTHESIS = "synthesis"  # low-level budget filled


class MetricState(str, Enum):
    """Metric signal relevant to the next step."""

    PLATEAU = "plateau"
    CONTINUE = "continue"
    STOP = "stop"


ANY = "*"

_AUTO_PHASES = (
    Phase.AUTO_OPEN,
    Phase.AUTO_OPEN_NO_BUDGET,
    Phase.AUTO_BUDGET,
    Phase.AUTO_EXHAUSTED,
)


def _lowest_priority(*operations: HRMOperation) -> HRMOperation:
    return min(operations, key=lambda op: OPERATION_PRIORITIES[op])


TransitionKey = tuple[Phase | str, HRMOperation | str, MetricState | str]

TRANSITIONS: dict[TransitionKey, HRMOperation] = {
    (ANY, ANY, MetricState.PLATEAU): HRMOperation.HALT_CHECK,
    # Automatic mode, metrics say continue
    (Phase.AUTO_OPEN, HRMOperation.H_PLAN, MetricState.CONTINUE): HRMOperation.L_EXECUTE,
    (Phase.AUTO_OPEN, ANY, MetricState.CONTINUE): HRMOperation.H_PLAN,
    (Phase.AUTO_OPEN_NO_BUDGET, HRMOperation.H_PLAN, MetricState.CONTINUE): HRMOperation.EVALUATE,
    (Phase.AUTO_OPEN_NO_BUDGET, ANY, MetricState.CONTINUE): HRMOperation.H_PLAN,
    (Phase.AUTO_BUDGET, ANY, MetricState.CONTINUE): HRMOperation.L_EXECUTE,
    (Phase.AUTO_EXHAUSTED, ANY, MetricState.CONTINUE): HRMOperation.EVALUATE,
    # Automatic mode, metrics say stop
    **{(phase, ANY, MetricState.STOP): HRMOperation.HALT_CHECK for phase in _AUTO_PHASES},
    # Manual mode ignores the continue/stop signal
    (Phase.UNPLANNED, ANY, ANY): HRMOperation.H_PLAN,
    (Phase.EXECUTING, ANY, ANY): HRMOperation.L_EXECUTE,
    (Phase.SYNTHESIS, HRMOperation.L_EXECUTE, ANY): HRMOperation.H_UPDATE,
    (Phase.SYNTHESIS, ANY, ANY): _lowest_priority(
        HRMOperation.EVALUATE, HRMOperation.HALT_CHECK, HRMOperation.L_EXECUTE
    ),
}


def classify_phase(session: ReasoningSession) -> Phase:
    """Place the session in its cycle phase."""
    if session.auto_mode:
        if session.l_cycle == 0:
            if session.max_l_cycles_per_h > 1:
                return Phase.AUTO_OPEN
            return Phase.AUTO_OPEN_NO_BUDGET
        if session.l_cycle < session.max_l_cycles_per_h - 1:
            return Phase.AUTO_BUDGET
        return Phase.AUTO_EXHAUSTED

    if not session.h_context:
        return Phase.UNPLANNED
    if len(session.l_context) < session.max_l_cycles_per_h:
        return Phase.EXECUTING
    return Phase.SYNTHESIS


def classify_metrics(session: ReasoningSession, max_plateau_before_halt: int = 2) -> MetricState:
    """Reduce session metrics to the signal the policy keys on."""
    if session.plateau_count >= max_plateau_before_halt:
        return MetricState.PLATEAU
    if session.metrics.should_continue:
        return MetricState.CONTINUE
    return MetricState.STOP


def lookup_transition(
    phase: Phase,
    last_operation: HRMOperation | None,
    metric_state: MetricState,
) -> HRMOperation:
    """Resolve the next operation from the transition table.

    Raises:
        LookupError: If no row matches (the table is expected to be total).

    """
    last = last_operation if last_operation is not None else ANY
    candidates: list[TransitionKey] = [
        (ANY, ANY, metric_state),
        (phase, last, metric_state),
        (phase, last, ANY),
        (phase, ANY, metric_state),
        (phase, ANY, ANY),
    ]
    for key in candidates:
        if key in TRANSITIONS:
            return TRANSITIONS[key]
    raise LookupError(f"No transition for phase={phase.value}, metrics={metric_state.value}")


def suggest_next(
    session: ReasoningSession,
    last_operation: HRMOperation | None,
    *,
    max_plateau_before_halt: int = 2,
) -> HRMOperation:
    """Propose the operation to run after ``last_operation``.

    Args:
        session: Current session state (not modified).
        last_operation: Operation just performed, or None if nothing ran yet.
        max_plateau_before_halt: Plateau count that forces ``halt_check``.

    Returns:
        The suggested next operation.

    """
    return lookup_transition(
        classify_phase(session),
        last_operation,
        classify_metrics(session, max_plateau_before_halt),
    )
