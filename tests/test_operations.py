"""Unit tests for hrm_mcp/tools/operations.py."""

from __future__ import annotations

import pytest
from conftest import make_params, make_session

from hrm_mcp.config import ReasoningConfig
from hrm_mcp.tools.operations import (
    handle_evaluate,
    handle_h_plan,
    handle_h_update,
    handle_halt_check,
    handle_l_execute,
    perform_operation,
)
from hrm_mcp.tools.reasoning_types import HaltTrigger, HRMOperation, HRMParameters, ReasoningMetrics
from hrm_mcp.utils.errors import UnsupportedOperationError

# =============================================================================
# High-Level Handlers
# =============================================================================


class TestHighLevelPlan:
    """Tests for h_plan."""

    def test_appends_normalized_thought(self, config: ReasoningConfig) -> None:
        """A supplied thought is normalized and appended."""
        session = make_session()
        summary = handle_h_plan(session, make_params("h_plan", h_thought="  Outline   the flow "), config)
        assert summary == "Outline the flow"
        assert session.h_context == ["Outline the flow"]

    def test_falls_back_to_problem(self, config: ReasoningConfig) -> None:
        """Without a thought or low-level context the problem is used."""
        session = make_session()
        summary = handle_h_plan(session, make_params("h_plan", problem="Build a login flow"), config)
        assert summary == "Build a login flow"

    def test_problem_fallback_is_normalized(self, config: ReasoningConfig) -> None:
        """The returned summary matches the normalized context entry."""
        session = make_session()
        summary = handle_h_plan(session, make_params("h_plan", problem="  Build   a\n login   flow "), config)
        assert summary == "Build a login flow"
        assert session.h_context == [summary]

    def test_long_problem_fallback_truncated(self, config: ReasoningConfig) -> None:
        """An oversized problem is capped before it becomes the summary."""
        session = make_session()
        summary = handle_h_plan(session, make_params("h_plan", problem="q " * 3000), config)
        assert len(summary) <= config.max_thought_length
        assert session.h_context == [summary]

    def test_falls_back_to_low_level_summary(self, config: ReasoningConfig) -> None:
        """Existing low-level context takes precedence over the problem."""
        session = make_session(l_context=["validated input", "hashed password"])
        summary = handle_h_plan(session, make_params("h_plan", problem="ignored"), config)
        assert summary == "validated input hashed password"

    def test_falls_back_to_generic_guidance(self, config: ReasoningConfig) -> None:
        """With nothing to summarize, a generic note is recorded."""
        session = make_session()
        summary = handle_h_plan(session, make_params("h_plan"), config)
        assert summary == "No explicit high-level guidance provided yet."

    def test_oversized_thought_truncated(self, config: ReasoningConfig) -> None:
        """Overlong thoughts are truncated rather than rejected."""
        session = make_session()
        summary = handle_h_plan(session, make_params("h_plan", h_thought="p" * 5000), config)
        assert summary == "p" * config.max_thought_length

    def test_records_thought_length(self, config: ReasoningConfig) -> None:
        """Appended high-level thoughts are tracked for diagnostics."""
        session = make_session()
        handle_h_plan(session, make_params("h_plan", h_thought="four"), config)
        assert session.performance.h_thought_lengths == [4]
        assert session.performance.context_growth_ratios == [4.0]


class TestHighLevelUpdate:
    """Tests for h_update."""

    def test_fallback_names_cycle(self, config: ReasoningConfig) -> None:
        """The fallback synthesis names the current H-cycle."""
        session = make_session(h_cycle=2, l_context=["step one"])
        summary = handle_h_update(session, make_params("h_update"), config)
        assert summary == "Synthesis after cycle 2: step one"

    def test_fallback_without_low_level_context(self, config: ReasoningConfig) -> None:
        """Missing low-level context is called out."""
        session = make_session()
        summary = handle_h_update(session, make_params("h_update"), config)
        assert summary == "Synthesis after cycle 0: No low-level context available"

    def test_replaces_candidates(self, config: ReasoningConfig) -> None:
        """Supplied candidates replace the old ones wholesale."""
        session = make_session(solution_candidates=["old"])
        handle_h_update(session, make_params("h_update", solution_candidates=["a", "b"]), config)
        assert session.solution_candidates == ["a", "b"]

    def test_keeps_candidates_when_none_supplied(self, config: ReasoningConfig) -> None:
        """Candidates survive an update that supplies none."""
        session = make_session(solution_candidates=["old"])
        handle_h_update(session, make_params("h_update", h_thought="merge"), config)
        assert session.solution_candidates == ["old"]


# =============================================================================
# Low-Level Handler
# =============================================================================


class TestLowLevelExecute:
    """Tests for l_execute and duplicate suppression."""

    def test_appends_and_records_signature(self, config: ReasoningConfig) -> None:
        """A new thought is appended and its signature remembered."""
        session = make_session()
        summary = handle_l_execute(session, make_params("l_execute", l_thought="check auth"), config)
        assert summary == "check auth"
        assert session.l_context == ["check auth"]
        assert "check auth" in session.recent_l_signatures

    def test_duplicate_suppressed(self, config: ReasoningConfig) -> None:
        """A repeat modulo case and spacing is not appended."""
        session = make_session()
        handle_l_execute(session, make_params("l_execute", l_thought="check auth"), config)
        summary = handle_l_execute(session, make_params("l_execute", l_thought="Check   Auth"), config)
        assert session.l_context == ["check auth"]
        assert "duplicate" in summary.lower()
        assert list(session.recent_l_signatures) == ["check auth"]

    def test_fallback_names_cycles(self, config: ReasoningConfig) -> None:
        """Without a thought the step is named after the current cycles."""
        session = make_session(h_cycle=1, l_cycle=2)
        summary = handle_l_execute(session, make_params("l_execute"), config)
        assert summary == "Detail exploration for H-cycle 1, L-cycle 2"

    def test_only_recent_signatures_suppress(self, config: ReasoningConfig) -> None:
        """A thought older than the last five signatures may be recorded again."""
        session = make_session()
        for i in range(6):
            handle_l_execute(session, make_params("l_execute", l_thought=f"step {i}"), config)
        handle_l_execute(session, make_params("l_execute", l_thought="step 0"), config)
        assert session.l_context[-1] == "step 0"
        assert session.l_context.count("step 0") == 2


# =============================================================================
# Evaluation and Halting
# =============================================================================


class TestEvaluate:
    """Tests for evaluate and plateau tracking."""

    def test_history_bounded_by_window(self, config: ReasoningConfig) -> None:
        """The confidence window never exceeds the plateau window."""
        session = make_session()
        for _ in range(5):
            handle_evaluate(session, make_params(), config)
        assert len(session.metric_history) == config.plateau_window

    def test_plateau_reset_until_window_full(self, config: ReasoningConfig) -> None:
        """No plateau is counted before the window fills."""
        session = make_session()
        handle_evaluate(session, make_params(), config)
        handle_evaluate(session, make_params(), config)
        assert session.plateau_count == 0

    def test_constant_confidence_plateaus(self, config: ReasoningConfig) -> None:
        """window + 2 flat evaluations reach the halting plateau count."""
        session = make_session(h_context=["steady plan"])
        for _ in range(config.plateau_window + 2):
            handle_evaluate(session, make_params(), config)
        assert session.plateau_count >= 2
        decision = handle_halt_check(session, config)
        assert decision.should_halt is True
        assert decision.trigger == HaltTrigger.PLATEAU

    def test_improvement_resets_plateau(self, config: ReasoningConfig) -> None:
        """A sufficient improvement across the window resets the count."""
        session = make_session(plateau_count=3, metric_history=[0.1, 0.1])
        session.solution_candidates = ["a", "b", "c", "d", "e"]
        handle_evaluate(session, make_params(), config)
        assert session.plateau_count == 0

    def test_overrides_applied(self, config: ReasoningConfig) -> None:
        """Complexity persists; an explicit confidence is superseded by recomputation."""
        session = make_session()
        metrics = handle_evaluate(
            session, make_params(confidence_score=0.99, complexity_estimate=2.0), config
        )
        assert session.complexity_estimate == 2.0
        assert metrics.complexity_assessment == 2.0
        assert metrics.confidence_score < 0.99
        assert session.metrics is metrics


class TestHaltCheck:
    """Tests for the halt decision."""

    def _session(self, threshold: float):
        return make_session(
            convergence_threshold=threshold,
            metrics=ReasoningMetrics(confidence_score=0.82, convergence_score=0.75),
        )

    def test_default_threshold_does_not_halt(self, config: ReasoningConfig) -> None:
        """Convergence 0.75 is below the default 0.85 bar."""
        decision = handle_halt_check(self._session(0.85), config)
        assert decision.should_halt is False
        assert decision.trigger is None
        assert decision.rationale == "Continue reasoning: confidence 0.82, convergence 0.75"

    def test_lower_threshold_halts(self, config: ReasoningConfig) -> None:
        """Convergence 0.75 clears a 0.70 threshold."""
        decision = handle_halt_check(self._session(0.70), config)
        assert decision.should_halt is True
        assert decision.trigger == HaltTrigger.CONFIDENCE_CONVERGENCE
        assert decision.rationale == "Conditions met for halting"

    def test_plateau_takes_precedence(self, config: ReasoningConfig) -> None:
        """When both conditions hold the plateau is reported."""
        session = self._session(0.70)
        session.plateau_count = 2
        decision = handle_halt_check(session, config)
        assert decision.trigger == HaltTrigger.PLATEAU
        assert decision.rationale.startswith("Halting due to confidence plateau")

    def test_idempotent(self, config: ReasoningConfig) -> None:
        """Two halt checks without an evaluation agree."""
        session = self._session(0.85)
        assert handle_halt_check(session, config) == handle_halt_check(session, config)

    def test_low_confidence_does_not_halt(self, config: ReasoningConfig) -> None:
        """High convergence alone is not enough."""
        session = make_session(metrics=ReasoningMetrics(confidence_score=0.5, convergence_score=0.95))
        assert handle_halt_check(session, config).should_halt is False


# =============================================================================
# Dispatch
# =============================================================================


class TestPerformOperation:
    """Tests for dispatch and cycle advancement."""

    def test_evaluate_summary(self, config: ReasoningConfig) -> None:
        """evaluate reports the recomputed scores."""
        session = make_session()
        outcome = perform_operation(HRMOperation.EVALUATE, session, make_params(), config)
        assert outcome.summary.startswith("Confidence ")
        assert ", convergence " in outcome.summary
        assert outcome.halt_trigger is None

    def test_halt_check_carries_trigger(self, config: ReasoningConfig) -> None:
        """halt_check passes its trigger through."""
        session = make_session(plateau_count=2)
        outcome = perform_operation(HRMOperation.HALT_CHECK, session, make_params("halt_check"), config)
        assert outcome.halt_trigger == HaltTrigger.PLATEAU

    def test_l_execute_advances_cycle(self, config: ReasoningConfig) -> None:
        """l_execute advances the L-cycle and records a duration."""
        session = make_session()
        perform_operation(HRMOperation.L_EXECUTE, session, make_params("l_execute", l_thought="x"), config)
        assert session.l_cycle == 1
        assert len(session.performance.cycle_durations) == 1

    def test_duplicate_still_advances_cycle(self, config: ReasoningConfig) -> None:
        """A suppressed duplicate still counts as an L-cycle."""
        session = make_session()
        params = make_params("l_execute", l_thought="same")
        perform_operation(HRMOperation.L_EXECUTE, session, params, config)
        perform_operation(HRMOperation.L_EXECUTE, session, params, config)
        assert session.l_cycle == 2
        assert session.l_context == ["same"]

    def test_auto_reason_is_not_dispatchable(self, config: ReasoningConfig) -> None:
        """auto_reason is driven by the engine, not dispatched as content."""
        with pytest.raises(UnsupportedOperationError):
            perform_operation(HRMOperation.AUTO_REASON, make_session(), make_params("auto_reason"), config)

    def test_unknown_operation_rejected(self, config: ReasoningConfig) -> None:
        """Values outside the operation set raise."""
        params = HRMParameters.model_construct(operation="bogus")
        with pytest.raises(UnsupportedOperationError, match="Unsupported operation bogus"):
            perform_operation(params.operation, make_session(), params, config)
