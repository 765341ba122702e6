"""Hierarchical reasoning engine.

Dispatches single operations against a session, or drives the automatic
reasoning loop that chains operations until a halt condition fires or the
step/time budget runs out.

Every request works on a deep copy of the stored session; the copy is only
persisted once the request has fully succeeded, so failures never leave a
half-mutated session behind.
"""

from __future__ import annotations

import copy
import time
from collections.abc import Callable, Mapping
from typing import Any

import orjson
from loguru import logger

from hrm_mcp.config import ReasoningConfig, get_config
from hrm_mcp.tools.cycle_policy import suggest_next
from hrm_mcp.tools.framework_advisor import FrameworkAdvisor, NullFrameworkAdvisor
from hrm_mcp.tools.operations import handle_evaluate, handle_halt_check, perform_operation, score_session
from hrm_mcp.tools.reasoning_types import (
    AUTO_REASONING_OPERATIONS,
    PROBLEM_SUMMARY_TEMPLATE,
    ConvergenceStatus,
    HaltTrigger,
    HRMOperation,
    HRMParameters,
    HRMResponse,
    ReasoningSession,
    TraceEntry,
    parse_parameters,
)
from hrm_mcp.tools.session_store import ReasoningSessionStore
from hrm_mcp.utils.errors import InvalidWorkspaceError
from hrm_mcp.utils.logging import log_context
from hrm_mcp.utils.text import append_context, context_to_text

FRAMEWORK_NOTES_SHOWN = 4


def _operation_name(operation: Any) -> str:
    return str(getattr(operation, "value", operation))


class HierarchicalReasoningEngine:
    """Orchestrates hierarchical reasoning sessions.

    Usage:
        engine = HierarchicalReasoningEngine()
        response = await engine.handle_request({"operation": "h_plan", "problem": "..."})
        response.suggested_next_operation  # HRMOperation.L_EXECUTE
    """

    def __init__(
        self,
        config: ReasoningConfig | None = None,
        store: ReasoningSessionStore | None = None,
        advisor: FrameworkAdvisor | None = None,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the engine.

        Args:
            config: Engine configuration (defaults to the global config).
            store: Session store; built from ``config`` if not given.
            advisor: Framework advisor; a no-op advisor by default.
            timer: Monotonic clock in seconds, used for the auto-run timeout.

        """
        self.config = config or get_config().reasoning
        self.store = store or ReasoningSessionStore(self.config)
        self.advisor: FrameworkAdvisor = advisor or NullFrameworkAdvisor()
        self._timer = timer

    # =========================================================================
    # Entry Point
    # =========================================================================

    async def handle_request(self, request: HRMParameters | Mapping[str, Any]) -> HRMResponse:
        """Handle one request.

        Args:
            request: Validated parameters, or raw arguments to validate.

        Returns:
            The operation response. Dispatch failures are reported as an
            error response carrying the last persisted session state.

        Raises:
            ParameterValidationError: If raw arguments fail validation. No
                session is touched in that case.

        """
        params = request if isinstance(request, HRMParameters) else parse_parameters(request)
        operation_name = _operation_name(params.operation)

        with log_context(operation=operation_name):
            session = await self.store.get_or_create(params)
            if params.reset_state:
                session = await self.store.reset(session.session_id, params)

            with log_context(session_id=session.session_id):
                working = copy.deepcopy(session)
                try:
                    await self._maybe_enrich_with_frameworks(working, params)
                    if params.operation == HRMOperation.AUTO_REASON:
                        return await self._run_auto_reasoning(working, params)
                    return await self._run_single_operation(working, params)
                except Exception as e:
                    logger.exception(f"Operation {operation_name} failed: {e}")
                    return self._error_response(session, operation_name, e)

    # =========================================================================
    # Single Operations
    # =========================================================================

    def _refresh_metrics(self, session: ReasoningSession, operation: HRMOperation) -> None:
        # evaluate already recomputed; halt_check must not change metrics
        if operation in (HRMOperation.EVALUATE, HRMOperation.HALT_CHECK):
            return
        session.metrics = score_session(session, self.config)

    def _suggest(self, session: ReasoningSession, last_operation: HRMOperation | None) -> HRMOperation:
        return suggest_next(
            session,
            last_operation,
            max_plateau_before_halt=self.config.max_plateau_before_halt,
        )

    async def _run_single_operation(
        self, session: ReasoningSession, params: HRMParameters
    ) -> HRMResponse:
        operation = params.operation
        outcome = perform_operation(operation, session, params, self.config)
        self.store.record(session, operation, outcome.summary)
        self._refresh_metrics(session, operation)

        suggestion = self._suggest(session, operation)
        self.store.enqueue(session, [suggestion])
        await self.store.save(session)

        return self._build_response(
            session,
            operation.value,
            outcome.summary,
            suggestion,
            halt_trigger=outcome.halt_trigger,
        )

    # =========================================================================
    # Automatic Reasoning
    # =========================================================================

    def _forced_halt_check(
        self,
        session: ReasoningSession,
        params: HRMParameters,
        trace: list[TraceEntry],
    ) -> tuple[bool, HaltTrigger | None]:
        """Evaluate, then decide whether to halt; records one trace entry."""
        handle_evaluate(session, params, self.config)
        decision = handle_halt_check(session, self.config)
        trace.append(self._trace_entry(len(trace) + 1, HRMOperation.HALT_CHECK, session, decision.rationale))
        return decision.should_halt, decision.trigger

    @staticmethod
    def _trace_entry(
        step: int, operation: HRMOperation, session: ReasoningSession, note: str
    ) -> TraceEntry:
        return TraceEntry(
            step=step,
            operation=operation,
            h_cycle=session.h_cycle,
            l_cycle=session.l_cycle,
            note=note,
            metrics=session.metrics.copy(),
        )

    async def _run_auto_reasoning(
        self, session: ReasoningSession, params: HRMParameters
    ) -> HRMResponse:
        """Chain operations until halted or out of budget.

        The loop stops when a halt check passes, after
        ``auto_reason_max_steps`` iterations, or once
        ``auto_reason_timeout_seconds`` have elapsed. Without an explicit
        halt the trigger is ``max_steps``.
        """
        max_steps = self.config.auto_reason_max_steps
        timeout = self.config.auto_reason_timeout_seconds
        trace: list[TraceEntry] = []
        halt_trigger: HaltTrigger | None = None
        last_operation: HRMOperation | None = None
        iterations = 0

        session.auto_mode = True
        if not session.problem and params.problem:
            session.problem = params.problem
        if not session.h_context:
            session.h_context = append_context(
                session.h_context,
                session.problem or PROBLEM_SUMMARY_TEMPLATE,
                self.config.max_context_length,
            )

        started = self._timer()
        logger.info(f"Auto reasoning started (max_steps={max_steps}, timeout={timeout}s)")

        while iterations < max_steps:
            iterations += 1

            elapsed = self._timer() - started
            if elapsed > timeout:
                elapsed_ms = int(elapsed * 1000)
                limit_ms = int(timeout * 1000)
                logger.warning(
                    f"Auto reasoning timeout reached after {iterations - 1} steps "
                    f"({elapsed_ms}ms, limit {limit_ms}ms)"
                )
                halt_trigger = HaltTrigger.MAX_STEPS
                trace.append(
                    self._trace_entry(
                        len(trace) + 1,
                        HRMOperation.HALT_CHECK,
                        session,
                        f"Auto reasoning halted: timeout after {elapsed_ms}ms (limit {limit_ms}ms)",
                    )
                )
                break

            if last_operation in AUTO_REASONING_OPERATIONS:
                next_operation = self._suggest(session, last_operation)
            else:
                next_operation = HRMOperation.H_PLAN

            if next_operation == HRMOperation.HALT_CHECK:
                should_halt, trigger = self._forced_halt_check(session, params, trace)
                if should_halt:
                    halt_trigger = trigger or halt_trigger
                    break
                last_operation = HRMOperation.EVALUATE
                continue

            outcome = perform_operation(next_operation, session, params, self.config)
            self.store.record(session, next_operation, outcome.summary)
            self._refresh_metrics(session, next_operation)
            trace.append(self._trace_entry(len(trace) + 1, next_operation, session, outcome.summary))
            if outcome.halt_trigger:
                halt_trigger = outcome.halt_trigger

            if not session.metrics.should_continue and next_operation != HRMOperation.EVALUATE:
                should_halt, trigger = self._forced_halt_check(session, params, trace)
                if should_halt:
                    halt_trigger = trigger or halt_trigger
                    break

            last_operation = next_operation

        session.auto_mode = False
        if halt_trigger is None and iterations >= max_steps:
            halt_trigger = HaltTrigger.MAX_STEPS
        session.performance.total_duration = (self._timer() - started) * 1000
        await self.store.save(session)

        logger.info(
            f"Auto reasoning finished after {len(trace)} steps "
            f"(halt_trigger={halt_trigger.value if halt_trigger else None})"
        )
        summary = orjson.dumps([entry.to_dict() for entry in trace], option=orjson.OPT_INDENT_2).decode(
            "utf-8"
        )
        return self._build_response(
            session,
            HRMOperation.AUTO_REASON.value,
            summary,
            self._suggest(session, last_operation or HRMOperation.H_PLAN),
            trace=trace,
            halt_trigger=halt_trigger,
        )

    # =========================================================================
    # Framework Enrichment
    # =========================================================================

    async def _maybe_enrich_with_frameworks(
        self, session: ReasoningSession, params: HRMParameters
    ) -> None:
        """Consult the framework advisor once per workspace.

        Advisor failures never abort the request: an invalid workspace adds
        a skip note, anything else is logged and ignored.
        """
        workspace_path = params.workspace_path or session.workspace_path
        if not workspace_path:
            return
        if session.framework_insight is not None and session.framework_insight_path == workspace_path:
            return

        problem = params.problem or session.problem
        try:
            advice = await self.advisor.advise(workspace_path, problem)
        except InvalidWorkspaceError as e:
            logger.warning(f"Workspace path rejected by framework advisor: {e}")
            session.add_framework_notes([f"Framework detection skipped: {e}"])
            return
        except Exception as e:
            logger.warning(f"Framework advisor failed, continuing without enrichment: {e}")
            return

        session.workspace_path = workspace_path
        session.framework_insight = advice.insight
        session.framework_insight_path = workspace_path
        limit = self.config.max_context_length
        if advice.highlights:
            session.h_context = append_context(session.h_context, " | ".join(advice.highlights), limit)
        if advice.patterns:
            session.h_context = append_context(
                session.h_context,
                " | ".join(pattern.summary() for pattern in advice.patterns),
                limit,
            )
        if advice.notes:
            session.add_framework_notes(advice.notes)
        logger.debug(
            f"Framework enrichment applied (highlights={len(advice.highlights)}, "
            f"patterns={len(advice.patterns)}, notes={len(advice.notes)})"
        )

    # =========================================================================
    # Responses
    # =========================================================================

    @staticmethod
    def _diagnostics(session: ReasoningSession) -> dict[str, Any]:
        return {
            "plateau_count": session.plateau_count,
            "confidence_window": list(session.metric_history),
            "performance": session.performance.aggregate(),
        }

    @staticmethod
    def _state_snapshot(
        session: ReasoningSession, operation: str, status: ConvergenceStatus
    ) -> dict[str, Any]:
        return {
            "h_cycle": session.h_cycle,
            "l_cycle": session.l_cycle,
            "h_context": context_to_text(session.h_context),
            "l_context": context_to_text(session.l_context),
            "operation_performed": operation,
            "convergence_status": status.value,
        }

    def _build_response(
        self,
        session: ReasoningSession,
        operation: str,
        summary: str,
        suggestion: HRMOperation,
        *,
        trace: list[TraceEntry] | None = None,
        halt_trigger: HaltTrigger | None = None,
    ) -> HRMResponse:
        content = [{"type": "text", "text": summary}]

        if trace and self.config.include_text_trace:
            lines = [
                f"{entry.step}. {entry.operation.value} | H:{entry.h_cycle} L:{entry.l_cycle} | "
                f"confidence {entry.metrics.confidence_score:.2f} "
                f"convergence {entry.metrics.convergence_score:.2f} | {entry.note}"
                for entry in trace
            ]
            content.append({"type": "text", "text": "Auto reasoning trace:\n" + "\n".join(lines)})

        if session.framework_notes:
            recent_notes = "\n".join(session.framework_notes[-FRAMEWORK_NOTES_SHOWN:])
            content.append({"type": "text", "text": f"Framework guidance:\n{recent_notes}"})

        status = (
            ConvergenceStatus.CONVERGING
            if session.metrics.should_continue
            else ConvergenceStatus.CONVERGED
        )
        return HRMResponse(
            content=content,
            current_state=self._state_snapshot(session, operation, status),
            reasoning_metrics=session.metrics.copy(),
            session_id=session.session_id,
            suggested_next_operation=suggestion,
            trace=list(trace or []),
            halt_trigger=halt_trigger,
            diagnostics=self._diagnostics(session),
        )

    def _error_response(
        self, session: ReasoningSession, operation: str, error: Exception
    ) -> HRMResponse:
        message = str(error)
        return HRMResponse(
            content=[{"type": "text", "text": f"Operation {operation} failed: {message}"}],
            current_state=self._state_snapshot(session, operation, ConvergenceStatus.DIVERGING),
            reasoning_metrics=session.metrics.copy(),
            session_id=session.session_id,
            suggested_next_operation=HRMOperation.EVALUATE,
            is_error=True,
            error_message=message,
            diagnostics=self._diagnostics(session),
        )

    # =========================================================================
    # Housekeeping
    # =========================================================================

    async def sweep_expired_sessions(self) -> list[str]:
        """Remove sessions idle for longer than the TTL."""
        return await self.store.sweep_expired()

    async def get_status(self) -> dict[str, Any]:
        """Summarize store occupancy and active limits."""
        return {
            "sessions": {
                "total": await self.store.count(),
                "max_total": self.config.max_sessions,
                "ttl_seconds": self.config.session_ttl_seconds,
            },
            "limits": {
                "max_auto_steps": self.config.auto_reason_max_steps,
                "auto_reason_timeout_seconds": self.config.auto_reason_timeout_seconds,
                "plateau_window": self.config.plateau_window,
                "plateau_delta": self.config.plateau_delta,
                "convergence_threshold": self.config.convergence_threshold,
            },
        }


# =============================================================================
# Global Engine
# =============================================================================

_engine: HierarchicalReasoningEngine | None = None


def get_engine() -> HierarchicalReasoningEngine:
    """Get or create the global engine instance."""
    global _engine
    if _engine is None:
        _engine = HierarchicalReasoningEngine()
    return _engine


def init_engine(
    config: ReasoningConfig | None = None,
    advisor: FrameworkAdvisor | None = None,
) -> HierarchicalReasoningEngine:
    """Replace the global engine instance.

    Args:
        config: Engine configuration (defaults to the global config).
        advisor: Framework advisor to consult.

    Returns:
        The new engine.

    """
    global _engine
    _engine = HierarchicalReasoningEngine(config=config, advisor=advisor)
    return _engine
