"""Hierarchical Reasoning MCP Server.

FastMCP adapter over the hierarchical reasoning engine. The calling LLM
produces every thought; the engine only records cycles, scores the
accumulated context and proposes the next operation.

Exposed tools: ``hierarchical_reasoning`` (one operation, or an automatic
run, on a session) and ``status`` (server or per-session state).

Start with ``hrm-mcp`` or ``python -m hrm_mcp.server``.
"""

# Annotations stay eager: FastMCP builds the tool schema from them at decoration time.

import asyncio
from typing import Any, Literal

import orjson
from dotenv import load_dotenv
from fastmcp import FastMCP
from loguru import logger

from hrm_mcp.config import get_config
from hrm_mcp.tools.hierarchical_reasoner import get_engine
from hrm_mcp.utils.errors import ParameterValidationError, SessionNotFoundError, ToolExecutionError
from hrm_mcp.utils.logging import configure_logging

load_dotenv()


def _json(data: dict[str, Any] | None, *, indent: bool = True) -> str:
    """Dump ``data`` with orjson; ``None`` becomes ``{}``."""
    option = orjson.OPT_INDENT_2 if indent else 0
    return orjson.dumps(data or {}, option=option, default=str).decode()


OperationStr = Literal["h_plan", "l_execute", "h_update", "evaluate", "halt_check", "auto_reason"]


# -----------------------------------------------------------------------------
# Expired-session sweeper
# -----------------------------------------------------------------------------

_sweeper_task: asyncio.Task[None] | None = None


async def _sweep_loop() -> None:
    interval = get_config().session.cleanup_interval_seconds
    logger.info(f"Session sweeper running every {interval}s")

    while True:
        try:
            await asyncio.sleep(interval)
        except asyncio.CancelledError:
            logger.info("Session sweeper stopped")
            return
        try:
            expired = await get_engine().sweep_expired_sessions()
        except Exception as e:
            logger.error(f"Session sweep failed: {e}")
            continue
        if expired:
            logger.info(f"Swept {len(expired)} expired sessions: {expired}")


def _ensure_sweeper() -> None:
    """Schedule the sweeper on the running loop unless it is already alive."""
    global _sweeper_task
    if _sweeper_task is not None and not _sweeper_task.done():
        return
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        logger.debug("Sweeper deferred until an event loop is running")
        return
    _sweeper_task = loop.create_task(_sweep_loop())
    logger.debug("Session sweeper scheduled")


def _cancel_sweeper() -> None:
    global _sweeper_task
    if _sweeper_task is None:
        return
    if not _sweeper_task.done():
        _sweeper_task.cancel()
        logger.debug("Session sweeper cancelled")
    _sweeper_task = None


# -----------------------------------------------------------------------------
# FastMCP app
# -----------------------------------------------------------------------------

mcp = FastMCP(
    name=get_config().server.name,
    instructions="""Hierarchical Reasoning MCP Server - two-level reasoning state tracker.

ARCHITECTURE: You (the LLM) do ALL reasoning. These tools TRACK cycles, SCORE
the accumulated context and SUGGEST the next operation.

=== OPERATIONS ===

h_plan      - Record a high-level plan (h_thought)
l_execute   - Record a low-level execution step (l_thought); recent duplicates are ignored
h_update    - Synthesize low-level results (h_thought, solution_candidates)
evaluate    - Recompute confidence/convergence and track plateaus
halt_check  - Decide whether to stop
auto_reason - Chain the operations above until a halt condition fires

=== WORKFLOW ===

1. hierarchical_reasoning(operation="h_plan", problem="...")
   -> Returns session_id and suggested_next_operation
2. hierarchical_reasoning(operation="l_execute", session_id=ID, l_thought="...")
3. Follow suggested_next_operation until halt_check reports a halt
""",
)


# -----------------------------------------------------------------------------
# hierarchical_reasoning
# -----------------------------------------------------------------------------


@mcp.tool
async def hierarchical_reasoning(
    operation: OperationStr,
    h_thought: str | None = None,
    l_thought: str | None = None,
    problem: str | None = None,
    h_cycle: int | None = None,
    l_cycle: int | None = None,
    max_l_cycles_per_h: int | None = None,
    max_h_cycles: int | None = None,
    confidence_score: float | None = None,
    complexity_estimate: float | None = None,
    convergence_threshold: float | None = None,
    h_context: str | None = None,
    l_context: str | None = None,
    solution_candidates: list[str] | None = None,
    session_id: str | None = None,
    reset_state: bool = False,
    workspace_path: str | None = None,
) -> str:
    """Run a hierarchical reasoning operation.

    Args:
        operation: h_plan, l_execute, h_update, evaluate, halt_check or auto_reason
        h_thought: High-level thought (plan or synthesis)
        l_thought: Low-level execution thought
        problem: Problem statement
        h_cycle: Starting H-cycle (new sessions only)
        l_cycle: Starting L-cycle (new sessions only)
        max_l_cycles_per_h: L-cycles per H-cycle (1-20, default 3)
        max_h_cycles: Maximum H-cycles (1-20, default 4)
        confidence_score: Confidence override consumed by evaluate (0-1)
        complexity_estimate: Problem complexity (1-10, default 5)
        convergence_threshold: Convergence required to halt (0.5-0.99)
        h_context: Newline-delimited high-level context (new sessions only)
        l_context: Newline-delimited low-level context (new sessions only)
        solution_candidates: Candidate solutions (replace existing ones)
        session_id: Existing session ID; omit to start a new session
        reset_state: Discard accumulated state for session_id
        workspace_path: Workspace to inspect for framework guidance

    Returns:
        JSON with content, current_state, reasoning_metrics,
        suggested_next_operation and session_id (plus trace and
        halt_trigger for auto_reason)

    """
    _ensure_sweeper()
    arguments = {
        "operation": operation,
        "h_thought": h_thought,
        "l_thought": l_thought,
        "problem": problem,
        "h_cycle": h_cycle,
        "l_cycle": l_cycle,
        "max_l_cycles_per_h": max_l_cycles_per_h,
        "max_h_cycles": max_h_cycles,
        "confidence_score": confidence_score,
        "complexity_estimate": complexity_estimate,
        "convergence_threshold": convergence_threshold,
        "h_context": h_context,
        "l_context": l_context,
        "solution_candidates": solution_candidates,
        "session_id": session_id,
        "reset_state": reset_state,
        "workspace_path": workspace_path,
    }
    try:
        response = await get_engine().handle_request(arguments)
        return _json(response.to_dict())

    except ParameterValidationError as e:
        logger.warning(f"Invalid hierarchical_reasoning arguments: {e}")
        return _json(e.to_dict(), indent=False)
    except Exception as e:
        error = ToolExecutionError("hierarchical_reasoning", str(e), {"operation": operation})
        logger.error(f"hierarchical_reasoning failed: {e}")
        return _json(error.to_dict(), indent=False)


# -----------------------------------------------------------------------------
# status
# -----------------------------------------------------------------------------


def _session_view(session: Any) -> dict[str, Any]:
    return {
        "session_id": session.session_id,
        "h_cycle": session.h_cycle,
        "l_cycle": session.l_cycle,
        "max_l_cycles_per_h": session.max_l_cycles_per_h,
        "max_h_cycles": session.max_h_cycles,
        "reasoning_metrics": session.metrics.to_dict(),
        "plateau_count": session.plateau_count,
        "pending_actions": [op.value for op in session.pending_actions],
        "updated_at": session.updated_at.isoformat(),
    }


@mcp.tool
async def status(session_id: str | None = None) -> str:
    """Report server health, or the cycle state of one session.

    Args:
        session_id: Session to inspect; omit for the server overview

    Returns:
        JSON describing the session, or the server with its session counts

    """
    try:
        engine = get_engine()
        if session_id:
            try:
                return _json(_session_view(await engine.store.require(session_id)))
            except SessionNotFoundError:
                return _json({"error": f"Session not found: {session_id}"}, indent=False)

        config = get_config()
        overview: dict[str, Any] = {
            "server": {
                "name": config.server.name,
                "transport": config.server.transport,
                "tools": ["hierarchical_reasoning", "status"],
            },
            **(await engine.get_status()),
            "cleanup": {
                "interval_seconds": config.session.cleanup_interval_seconds,
                "task_running": _sweeper_task is not None and not _sweeper_task.done(),
            },
        }
        return _json(overview)

    except Exception as e:
        logger.error(f"status failed: {e}")
        return _json(ToolExecutionError("status", str(e)).to_dict(), indent=False)


# -----------------------------------------------------------------------------
# Entry point
# -----------------------------------------------------------------------------


def main() -> None:
    """Run the Hierarchical Reasoning MCP server."""
    configure_logging()
    config = get_config()
    logger.info(f"Starting {config.server.name} (transport: {config.server.transport})")
    logger.debug(f"Configuration: {config.to_dict()}")

    get_engine()

    try:
        if config.server.transport == "stdio":
            mcp.run(transport="stdio")
        elif config.server.transport == "http":
            mcp.run(transport="streamable-http", host=config.server.host, port=config.server.port)
        elif config.server.transport == "sse":
            mcp.run(transport="sse", host=config.server.host, port=config.server.port)
        else:
            logger.warning(f"Unknown transport '{config.server.transport}', falling back to stdio")
            mcp.run(transport="stdio")
    finally:
        _cancel_sweeper()


if __name__ == "__main__":
    main()
