"""Reasoning session store.

Wraps a ``SessionBackend`` with the reasoning-specific lifecycle: sessions
are created on first reference, reused while fresh, expire after a period
of inactivity and are evicted least-recently-updated first once the store
is full.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta

from loguru import logger

from hrm_mcp.config import ReasoningConfig
from hrm_mcp.tools.reasoning_types import (
    DEFAULT_MAX_H_CYCLES,
    DEFAULT_MAX_L_CYCLES_PER_H,
    HRMOperation,
    HRMParameters,
    ReasoningSession,
)
from hrm_mcp.utils.errors import SessionNotFoundError
from hrm_mcp.utils.session import InMemorySessionBackend, LRUEvictionPolicy, SessionBackend
from hrm_mcp.utils.text import seed_context, truncate_input


class ReasoningSessionStore:
    """TTL-expiring, capacity-bounded store of reasoning sessions.

    Usage:
        store = ReasoningSessionStore(config)
        session = await store.get_or_create(params)
        ...
        await store.update(session, HRMOperation.H_PLAN, summary)
    """

    def __init__(
        self,
        config: ReasoningConfig,
        backend: SessionBackend[ReasoningSession] | None = None,
        eviction_policy: LRUEvictionPolicy | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        """Initialize the store.

        Args:
            config: Engine configuration (TTL, capacity, length caps).
            backend: Persistence backend; in-memory by default.
            eviction_policy: Capacity guard; LRU over ``config.max_sessions``
                by default.
            clock: Source of the current time.

        """
        self.config = config
        self.backend: SessionBackend[ReasoningSession] = backend or InMemorySessionBackend()
        self.eviction_policy = eviction_policy or LRUEvictionPolicy(config.max_sessions)
        self._clock = clock

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def _is_expired(self, session: ReasoningSession, now: datetime) -> bool:
        if not self.config.ttl_enabled:
            return False
        return now - session.updated_at > timedelta(seconds=self.config.session_ttl_seconds)

    async def sweep_expired(self, now: datetime | None = None) -> list[str]:
        """Remove every session idle for longer than the TTL.

        Args:
            now: Reference time (defaults to the store clock).

        Returns:
            List of removed session IDs; empty when expiry is disabled.

        """
        if not self.config.ttl_enabled:
            return []
        now = now or self._clock()
        cutoff = now - timedelta(seconds=self.config.session_ttl_seconds)
        removed = await self.backend.evict_before(cutoff)
        if removed:
            logger.info(f"Expired {len(removed)} idle sessions")
        return removed

    def create_session(self, params: HRMParameters, session_id: str | None = None) -> ReasoningSession:
        """Build a fresh session from request parameters (not persisted)."""
        max_l_cycles = params.max_l_cycles_per_h or DEFAULT_MAX_L_CYCLES_PER_H
        max_h_cycles = params.max_h_cycles or DEFAULT_MAX_H_CYCLES
        h_cycle = min(params.h_cycle or 0, max_h_cycles)
        l_cycle = min(params.l_cycle or 0, max_l_cycles - 1)
        h_context = seed_context(params.h_context, self.config.max_context_length)
        threshold = (
            params.convergence_threshold
            if params.convergence_threshold is not None
            else self.config.convergence_threshold
        )

        session = ReasoningSession(
            session_id=session_id or str(uuid.uuid4()),
            h_cycle=h_cycle,
            l_cycle=l_cycle,
            max_l_cycles_per_h=max_l_cycles,
            max_h_cycles=max_h_cycles,
            h_context=h_context,
            l_context=seed_context(params.l_context, self.config.max_context_length),
            solution_candidates=list(params.solution_candidates or []),
            convergence_threshold=threshold,
            auto_mode=params.operation == HRMOperation.AUTO_REASON,
            problem=truncate_input(params.problem, self.config.max_thought_length, "problem"),
            workspace_path=params.workspace_path,
            cycle_opened=bool(h_cycle or l_cycle or h_context),
            updated_at=self._clock(),
        )
        if params.complexity_estimate is not None:
            session.complexity_estimate = params.complexity_estimate
        return session

    def _reapply(self, session: ReasoningSession, params: HRMParameters) -> None:
        """Apply the mutable subset of request parameters to an existing session."""
        if params.max_l_cycles_per_h is not None:
            session.max_l_cycles_per_h = params.max_l_cycles_per_h
        if params.max_h_cycles is not None:
            session.max_h_cycles = params.max_h_cycles
        session.l_cycle = min(session.l_cycle, session.max_l_cycles_per_h - 1)
        session.h_cycle = min(session.h_cycle, session.max_h_cycles)
        if params.convergence_threshold is not None:
            session.convergence_threshold = params.convergence_threshold
        if params.complexity_estimate is not None:
            session.complexity_estimate = params.complexity_estimate
        session.auto_mode = params.operation == HRMOperation.AUTO_REASON
        if params.problem:
            session.problem = truncate_input(params.problem, self.config.max_thought_length, "problem")
        if params.workspace_path:
            session.workspace_path = params.workspace_path

    async def get_or_create(self, params: HRMParameters) -> ReasoningSession:
        """Load the requested session or create a fresh one.

        Expired sessions are swept first and the capacity guard runs before
        anything is created; it never evicts the requested session.

        Args:
            params: Validated request parameters.

        Returns:
            The persisted session.

        """
        now = self._clock()
        await self.sweep_expired(now)
        await self.eviction_policy.enforce(self.backend, protect=params.session_id)

        requested_id = params.session_id
        if requested_id and not params.reset_state:
            existing = await self.backend.load(requested_id)
            if existing is not None:
                if self._is_expired(existing, now):
                    await self.backend.delete(requested_id)
                    logger.info(f"Session {requested_id} expired, starting fresh")
                else:
                    self._reapply(existing, params)
                    await self.backend.save(requested_id, existing)
                    return existing

        fresh = self.create_session(params, requested_id)
        await self.backend.save(fresh.session_id, fresh)
        logger.info(f"Created reasoning session {fresh.session_id}")
        return fresh

    async def reset(self, session_id: str, params: HRMParameters) -> ReasoningSession:
        """Discard all accumulated state, keeping the session ID."""
        fresh = self.create_session(params, session_id)
        await self.backend.save(session_id, fresh)
        logger.info(f"Session {session_id} reset")
        return fresh

    # =========================================================================
    # Updates
    # =========================================================================

    def record(self, session: ReasoningSession, operation: HRMOperation, summary: str) -> None:
        """Note a performed operation on the session without persisting it.

        Bumps ``updated_at``, appends ``"operation:summary"`` to the decision
        log and pops one pending action.
        """
        session.updated_at = self._clock()
        session.recent_decisions.append(f"{operation.value}:{summary}")
        if session.pending_actions:
            session.pending_actions.popleft()

    async def update(self, session: ReasoningSession, operation: HRMOperation, summary: str) -> None:
        """Record a performed operation and persist the session."""
        self.record(session, operation, summary)
        await self.save(session)

    def enqueue(self, session: ReasoningSession, operations: Iterable[HRMOperation]) -> None:
        """Queue scheduling hints; the oldest drop off once the queue is full."""
        session.pending_actions.extend(operations)

    async def save(self, session: ReasoningSession) -> None:
        await self.backend.save(session.session_id, session)

    # =========================================================================
    # Queries
    # =========================================================================

    async def get(self, session_id: str) -> ReasoningSession | None:
        """Return a stored session, or None if absent."""
        return await self.backend.load(session_id)

    async def count(self) -> int:
        return await self.backend.count()

    async def list_ids(self) -> list[str]:
        return await self.backend.list_ids()

    async def require(self, session_id: str) -> ReasoningSession:
        """Return a stored session.

        Raises:
            SessionNotFoundError: If no session is stored under ``session_id``.

        """
        session = await self.backend.load(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session
