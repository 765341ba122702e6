"""Session persistence primitives.

Provides the minimal backend interface the reasoning store persists
through, an asyncio-based in-memory backend, and a capacity-eviction
policy that is composed with a backend rather than baked into it.

Usage:
    backend: InMemorySessionBackend[MyState] = InMemorySessionBackend()
    policy = LRUEvictionPolicy(max_sessions=100)
    await policy.enforce(backend, protect=session_id)
    await backend.save(session_id, state)
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Generic, Protocol, TypeVar, runtime_checkable

from loguru import logger


@runtime_checkable
class HasUpdatedAt(Protocol):
    """Protocol for objects with an updated_at timestamp."""

    updated_at: datetime


T = TypeVar("T", bound=HasUpdatedAt)


class SessionBackend(Protocol[T]):
    """Key-value persistence for session state.

    Every method must be safe to await sequentially; no cross-session
    transactions are required.
    """

    async def load(self, session_id: str) -> T | None:
        """Return the stored state, or None if absent."""
        ...

    async def save(self, session_id: str, state: T) -> None:
        """Insert or replace the state stored under ``session_id``."""
        ...

    async def delete(self, session_id: str) -> bool:
        """Remove a session; return whether it existed."""
        ...

    async def evict_before(self, cutoff: datetime) -> list[str]:
        """Remove sessions last updated before ``cutoff``; return their IDs."""
        ...

    async def count(self) -> int:
        """Number of stored sessions."""
        ...

    async def list_ids(self) -> list[str]:
        """IDs of stored sessions, least recently updated first."""
        ...


class InMemorySessionBackend(Generic[T]):
    """Async-native in-memory backend using asyncio.Lock.

    Does NOT block the event loop during lock acquisition. States are
    stored by reference; callers that need isolation must copy.
    """

    def __init__(self) -> None:
        """Initialize backend with empty sessions and async lock."""
        self._sessions: dict[str, T] = {}
        self._lock = asyncio.Lock()

    async def load(self, session_id: str) -> T | None:
        async with self._lock:
            return self._sessions.get(session_id)

    async def save(self, session_id: str, state: T) -> None:
        async with self._lock:
            self._sessions[session_id] = state

    async def delete(self, session_id: str) -> bool:
        async with self._lock:
            return self._sessions.pop(session_id, None) is not None

    async def evict_before(self, cutoff: datetime) -> list[str]:
        """Remove sessions whose ``updated_at`` is older than ``cutoff``.

        Args:
            cutoff: Sessions updated strictly before this instant are removed.

        Returns:
            List of removed session IDs.

        Raises:
            TypeError: If a stored state has no ``updated_at`` attribute.

        """
        async with self._lock:
            # Collect stale session IDs first to avoid dict mutation during iteration
            stale_ids: list[str] = []
            for session_id, state in self._sessions.items():
                if not isinstance(state, HasUpdatedAt):
                    raise TypeError(
                        f"Session state {type(state).__name__} must have 'updated_at' attribute"
                    )
                if state.updated_at < cutoff:
                    stale_ids.append(session_id)

            for session_id in stale_ids:
                del self._sessions[session_id]

        return stale_ids

    async def count(self) -> int:
        async with self._lock:
            return len(self._sessions)

    async def list_ids(self) -> list[str]:
        async with self._lock:
            ordered = sorted(self._sessions.items(), key=lambda item: item[1].updated_at)
            return [session_id for session_id, _ in ordered]


class LRUEvictionPolicy:
    """Capacity guard evicting least-recently-updated sessions.

    Invoked before a session is created so the store never grows past
    ``max_sessions``.
    """

    def __init__(self, max_sessions: int) -> None:
        if max_sessions < 1:
            raise ValueError("max_sessions must be at least 1")
        self.max_sessions = max_sessions

    async def enforce(self, backend: SessionBackend[T], protect: str | None = None) -> list[str]:
        """Evict sessions until there is room for one more.

        Args:
            backend: Backend to trim.
            protect: Session ID that must not be evicted (the one about
                to be created or reused).

        Returns:
            List of evicted session IDs, oldest first.

        """
        evicted: list[str] = []
        if await backend.count() < self.max_sessions:
            return evicted

        for session_id in await backend.list_ids():
            if await backend.count() < self.max_sessions:
                break
            if session_id == protect:
                continue
            if await backend.delete(session_id):
                evicted.append(session_id)
                logger.warning(f"Session capacity reached, evicted session {session_id}")
        return evicted
