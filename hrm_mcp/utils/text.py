"""Text helpers for reasoning context.

Thoughts are collapsed to single-spaced text and truncated; context lists
are kept under a character budget by dropping the oldest entries.
"""

from __future__ import annotations

import re
from collections import deque
from collections.abc import Iterable, Iterator

from loguru import logger

MAX_THOUGHT_LENGTH = 2000
MAX_CONTEXT_LENGTH = 2000
SUMMARY_INLINE_LIMIT = 280
SUMMARY_RECENT_LIMIT = 160

_WHITESPACE = re.compile(r"\s+")


def collapse_whitespace(value: str) -> str:
    """Collapse runs of whitespace into single spaces and strip the ends."""
    return _WHITESPACE.sub(" ", value).strip()


def truncate_input(value: str | None, max_length: int, field_name: str) -> str | None:
    """Truncate raw request text to ``max_length`` characters.

    Oversized input is cut, never rejected.

    Args:
        value: Raw text from the request (may be None).
        max_length: Maximum allowed characters.
        field_name: Request field name, used in the warning log.

    Returns:
        The original value, or its first ``max_length`` characters.

    """
    if not value or len(value) <= max_length:
        return value
    logger.warning(
        f"{field_name} exceeds maximum length, truncating "
        f"(original_length={len(value)}, max_length={max_length})"
    )
    return value[:max_length]


def normalize_thought(thought: str | None, max_length: int = MAX_THOUGHT_LENGTH) -> str | None:
    """Normalize a free-text thought.

    Args:
        thought: Raw thought text.
        max_length: Length cap; longer text ends with an ellipsis.

    Returns:
        Collapsed text, or None if nothing but whitespace was supplied.

    """
    if not thought:
        return None
    cleaned = collapse_whitespace(thought)
    if not cleaned:
        return None
    if len(cleaned) > max_length:
        return f"{cleaned[: max_length - 3]}..."
    return cleaned


def append_context(
    context: list[str],
    addition: str | None,
    limit: int = MAX_CONTEXT_LENGTH,
) -> list[str]:
    """Return a new context list with ``addition`` appended.

    Oldest entries are evicted while the total character count exceeds
    ``limit``, but the newest entry is always kept.

    Args:
        context: Existing entries, most recent last.
        addition: New entry (normalized before appending).
        limit: Total character budget.

    Returns:
        New list; ``context`` itself is not modified.

    """
    normalized = normalize_thought(addition)
    if not normalized:
        return list(context)

    next_context = deque(context)
    next_context.append(normalized)
    total_length = sum(len(entry) for entry in next_context)
    while len(next_context) > 1 and total_length > limit:
        total_length -= len(next_context.popleft())
    return list(next_context)


def context_to_text(context: Iterable[str]) -> str:
    """Join context entries with newlines."""
    return "\n".join(context)


def parse_context(value: str | None) -> list[str]:
    """Split a newline-delimited blob into trimmed, non-empty entries."""
    if not value:
        return []
    return [entry.strip() for entry in value.splitlines() if entry.strip()]


def seed_context(value: str | None, limit: int = MAX_CONTEXT_LENGTH) -> list[str]:
    """Build a context list from a newline-delimited blob.

    Each line goes through ``append_context`` so seeded contexts obey the
    same normalization and character budget as appended ones.
    """
    context: list[str] = []
    for entry in parse_context(value):
        context = append_context(context, entry, limit)
    return context


def summary_from_context(context: list[str], fallback: str) -> str:
    """Produce a short summary of ``context``.

    Short contexts are returned joined; long ones favour the most recent
    entry.
    """
    if not context:
        return fallback
    composite = " ".join(context)
    if len(composite) <= SUMMARY_INLINE_LIMIT:
        return composite
    return f"{context[-1][:SUMMARY_RECENT_LIMIT]}..."


def thought_signature(thought: str) -> str:
    """Case- and whitespace-insensitive signature used for duplicate checks."""
    return collapse_whitespace(thought.lower())


class RecentSignatures:
    """Fixed-capacity ordered set of recent thought signatures.

    Adding beyond capacity drops the oldest signature. Adding a signature
    already present is a no-op.
    """

    def __init__(self, capacity: int = 5, items: Iterable[str] = ()) -> None:
        self.capacity = capacity
        self._items: deque[str] = deque(maxlen=capacity)
        for item in items:
            self.add(item)

    def add(self, signature: str) -> None:
        """Record a signature, evicting the oldest on overflow."""
        if signature and signature not in self._items:
            self._items.append(signature)

    def clear(self) -> None:
        """Forget all signatures."""
        self._items.clear()

    def __contains__(self, signature: object) -> bool:
        return signature in self._items

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"RecentSignatures(capacity={self.capacity}, items={list(self._items)!r})"
