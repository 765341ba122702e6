"""Framework advisor contract.

Framework detection (scanning a workspace for dependencies and file
patterns) lives outside the reasoning engine. The engine only consumes
its output: an opaque insight object cached per workspace, highlights
and pattern guidance appended to the high-level context, and notes
shown to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable


@dataclass
class FrameworkPattern:
    """Named piece of framework-specific guidance."""

    name: str
    guidance: str

    def summary(self) -> str:
        return f"{self.name}: {self.guidance}"


@dataclass
class FrameworkAdvice:
    """Output of one advisor call."""

    insight: Any = None
    highlights: list[str] = field(default_factory=list)
    patterns: list[FrameworkPattern] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)


@runtime_checkable
class FrameworkAdvisor(Protocol):
    """Collaborator producing framework guidance for a workspace.

    Implementations validate ``workspace_path`` themselves and raise
    ``InvalidWorkspaceError`` for paths they refuse to inspect.
    """

    async def advise(self, workspace_path: str, problem: str | None) -> FrameworkAdvice: ...


class NullFrameworkAdvisor:
    """Advisor that never has anything to add."""

    async def advise(self, workspace_path: str, problem: str | None) -> FrameworkAdvice:
        return FrameworkAdvice()
