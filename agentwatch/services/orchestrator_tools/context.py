"""Tool execution context: shared dependencies for all tool handlers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from agentwatch.infra.projects import ProjectResolver
    from agentwatch.services.session_monitor import SessionMonitor
    from agentwatch.services.session_registry import SessionRegistry


@dataclass(frozen=True)
class ToolContext:
    """Dependency bundle passed to every tool handler.

    Bound to the chat the current request came from, so tools that start
    sessions post their bubbles there and honour its forced resume token.
    """

    registry: SessionRegistry
    projects: ProjectResolver
    monitor: SessionMonitor
    chat_id: str = ""
    thread_id: int | None = None
