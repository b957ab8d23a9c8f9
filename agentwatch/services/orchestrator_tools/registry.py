"""Tool handler registry: maps tool names to async handler functions."""

from __future__ import annotations

from collections.abc import Callable, Coroutine
from typing import Any

from agentwatch.services.orchestrator_tools.context import ToolContext

ToolHandler = Callable[[ToolContext, dict], Coroutine[Any, Any, Any]]

_HANDLERS: dict[str, ToolHandler] | None = None


def _build_registry() -> dict[str, ToolHandler]:
    from agentwatch.services.orchestrator_tools import session_tools

    return {
        "agent_session_start": session_tools.handle_agent_session_start,
        "list_projects": session_tools.handle_list_projects,
    }


def get_tool_handlers() -> dict[str, ToolHandler]:
    """Get the tool handler registry (lazily initialized)."""
    global _HANDLERS
    if _HANDLERS is None:
        _HANDLERS = _build_registry()
    return _HANDLERS
