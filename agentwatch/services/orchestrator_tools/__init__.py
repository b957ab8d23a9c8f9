"""Orchestrator tool handler registry.

Each tool handler is a simple async function with signature:

    async def handle(ctx: ToolContext, arguments: dict) -> Any
"""

from __future__ import annotations

from agentwatch.services.orchestrator_tools.registry import get_tool_handlers

__all__ = ["get_tool_handlers"]
