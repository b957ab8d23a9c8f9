"""Orchestrator service: the LLM that turns chat requests into sessions.

Tool execution is delegated to handler functions in
``orchestrator_tools/`` via a registry, keeping this module focused on
per-chat conversation management.
"""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from typing import Any

from agentwatch.config import AppConfig
from agentwatch.infra.agents.base import AgentProcess
from agentwatch.infra.projects import ProjectResolver
from agentwatch.infra.providers.base import LLMProvider
from agentwatch.infra.providers.registry import get_provider_with_fallback
from agentwatch.models.provider import LLMConfig, LLMMessage
from agentwatch.services.orchestrator_tools.context import ToolContext
from agentwatch.services.orchestrator_tools.registry import get_tool_handlers
from agentwatch.services.planning_request import extract_agent_directive, is_agent_directive
from agentwatch.services.session_monitor import SessionMonitor
from agentwatch.services.session_registry import SessionRegistry, shorten

logger = logging.getLogger(__name__)

MAX_HISTORY_MESSAGES = 40

TOOL_DEFINITIONS = [
    {
        "name": "agent_session_start",
        "description": (
            "Start a coding-agent session in a project, or resume an existing one "
            "when resume_token is given"
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "project": {
                    "type": "string",
                    "description": "Project name, optionally 'name @worktree'",
                },
                "prompt": {"type": "string", "description": "Instructions for the agent"},
                "resume_token": {
                    "type": "string",
                    "description": "Resume token of the session to continue",
                },
                "worktree": {"type": "string", "description": "Worktree/branch name"},
                "original_task": {
                    "type": "string",
                    "description": "The user's request, verbatim",
                },
            },
            "required": ["project"],
        },
    },
    {
        "name": "list_projects",
        "description": "List configured projects and their paths",
        "parameters": {"type": "object", "properties": {}},
    },
]

SYSTEM_PROMPT = """You are agentwatch, an orchestrator for coding-agent sessions.

Users talk to you from a chat. Start work with agent_session_start: enrich the
user's request with whatever project context you have and pass it as the prompt.
When a request names a resume token, pass it exactly as resume_token so the
existing session continues instead of a new one starting.
Use list_projects when the project name is unclear.

Keep replies short; the session's status card shows progress."""


class OrchestratorService:
    def __init__(
        self,
        config: AppConfig,
        registry: SessionRegistry,
        projects: ProjectResolver,
        monitor: SessionMonitor,
        agents: AgentProcess,
        provider: LLMProvider | None = None,
    ) -> None:
        self._config = config
        self._registry = registry
        self._agents = agents
        self._provider = provider or get_provider_with_fallback(
            config, config.orchestrator.provider
        )
        self._llm_config = LLMConfig(
            model=config.orchestrator.model,
            max_tokens=4096,
            temperature=0.3,
            tools=TOOL_DEFINITIONS,
        )
        self._max_tool_rounds = config.orchestrator.max_tool_rounds
        self._conversations: dict[str, list[LLMMessage]] = {}
        self._tool_ctx = ToolContext(registry=registry, projects=projects, monitor=monitor)

    async def handle_message(
        self,
        text: str,
        chat_id: str,
        thread_id: int | None = None,
        resume_request: bool = False,
    ) -> str:
        """Process a chat message (or orchestration request). Returns reply text.

        ``resume_request`` marks text built by the bubble router. Such text
        is never treated as an agent directive, and the chat's forced resume
        token only lives for this turn.
        """
        if not resume_request and is_agent_directive(text):
            forwarded = await self._forward_directive(chat_id, extract_agent_directive(text))
            if forwarded:
                return forwarded

        forced_token = self._registry.peek_forced_resume_token(chat_id) if resume_request else None
        try:
            return await self._converse(text, str(chat_id), thread_id)
        finally:
            if forced_token:
                self._registry.clear_forced_resume_token(chat_id, forced_token)

    async def _converse(self, text: str, chat_id: str, thread_id: int | None) -> str:
        key = self._conversation_key(chat_id, thread_id)
        conversation = self._conversations.setdefault(key, [])
        conversation.append(LLMMessage(role="user", content=text))
        conversation[:] = self._truncate_conversation(conversation)

        messages = [LLMMessage(role="system", content=SYSTEM_PROMPT), *conversation]
        ctx = replace(self._tool_ctx, chat_id=chat_id, thread_id=thread_id)

        response = None
        for _ in range(self._max_tool_rounds):
            response = await self._provider.complete(messages, self._llm_config)
            if not response.has_tool_calls:
                conversation.append(LLMMessage(role="assistant", content=response.content))
                return response.content

            assistant_msg = LLMMessage(
                role="assistant",
                content=response.content,
                tool_calls=[
                    {"id": tc.id, "name": tc.name, "arguments": tc.arguments}
                    for tc in response.tool_calls
                ],
            )
            conversation.append(assistant_msg)
            messages.append(assistant_msg)

            # Sequential: two starts in one round must not race for the forced token
            for tc in response.tool_calls:
                result = await self._execute_tool(ctx, tc.name, tc.arguments)
                tool_msg = LLMMessage(
                    role="tool",
                    content=json.dumps(result, default=str),
                    tool_call_id=tc.id,
                )
                conversation.append(tool_msg)
                messages.append(tool_msg)

        fallback_text = (response.content if response else "") or "I couldn't complete the request."
        conversation.append(LLMMessage(role="assistant", content=fallback_text))
        return fallback_text

    async def start_agent_session(
        self,
        chat_id: str,
        project: str,
        prompt: str,
        resume_token: str = "",
        worktree: str = "",
        thread_id: int | None = None,
    ) -> Any:
        """Run the start tool directly, with the same forced-token rules."""
        ctx = replace(self._tool_ctx, chat_id=str(chat_id), thread_id=thread_id)
        arguments = {"project": project, "prompt": prompt}
        if resume_token:
            arguments["resume_token"] = resume_token
        if worktree:
            arguments["worktree"] = worktree
        return await self._execute_tool(ctx, "agent_session_start", arguments)

    def clear_conversation(self, chat_id: str, thread_id: int | None = None) -> None:
        self._conversations.pop(self._conversation_key(chat_id, thread_id), None)

    # --- internals ---

    @staticmethod
    def _conversation_key(chat_id: str, thread_id: int | None) -> str:
        return f"{chat_id}:{thread_id}" if thread_id else str(chat_id)

    @staticmethod
    def _truncate_conversation(
        messages: list[LLMMessage], max_messages: int = MAX_HISTORY_MESSAGES
    ) -> list[LLMMessage]:
        """Keep the tail, cutting only before a user message.

        A tool-call sequence is never split from its results.
        """
        if len(messages) <= max_messages:
            return messages
        start = len(messages) - max_messages
        for i in range(start, len(messages)):
            if messages[i].role == "user" and (i == 0 or messages[i - 1].role != "tool"):
                return messages[i:]
        return messages[-1:]

    async def _forward_directive(self, chat_id: str, directive: str) -> str | None:
        if not directive:
            return None
        for bubble in self._registry.bubbles_for_chat(chat_id):
            if not self._agents.is_live(bubble.session_id):
                continue
            async with self._registry.session_lock(bubble.session_id):
                sent = await self._agents.send_input(bubble.session_id, directive)
            if sent:
                self._registry.log_command(bubble.resume_token, directive, bubble.project_name)
                return f'Sent to agent: "{shorten(directive)}"'
        return None

    async def _execute_tool(self, ctx: ToolContext, name: str, arguments: dict) -> Any:
        """Execute an orchestrator tool call via the handler registry."""
        try:
            handler = get_tool_handlers().get(name)
            if handler is None:
                return {"error": f"Unknown tool: {name}"}
            return await handler(ctx, arguments)
        except KeyError as e:
            logger.warning("Tool %s missing required argument: %s", name, e)
            return {"error": f"Missing required argument: {e}"}
        except ValueError as e:
            logger.warning("Tool %s received invalid argument: %s", name, e)
            return {"error": f"Invalid argument: {e}"}
        except Exception as e:
            logger.exception("Tool %s execution failed unexpectedly", name)
            return {"error": f"Tool execution failed: {str(e)}"}
