"""Routes chat replies on bubbles back to their agent sessions.

A reply to a live session is written straight into it. A reply to a
session whose process has exited is turned into a resume request for the
orchestrator, with the session's resume token forced so the orchestrator
cannot pick a different one.
"""

from __future__ import annotations

import logging
import re

from agentwatch.infra.agents.base import AgentProcess
from agentwatch.infra.chat import ChatTransport
from agentwatch.infra.projects import ProjectResolver
from agentwatch.models.bubble import Bubble, ResumeHint
from agentwatch.models.routing import ReplyOutcome
from agentwatch.services.planning_request import (
    ChatContext,
    PlanningAction,
    PlanningRequest,
    build_planning_request,
)
from agentwatch.services.session_monitor import SessionMonitor
from agentwatch.services.session_registry import SessionRegistry, shorten

logger = logging.getLogger(__name__)

_RESUME_TOKEN = re.compile(r"claude --resume ([a-f0-9-]{36})")
_CTX_LINE = re.compile(r"ctx:\s*([^\n]+)")
_STATUS_HEADER = re.compile(r"\*\*\w+\*\*\s*·\s*([^·\n]+?)\s*·")


def parse_resume_hint(text: str | None) -> ResumeHint | None:
    """Recover the resume token and project from a rendered bubble."""
    if not text:
        return None
    token_match = _RESUME_TOKEN.search(text)
    if not token_match:
        return None

    project = "unknown"
    ctx_match = _CTX_LINE.search(text)
    if ctx_match and ctx_match.group(1).strip():
        project = ctx_match.group(1).strip()
    else:
        header_match = _STATUS_HEADER.search(text)
        if header_match:
            project = header_match.group(1).strip()
    return ResumeHint(resume_token=token_match.group(1), project_name=project)


class BubbleRouter:
    def __init__(
        self,
        registry: SessionRegistry,
        agents: AgentProcess,
        projects: ProjectResolver,
        transport: ChatTransport,
        monitor: SessionMonitor,
    ) -> None:
        self._registry = registry
        self._agents = agents
        self._projects = projects
        self._transport = transport
        self._monitor = monitor

    async def handle_bubble_reply(
        self,
        chat_id: str,
        reply_to_message_id: str,
        text: str,
        thread_id: int | None = None,
        original_message_text: str | None = None,
    ) -> ReplyOutcome:
        bubble = self._registry.find_bubble(chat_id, reply_to_message_id)
        if bubble is None:
            return await self._reconstruct_from_text(chat_id, text, thread_id, original_message_text)

        logger.info(
            "Reply to bubble of session %s (token %s..., project %s)",
            bubble.session_id, bubble.resume_token[:8], bubble.project_name,
        )
        self._registry.log_command(bubble.resume_token, text, bubble.project_name)

        if await self._forward_to_live(bubble, text):
            await self._say(chat_id, f'Sent to agent: "{shorten(text)}"', thread_id)
            return ReplyOutcome.handled_directly()

        return self._route_resume(
            chat_id, bubble.project_name, bubble.resume_token, text, thread_id
        )

    async def handle_bubble_action(self, chat_id: str, action: str, token_prefix: str) -> str:
        """Run a continue/cancel action; returns the acknowledgement text."""
        logger.info("Bubble action %s for %s", action, token_prefix)
        live_id = self._agents.find_live_by_token_prefix(token_prefix)

        if action == "cancel":
            if live_id is None:
                return "Session already ended"
            if await self._agents.cancel(live_id):
                return "Session cancelled"
            return "Failed to cancel session"

        if action != "continue":
            return f"Unknown action: {action}"

        if live_id is not None:
            async with self._registry.session_lock(live_id):
                sent = await self._agents.send_input(live_id, "continue")
            return "Sent continue signal" if sent else "Session not accepting input"

        bubble = self._registry.find_bubble_by_token_prefix(token_prefix)
        if bubble is None:
            return "Session info lost. Use CLI: claude --resume <token>"

        result = await self._monitor.launch(
            working_dir=bubble.working_dir,
            project_name=bubble.project_name,
            prompt="continue",
            chat_id=bubble.chat_id,
            thread_id=bubble.thread_id,
            resume_token=bubble.resume_token,
            command="Continue work",
        )
        if not result.success:
            return f"Failed to resume: {result.error}"
        return "Resuming session..."

    # --- internals ---

    async def _forward_to_live(self, bubble: Bubble, text: str) -> bool:
        if not self._agents.is_live(bubble.session_id):
            return False
        async with self._registry.session_lock(bubble.session_id):
            # The session can exit between the check above and the write
            if not self._agents.is_live(bubble.session_id):
                return False
            try:
                sent = await self._agents.send_input(bubble.session_id, text)
            except Exception as e:
                logger.warning("[%s] Input write failed: %s", bubble.session_id, e)
                sent = False
        if not sent:
            logger.warning("[%s] Could not forward reply, resuming instead", bubble.session_id)
        return sent

    async def _reconstruct_from_text(
        self,
        chat_id: str,
        text: str,
        thread_id: int | None,
        original_message_text: str | None,
    ) -> ReplyOutcome:
        hint = parse_resume_hint(original_message_text)
        if hint is None:
            return ReplyOutcome.not_session_reply()

        logger.info(
            "Recovered session from message text: token=%s, project=%s",
            hint.resume_token, hint.project_name,
        )
        self._registry.log_command(hint.resume_token, text, hint.project_name)

        if self._projects.resolve(hint.project_name) is None:
            logger.warning("Could not resolve project: %s", hint.project_name)
            await self._say(chat_id, f"Could not find project: {hint.project_name}", thread_id)
            return ReplyOutcome.handled_directly()

        return self._route_resume(chat_id, hint.project_name, hint.resume_token, text, thread_id)

    def _route_resume(
        self,
        chat_id: str,
        project: str,
        resume_token: str,
        text: str,
        thread_id: int | None,
    ) -> ReplyOutcome:
        self._registry.set_forced_resume_token(chat_id, resume_token, project)
        request = PlanningRequest(
            action=PlanningAction.RESUME,
            project=project,
            task=text,
            resume_token=resume_token,
            chat_context=ChatContext(chat_id=str(chat_id), thread_id=thread_id),
        )
        return ReplyOutcome.route_for_orchestration(build_planning_request(request))

    async def _say(self, chat_id: str, text: str, thread_id: int | None) -> None:
        try:
            await self._transport.send_message(chat_id, text, thread_id)
        except Exception as e:
            logger.warning("Failed to send chat message: %s", e)
