"""Bubble rendering and lifecycle.

A bubble is the status card posted for a session. Its text always ends
with a ``ctx:`` line and a ``claude --resume`` hint, so a reply to an
old card can be mapped back to its session after the in-memory index is
gone.
"""

from __future__ import annotations

import logging
from dataclasses import replace

from agentwatch.infra.chat import ChatTransport
from agentwatch.models.agent import AgentSessionState, AgentSessionStatus
from agentwatch.models.blocker import BlockerAssessment, BlockerInfo
from agentwatch.models.bubble import Bubble, BubbleStatus
from agentwatch.services.session_registry import CommandRecord, SessionRegistry

logger = logging.getLogger(__name__)

QUESTION_PREVIEW_CHARS = 200

_STATUS_MAP = {
    AgentSessionStatus.DONE: BubbleStatus.DONE,
    AgentSessionStatus.FAILED: BubbleStatus.FAILED,
    AgentSessionStatus.CANCELLED: BubbleStatus.CANCELLED,
}


def bubble_status_for(state: AgentSessionState) -> BubbleStatus:
    if state.status in _STATUS_MAP:
        return _STATUS_MAP[state.status]
    if state.question_text:
        return BubbleStatus.WAITING
    return BubbleStatus.WORKING


def resume_hint_lines(project_name: str, resume_token: str) -> list[str]:
    return [f"ctx: {project_name}", f"`claude --resume {resume_token}`"]


def render_bubble(
    state: AgentSessionState,
    bubble: Bubble,
    commands: list[CommandRecord] | None = None,
) -> str:
    status = bubble_status_for(state)
    token = state.resume_token or bubble.resume_token
    lines = [f"**{status.value}** · {bubble.project_name} · {state.runtime_str}"]

    if commands:
        lines.append(f"▸ {commands[-1].short}")
    for action in state.recent_actions:
        lines.append(f"  {action}")
    if state.question_text and status == BubbleStatus.WAITING:
        question = state.question_text
        if len(question) > QUESTION_PREVIEW_CHARS:
            question = question[: QUESTION_PREVIEW_CHARS - 3] + "..."
        lines.append(f"? {question}")
    if state.error and status == BubbleStatus.FAILED:
        lines.append(f"! {state.error[:QUESTION_PREVIEW_CHARS]}")

    lines.append("")
    lines.extend(resume_hint_lines(bubble.project_name, token))
    return "\n".join(lines)


def render_blocker_notice(
    bubble: Bubble,
    blocker: BlockerInfo,
    assessment: BlockerAssessment | None = None,
) -> str:
    lines = [
        f"**{BubbleStatus.BLOCKED.value}** · {bubble.project_name} · {blocker.category.value}",
        blocker.reason,
    ]
    if blocker.extracted_context:
        details = ", ".join(f"{k}={v}" for k, v in blocker.extracted_context.items())
        lines.append(f"({details})")
    if assessment is not None:
        lines.append(f"Assessment: {assessment.reasoning} (confidence {assessment.confidence:.2f})")
    lines.extend([
        "Reply to this message to continue the session.",
        "",
        *resume_hint_lines(bubble.project_name, bubble.resume_token),
    ])
    return "\n".join(lines)


class BubbleService:
    def __init__(self, transport: ChatTransport, registry: SessionRegistry) -> None:
        self._transport = transport
        self._registry = registry

    async def create_session_bubble(
        self,
        session_id: str,
        chat_id: str,
        state: AgentSessionState,
        working_dir: str,
        project_name: str,
        thread_id: int | None = None,
        command: str = "",
    ) -> Bubble | None:
        """Post a status card for a session and index it for replies."""
        if not state.resume_token:
            logger.warning("[%s] Cannot create bubble without a resume token", session_id)
            return None
        if command:
            self._registry.log_command(state.resume_token, command, project_name)

        bubble = Bubble(
            session_id=session_id,
            resume_token=state.resume_token,
            project_name=project_name,
            working_dir=working_dir,
            chat_id=str(chat_id),
            thread_id=thread_id,
            status=bubble_status_for(state),
        )
        text = render_bubble(state, bubble, self._registry.recent_commands(bubble.resume_token))
        message_id = await self._transport.send_message(bubble.chat_id, text, thread_id)
        if not message_id:
            logger.warning("[%s] Failed to post bubble", session_id)
            return None

        bubble = bubble.with_message_id(message_id)
        self._registry.register_bubble(bubble)
        logger.info("[%s] Bubble %s created in chat %s", session_id, message_id, chat_id)
        return bubble

    async def update_session_bubble(self, session_id: str, state: AgentSessionState) -> bool:
        """Re-render the session's card in place."""
        bubble = self._registry.primary_bubble(session_id)
        if bubble is None:
            return False

        updated = replace(
            bubble,
            status=bubble_status_for(state),
            resume_token=state.resume_token or bubble.resume_token,
        )
        self._registry.register_bubble(updated)
        text = render_bubble(state, updated, self._registry.recent_commands(updated.resume_token))
        ok = await self._transport.edit_message(updated.chat_id, updated.message_id, text)
        if not ok:
            logger.debug("[%s] Bubble edit failed", session_id)
        return ok

    async def notify_blocker(
        self,
        bubble: Bubble,
        blocker: BlockerInfo,
        assessment: BlockerAssessment | None = None,
    ) -> Bubble | None:
        """Post a blocker card; replies to it resume the session."""
        text = render_blocker_notice(bubble, blocker, assessment)
        message_id = await self._transport.send_message(bubble.chat_id, text, bubble.thread_id)
        if not message_id:
            logger.warning("[%s] Failed to post blocker notice", bubble.session_id)
            return None

        notice = replace(bubble, status=BubbleStatus.BLOCKED, message_id=message_id)
        self._registry.register_bubble(notice)
        logger.info("[%s] Blocker notice %s posted", bubble.session_id, message_id)
        return notice
