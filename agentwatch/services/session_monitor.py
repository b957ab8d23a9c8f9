"""Session monitor: runs the escalation cascade against live sessions.

Level 3 runs on every streamed assistant message while the session is
live. When a session finishes, Level 1 scans its last messages and
Level 2 confirms the candidate; a confirmed blocker is either answered
by resuming the session or posted to the chat.
"""

from __future__ import annotations

import logging

from agentwatch.config import AgentConfig, DetectionConfig
from agentwatch.infra.agents.base import AgentProcess
from agentwatch.models.agent import AgentSessionState, AgentSessionStatus, StartParams, StartResult
from agentwatch.models.bubble import Bubble
from agentwatch.models.event import SessionEvent, SessionEventType
from agentwatch.services.blocker_assessor import BlockerAssessor
from agentwatch.services.blocker_detector import check_events_for_blocker
from agentwatch.services.bubble_service import BubbleService
from agentwatch.services.realtime_interventor import RealtimeInterventor, SessionContext
from agentwatch.services.session_registry import SessionRegistry

logger = logging.getLogger(__name__)


class SessionMonitor:
    def __init__(
        self,
        registry: SessionRegistry,
        agents: AgentProcess,
        bubbles: BubbleService,
        assessor: BlockerAssessor,
        interventor: RealtimeInterventor | None = None,
        detection: DetectionConfig | None = None,
        agent_config: AgentConfig | None = None,
    ) -> None:
        self._registry = registry
        self._agents = agents
        self._bubbles = bubbles
        self._assessor = assessor
        self._interventor = interventor
        self._detection = detection or DetectionConfig()
        self._agent_config = agent_config or AgentConfig()
        self._awaiting_bubble: dict[str, AgentSessionState] = {}
        self._auto_remediations: dict[str, int] = {}

    async def launch(
        self,
        working_dir: str,
        project_name: str,
        prompt: str,
        chat_id: str,
        thread_id: int | None = None,
        resume_token: str = "",
        command: str = "",
        auto_remediations: int = 0,
    ) -> StartResult:
        """Start (or resume) a session under monitoring and post its bubble."""
        params = StartParams(
            working_dir=working_dir,
            prompt=prompt,
            project_name=project_name,
            resume_token=resume_token,
            model=self._agent_config.model,
            permission_mode=self._agent_config.permission_mode,
        )
        result = await self._agents.start(
            params, on_state_change=self.on_state_change, on_event=self.on_event
        )
        if not result.success:
            logger.warning("Failed to start session for %s: %s", project_name, result.error)
            return result

        if auto_remediations:
            self._auto_remediations[result.resume_token] = auto_remediations

        state = self._agents.get_state(result.session_id) or AgentSessionState(
            session_id=result.session_id,
            project_name=project_name,
            resume_token=result.resume_token,
            status=AgentSessionStatus.RUNNING,
        )
        await self._bubbles.create_session_bubble(
            session_id=result.session_id,
            chat_id=chat_id,
            state=state,
            working_dir=working_dir,
            project_name=project_name,
            thread_id=thread_id,
            command=command or prompt,
        )

        # The session may have finished before its bubble existed
        finished = self._awaiting_bubble.pop(result.session_id, None)
        if finished is not None:
            await self.on_state_change(finished)
        return result

    async def on_event(self, session_id: str, event: SessionEvent) -> None:
        self._registry.append_event(session_id, event)
        if (
            self._interventor is None
            or not self._detection.realtime_enabled
            or not event.is_assistant_text
        ):
            return

        state = self._agents.get_state(session_id)
        ctx = SessionContext(
            session_id=session_id,
            project_name=state.project_name if state else "",
            recent_events=self._registry.get_events(session_id),
        )

        async with self._registry.session_lock(session_id):
            result = await self._interventor.check(event, ctx)
            if not result.intervened:
                return
            if not self._agents.is_live(session_id):
                logger.info("[Level 3] [%s] Session ended, discarding intervention", session_id)
                return
            sent = await self._agents.send_input(session_id, result.response)

        if not sent:
            logger.warning("[Level 3] [%s] Failed to inject intervention", session_id)
            return
        logger.info("[Level 3] [%s] Injected: %s", session_id, result.response[:80])
        self._registry.append_event(
            session_id, SessionEvent(SessionEventType.ORCHESTRATOR_COMMAND, result.response)
        )
        if state and state.resume_token:
            self._registry.log_command(state.resume_token, result.response, state.project_name)

    async def on_state_change(self, state: AgentSessionState) -> None:
        session_id = state.session_id
        await self._bubbles.update_session_bubble(session_id, state)
        if not state.status.is_terminal:
            return

        if state.status != AgentSessionStatus.DONE:
            logger.info("[%s] Session %s - skipping blocker scan", session_id, state.status.value)
            self._registry.forget_session(session_id)
            return

        bubble = self._registry.primary_bubble(session_id)
        if bubble is None:
            self._awaiting_bubble[session_id] = state
            return

        try:
            await self.check_finished_session(bubble, state)
        finally:
            self._registry.forget_session(session_id)

    async def check_finished_session(self, bubble: Bubble, state: AgentSessionState) -> None:
        """Level 1 end-of-session scan, then Level 2 and remediation."""
        session_id = state.session_id
        events = self._registry.get_events(session_id)

        blocker = check_events_for_blocker(events, last_n=self._detection.end_scan_messages)
        if blocker is None:
            logger.info("[%s] Session finished without blockers", session_id)
            return

        assessment = await self._assessor.assess(blocker, events, state.status.value)
        if not assessment.is_real_blocker:
            logger.info(
                "[Level 2] [%s] False positive: %s", session_id, assessment.reasoning
            )
            return

        if (
            self._detection.auto_remediate
            and assessment.can_auto_handle
            and assessment.auto_response
        ):
            if await self._auto_remediate(bubble, assessment.auto_response):
                return

        if assessment.confidence < self._detection.notify_min_confidence:
            logger.info(
                "[Level 2] [%s] Confidence %.2f below threshold - not notifying",
                session_id, assessment.confidence,
            )
            return
        await self._bubbles.notify_blocker(bubble, blocker, assessment)

    async def _auto_remediate(self, bubble: Bubble, response: str) -> bool:
        count = self._auto_remediations.get(bubble.resume_token, 0)
        if count >= self._detection.max_auto_remediations:
            logger.info(
                "[Level 2] [%s] Auto-remediation limit reached, escalating", bubble.session_id
            )
            return False

        logger.info("[Level 2] [%s] Auto-remediating: %s", bubble.session_id, response[:80])
        result = await self.launch(
            working_dir=bubble.working_dir,
            project_name=bubble.project_name,
            prompt=response,
            chat_id=bubble.chat_id,
            thread_id=bubble.thread_id,
            resume_token=bubble.resume_token,
            auto_remediations=count + 1,
        )
        return result.success
