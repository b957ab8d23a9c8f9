"""Realtime interventor (Level 3): answer the agent while it is still running.

Runs the strict detector on one streaming message and, on a hit, asks the
oracle whether it can resolve the situation on the spot. The caller
injects the response; anything uncertain is deferred to the
end-of-session levels.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from agentwatch.infra.oracle.base import TASK_HEADING, JudgmentOracle
from agentwatch.models.blocker import BlockerInfo, InterventionDecision, InterventionResult
from agentwatch.models.event import SessionEvent, SessionEventType, assistant_texts
from agentwatch.services.blocker_detector import check_realtime_candidate

logger = logging.getLogger(__name__)

CONTEXT_MESSAGES = 5
CONTEXT_MESSAGE_CHARS = 300

_INSTRUCTIONS = f"""{TASK_HEADING}

You are monitoring a coding-agent session in real time. The agent appears to be waiting for something.

**Can you handle this automatically?**

Examples you CAN handle:
- "Should I proceed with this change?" -> "Yes, proceed"
- "Which approach do you prefer?" -> Make a decision based on project context
- "Do you want me to continue?" -> "Yes, continue"

Examples you CANNOT handle:
- "You need to fund this wallet: 0x..." -> User must do this
- "The build failed, manual fix needed" -> User must debug
- "Rate limited, wait 5 minutes" -> Must wait

Simple yes/no procedural questions can be answered. Anything that needs external
resources, credentials or real-world waiting cannot.

**Respond in JSON:**
```json
{{
  "canHandle": true/false,
  "response": "Your response to the agent (if canHandle is true)",
  "reasoning": "Why you can/cannot handle this"
}}
```"""


@dataclass(frozen=True)
class SessionContext:
    session_id: str
    project_name: str
    recent_events: list[SessionEvent] = field(default_factory=list)


def build_intervention_context(
    blocker: BlockerInfo,
    question_text: str,
    ctx: SessionContext,
) -> str:
    recent = assistant_texts(ctx.recent_events)[-CONTEXT_MESSAGES:]
    recent_messages = "\n\n".join(
        f"[{i}] {text[:CONTEXT_MESSAGE_CHARS]}..." for i, text in enumerate(recent, start=1)
    )
    return f"""## Real-Time Intervention Request

**Project:** {ctx.project_name}
**Session ID:** {ctx.session_id}

**The agent just said:**
"{question_text}"

**Detected blocker pattern:** {blocker.reason}

**Recent conversation (last {CONTEXT_MESSAGES} messages):**
{recent_messages}

{_INSTRUCTIONS}"""


class RealtimeInterventor:
    def __init__(self, oracle: JudgmentOracle, timeout: float | None = 60.0) -> None:
        self._oracle = oracle
        self._timeout = timeout

    async def check(self, event: SessionEvent, ctx: SessionContext) -> InterventionResult:
        if event.type != SessionEventType.ASSISTANT_MESSAGE or not event.text:
            return InterventionResult(intervened=False, reasoning="Not an assistant message")

        suspected = check_realtime_candidate(event.text)
        if suspected is None:
            return InterventionResult(intervened=False, reasoning="No blocker pattern detected")

        logger.info("[Level 3] [%s] Realtime blocker suspected: %s", ctx.session_id, suspected.reason)
        decision = await self._decide(suspected, event.text, ctx)

        if decision.can_handle and decision.response:
            logger.info("[Level 3] [%s] Intervening with response", ctx.session_id)
            return InterventionResult(
                intervened=True,
                response=decision.response,
                reasoning=decision.reasoning,
            )

        logger.info("[Level 3] [%s] Cannot handle - deferring to end of session", ctx.session_id)
        return InterventionResult(intervened=False, reasoning=decision.reasoning)

    async def _decide(
        self, blocker: BlockerInfo, question_text: str, ctx: SessionContext
    ) -> InterventionDecision:
        prompt = build_intervention_context(blocker, question_text, ctx)
        try:
            judgment = await asyncio.wait_for(self._oracle.judge(prompt), timeout=self._timeout)
            decision = InterventionDecision.from_judgment(judgment)
        except Exception as e:
            logger.error("[Level 3] [%s] Intervention check failed: %s", ctx.session_id, e)
            return InterventionDecision(
                can_handle=False,
                reasoning="Intervention assessment failed, escalating to user",
            )
        logger.info(
            "[Level 3] [%s] Decision: %s",
            ctx.session_id, "CAN HANDLE" if decision.can_handle else "CANNOT HANDLE",
        )
        return decision
