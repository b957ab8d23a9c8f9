"""Blocker assessor (Level 2): semantic judgment after a session ends.

Pattern matching only says "possibly blocked". The assessor hands the
candidate and recent history to a judgment oracle and fails open: if the
oracle is unavailable the blocker is treated as real.
"""

from __future__ import annotations

import asyncio
import json
import logging

from agentwatch.infra.oracle.base import TASK_HEADING, JudgmentOracle
from agentwatch.models.blocker import BlockerAssessment, BlockerInfo
from agentwatch.models.event import SessionEvent, assistant_texts

logger = logging.getLogger(__name__)

CONTEXT_MESSAGES = 10
CONTEXT_MESSAGE_CHARS = 500

FALLBACK_REASONING = "Assessment failed, defaulting to pattern matching result"

_INSTRUCTIONS = f"""{TASK_HEADING}

You are reviewing a coding-agent session that pattern matching flagged as "possibly blocked".

**Analyze the context above and determine:**

1. **Is this a REAL blocker?**
   - Real blocker: the agent needs user/external intervention to continue
   - False positive: pattern matching triggered on list items, examples, or completed tasks

2. **Confidence level (0.0 to 1.0)**
   - 0.9-1.0: Very confident in your judgment
   - 0.7-0.8: Confident but some uncertainty
   - 0.5-0.6: Uncertain, could go either way
   - 0.0-0.4: Low confidence

3. **Reasoning:** Why did you reach this conclusion?

4. **Can you handle this automatically?**
   - If yes, provide the response you would send to the agent

**Respond in JSON format:**
```json
{{
  "isRealBlocker": true/false,
  "confidence": 0.0-1.0,
  "reasoning": "Your analysis here",
  "canAutoHandle": true/false,
  "autoResponse": "Your response to the agent (if canAutoHandle is true)"
}}
```"""


def build_assessment_context(
    blocker: BlockerInfo,
    recent_events: list[SessionEvent],
    session_status: str,
) -> str:
    """Bounded textual context plus the fixed instruction contract."""
    recent = assistant_texts(recent_events)[-CONTEXT_MESSAGES:]
    recent_messages = "\n\n".join(
        f"[{i}] {text[:CONTEXT_MESSAGE_CHARS]}..." for i, text in enumerate(recent, start=1)
    )

    extracted = ""
    if blocker.extracted_context:
        extracted = "\nExtracted Context:\n" + json.dumps(blocker.extracted_context, indent=2)

    return f"""## Blocker Detection Context

**Detected Reason:** {blocker.reason}
**Matched Patterns:** {", ".join(blocker.matched_patterns)}
**Session Status:** {session_status}{extracted}

**Recent Messages (last {CONTEXT_MESSAGES}):**
{recent_messages}

{_INSTRUCTIONS}"""


class BlockerAssessor:
    """Confirms or rejects Level 1 blockers through a judgment oracle."""

    def __init__(self, oracle: JudgmentOracle, timeout: float | None = 60.0) -> None:
        self._oracle = oracle
        self._timeout = timeout

    async def assess(
        self,
        blocker: BlockerInfo,
        recent_events: list[SessionEvent],
        session_status: str,
    ) -> BlockerAssessment:
        prompt = build_assessment_context(blocker, recent_events, session_status)
        logger.info("[Level 2] Assessing blocker: %s", blocker.reason)

        try:
            judgment = await asyncio.wait_for(self._oracle.judge(prompt), timeout=self._timeout)
            assessment = BlockerAssessment.from_judgment(judgment)
        except Exception as e:
            logger.error("[Level 2] Assessment failed: %s", e)
            return BlockerAssessment(
                is_real_blocker=True,
                confidence=0.5,
                reasoning=FALLBACK_REASONING,
            )

        logger.info(
            "[Level 2] Assessment: %s (confidence: %.2f)",
            "REAL" if assessment.is_real_blocker else "FALSE POSITIVE",
            assessment.confidence,
        )
        return assessment
