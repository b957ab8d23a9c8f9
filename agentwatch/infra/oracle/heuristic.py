"""Heuristic oracles: reference judgments used when no model is wired.

Both only look at the context part of the prompt, never at the
instruction text (whose examples would otherwise match every time).
"""

from __future__ import annotations

import logging
import re

from agentwatch.infra.oracle.base import context_section

logger = logging.getLogger(__name__)

_MATCHED_PATTERNS_PREFIX = "**Matched Patterns:**"

_COMPLETION_CONTEXT = re.compile(r"✅.*ready|all.*complete|finished|done!", re.IGNORECASE)
_LIST_CONTEXT = re.compile(
    r"Tasks? where|Criteria|Signals?|Examples?|Quantitative|Qualitative", re.IGNORECASE
)
_FUNDING_CONTEXT = re.compile(
    r"need(s|ed)?\s+(\d+(?:\.\d+)?)\s*sol|insufficient.*balance", re.IGNORECASE
)

_YES_NO_QUESTION = re.compile(r"should i proceed|do you want|shall i continue", re.IGNORECASE)
_NEEDS_OUTSIDE_WORLD = re.compile(
    r"\bfund|wallet|balance|\bsol\b|credential|api key|password|captcha|"
    r"rate.?limit|try again (later|in)|manual(ly)?\b",
    re.IGNORECASE,
)

AUTO_APPROVAL = "Yes, please proceed."


def _evidence(prompt: str) -> str:
    """Context lines minus the matched-pattern listing (regex sources)."""
    lines = context_section(prompt).splitlines()
    return "\n".join(ln for ln in lines if not ln.startswith(_MATCHED_PATTERNS_PREFIX))


class HeuristicAssessmentOracle:
    """Level 2 reference: is the detected blocker real?"""

    async def judge(self, prompt: str) -> dict:
        evidence = _evidence(prompt)
        logger.debug("[Level 2] Using heuristic assessment")

        if _COMPLETION_CONTEXT.search(evidence):
            return {
                "isRealBlocker": False,
                "confidence": 0.9,
                "reasoning": "Detected completion signal (ready / all complete). This is a false positive.",
            }

        if _LIST_CONTEXT.search(evidence):
            return {
                "isRealBlocker": False,
                "confidence": 0.85,
                "reasoning": (
                    "Detected list/criteria context. The match likely comes from "
                    "documentation or analysis, not a real blocker."
                ),
            }

        if _FUNDING_CONTEXT.search(evidence):
            return {
                "isRealBlocker": True,
                "confidence": 0.9,
                "reasoning": "Detected funding/balance issue. This is a real blocker.",
            }

        return {
            "isRealBlocker": True,
            "confidence": 0.6,
            "reasoning": "Unable to determine with high confidence. Defaulting to real blocker (conservative).",
        }


class HeuristicInterventionOracle:
    """Level 3 reference: can the question be answered right now?

    Anything touching funds, credentials or waiting is refused before the
    yes/no check, so a mixed message is always escalated.
    """

    async def judge(self, prompt: str) -> dict:
        evidence = context_section(prompt)
        logger.debug("[Level 3] Using heuristic intervention")

        if _NEEDS_OUTSIDE_WORLD.search(evidence):
            return {
                "canHandle": False,
                "reasoning": "Needs external resources, credentials or waiting - user action required",
            }

        if _YES_NO_QUESTION.search(evidence):
            return {
                "canHandle": True,
                "response": AUTO_APPROVAL,
                "reasoning": "Simple yes/no procedural question - can approve",
            }

        return {
            "canHandle": False,
            "reasoning": "Uncertain - escalating to user for safety",
        }
