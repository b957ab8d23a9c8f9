"""Judgment oracle protocol.

An oracle takes a free-form prompt and answers with a JSON-shaped dict.
Assessment and intervention prompts share one layout: a context part,
then a ``## Your Task`` section carrying the instruction contract.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

TASK_HEADING = "## Your Task"


class OracleError(Exception):
    """The oracle could not produce a usable judgment."""


@runtime_checkable
class JudgmentOracle(Protocol):
    async def judge(self, prompt: str) -> dict:
        """Assess the prompt and return a structured judgment."""
        ...


def context_section(prompt: str) -> str:
    """The part of a prompt before its instruction contract."""
    head, _, _ = prompt.partition(TASK_HEADING)
    return head
