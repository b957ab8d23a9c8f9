"""Oracle backed by an LLM provider."""

from __future__ import annotations

import json
import logging

from agentwatch.infra.oracle.base import OracleError
from agentwatch.infra.providers.base import LLMProvider
from agentwatch.models.provider import LLMConfig, LLMMessage

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You supervise autonomous coding-agent sessions. "
    "Answer with a single JSON object that follows the requested format exactly."
)


def parse_json_object(text: str) -> dict:
    """Extract a JSON object from a model reply, fenced or bare."""
    text = text.strip()
    if "```" in text:
        text = text.split("```")[1]
        if text.startswith("json"):
            text = text[4:]
        text = text.strip()
    else:
        start, end = text.find("{"), text.rfind("}")
        if start != -1 and end > start:
            text = text[start : end + 1]
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as e:
        raise OracleError(f"Oracle reply is not JSON: {e}") from e
    if not isinstance(parsed, dict):
        raise OracleError(f"Oracle reply is a {type(parsed).__name__}, expected an object")
    return parsed


class LLMOracle:
    """Asks a model for the judgment described in the prompt."""

    def __init__(self, provider: LLMProvider, model: str = "", temperature: float = 0.2) -> None:
        self._provider = provider
        self._config = LLMConfig(
            model=model, max_tokens=1024, temperature=temperature, json_object=True
        )

    async def judge(self, prompt: str) -> dict:
        response = await self._provider.complete(
            messages=[
                LLMMessage(role="system", content=SYSTEM_PROMPT),
                LLMMessage(role="user", content=prompt),
            ],
            config=self._config,
        )
        logger.debug("Oracle reply (%s): %s", response.model, response.content[:200])
        return parse_json_object(response.content)
