"""OpenRouter LLM provider using httpx."""

from __future__ import annotations

import json
import logging

import httpx

from agentwatch.models.provider import LLMConfig, LLMMessage, LLMResponse, ToolCall

logger = logging.getLogger(__name__)

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_MODEL = "anthropic/claude-sonnet-4"


class OpenRouterProvider:
    """LLM provider using the OpenRouter API (OpenAI-compatible)."""

    def __init__(
        self, api_key: str = "", model: str = "", timeout: float = 120.0, base_url: str = ""
    ) -> None:
        self._default_model = model or DEFAULT_MODEL
        self._client = httpx.AsyncClient(
            base_url=base_url or OPENROUTER_BASE_URL,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
        )

    @staticmethod
    def _convert_message(msg: LLMMessage) -> dict:
        """Convert to OpenAI format; tool calls become nested function objects."""
        d = msg.to_dict()
        if msg.tool_calls:
            d["tool_calls"] = [
                {
                    "id": tc.get("id", ""),
                    "type": "function",
                    "function": {
                        "name": tc.get("name", ""),
                        "arguments": json.dumps(tc.get("arguments", {})),
                    },
                }
                for tc in msg.tool_calls
            ]
            if not msg.content:
                d["content"] = None
        return d

    def _resolve_model(self, model: str) -> str:
        # OpenRouter model ids look like "vendor/model"
        if model and "/" in model:
            return model
        return self._default_model

    async def complete(
        self,
        messages: list[LLMMessage],
        config: LLMConfig | None = None,
    ) -> LLMResponse:
        """Generate a completion via OpenRouter."""
        config = config or LLMConfig()
        model = self._resolve_model(config.model)

        payload: dict = {
            "model": model,
            "messages": [self._convert_message(m) for m in messages],
            "max_tokens": config.max_tokens,
        }
        if config.temperature is not None:
            payload["temperature"] = config.temperature
        if config.tools:
            payload["tools"] = [{"type": "function", "function": t} for t in config.tools]
        if config.json_object:
            payload["response_format"] = {"type": "json_object"}

        logger.debug("Sending request to OpenRouter with model: %s", model)
        response = await self._client.post("/chat/completions", json=payload)
        response.raise_for_status()
        data = response.json()

        choice = data["choices"][0]
        message = choice["message"]

        tool_calls = []
        for tc in message.get("tool_calls") or []:
            func = tc.get("function", {})
            args = func.get("arguments", "{}")
            if isinstance(args, str):
                try:
                    args = json.loads(args)
                except json.JSONDecodeError:
                    args = {}
            tool_calls.append(ToolCall(id=tc.get("id", ""), name=func.get("name", ""), arguments=args))

        raw_usage = data.get("usage", {})
        return LLMResponse(
            content=message.get("content", "") or "",
            model=data.get("model", model),
            finish_reason=choice.get("finish_reason", ""),
            tool_calls=tool_calls,
            usage={
                "input_tokens": raw_usage.get("prompt_tokens", 0),
                "output_tokens": raw_usage.get("completion_tokens", 0),
            },
        )

    async def close(self) -> None:
        await self._client.aclose()
