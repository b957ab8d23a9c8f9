"""Anthropic LLM provider using the anthropic SDK."""

from __future__ import annotations

import logging

import anthropic

from agentwatch.models.provider import LLMConfig, LLMMessage, LLMResponse, ToolCall

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"


class AnthropicProvider:
    """LLM provider using the Anthropic API."""

    def __init__(self, api_key: str = "", model: str = "", timeout: float = 120.0) -> None:
        self._client = anthropic.AsyncAnthropic(api_key=api_key or None, timeout=timeout)
        self._default_model = model or DEFAULT_MODEL

    def _convert_messages(
        self, messages: list[LLMMessage]
    ) -> tuple[str | None, list[dict]]:
        """Convert LLMMessages to Anthropic format, extracting system prompt."""
        system_prompt = None
        converted: list[dict] = []

        for msg in messages:
            if msg.role == "system":
                system_prompt = msg.content
            elif msg.role == "tool":
                tool_result = {
                    "type": "tool_result",
                    "tool_use_id": msg.tool_call_id,
                    "content": msg.content,
                }
                # Consecutive tool results share one user turn
                if (
                    converted
                    and converted[-1]["role"] == "user"
                    and isinstance(converted[-1]["content"], list)
                    and converted[-1]["content"]
                    and converted[-1]["content"][0].get("type") == "tool_result"
                ):
                    converted[-1]["content"].append(tool_result)
                else:
                    converted.append({"role": "user", "content": [tool_result]})
            elif msg.tool_calls:
                blocks: list[dict] = []
                if msg.content:
                    blocks.append({"type": "text", "text": msg.content})
                for tc in msg.tool_calls:
                    blocks.append({
                        "type": "tool_use",
                        "id": tc["id"],
                        "name": tc["name"],
                        "input": tc.get("arguments", {}),
                    })
                converted.append({"role": msg.role, "content": blocks})
            else:
                converted.append({"role": msg.role, "content": msg.content})

        return system_prompt, converted

    @staticmethod
    def _convert_tools(tools: list[dict] | None) -> list[dict] | None:
        if not tools:
            return None
        return [
            {
                "name": tool["name"],
                "description": tool.get("description", ""),
                "input_schema": tool.get("parameters", {"type": "object", "properties": {}}),
            }
            for tool in tools
        ]

    async def complete(
        self,
        messages: list[LLMMessage],
        config: LLMConfig | None = None,
    ) -> LLMResponse:
        """Generate a completion using the Anthropic API."""
        config = config or LLMConfig()
        system_prompt, converted = self._convert_messages(messages)
        tools = self._convert_tools(config.tools)

        kwargs: dict = {
            "model": config.model or self._default_model,
            "max_tokens": config.max_tokens,
            "messages": converted,
        }
        if system_prompt:
            kwargs["system"] = system_prompt
        if tools:
            kwargs["tools"] = tools
        if config.temperature is not None:
            kwargs["temperature"] = config.temperature

        response = await self._client.messages.create(**kwargs)

        content_text = ""
        tool_calls = []
        for block in response.content:
            if block.type == "text":
                content_text += block.text
            elif block.type == "tool_use":
                tool_calls.append(ToolCall(
                    id=block.id,
                    name=block.name,
                    arguments=dict(block.input) if block.input else {},
                ))

        return LLMResponse(
            content=content_text,
            model=response.model,
            finish_reason=response.stop_reason or "",
            tool_calls=tool_calls,
            usage={
                "input_tokens": response.usage.input_tokens,
                "output_tokens": response.usage.output_tokens,
            },
        )
