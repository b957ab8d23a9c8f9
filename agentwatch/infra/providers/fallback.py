"""Fallback LLM provider that tries multiple providers in order."""

from __future__ import annotations

import logging

from agentwatch.models.provider import LLMConfig, LLMMessage, LLMResponse

logger = logging.getLogger(__name__)


class FallbackProvider:
    """Wraps several providers, returning the first successful completion."""

    def __init__(self, providers: list, names: list[str] | None = None) -> None:
        if not providers:
            raise ValueError("FallbackProvider requires at least one provider")
        self._providers = providers
        self._names = names or [f"provider-{i}" for i in range(len(providers))]

    @property
    def names(self) -> list[str]:
        return list(self._names)

    async def complete(
        self,
        messages: list[LLMMessage],
        config: LLMConfig | None = None,
    ) -> LLMResponse:
        last_error: Exception | None = None

        for provider, name in zip(self._providers, self._names):
            try:
                return await provider.complete(messages, config)
            except Exception as e:
                last_error = e
                logger.warning("Provider '%s' failed: %s. Trying next...", name, e)

        raise RuntimeError(
            f"All {len(self._providers)} providers failed. Last error: {last_error}"
        )
