"""LLM provider factory/registry."""

from __future__ import annotations

import logging

from agentwatch.config import AppConfig
from agentwatch.infra.providers.anthropic import AnthropicProvider
from agentwatch.infra.providers.base import LLMProvider
from agentwatch.infra.providers.fallback import FallbackProvider
from agentwatch.infra.providers.openrouter import OpenRouterProvider
from agentwatch.models.provider import ProviderType

logger = logging.getLogger(__name__)


def _build_provider(provider_type: ProviderType, config: AppConfig, timeout: float) -> LLMProvider:
    prov_config = config.providers.get(provider_type.value)
    api_key = prov_config.api_key if prov_config else ""
    model = prov_config.default_model if prov_config else ""
    base_url = prov_config.base_url if prov_config else ""
    if provider_type == ProviderType.ANTHROPIC:
        return AnthropicProvider(api_key=api_key, model=model, timeout=timeout)
    if provider_type == ProviderType.OPENROUTER:
        return OpenRouterProvider(
            api_key=api_key, model=model, timeout=timeout, base_url=base_url
        )
    raise ValueError(f"Unknown provider type: {provider_type}")


def get_provider(
    provider_type: ProviderType | str, config: AppConfig, timeout: float = 120.0
) -> LLMProvider:
    """Get an LLM provider instance by type, configured from AppConfig."""
    if isinstance(provider_type, str):
        provider_type = ProviderType(provider_type)
    return _build_provider(provider_type, config, timeout)


def get_provider_with_fallback(
    config: AppConfig, primary: str, timeout: float = 120.0
) -> LLMProvider:
    """Primary provider first, then every other provider with a key configured."""
    try:
        primary_type = ProviderType(primary)
    except ValueError:
        primary_type = ProviderType.ANTHROPIC

    ordered = [primary_type] + [t for t in ProviderType if t != primary_type]

    providers = []
    names = []
    for ptype in ordered:
        prov_config = config.providers.get(ptype.value)
        if prov_config and (prov_config.api_key or prov_config.api_key_env):
            providers.append(_build_provider(ptype, config, timeout))
            names.append(ptype.value)
        else:
            logger.debug("Skipping %s: no API key configured", ptype.value)

    if not providers:
        raise RuntimeError("No LLM providers configured. Set at least one API key.")

    if len(providers) == 1:
        return providers[0]

    logger.info("Fallback chain: %s", " -> ".join(names))
    return FallbackProvider(providers, names)
