"""Oracle factory."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from agentwatch.config import AppConfig
from agentwatch.infra.oracle.base import JudgmentOracle
from agentwatch.infra.oracle.heuristic import HeuristicAssessmentOracle, HeuristicInterventionOracle
from agentwatch.infra.oracle.llm import LLMOracle
from agentwatch.infra.providers.registry import get_provider_with_fallback

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OraclePair:
    assessment: JudgmentOracle
    intervention: JudgmentOracle


def get_oracles(config: AppConfig) -> OraclePair:
    """Build the Level 2 and Level 3 oracles from ``[oracle]`` settings."""
    backend = config.oracle.backend
    if backend == "heuristic":
        return OraclePair(HeuristicAssessmentOracle(), HeuristicInterventionOracle())
    if backend == "llm":
        provider = get_provider_with_fallback(
            config, config.oracle.provider, timeout=config.oracle.timeout
        )
        oracle = LLMOracle(provider, config.oracle.model, config.oracle.temperature)
        logger.info("Using LLM oracle (%s/%s)", config.oracle.provider, config.oracle.model)
        return OraclePair(oracle, oracle)
    raise ValueError(f"Unknown oracle backend: {backend}")
