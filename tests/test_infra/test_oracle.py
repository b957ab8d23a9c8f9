"""Tests for judgment oracles."""

from unittest.mock import AsyncMock

import pytest

from agentwatch.config import AppConfig, OracleConfig, ProviderConfig
from agentwatch.infra.oracle.base import OracleError, context_section
from agentwatch.infra.oracle.heuristic import HeuristicAssessmentOracle, HeuristicInterventionOracle
from agentwatch.infra.oracle.llm import LLMOracle, parse_json_object
from agentwatch.infra.oracle.registry import get_oracles
from agentwatch.models.blocker import BlockerCategory, BlockerInfo
from agentwatch.models.event import SessionEvent, SessionEventType
from agentwatch.models.provider import LLMResponse
from agentwatch.services.blocker_assessor import build_assessment_context


def _assessment_prompt(*messages: str, category=BlockerCategory.WAITING_FOR_USER) -> str:
    blocker = BlockerInfo(
        reason=messages[-1][:80],
        last_message=messages[-1],
        matched_patterns=("waiting_for_user:please let me know",),
        category=category,
    )
    events = [SessionEvent(SessionEventType.ASSISTANT_MESSAGE, m) for m in messages]
    return build_assessment_context(blocker, events, "done")


class TestContextSection:
    def test_drops_instructions(self):
        assert context_section("context\n## Your Task\ninstructions") == "context\n"

    def test_no_heading(self):
        assert context_section("only context") == "only context"


class TestHeuristicAssessmentOracle:
    @pytest.mark.asyncio
    async def test_funding_is_real(self):
        prompt = _assessment_prompt(
            "Need 2 SOL to proceed, current balance 0.1 SOL",
            category=BlockerCategory.FUNDING_NEEDED,
        )
        judgment = await HeuristicAssessmentOracle().judge(prompt)
        assert judgment["isRealBlocker"] is True
        assert judgment["confidence"] == 0.9

    @pytest.mark.asyncio
    async def test_completion_is_false_positive(self):
        prompt = _assessment_prompt("✅ Everything is ready. Please let me know if you want more.")
        judgment = await HeuristicAssessmentOracle().judge(prompt)
        assert judgment["isRealBlocker"] is False

    @pytest.mark.asyncio
    async def test_list_context_is_false_positive(self):
        prompt = _assessment_prompt("Examples of blockers: you need to fund wallets.")
        judgment = await HeuristicAssessmentOracle().judge(prompt)
        assert judgment["isRealBlocker"] is False
        assert judgment["confidence"] == 0.85

    @pytest.mark.asyncio
    async def test_uncertain_defaults_to_real(self):
        prompt = _assessment_prompt("Please let me know which region to deploy to.")
        judgment = await HeuristicAssessmentOracle().judge(prompt)
        assert judgment["isRealBlocker"] is True
        assert judgment["confidence"] == 0.6


class TestHeuristicInterventionOracle:
    @pytest.mark.asyncio
    async def test_yes_no_question(self):
        judgment = await HeuristicInterventionOracle().judge(
            '"Should I proceed with the refactor?"\n## Your Task\nfund wallet examples'
        )
        assert judgment["canHandle"] is True

    @pytest.mark.asyncio
    async def test_outside_world_wins(self):
        judgment = await HeuristicInterventionOracle().judge(
            "Should I proceed once you add the API key?\n## Your Task\n"
        )
        assert judgment["canHandle"] is False

    @pytest.mark.asyncio
    async def test_uncertain(self):
        judgment = await HeuristicInterventionOracle().judge("Which color scheme?\n## Your Task\n")
        assert judgment["canHandle"] is False


class TestParseJsonObject:
    def test_fenced(self):
        assert parse_json_object('```json\n{"canHandle": true}\n```') == {"canHandle": True}

    def test_bare_with_prose(self):
        text = 'Here is my answer: {"isRealBlocker": false, "confidence": 0.7} hope it helps'
        assert parse_json_object(text)["confidence"] == 0.7

    def test_not_json(self):
        with pytest.raises(OracleError):
            parse_json_object("I cannot decide")

    def test_not_object(self):
        with pytest.raises(OracleError):
            parse_json_object("[1, 2]")


class TestLLMOracle:
    @pytest.mark.asyncio
    async def test_judge(self):
        provider = AsyncMock()
        provider.complete = AsyncMock(
            return_value=LLMResponse(content='{"canHandle": false, "reasoning": "funds"}')
        )
        oracle = LLMOracle(provider, model="m")
        judgment = await oracle.judge("prompt text")
        assert judgment == {"canHandle": False, "reasoning": "funds"}
        messages = provider.complete.call_args.kwargs["messages"]
        assert [m.role for m in messages] == ["system", "user"]
        assert messages[1].content == "prompt text"
        config = provider.complete.call_args.kwargs["config"]
        assert config.model == "m"
        assert config.json_object


class TestGetOracles:
    def test_heuristic(self):
        pair = get_oracles(AppConfig())
        assert isinstance(pair.assessment, HeuristicAssessmentOracle)
        assert isinstance(pair.intervention, HeuristicInterventionOracle)

    def test_llm(self):
        config = AppConfig(
            oracle=OracleConfig(backend="llm"),
            providers={"anthropic": ProviderConfig(api_key="k")},
        )
        pair = get_oracles(config)
        assert isinstance(pair.assessment, LLMOracle)
        assert pair.assessment is pair.intervention

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            get_oracles(AppConfig(oracle=OracleConfig(backend="magic")))
