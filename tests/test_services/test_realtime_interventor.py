"""Tests for the Level 3 realtime interventor."""

from unittest.mock import AsyncMock

import pytest

from agentwatch.infra.oracle.heuristic import AUTO_APPROVAL, HeuristicInterventionOracle
from agentwatch.models.event import SessionEvent, SessionEventType
from agentwatch.services.blocker_detector import check_realtime_candidate
from agentwatch.services.realtime_interventor import (
    RealtimeInterventor,
    SessionContext,
    build_intervention_context,
)

QUESTION = "Should I proceed with the migration? Please let me know, and you need to confirm."


@pytest.fixture
def ctx():
    return SessionContext(
        session_id="s1",
        project_name="web",
        recent_events=[SessionEvent(SessionEventType.ASSISTANT_MESSAGE, "Wrote the migration.")],
    )


@pytest.fixture
def oracle():
    mock = AsyncMock()
    mock.judge = AsyncMock(return_value={
        "canHandle": True,
        "response": "Yes, proceed",
        "reasoning": "simple confirmation",
    })
    return mock


def _assistant(text: str) -> SessionEvent:
    return SessionEvent(SessionEventType.ASSISTANT_MESSAGE, text)


class TestBuildInterventionContext:
    def test_layout(self, ctx):
        blocker = check_realtime_candidate(QUESTION)
        prompt = build_intervention_context(blocker, QUESTION, ctx)
        assert "**Project:** web" in prompt
        assert "**Session ID:** s1" in prompt
        assert f'"{QUESTION}"' in prompt
        assert "[1] Wrote the migration...." in prompt


class TestRealtimeInterventor:
    @pytest.mark.asyncio
    async def test_ignores_non_assistant_events(self, oracle, ctx):
        interventor = RealtimeInterventor(oracle)
        result = await interventor.check(SessionEvent(SessionEventType.TOOL_USE, QUESTION), ctx)
        assert not result.intervened
        oracle.judge.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_candidate_skips_oracle(self, oracle, ctx):
        interventor = RealtimeInterventor(oracle)
        result = await interventor.check(
            _assistant("Should I proceed with deleting the temp files?"), ctx
        )
        assert not result.intervened
        assert result.reasoning == "No blocker pattern detected"
        oracle.judge.assert_not_called()

    @pytest.mark.asyncio
    async def test_intervenes(self, oracle, ctx):
        result = await RealtimeInterventor(oracle).check(_assistant(QUESTION), ctx)
        assert result.intervened
        assert result.response == "Yes, proceed"

    @pytest.mark.asyncio
    async def test_can_handle_without_response_defers(self, oracle, ctx):
        oracle.judge.return_value = {"canHandle": True, "response": "", "reasoning": "?"}
        result = await RealtimeInterventor(oracle).check(_assistant(QUESTION), ctx)
        assert not result.intervened

    @pytest.mark.asyncio
    async def test_cannot_handle(self, oracle, ctx):
        oracle.judge.return_value = {"canHandle": False, "reasoning": "needs funds"}
        result = await RealtimeInterventor(oracle).check(_assistant(QUESTION), ctx)
        assert not result.intervened
        assert result.reasoning == "needs funds"

    @pytest.mark.asyncio
    async def test_oracle_failure_escalates(self, oracle, ctx):
        oracle.judge.side_effect = RuntimeError("down")
        result = await RealtimeInterventor(oracle).check(_assistant(QUESTION), ctx)
        assert not result.intervened
        assert "escalating" in result.reasoning

    @pytest.mark.asyncio
    async def test_with_heuristic_oracle(self, ctx):
        interventor = RealtimeInterventor(HeuristicInterventionOracle())
        result = await interventor.check(_assistant(QUESTION), ctx)
        assert result.intervened
        assert result.response == AUTO_APPROVAL

    @pytest.mark.asyncio
    async def test_heuristic_refuses_funding(self, ctx):
        interventor = RealtimeInterventor(HeuristicInterventionOracle())
        result = await interventor.check(
            _assistant("Should I proceed? You need to fund the wallet via the faucet first."), ctx
        )
        assert not result.intervened
