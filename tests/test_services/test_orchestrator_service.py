"""Tests for OrchestratorService and its tool handlers."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from agentwatch.config import AppConfig, OrchestratorConfig, ProjectConfig
from agentwatch.infra.projects import ProjectResolver
from agentwatch.models.agent import StartResult
from agentwatch.models.bubble import Bubble
from agentwatch.models.provider import LLMMessage, LLMResponse, ToolCall
from agentwatch.models.routing import ReplyOutcomeKind
from agentwatch.services.bubble_router import BubbleRouter
from agentwatch.services.orchestrator_service import OrchestratorService
from agentwatch.services.session_registry import SessionRegistry

TOKEN = "123e4567-e89b-12d3-a456-426614174000"
OTHER_TOKEN = "99999999-e89b-12d3-a456-426614174000"
CHAT = "+15550001"


@pytest.fixture
def registry():
    return SessionRegistry()


@pytest.fixture
def provider():
    mock = AsyncMock()
    mock.complete = AsyncMock(return_value=LLMResponse(content="Hello!"))
    return mock


@pytest.fixture
def monitor():
    mock = AsyncMock()
    mock.launch = AsyncMock(
        return_value=StartResult(success=True, session_id="s1", resume_token=TOKEN)
    )
    return mock


@pytest.fixture
def agents():
    mock = MagicMock()
    mock.is_live = MagicMock(return_value=True)
    mock.send_input = AsyncMock(return_value=True)
    return mock


@pytest.fixture
def projects():
    return ProjectResolver({
        "web": ProjectConfig(path="/src/web", worktrees={"main": "/src/web-main"}),
        "api": ProjectConfig(path="/src/api"),
    })


@pytest.fixture
def service(registry, provider, monitor, agents, projects):
    config = AppConfig(orchestrator=OrchestratorConfig(max_tool_rounds=3))
    return OrchestratorService(config, registry, projects, monitor, agents, provider=provider)


def _start_call(**arguments) -> LLMResponse:
    return LLMResponse(
        content="",
        tool_calls=[ToolCall(id="tc_1", name="agent_session_start", arguments=arguments)],
    )


def _tool_results(provider) -> list[dict]:
    messages = provider.complete.call_args.args[0]
    return [json.loads(m.content) for m in messages if m.role == "tool"]


class TestHandleMessage:
    @pytest.mark.asyncio
    async def test_plain_reply(self, service, provider):
        assert await service.handle_message("hi", chat_id=CHAT) == "Hello!"
        messages = provider.complete.call_args.args[0]
        assert messages[0].role == "system"
        assert messages[-1].content == "hi"

    @pytest.mark.asyncio
    async def test_starts_session(self, service, provider, monitor):
        provider.complete.side_effect = [
            _start_call(project="web @main", prompt="Fix the flaky test", original_task="fix tests"),
            LLMResponse(content="Started a session."),
        ]
        assert await service.handle_message("fix tests in web", chat_id=CHAT) == "Started a session."
        kwargs = monitor.launch.call_args.kwargs
        assert kwargs["working_dir"] == "/src/web-main"
        assert kwargs["project_name"] == "web @main"
        assert kwargs["prompt"] == "Fix the flaky test"
        assert kwargs["chat_id"] == CHAT
        assert kwargs["resume_token"] == ""
        assert kwargs["command"] == "fix tests"
        result = _tool_results(provider)[0]
        assert result["resume_token"] == TOKEN
        assert result["resumed"] is False

    @pytest.mark.asyncio
    async def test_forced_token_overrides_model(self, service, provider, monitor, registry):
        registry.set_forced_resume_token(CHAT, TOKEN)
        provider.complete.side_effect = [
            _start_call(project="web", prompt="continue", resume_token=OTHER_TOKEN),
            LLMResponse(content="Resumed."),
        ]
        await service.handle_message("[Agent Resume Request]", chat_id=CHAT)
        assert monitor.launch.call_args.kwargs["resume_token"] == TOKEN
        assert registry.peek_forced_resume_token(CHAT) is None

    @pytest.mark.asyncio
    async def test_forced_token_applies_when_model_omits_it(
        self, service, provider, monitor, registry
    ):
        registry.set_forced_resume_token(CHAT, TOKEN)
        provider.complete.side_effect = [
            _start_call(project="web", prompt="continue"),
            LLMResponse(content="Resumed."),
        ]
        await service.handle_message("resume please", chat_id=CHAT)
        assert monitor.launch.call_args.kwargs["resume_token"] == TOKEN

    @pytest.mark.asyncio
    async def test_forced_token_scoped_to_chat(self, service, provider, monitor, registry):
        registry.set_forced_resume_token("+19999", TOKEN)
        provider.complete.side_effect = [
            _start_call(project="web", prompt="new work"),
            LLMResponse(content="Started."),
        ]
        await service.handle_message("start web", chat_id=CHAT)
        assert monitor.launch.call_args.kwargs["resume_token"] == ""
        assert registry.peek_forced_resume_token("+19999") == TOKEN

    @pytest.mark.asyncio
    async def test_unknown_project_keeps_token_for_retry_in_same_turn(
        self, service, provider, monitor, registry
    ):
        registry.set_forced_resume_token(CHAT, TOKEN, "web")
        provider.complete.side_effect = [
            _start_call(project="ghost", prompt="continue"),
            _start_call(project="web", prompt="continue"),
            LLMResponse(content="Resumed."),
        ]
        await service.handle_message("[Agent Resume Request]", chat_id=CHAT, resume_request=True)
        assert _tool_results(provider)[0] == {"error": "Unknown project: ghost"}
        monitor.launch.assert_awaited_once()
        assert monitor.launch.call_args.kwargs["resume_token"] == TOKEN

    @pytest.mark.asyncio
    async def test_launch_failure_reported(self, service, provider, monitor):
        monitor.launch.return_value = StartResult(success=False, error="spawn failed")
        provider.complete.side_effect = [
            _start_call(project="api", prompt="go"),
            LLMResponse(content="Failed."),
        ]
        await service.handle_message("start api", chat_id=CHAT)
        assert _tool_results(provider)[0] == {"error": "Failed to start session: spawn failed"}

    @pytest.mark.asyncio
    async def test_list_projects_and_unknown_tool(self, service, provider):
        provider.complete.side_effect = [
            LLMResponse(content="", tool_calls=[
                ToolCall(id="tc_1", name="list_projects", arguments={}),
                ToolCall(id="tc_2", name="nope", arguments={}),
            ]),
            LLMResponse(content="Here you go."),
        ]
        await service.handle_message("what projects?", chat_id=CHAT)
        projects, unknown = _tool_results(provider)
        assert [p["name"] for p in projects] == ["api", "web"]
        assert unknown == {"error": "Unknown tool: nope"}

    @pytest.mark.asyncio
    async def test_missing_argument(self, service, provider):
        provider.complete.side_effect = [
            _start_call(prompt="no project"),
            LLMResponse(content="Which project?"),
        ]
        await service.handle_message("start something", chat_id=CHAT)
        assert _tool_results(provider)[0]["error"].startswith("Missing required argument")

    @pytest.mark.asyncio
    async def test_tool_round_limit(self, service, provider, monitor):
        provider.complete.return_value = _start_call(project="web", prompt="loop")
        result = await service.handle_message("loop forever", chat_id=CHAT)
        assert result == "I couldn't complete the request."
        assert provider.complete.await_count == 3

    @pytest.mark.asyncio
    async def test_conversation_kept_per_chat(self, service, provider):
        await service.handle_message("first", chat_id=CHAT)
        await service.handle_message("second", chat_id=CHAT)
        contents = [m.content for m in provider.complete.call_args.args[0]]
        assert "first" in contents and "Hello!" in contents

        await service.handle_message("other", chat_id="+19999")
        contents = [m.content for m in provider.complete.call_args.args[0]]
        assert "first" not in contents

        service.clear_conversation(CHAT)
        await service.handle_message("fresh", chat_id=CHAT)
        contents = [m.content for m in provider.complete.call_args.args[0]]
        assert "first" not in contents


class TestForcedResumeScope:
    @pytest.mark.asyncio
    async def test_token_dropped_when_turn_ends_without_start(
        self, service, provider, monitor, registry
    ):
        registry.set_forced_resume_token(CHAT, TOKEN, "web @main")
        provider.complete.side_effect = [
            LLMResponse(content="Which branch?"),
            _start_call(project="api", prompt="new work"),
            LLMResponse(content="Started."),
        ]
        await service.handle_message("[Agent Resume Request]", chat_id=CHAT, resume_request=True)
        assert registry.peek_forced_resume_token(CHAT) is None

        await service.handle_message("start a new session in api", chat_id=CHAT)
        kwargs = monitor.launch.call_args.kwargs
        assert kwargs["resume_token"] == ""
        assert kwargs["working_dir"] == "/src/api"

    @pytest.mark.asyncio
    async def test_token_dropped_after_tool_round_limit(self, service, provider, registry):
        registry.set_forced_resume_token(CHAT, TOKEN, "web")
        provider.complete.return_value = _start_call(project="ghost", prompt="loop")
        await service.handle_message("[Agent Resume Request]", chat_id=CHAT, resume_request=True)
        assert registry.peek_forced_resume_token(CHAT) is None

    @pytest.mark.asyncio
    async def test_newer_token_survives_end_of_turn(self, service, provider, registry):
        registry.set_forced_resume_token(CHAT, TOKEN, "web")

        async def reply_while_turn_runs(messages, config):
            registry.set_forced_resume_token(CHAT, OTHER_TOKEN, "api")
            return LLMResponse(content="Which branch?")

        provider.complete.side_effect = reply_while_turn_runs
        await service.handle_message("[Agent Resume Request]", chat_id=CHAT, resume_request=True)
        assert registry.peek_forced_resume_token(CHAT) == OTHER_TOKEN

    @pytest.mark.asyncio
    async def test_start_in_other_project_refused(self, service, provider, monitor, registry):
        registry.set_forced_resume_token(CHAT, TOKEN, "web @main")
        provider.complete.side_effect = [
            _start_call(project="api", prompt="continue"),
            LLMResponse(content="That token is for web."),
        ]
        await service.handle_message("[Agent Resume Request]", chat_id=CHAT, resume_request=True)
        monitor.launch.assert_not_called()
        error = _tool_results(provider)[0]["error"]
        assert TOKEN in error and "web @main" in error

    @pytest.mark.asyncio
    async def test_resume_uses_the_sessions_worktree(self, service, provider, monitor, registry):
        registry.set_forced_resume_token(CHAT, TOKEN, "web @main")
        provider.complete.side_effect = [
            _start_call(project="Web", prompt="continue"),
            LLMResponse(content="Resumed."),
        ]
        await service.handle_message("[Agent Resume Request]", chat_id=CHAT, resume_request=True)
        kwargs = monitor.launch.call_args.kwargs
        assert kwargs["resume_token"] == TOKEN
        assert kwargs["working_dir"] == "/src/web-main"
        assert kwargs["project_name"] == "web @main"

    @pytest.mark.asyncio
    async def test_directive_words_in_reply_still_resume_dormant_session(
        self, service, provider, monitor, agents, registry, projects
    ):
        registry.register_bubble(Bubble(
            session_id="old", resume_token=TOKEN, project_name="web @main",
            working_dir="/src/web-main", chat_id=CHAT, message_id="1",
        ))
        registry.register_bubble(Bubble(
            session_id="live", resume_token=OTHER_TOKEN, project_name="api",
            working_dir="/src/api", chat_id=CHAT, message_id="2",
        ))
        agents.is_live.side_effect = lambda session_id: session_id == "live"
        router = BubbleRouter(registry, agents, projects, AsyncMock(), monitor)
        provider.complete.side_effect = [
            _start_call(project="web", prompt="use postgres", resume_token=TOKEN),
            LLMResponse(content="Resumed."),
        ]

        outcome = await router.handle_bubble_reply(CHAT, "1", "tell agent to use postgres")
        assert outcome.kind == ReplyOutcomeKind.ROUTE_FOR_ORCHESTRATION
        await service.handle_message(
            outcome.orchestration_text, chat_id=CHAT, resume_request=True
        )

        agents.send_input.assert_not_called()
        provider.complete.assert_awaited()
        assert monitor.launch.call_args.kwargs["resume_token"] == TOKEN
        assert registry.peek_forced_resume_token(CHAT) is None


class TestAgentDirectives:
    @pytest.mark.asyncio
    async def test_forwarded_to_live_session(self, service, provider, agents, registry):
        registry.register_bubble(Bubble(
            session_id="s1", resume_token=TOKEN, project_name="web",
            working_dir="/src/web", chat_id=CHAT, message_id="1",
        ))
        result = await service.handle_message("[to agent] use pytest", chat_id=CHAT)
        assert result == 'Sent to agent: "use pytest"'
        agents.send_input.assert_awaited_once_with("s1", "use pytest")
        provider.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_falls_through_without_live_session(self, service, provider, agents):
        agents.is_live.return_value = False
        result = await service.handle_message("tell agent: use pytest", chat_id=CHAT)
        assert result == "Hello!"
        provider.complete.assert_awaited_once()


class TestStartAgentSession:
    @pytest.mark.asyncio
    async def test_direct_start(self, service, monitor):
        result = await service.start_agent_session(CHAT, "api", "write docs")
        assert result["project"] == "api"
        assert monitor.launch.call_args.kwargs["working_dir"] == "/src/api"


class TestTruncateConversation:
    def test_short_history_unchanged(self):
        messages = [LLMMessage(role="user", content="a")]
        assert OrchestratorService._truncate_conversation(messages) == messages

    def test_cuts_before_user_message(self):
        messages = []
        for i in range(10):
            messages.append(LLMMessage(role="user", content=f"u{i}"))
            messages.append(LLMMessage(role="assistant", content=f"a{i}"))
        truncated = OrchestratorService._truncate_conversation(messages, max_messages=5)
        assert truncated[0].role == "user"
        assert len(truncated) <= 5
        assert truncated[-1].content == "a9"
