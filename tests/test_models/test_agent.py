"""Tests for agent process models."""

import pytest

from agentwatch.models.agent import (
    AgentSessionState,
    AgentSessionStatus,
    CommandSpec,
    ProjectDetails,
    StartParams,
)


class TestCommandSpec:
    def test_full_command(self):
        spec = CommandSpec(program="claude", args=("--model", "sonnet", "do stuff"))
        assert spec.full_command == "claude --model sonnet 'do stuff'"

    def test_full_command_no_args(self):
        assert CommandSpec(program="claude").full_command == "claude"


class TestStartParams:
    def test_defaults(self):
        params = StartParams(working_dir="/tmp/x")
        assert params.prompt == ""
        assert params.resume_token == ""
        assert params.permission_mode == "bypassPermissions"


class TestAgentSessionStatus:
    @pytest.mark.parametrize("status", ["done", "failed", "cancelled"])
    def test_terminal(self, status):
        assert AgentSessionStatus(status).is_terminal

    @pytest.mark.parametrize("status", ["starting", "running"])
    def test_not_terminal(self, status):
        assert not AgentSessionStatus(status).is_terminal


class TestAgentSessionState:
    @pytest.mark.parametrize(
        "seconds,expected",
        [(0, "0s"), (45, "45s"), (60, "1m"), (125, "2m"), (3600, "1h00m"), (3900, "1h05m")],
    )
    def test_runtime_str(self, seconds, expected):
        state = AgentSessionState(session_id="s", project_name="p", runtime_seconds=seconds)
        assert state.runtime_str == expected

    def test_with_action_keeps_last_three(self):
        state = AgentSessionState(session_id="s", project_name="p")
        for action in ("a", "b", "c", "d"):
            state = state.with_action(action)
        assert state.recent_actions == ("b", "c", "d")
        assert state.total_events == 4

    def test_with_status_keeps_existing_error(self):
        state = AgentSessionState(session_id="s", project_name="p", error="boom")
        updated = state.with_status(AgentSessionStatus.FAILED)
        assert updated.status == AgentSessionStatus.FAILED
        assert updated.error == "boom"


class TestProjectDetails:
    def test_display_name_with_branch(self):
        assert ProjectDetails("web", "/src/web", "main").display_name == "web @main"

    def test_display_name_without_branch(self):
        assert ProjectDetails("web", "/src/web").display_name == "web"
