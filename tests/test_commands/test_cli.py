"""Tests for the offline CLI commands."""

import json

import pytest
from click.testing import CliRunner

from agentwatch.cli import cli
from agentwatch.commands.config_cmd import coerce_value

TOKEN = "123e4567-e89b-12d3-a456-426614174000"


@pytest.fixture
def runner():
    return CliRunner()


class TestDetect:
    def test_blocker(self, runner):
        result = runner.invoke(cli, ["detect", "Need 2 SOL to proceed, current balance 0.1 SOL"])
        assert result.exit_code == 0
        doc = json.loads(result.output)
        assert doc["category"] == "funding_needed"
        assert doc["extracted_context"] == {"needed": "2", "current": "0.1"}

    def test_no_blocker(self, runner):
        result = runner.invoke(cli, ["detect", "Please let me know if the output looks right."])
        assert result.output.strip() == "No blocker detected"

    def test_session_ended_from_stdin(self, runner):
        result = runner.invoke(
            cli,
            ["detect", "--session-ended", "-"],
            input="Please let me know if the output looks right.",
        )
        assert json.loads(result.output)["category"] == "waiting_for_user"


class TestScan:
    def test_scan(self, runner, tmp_path):
        path = tmp_path / "events.jsonl"
        path.write_text(
            json.dumps({"type": "tool_use", "text": "Bash: solana balance"}) + "\n"
            + json.dumps({"type": "assistant_message", "text": "Need 2 SOL to proceed, current balance 0.1 SOL"})
            + "\n"
        )
        result = runner.invoke(cli, ["scan", str(path)])
        assert result.exit_code == 0
        assert json.loads(result.output)["blocker"]["category"] == "funding_needed"

    def test_invalid_line(self, runner, tmp_path):
        path = tmp_path / "events.jsonl"
        path.write_text('{"type": "bogus"}\n')
        result = runner.invoke(cli, ["scan", str(path)])
        assert result.exit_code != 0
        assert ":1: invalid event" in result.output


class TestParseHint:
    def test_parse(self, runner, tmp_path):
        path = tmp_path / "bubble.txt"
        path.write_text(f"**done** · my-project @main · 5m\n\nctx: my-project @main\n`claude --resume {TOKEN}`\n")
        result = runner.invoke(cli, ["parse-hint", str(path)])
        assert json.loads(result.output) == {"resume_token": TOKEN, "project_name": "my-project @main"}

    def test_missing_token(self, runner, tmp_path):
        path = tmp_path / "bubble.txt"
        path.write_text("nothing here")
        result = runner.invoke(cli, ["parse-hint", str(path)])
        assert result.exit_code != 0


class TestCoerceValue:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("true", True),
            ("False", False),
            ("3", 3),
            ("0.75", 0.75),
            ('["+15550001"]', ["+15550001"]),
            ("llm", "llm"),
        ],
    )
    def test_coerce(self, raw, expected):
        assert coerce_value(raw) == expected
