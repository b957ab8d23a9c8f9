"""CLI handlers for offline detection commands."""

from __future__ import annotations

import asyncio
import json

import click

from agentwatch.config import load_config
from agentwatch.models.event import SessionEvent
from agentwatch.services.blocker_detector import (
    DEFAULT_END_SCAN_MESSAGES,
    check_events_for_blocker,
    detect_blocker,
)


def _echo_json(data) -> None:
    click.echo(json.dumps(data, indent=2))


def load_events(path: str) -> list[SessionEvent]:
    """Read a JSONL file of events ({"type": ..., "text": ...} per line)."""
    events = []
    with open(path, encoding="utf-8") as f:
        for lineno, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                events.append(SessionEvent.from_doc(json.loads(line)))
            except (json.JSONDecodeError, KeyError, ValueError) as e:
                raise click.ClickException(f"{path}:{lineno}: invalid event ({e})") from e
    return events


@click.command("detect")
@click.argument("text")
@click.option("--session-ended", is_flag=True, help="Apply end-of-session leniency")
def detect_command(text: str, session_ended: bool):
    """Run Level 1 detection on TEXT ('-' reads stdin)."""
    if text == "-":
        text = click.get_text_stream("stdin").read()
    blocker = detect_blocker(text, session_ended=session_ended)
    if blocker is None:
        click.echo("No blocker detected")
        return
    _echo_json(blocker.to_doc())


@click.command("scan")
@click.argument("events_jsonl", type=click.Path(exists=True, dir_okay=False))
@click.option("--last-n", default=DEFAULT_END_SCAN_MESSAGES, show_default=True,
              help="Assistant messages to scan")
@click.option("--assess", is_flag=True, help="Confirm with the configured oracle (Level 2)")
def scan_command(events_jsonl: str, last_n: int, assess: bool):
    """Run the end-of-session scan over a recorded event log."""
    events = load_events(events_jsonl)
    blocker = check_events_for_blocker(events, last_n=last_n)
    if blocker is None:
        click.echo("No blocker detected")
        return

    result = {"blocker": blocker.to_doc()}
    if assess:
        from agentwatch.infra.oracle.registry import get_oracles
        from agentwatch.services.blocker_assessor import BlockerAssessor

        config = load_config()
        assessor = BlockerAssessor(get_oracles(config).assessment, timeout=config.oracle.timeout)
        assessment = asyncio.run(assessor.assess(blocker, events, "done"))
        result["assessment"] = assessment.to_doc()
    _echo_json(result)


@click.command("parse-hint")
@click.argument("file", type=click.File("r"))
def parse_hint_command(file):
    """Recover the resume token and project from bubble text in FILE."""
    from agentwatch.services.bubble_router import parse_resume_hint

    hint = parse_resume_hint(file.read())
    if hint is None:
        raise click.ClickException("No resume token found")
    _echo_json({"resume_token": hint.resume_token, "project_name": hint.project_name})
