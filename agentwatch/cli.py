"""Click CLI definitions - main entry point."""

from __future__ import annotations

import logging
import sys

import click

from agentwatch.commands.config_cmd import config_group
from agentwatch.commands.detect_cmd import detect_command, parse_hint_command, scan_command
from agentwatch.commands.serve_cmd import serve_command


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, debug: bool) -> None:
    """agentwatch - blocker detection and escalation for coding-agent sessions."""
    level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


cli.add_command(config_group, "config")
cli.add_command(detect_command, "detect")
cli.add_command(scan_command, "scan")
cli.add_command(parse_hint_command, "parse-hint")
cli.add_command(serve_command, "serve")


if __name__ == "__main__":
    cli()
