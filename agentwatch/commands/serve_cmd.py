"""CLI handler for running the chat bridge."""

from __future__ import annotations

import asyncio
import signal

import click


async def _serve() -> None:
    from agentwatch.context import AppContext

    ctx = AppContext()
    if not ctx.config.signal.enabled:
        raise click.ClickException(
            "Signal is disabled. Run 'agentwatch config set signal.enabled true' first."
        )

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    try:
        await ctx.signal_service.start()
        click.echo(f"agentwatch listening on Signal as {ctx.config.signal.account}")
        await stop.wait()
    finally:
        await ctx.close()
        click.echo("agentwatch stopped")


@click.command("serve")
def serve_command():
    """Run the Signal bridge, orchestrator and session monitor."""
    asyncio.run(_serve())
