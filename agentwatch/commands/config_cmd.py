"""CLI handlers for config commands."""

from __future__ import annotations

import json

import click

from agentwatch.config import DEFAULT_CONFIG_PATH, init_config, load_config

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore[no-redef]


def coerce_value(value: str):
    """Best-effort typing for values given on the command line."""
    if value.lower() in ("true", "false"):
        return value.lower() == "true"
    if value.isdigit():
        return int(value)
    try:
        return float(value)
    except ValueError:
        pass
    if value.startswith("[") or value.startswith("{"):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value
    return value


@click.group("config")
def config_group():
    """Manage configuration."""
    pass


@config_group.command("init")
@click.option("--force", is_flag=True, help="Overwrite an existing config file")
def config_init(force: bool):
    """Create default configuration file."""
    if DEFAULT_CONFIG_PATH.exists() and not force:
        click.echo(f"Config already exists at {DEFAULT_CONFIG_PATH} (use --force)", err=True)
        return
    path = init_config()
    click.echo(f"Configuration created at: {path}")


@config_group.command("show")
def config_show():
    """Show current configuration."""
    config = load_config()
    click.echo(f"Config file: {config.config_path}")
    click.echo(f"  Oracle: {config.oracle.backend} ({config.oracle.provider}/{config.oracle.model})")
    click.echo(f"  Orchestrator: {config.orchestrator.provider}/{config.orchestrator.model}")
    detection = config.detection
    click.echo(
        f"  Detection: last {detection.end_scan_messages} messages, "
        f"realtime={'on' if detection.realtime_enabled else 'off'}, "
        f"notify>={detection.notify_min_confidence}, "
        f"auto_remediate={'on' if detection.auto_remediate else 'off'}"
    )
    click.echo(f"  Agent: {config.agent.program} ({config.agent.permission_mode})")
    click.echo(f"  Signal: {'enabled' if config.signal.enabled else 'disabled'}")

    click.echo("\n  Providers:")
    for name, prov in config.providers.items():
        has_key = "configured" if prov.api_key else "not set"
        click.echo(f"    {name}: model={prov.default_model}, key={has_key}")

    click.echo("\n  Projects:")
    for name, project in config.projects.items():
        worktrees = ", ".join(sorted(project.worktrees)) or "-"
        click.echo(f"    {name}: {project.path} (worktrees: {worktrees})")


@config_group.command("set")
@click.argument("key")
@click.argument("value")
def config_set(key: str, value: str):
    """Set a configuration value.

    Key uses dot notation, e.g.: oracle.backend, detection.realtime_enabled
    """
    import tomli_w

    path = DEFAULT_CONFIG_PATH
    if not path.exists():
        click.echo("No config file found. Run 'agentwatch config init' first.", err=True)
        return

    with open(path, "rb") as f:
        data = tomllib.load(f)

    parts = key.split(".")
    target = data
    for part in parts[:-1]:
        target = target.setdefault(part, {})
    target[parts[-1]] = coerce_value(value)

    with open(path, "wb") as f:
        tomli_w.dump(data, f)

    click.echo(f"Set {key} = {value}")
