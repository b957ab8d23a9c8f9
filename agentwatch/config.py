"""Configuration loading: TOML file + environment variable overlay."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore[no-redef]


DEFAULT_CONFIG_DIR = Path.home() / ".config" / "agentwatch"
DEFAULT_CONFIG_PATH = DEFAULT_CONFIG_DIR / "config.toml"

DEFAULT_CONFIG_TOML = """\
[general]
default_project = ""

[providers.anthropic]
api_key_env = "ANTHROPIC_API_KEY"
default_model = "claude-sonnet-4-20250514"

[providers.openrouter]
api_key_env = "OPENROUTER_API_KEY"
default_model = "anthropic/claude-sonnet-4"
# base_url = "https://openrouter.ai/api/v1"  # any OpenAI-compatible endpoint

[oracle]
# "heuristic" uses the built-in reference judgments, "llm" asks a model
backend = "heuristic"
provider = "anthropic"
model = "claude-sonnet-4-20250514"
timeout = 60
temperature = 0.2

[orchestrator]
provider = "anthropic"
model = "claude-sonnet-4-20250514"
max_tool_rounds = 5

[detection]
end_scan_messages = 2
realtime_enabled = true
notify_min_confidence = 0.5
auto_remediate = true
max_auto_remediations = 2

[agent]
program = "claude"
permission_mode = "bypassPermissions"
model = ""

[signal]
enabled = false
account = ""
http_url = "http://127.0.0.1:8080"
auto_start = true
dm_policy = "allowlist"
allowed_senders = []

# [projects.my-project]
# path = "~/code/my-project"
# worktrees = { main = "~/code/my-project", feature = "~/code/my-project-feature" }
"""


@dataclass
class ProviderConfig:
    api_key_env: str = ""
    api_key: str = ""
    default_model: str = ""
    base_url: str = ""


@dataclass
class OracleConfig:
    backend: str = "heuristic"  # heuristic, llm
    provider: str = "anthropic"
    model: str = "claude-sonnet-4-20250514"
    timeout: float = 60.0
    temperature: float = 0.2


@dataclass
class OrchestratorConfig:
    provider: str = "anthropic"
    model: str = "claude-sonnet-4-20250514"
    max_tool_rounds: int = 5


@dataclass
class DetectionConfig:
    end_scan_messages: int = 2
    realtime_enabled: bool = True
    notify_min_confidence: float = 0.5
    auto_remediate: bool = True
    max_auto_remediations: int = 2


@dataclass
class AgentConfig:
    program: str = "claude"
    permission_mode: str = "bypassPermissions"
    model: str = ""


@dataclass
class ProjectConfig:
    path: str = ""
    worktrees: dict[str, str] = field(default_factory=dict)


@dataclass
class SignalConfig:
    enabled: bool = False
    account: str = ""
    http_url: str = "http://127.0.0.1:8080"
    auto_start: bool = True
    dm_policy: str = "allowlist"
    allowed_senders: list[str] = field(default_factory=list)


@dataclass
class AppConfig:
    default_project: str = ""
    providers: dict[str, ProviderConfig] = field(default_factory=dict)
    oracle: OracleConfig = field(default_factory=OracleConfig)
    orchestrator: OrchestratorConfig = field(default_factory=OrchestratorConfig)
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    agent: AgentConfig = field(default_factory=AgentConfig)
    projects: dict[str, ProjectConfig] = field(default_factory=dict)
    signal: SignalConfig = field(default_factory=SignalConfig)
    config_path: Path = DEFAULT_CONFIG_PATH


def _env_overlay(config: AppConfig) -> None:
    """Override config values with environment variables where applicable."""
    if account := os.environ.get("AGENTWATCH_SIGNAL_ACCOUNT"):
        config.signal.account = account
    if backend := os.environ.get("AGENTWATCH_ORACLE"):
        config.oracle.backend = backend

    # Resolve API keys from env vars
    for prov in config.providers.values():
        if prov.api_key_env:
            prov.api_key = os.environ.get(prov.api_key_env, "")


def _parse_provider(data: dict) -> ProviderConfig:
    return ProviderConfig(
        api_key_env=data.get("api_key_env", ""),
        default_model=data.get("default_model", ""),
        base_url=data.get("base_url", ""),
    )


def _parse_project(data: dict) -> ProjectConfig:
    return ProjectConfig(
        path=data.get("path", ""),
        worktrees=dict(data.get("worktrees", {})),
    )


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load configuration from TOML file with env var overlay."""
    path = config_path or DEFAULT_CONFIG_PATH

    if path.exists():
        with open(path, "rb") as f:
            raw = tomllib.load(f)
    else:
        raw = tomllib.loads(DEFAULT_CONFIG_TOML)

    general = raw.get("general", {})
    providers_raw = raw.get("providers", {})
    oracle_raw = raw.get("oracle", {})
    orchestrator_raw = raw.get("orchestrator", {})
    detection_raw = raw.get("detection", {})
    agent_raw = raw.get("agent", {})
    projects_raw = raw.get("projects", {})
    signal_raw = raw.get("signal", {})

    config = AppConfig(
        default_project=general.get("default_project", ""),
        providers={name: _parse_provider(data) for name, data in providers_raw.items()},
        oracle=OracleConfig(
            backend=oracle_raw.get("backend", "heuristic"),
            provider=oracle_raw.get("provider", "anthropic"),
            model=oracle_raw.get("model", "claude-sonnet-4-20250514"),
            timeout=float(oracle_raw.get("timeout", 60)),
            temperature=float(oracle_raw.get("temperature", 0.2)),
        ),
        orchestrator=OrchestratorConfig(
            provider=orchestrator_raw.get("provider", "anthropic"),
            model=orchestrator_raw.get("model", "claude-sonnet-4-20250514"),
            max_tool_rounds=orchestrator_raw.get("max_tool_rounds", 5),
        ),
        detection=DetectionConfig(
            end_scan_messages=detection_raw.get("end_scan_messages", 2),
            realtime_enabled=detection_raw.get("realtime_enabled", True),
            notify_min_confidence=float(detection_raw.get("notify_min_confidence", 0.5)),
            auto_remediate=detection_raw.get("auto_remediate", True),
            max_auto_remediations=detection_raw.get("max_auto_remediations", 2),
        ),
        agent=AgentConfig(
            program=agent_raw.get("program", "claude"),
            permission_mode=agent_raw.get("permission_mode", "bypassPermissions"),
            model=agent_raw.get("model", ""),
        ),
        projects={name: _parse_project(data) for name, data in projects_raw.items()},
        signal=SignalConfig(
            enabled=signal_raw.get("enabled", False),
            account=signal_raw.get("account", ""),
            http_url=signal_raw.get("http_url", "http://127.0.0.1:8080"),
            auto_start=signal_raw.get("auto_start", True),
            dm_policy=signal_raw.get("dm_policy", "allowlist"),
            allowed_senders=signal_raw.get("allowed_senders", []),
        ),
        config_path=path,
    )

    _env_overlay(config)
    return config


def init_config(config_path: Path | None = None) -> Path:
    """Create default config file."""
    path = config_path or DEFAULT_CONFIG_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(DEFAULT_CONFIG_TOML)
    return path
