"""Agent process domain models."""

from __future__ import annotations

import shlex
from dataclasses import dataclass, replace
from enum import Enum


class AgentSessionStatus(str, Enum):
    STARTING = "starting"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (
            AgentSessionStatus.DONE,
            AgentSessionStatus.FAILED,
            AgentSessionStatus.CANCELLED,
        )


@dataclass(frozen=True)
class CommandSpec:
    """Specification for launching an agent subprocess."""

    program: str
    args: tuple[str, ...] = ()
    env: dict[str, str] | None = None
    cwd: str | None = None

    @property
    def full_command(self) -> str:
        """Return the full command string for shell execution."""
        parts = [self.program, *self.args]
        return " ".join(shlex.quote(p) for p in parts)


@dataclass(frozen=True)
class StartParams:
    """Parameters for starting or resuming an agent session."""

    working_dir: str
    prompt: str = ""
    project_name: str = ""
    resume_token: str = ""
    model: str = ""
    permission_mode: str = "bypassPermissions"
    env_vars: dict[str, str] | None = None


@dataclass(frozen=True)
class StartResult:
    """Result of starting an agent session."""

    success: bool
    session_id: str = ""
    resume_token: str = ""
    error: str = ""


@dataclass(frozen=True)
class AgentSessionState:
    """Snapshot of a session pushed to state-change listeners."""

    session_id: str
    project_name: str
    resume_token: str = ""
    status: AgentSessionStatus = AgentSessionStatus.STARTING
    runtime_seconds: int = 0
    recent_actions: tuple[str, ...] = ()
    question_text: str = ""
    total_events: int = 0
    error: str = ""

    @property
    def runtime_str(self) -> str:
        minutes, seconds = divmod(self.runtime_seconds, 60)
        if minutes >= 60:
            hours, minutes = divmod(minutes, 60)
            return f"{hours}h{minutes:02d}m"
        if minutes:
            return f"{minutes}m"
        return f"{seconds}s"

    def with_status(self, status: AgentSessionStatus, error: str = "") -> AgentSessionState:
        return replace(self, status=status, error=error or self.error)

    def with_action(self, action: str, keep: int = 3) -> AgentSessionState:
        actions = (*self.recent_actions, action)[-keep:]
        return replace(self, recent_actions=actions, total_events=self.total_events + 1)


@dataclass(frozen=True)
class ProjectDetails:
    """A resolved project: where an agent session should run."""

    name: str
    working_dir: str
    branch: str = ""

    @property
    def display_name(self) -> str:
        return f"{self.name} @{self.branch}" if self.branch else self.name
