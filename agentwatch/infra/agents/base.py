"""Agent process protocol definition."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Protocol, runtime_checkable

from agentwatch.models.agent import AgentSessionState, StartParams, StartResult
from agentwatch.models.event import SessionEvent

StateChangeCallback = Callable[[AgentSessionState], Awaitable[None]]
EventCallback = Callable[[str, SessionEvent], Awaitable[None]]


@runtime_checkable
class AgentProcess(Protocol):
    """Protocol for running coding-agent sessions.

    Implementations push state snapshots and per-session events, in
    arrival order, to the callbacks given at start time.
    """

    async def start(
        self,
        params: StartParams,
        on_state_change: StateChangeCallback | None = None,
        on_event: EventCallback | None = None,
    ) -> StartResult:
        """Start a new session, or resume one when params.resume_token is set."""
        ...

    async def send_input(self, session_id: str, text: str) -> bool:
        """Write a user turn to a live session. False if the channel is gone."""
        ...

    async def cancel(self, session_id: str) -> bool:
        """Terminate a live session."""
        ...

    def get_state(self, session_id: str) -> AgentSessionState | None:
        ...

    def is_live(self, session_id: str) -> bool:
        ...

    def find_live_by_token_prefix(self, prefix: str) -> str | None:
        """Session id of a live session whose resume token starts with prefix."""
        ...
