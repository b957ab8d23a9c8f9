"""Bubble (chat status card) domain model."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum


class BubbleStatus(str, Enum):
    WORKING = "working"
    WAITING = "waiting"
    BLOCKED = "blocked"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (
            BubbleStatus.DONE,
            BubbleStatus.FAILED,
            BubbleStatus.CANCELLED,
        )


@dataclass(frozen=True)
class Bubble:
    """A chat-visible status card bound to one agent session.

    The resume token is the only handle that survives process exit.
    """

    session_id: str
    resume_token: str
    project_name: str
    working_dir: str
    chat_id: str
    thread_id: int | None = None
    status: BubbleStatus = BubbleStatus.WORKING
    message_id: str = ""

    def __post_init__(self) -> None:
        if not self.resume_token:
            raise ValueError("Bubble must have a resume_token")

    def with_status(self, status: BubbleStatus) -> Bubble:
        return replace(self, status=status)

    def with_message_id(self, message_id: str) -> Bubble:
        return replace(self, message_id=message_id)


@dataclass(frozen=True)
class ResumeHint:
    """Session identity recovered from a rendered bubble's text."""

    resume_token: str
    project_name: str = "unknown"
