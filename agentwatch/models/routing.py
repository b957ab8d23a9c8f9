"""Chat reply routing outcomes."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ReplyOutcomeKind(str, Enum):
    NOT_SESSION_REPLY = "not_session_reply"
    HANDLED_DIRECTLY = "handled_directly"
    ROUTE_FOR_ORCHESTRATION = "route_for_orchestration"


@dataclass(frozen=True)
class ReplyOutcome:
    """Tagged result of handling a chat reply."""

    kind: ReplyOutcomeKind
    orchestration_text: str = ""

    def __post_init__(self) -> None:
        if self.kind == ReplyOutcomeKind.ROUTE_FOR_ORCHESTRATION and not self.orchestration_text:
            raise ValueError("route_for_orchestration requires orchestration_text")

    @classmethod
    def not_session_reply(cls) -> ReplyOutcome:
        return cls(ReplyOutcomeKind.NOT_SESSION_REPLY)

    @classmethod
    def handled_directly(cls) -> ReplyOutcome:
        return cls(ReplyOutcomeKind.HANDLED_DIRECTLY)

    @classmethod
    def route_for_orchestration(cls, text: str) -> ReplyOutcome:
        return cls(ReplyOutcomeKind.ROUTE_FOR_ORCHESTRATION, orchestration_text=text)
