"""Session event domain model."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class SessionEventType(str, Enum):
    ASSISTANT_MESSAGE = "assistant_message"
    TOOL_USE = "tool_use"
    USER_INPUT = "user_input"
    ORCHESTRATOR_COMMAND = "orchestrator_command"
    RESULT = "result"
    ERROR = "error"


@dataclass(frozen=True)
class SessionEvent:
    """One entry in a session's append-only event stream."""

    type: SessionEventType
    text: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_assistant_text(self) -> bool:
        return self.type == SessionEventType.ASSISTANT_MESSAGE and bool(self.text)

    def to_doc(self) -> dict:
        return {
            "type": self.type.value,
            "text": self.text,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_doc(cls, doc: dict) -> SessionEvent:
        raw_ts = doc.get("timestamp")
        if isinstance(raw_ts, datetime):
            timestamp = raw_ts
        elif raw_ts:
            timestamp = datetime.fromisoformat(raw_ts)
        else:
            timestamp = datetime.now(timezone.utc)
        return cls(
            type=SessionEventType(doc["type"]),
            text=doc.get("text") or "",
            timestamp=timestamp,
        )


def assistant_texts(events: list[SessionEvent]) -> list[str]:
    """Return the text of assistant messages, oldest first."""
    return [e.text for e in events if e.is_assistant_text]
