"""Process-scoped registry of bubbles, forced resume tokens and event logs.

One instance lives for the lifetime of the process (owned by AppContext).
Map writes are guarded by a lock and are last-writer-wins per key.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import datetime, timezone

from agentwatch.models.bubble import Bubble, BubbleStatus
from agentwatch.models.event import SessionEvent

logger = logging.getLogger(__name__)

MAX_EVENTS_PER_SESSION = 500
MAX_COMMANDS_PER_TOKEN = 5


@dataclass(frozen=True)
class CommandRecord:
    """An instruction routed to a session on the user's behalf."""

    prompt: str
    project: str
    short: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def shorten(text: str, limit: int = 50) -> str:
    return text if len(text) <= limit else text[: limit - 3] + "..."


class SessionRegistry:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._bubbles_by_message: dict[tuple[str, str], Bubble] = {}
        self._bubble_keys_by_session: dict[str, set[tuple[str, str]]] = defaultdict(set)
        self._forced_tokens: dict[str, tuple[str, str]] = {}
        self._events: dict[str, deque[SessionEvent]] = {}
        self._commands: dict[str, deque[CommandRecord]] = {}
        self._session_locks: dict[str, asyncio.Lock] = {}

    # --- Bubbles ---

    def register_bubble(self, bubble: Bubble) -> None:
        """Index a bubble by its chat message; requires a message id."""
        if not bubble.message_id:
            raise ValueError("Cannot index a bubble without a message_id")
        key = (str(bubble.chat_id), str(bubble.message_id))
        with self._lock:
            self._bubbles_by_message[key] = bubble
            self._bubble_keys_by_session[bubble.session_id].add(key)

    def find_bubble(self, chat_id: str | int, message_id: str | int) -> Bubble | None:
        with self._lock:
            return self._bubbles_by_message.get((str(chat_id), str(message_id)))

    def bubbles_for_session(self, session_id: str) -> list[Bubble]:
        with self._lock:
            keys = self._bubble_keys_by_session.get(session_id, set())
            return [self._bubbles_by_message[k] for k in keys if k in self._bubbles_by_message]

    def primary_bubble(self, session_id: str) -> Bubble | None:
        """The session's status card (not blocker notices)."""
        for bubble in self.bubbles_for_session(session_id):
            if bubble.status != BubbleStatus.BLOCKED:
                return bubble
        return None

    def bubbles_for_chat(self, chat_id: str | int) -> list[Bubble]:
        """Bubbles posted to a chat, most recent first."""
        with self._lock:
            return [
                bubble
                for (chat, _), bubble in reversed(list(self._bubbles_by_message.items()))
                if chat == str(chat_id)
            ]

    def find_bubble_by_token_prefix(self, prefix: str) -> Bubble | None:
        """Most recently registered bubble whose resume token starts with prefix."""
        if not prefix:
            return None
        with self._lock:
            for bubble in reversed(list(self._bubbles_by_message.values())):
                if bubble.resume_token.startswith(prefix):
                    return bubble
        return None

    # --- Forced resume tokens ---

    def set_forced_resume_token(self, chat_id: str | int, token: str, project: str = "") -> None:
        """Force the next start in this chat to resume ``token``.

        ``project`` is the project the token's session ran in; starts in
        any other project are refused while the token is held.
        """
        with self._lock:
            self._forced_tokens[str(chat_id)] = (token, project)
        logger.info("Forced resume token %s... (%s) for chat %s", token[:8], project, chat_id)

    def peek_forced_resume(self, chat_id: str | int) -> tuple[str, str] | None:
        """Return (token, project) without consuming it."""
        with self._lock:
            return self._forced_tokens.get(str(chat_id))

    def peek_forced_resume_token(self, chat_id: str | int) -> str | None:
        forced = self.peek_forced_resume(chat_id)
        return forced[0] if forced else None

    def take_forced_resume_token(self, chat_id: str | int) -> str | None:
        """Pop the forced token so it overrides exactly one start."""
        with self._lock:
            forced = self._forced_tokens.pop(str(chat_id), None)
        return forced[0] if forced else None

    def clear_forced_resume_token(self, chat_id: str | int, token: str) -> bool:
        """Drop the chat's forced token if it is still ``token``.

        A newer token forced by a later reply is left in place.
        """
        with self._lock:
            forced = self._forced_tokens.get(str(chat_id))
            if forced is None or forced[0] != token:
                return False
            del self._forced_tokens[str(chat_id)]
        logger.info("Dropped unused forced resume token %s... for chat %s", token[:8], chat_id)
        return True

    # --- Event logs ---

    def append_event(self, session_id: str, event: SessionEvent) -> None:
        with self._lock:
            log = self._events.get(session_id)
            if log is None:
                log = self._events[session_id] = deque(maxlen=MAX_EVENTS_PER_SESSION)
            log.append(event)

    def get_events(self, session_id: str) -> list[SessionEvent]:
        with self._lock:
            return list(self._events.get(session_id, ()))

    def forget_session(self, session_id: str) -> None:
        """Drop the event log and lock; bubbles stay for later replies."""
        with self._lock:
            self._events.pop(session_id, None)
            self._session_locks.pop(session_id, None)

    # --- Per-session serialisation ---

    def session_lock(self, session_id: str) -> asyncio.Lock:
        with self._lock:
            lock = self._session_locks.get(session_id)
            if lock is None:
                lock = self._session_locks[session_id] = asyncio.Lock()
            return lock

    # --- Command log ---

    def log_command(self, resume_token: str, prompt: str, project: str) -> CommandRecord:
        record = CommandRecord(prompt=prompt, project=project, short=shorten(prompt))
        with self._lock:
            log = self._commands.get(resume_token)
            if log is None:
                log = self._commands[resume_token] = deque(maxlen=MAX_COMMANDS_PER_TOKEN)
            log.append(record)
        logger.info("Command for %s... (%s): %s", resume_token[:8], project, record.short)
        return record

    def recent_commands(self, resume_token: str) -> list[CommandRecord]:
        with self._lock:
            return list(self._commands.get(resume_token, ()))
