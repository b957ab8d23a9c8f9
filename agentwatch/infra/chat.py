"""Chat transport protocol."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class ChatTransport(Protocol):
    """Delivers bubble cards and plain replies to a chat.

    Message ids returned by ``send_message`` are what replies quote back,
    so they must be stable for the lifetime of the chat history.
    """

    async def send_message(
        self, chat_id: str, text: str, thread_id: int | None = None
    ) -> str | None:
        """Send text, returning the new message id or None on failure."""
        ...

    async def edit_message(self, chat_id: str, message_id: str, text: str) -> bool:
        """Replace the text of a previously sent message."""
        ...
