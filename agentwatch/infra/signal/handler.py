"""Inbound message routing: bubble replies, card actions, orchestrator."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from agentwatch.infra.signal.client import SignalMessage
from agentwatch.models.routing import ReplyOutcomeKind

if TYPE_CHECKING:
    from agentwatch.services.bubble_router import BubbleRouter
    from agentwatch.services.orchestrator_service import OrchestratorService

logger = logging.getLogger(__name__)

# Text stand-ins for the continue/cancel buttons on a status card
_ACTION_COMMAND = re.compile(r"^/(continue|cancel)\s+([0-9a-fA-F-]{4,36})\s*$")


class SignalMessageHandler:
    """Routes inbound Signal messages.

    Quote replies are offered to the bubble router first; anything it
    does not claim, and every resume request it builds, goes to the
    orchestrator. Senders are validated against the allowlist.
    """

    def __init__(
        self,
        router: BubbleRouter,
        orchestrator: OrchestratorService,
        allowed_senders: list[str] | None = None,
        dm_policy: str = "allowlist",
    ) -> None:
        self._router = router
        self._orchestrator = orchestrator
        self._allowed_senders = set(allowed_senders or [])
        self._dm_policy = dm_policy

    def is_allowed_sender(self, sender: str) -> bool:
        if self._dm_policy == "open":
            return True
        if self._dm_policy == "allowlist":
            return sender in self._allowed_senders
        return False

    async def handle_message(self, message: SignalMessage) -> str | None:
        """Process an inbound message. Returns reply text, if any."""
        if not self.is_allowed_sender(message.sender):
            logger.warning("Rejected message from unauthorized sender: %s", message.sender)
            return None

        text = message.text.strip()
        if not text:
            return None
        chat_id = message.chat_id

        try:
            action = _ACTION_COMMAND.match(text)
            if action:
                return await self._router.handle_bubble_action(
                    chat_id, action.group(1), action.group(2).lower()
                )

            resume_request = False
            if message.is_reply:
                outcome = await self._router.handle_bubble_reply(
                    chat_id=chat_id,
                    reply_to_message_id=str(message.quote_id),
                    text=text,
                    original_message_text=message.quote_text,
                )
                if outcome.kind == ReplyOutcomeKind.HANDLED_DIRECTLY:
                    return None
                if outcome.kind == ReplyOutcomeKind.ROUTE_FOR_ORCHESTRATION:
                    text = outcome.orchestration_text
                    resume_request = True

            logger.info("Processing Signal message from %s: %s", message.sender, text[:100])
            if resume_request:
                return await self._orchestrator.handle_message(
                    text, chat_id=chat_id, resume_request=True
                )
            return await self._orchestrator.handle_message(text, chat_id=chat_id)
        except Exception:
            logger.exception("Error handling Signal message")
            return "Sorry, an error occurred while processing your message."
