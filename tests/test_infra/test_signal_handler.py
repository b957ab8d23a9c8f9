"""Tests for inbound Signal message routing and the Signal service."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from agentwatch.config import SignalConfig
from agentwatch.infra.signal.client import SignalMessage
from agentwatch.infra.signal.handler import SignalMessageHandler
from agentwatch.models.routing import ReplyOutcome
from agentwatch.services.signal_service import SignalService

SENDER = "+15550001"


@pytest.fixture
def router():
    mock = AsyncMock()
    mock.handle_bubble_reply = AsyncMock(return_value=ReplyOutcome.not_session_reply())
    mock.handle_bubble_action = AsyncMock(return_value="Session cancelled")
    return mock


@pytest.fixture
def orchestrator():
    mock = AsyncMock()
    mock.handle_message = AsyncMock(return_value="On it.")
    return mock


@pytest.fixture
def handler(router, orchestrator):
    return SignalMessageHandler(router, orchestrator, allowed_senders=[SENDER])


class TestSignalMessageHandler:
    @pytest.mark.asyncio
    async def test_rejects_unknown_sender(self, handler, orchestrator):
        assert await handler.handle_message(SignalMessage(sender="+19999", text="hi")) is None
        orchestrator.handle_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_open_policy(self, router, orchestrator):
        handler = SignalMessageHandler(router, orchestrator, dm_policy="open")
        assert await handler.handle_message(SignalMessage(sender="+19999", text="hi")) == "On it."

    @pytest.mark.asyncio
    async def test_plain_message_goes_to_orchestrator(self, handler, orchestrator, router):
        result = await handler.handle_message(SignalMessage(sender=SENDER, text="start web"))
        assert result == "On it."
        orchestrator.handle_message.assert_awaited_once_with("start web", chat_id=SENDER)
        router.handle_bubble_reply.assert_not_called()

    @pytest.mark.asyncio
    async def test_action_command(self, handler, router, orchestrator):
        result = await handler.handle_message(
            SignalMessage(sender=SENDER, text="/cancel 123E4567")
        )
        assert result == "Session cancelled"
        router.handle_bubble_action.assert_awaited_once_with(SENDER, "cancel", "123e4567")
        orchestrator.handle_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_reply_handled_directly(self, handler, router, orchestrator):
        router.handle_bubble_reply.return_value = ReplyOutcome.handled_directly()
        message = SignalMessage(
            sender=SENDER, text="use postgres", quote_id=1700000000000, quote_text="card"
        )
        assert await handler.handle_message(message) is None
        kwargs = router.handle_bubble_reply.call_args.kwargs
        assert kwargs["reply_to_message_id"] == "1700000000000"
        assert kwargs["original_message_text"] == "card"
        orchestrator.handle_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_reply_routed_for_orchestration(self, handler, router, orchestrator):
        router.handle_bubble_reply.return_value = ReplyOutcome.route_for_orchestration(
            "[Agent Resume Request]"
        )
        message = SignalMessage(sender=SENDER, text="keep going", quote_id=1)
        await handler.handle_message(message)
        orchestrator.handle_message.assert_awaited_once_with(
            "[Agent Resume Request]", chat_id=SENDER, resume_request=True
        )

    @pytest.mark.asyncio
    async def test_unrelated_reply_uses_own_text(self, handler, orchestrator):
        message = SignalMessage(sender=SENDER, text="thanks", quote_id=1)
        await handler.handle_message(message)
        orchestrator.handle_message.assert_awaited_once_with("thanks", chat_id=SENDER)

    @pytest.mark.asyncio
    async def test_group_chat_id(self, handler, orchestrator):
        await handler.handle_message(SignalMessage(sender=SENDER, text="hi", group_id="abc=="))
        assert orchestrator.handle_message.call_args.kwargs["chat_id"] == "group.abc=="

    @pytest.mark.asyncio
    async def test_error_reply(self, handler, orchestrator):
        orchestrator.handle_message.side_effect = RuntimeError("boom")
        result = await handler.handle_message(SignalMessage(sender=SENDER, text="hi"))
        assert result.startswith("Sorry")


class TestSignalService:
    @pytest.mark.asyncio
    async def test_disabled_does_not_listen(self):
        service = SignalService(SignalConfig(enabled=False), AsyncMock(), AsyncMock())
        await service.start()
        assert not service.is_listening

    @pytest.mark.asyncio
    async def test_dispatch_sends_reply(self):
        client = MagicMock()
        client.send_message_chunked = AsyncMock(return_value=True)
        handler = AsyncMock()
        handler.handle_message = AsyncMock(return_value="On it.")
        service = SignalService(SignalConfig(enabled=True), client, handler)
        message = SignalMessage(sender=SENDER, text="hi", group_id="abc==")
        await service._dispatch(message)
        client.send_message_chunked.assert_awaited_once_with("group.abc==", "On it.")

    @pytest.mark.asyncio
    async def test_dispatch_without_reply(self):
        client = MagicMock()
        client.send_message_chunked = AsyncMock()
        handler = AsyncMock()
        handler.handle_message = AsyncMock(return_value=None)
        service = SignalService(SignalConfig(enabled=True), client, handler)
        await service._dispatch(SignalMessage(sender=SENDER, text="hi"))
        client.send_message_chunked.assert_not_called()
