"""Signal service: bridges Signal messaging to the router and orchestrator."""

from __future__ import annotations

import asyncio
import logging

from agentwatch.config import SignalConfig
from agentwatch.infra.signal.client import SignalClient
from agentwatch.infra.signal.daemon import SignalDaemon
from agentwatch.infra.signal.handler import SignalMessageHandler

logger = logging.getLogger(__name__)


class SignalService:
    def __init__(
        self,
        config: SignalConfig,
        client: SignalClient,
        handler: SignalMessageHandler,
        daemon: SignalDaemon | None = None,
    ) -> None:
        self._config = config
        self._client = client
        self._handler = handler
        self._daemon = daemon
        self._listen_task: asyncio.Task | None = None
        self._inflight: set[asyncio.Task] = set()

    @property
    def is_listening(self) -> bool:
        return self._listen_task is not None and not self._listen_task.done()

    async def start(self) -> None:
        """Start the daemon (if managed) and begin listening for messages."""
        if not self._config.enabled:
            logger.info("Signal integration is disabled")
            return
        if self._daemon and self._config.auto_start:
            await self._daemon.start()
        self._listen_task = asyncio.create_task(self._listen_loop())
        logger.info("Signal service started")

    async def stop(self) -> None:
        if self._listen_task:
            self._listen_task.cancel()
            try:
                await self._listen_task
            except asyncio.CancelledError:
                pass
            self._listen_task = None
        if self._daemon:
            await self._daemon.stop()
        await self._client.close()
        logger.info("Signal service stopped")

    async def _listen_loop(self) -> None:
        while True:
            try:
                async for message in self._client.receive_events():
                    # One task per message so a slow orchestrator turn doesn't stall others
                    task = asyncio.create_task(self._dispatch(message))
                    self._inflight.add(task)
                    task.add_done_callback(self._inflight.discard)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Error in Signal listen loop, reconnecting in 5s...")
            await asyncio.sleep(5)

    async def _dispatch(self, message) -> None:
        response = await self._handler.handle_message(message)
        if response:
            await self._client.send_message_chunked(message.chat_id, response)
