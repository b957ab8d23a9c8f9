"""JSON-RPC client for signal-cli.

Implements the chat transport: a Signal message is identified by its
send timestamp, which is also what a quoting reply carries, so bubble
message ids are timestamps rendered as strings.
"""

from __future__ import annotations

import itertools
import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

import httpx

if TYPE_CHECKING:
    from agentwatch.infra.signal.daemon import SignalDaemon

logger = logging.getLogger(__name__)

GROUP_PREFIX = "group."


@dataclass
class SignalMessage:
    """An inbound Signal message."""

    sender: str
    text: str
    timestamp: int = 0
    group_id: str = ""
    quote_id: int = 0
    quote_text: str = ""

    @property
    def chat_id(self) -> str:
        """Where replies go: the group, or the sender for direct messages."""
        return f"{GROUP_PREFIX}{self.group_id}" if self.group_id else self.sender

    @property
    def is_reply(self) -> bool:
        return bool(self.quote_id)


def parse_envelope(data: dict) -> SignalMessage | None:
    """Build a SignalMessage from a daemon stdout JSON object."""
    envelope = data.get("envelope") or {}
    data_msg = envelope.get("dataMessage")
    if not data_msg:
        return None
    text = data_msg.get("message") or ""
    if not text:
        return None

    quote = data_msg.get("quote") or {}
    return SignalMessage(
        sender=envelope.get("sourceNumber") or envelope.get("source", ""),
        text=text,
        timestamp=data_msg.get("timestamp", 0),
        group_id=(data_msg.get("groupInfo") or {}).get("groupId", ""),
        quote_id=int(quote.get("id") or 0),
        quote_text=quote.get("text") or "",
    )


class SignalClient:
    """Client for the signal-cli HTTP/JSON-RPC API.

    Receive messages from daemon stdout (JSON lines).
    Send and edit messages via the JSON-RPC send method.
    """

    def __init__(
        self,
        http_url: str = "http://127.0.0.1:8080",
        account: str = "",
        daemon: SignalDaemon | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._http_url = http_url.rstrip("/")
        self._account = account
        self._daemon = daemon
        self._client = http_client or httpx.AsyncClient(base_url=self._http_url, timeout=30.0)
        self._ids = itertools.count(1)

    async def receive_events(self):
        """Read messages from the daemon's stdout JSON lines."""
        if not self._daemon:
            logger.error("No daemon attached, cannot receive messages")
            return

        async for line in self._daemon.read_stdout_lines():
            if not line:
                continue
            try:
                data = json.loads(line)
            except json.JSONDecodeError:
                logger.debug("Non-JSON stdout line: %s", line[:200])
                continue

            message = parse_envelope(data)
            if message is None:
                continue
            logger.info("Received message from %s: %s", message.sender, message.text[:100])
            yield message

    async def _rpc_send(self, chat_id: str, text: str, extra: dict | None = None) -> dict | None:
        params: dict = {"account": self._account, "message": text}
        if chat_id.startswith(GROUP_PREFIX):
            params["groupId"] = chat_id[len(GROUP_PREFIX):]
        else:
            params["recipient"] = [chat_id]
        if extra:
            params.update(extra)

        payload = {"jsonrpc": "2.0", "method": "send", "id": next(self._ids), "params": params}
        try:
            response = await self._client.post("/api/v1/rpc", json=payload)
            response.raise_for_status()
            result = response.json()
        except httpx.HTTPError as e:
            logger.error("Signal send HTTP error: %s", e)
            return None
        if "error" in result:
            logger.error("Signal send failed: %s", result["error"])
            return None
        return result.get("result") or {}

    async def send_message(
        self, chat_id: str, text: str, thread_id: int | None = None
    ) -> str | None:
        """Send a message; returns its timestamp as the message id."""
        result = await self._rpc_send(chat_id, text)
        if result is None:
            return None
        timestamp = result.get("timestamp")
        return str(timestamp) if timestamp else None

    async def edit_message(self, chat_id: str, message_id: str, text: str) -> bool:
        """Edit a previously sent message in place."""
        result = await self._rpc_send(chat_id, text, {"editTimestamp": int(message_id)})
        return result is not None

    async def send_message_chunked(
        self, chat_id: str, text: str, max_chunk: int = 2000
    ) -> bool:
        """Send a long message in chunks."""
        if len(text) <= max_chunk:
            return await self.send_message(chat_id, text) is not None

        chunks = []
        while text:
            if len(text) <= max_chunk:
                chunks.append(text)
                break
            break_at = text.rfind("\n", 0, max_chunk)
            if break_at == -1:
                break_at = max_chunk
            chunks.append(text[:break_at])
            text = text[break_at:].lstrip("\n")

        for i, chunk in enumerate(chunks):
            prefix = f"[{i + 1}/{len(chunks)}] " if len(chunks) > 1 else ""
            if await self.send_message(chat_id, prefix + chunk) is None:
                return False
        return True

    async def close(self) -> None:
        await self._client.aclose()
