"""signal-cli daemon lifecycle management."""

from __future__ import annotations

import asyncio
import logging
from urllib.parse import urlparse

import httpx

logger = logging.getLogger(__name__)

_HEALTH_PAYLOAD = {"jsonrpc": "2.0", "method": "listAccounts", "id": 0}


class SignalDaemon:
    """Runs ``signal-cli daemon --http`` and waits for its JSON-RPC API."""

    def __init__(
        self,
        account: str,
        http_url: str = "http://127.0.0.1:8080",
        program: str = "signal-cli",
    ) -> None:
        self._account = account
        self._http_url = http_url
        self._program = program
        self._process: asyncio.subprocess.Process | None = None
        self._http_client = httpx.AsyncClient(base_url=http_url, timeout=10.0)

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    def command(self) -> list[str]:
        parsed = urlparse(self._http_url)
        host = parsed.hostname or "127.0.0.1"
        port = parsed.port or 8080
        return [
            self._program,
            "--account", self._account,
            "-o", "json",
            "daemon",
            "--http", f"{host}:{port}",
        ]

    async def start(self) -> None:
        if self.is_running:
            logger.info("signal-cli daemon already running")
            return

        cmd = self.command()
        logger.info("Starting signal-cli daemon: %s", " ".join(cmd))
        self._process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        await self._wait_for_health()

    async def _wait_for_health(self, max_retries: int = 10) -> None:
        delay = 1.0
        for attempt in range(max_retries):
            if not self.is_running:
                stderr = b""
                if self._process and self._process.stderr:
                    stderr = await self._process.stderr.read()
                detail = stderr.decode(errors="replace").strip()
                raise RuntimeError(
                    "signal-cli daemon exited unexpectedly" + (f":\n{detail}" if detail else "")
                )
            if await self._ping():
                logger.info("signal-cli daemon is healthy")
                return
            logger.debug("Waiting for signal-cli daemon (attempt %d/%d)", attempt + 1, max_retries)
            await asyncio.sleep(delay)
            delay = min(delay * 2, 30.0)

        raise RuntimeError("signal-cli daemon did not become healthy in time")

    async def _ping(self) -> bool:
        try:
            response = await self._http_client.post("/api/v1/rpc", json=_HEALTH_PAYLOAD)
        except (httpx.ConnectError, httpx.ReadError):
            return False
        return response.status_code == 200

    async def stop(self) -> None:
        if self._process is not None and self.is_running:
            logger.info("Stopping signal-cli daemon...")
            self._process.terminate()
            try:
                await asyncio.wait_for(self._process.wait(), timeout=10.0)
            except asyncio.TimeoutError:
                logger.warning("signal-cli daemon did not stop gracefully, killing...")
                self._process.kill()
                await self._process.wait()
        self._process = None
        await self._http_client.aclose()

    async def read_stdout_lines(self):
        """Async generator yielding lines from the daemon's stdout."""
        if not self._process or not self._process.stdout:
            return
        while True:
            line = await self._process.stdout.readline()
            if not line:
                break
            yield line.decode(errors="replace").strip()

    async def health_check(self) -> bool:
        return self.is_running and await self._ping()
