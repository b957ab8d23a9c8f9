"""Claude Code subprocess backend.

Sessions run headless with stream-json on both pipes, so user turns can
be written while the agent is working:

    claude -p --input-format stream-json --output-format stream-json --verbose
           --permission-mode MODE [--model M] [--resume TOKEN]
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import signal
import time
import uuid
from collections import deque
from dataclasses import dataclass, field, replace

from agentwatch.infra.agents.base import EventCallback, StateChangeCallback
from agentwatch.models.agent import (
    AgentSessionState,
    AgentSessionStatus,
    CommandSpec,
    StartParams,
    StartResult,
)
from agentwatch.models.event import SessionEvent, SessionEventType

logger = logging.getLogger(__name__)

ACTION_SUMMARY_CHARS = 60
INIT_TIMEOUT = 30.0
STDERR_TAIL_CHARS = 500
STDERR_GRACE = 2.0


@dataclass(frozen=True)
class StreamRecord:
    """One parsed stdout line."""

    kind: str
    resume_token: str = ""
    events: tuple[SessionEvent, ...] = ()
    is_error: bool = False


def build_command(params: StartParams, program: str = "claude") -> CommandSpec:
    args = [
        "-p",
        "--input-format", "stream-json",
        "--output-format", "stream-json",
        "--verbose",
        "--permission-mode", params.permission_mode,
    ]
    if params.model:
        args.extend(["--model", params.model])
    if params.resume_token:
        args.extend(["--resume", params.resume_token])

    env = dict(params.env_vars) if params.env_vars else None
    return CommandSpec(program=program, args=tuple(args), env=env, cwd=params.working_dir or None)


def encode_user_turn(text: str) -> bytes:
    payload = {"type": "user", "message": {"role": "user", "content": text}}
    return (json.dumps(payload) + "\n").encode()


def summarize_tool_use(name: str, tool_input: dict) -> str:
    detail = ""
    for key in ("command", "file_path", "pattern", "url", "description"):
        if tool_input.get(key):
            detail = str(tool_input[key]).splitlines()[0]
            break
    summary = f"{name}: {detail}" if detail else name
    if len(summary) > ACTION_SUMMARY_CHARS:
        summary = summary[: ACTION_SUMMARY_CHARS - 3] + "..."
    return summary


def parse_stream_line(line: str) -> StreamRecord | None:
    """Parse a stream-json stdout line. Returns None for noise."""
    line = line.strip()
    if not line:
        return None
    try:
        data = json.loads(line)
    except json.JSONDecodeError:
        logger.debug("Non-JSON stdout line: %s", line[:200])
        return None
    if not isinstance(data, dict):
        return None

    kind = data.get("type", "")
    token = data.get("session_id", "") or ""

    if kind == "system":
        return StreamRecord(kind="init" if data.get("subtype") == "init" else "system",
                            resume_token=token)

    if kind == "assistant":
        events = []
        for block in (data.get("message") or {}).get("content") or []:
            block_type = block.get("type")
            if block_type == "text" and block.get("text", "").strip():
                events.append(SessionEvent(SessionEventType.ASSISTANT_MESSAGE, block["text"]))
            elif block_type == "tool_use":
                events.append(SessionEvent(
                    SessionEventType.TOOL_USE,
                    summarize_tool_use(block.get("name", "tool"), block.get("input") or {}),
                ))
        return StreamRecord(kind="assistant", resume_token=token, events=tuple(events))

    if kind == "result":
        is_error = bool(data.get("is_error")) or data.get("subtype", "success") != "success"
        event_type = SessionEventType.ERROR if is_error else SessionEventType.RESULT
        text = str(data.get("result") or data.get("subtype") or "")
        return StreamRecord(
            kind="result",
            resume_token=token,
            events=(SessionEvent(event_type, text),),
            is_error=is_error,
        )

    return StreamRecord(kind=kind or "unknown", resume_token=token)


@dataclass
class _Session:
    session_id: str
    state: AgentSessionState
    proc: asyncio.subprocess.Process
    on_state_change: StateChangeCallback | None
    on_event: EventCallback | None
    started_at: float = field(default_factory=time.monotonic)
    pending_turns: int = 0
    cancelled: bool = False
    last_error: bool = False
    token_ready: asyncio.Event = field(default_factory=asyncio.Event)
    reader: asyncio.Task | None = None
    stderr_reader: asyncio.Task | None = None
    stderr_tail: deque[str] = field(default_factory=lambda: deque(maxlen=8))


class ClaudeCodeProcessManager:
    """Runs Claude Code sessions and reports their events and state.

    The stdin pipe stays open while turns are pending. When a turn ends
    with nothing queued, stdin is closed and the process exits, which
    ends the session.
    """

    def __init__(self, program: str = "claude", init_timeout: float = INIT_TIMEOUT) -> None:
        self._program = program
        self._init_timeout = init_timeout
        self._sessions: dict[str, _Session] = {}

    async def start(
        self,
        params: StartParams,
        on_state_change: StateChangeCallback | None = None,
        on_event: EventCallback | None = None,
    ) -> StartResult:
        command = build_command(params, self._program)
        env = os.environ.copy()
        if command.env:
            env.update(command.env)

        try:
            proc = await asyncio.create_subprocess_exec(
                command.program,
                *command.args,
                cwd=command.cwd,
                env=env,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error("Failed to spawn %s: %s", command.program, e)
            return StartResult(success=False, error=str(e))

        session_id = uuid.uuid4().hex[:12]
        session = _Session(
            session_id=session_id,
            state=AgentSessionState(
                session_id=session_id,
                project_name=params.project_name,
                resume_token=params.resume_token,
            ),
            proc=proc,
            on_state_change=on_state_change,
            on_event=on_event,
        )
        self._sessions[session_id] = session
        # stderr is drained continuously; a full pipe would stall the agent
        session.stderr_reader = asyncio.create_task(self._drain_stderr(session))
        logger.info("Started session %s (pid %s) in %s", session_id, proc.pid, command.cwd)

        if params.prompt:
            session.pending_turns = 1
            try:
                proc.stdin.write(encode_user_turn(params.prompt))
                await proc.stdin.drain()
            except (BrokenPipeError, ConnectionResetError) as e:
                logger.warning("[%s] Agent exited before accepting input: %s", session_id, e)
                await self.cancel(session_id)
                try:
                    await asyncio.wait_for(proc.wait(), timeout=STDERR_GRACE)
                except asyncio.TimeoutError:
                    logger.warning("[%s] Agent did not exit after SIGTERM", session_id)
                stderr = await self._collect_stderr(session)
                self._sessions.pop(session_id, None)
                return StartResult(
                    success=False, error=stderr or f"Agent exited before accepting input: {e}"
                )
        else:
            # Nothing to do; let the process exit once it has reported its token
            proc.stdin.close()

        session.reader = asyncio.create_task(self._read_loop(session))

        try:
            await asyncio.wait_for(session.token_ready.wait(), timeout=self._init_timeout)
        except asyncio.TimeoutError:
            logger.warning("[%s] No session token within %.0fs", session_id, self._init_timeout)

        token = session.state.resume_token
        if not token:
            await self.cancel(session_id)
            stderr = await self._collect_stderr(session)
            return StartResult(success=False, error=stderr or "Agent did not report a session token")

        return StartResult(success=True, session_id=session_id, resume_token=token)

    async def send_input(self, session_id: str, text: str) -> bool:
        session = self._sessions.get(session_id)
        if not session or not self.is_live(session_id):
            return False
        stdin = session.proc.stdin
        if stdin is None or stdin.is_closing():
            return False
        try:
            session.pending_turns += 1
            stdin.write(encode_user_turn(text))
            await stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            session.pending_turns -= 1
            logger.warning("[%s] Input channel closed: %s", session_id, e)
            return False
        return True

    async def cancel(self, session_id: str) -> bool:
        session = self._sessions.get(session_id)
        if not session or session.proc.returncode is not None:
            return False
        session.cancelled = True
        try:
            session.proc.send_signal(signal.SIGTERM)
        except ProcessLookupError:
            return False
        logger.info("[%s] Sent SIGTERM", session_id)
        return True

    def get_state(self, session_id: str) -> AgentSessionState | None:
        session = self._sessions.get(session_id)
        if not session:
            return None
        return replace(session.state, runtime_seconds=self._runtime(session))

    def is_live(self, session_id: str) -> bool:
        session = self._sessions.get(session_id)
        return bool(
            session
            and session.proc.returncode is None
            and not session.state.status.is_terminal
        )

    def find_live_by_token_prefix(self, prefix: str) -> str | None:
        if not prefix:
            return None
        for session_id, session in self._sessions.items():
            if session.state.resume_token.startswith(prefix) and self.is_live(session_id):
                return session_id
        return None

    async def stop_all(self) -> None:
        for session_id in list(self._sessions):
            await self.cancel(session_id)
        readers = [s.reader for s in self._sessions.values() if s.reader]
        if readers:
            await asyncio.gather(*readers, return_exceptions=True)

    # --- internals ---

    @staticmethod
    def _runtime(session: _Session) -> int:
        return int(time.monotonic() - session.started_at)

    @staticmethod
    async def _drain_stderr(session: _Session) -> None:
        stream = session.proc.stderr
        if stream is None:
            return
        while True:
            chunk = await stream.read(4096)
            if not chunk:
                return
            session.stderr_tail.append(chunk.decode(errors="replace"))

    @staticmethod
    async def _collect_stderr(session: _Session) -> str:
        """Return the stderr tail, giving the drain a moment to reach EOF."""
        if session.stderr_reader is not None:
            try:
                await asyncio.wait_for(asyncio.shield(session.stderr_reader), timeout=STDERR_GRACE)
            except asyncio.TimeoutError:
                pass
        return "".join(session.stderr_tail).strip()[-STDERR_TAIL_CHARS:]

    async def _push_state(self, session: _Session, state: AgentSessionState) -> None:
        session.state = state
        if session.on_state_change is None:
            return
        try:
            await session.on_state_change(self.get_state(session.session_id))
        except Exception:
            logger.exception("[%s] State-change callback failed", session.session_id)

    async def _deliver(self, session: _Session, event: SessionEvent) -> None:
        if session.on_event is None:
            return
        try:
            await session.on_event(session.session_id, event)
        except Exception:
            logger.exception("[%s] Event callback failed", session.session_id)

    async def _read_loop(self, session: _Session) -> None:
        proc = session.proc
        try:
            async for raw in proc.stdout:
                record = parse_stream_line(raw.decode(errors="replace"))
                if record is None:
                    continue
                await self._handle_record(session, record)
        finally:
            returncode = await proc.wait()
            session.token_ready.set()
            await self._finish(session, returncode)

    async def _handle_record(self, session: _Session, record: StreamRecord) -> None:
        state = session.state
        if record.resume_token and record.resume_token != state.resume_token:
            state = replace(state, resume_token=record.resume_token)
        if record.kind == "init":
            state = state.with_status(AgentSessionStatus.RUNNING)
            await self._push_state(session, state)
            session.token_ready.set()
            return

        for event in record.events:
            if event.type == SessionEventType.TOOL_USE:
                state = replace(state.with_action(event.text), question_text="")
            elif event.is_assistant_text:
                question = event.text.strip() if event.text.rstrip().endswith("?") else ""
                state = replace(state, question_text=question, total_events=state.total_events + 1)
            session.state = state
            # Each event is fully handled before the next line is read
            await self._deliver(session, event)
            state = session.state

        if record.kind == "result":
            session.last_error = record.is_error
            session.pending_turns = max(0, session.pending_turns - 1)
            if session.pending_turns == 0 and proc_stdin_open(session.proc):
                session.proc.stdin.close()

        await self._push_state(session, state)

    async def _finish(self, session: _Session, returncode: int) -> None:
        if session.cancelled:
            status, error = AgentSessionStatus.CANCELLED, ""
        elif returncode == 0 and not session.last_error:
            status, error = AgentSessionStatus.DONE, ""
        else:
            status = AgentSessionStatus.FAILED
            error = await self._collect_stderr(session) or f"exit code {returncode}"
        logger.info("[%s] Session ended: %s", session.session_id, status.value)
        await self._push_state(session, session.state.with_status(status, error))


def proc_stdin_open(proc: asyncio.subprocess.Process) -> bool:
    return proc.stdin is not None and not proc.stdin.is_closing()
