"""Orchestration request texts handed to the orchestrator.

The orchestrator reads these as ordinary user messages and is expected
to answer with an ``agent_session_start`` tool call.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

START_TOOL = "agent_session_start"
LIST_PROJECTS_TOOL = "list_projects"


class PlanningAction(str, Enum):
    START = "start"
    RESUME = "resume"


@dataclass(frozen=True)
class ChatContext:
    chat_id: str
    thread_id: int | None = None


@dataclass(frozen=True)
class PlanningRequest:
    action: PlanningAction
    project: str
    task: str = ""
    resume_token: str = ""
    worktree: str = ""
    quick: bool = False
    chat_context: ChatContext | None = None

    @property
    def project_spec(self) -> str:
        return f"{self.project} @{self.worktree}" if self.worktree else self.project


def build_planning_request(req: PlanningRequest) -> str:
    if req.quick:
        return _quick_start(req)
    if req.action == PlanningAction.RESUME:
        return _resume(req)
    return _full_planning(req)


def _quick_start(req: PlanningRequest) -> str:
    return "\n".join([
        "[Agent Quick Start]",
        "",
        f"Project: {req.project_spec}",
        f"Task: {req.task or 'Continue working'}",
        "",
        "Start an agent session immediately with this task.",
        f"Use the {START_TOOL} tool with the task as the prompt.",
    ])


def _resume(req: PlanningRequest) -> str:
    lines = [
        "[Agent Resume Request]",
        "",
        "**CRITICAL RULES:**",
        f"1. You MUST call `{START_TOOL}` tool immediately",
        f'2. You MUST use EXACTLY this resume_token: "{req.resume_token}"',
        "3. Do NOT respond with text messages",
        "",
        f"Project: {req.project or '(from token)'}",
        f'User said: "{req.task or "continue"}"',
        "",
        "## Required Tool Call",
        f"Call `{START_TOOL}` with these EXACT values:",
        f'- project: "{req.project}"',
        f'- resume_token: "{req.resume_token}" <- MUST USE THIS EXACT TOKEN',
        "- prompt: <add project context to user's request>",
    ]
    lines.extend(_chat_lines(req.chat_context, "- "))
    lines.extend([
        "",
        "**WARNING:** If you omit resume_token or use a different value, it will start "
        "a NEW session instead of resuming. The user wants to CONTINUE their existing session.",
    ])
    return "\n".join(lines)


def _full_planning(req: PlanningRequest) -> str:
    if not req.task:
        return "\n".join([
            "[Agent Request]",
            f"Project: {req.project_spec}",
            "",
            "User wants to start an agent session but didn't specify a task.",
            "Ask them what they want to work on.",
        ])

    escaped_task = req.task.replace('"', '\\"')
    lines = [
        "[Agent Start Request]",
        "",
        f"**CRITICAL: You MUST call the `{START_TOOL}` tool. Do NOT respond with text messages.**",
        "",
        f"Project: {req.project_spec}",
        f'User said: "{req.task}"',
        "",
        "## Steps",
        f"1. If unsure of the project name, check `{LIST_PROJECTS_TOOL}`",
        f"2. Call `{START_TOOL}` with enriched instructions",
        "",
        "## Tool Call (REQUIRED)",
        "```",
        f"{START_TOOL}({{",
        f'  project: "{req.project}",',
    ]
    if req.worktree:
        lines.append(f'  worktree: "{req.worktree}",')
    lines.append('  prompt: "<ENRICHED INSTRUCTIONS - add project context>",')
    lines.append(f'  original_task: "{escaped_task}",')
    lines.extend(_chat_lines(req.chat_context, "  "))
    lines.extend([
        "})",
        "```",
        "",
        "**Rules:**",
        "- DO NOT respond with text messages - call the tool",
        "- Add context from the project to the prompt",
        "- Only ask a clarifying question if TRULY ambiguous (rarely needed)",
    ])
    return "\n".join(lines)


def _chat_lines(chat: ChatContext | None, prefix: str) -> list[str]:
    if chat is None:
        return []
    lines = [f'{prefix}chat_id: "{chat.chat_id}"']
    if chat.thread_id:
        lines.append(f"{prefix}thread_id: {chat.thread_id}")
    return lines


_DIRECTIVE_MARKERS = ("[to agent]", "tell agent", "agent:")
_DIRECTIVE_STRIP = re.compile(r"\[to agent\]|tell agent:?|agent:", re.IGNORECASE)


def is_agent_directive(message: str) -> bool:
    """True if the message explicitly addresses the running agent."""
    lower = message.lower()
    return any(marker in lower for marker in _DIRECTIVE_MARKERS)


def extract_agent_directive(message: str) -> str:
    return _DIRECTIVE_STRIP.sub("", message).strip()
