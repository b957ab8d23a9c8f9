"""Agent session tool handlers."""

from __future__ import annotations

import logging
from typing import Any

from agentwatch.infra.projects import split_project_ref
from agentwatch.models.agent import ProjectDetails
from agentwatch.services.orchestrator_tools.context import ToolContext

logger = logging.getLogger(__name__)


async def handle_agent_session_start(ctx: ToolContext, arguments: dict) -> Any:
    project_ref = arguments["project"]
    worktree = arguments.get("worktree", "")

    details = ctx.projects.resolve(project_ref, worktree)
    if details is None:
        return {"error": f"Unknown project: {project_ref}"}

    # A forced token for this chat always beats the model's choice
    requested = arguments.get("resume_token", "")
    forced = None
    held = ctx.registry.peek_forced_resume(ctx.chat_id) if ctx.chat_id else None
    if held:
        held_token, held_project = held
        if not _same_project(held_project, details):
            logger.warning(
                "Refusing start in %s while resume token %s... for %s is pending",
                details.display_name, held_token[:8], held_project,
            )
            return {
                "error": (
                    f"Resume token {held_token} belongs to project {held_project}, "
                    f"not {details.display_name}"
                )
            }
        forced = ctx.registry.take_forced_resume_token(ctx.chat_id)
        if not details.branch:
            # The session lives in the worktree it was started in
            details = ctx.projects.resolve(held_project) or details
    if forced and requested and requested != forced:
        logger.warning(
            "Overriding resume_token %s... with forced %s...", requested[:8], forced[:8]
        )
    resume_token = forced or requested

    prompt = arguments.get("prompt") or arguments.get("original_task") or "continue"
    result = await ctx.monitor.launch(
        working_dir=details.working_dir,
        project_name=details.display_name,
        prompt=prompt,
        chat_id=ctx.chat_id,
        thread_id=ctx.thread_id,
        resume_token=resume_token,
        command=arguments.get("original_task") or prompt,
    )
    if not result.success:
        return {"error": f"Failed to start session: {result.error}"}
    return {
        "session_id": result.session_id,
        "resume_token": result.resume_token,
        "resumed": bool(resume_token),
        "project": details.display_name,
    }


def _same_project(held_project: str, details: ProjectDetails) -> bool:
    name, branch = split_project_ref(held_project)
    if not name or name == "unknown":
        return True
    if name.lower() != details.name.lower():
        return False
    return not (branch and details.branch and branch != details.branch)


async def handle_list_projects(ctx: ToolContext, arguments: dict) -> Any:
    return [
        {"name": p.name, "path": p.working_dir}
        for p in ctx.projects.list_projects()
    ]
