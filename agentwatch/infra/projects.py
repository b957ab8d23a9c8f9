"""Project resolution from the ``[projects.*]`` config tables."""

from __future__ import annotations

import logging
import os

from agentwatch.config import ProjectConfig
from agentwatch.models.agent import ProjectDetails

logger = logging.getLogger(__name__)


def split_project_ref(ref: str) -> tuple[str, str]:
    """Split "name @branch" into (name, branch)."""
    name, _, branch = ref.strip().partition("@")
    return name.strip(), branch.strip()


class ProjectResolver:
    def __init__(self, projects: dict[str, ProjectConfig]) -> None:
        self._projects = projects

    def list_projects(self) -> list[ProjectDetails]:
        return [
            ProjectDetails(name=name, working_dir=os.path.expanduser(cfg.path))
            for name, cfg in sorted(self._projects.items())
        ]

    def resolve(self, ref: str, worktree: str = "") -> ProjectDetails | None:
        """Resolve "name" or "name @branch" to a working directory.

        An explicit worktree argument wins over one embedded in the reference.
        """
        name, branch = split_project_ref(ref)
        branch = worktree or branch
        if not name:
            return None

        cfg = self._projects.get(name)
        if cfg is None:
            lowered = name.lower()
            for key, candidate in self._projects.items():
                if key.lower() == lowered:
                    name, cfg = key, candidate
                    break
        if cfg is None:
            logger.info("Unknown project: %s", name)
            return None

        if branch:
            path = cfg.worktrees.get(branch)
            if path is None:
                logger.info("Project %s has no worktree %s", name, branch)
                return None
        else:
            path = cfg.path
        if not path:
            return None
        return ProjectDetails(name=name, working_dir=os.path.expanduser(path), branch=branch)
