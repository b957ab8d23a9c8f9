"""Tests for project resolution."""

import os

import pytest

from agentwatch.config import ProjectConfig
from agentwatch.infra.projects import ProjectResolver, split_project_ref


@pytest.fixture
def resolver():
    return ProjectResolver({
        "Web": ProjectConfig(path="~/code/web", worktrees={"feature": "/src/web-feature"}),
        "api": ProjectConfig(path="/src/api"),
    })


class TestSplitProjectSpec:
    def test_with_branch(self):
        assert split_project_ref("my-project @main") == ("my-project", "main")

    def test_without_branch(self):
        assert split_project_ref("  api ") == ("api", "")


class TestProjectResolver:
    def test_resolve_plain(self, resolver):
        details = resolver.resolve("api")
        assert details.working_dir == "/src/api"
        assert details.display_name == "api"

    def test_expands_home(self, resolver):
        assert resolver.resolve("Web").working_dir == os.path.expanduser("~/code/web")

    def test_case_insensitive(self, resolver):
        assert resolver.resolve("web").name == "Web"

    def test_worktree_in_spec(self, resolver):
        details = resolver.resolve("web @feature")
        assert details.working_dir == "/src/web-feature"
        assert details.display_name == "Web @feature"

    def test_worktree_argument_wins(self, resolver):
        assert resolver.resolve("web @other", worktree="feature").branch == "feature"

    def test_unknown_worktree(self, resolver):
        assert resolver.resolve("api @main") is None

    def test_unknown_project(self, resolver):
        assert resolver.resolve("ghost") is None
        assert resolver.resolve("") is None

    def test_list_projects(self, resolver):
        assert [p.name for p in resolver.list_projects()] == ["Web", "api"]
