"""
Tests for Git Integration
=========================

Tests for todoforge/git_tools.py
"""

import shutil
import subprocess

import pytest

from todoforge.errors import GitError
from todoforge.git_tools import GitTools

pytestmark = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")


def git(cwd, *args):
    subprocess.run(["git", *args], cwd=cwd, check=True, capture_output=True, text=True)


@pytest.fixture
def repo(tmp_path):
    git(tmp_path, "init")
    git(tmp_path, "config", "user.email", "dev@example.com")
    git(tmp_path, "config", "user.name", "Dev")
    git(tmp_path, "config", "commit.gpgsign", "false")
    (tmp_path / "a.ts").write_text("const a = 1;\n", encoding="utf-8")
    (tmp_path / "b.ts").write_text("const b = 1;\n", encoding="utf-8")
    git(tmp_path, "add", ".")
    git(tmp_path, "commit", "-m", "initial")
    return tmp_path


class TestGitTools:
    """Tests for GitTools."""

    def test_not_a_repository(self, tmp_path):
        plain = tmp_path / "plain"
        plain.mkdir()
        assert not GitTools(str(plain)).is_repository()

    def test_clean_status(self, repo):
        tools = GitTools(str(repo))

        assert tools.is_repository()
        status = tools.get_status()
        assert status.is_clean
        assert len(status.commit) == 40

    def test_dirty_status(self, repo):
        (repo / "a.ts").write_text("const a = 2;\n", encoding="utf-8")

        status = GitTools(str(repo)).get_status()
        assert not status.is_clean
        assert status.changed_files == ["a.ts"]

    def test_create_branch(self, repo):
        tools = GitTools(str(repo))

        assert tools.create_branch("todoforge-auto-1234") == "todoforge-auto-1234"
        assert tools.get_status().branch == "todoforge-auto-1234"

    def test_duplicate_branch(self, repo):
        tools = GitTools(str(repo))
        tools.create_branch("todoforge-auto-1234")

        with pytest.raises(GitError) as exc_info:
            tools.create_branch("todoforge-auto-1234")
        assert exc_info.value.command[:2] == ["git", "checkout"]

    def test_commit_only_given_files(self, repo):
        (repo / "a.ts").write_text("const a = 2;\n", encoding="utf-8")
        (repo / "b.ts").write_text("const b = 2;\n", encoding="utf-8")
        tools = GitTools(str(repo))

        commit = tools.commit_changes([str(repo / "a.ts")], "[TodoForge Auto] Fix Formatting: a")

        assert len(commit) == 40
        assert tools.get_status().changed_files == ["b.ts"]

    def test_commit_without_files(self, repo):
        with pytest.raises(GitError):
            GitTools(str(repo)).commit_changes([], "nothing")

    def test_stash_and_pop(self, repo):
        (repo / "a.ts").write_text("const a = 2;\n", encoding="utf-8")
        tools = GitTools(str(repo))

        tools.stash("todoforge: before session")
        assert tools.get_status().is_clean

        tools.stash(pop=True)
        assert (repo / "a.ts").read_text(encoding="utf-8") == "const a = 2;\n"
