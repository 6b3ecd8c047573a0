"""
Git Integration
===============

The few git operations the session loop needs: status, branch, commit and
stash. Each runs ``git`` as a subprocess in the workspace and raises GitError
when it fails.
"""

import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

from todoforge.errors import GitError

GIT_TIMEOUT = 30


@dataclass
class GitStatus:
    branch: str
    commit: str
    is_clean: bool
    changed_files: List[str] = field(default_factory=list)


class GitTools:
    """Runs git commands inside one workspace."""

    def __init__(self, workspace_path: str):
        self.workspace = Path(workspace_path).resolve()

    def _run(self, args: Sequence[str], check: bool = True) -> subprocess.CompletedProcess:
        command = ["git", *args]
        try:
            result = subprocess.run(
                command,
                cwd=self.workspace,
                capture_output=True,
                text=True,
                timeout=GIT_TIMEOUT,
            )
        except FileNotFoundError as e:
            raise GitError("git executable not found", command) from e
        except subprocess.TimeoutExpired as e:
            raise GitError(f"git {args[0]} timed out after {GIT_TIMEOUT}s", command) from e
        if check and result.returncode != 0:
            stderr = (result.stderr or result.stdout).strip()
            raise GitError(f"git {args[0]} failed: {stderr}", command, stderr)
        return result

    def is_repository(self) -> bool:
        try:
            result = self._run(["rev-parse", "--is-inside-work-tree"], check=False)
        except GitError:
            return False
        return result.returncode == 0 and result.stdout.strip() == "true"

    def get_status(self) -> GitStatus:
        branch = self._run(["rev-parse", "--abbrev-ref", "HEAD"], check=False)
        commit = self._run(["rev-parse", "HEAD"], check=False)
        porcelain = self._run(["status", "--porcelain"])
        changed = [line[3:] for line in porcelain.stdout.splitlines() if len(line) > 3]
        return GitStatus(
            branch=branch.stdout.strip() if branch.returncode == 0 else "unknown",
            commit=commit.stdout.strip() if commit.returncode == 0 else "unknown",
            is_clean=not changed,
            changed_files=changed,
        )

    def create_branch(self, name: str, checkout: bool = True) -> str:
        self._run(["checkout", "-b", name] if checkout else ["branch", name])
        return name

    def commit_changes(self, files: Sequence[str], message: str) -> str:
        """
        Stage ``files`` and commit them.

        Returns:
            The new commit hash
        """
        if not files:
            raise GitError("nothing to commit: no files given", ["git", "commit"])
        relative = []
        for path in files:
            p = Path(path)
            relative.append(str(p.resolve().relative_to(self.workspace)) if p.is_absolute() else str(p))
        self._run(["add", "--", *relative])
        self._run(["commit", "-m", message, "--", *relative])
        return self._run(["rev-parse", "HEAD"]).stdout.strip()

    def stash(self, message: Optional[str] = None, pop: bool = False) -> str:
        if pop:
            return self._run(["stash", "pop"]).stdout.strip()
        args = ["stash", "push"]
        if message:
            args += ["-m", message]
        return self._run(args).stdout.strip()
