"""Git-based repository management on the target host."""

from __future__ import annotations

import shlex
from dataclasses import dataclass
from typing import TYPE_CHECKING, Union

if TYPE_CHECKING:
    from ..local import LocalSession
    from ..ssh import SSHSession


class GitCommandError(RuntimeError):
    """Raised when a git command fails."""

    def __init__(self, command: str, exit_code: int, stderr: str) -> None:
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(f"Git command {command} failed with code {exit_code}: {stderr}")


@dataclass
class GitCloneResult:
    """Details about a completed clone/update."""

    commit_sha: str
    cloned: bool  # False when an existing checkout was converged


class GitRepositoryManager:
    """Wraps `git` CLI commands for cloning and updating repositories."""

    def __init__(
        self,
        session: Union["LocalSession", "SSHSession"],
        git_binary: str = "git",
    ) -> None:
        self.session = session
        self.git_binary = git_binary

    def is_checkout(self, target_dir: str) -> bool:
        return self.session.exists(f"{target_dir}/.git")

    def clone_or_update(self, repo_url: str, target_dir: str) -> GitCloneResult:
        if self.is_checkout(target_dir):
            self.sync(target_dir)
            cloned = False
        else:
            if self.session.exists(target_dir) and not self._is_empty_dir(target_dir):
                raise GitCommandError(
                    f"clone {repo_url}",
                    -1,
                    f"{target_dir} exists and is not a git checkout; refusing to overwrite it",
                )
            self.clone(repo_url, target_dir)
            cloned = True

        commit_sha = self._run(["rev-parse", "HEAD"], cwd=target_dir).strip()
        return GitCloneResult(commit_sha=commit_sha, cloned=cloned)

    def clone(self, repo_url: str, target_dir: str) -> None:
        self._run(["clone", repo_url, target_dir])

    def sync(self, target_dir: str) -> None:
        """Fetch and hard-reset to the remote default branch."""
        self._run(["fetch", "--all", "--prune"], cwd=target_dir)
        self._run(["reset", "--hard", "origin/HEAD"], cwd=target_dir)

    def _is_empty_dir(self, target_dir: str) -> bool:
        quoted = shlex.quote(target_dir)
        return self.session.run(f'test -d {quoted} && test -z "$(ls -A {quoted})"').ok

    def _run(self, args: list[str], cwd: str | None = None) -> str:
        command = [self.git_binary]
        if cwd:
            # 检出归 www-data 所有，root 运行 git 需显式信任该目录
            command += ["-c", f"safe.directory={cwd}", "-C", cwd]
        command += args
        rendered = " ".join(shlex.quote(part) for part in command)
        result = self.session.run(rendered)
        if not result.ok:
            raise GitCommandError(rendered, result.exit_status, result.stderr.strip())
        return result.stdout
