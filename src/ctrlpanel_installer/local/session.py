"""Local command execution session."""

from __future__ import annotations

import os
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional


@dataclass
class LocalCommandResult:
    """Result of executing a local command."""
    command: str
    stdout: str
    stderr: str
    exit_status: int

    @property
    def ok(self) -> bool:
        return self.exit_status == 0


class LocalSession:
    """
    Local command execution session.

    Provides the same interface as SSHSession but executes commands and
    file operations on the machine the installer runs on.
    """

    # apt / composer 可能长时间无输出，默认只限制总时长
    DEFAULT_TIMEOUT = 1800

    def __init__(self, working_dir: Optional[str] = None) -> None:
        self.working_dir = working_dir or "/"
        self._connected = False

    def connect(self) -> None:
        """No-op for local session (for API compatibility with SSHSession)."""
        self._connected = True

    def close(self) -> None:
        """No-op for local session (for API compatibility with SSHSession)."""
        self._connected = False

    def __enter__(self) -> "LocalSession":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def target(self) -> str:
        return "localhost"

    def run(
        self,
        command: str,
        *,
        timeout: Optional[int] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> LocalCommandResult:
        """
        Execute a command locally through bash.

        Args:
            command: The command to execute
            timeout: Total timeout in seconds (default: DEFAULT_TIMEOUT)
            env: Extra environment variables for this command

        Returns:
            LocalCommandResult with stdout, stderr, and exit status
        """
        if timeout is None:
            timeout = self.DEFAULT_TIMEOUT

        try:
            result = subprocess.run(
                command,
                shell=True,
                capture_output=True,
                text=True,
                timeout=timeout,
                cwd=self.working_dir,
                env=self._get_env(env),
                executable="/bin/bash",
            )
        except subprocess.TimeoutExpired:
            return LocalCommandResult(
                command=command,
                stdout="",
                stderr=f"Command timed out after {timeout} seconds",
                exit_status=-1,
            )
        except OSError as e:
            return LocalCommandResult(command=command, stdout="", stderr=str(e), exit_status=-1)

        return LocalCommandResult(
            command=command,
            stdout=result.stdout.strip(),
            stderr=result.stderr.strip(),
            exit_status=result.returncode,
        )

    def run_attached(self, command: str) -> int:
        """Run ``command`` on the operator's terminal (stdin and stdout inherited)."""
        try:
            completed = subprocess.run(
                command,
                shell=True,
                cwd=self.working_dir,
                env=self._get_env(),
                executable="/bin/bash",
            )
        except OSError:
            return -1
        return completed.returncode

    def _get_env(self, extra: Optional[Dict[str, str]] = None) -> dict:
        """Get environment variables for subprocess."""
        env = os.environ.copy()
        env.setdefault("DEBIAN_FRONTEND", "noninteractive")
        if extra:
            env.update(extra)
        return env

    # --- file operations -------------------------------------------------

    def exists(self, path: str) -> bool:
        return os.path.lexists(str(path))

    def read_text(self, path: str) -> Optional[str]:
        target = Path(str(path))
        if not target.is_file():
            return None
        return target.read_text(encoding="utf-8")

    def write_text(self, path: str, content: str, mode: int = 0o644) -> None:
        """Replace ``path`` with ``content`` (overwrite, never append)."""
        target = Path(str(path))
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
        os.chmod(target, mode)

    def create_temp_file(self, content: str, mode: int = 0o600) -> str:
        """Create a private temporary file; the permissions are set before writing."""
        fd, name = tempfile.mkstemp(prefix="ctrlpanel-", suffix=".cnf")
        try:
            os.fchmod(fd, mode)
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(content)
        except BaseException:
            os.unlink(name)
            raise
        return name

    def remove_file(self, path: str) -> None:
        try:
            os.unlink(str(path))
        except FileNotFoundError:
            pass
