"""SSH session management built on Paramiko."""

from __future__ import annotations

import shlex
import time
from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Optional

import paramiko

from .credentials import SSHCredentials


class SSHConnectionError(RuntimeError):
    """Raised when an SSH connection cannot be established."""

    pass


@dataclass
class SSHCommandResult:
    command: str
    stdout: str
    stderr: str
    exit_status: int

    @property
    def ok(self) -> bool:
        return self.exit_status == 0


class SSHSession:
    """High-level wrapper around paramiko.SSHClient.

    Commands are privileged by default: when the login user is not root they
    are wrapped in ``sudo -S`` and the SSH password is fed on stdin.
    """

    DEFAULT_TIMEOUT = 1800
    RECV_SIZE = 32768
    POLL_INTERVAL = 0.1

    def __init__(
        self,
        credentials: SSHCredentials,
        *,
        client_factory: Callable[[], paramiko.SSHClient] | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.credentials = credentials
        self._client_factory = client_factory or paramiko.SSHClient
        self._clock = clock
        self._sleep = sleep
        self._client: Optional[paramiko.SSHClient] = None

    @property
    def sudo_password(self) -> Optional[str]:
        """Return the password for sudo commands (same as SSH password)."""
        return self.credentials.password

    @property
    def target(self) -> str:
        return f"{self.credentials.username}@{self.credentials.host}:{self.credentials.port}"

    def __enter__(self) -> "SSHSession":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        self.close()

    def connect(self) -> None:
        if self._client:
            return
        self.credentials.validate()
        client = self._client_factory()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            connect_kwargs = {
                "hostname": self.credentials.host,
                "port": self.credentials.port,
                "username": self.credentials.username,
                "timeout": self.credentials.timeout,
                "look_for_keys": False,
                "allow_agent": False,
            }
            if self.credentials.auth_method == "password":
                connect_kwargs["password"] = self.credentials.password
            else:
                connect_kwargs["key_filename"] = self.credentials.key_path
                if self.credentials.passphrase:
                    connect_kwargs["passphrase"] = self.credentials.passphrase
            client.connect(**connect_kwargs)
        except Exception as exc:  # pragma: no cover - network errors hard to simulate
            client.close()
            raise SSHConnectionError(str(exc)) from exc
        self._client = client

    def close(self) -> None:
        if self._client:
            self._client.close()
            self._client = None

    def run(
        self,
        command: str,
        *,
        timeout: Optional[int] = None,
        env: Optional[Dict[str, str]] = None,
        privileged: bool = True,
    ) -> SSHCommandResult:
        """
        Execute a command on the remote server and wait for it to finish.

        Args:
            command: The command to execute (bash syntax)
            timeout: Total timeout in seconds (default: DEFAULT_TIMEOUT)
            env: Extra environment variables for this command
            privileged: Run as root (through sudo when needed)
        """
        result = self._execute(command, timeout=timeout, env=env, privileged=privileged)
        return replace(result, stdout=result.stdout.strip(), stderr=result.stderr.strip())

    def _execute(
        self,
        command: str,
        *,
        timeout: Optional[int] = None,
        env: Optional[Dict[str, str]] = None,
        privileged: bool = True,
    ) -> SSHCommandResult:
        """Like ``run`` but returns the output exactly as the remote side wrote it."""
        if not self._client:
            self.connect()
        assert self._client is not None

        if timeout is None:
            timeout = self.DEFAULT_TIMEOUT

        exports = {"DEBIAN_FRONTEND": "noninteractive", **(env or {})}
        prefix = " ".join(f"{k}={shlex.quote(v)}" for k, v in exports.items())
        actual_command = f"{prefix} bash -c {shlex.quote(command)}"

        use_sudo = privileged and self.credentials.needs_sudo
        if use_sudo:
            actual_command = f"sudo -S -p '' env {actual_command}"

        stdin, stdout, _ = self._client.exec_command(actual_command, timeout=timeout)

        # sudo 从 stdin 读取密码
        if use_sudo and self.sudo_password:
            stdin.write(self.sudo_password + "\n")
            stdin.flush()

        # 边执行边读取：输出填满通道窗口时远端命令会被阻塞
        channel = stdout.channel
        stdout_chunks: List[bytes] = []
        stderr_chunks: List[bytes] = []
        deadline = self._clock() + timeout
        while not channel.exit_status_ready():
            received = self._drain(channel, stdout_chunks, stderr_chunks)
            if self._clock() > deadline:
                channel.close()
                return SSHCommandResult(
                    command=command,
                    stdout=b"".join(stdout_chunks).decode("utf-8", errors="replace"),
                    stderr=f"TIMEOUT: Command did not complete within {timeout} seconds.",
                    exit_status=-1,
                )
            if not received:
                self._sleep(self.POLL_INTERVAL)

        # 读取剩余输出
        self._drain(channel, stdout_chunks, stderr_chunks)
        exit_status = channel.recv_exit_status()

        return SSHCommandResult(
            command=command,
            stdout=b"".join(stdout_chunks).decode("utf-8", errors="replace"),
            stderr=b"".join(stderr_chunks).decode("utf-8", errors="replace"),
            exit_status=exit_status,
        )

    def _drain(self, channel, stdout_chunks: List[bytes], stderr_chunks: List[bytes]) -> bool:
        received = False
        while channel.recv_ready():
            stdout_chunks.append(channel.recv(self.RECV_SIZE))
            received = True
        while channel.recv_stderr_ready():
            stderr_chunks.append(channel.recv_stderr(self.RECV_SIZE))
            received = True
        return received

    # --- file operations -------------------------------------------------

    def exists(self, path: str) -> bool:
        quoted = shlex.quote(str(path))
        return self.run(f"test -e {quoted} || test -L {quoted}").ok

    def read_text(self, path: str) -> Optional[str]:
        quoted = shlex.quote(str(path))
        result = self._execute(f"test -f {quoted} && cat {quoted}")
        if not result.ok:
            return None
        return result.stdout

    def write_text(self, path: str, content: str, mode: int = 0o644) -> None:
        """Upload ``content`` to a private staging file, then install it in place."""
        staging = self._upload_private(content)
        quoted = shlex.quote(str(path))
        result = self.run(
            f"mkdir -p \"$(dirname {quoted})\" && install -m {mode:o} {shlex.quote(staging)} {quoted}"
        )
        self.run(f"rm -f {shlex.quote(staging)}", privileged=False)
        if not result.ok:
            raise OSError(f"Failed to write {path}: {result.stderr}")

    def create_temp_file(self, content: str, mode: int = 0o600) -> str:
        staging = self._upload_private(content)
        if mode != 0o600:
            self.run(f"chmod {mode:o} {shlex.quote(staging)}", privileged=False)
        return staging

    def remove_file(self, path: str) -> None:
        # 临时文件由登录用户创建，删除时不需要 sudo
        self.run(f"rm -f {shlex.quote(str(path))}", privileged=False)

    def _upload_private(self, content: str) -> str:
        """mktemp creates the file 0600 before any content is written to it."""
        result = self.run("mktemp /tmp/ctrlpanel-XXXXXXXX", privileged=False)
        if not result.ok or not result.stdout:
            raise OSError(f"mktemp failed on {self.target}: {result.stderr}")
        staging = result.stdout.splitlines()[0].strip()

        assert self._client is not None
        sftp = self._client.open_sftp()
        try:
            with sftp.open(staging, "w") as handle:
                handle.write(content.encode("utf-8"))
        finally:
            sftp.close()
        return staging
