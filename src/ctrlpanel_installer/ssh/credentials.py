"""SSH login details for a remote install target."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from ..config import TargetConfig

AUTH_METHODS = ("password", "key")


@dataclass
class SSHCredentials:
    """
    How to reach the target host.

    A login user other than root runs every privileged command through
    ``sudo -S``; with key authentication that sudo must be passwordless.
    """

    host: str
    username: str = "root"
    port: int = 22
    auth_method: str = "password"
    password: Optional[str] = field(default=None, repr=False)
    key_path: Optional[str] = None
    passphrase: Optional[str] = field(default=None, repr=False)
    timeout: int = 20

    @classmethod
    def from_target(cls, target: "TargetConfig") -> "SSHCredentials":
        # 未指定认证方式时：有私钥用 key，否则用密码
        method = target.auth_method or ("key" if target.key_path else "password")
        return cls(
            host=target.host or "",
            username=target.username or "root",
            port=target.port,
            auth_method=method,
            password=target.password,
            key_path=target.key_path,
        )

    def validate(self) -> None:
        if not self.host:
            raise ValueError("No SSH host given")
        if self.auth_method not in AUTH_METHODS:
            raise ValueError(f"Unknown SSH authentication method: {self.auth_method}")
        if self.auth_method == "password" and not self.password:
            raise ValueError("Password authentication selected but no password provided")
        if self.auth_method == "key" and not self.key_path:
            raise ValueError("Key authentication selected but no key_path provided")

    @property
    def needs_sudo(self) -> bool:
        return self.username != "root"
