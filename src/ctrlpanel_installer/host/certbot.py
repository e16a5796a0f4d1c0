"""Let's Encrypt client wrapper."""

from __future__ import annotations

import shlex
from typing import TYPE_CHECKING, Union

if TYPE_CHECKING:
    from ..local import LocalSession
    from ..ssh import SSHSession


class CertbotClient:
    def __init__(self, session: Union["LocalSession", "SSHSession"]) -> None:
        self.session = session

    def issue(self, domain: str, email: str, cert_name: str, redirect: bool = True):
        args = [
            "certbot", "--nginx",
            "-d", domain,
            "--cert-name", cert_name,
            "--non-interactive", "--agree-tos",
            "-m", email,
        ]
        if redirect:
            args.append("--redirect")
        return self.session.run(" ".join(shlex.quote(a) for a in args))

    def has_certificate(self, cert_name: str) -> bool:
        return self.session.exists(f"/etc/letsencrypt/live/{cert_name}")

    def delete(self, cert_name: str):
        return self.session.run(
            f"certbot delete --cert-name {shlex.quote(cert_name)} --non-interactive"
        )
