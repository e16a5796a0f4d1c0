"""Pre-flight host facts and an HTTP reachability probe."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, TYPE_CHECKING, Union

import requests

if TYPE_CHECKING:
    from ..local import LocalSession
    from ..ssh import SSHSession

logger = logging.getLogger(__name__)


@dataclass
class HostFacts:
    """Facts about the target host."""

    hostname: str
    os_id: str          # e.g. "ubuntu"
    os_release: str     # e.g. "Ubuntu 22.04.4 LTS"
    is_root: bool
    has_systemd: bool

    @property
    def is_ubuntu(self) -> bool:
        return self.os_id == "ubuntu"

    def to_payload(self) -> dict:
        return {
            "hostname": self.hostname,
            "os_id": self.os_id,
            "os_release": self.os_release,
            "is_root": self.is_root,
            "has_systemd": self.has_systemd,
        }


class HostProbe:
    """Collects information about the target system through a session."""

    def collect(self, session: Union["LocalSession", "SSHSession"]) -> HostFacts:
        hostname = self._safe(session, "hostname")
        os_id = self._safe(session, ". /etc/os-release && echo \"$ID\"")
        os_release = self._safe(session, ". /etc/os-release && echo \"$PRETTY_NAME\"")
        uid = self._safe(session, "id -u")
        systemd = session.run("command -v systemctl >/dev/null 2>&1")
        return HostFacts(
            hostname=hostname or "unknown",
            os_id=(os_id or "unknown").lower(),
            os_release=os_release or "unknown",
            is_root=uid == "0",
            has_systemd=systemd.ok,
        )

    def _safe(self, session: Union["LocalSession", "SSHSession"], command: str) -> str:
        result = session.run(command)
        return result.stdout.strip() if result.ok else ""


class SiteProbe:
    """Checks that the domain answers over plain HTTP before asking for a certificate."""

    def __init__(self, timeout: float = 5.0, session: Optional[requests.Session] = None) -> None:
        self.timeout = timeout
        self.http = session or requests.Session()

    def is_serving(self, domain: str) -> bool:
        url = f"http://{domain}/"
        try:
            response = self.http.get(url, timeout=self.timeout, allow_redirects=False)
        except requests.RequestException as exc:
            logger.debug(f"HTTP probe of {url} failed: {exc}")
            return False
        # 任何 HTTP 响应（包括 404/500）都说明 nginx 已在为该域名服务
        return response.status_code < 600
