"""apt package manager and ufw firewall wrappers."""

from __future__ import annotations

import shlex
from typing import Iterable, List, TYPE_CHECKING, Union

from ..models import DbEngine

if TYPE_CHECKING:
    from ..local import LocalSession
    from ..ssh import SSHSession

APT_STAMP = "/var/lib/apt/periodic/update-success-stamp"

BASE_PACKAGES = (
    "git", "curl", "wget", "unzip", "ca-certificates", "gnupg", "software-properties-common",
    "nginx", "ufw", "redis-server",
    "php-fpm", "php-cli", "php-mysql", "php-xml", "php-mbstring", "php-bcmath",
    "php-zip", "php-gd", "php-curl", "php-intl",
    "certbot", "python3-certbot-nginx",
)

COMPOSER_INSTALLER_URL = "https://getcomposer.org/installer"


def packages_for(engine: DbEngine) -> List[str]:
    return list(BASE_PACKAGES) + [engine.server_package]


class AptPackageManager:
    """
    Install-only view of apt.

    No remove/purge: the web server, database engine and cache server may be
    shared with other applications on the host.
    """

    def __init__(self, session: Union["LocalSession", "SSHSession"]) -> None:
        self.session = session

    def update(self, max_age_minutes: int = 60):
        """Refresh package lists unless apt did so within ``max_age_minutes``."""
        return self.session.run(
            f"if [ ! -f {APT_STAMP} ] || [ -n \"$(find {APT_STAMP} -mmin +{max_age_minutes} 2>/dev/null)\" ]; "
            "then apt-get update; fi"
        )

    def install(self, names: Iterable[str]):
        """apt-get install is idempotent: already-installed packages are left as is."""
        quoted = " ".join(shlex.quote(n) for n in names)
        return self.session.run(f"apt-get install -y --no-install-recommends {quoted}")

    def ensure_composer(self):
        return self.session.run(
            "command -v composer >/dev/null 2>&1 || "
            f"(curl -sS {COMPOSER_INSTALLER_URL} | php -- --install-dir=/usr/local/bin --filename=composer)"
        )


class UfwFirewall:
    def __init__(self, session: Union["LocalSession", "SSHSession"]) -> None:
        self.session = session

    def allow(self, rule: str):
        return self.session.run(f"ufw allow {shlex.quote(rule)}")

    def enable(self):
        return self.session.run("ufw --force enable")
