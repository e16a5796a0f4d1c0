"""External collaborators driven by the provisioning steps.

Each wrapper turns one host tool (apt, git, composer, mysql, nginx, certbot,
systemd, cron, ufw) into a narrow interface over a Local/SSH session. Command
wrappers return the session's command result (``.ok``, ``.stderr``); the steps
decide whether a failure is fatal.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union, TYPE_CHECKING

from .certbot import CertbotClient
from .database import DbAuth, MySQLClient, scoped_credentials
from .envfile import EnvFile
from .files import AppFiles
from .packages import AptPackageManager, UfwFirewall
from .php import ComposerClient, PhpRuntime, SocketNotFound
from .probe import HostFacts, HostProbe, SiteProbe
from .services import CronScheduler, SystemdManager
from .webserver import NginxController
from ..gitops import GitRepositoryManager

if TYPE_CHECKING:
    from ..local import LocalSession
    from ..ssh import SSHSession


@dataclass
class HostServices:
    """Bundle of collaborators sharing one session."""

    session: Union["LocalSession", "SSHSession"]
    packages: AptPackageManager
    firewall: UfwFirewall
    git: GitRepositoryManager
    composer: ComposerClient
    php: PhpRuntime
    database: MySQLClient
    web: NginxController
    certbot: CertbotClient
    services: SystemdManager
    scheduler: CronScheduler
    files: AppFiles
    site_probe: Optional[SiteProbe] = None

    @classmethod
    def for_session(
        cls,
        session: Union["LocalSession", "SSHSession"],
        site_probe: Optional[SiteProbe] = None,
    ) -> "HostServices":
        return cls(
            session=session,
            packages=AptPackageManager(session),
            firewall=UfwFirewall(session),
            git=GitRepositoryManager(session),
            composer=ComposerClient(session),
            php=PhpRuntime(session),
            database=MySQLClient(session),
            web=NginxController(session),
            certbot=CertbotClient(session),
            services=SystemdManager(session),
            scheduler=CronScheduler(session),
            files=AppFiles(session),
            site_probe=site_probe,
        )

    def env_file(self, path: str) -> EnvFile:
        return EnvFile(self.session, path)


__all__ = [
    "HostServices",
    "AptPackageManager",
    "UfwFirewall",
    "ComposerClient",
    "PhpRuntime",
    "SocketNotFound",
    "MySQLClient",
    "DbAuth",
    "scoped_credentials",
    "NginxController",
    "CertbotClient",
    "SystemdManager",
    "CronScheduler",
    "AppFiles",
    "EnvFile",
    "HostFacts",
    "HostProbe",
    "SiteProbe",
]
