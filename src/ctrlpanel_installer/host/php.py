"""PHP runtime helpers: FPM socket discovery, extensions, artisan and composer."""

from __future__ import annotations

import logging
import shlex
import time
from typing import Any, Callable, List, Optional, TYPE_CHECKING, Union

from .. import paths
from ..errors import InstallerError

if TYPE_CHECKING:
    from ..local import LocalSession
    from ..ssh import SSHSession

logger = logging.getLogger(__name__)


class SocketNotFound(InstallerError):
    """No php-fpm unix socket could be located, even after starting php-fpm."""

    def __init__(self, searched: List[str]) -> None:
        self.searched = searched
        super().__init__(
            "php-fpm socket not found (searched: " + ", ".join(searched) + "); "
            "check that php-fpm is installed and running"
        )


def run_as(user: str, command: str) -> str:
    return f"runuser -u {shlex.quote(user)} -- {command}"


class PhpRuntime:
    def __init__(
        self,
        session: Union["LocalSession", "SSHSession"],
        socket_globs: tuple = paths.PHP_FPM_SOCKET_GLOBS,
        sleep: Callable[[float], Any] = time.sleep,
    ) -> None:
        self.session = session
        self.socket_globs = socket_globs
        self._sleep = sleep

    def _find_socket(self) -> Optional[str]:
        patterns = " ".join(self.socket_globs)
        result = self.session.run(
            f'for f in {patterns}; do if [ -S "$f" ]; then echo "$f"; fi; done'
        )
        if result.ok and result.stdout.strip():
            return sorted(result.stdout.split())[-1]  # 多个版本时取最新
        return None

    def discover_fpm_socket(self, start_if_missing: bool = True, settle_seconds: float = 2.0) -> str:
        """
        Locate the php-fpm socket nginx should talk to.

        When nothing is listening yet, php-fpm is started once and the search
        repeated. There is no hardcoded fallback path: a guess that points at
        the wrong PHP version produces a site that 502s, so the failure is
        surfaced as SocketNotFound instead.
        """
        socket_path = self._find_socket()
        if socket_path:
            return socket_path

        if start_if_missing:
            logger.info("   php-fpm socket not found, starting php-fpm and retrying...")
            self.session.run(
                "systemctl list-unit-files --no-legend 'php*-fpm.service' "
                "| awk '{print $1}' | xargs -r systemctl enable --now"
            )
            self._sleep(settle_seconds)
            socket_path = self._find_socket()
            if socket_path:
                return socket_path

        raise SocketNotFound(list(self.socket_globs))

    def has_extension(self, name: str) -> bool:
        result = self.session.run("php -m")
        if not result.ok:
            return False
        loaded = {line.strip().lower() for line in result.stdout.splitlines()}
        return name.lower() in loaded

    def artisan(self, app_dir: str, args: str, user: str = paths.WEB_USER):
        return self.session.run(self.artisan_command(app_dir, args, user))

    @staticmethod
    def artisan_command(app_dir: str, args: str, user: str = paths.WEB_USER) -> str:
        return f"cd {shlex.quote(app_dir)} && " + run_as(user, f"php artisan {args}")


class ComposerClient:
    def __init__(self, session: Union["LocalSession", "SSHSession"]) -> None:
        self.session = session

    def install_dependencies(
        self,
        app_dir: str,
        flags: str = "--no-dev --optimize-autoloader --no-interaction",
        user: str = paths.WEB_USER,
    ):
        return self.session.run(
            run_as(user, f"composer install {flags} -d {shlex.quote(app_dir)}"),
            env={"COMPOSER_HOME": "/tmp/composer-" + user},
        )
