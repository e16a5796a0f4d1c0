"""Provisioning steps.

Every step converges when applied again on a host that already has its
effect: an existing checkout is fetched and hard-reset instead of re-cloned,
the database and account use ``IF NOT EXISTS``, and templated files are
overwritten rather than appended to.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import List, Optional, TYPE_CHECKING

from .. import paths
from ..errors import RollbackFailure, StepFailure
from ..gitops import GitCommandError
from ..host.database import create_database_sql, drop_database_sql, drop_user_sql
from ..host.envfile import MINIMAL_TEMPLATE, env_values_for, merge_env
from ..host.packages import packages_for
from ..host.php import SocketNotFound
from ..host.services import render_schedule_entry, render_worker_unit
from ..host.webserver import render_site_config
from ..models import InstallConfig, ManagedFootprint
from ..utils.retry import RetryPolicy
from .models import StepResult

if TYPE_CHECKING:
    from ..host import HostServices

logger = logging.getLogger(__name__)


def describe_failure(result) -> str:
    """Short, single-line reason taken from a command result."""
    text = (getattr(result, "stderr", "") or getattr(result, "stdout", "") or "").strip()
    if not text:
        return f"exit status {getattr(result, 'exit_status', '?')}"
    last_lines = [line for line in text.splitlines() if line.strip()][-3:]
    return " | ".join(last_lines)[-500:]


class ProvisionStep(ABC):
    """One idempotent unit of provisioning work with a best-effort undo."""

    id: str = ""
    description: str = ""
    fatal: bool = True
    tears_down: bool = False  # 卸载时是否执行 undo

    def __init__(self, host: "HostServices", footprint: ManagedFootprint) -> None:
        self.host = host
        self.footprint = footprint

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id!r}>"

    @abstractmethod
    def apply(self, config: InstallConfig) -> StepResult:
        """Bring the host to this step's target state."""

    def undo(self, config: InstallConfig, result: Optional[StepResult] = None) -> Optional[RollbackFailure]:
        """
        Revert this step. Never raises.

        ``result`` is the ledger result when rolling back a run; it is None
        for an operator-requested uninstall, which removes the step's
        resources regardless of who created them.

        Returns:
            None on success, otherwise the RollbackFailure that was logged.
        """
        try:
            self._revert(config, result)
        except RollbackFailure as failure:
            logger.warning(f"   ⚠️ {failure}")
            return failure
        except Exception as exc:
            failure = RollbackFailure(self.id, str(exc))
            logger.warning(f"   ⚠️ {failure}")
            return failure
        return None

    def _revert(self, config: InstallConfig, result: Optional[StepResult]) -> None:
        pass

    def _check(self, command_result, action: str) -> None:
        """Abort `apply` when a collaborator command failed."""
        if not command_result.ok:
            raise StepFailure(self.id, f"{action} failed: {describe_failure(command_result)}", fatal=self.fatal)

    def _require(self, command_result, action: str) -> None:
        if not command_result.ok:
            raise RollbackFailure(self.id, f"{action}: {describe_failure(command_result)}")

    @property
    def app_dir(self) -> str:
        return self.footprint.app_dir

    @property
    def env_path(self) -> str:
        return f"{self.app_dir}/.env"


class SystemPackagesStep(ProvisionStep):
    id = "system-packages"
    description = "Install nginx, PHP-FPM, database server, Redis, certbot and Composer"

    def apply(self, config: InstallConfig) -> StepResult:
        packages = self.host.packages
        self._check(packages.update(), "apt-get update")
        names = packages_for(config.db_engine)
        self._check(packages.install(names), "apt-get install")
        self._check(packages.ensure_composer(), "Composer installation")

        # 共享软件包永不卸载，因此不可回滚
        return StepResult.succeeded(f"{len(names)} packages present, composer available")


class FirewallStep(ProvisionStep):
    id = "firewall"
    description = "Allow OpenSSH and Nginx Full through ufw"
    fatal = False

    RULES = ("OpenSSH", "Nginx Full")

    def apply(self, config: InstallConfig) -> StepResult:
        for rule in self.RULES:
            allowed = self.host.firewall.allow(rule)
            if not allowed.ok:
                return StepResult.failed(f"ufw allow '{rule}' failed: {describe_failure(allowed)}")
        enabled = self.host.firewall.enable()
        if not enabled.ok:
            return StepResult.failed(f"ufw enable failed: {describe_failure(enabled)}")
        return StepResult.succeeded("ufw enabled with OpenSSH and Nginx Full allowed")


class RepositoryStep(ProvisionStep):
    id = "repository"
    description = "Clone or update the application repository"
    tears_down = True

    def apply(self, config: InstallConfig) -> StepResult:
        try:
            clone = self.host.git.clone_or_update(config.repo_url, self.app_dir)
        except GitCommandError as exc:
            return StepResult.failed(str(exc))

        if clone.cloned:
            return StepResult.succeeded(
                f"Cloned {config.repo_url} into {self.app_dir} at {clone.commit_sha[:12]}",
                recoverable=True,
            )
        # 已有检出：只做 fetch + reset，回滚时不应删除
        return StepResult.succeeded(
            f"Existing checkout at {self.app_dir} reset to {clone.commit_sha[:12]}",
            recoverable=False,
        )

    def _revert(self, config: InstallConfig, result: Optional[StepResult]) -> None:
        target = self.footprint.claim(self.app_dir, "directory")
        self._require(self.host.files.remove_tree(target), f"remove {target}")


class PhpExtensionsStep(ProvisionStep):
    id = "php-extensions"
    description = "Make sure the PHP cache-client extension is loaded"
    fatal = False

    REQUIRED = ("redis",)

    def apply(self, config: InstallConfig) -> StepResult:
        php = self.host.php
        missing = [ext for ext in self.REQUIRED if not php.has_extension(ext)]
        if not missing:
            return StepResult.succeeded("Extensions present: " + ", ".join(self.REQUIRED))

        installed = self.host.packages.install([f"php-{ext}" for ext in missing])
        if not installed.ok:
            return StepResult.failed(
                f"Installing {', '.join(missing)} failed: {describe_failure(installed)}"
            )
        self.host.services.restart("php*-fpm")

        still_missing = [ext for ext in missing if not php.has_extension(ext)]
        if still_missing:
            return StepResult.failed("Extensions still not loaded: " + ", ".join(still_missing))
        return StepResult.succeeded("Installed extensions: " + ", ".join(missing))


class DependenciesStep(ProvisionStep):
    id = "dependencies"
    description = "Install PHP dependencies with Composer"

    def apply(self, config: InstallConfig) -> StepResult:
        self._check(self.host.files.chown_tree(self.app_dir), f"chown {self.app_dir}")
        self._check(self.host.composer.install_dependencies(self.app_dir), "composer install")
        return StepResult.succeeded("Composer dependencies installed (--no-dev)")


class EnvironmentFileStep(ProvisionStep):
    id = "environment-file"
    description = "Materialize the application .env file"

    def apply(self, config: InstallConfig) -> StepResult:
        env = self.host.env_file(self.env_path)
        files = self.host.files
        artifacts = {}

        if env.exists():
            # 已存在则原地替换键值，保留 APP_KEY 等其他设置
            base = env.read_text() or ""
            artifacts["previous_text"] = base
            if not files.exists(env.backup_path):
                files.copy(env.path, env.backup_path, overwrite=False)
            origin = "existing .env"
        else:
            example = files.read(env.example_path)
            base = example if example is not None else MINIMAL_TEMPLATE
            artifacts["created"] = "true"
            origin = ".env.example" if example is not None else "built-in template"

        env.write(merge_env(base, env_values_for(config)))
        owned = files.chown_tree(env.path)
        if not owned.ok:
            return StepResult.failed(
                f"chown {env.path} failed: {describe_failure(owned)}",
                recoverable=True,
                artifacts=artifacts,
            )
        return StepResult.succeeded(
            f"{env.path} written from {origin}", recoverable=True, artifacts=artifacts
        )

    def _revert(self, config: InstallConfig, result: Optional[StepResult]) -> None:
        if result is None:
            return  # 卸载时随应用目录一并删除
        env = self.host.env_file(self.env_path)
        previous = result.artifacts.get("previous_text")
        if previous is not None:
            env.write(previous)
        elif result.artifacts.get("created"):
            self._require(self.host.files.remove(env.path), f"remove {env.path}")


class DatabaseStep(ProvisionStep):
    id = "database"
    description = "Create the application database and account"
    tears_down = True

    def apply(self, config: InstallConfig) -> StepResult:
        database = self.host.database
        existed = database.database_exists(
            config.db_name,
            host=config.db_host,
            port=config.db_port,
            root_password=config.mysql_root_password,
        )
        created = database.for_config(config, create_database_sql(config))
        if not created.ok:
            return StepResult.failed(f"Database setup failed: {describe_failure(created)}")

        auth = "socket" if config.uses_socket_auth else "password"
        if existed:
            return StepResult.succeeded(
                f"Database {config.db_name} already existed; account {config.db_user} converged ({auth} auth)",
                recoverable=False,
            )
        return StepResult.succeeded(
            f"Database {config.db_name} and account {config.db_user} created ({auth} auth)",
            recoverable=True,
        )

    def _revert(self, config: InstallConfig, result: Optional[StepResult]) -> None:
        db_name = self.footprint.claim(config.db_name, "database")
        db_user = self.footprint.claim(config.db_user, "database user")
        errors: List[str] = []
        dropped = self.host.database.for_config(config, drop_database_sql(db_name))
        if not dropped.ok:
            errors.append(f"drop database {db_name}: {describe_failure(dropped)}")
        dropped_user = self.host.database.for_config(config, drop_user_sql(db_user, config.db_user_host))
        if not dropped_user.ok:
            errors.append(f"drop user {db_user}: {describe_failure(dropped_user)}")
        if errors:
            raise RollbackFailure(self.id, "; ".join(errors))


class MigrationsStep(ProvisionStep):
    id = "migrations"
    description = "Generate the app key, run migrations and warm caches"

    OPTIONAL_COMMANDS = ("config:cache", "route:cache", "storage:link")

    def apply(self, config: InstallConfig) -> StepResult:
        php = self.host.php
        values = self.host.env_file(self.env_path).read()
        if not values.get("APP_KEY"):
            keyed = php.artisan(self.app_dir, "key:generate --force")
            if not keyed.ok:
                return StepResult.failed(f"key:generate failed: {describe_failure(keyed)}")

        migrated = php.artisan(self.app_dir, "migrate --force")
        if not migrated.ok:
            return StepResult.failed(f"migrate failed: {describe_failure(migrated)}")

        warnings = []
        for command in self.OPTIONAL_COMMANDS:
            outcome = php.artisan(self.app_dir, command)
            if not outcome.ok:
                logger.warning(f"   ⚠️ artisan {command} failed: {describe_failure(outcome)}")
                warnings.append(command)

        permissions = self.host.files.fix_permissions(self.app_dir)
        if not permissions.ok:
            logger.warning(f"   ⚠️ Setting permissions failed: {describe_failure(permissions)}")
            warnings.append("permissions")

        detail = "Migrations applied"
        if warnings:
            detail += " (non-critical failures: " + ", ".join(warnings) + ")"
        return StepResult.succeeded(detail)


class WebServerStep(ProvisionStep):
    id = "web-server"
    description = "Write the nginx site, validate and reload"
    tears_down = True

    def apply(self, config: InstallConfig) -> StepResult:
        web = self.host.web
        site = self.footprint.site_name
        try:
            socket_path = self.host.php.discover_fpm_socket()
        except SocketNotFound as exc:
            return StepResult.failed(str(exc))

        artifacts = {}
        if web.site_exists(site):
            previous = self.host.files.read(str(paths.site_available(site)))
            if previous is not None:
                artifacts["previous_text"] = previous

        web.write_site(site, render_site_config(config.domain, self.app_dir, socket_path, site))
        linked = web.enable_site(site)
        checked = web.validate_config() if linked.ok else linked
        if not checked.ok:
            self._restore(site, artifacts)
            return StepResult.failed(f"nginx rejected the site: {describe_failure(checked)}")

        reloaded = web.reload()
        if not reloaded.ok:
            return StepResult.failed(
                f"nginx reload failed: {describe_failure(reloaded)}",
                recoverable=True,
                artifacts=artifacts,
            )
        return StepResult.succeeded(
            f"Site '{site}' serving {config.domain} via {socket_path}",
            recoverable=True,
            artifacts=artifacts,
        )

    def _restore(self, site: str, artifacts: dict) -> None:
        previous = artifacts.get("previous_text")
        if previous is not None:
            self.host.web.write_site(site, previous)
        else:
            self.host.web.remove_site(site)

    def _revert(self, config: InstallConfig, result: Optional[StepResult]) -> None:
        site = self.footprint.claim(self.footprint.site_name, "nginx site")
        if result is not None and "previous_text" in result.artifacts:
            self.host.web.write_site(site, result.artifacts["previous_text"])
        else:
            self._require(self.host.web.remove_site(site), f"remove site {site}")
        self._require(self.host.web.reload(), "reload nginx")


class WorkerServiceStep(ProvisionStep):
    id = "worker-service"
    description = "Register and start the queue worker service"
    fatal = False
    tears_down = True

    def apply(self, config: InstallConfig) -> StepResult:
        services = self.host.services
        name = self.footprint.service_name
        unit = render_worker_unit(self.app_dir, config.db_engine.service_name)

        registered = services.register_service(name, unit)
        if not registered.ok:
            return StepResult.failed(f"daemon-reload failed: {describe_failure(registered)}", recoverable=True)
        enabled = services.enable(name)
        if not enabled.ok:
            return StepResult.failed(f"enabling {name} failed: {describe_failure(enabled)}", recoverable=True)
        # 重新运行时让 worker 加载新代码
        restarted = services.restart(name)
        if not restarted.ok:
            return StepResult.failed(f"starting {name} failed: {describe_failure(restarted)}", recoverable=True)
        return StepResult.succeeded(f"{name}.service enabled and running", recoverable=True)

    def _revert(self, config: InstallConfig, result: Optional[StepResult]) -> None:
        name = self.footprint.claim(self.footprint.service_name, "service")
        if not self.host.session.exists(str(paths.unit_file(name))):
            return
        self.host.services.disable(name)
        self._require(self.host.services.remove_service(name), f"remove {name}.service")


class ScheduleStep(ProvisionStep):
    id = "schedule"
    description = "Install the Laravel scheduler cron entry"
    fatal = False
    tears_down = True

    def apply(self, config: InstallConfig) -> StepResult:
        schedule_id = self.footprint.schedule_id
        self.host.scheduler.install_schedule(schedule_id, render_schedule_entry(self.app_dir))
        return StepResult.succeeded(f"{paths.cron_file(schedule_id)} installed", recoverable=True)

    def _revert(self, config: InstallConfig, result: Optional[StepResult]) -> None:
        schedule_id = self.footprint.claim(self.footprint.schedule_id, "schedule")
        self._require(self.host.scheduler.remove_schedule(schedule_id), f"remove cron {schedule_id}")


class CertificateStep(ProvisionStep):
    id = "certificate"
    description = "Obtain a Let's Encrypt certificate and enable HTTPS"
    fatal = False
    tears_down = True

    def __init__(
        self,
        host: "HostServices",
        footprint: ManagedFootprint,
        retry: Optional[RetryPolicy] = None,
    ) -> None:
        super().__init__(host, footprint)
        self.retry = retry or RetryPolicy()

    def apply(self, config: InstallConfig) -> StepResult:
        if config.is_local_domain:
            return StepResult.skipped(f"Local domain {config.domain}; certificate not requested")
        if not config.admin_email:
            return StepResult.skipped("No SSL email provided; run certbot later to enable HTTPS")

        probe = self.host.site_probe
        if probe is not None and not probe.is_serving(config.domain):
            logger.warning(
                f"   ⚠️ http://{config.domain}/ is not reachable from here; "
                "issuance will fail unless DNS points at this host"
            )

        cert_name = self.footprint.cert_name
        outcome = self.retry.call(
            lambda: self.host.certbot.issue(config.domain, config.admin_email, cert_name),
            label="certbot",
        )
        if outcome.succeeded:
            return StepResult.succeeded(
                f"Certificate '{cert_name}' issued for {config.domain}",
                recoverable=True,
                attempts=outcome.attempts,
            )
        return StepResult.failed(
            f"certbot failed after {outcome.attempts} attempts: {describe_failure(outcome.result)}; "
            f"retry with: certbot --nginx -d {config.domain} -m {config.admin_email}",
            attempts=outcome.attempts,
        )

    def _revert(self, config: InstallConfig, result: Optional[StepResult]) -> None:
        cert_name = self.footprint.claim(self.footprint.cert_name, "certificate")
        if not self.host.certbot.has_certificate(cert_name):
            return
        self._require(self.host.certbot.delete(cert_name), f"delete certificate {cert_name}")
