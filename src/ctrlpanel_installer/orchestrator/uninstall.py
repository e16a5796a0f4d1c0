"""Operator-requested teardown of the managed footprint."""

from __future__ import annotations

import logging
from typing import Optional, TYPE_CHECKING
from urllib.parse import urlparse

from .. import paths
from ..collector import validate_domain, validate_identifier, validate_port
from ..config import InstallDefaults
from ..errors import ConfirmationDeclined, ValidationError
from ..interaction import InputType, InteractionRequest, QuestionCategory
from ..models import DbEngine, InstallConfig, InstallOptions, ManagedFootprint
from .models import RunState, UninstallReport
from .planner import StepPlanner

if TYPE_CHECKING:
    from ..host import HostServices
    from ..interaction import UserInteractionHandler

logger = logging.getLogger(__name__)


def _domain_from_url(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    parsed = urlparse(url if "://" in url else f"https://{url}")
    return parsed.hostname or None


def _validate_db_host(value: str) -> str:
    host = value.strip()
    if not host or any(ch.isspace() for ch in host):
        raise ValidationError("db_host", f"{value!r} is not a valid host")
    return host


class UninstallCoordinator:
    """
    Tear the application down using the same steps that built it.

    Only the undo side of the steps that own a footprint resource runs, in
    reverse plan order: certificate, schedule, worker, site, database and
    finally the application directory (which holds the .env read first).
    """

    def __init__(
        self,
        host: "HostServices",
        interaction_handler: "UserInteractionHandler",
        planner: Optional[StepPlanner] = None,
        defaults: Optional[InstallDefaults] = None,
        overrides: Optional[InstallOptions] = None,
    ) -> None:
        self.host = host
        self.interaction_handler = interaction_handler
        self.planner = planner or StepPlanner(host)
        self.defaults = defaults or InstallDefaults()
        self.overrides = overrides or InstallOptions()

    def recover_config(self) -> InstallConfig:
        """
        Work out what to remove.

        Values the operator supplied win; ``<app_dir>/.env`` fills the unset
        ones and the built-in defaults come last. An invalid explicit value
        raises ValidationError, an invalid .env value is ignored.
        """
        d = self.defaults
        given = self.overrides
        env_path = str(paths.env_file())
        values = self.host.env_file(env_path).read()
        if values:
            logger.info(f"📄 Recovered settings from {env_path}")
        else:
            logger.warning(f"⚠️ {env_path} not found or empty; using default names")

        def pick(name: str, key: str, recorded: Optional[str], fallback, check):
            explicit = getattr(given, name)
            if explicit is not None:
                return check(str(explicit))
            if not recorded:
                return fallback
            try:
                return check(recorded)
            except ValidationError as exc:
                logger.warning(f"⚠️ Ignoring {key} from .env ({exc}); using {fallback}")
                return fallback

        try:
            engine = DbEngine.parse(given.db_engine or d.db_engine)
        except ValueError:
            engine = DbEngine.MARIADB

        db_password = given.db_password if given.db_password is not None else values.get("DB_PASSWORD", "")
        return InstallConfig(
            domain=pick("domain", "APP_URL", _domain_from_url(values.get("APP_URL")), d.domain, validate_domain),
            admin_email="",
            db_engine=engine,
            db_host=pick("db_host", "DB_HOST", values.get("DB_HOST"), d.db_host, _validate_db_host),
            db_port=pick("db_port", "DB_PORT", values.get("DB_PORT"), d.db_port, validate_port),
            db_name=pick(
                "db_name", "DB_DATABASE", values.get("DB_DATABASE"), d.db_name,
                lambda v: validate_identifier("db_name", v),
            ),
            db_user=pick(
                "db_user", "DB_USERNAME", values.get("DB_USERNAME"), d.db_user,
                lambda v: validate_identifier("db_user", v),
            ),
            db_password=db_password,
            mysql_root_password=given.mysql_root_password or d.mysql_root_password,
            repo_url=d.repo_url,
        )

    def uninstall(self, config: Optional[InstallConfig] = None) -> UninstallReport:
        if config is None:
            config = self.recover_config()
        footprint = ManagedFootprint.for_config(config)
        steps = self.planner.teardown_steps(config)

        removal = [
            f"certificate '{footprint.cert_name}'",
            f"cron file {paths.cron_file(footprint.schedule_id)}",
            f"service {footprint.service_name}.service",
            f"nginx site '{footprint.site_name}' ({config.domain})",
            f"database '{config.db_name}' and user '{config.db_user}'@'{config.db_user_host}'",
            f"directory {footprint.app_dir}",
        ]
        request = InteractionRequest(
            question="Remove CtrlPanel from this host? This cannot be undone.",
            input_type=InputType.CONFIRM,
            category=QuestionCategory.CONFIRMATION,
            context="Will remove: " + "; ".join(removal) + ". Shared packages are kept.",
            default="n",
            key="uninstall",
        )
        if not self.interaction_handler.ask(request).confirmed:
            raise ConfirmationDeclined("Uninstall cancelled by operator")

        report = UninstallReport(state=RunState.TEARING_DOWN)
        total = len(steps)
        for index, step in enumerate(steps, 1):
            logger.info(f"🗑️ [{index}/{total}] Removing {step.id}")
            failure = step.undo(config)
            if failure is None:
                report.removed.append(step.id)
                logger.info("   ✅ Removed")
            else:
                report.failures.append(failure)

        report.state = RunState.PARTIALLY_COMPLETED if report.failures else RunState.COMPLETED
        if report.complete:
            logger.info("✅ CtrlPanel removed")
        else:
            logger.warning(
                "⚠️ Uninstall partially completed; remove manually: "
                + ", ".join(f.step_id for f in report.failures)
            )
        return report
