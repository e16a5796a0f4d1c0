"""Install orchestrator: drives one install run from input to exit code."""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, TYPE_CHECKING

from ..collector import InputCollector, InputSource
from ..errors import ConfirmationDeclined, ValidationError
from ..host.probe import HostFacts, HostProbe
from ..interaction import InputType, InteractionRequest, QuestionCategory
from ..models import InstallConfig, ManagedFootprint
from .models import ExecutionLedger, RunState, StepOutcome
from .planner import StepPlanner
from .rollback import RollbackCoordinator
from .run_log import RunLog
from .step_executor import StepExecutor
from .uninstall import UninstallCoordinator

if TYPE_CHECKING:
    from ..host import HostServices
    from ..interaction import UserInteractionHandler
    from .steps import ProvisionStep

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_DECLINED = 2


class InstallOrchestrator:
    """
    安装编排器

    Collecting -> Planning -> Confirming -> Executing -> Completed, or
    Failed -> RollingBack -> RolledBack when a fatal step fails and the
    operator accepts the rollback. Returns the process exit code.
    """

    def __init__(
        self,
        host: "HostServices",
        interaction_handler: "UserInteractionHandler",
        collector: Optional[InputCollector] = None,
        planner: Optional[StepPlanner] = None,
        rollback_coordinator: Optional[RollbackCoordinator] = None,
        host_probe: Optional[HostProbe] = None,
        log_dir: Optional[str] = None,
        output: Callable[[str], None] = print,
    ) -> None:
        self.host = host
        self.interaction_handler = interaction_handler
        self.collector = collector or InputCollector()
        self.planner = planner or StepPlanner(host)
        self.host_probe = host_probe or HostProbe()
        self.run_log = RunLog(log_dir)
        self.output = output

        self.step_executor = StepExecutor(
            interaction_handler=interaction_handler,
            rollback_coordinator=rollback_coordinator,
            on_step_finished=self._record_ledger,
        )

        self.state = RunState.COLLECTING
        self.config: Optional[InstallConfig] = None
        self.ledger: Optional[ExecutionLedger] = None

    def run(self, source: InputSource) -> int:
        self.state = RunState.COLLECTING
        try:
            config = self.collector.collect(source)
        except ValidationError as exc:
            logger.error(f"❌ Invalid input: {exc}")
            return EXIT_FAILURE
        except ConfirmationDeclined as exc:
            logger.info(f"🚫 {exc}")
            self.state = RunState.DECLINED
            return EXIT_DECLINED
        self.config = config

        self.run_log.start("install", self.host.session.target, config.summary())

        facts = self._preflight()
        if facts is None:
            self.state = RunState.FAILED
            self.run_log.finalize("failed")
            return EXIT_FAILURE

        self.state = RunState.PLANNING
        steps = self.planner.plan(config)
        self.run_log.update(
            plan=[{"step_id": s.id, "description": s.description, "fatal": s.fatal} for s in steps]
        )

        self.state = RunState.CONFIRMING
        self._show_plan(config, steps)
        if not self._confirm_plan():
            logger.info("🚫 Installation cancelled; nothing was changed")
            self.state = RunState.DECLINED
            self.run_log.finalize("declined")
            return EXIT_DECLINED

        self.state = RunState.EXECUTING
        logger.info("")
        logger.info("=" * 60)
        logger.info("🚀 INSTALLING CTRLPANEL")
        logger.info("=" * 60)
        ledger = self.step_executor.run(steps, config)
        self.ledger = ledger
        self.state = ledger.state
        self._record_ledger(ledger)

        if ledger.succeeded:
            self.run_log.finalize("success")
            self._show_final_summary(config, ledger)
            self._offer_admin_account(config)
            return EXIT_SUCCESS

        self.run_log.finalize(ledger.state.value)
        self._show_failure(ledger)
        return EXIT_FAILURE

    def _preflight(self) -> Optional[HostFacts]:
        """Root is required; anything other than Ubuntu only gets a warning."""
        facts = self.host_probe.collect(self.host.session)
        self.run_log.update(host_info=facts.to_payload())
        logger.info(f"🖥️  Target: {facts.hostname} ({facts.os_release})")

        if not facts.is_root:
            logger.error("❌ The installer must run as root (or through passwordless sudo)")
            return None
        if not facts.has_systemd:
            logger.error("❌ systemd is required to run the queue worker")
            return None
        if not facts.is_ubuntu:
            logger.warning(f"⚠️ Only Ubuntu is supported; detected '{facts.os_id}', continuing anyway")
        return facts

    def _show_plan(self, config: InstallConfig, steps: List["ProvisionStep"]) -> None:
        logger.info("")
        logger.info("Installation summary:")
        for key, value in config.summary().items():
            logger.info(f"  {key:<16} {value}")
        logger.info("")
        logger.info("Steps:")
        for i, step in enumerate(steps, 1):
            marker = "" if step.fatal else " (best-effort)"
            logger.info(f"  {i:>2}. {step.description}{marker}")
        if not config.wants_certificate:
            logger.info("  HTTPS will not be configured (local domain or no SSL email)")

    def _confirm_plan(self) -> bool:
        request = InteractionRequest(
            question="Proceed with the installation?",
            input_type=InputType.CONFIRM,
            category=QuestionCategory.CONFIRMATION,
            default="y",
            key="proceed",
        )
        return self.interaction_handler.ask(request).confirmed

    def _record_ledger(self, ledger: ExecutionLedger) -> None:
        self.run_log.update(
            steps=[entry.to_dict() for entry in ledger],
            rollback=ledger.rollback.to_dict() if ledger.rollback else None,
        )

    def _show_final_summary(self, config: InstallConfig, ledger: ExecutionLedger) -> None:
        logger.info("=" * 60)
        logger.info("🎉 CtrlPanel installed successfully!")
        logger.info("=" * 60)

        certificate = next((e for e in ledger if e.step_id == "certificate"), None)
        https = certificate is not None and certificate.result.outcome is StepOutcome.SUCCEEDED
        url = config.app_url if https else f"http://{config.domain}"

        # 明文密码只在这里输出到终端，不写入日志
        summary = config.summary(reveal_password=True)
        lines = [
            "",
            f"  Panel URL:        {url}",
            f"  Database:         {summary['db_name']} on {summary['db_host']}:{summary['db_port']}",
            f"  Database user:    {summary['db_user']}",
            f"  Database pass:    {summary['db_password']}",
        ]
        tolerated = ledger.tolerated_failures
        if tolerated:
            lines.append("")
            lines.append("  Completed with warnings:")
            for entry in tolerated:
                lines.append(f"    ⚠️ {entry.step_id}: {entry.result.detail}")
        lines.extend([
            "",
            "  Next: create the first admin account with",
            f"    cd {ManagedFootprint.for_config(config).app_dir} && sudo -u www-data php artisan panel:admin",
            "",
        ])
        for line in lines:
            self.output(line)
        self.interaction_handler.notify(f"CtrlPanel is available at {url}", "success")

    def _offer_admin_account(self, config: InstallConfig) -> None:
        """panel:admin asks for the account details itself, so it needs the operator's terminal."""
        session = self.host.session
        if not (self.interaction_handler.has_terminal and hasattr(session, "run_attached")):
            return
        request = InteractionRequest(
            question="Create the first admin account now?",
            input_type=InputType.CONFIRM,
            category=QuestionCategory.CONFIRMATION,
            default="y",
            key="create_admin",
        )
        if not self.interaction_handler.ask(request).confirmed:
            return

        app_dir = ManagedFootprint.for_config(config).app_dir
        exit_status = session.run_attached(self.host.php.artisan_command(app_dir, "panel:admin"))
        if exit_status == 0:
            logger.info("👤 Admin account created")
        else:
            logger.warning(f"⚠️ panel:admin exited with code {exit_status}; run the command above to retry")

    def _show_failure(self, ledger: ExecutionLedger) -> None:
        failed = ledger.failed_entry
        logger.error("=" * 60)
        logger.error(f"❌ Installation failed at '{failed.step_id}': {failed.result.detail}")
        if ledger.rollback is None:
            logger.error("   No rollback was performed")
        elif ledger.rollback.clean:
            logger.error("   Rollback completed: " + (", ".join(ledger.rollback.undone) or "nothing to undo"))
        else:
            for failure in ledger.rollback.failures:
                logger.error(f"   ⚠️ {failure}")
        logger.error("=" * 60)
        self.interaction_handler.notify(f"Installation failed at '{failed.step_id}'", "error")


def run_uninstall(
    host: "HostServices",
    interaction_handler: "UserInteractionHandler",
    coordinator: Optional[UninstallCoordinator] = None,
    log_dir: Optional[str] = None,
) -> int:
    """Confirming -> TearingDown -> Completed | PartiallyCompleted, as an exit code."""
    coordinator = coordinator or UninstallCoordinator(host, interaction_handler)
    try:
        config = coordinator.recover_config()
    except ValidationError as exc:
        logger.error(f"❌ Invalid input: {exc}")
        return EXIT_FAILURE

    try:
        # 确认之前不写日志：取消卸载时不留下任何文件
        report = coordinator.uninstall(config)
    except ConfirmationDeclined as exc:
        logger.info(f"🚫 {exc}")
        return EXIT_DECLINED

    run_log = RunLog(log_dir)
    run_log.start("uninstall", host.session.target, config.summary())
    run_log.update(
        steps=[{"step_id": step_id, "outcome": "succeeded"} for step_id in report.removed]
        + [{"step_id": f.step_id, "outcome": "failed", "detail": f.detail} for f in report.failures]
    )
    run_log.finalize(report.state.value)
    return EXIT_SUCCESS if report.complete else EXIT_FAILURE
