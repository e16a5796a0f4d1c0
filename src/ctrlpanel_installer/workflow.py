"""High-level workflow: open a session on the target and run install or uninstall."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Union

from .collector import InputCollector, InteractiveSource, NonInteractiveSource
from .config import AppConfig
from .host import HostServices, SiteProbe
from .interaction import AutoResponseHandler, CLIInteractionHandler, UserInteractionHandler
from .local import LocalSession
from .models import InstallOptions
from .orchestrator import (
    EXIT_FAILURE,
    InstallOrchestrator,
    StepPlanner,
    UninstallCoordinator,
    run_uninstall,
)
from .ssh import SSHConnectionError, SSHCredentials, SSHSession
from .utils.retry import RetryPolicy

logger = logging.getLogger(__name__)


@dataclass
class InstallRequest:
    """Install request captured from the CLI."""

    options: InstallOptions
    interactive: bool = True


class InstallerWorkflow:
    """Builds the collaborators for the configured target and runs one command."""

    def __init__(
        self,
        config: AppConfig,
        interaction_handler: Optional[UserInteractionHandler] = None,
    ) -> None:
        self.config = config
        if interaction_handler is not None:
            self.interaction_handler = interaction_handler
        elif config.interaction.assume_yes or config.interaction.mode == "auto":
            self.interaction_handler = AutoResponseHandler(always_confirm=True)
        else:
            self.interaction_handler = CLIInteractionHandler()

    def run_install(self, request: InstallRequest) -> int:
        session = self._open_session()
        if session is None:
            return EXIT_FAILURE

        try:
            certificate = self.config.certificate
            host = HostServices.for_session(session, site_probe=SiteProbe(timeout=certificate.probe_timeout))
            planner = StepPlanner(
                host,
                certificate_retry=RetryPolicy(
                    max_attempts=certificate.max_attempts,
                    delay=certificate.retry_delay,
                ),
            )
            orchestrator = InstallOrchestrator(
                host=host,
                interaction_handler=self.interaction_handler,
                collector=InputCollector(self.config.install),
                planner=planner,
                log_dir=self.config.logging.log_dir,
            )
            if request.interactive:
                source = InteractiveSource(self.interaction_handler, request.options)
            else:
                source = NonInteractiveSource(request.options)
            return orchestrator.run(source)
        finally:
            session.close()

    def run_uninstall(self, options: Optional[InstallOptions] = None) -> int:
        session = self._open_session()
        if session is None:
            return EXIT_FAILURE

        try:
            host = HostServices.for_session(session)
            coordinator = UninstallCoordinator(
                host,
                self.interaction_handler,
                defaults=self.config.install,
                overrides=options if options is not None else self.config.install_options(),
            )
            return run_uninstall(
                host,
                self.interaction_handler,
                coordinator=coordinator,
                log_dir=self.config.logging.log_dir,
            )
        finally:
            session.close()

    def _open_session(self) -> Optional[Union[LocalSession, SSHSession]]:
        target = self.config.target
        if not target.host:
            logger.info("🏠 Target: this machine")
            session = LocalSession(working_dir="/")
            session.connect()
            return session

        creds = SSHCredentials.from_target(target)
        logger.info(f"🔗 Target: {creds.username}@{creds.host}:{creds.port}")
        try:
            creds.validate()
        except ValueError as exc:
            logger.error(f"Invalid SSH credentials: {exc}")
            return None

        session = SSHSession(creds)
        try:
            session.connect()
        except SSHConnectionError as exc:
            logger.error(f"Failed to establish SSH connection: {exc}")
            return None
        return session
