"""Expands an InstallConfig into the fixed, ordered step list."""

from __future__ import annotations

from typing import List, Optional, TYPE_CHECKING

from ..models import InstallConfig, ManagedFootprint
from ..utils.retry import RetryPolicy
from .steps import (
    CertificateStep,
    DatabaseStep,
    DependenciesStep,
    EnvironmentFileStep,
    FirewallStep,
    MigrationsStep,
    PhpExtensionsStep,
    ProvisionStep,
    RepositoryStep,
    ScheduleStep,
    SystemPackagesStep,
    WebServerStep,
    WorkerServiceStep,
)

if TYPE_CHECKING:
    from ..host import HostServices

STEP_ORDER = (
    SystemPackagesStep,
    FirewallStep,
    RepositoryStep,
    PhpExtensionsStep,
    DependenciesStep,
    EnvironmentFileStep,
    DatabaseStep,
    MigrationsStep,
    WebServerStep,
    WorkerServiceStep,
    ScheduleStep,
    CertificateStep,
)

STEP_IDS = tuple(step_cls.id for step_cls in STEP_ORDER)


class StepPlanner:
    def __init__(self, host: "HostServices", certificate_retry: Optional[RetryPolicy] = None) -> None:
        self.host = host
        self.certificate_retry = certificate_retry

    def plan(self, config: InstallConfig) -> List[ProvisionStep]:
        footprint = ManagedFootprint.for_config(config)
        steps: List[ProvisionStep] = []
        for step_cls in STEP_ORDER:
            if step_cls is CertificateStep:
                steps.append(CertificateStep(self.host, footprint, retry=self.certificate_retry))
            else:
                steps.append(step_cls(self.host, footprint))
        return steps

    def teardown_steps(self, config: InstallConfig) -> List[ProvisionStep]:
        """Steps whose undo removes a footprint resource, latest first."""
        return [step for step in reversed(self.plan(config)) if step.tears_down]
