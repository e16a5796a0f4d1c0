"""Orchestrator module for step-based provisioning.

- StepPlanner: expands an InstallConfig into the fixed ordered step list
- StepExecutor: runs steps in order and records the ExecutionLedger
- RollbackCoordinator: undoes recoverable steps of a failed run, latest first
- UninstallCoordinator: operator-requested teardown of the managed footprint
- InstallOrchestrator: the install state machine and its exit codes
"""

from .models import (
    StepOutcome,
    RunState,
    StepResult,
    LedgerEntry,
    ExecutionLedger,
    RollbackReport,
    UninstallReport,
)
from .steps import ProvisionStep
from .planner import StepPlanner, STEP_IDS
from .rollback import RollbackCoordinator
from .step_executor import StepExecutor
from .uninstall import UninstallCoordinator
from .run_log import RunLog
from .orchestrator import (
    InstallOrchestrator,
    run_uninstall,
    EXIT_SUCCESS,
    EXIT_FAILURE,
    EXIT_DECLINED,
)

__all__ = [
    "StepOutcome",
    "RunState",
    "StepResult",
    "LedgerEntry",
    "ExecutionLedger",
    "RollbackReport",
    "UninstallReport",
    "ProvisionStep",
    "StepPlanner",
    "STEP_IDS",
    "RollbackCoordinator",
    "StepExecutor",
    "UninstallCoordinator",
    "RunLog",
    "InstallOrchestrator",
    "run_uninstall",
    "EXIT_SUCCESS",
    "EXIT_FAILURE",
    "EXIT_DECLINED",
]
