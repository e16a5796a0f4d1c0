"""Data models for the orchestrator module."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .steps import ProvisionStep
    from ..errors import RollbackFailure


class StepOutcome(Enum):
    """步骤执行结果"""
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED = "failed"


class RunState(Enum):
    """Install and uninstall run states."""
    COLLECTING = "collecting"
    PLANNING = "planning"
    CONFIRMING = "confirming"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"
    ROLLING_BACK = "rolling_back"
    ROLLED_BACK = "rolled_back"
    TEARING_DOWN = "tearing_down"
    PARTIALLY_COMPLETED = "partially_completed"
    DECLINED = "declined"


@dataclass
class StepResult:
    """Outcome of applying one step."""
    outcome: StepOutcome
    detail: str = ""
    recoverable: bool = False
    fatal: bool = False
    attempts: int = 1
    tolerated: bool = False  # 非致命失败，记为 Skipped 继续执行
    artifacts: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.outcome is not StepOutcome.FAILED

    @classmethod
    def succeeded(
        cls,
        detail: str = "",
        recoverable: bool = False,
        attempts: int = 1,
        artifacts: Optional[Dict[str, str]] = None,
    ) -> "StepResult":
        """创建成功结果"""
        return cls(
            outcome=StepOutcome.SUCCEEDED,
            detail=detail,
            recoverable=recoverable,
            attempts=attempts,
            artifacts=artifacts or {},
        )

    @classmethod
    def failed(
        cls,
        detail: str,
        recoverable: bool = False,
        attempts: int = 1,
        artifacts: Optional[Dict[str, str]] = None,
    ) -> "StepResult":
        """创建失败结果"""
        return cls(
            outcome=StepOutcome.FAILED,
            detail=detail,
            recoverable=recoverable,
            attempts=attempts,
            artifacts=artifacts or {},
        )

    @classmethod
    def skipped(cls, reason: str) -> "StepResult":
        """创建跳过结果"""
        return cls(outcome=StepOutcome.SKIPPED, detail=reason)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "detail": self.detail,
            "recoverable": self.recoverable,
            "fatal": self.fatal,
            "attempts": self.attempts,
            "tolerated": self.tolerated,
        }


@dataclass
class LedgerEntry:
    step: "ProvisionStep" = field(repr=False)
    result: StepResult
    finished_at: str = field(default_factory=lambda: datetime.now().isoformat())

    @property
    def step_id(self) -> str:
        return self.step.id

    @property
    def description(self) -> str:
        return self.step.description

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step_id": self.step_id,
            "description": self.description,
            "finished_at": self.finished_at,
            **self.result.to_dict(),
        }


@dataclass
class RollbackReport:
    """Which steps were undone and which undo attempts failed."""
    undone: List[str] = field(default_factory=list)
    failures: List["RollbackFailure"] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not self.failures

    def to_dict(self) -> Dict[str, Any]:
        return {
            "undone": list(self.undone),
            "failures": [{"step_id": f.step_id, "detail": f.detail} for f in self.failures],
        }


@dataclass
class ExecutionLedger:
    """
    Ordered record of step outcomes for one run.

    Append-only while the executor moves forward; the rollback coordinator
    reads it in reverse.
    """
    entries: List[LedgerEntry] = field(default_factory=list)
    state: RunState = RunState.EXECUTING
    rollback: Optional[RollbackReport] = None

    def append(self, step: "ProvisionStep", result: StepResult) -> LedgerEntry:
        entry = LedgerEntry(step=step, result=result)
        self.entries.append(entry)
        return entry

    def __iter__(self) -> Iterator[LedgerEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def reversed(self) -> Iterator[LedgerEntry]:
        return reversed(self.entries)

    @property
    def step_ids(self) -> List[str]:
        return [entry.step_id for entry in self.entries]

    @property
    def failed_entry(self) -> Optional[LedgerEntry]:
        for entry in self.entries:
            if entry.result.outcome is StepOutcome.FAILED:
                return entry
        return None

    @property
    def succeeded(self) -> bool:
        return self.failed_entry is None

    @property
    def rolled_back(self) -> bool:
        return self.state is RunState.ROLLED_BACK

    @property
    def tolerated_failures(self) -> List[LedgerEntry]:
        return [entry for entry in self.entries if entry.result.tolerated]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "steps": [entry.to_dict() for entry in self.entries],
            "rollback": self.rollback.to_dict() if self.rollback else None,
        }


@dataclass
class UninstallReport:
    """Result of a teardown run."""
    state: RunState
    removed: List[str] = field(default_factory=list)
    failures: List["RollbackFailure"] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return self.state is RunState.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "removed": list(self.removed),
            "failures": [{"step_id": f.step_id, "detail": f.detail} for f in self.failures],
        }
