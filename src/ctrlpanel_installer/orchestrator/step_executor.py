"""Step executor: runs the planned steps in order and records the ledger."""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, TYPE_CHECKING

from ..errors import StepFailure
from ..interaction import InputType, InteractionRequest, QuestionCategory
from ..models import InstallConfig
from .models import ExecutionLedger, RunState, StepOutcome, StepResult
from .rollback import RollbackCoordinator

if TYPE_CHECKING:
    from ..interaction import UserInteractionHandler
    from .steps import ProvisionStep

logger = logging.getLogger(__name__)


class StepExecutor:
    """
    步骤执行器

    Runs steps strictly in order until:
    - every step has finished (failures of best-effort steps are tolerated)
    - a fatal step fails, after which rollback is offered to the operator
    """

    def __init__(
        self,
        interaction_handler: "UserInteractionHandler",
        rollback_coordinator: Optional[RollbackCoordinator] = None,
        on_step_finished: Optional[Callable[[ExecutionLedger], None]] = None,
    ) -> None:
        self.interaction_handler = interaction_handler
        self.rollback_coordinator = rollback_coordinator or RollbackCoordinator()
        self.on_step_finished = on_step_finished

    def run(self, steps: List["ProvisionStep"], config: InstallConfig) -> ExecutionLedger:
        ledger = ExecutionLedger(state=RunState.EXECUTING)
        total = len(steps)

        for index, step in enumerate(steps, 1):
            logger.info(f"📍 Step {index}/{total}: {step.description}")
            logger.info(f"   Id: {step.id} ({'fatal' if step.fatal else 'best-effort'})")

            result = self.execute(step, config)
            ledger.append(step, result)
            if self.on_step_finished:
                self.on_step_finished(ledger)
            logger.info("")

            if result.outcome is StepOutcome.FAILED:
                ledger.state = RunState.FAILED
                self._offer_rollback(ledger, config)
                return ledger

        ledger.state = RunState.COMPLETED
        return ledger

    def execute(self, step: "ProvisionStep", config: InstallConfig) -> StepResult:
        """Apply one step; exceptions and best-effort failures are folded into the result."""
        try:
            result = step.apply(config)
        except StepFailure as exc:
            result = StepResult.failed(exc.detail)
        except Exception as exc:
            logger.debug(f"   {step.id} raised", exc_info=True)
            result = StepResult.failed(f"{type(exc).__name__}: {exc}")

        result.fatal = step.fatal
        if result.outcome is StepOutcome.FAILED and not step.fatal:
            result.outcome = StepOutcome.SKIPPED
            result.tolerated = True
            logger.warning(f"   ⚠️ Non-critical failure, continuing: {result.detail}")
        elif result.outcome is StepOutcome.FAILED:
            logger.error(f"   ❌ {result.detail}")
        elif result.outcome is StepOutcome.SKIPPED:
            logger.info(f"   ⏭️ Skipped: {result.detail}")
        else:
            suffix = f" (after {result.attempts} attempts)" if result.attempts > 1 else ""
            logger.info(f"   ✅ {result.detail}{suffix}")
        return result

    def _offer_rollback(self, ledger: ExecutionLedger, config: InstallConfig) -> None:
        failed = ledger.failed_entry
        undoable = [entry.step_id for entry in ledger.reversed() if entry.result.recoverable]
        if not undoable:
            logger.info("Nothing this run created can be rolled back")
            return

        request = InteractionRequest(
            question=f"Step '{failed.step_id}' failed. Roll back what this run created?",
            input_type=InputType.CONFIRM,
            category=QuestionCategory.ERROR_RECOVERY,
            context="Will undo, in order: " + ", ".join(undoable),
            default="y",
            key="rollback",
        )
        response = self.interaction_handler.ask(request)
        if not response.confirmed:
            logger.warning("⚠️ Rollback declined; the host is left as it is")
            return

        self.rollback_coordinator.rollback(ledger, config)
