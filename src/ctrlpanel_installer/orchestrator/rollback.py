"""Best-effort reversal of a failed run."""

from __future__ import annotations

import logging

from ..models import InstallConfig
from .models import ExecutionLedger, RollbackReport, RunState

logger = logging.getLogger(__name__)


class RollbackCoordinator:
    """
    Undo recoverable ledger entries, latest first.

    Each undo is attempted exactly once and independently of the others; a
    failed undo is recorded in the report and the walk continues.
    """

    def rollback(self, ledger: ExecutionLedger, config: InstallConfig) -> RollbackReport:
        report = RollbackReport()
        ledger.state = RunState.ROLLING_BACK

        logger.info("")
        logger.info("🔄 Rolling back completed steps...")
        for entry in ledger.reversed():
            if not entry.result.recoverable:
                logger.debug(f"   {entry.step_id}: nothing to undo")
                continue

            logger.info(f"   ↩️ Undoing {entry.step_id}")
            failure = entry.step.undo(config, entry.result)
            if failure is None:
                report.undone.append(entry.step_id)
            else:
                report.failures.append(failure)

        ledger.rollback = report
        ledger.state = RunState.ROLLED_BACK

        if report.clean:
            logger.info(f"✅ Rollback finished ({len(report.undone)} step(s) undone)")
        else:
            logger.warning(
                f"⚠️ Rollback finished with {len(report.failures)} failure(s): "
                + ", ".join(f.step_id for f in report.failures)
            )
        return report
