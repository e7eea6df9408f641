"""
LedgerRepairService -- the out-of-band repair job.

Responsibility:
    Runs BackfillReconciler phase A, phase B, then VersionRenumberer, and
    reports what changed together with any invariant violations that
    remain (unreconstructable milestones show up here on every run).

Architecture position:
    Ledger > Services -- orchestrator.  Invoked by
    baseline_ledger.cli inside a session_scope().

Idempotence:
    A second run over the same data writes nothing: its report has zero
    synthesized, zero reconstructed and zero renumbered rows.
"""

from uuid import uuid4

from baseline_ledger.domain.dtos import RepairReport
from baseline_ledger.logging_config import LogContext, get_logger
from baseline_ledger.selectors.baseline_history_selector import BaselineHistorySelector
from baseline_ledger.services.backfill_reconciler import BackfillReconciler
from baseline_ledger.services.base import BaseService
from baseline_ledger.services.ledger_writer import VersionLedgerWriter
from baseline_ledger.services.version_renumberer import VersionRenumberer

logger = get_logger("services.ledger_repair")


class LedgerRepairService(BaseService):
    """Backfill then renumber, as one job."""

    def __init__(self, session, clock=None, batch_size: int = 500):
        super().__init__(session, clock)
        writer = VersionLedgerWriter(session, self.clock)
        self.reconciler = BackfillReconciler(
            session, self.clock, writer=writer, batch_size=batch_size
        )
        self.renumberer = VersionRenumberer(session, self.clock, batch_size=batch_size)
        self.selector = BaselineHistorySelector(session)

    def run(self) -> RepairReport:
        """Run the full repair job in the caller's transaction."""
        with LogContext.bind(job_id=uuid4()):
            started_at = self.clock.now()
            logger.info("ledger_repair_started")

            backfill = self.reconciler.run()
            renumber = self.renumberer.run()
            violations = self.selector.find_invariant_violations()

            completed_at = self.clock.now()
            logger.info(
                "ledger_repair_completed",
                extra={
                    "synthesized": len(backfill.synthesized),
                    "reconstructed": len(backfill.reconstructed),
                    "unreconstructable": len(backfill.unreconstructable),
                    "conflicts_absorbed": backfill.conflicts_absorbed,
                    "renumbered": renumber.renumbered,
                    "violations": len(violations),
                },
            )

        return RepairReport(
            backfill=backfill,
            renumber=renumber,
            started_at=started_at,
            completed_at=completed_at,
            violations=violations,
        )
