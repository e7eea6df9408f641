"""
BackfillReconciler -- brings a pre-existing ledger into compliance.

Responsibility:
    Guarantees that every milestone with ledger history, and every locked
    milestone, has an original (version-1) row.  Two phases, always run in
    order:

    Phase A (synthesis):
        Live, locked milestones with ZERO ledger rows get an original row
        built from the milestone's current baseline and signatures.

    Phase B (reconstruction):
        Live milestones that HAVE ledger rows but no original row at
        version 1 get an original rebuilt from the pre-change snapshot of
        the earliest-applied variation touching them.  Milestones with no
        applied variation are reported as unreconstructable and left as
        they are.

Architecture position:
    Ledger > Services -- imperative shell, batch job.
    Invoked by LedgerRepairService before VersionRenumberer.

Invariants enforced:
    SINGLE_ORIGINAL     -- every insert goes through
                           VersionLedgerWriter.insert_original, which
                           re-checks under a milestone row lock.
    BILLABLE_NEVER_NULL -- via domain.ordering.original_billable.

Failure modes:
    - Unreconstructable milestone: WARNING log + entry in
      BackfillResult.unreconstructable; never raised.
    - Concurrent insert of the same original: absorbed by the writer and
      counted in BackfillResult.conflicts_absorbed.

Idempotence:
    Every write is conditioned on the state at write time.  A second run
    against the same data writes nothing.
"""

from uuid import UUID

from sqlalchemy import and_, exists, select

from baseline_ledger.domain.dtos import (
    BackfillResult,
    LedgerWriteResult,
    UnreconstructableMilestone,
    WriteStatus,
)
from baseline_ledger.domain.ordering import original_billable, original_created_at
from baseline_ledger.logging_config import LogContext, get_logger
from baseline_ledger.models.baseline_version import BaselineVersion
from baseline_ledger.models.milestone import Milestone
from baseline_ledger.models.variation import Variation, VariationMilestone, VariationStatus
from baseline_ledger.services.base import BaseService
from baseline_ledger.services.ledger_writer import VersionLedgerWriter

logger = get_logger("services.backfill_reconciler")

UNRECONSTRUCTABLE_REASON = "no applied variation carries a pre-change baseline snapshot"


def _chunks(ids: list[UUID], size: int):
    for start in range(0, len(ids), size):
        yield ids[start:start + size]


class BackfillReconciler(BaseService):
    """
    Two-phase backfill of missing original ledger rows.

    Contract:
        run() executes phase A then phase B and returns a BackfillResult.
        Phase B only considers milestones still lacking a true version-1
        after phase A.

    Non-goals:
        - Does NOT renumber.  Reconstructed originals may land at a
          temporary version until VersionRenumberer runs.
        - Does NOT guess baselines for unreconstructable milestones.
    """

    def __init__(
        self,
        session,
        clock=None,
        writer: VersionLedgerWriter | None = None,
        batch_size: int = 500,
    ):
        super().__init__(session, clock)
        self.writer = writer or VersionLedgerWriter(session, self.clock)
        self.batch_size = batch_size

    def run(self) -> BackfillResult:
        """Run phase A, then phase B; combine their results."""
        phase_a = self.run_phase_a()
        phase_b = self.run_phase_b()
        return BackfillResult(
            synthesized=phase_a.synthesized,
            reconstructed=phase_b.reconstructed,
            conflicts_absorbed=phase_a.conflicts_absorbed + phase_b.conflicts_absorbed,
            unreconstructable=phase_b.unreconstructable,
        )

    # ------------------------------------------------------------------
    # Phase A
    # ------------------------------------------------------------------

    def run_phase_a(self) -> BackfillResult:
        """
        Synthesize originals for locked milestones with an empty ledger.

        Postconditions:
            Every live, locked milestone that had zero ledger rows now has
            exactly one, at version 1.
        """
        candidates = self._phase_a_candidates()
        synthesized: list[UUID] = []
        conflicts = 0

        for batch in _chunks(candidates, self.batch_size):
            milestones = self.session.execute(
                select(Milestone).where(Milestone.id.in_(batch))
            ).scalars().all()
            for milestone in milestones:
                with LogContext.bind(milestone_id=milestone.id):
                    result = self._synthesize(milestone)
                if result.status == WriteStatus.RECORDED:
                    synthesized.append(milestone.id)
                elif result.status == WriteStatus.CONFLICT_ABSORBED:
                    conflicts += 1

        logger.info(
            "backfill_phase_a_completed",
            extra={
                "candidates": len(candidates),
                "synthesized": len(synthesized),
                "conflicts_absorbed": conflicts,
            },
        )
        return BackfillResult(synthesized=tuple(synthesized), conflicts_absorbed=conflicts)

    def _phase_a_candidates(self) -> list[UUID]:
        has_rows = exists().where(BaselineVersion.milestone_id == Milestone.id)
        stmt = (
            select(Milestone.id)
            .where(
                Milestone.is_deleted.is_(False),
                Milestone.baseline_locked.is_(True),
                ~has_rows,
            )
            .order_by(Milestone.created_at, Milestone.id)
        )
        return list(self.session.execute(stmt).scalars())

    def _synthesize(self, milestone: Milestone) -> LedgerWriteResult:
        return self.writer.insert_original(
            milestone_id=milestone.id,
            baseline_start_date=milestone.baseline_start_date,
            baseline_end_date=milestone.baseline_end_date,
            baseline_billable=original_billable(
                milestone.baseline_billable, milestone.billable
            ),
            supplier_signed_by=milestone.supplier_signed_by,
            supplier_signed_at=milestone.supplier_signed_at,
            customer_signed_by=milestone.customer_signed_by,
            customer_signed_at=milestone.customer_signed_at,
            created_at=original_created_at(
                milestone.supplier_signed_at,
                milestone.customer_signed_at,
                now=self.clock.now(),
            ),
        )

    # ------------------------------------------------------------------
    # Phase B
    # ------------------------------------------------------------------

    def run_phase_b(self) -> BackfillResult:
        """
        Reconstruct originals for milestones whose history lacks one.

        Postconditions:
            Each candidate either gained an original row rebuilt from its
            earliest-applied variation, or is listed as unreconstructable.
        """
        candidates = self._phase_b_candidates()
        reconstructed: list[UUID] = []
        unreconstructable: list[UnreconstructableMilestone] = []
        conflicts = 0

        for batch in _chunks(candidates, self.batch_size):
            milestones = self.session.execute(
                select(Milestone).where(Milestone.id.in_(batch))
            ).scalars().all()
            for milestone in milestones:
                with LogContext.bind(milestone_id=milestone.id):
                    outcome = self._reconstruct(milestone)
                if isinstance(outcome, UnreconstructableMilestone):
                    unreconstructable.append(outcome)
                elif outcome is None:
                    continue
                elif outcome.status == WriteStatus.RECORDED:
                    reconstructed.append(milestone.id)
                elif outcome.status == WriteStatus.CONFLICT_ABSORBED:
                    conflicts += 1

        logger.info(
            "backfill_phase_b_completed",
            extra={
                "candidates": len(candidates),
                "reconstructed": len(reconstructed),
                "unreconstructable": len(unreconstructable),
                "conflicts_absorbed": conflicts,
            },
        )
        return BackfillResult(
            reconstructed=tuple(reconstructed),
            conflicts_absorbed=conflicts,
            unreconstructable=tuple(unreconstructable),
        )

    def _phase_b_candidates(self) -> list[UUID]:
        has_rows = exists().where(BaselineVersion.milestone_id == Milestone.id)
        has_true_original = exists().where(
            and_(
                BaselineVersion.milestone_id == Milestone.id,
                BaselineVersion.version == 1,
                BaselineVersion.variation_id.is_(None),
            )
        )
        stmt = (
            select(Milestone.id)
            .where(
                Milestone.is_deleted.is_(False),
                has_rows,
                ~has_true_original,
            )
            .order_by(Milestone.created_at, Milestone.id)
        )
        return list(self.session.execute(stmt).scalars())

    def _reconstruct(
        self, milestone: Milestone
    ) -> LedgerWriteResult | UnreconstructableMilestone | None:
        existing_original = self.session.execute(
            select(BaselineVersion.version).where(
                BaselineVersion.milestone_id == milestone.id,
                BaselineVersion.variation_id.is_(None),
            )
        ).scalar_one_or_none()
        if existing_original is not None:
            # Original present at the wrong position; renumbering moves it
            logger.debug(
                "original_awaiting_renumber",
                extra={"version": existing_original},
            )
            return None

        earliest = self.find_earliest_applied(milestone.id)
        if earliest is None:
            versions = tuple(
                self.session.execute(
                    select(BaselineVersion.version)
                    .where(BaselineVersion.milestone_id == milestone.id)
                    .order_by(BaselineVersion.version)
                ).scalars()
            )
            logger.warning(
                "milestone_unreconstructable",
                extra={
                    "milestone_ref": milestone.milestone_ref,
                    "existing_versions": list(versions),
                    "reason": UNRECONSTRUCTABLE_REASON,
                },
            )
            return UnreconstructableMilestone(
                milestone_id=milestone.id,
                milestone_ref=milestone.milestone_ref,
                existing_versions=versions,
                reason=UNRECONSTRUCTABLE_REASON,
            )

        variation_milestone, variation = earliest
        billable = variation_milestone.original_baseline_cost
        if billable is None:
            billable = original_billable(milestone.baseline_billable, milestone.billable)

        result = self.writer.insert_original(
            milestone_id=milestone.id,
            baseline_start_date=variation_milestone.original_baseline_start,
            baseline_end_date=variation_milestone.original_baseline_end,
            baseline_billable=billable,
            supplier_signed_by=milestone.supplier_signed_by,
            supplier_signed_at=milestone.supplier_signed_at,
            customer_signed_by=milestone.customer_signed_by,
            customer_signed_at=milestone.customer_signed_at,
            created_at=original_created_at(
                milestone.supplier_signed_at,
                milestone.customer_signed_at,
                now=self.clock.now(),
                variation_signed_at=variation.supplier_signed_at,
            ),
        )
        if result.is_new:
            logger.info(
                "original_baseline_reconstructed",
                extra={
                    "variation_id": str(variation.id),
                    "variation_ref": variation.variation_ref,
                    "version": result.version,
                },
            )
        return result

    def find_earliest_applied(
        self, milestone_id: UUID
    ) -> tuple[VariationMilestone, Variation] | None:
        """
        The impact row of the earliest-applied variation touching a milestone.

        Ordered by applied_at, then the variation's created_at, then its id.
        Variations without applied_at sort last.  Returns None when no live
        applied variation touches the milestone.
        """
        stmt = (
            select(VariationMilestone, Variation)
            .join(Variation, VariationMilestone.variation_id == Variation.id)
            .where(
                VariationMilestone.milestone_id == milestone_id,
                Variation.status == VariationStatus.APPLIED.value,
                Variation.is_deleted.is_(False),
            )
            .order_by(
                Variation.applied_at.is_(None),
                Variation.applied_at,
                Variation.created_at,
                Variation.id,
            )
            .limit(1)
        )
        row = self.session.execute(stmt).first()
        if row is None:
            return None
        return row[0], row[1]
