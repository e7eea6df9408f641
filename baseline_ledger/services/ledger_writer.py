"""
VersionLedgerWriter -- appends rows to the baseline version ledger.

Responsibility:
    Writes the version-1 row when a milestone baseline is first locked by
    both signatures, and one amendment row per milestone whenever a
    variation touching it is applied.  Also the single insert path used by
    the BackfillReconciler, so every ledger insert shares the same locking,
    SAVEPOINT and conflict handling.

Architecture position:
    Ledger > Services -- imperative shell.
    Called by BaselineSigningService, VariationApplicationService and
    BackfillReconciler.

Invariants enforced:
    SINGLE_ORIGINAL -- existence check + partial unique index; a second
                       original is never written.
    WRITE_ONCE      -- rows are only ever inserted here.

Concurrency:
    The milestone row is locked (``SELECT ... FOR UPDATE``) before the
    existence check so concurrent writers for the same milestone serialize.
    The insert runs inside a SAVEPOINT; an IntegrityError from the
    (milestone_id, version), (milestone_id, variation_id) or single-original
    constraints is absorbed when the row we wanted already exists, and
    retried with a fresh provisional version otherwise.

    Version numbers written here are provisional.  VersionRenumberer makes
    them final.
"""

from collections.abc import Callable, Sequence
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from baseline_ledger.db.types import round_money
from baseline_ledger.domain.dtos import LedgerWriteResult, WriteStatus
from baseline_ledger.domain.ordering import (
    next_provisional_version,
    original_billable,
    original_created_at,
    original_insert_version,
)
from baseline_ledger.exceptions import (
    MilestoneNotFoundError,
    MissingSignatureError,
    VariationMilestoneMismatchError,
    VariationNotAppliedError,
    VersionAllocationConflictError,
)
from baseline_ledger.logging_config import get_logger
from baseline_ledger.models.baseline_version import BaselineVersion
from baseline_ledger.models.milestone import Milestone
from baseline_ledger.models.variation import Variation, VariationMilestone, VariationStatus
from baseline_ledger.services.base import BaseService

logger = get_logger("services.ledger_writer")

MAX_INSERT_ATTEMPTS = 3


class VersionLedgerWriter(BaseService):
    """
    Append-only writer for BaselineVersion rows.

    Contract:
        ``record_original_baseline`` is idempotent per milestone and
        ``record_amendment`` is idempotent per (milestone, variation): a
        repeated call returns the existing row with ALREADY_RECORDED (or
        CONFLICT_ABSORBED when a concurrent transaction won the insert).

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT compute final version numbers.
    """

    def record_original_baseline(self, milestone: Milestone) -> LedgerWriteResult:
        """
        Record version 1 -- the original signed commitment -- of a milestone.

        Preconditions:
            Both supplier and customer signatures are present.

        Postconditions:
            Exactly one original row exists for the milestone, carrying its
            current baseline fields and signatures, created_at = the earlier
            signature time.

        Raises:
            MissingSignatureError: If either signature is absent.
        """
        missing = milestone.missing_signatures
        if missing:
            raise MissingSignatureError(str(milestone.id), missing)

        created_at = original_created_at(
            milestone.supplier_signed_at,
            milestone.customer_signed_at,
            now=self.clock.now(),
        )
        return self.insert_original(
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
            created_at=created_at,
        )

    def record_amendment(
        self,
        variation_milestone: VariationMilestone,
        variation: Variation,
    ) -> LedgerWriteResult:
        """
        Record the amendment a variation made to one milestone's baseline.

        Preconditions:
            - ``variation.status`` is applied.
            - ``variation_milestone`` belongs to ``variation`` and references
              a live milestone whose baseline already holds the post-change
              values.

        Postconditions:
            One row for (milestone, variation) exists with the milestone's
            post-change baseline, the variation's signatures, and
            created_at = variation.applied_at.  Its version is provisional.

        Raises:
            VariationNotAppliedError: If the variation is not applied.
            VariationMilestoneMismatchError: If the impact row belongs to
                another variation or has no milestone.
            MilestoneNotFoundError: If the milestone is missing or deleted.
        """
        status = VariationStatus(variation.status)
        if status != VariationStatus.APPLIED:
            raise VariationNotAppliedError(str(variation.id), status.value)
        if variation_milestone.variation_id != variation.id:
            raise VariationMilestoneMismatchError(
                str(variation_milestone.id),
                str(variation.id),
                "impact row belongs to another variation",
            )
        if variation_milestone.milestone_id is None:
            raise VariationMilestoneMismatchError(
                str(variation_milestone.id),
                str(variation.id),
                "impact row does not reference a milestone",
            )

        milestone = self.session.get(Milestone, variation_milestone.milestone_id)
        if milestone is None or milestone.is_deleted:
            raise MilestoneNotFoundError(str(variation_milestone.milestone_id))

        self._lock_milestone(milestone.id)

        existing = self._find_row(milestone.id, variation.id)
        if existing is not None:
            logger.debug(
                "amendment_already_recorded",
                extra={
                    "milestone_id": str(milestone.id),
                    "variation_id": str(variation.id),
                    "version": existing.version,
                },
            )
            return self._result(WriteStatus.ALREADY_RECORDED, existing)

        result = self._insert(
            milestone_id=milestone.id,
            variation_id=variation.id,
            choose_version=next_provisional_version,
            values={
                "baseline_start_date": milestone.baseline_start_date,
                "baseline_end_date": milestone.baseline_end_date,
                "baseline_billable": round_money(
                    original_billable(milestone.baseline_billable, milestone.billable)
                ),
                "supplier_signed_by": variation.supplier_signed_by,
                "supplier_signed_at": variation.supplier_signed_at,
                "customer_signed_by": variation.customer_signed_by,
                "customer_signed_at": variation.customer_signed_at,
                "created_at": variation.applied_at or self.clock.now(),
            },
        )
        if result.is_new:
            logger.info(
                "amendment_recorded",
                extra={
                    "milestone_id": str(milestone.id),
                    "variation_id": str(variation.id),
                    "version": result.version,
                },
            )
        return result

    def insert_original(
        self,
        *,
        milestone_id: UUID,
        baseline_start_date: date | None,
        baseline_end_date: date | None,
        baseline_billable: Decimal,
        supplier_signed_by: UUID | None,
        supplier_signed_at: datetime | None,
        customer_signed_by: UUID | None,
        customer_signed_at: datetime | None,
        created_at: datetime,
    ) -> LedgerWriteResult:
        """
        Insert an original (variation-less) row unless one already exists.

        Shared by record_original_baseline and the backfill reconciler.  The
        row goes in at version 1, or -- when an amendment already holds
        version 1 -- one past the highest version, for the renumbering pass
        to move to the front.
        """
        self._lock_milestone(milestone_id)

        existing = self._find_row(milestone_id, None)
        if existing is not None:
            logger.debug(
                "original_baseline_already_recorded",
                extra={"milestone_id": str(milestone_id), "version": existing.version},
            )
            return self._result(WriteStatus.ALREADY_RECORDED, existing)

        result = self._insert(
            milestone_id=milestone_id,
            variation_id=None,
            choose_version=original_insert_version,
            values={
                "baseline_start_date": baseline_start_date,
                "baseline_end_date": baseline_end_date,
                "baseline_billable": round_money(baseline_billable),
                "supplier_signed_by": supplier_signed_by,
                "supplier_signed_at": supplier_signed_at,
                "customer_signed_by": customer_signed_by,
                "customer_signed_at": customer_signed_at,
                "created_at": created_at,
            },
        )
        if result.is_new:
            logger.info(
                "original_baseline_recorded",
                extra={
                    "milestone_id": str(milestone_id),
                    "version": result.version,
                    "created_at": created_at,
                },
            )
        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _insert(
        self,
        *,
        milestone_id: UUID,
        variation_id: UUID | None,
        choose_version: Callable[[Sequence[int]], int],
        values: dict,
    ) -> LedgerWriteResult:
        for attempt in range(1, MAX_INSERT_ATTEMPTS + 1):
            version = choose_version(self._existing_versions(milestone_id))
            row = BaselineVersion(
                milestone_id=milestone_id,
                variation_id=variation_id,
                version=version,
                **values,
            )

            try:
                with self.session.begin_nested():
                    self.session.add(row)
                    self.session.flush()
            except IntegrityError:
                existing = self._find_row(milestone_id, variation_id)
                if existing is not None:
                    logger.warning(
                        "ledger_insert_conflict_absorbed",
                        extra={
                            "milestone_id": str(milestone_id),
                            "variation_id": str(variation_id) if variation_id else None,
                            "version": existing.version,
                        },
                    )
                    return self._result(WriteStatus.CONFLICT_ABSORBED, existing)
                if not self._version_taken(milestone_id, version):
                    # Not a collision on this ledger (e.g. a dangling foreign key)
                    raise
                logger.debug(
                    "ledger_version_conflict_retry",
                    extra={
                        "milestone_id": str(milestone_id),
                        "version": version,
                        "attempt": attempt,
                    },
                )
                continue
            return self._result(WriteStatus.RECORDED, row)

        raise VersionAllocationConflictError(str(milestone_id), MAX_INSERT_ATTEMPTS)

    def _lock_milestone(self, milestone_id: UUID) -> None:
        # Row lock serializes ledger writers per milestone (no-op on SQLite)
        self.session.execute(
            select(Milestone.id).where(Milestone.id == milestone_id).with_for_update()
        )

    def _find_row(self, milestone_id: UUID, variation_id: UUID | None) -> BaselineVersion | None:
        stmt = select(BaselineVersion).where(BaselineVersion.milestone_id == milestone_id)
        if variation_id is None:
            stmt = stmt.where(BaselineVersion.variation_id.is_(None))
        else:
            stmt = stmt.where(BaselineVersion.variation_id == variation_id)
        return self.session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalars().first()

    def _version_taken(self, milestone_id: UUID, version: int) -> bool:
        return self.session.execute(
            select(BaselineVersion.id).where(
                BaselineVersion.milestone_id == milestone_id,
                BaselineVersion.version == version,
            )
        ).first() is not None

    def _existing_versions(self, milestone_id: UUID) -> list[int]:
        return list(
            self.session.execute(
                select(BaselineVersion.version).where(
                    BaselineVersion.milestone_id == milestone_id
                )
            ).scalars()
        )

    @staticmethod
    def _result(status: WriteStatus, row: BaselineVersion) -> LedgerWriteResult:
        return LedgerWriteResult(
            status=status,
            milestone_id=row.milestone_id,
            version_id=row.id,
            version=row.version,
            variation_id=row.variation_id,
        )
