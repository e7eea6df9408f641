"""
VersionRenumberer -- restores gapless, chronologically ordered versions.

Responsibility:
    Groups ledger rows by milestone, ranks each group (original first,
    amendments by created_at) and rewrites the ``version`` column of every
    row whose stored number differs from its rank.

Architecture position:
    Ledger > Services -- imperative shell, batch job.
    Runs after both BackfillReconciler phases (LedgerRepairService).
    Ranking itself is pure: domain.ordering.plan_renumbering.

Invariants enforced:
    CONTIGUOUS_VERSIONS -- versions become exactly 1..N per milestone.
    CAUSAL_ORDER        -- rank order is original, then created_at.
    WRITE_ONCE          -- only the ``version`` column is touched; the
                           immutability listeners allow nothing else.

Algorithm:
    The (milestone_id, version) unique constraint is checked per statement,
    so moving row A onto row B's number while B still holds it fails.
    Changed rows are therefore first parked at the negation of their final
    number (never used by a real row), flushed, then given their final
    number and flushed again.  Rows already at their rank are not written.
"""

from collections import defaultdict
from uuid import UUID

from sqlalchemy import select

from baseline_ledger.domain.dtos import RenumberResult, VersionChange, VersionKey
from baseline_ledger.domain.ordering import plan_renumbering
from baseline_ledger.logging_config import get_logger
from baseline_ledger.models.baseline_version import BaselineVersion
from baseline_ledger.services.base import BaseService

logger = get_logger("services.version_renumberer")


class VersionRenumberer(BaseService):
    """
    Idempotent version-number repair pass.

    Contract:
        run() on an already-consistent ledger issues no UPDATE and returns
        a RenumberResult with zero changes.
    """

    def __init__(self, session, clock=None, batch_size: int = 500):
        super().__init__(session, clock)
        self.batch_size = batch_size

    def run(self, milestone_ids: list[UUID] | None = None) -> RenumberResult:
        """
        Renumber every milestone's ledger, or only the given milestones.

        Returns:
            RenumberResult listing each version change made.
        """
        if milestone_ids is None:
            milestone_ids = list(
                self.session.execute(
                    select(BaselineVersion.milestone_id)
                    .distinct()
                    .order_by(BaselineVersion.milestone_id)
                ).scalars()
            )

        changes: list[VersionChange] = []
        rows_examined = 0

        for start in range(0, len(milestone_ids), self.batch_size):
            batch = milestone_ids[start:start + self.batch_size]
            groups = self._load_groups(batch)
            for milestone_id in batch:
                rows = groups.get(milestone_id, [])
                rows_examined += len(rows)
                changes.extend(self.renumber_milestone(milestone_id, rows))

        logger.info(
            "renumber_completed",
            extra={
                "milestones_examined": len(milestone_ids),
                "rows_examined": rows_examined,
                "renumbered": len(changes),
            },
        )
        return RenumberResult(
            milestones_examined=len(milestone_ids),
            rows_examined=rows_examined,
            changes=tuple(changes),
        )

    def renumber_milestone(
        self,
        milestone_id: UUID,
        rows: list[BaselineVersion],
    ) -> list[VersionChange]:
        """Apply the rank plan to one milestone's rows; returns changes made."""
        by_id = {row.id: row for row in rows}
        plan = plan_renumbering(
            VersionKey(
                row_id=row.id,
                version=row.version,
                variation_id=row.variation_id,
                created_at=row.created_at,
            )
            for row in rows
        )
        if not plan:
            logger.debug(
                "renumber_skipped",
                extra={"milestone_id": str(milestone_id), "rows": len(rows)},
            )
            return []

        for key, rank in plan:
            by_id[key.row_id].version = -rank
        self.session.flush()

        changes = []
        for key, rank in plan:
            by_id[key.row_id].version = rank
            changes.append(
                VersionChange(
                    row_id=key.row_id,
                    milestone_id=milestone_id,
                    old_version=key.version,
                    new_version=rank,
                )
            )
        self.session.flush()

        for change in changes:
            logger.info(
                "version_renumbered",
                extra={
                    "milestone_id": str(milestone_id),
                    "row_id": str(change.row_id),
                    "old_version": change.old_version,
                    "new_version": change.new_version,
                },
            )
        return changes

    def _load_groups(self, milestone_ids: list[UUID]) -> dict[UUID, list[BaselineVersion]]:
        rows = self.session.execute(
            select(BaselineVersion)
            .where(BaselineVersion.milestone_id.in_(milestone_ids))
            .order_by(BaselineVersion.milestone_id, BaselineVersion.version)
            .execution_options(populate_existing=True)
        ).scalars().all()
        groups: dict[UUID, list[BaselineVersion]] = defaultdict(list)
        for row in rows:
            groups[row.milestone_id].append(row)
        return groups
