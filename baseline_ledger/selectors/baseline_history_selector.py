"""
Module: baseline_ledger.selectors.baseline_history_selector
Responsibility: Read-only queries over the baseline version ledger -- a
    milestone's version history, a single version, the current version
    number, and invariant checks across milestones.
Architecture position: Ledger > Selectors.  Returns domain DTOs only.

Invariants checked (find_invariant_violations):
    SINGLE_ORIGINAL, CONTIGUOUS_VERSIONS, CAUSAL_ORDER -- via
    domain.ordering.sequence_violations, applied to each milestone that
    has at least one ledger row.
"""

from collections import defaultdict
from uuid import UUID

from sqlalchemy import func, select

from baseline_ledger.domain.dtos import BaselineVersionInfo, InvariantViolation, VersionKey
from baseline_ledger.domain.ordering import sequence_violations
from baseline_ledger.models.baseline_version import BaselineVersion
from baseline_ledger.models.variation import Variation
from baseline_ledger.selectors.base import BaseSelector


class BaselineHistorySelector(BaseSelector):
    """Selector for baseline version history."""

    def get_history(self, milestone_id: UUID) -> tuple[BaselineVersionInfo, ...]:
        """
        All ledger rows of a milestone, version ascending.

        Amendment rows carry the reference and title of their variation.
        """
        rows = self.session.execute(
            self._info_query()
            .where(BaselineVersion.milestone_id == milestone_id)
            .order_by(BaselineVersion.version)
        ).all()
        return tuple(self._to_info(version, ref, title) for version, ref, title in rows)

    def get_version(self, milestone_id: UUID, version: int) -> BaselineVersionInfo | None:
        """One version of a milestone's baseline, or None."""
        row = self.session.execute(
            self._info_query().where(
                BaselineVersion.milestone_id == milestone_id,
                BaselineVersion.version == version,
            )
        ).first()
        if row is None:
            return None
        return self._to_info(*row)

    def current_version(self, milestone_id: UUID) -> int:
        """Highest version recorded for a milestone; 0 when the ledger is empty."""
        value = self.session.execute(
            select(func.max(BaselineVersion.version)).where(
                BaselineVersion.milestone_id == milestone_id
            )
        ).scalar()
        return value or 0

    def find_invariant_violations(
        self, milestone_id: UUID | None = None
    ) -> tuple[InvariantViolation, ...]:
        """
        Check the ordering invariants for one milestone, or for every
        milestone with ledger rows.

        Returns an empty tuple for a consistent ledger.
        """
        stmt = select(
            BaselineVersion.milestone_id,
            BaselineVersion.id,
            BaselineVersion.version,
            BaselineVersion.variation_id,
            BaselineVersion.created_at,
        ).order_by(BaselineVersion.milestone_id, BaselineVersion.version)
        if milestone_id is not None:
            stmt = stmt.where(BaselineVersion.milestone_id == milestone_id)

        groups: dict[UUID, list[VersionKey]] = defaultdict(list)
        for m_id, row_id, version, variation_id, created_at in self.session.execute(stmt):
            groups[m_id].append(
                VersionKey(
                    row_id=row_id,
                    version=version,
                    variation_id=variation_id,
                    created_at=created_at,
                )
            )

        violations = []
        for m_id, keys in groups.items():
            for invariant, detail in sequence_violations(keys):
                violations.append(
                    InvariantViolation(milestone_id=m_id, invariant=invariant, detail=detail)
                )
        return tuple(violations)

    @staticmethod
    def _info_query():
        return select(
            BaselineVersion,
            Variation.variation_ref,
            Variation.title,
        ).outerjoin(Variation, BaselineVersion.variation_id == Variation.id)

    @staticmethod
    def _to_info(
        row: BaselineVersion,
        variation_ref: str | None,
        variation_title: str | None,
    ) -> BaselineVersionInfo:
        return BaselineVersionInfo(
            id=row.id,
            milestone_id=row.milestone_id,
            version=row.version,
            variation_id=row.variation_id,
            baseline_start_date=row.baseline_start_date,
            baseline_end_date=row.baseline_end_date,
            baseline_billable=row.baseline_billable,
            supplier_signed_by=row.supplier_signed_by,
            supplier_signed_at=row.supplier_signed_at,
            customer_signed_by=row.customer_signed_by,
            customer_signed_at=row.customer_signed_at,
            created_at=row.created_at,
            variation_ref=variation_ref,
            variation_title=variation_title,
        )
