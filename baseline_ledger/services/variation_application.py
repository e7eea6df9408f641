"""
VariationApplicationService -- the variation-approval trigger point.

Responsibility:
    Applies an approved variation: writes each affected milestone's new
    baseline, marks the variation applied, and records one ledger
    amendment per affected milestone.

Architecture position:
    Ledger > Services -- imperative shell.
    Delegates ledger writes to VersionLedgerWriter.record_amendment.

Failure modes:
    - VariationNotFoundError for an unknown or soft-deleted variation.
    - VariationNotApprovedError unless the variation is approved.
    - MilestoneNotFoundError when an impact row points at a soft-deleted
      milestone.  Nothing is flushed before this check.
"""

from uuid import UUID

from sqlalchemy import func, select

from baseline_ledger.domain.dtos import ApplicationResult
from baseline_ledger.exceptions import (
    MilestoneNotFoundError,
    VariationNotApprovedError,
    VariationNotFoundError,
)
from baseline_ledger.logging_config import LogContext, get_logger
from baseline_ledger.models.baseline_version import BaselineVersion
from baseline_ledger.models.milestone import Milestone
from baseline_ledger.models.variation import Variation, VariationStatus
from baseline_ledger.services.base import BaseService
from baseline_ledger.services.ledger_writer import VersionLedgerWriter

logger = get_logger("services.variation_application")


class VariationApplicationService(BaseService):
    """Applies approved variations to milestone baselines."""

    def __init__(self, session, clock=None, writer: VersionLedgerWriter | None = None):
        super().__init__(session, clock)
        self.writer = writer or VersionLedgerWriter(session, self.clock)

    def apply_variation(self, variation_id: UUID) -> ApplicationResult:
        """
        Apply an approved variation.

        Postconditions:
            - Each affected milestone holds the variation's new baseline.
            - The variation is applied with applied_at = clock time.
            - Each affected milestone has an amendment row for the
              variation; baseline_version_before/after are stamped on the
              impact rows with the provisional numbering.
        """
        variation = self.session.get(Variation, variation_id)
        if variation is None or variation.is_deleted:
            raise VariationNotFoundError(str(variation_id))

        status = VariationStatus(variation.status)
        if status != VariationStatus.APPROVED:
            raise VariationNotApprovedError(str(variation_id), status.value)

        impacts = [vm for vm in variation.affected_milestones if vm.milestone_id is not None]
        milestones: dict[UUID, Milestone] = {}
        for vm in impacts:
            milestone = self.session.get(Milestone, vm.milestone_id)
            if milestone is None or milestone.is_deleted:
                raise MilestoneNotFoundError(str(vm.milestone_id))
            milestones[vm.id] = milestone

        with LogContext.bind(variation_id=variation.id):
            for vm in impacts:
                milestone = milestones[vm.id]
                if vm.new_baseline_start is not None:
                    milestone.baseline_start_date = vm.new_baseline_start
                if vm.new_baseline_end is not None:
                    milestone.baseline_end_date = vm.new_baseline_end
                if vm.new_baseline_cost is not None:
                    milestone.baseline_billable = vm.new_baseline_cost
                    milestone.billable = vm.new_baseline_cost

            applied_at = self.clock.now()
            variation.status = VariationStatus.APPLIED.value
            variation.applied_at = applied_at
            self.session.flush()

            amendments = []
            for vm in impacts:
                before = self._current_version(vm.milestone_id)
                result = self.writer.record_amendment(vm, variation)
                vm.baseline_version_before = before or 1
                vm.baseline_version_after = result.version
                amendments.append(result)
            self.session.flush()

            logger.info(
                "variation_applied",
                extra={
                    "variation_ref": variation.variation_ref,
                    "milestones": len(impacts),
                    "applied_at": applied_at,
                },
            )

        return ApplicationResult(
            variation_id=variation.id,
            applied_at=applied_at,
            amendments=tuple(amendments),
        )

    def _current_version(self, milestone_id: UUID) -> int:
        value = self.session.execute(
            select(func.max(BaselineVersion.version)).where(
                BaselineVersion.milestone_id == milestone_id
            )
        ).scalar()
        return value or 0
