"""
BaselineSigningService -- the milestone-lock trigger point.

Responsibility:
    Records a supplier or customer signature on a milestone baseline.  The
    second signature locks the baseline and writes its original ledger row
    in the same transaction.  An administrative reset unlocks the
    baseline and clears the signatures so it can be signed again.

Architecture position:
    Ledger > Services -- imperative shell.
    Called by the surrounding milestone workflow; delegates the ledger
    write to VersionLedgerWriter.

Failure modes:
    - InvalidSignerRoleError for a role other than supplier/customer.
    - MilestoneNotFoundError for an unknown or soft-deleted milestone.
"""

from datetime import datetime
from uuid import UUID

from baseline_ledger.domain.clock import as_utc
from baseline_ledger.domain.dtos import SignerRole, SigningResult
from baseline_ledger.exceptions import InvalidSignerRoleError, MilestoneNotFoundError
from baseline_ledger.logging_config import LogContext, get_logger
from baseline_ledger.models.milestone import Milestone
from baseline_ledger.services.base import BaseService
from baseline_ledger.services.ledger_writer import VersionLedgerWriter

logger = get_logger("services.baseline_signing")


class BaselineSigningService(BaseService):
    """Signs milestone baselines and locks them on the second signature."""

    def __init__(self, session, clock=None, writer: VersionLedgerWriter | None = None):
        super().__init__(session, clock)
        self.writer = writer or VersionLedgerWriter(session, self.clock)

    def sign_baseline(
        self,
        milestone_id: UUID,
        signer_role: str,
        user_id: UUID,
        signed_at: datetime | None = None,
    ) -> SigningResult:
        """
        Sign a milestone baseline as supplier or customer.

        Postconditions:
            The role's signed_by/signed_at fields are set.  If the other
            party had already signed, the baseline is locked and its
            original ledger row exists.
        """
        try:
            role = SignerRole(signer_role)
        except ValueError:
            raise InvalidSignerRoleError(str(signer_role)) from None

        milestone = self.session.get(Milestone, milestone_id)
        if milestone is None or milestone.is_deleted:
            raise MilestoneNotFoundError(str(milestone_id))

        signed_at = as_utc(signed_at) if signed_at is not None else self.clock.now()
        with LogContext.bind(milestone_id=milestone_id, actor_id=user_id):
            if role == SignerRole.SUPPLIER:
                milestone.supplier_signed_by = user_id
                milestone.supplier_signed_at = signed_at
            else:
                milestone.customer_signed_by = user_id
                milestone.customer_signed_at = signed_at
            self.session.flush()

            logger.info(
                "baseline_signed",
                extra={"role": role.value, "signed_at": signed_at},
            )

            if not milestone.is_fully_signed:
                return SigningResult(
                    milestone_id=milestone.id,
                    role=role,
                    locked=bool(milestone.baseline_locked),
                )

            milestone.baseline_locked = True
            self.session.flush()
            original = self.writer.record_original_baseline(milestone)
            logger.info(
                "baseline_locked",
                extra={"original_version": original.version},
            )

        return SigningResult(
            milestone_id=milestone.id,
            role=role,
            locked=True,
            original=original,
        )

    def reset_baseline(self, milestone_id: UUID) -> None:
        """
        Unlock a baseline and clear both signatures.

        Ledger rows are left alone: signing again after a reset finds the
        existing original and records nothing new.  Permission checks are
        the caller's.
        """
        milestone = self.session.get(Milestone, milestone_id)
        if milestone is None or milestone.is_deleted:
            raise MilestoneNotFoundError(str(milestone_id))

        with LogContext.bind(milestone_id=milestone_id):
            milestone.baseline_locked = False
            milestone.supplier_signed_by = None
            milestone.supplier_signed_at = None
            milestone.customer_signed_by = None
            milestone.customer_signed_at = None
            self.session.flush()
            logger.info("baseline_reset")
