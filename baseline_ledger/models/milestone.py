"""
Module: baseline_ledger.models.milestone
Responsibility: ORM persistence for the milestone "working copy" -- the
    current committed baseline, the lock flag, and the two signatures that
    lock it.
Architecture position: Ledger > Models.  May import from db/ only.

The milestone is owned by the surrounding project workflow.  The ledger
reads its baseline and signature fields; only the signing and variation
application trigger points write to it.

Invariants:
    - Once baseline_locked is True, the baseline fields hold the latest
      accepted commitment.  They are a projection, not a history; the
      history lives in BaselineVersion rows.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, Date, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from baseline_ledger.db.base import TimestampedBase, UUIDString

if TYPE_CHECKING:
    from baseline_ledger.models.baseline_version import BaselineVersion


class Milestone(TimestampedBase):
    """
    Current baseline of a project milestone.

    Contract:
        Both signatures present and baseline_locked=True means the baseline
        is binding.  Soft-deleted milestones (is_deleted=True) are ignored by
        every ledger operation.
    """

    __tablename__ = "milestones"

    __table_args__ = (
        Index("idx_milestones_locked", "baseline_locked"),
    )

    milestone_ref: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    baseline_locked: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    baseline_start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    baseline_end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    baseline_billable: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)

    # General billable figure used for invoicing
    billable: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)

    supplier_signed_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    supplier_signed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    customer_signed_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    customer_signed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    baseline_versions: Mapped[list["BaselineVersion"]] = relationship(
        back_populates="milestone",
        order_by="BaselineVersion.version",
        passive_deletes=True,
    )

    @property
    def is_fully_signed(self) -> bool:
        """True when both supplier and customer have signed the baseline."""
        return self.supplier_signed_at is not None and self.customer_signed_at is not None

    @property
    def missing_signatures(self) -> tuple[str, ...]:
        """Roles whose baseline signature is absent."""
        missing = []
        if self.supplier_signed_at is None:
            missing.append("supplier")
        if self.customer_signed_at is None:
            missing.append("customer")
        return tuple(missing)

    def __repr__(self) -> str:
        return (
            f"<Milestone {self.milestone_ref} locked={self.baseline_locked} "
            f"billable={self.baseline_billable}>"
        )
