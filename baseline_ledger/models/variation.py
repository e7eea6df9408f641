"""
Module: baseline_ledger.models.variation
Responsibility: ORM persistence for variations (change requests) and the
    per-milestone impact rows that carry the pre-change snapshot.
Architecture position: Ledger > Models.  May import from db/ only.

The variation lifecycle is owned by the surrounding workflow.  The ledger
reads status, applied_at, signatures and the original_baseline_* snapshot.
The application trigger point moves approved -> applied and stamps the
baseline_version_before/after bookkeeping columns.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from baseline_ledger.db.base import TimestampedBase, UUIDString


class VariationStatus(str, Enum):
    """Lifecycle status of a variation.

    Contract: draft -> submitted -> awaiting_customer/awaiting_supplier ->
    approved -> applied, or -> rejected from any pre-approval state.
    Only APPLIED variations produce ledger amendments.
    """

    DRAFT = "draft"
    SUBMITTED = "submitted"
    AWAITING_CUSTOMER = "awaiting_customer"
    AWAITING_SUPPLIER = "awaiting_supplier"
    APPROVED = "approved"
    APPLIED = "applied"
    REJECTED = "rejected"


class Variation(TimestampedBase):
    """A change request amending one or more milestone baselines."""

    __tablename__ = "variations"

    __table_args__ = (
        UniqueConstraint("variation_ref", name="uq_variation_ref"),
        Index("idx_variations_status", "status"),
    )

    variation_ref: Mapped[str] = mapped_column(String(50), nullable=False)

    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    status: Mapped[VariationStatus] = mapped_column(
        String(20),
        nullable=False,
        default=VariationStatus.DRAFT,
    )

    supplier_signed_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    supplier_signed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    customer_signed_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    customer_signed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # When the changes were applied to the baselines
    applied_at: Mapped[datetime | None] = mapped_column(nullable=True)

    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    affected_milestones: Mapped[list["VariationMilestone"]] = relationship(
        back_populates="variation",
        order_by="VariationMilestone.created_at",
    )

    @property
    def is_applied(self) -> bool:
        return VariationStatus(self.status) == VariationStatus.APPLIED

    def __repr__(self) -> str:
        return f"<Variation {self.variation_ref} status={self.status}>"


class VariationMilestone(TimestampedBase):
    """
    Impact of one variation on one milestone.

    original_baseline_* is the snapshot of the milestone's baseline taken
    when the variation was proposed.  For the earliest applied variation of
    a milestone it is the true original commitment, which is what the
    backfill reconstruction relies on.
    """

    __tablename__ = "variation_milestones"

    __table_args__ = (
        Index("idx_variation_milestones_variation_id", "variation_id"),
        Index("idx_variation_milestones_milestone_id", "milestone_id"),
    )

    variation_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("variations.id", ondelete="CASCADE"),
        nullable=False,
    )

    # NULL when the variation creates a new milestone
    milestone_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("milestones.id", ondelete="SET NULL"),
        nullable=True,
    )

    original_baseline_start: Mapped[date | None] = mapped_column(Date, nullable=True)
    original_baseline_end: Mapped[date | None] = mapped_column(Date, nullable=True)
    original_baseline_cost: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)

    new_baseline_start: Mapped[date | None] = mapped_column(Date, nullable=True)
    new_baseline_end: Mapped[date | None] = mapped_column(Date, nullable=True)
    new_baseline_cost: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)

    # Provisional ledger numbering stamped at application time
    baseline_version_before: Mapped[int | None] = mapped_column(Integer, nullable=True)
    baseline_version_after: Mapped[int | None] = mapped_column(Integer, nullable=True)

    change_rationale: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    variation: Mapped[Variation] = relationship(back_populates="affected_milestones")

    def __repr__(self) -> str:
        return f"<VariationMilestone variation={self.variation_id} milestone={self.milestone_id}>"
