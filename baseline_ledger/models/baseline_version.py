"""
Module: baseline_ledger.models.baseline_version
Responsibility: ORM persistence for the baseline version ledger -- one
    row per (milestone, version) recording the committed baseline as of
    that version and who authorised it.
Architecture position: Ledger > Models.  May import from db/ only.

Invariants enforced:
    SINGLE_ORIGINAL     -- partial UNIQUE index on milestone_id WHERE
                           variation_id IS NULL: at most one original row.
    CONTIGUOUS_VERSIONS -- UNIQUE (milestone_id, version) rejects duplicates;
                           gaps are closed by VersionRenumberer.
    WRITE_ONCE          -- ORM listeners in db/immutability.py reject any
                           UPDATE other than the version column, and DELETE.

Failure modes:
    - IntegrityError on duplicate (milestone_id, version), duplicate
      (milestone_id, variation_id), or a second original row.  Writers
      perform inserts inside a SAVEPOINT and absorb these.
    - ImmutabilityViolationError on UPDATE of a write-once column.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, Integer, Numeric, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from baseline_ledger.db.base import Base, UTCDateTime, UUIDString

if TYPE_CHECKING:
    from baseline_ledger.models.milestone import Milestone
    from baseline_ledger.models.variation import Variation


class BaselineVersion(Base):
    """
    Immutable ledger row for one version of a milestone baseline.

    Contract:
        variation_id IS NULL  <=>  the row is the original signed commitment
        (version 1 once the ledger is consistent).  A non-null variation_id
        marks an amendment produced by that variation.

    Guarantees:
        - All columns except ``version`` are write-once.
        - ``created_at`` is the ordering key for amendments and is always
          set explicitly by the writer (signature time or applied_at).

    Non-goals:
        - Does NOT compute version numbers.  Writers assign provisional
          numbers; VersionRenumberer makes them final.
    """

    __tablename__ = "baseline_versions"

    __table_args__ = (
        UniqueConstraint("milestone_id", "version", name="uq_baseline_version_milestone_version"),
        UniqueConstraint("milestone_id", "variation_id", name="uq_baseline_version_milestone_variation"),
        Index(
            "uq_baseline_version_single_original",
            "milestone_id",
            unique=True,
            postgresql_where=text("variation_id IS NULL"),
            sqlite_where=text("variation_id IS NULL"),
        ),
        Index("idx_baseline_versions_milestone_id", "milestone_id"),
    )

    milestone_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("milestones.id", ondelete="CASCADE"),
        nullable=False,
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # NULL for the original commitment
    variation_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("variations.id"),
        nullable=True,
    )

    baseline_start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    baseline_end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    baseline_billable: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    supplier_signed_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    supplier_signed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    customer_signed_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    customer_signed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    # Version-ordering key
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    milestone: Mapped["Milestone"] = relationship(back_populates="baseline_versions")
    variation: Mapped["Variation | None"] = relationship()

    @property
    def is_original(self) -> bool:
        """True for the original signed commitment."""
        return self.variation_id is None

    def __repr__(self) -> str:
        kind = "original" if self.variation_id is None else f"variation={self.variation_id}"
        return f"<BaselineVersion milestone={self.milestone_id} v{self.version} {kind}>"
