"""
Domain DTOs -- frozen value objects exchanged between ledger layers.

Responsibility:
    Carries results of ledger writes, repair passes and history reads
    without exposing ORM instances outside the services and selectors.

Architecture position:
    Ledger > Domain -- pure, zero I/O.  MUST NOT import SQLAlchemy or any
    other baseline_ledger layer except ``invariants``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from baseline_ledger.invariants import LedgerInvariant


class WriteStatus(str, Enum):
    """Outcome of a single ledger insert attempt."""

    RECORDED = "recorded"  # A new row was inserted
    ALREADY_RECORDED = "already_recorded"  # Pre-check found the row; no-op
    CONFLICT_ABSORBED = "conflict_absorbed"  # A concurrent insert won the race


class SignerRole(str, Enum):
    """Party signing a milestone baseline."""

    SUPPLIER = "supplier"
    CUSTOMER = "customer"


@dataclass(frozen=True)
class LedgerWriteResult:
    """Result of VersionLedgerWriter.record_original_baseline / record_amendment.

    ``version`` is the provisional number assigned at insert time, or the
    number of the row that was already present.
    """

    status: WriteStatus
    milestone_id: UUID
    version_id: UUID | None = None
    version: int | None = None
    variation_id: UUID | None = None

    @property
    def is_new(self) -> bool:
        return self.status == WriteStatus.RECORDED


@dataclass(frozen=True)
class VersionKey:
    """The ordering-relevant fields of one ledger row."""

    row_id: UUID
    version: int
    variation_id: UUID | None
    created_at: datetime

    @property
    def is_original(self) -> bool:
        return self.variation_id is None


@dataclass(frozen=True)
class VersionChange:
    """One version-column correction made by the renumbering pass."""

    row_id: UUID
    milestone_id: UUID
    old_version: int
    new_version: int


@dataclass(frozen=True)
class BaselineVersionInfo:
    """Read model of one ledger row, for history display."""

    id: UUID
    milestone_id: UUID
    version: int
    variation_id: UUID | None
    baseline_start_date: date | None
    baseline_end_date: date | None
    baseline_billable: Decimal
    supplier_signed_by: UUID | None
    supplier_signed_at: datetime | None
    customer_signed_by: UUID | None
    customer_signed_at: datetime | None
    created_at: datetime
    variation_ref: str | None = None
    variation_title: str | None = None

    @property
    def is_original(self) -> bool:
        return self.variation_id is None


@dataclass(frozen=True)
class UnreconstructableMilestone:
    """A milestone whose missing original cannot be recovered.

    The ledger has rows for it but no original, and no applied variation
    carries a pre-change snapshot.  Left as a permanent gap; never guessed.
    """

    milestone_id: UUID
    milestone_ref: str
    existing_versions: tuple[int, ...]
    reason: str


@dataclass(frozen=True)
class BackfillResult:
    """Result of one BackfillReconciler run (both phases)."""

    synthesized: tuple[UUID, ...] = ()  # Phase A milestone ids
    reconstructed: tuple[UUID, ...] = ()  # Phase B milestone ids
    conflicts_absorbed: int = 0
    unreconstructable: tuple[UnreconstructableMilestone, ...] = ()

    @property
    def write_count(self) -> int:
        return len(self.synthesized) + len(self.reconstructed)


@dataclass(frozen=True)
class RenumberResult:
    """Result of one VersionRenumberer run."""

    milestones_examined: int = 0
    rows_examined: int = 0
    changes: tuple[VersionChange, ...] = ()

    @property
    def renumbered(self) -> int:
        return len(self.changes)

    @property
    def unchanged(self) -> int:
        return self.rows_examined - len(self.changes)


@dataclass(frozen=True)
class InvariantViolation:
    """A ledger invariant that does not hold for a milestone."""

    milestone_id: UUID
    invariant: LedgerInvariant
    detail: str


@dataclass(frozen=True)
class RepairReport:
    """Result of LedgerRepairService.run(): backfill then renumber."""

    backfill: BackfillResult
    renumber: RenumberResult
    started_at: datetime
    completed_at: datetime
    violations: tuple[InvariantViolation, ...] = field(default_factory=tuple)

    @property
    def is_clean(self) -> bool:
        return not self.violations


@dataclass(frozen=True)
class SigningResult:
    """Result of BaselineSigningService.sign_baseline()."""

    milestone_id: UUID
    role: SignerRole
    locked: bool
    original: LedgerWriteResult | None = None


@dataclass(frozen=True)
class ApplicationResult:
    """Result of VariationApplicationService.apply_variation()."""

    variation_id: UUID
    applied_at: datetime
    amendments: tuple[LedgerWriteResult, ...] = ()
