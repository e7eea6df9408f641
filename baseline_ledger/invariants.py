"""
Ledger Invariants Contract.

These invariants hold for every milestone's baseline history after each
repair pass and are never violated by the live write path.

This module exists solely to declare them explicitly. The enforcement is
distributed across VersionLedgerWriter, BackfillReconciler,
VersionRenumberer, the immutability listeners and the
(milestone_id, version) unique constraint.
"""

from enum import Enum, unique


@unique
class LedgerInvariant(str, Enum):
    """Non-configurable invariants of the baseline version ledger."""

    SINGLE_ORIGINAL = "single_original"
    """Every milestone with ledger rows has exactly one row without a
    variation, and it is version 1. Enforced by the writer's existence
    check, BackfillReconciler and the unique constraint."""

    CONTIGUOUS_VERSIONS = "contiguous_versions"
    """Versions per milestone are exactly 1..N. Enforced by
    VersionRenumberer."""

    CAUSAL_ORDER = "causal_order"
    """The original row sorts first; amendments follow by created_at.
    Enforced by VersionRenumberer."""

    WRITE_ONCE = "write_once"
    """Only the version column of a ledger row may change after insert.
    Enforced by ORM listeners (baseline_ledger.db.immutability)."""

    BILLABLE_NEVER_NULL = "billable_never_null"
    """A version-1 billable falls back from baseline_billable to billable
    to zero. Enforced by baseline_ledger.domain.ordering.original_billable."""


ALL_LEDGER_INVARIANTS: frozenset[LedgerInvariant] = frozenset(LedgerInvariant)

# The domain layer is pure and may not import from these packages.
# Enforced by tests/architecture/test_layer_boundaries.py.
FORBIDDEN_DOMAIN_IMPORTS: tuple[str, ...] = (
    "sqlalchemy",
    "baseline_ledger.db",
    "baseline_ledger.models",
    "baseline_ledger.services",
    "baseline_ledger.selectors",
)
