"""
Ordering -- pure rules for version timestamps, billable fallback and ranks.

Responsibility:
    Decides, without touching storage, the created_at of an original
    (version-1) row, its billable figure, and the final version number of
    every ledger row of a milestone.  The writer, the backfill reconciler,
    the renumberer and the history selector all delegate here so the rules
    exist exactly once.

Architecture position:
    Ledger > Domain -- pure functional core, zero I/O.

Invariants enforced:
    CAUSAL_ORDER        -- rank_versions() puts the original first and
                           amendments by created_at ascending.
    CONTIGUOUS_VERSIONS -- ranks are exactly 1..N.
    BILLABLE_NEVER_NULL -- original_billable() never returns None.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime
from decimal import Decimal

from baseline_ledger.domain.clock import as_utc
from baseline_ledger.domain.dtos import VersionKey
from baseline_ledger.invariants import LedgerInvariant

ZERO_BILLABLE = Decimal("0.00")


def earliest_timestamp(*values: datetime | None) -> datetime | None:
    """Earliest of the non-null values as aware UTC, or None when all are null."""
    present = [as_utc(v) for v in values if v is not None]
    if not present:
        return None
    return min(present)


def original_created_at(
    supplier_signed_at: datetime | None,
    customer_signed_at: datetime | None,
    now: datetime,
    variation_signed_at: datetime | None = None,
) -> datetime:
    """
    Ordering timestamp of an original (version-1) row.

    Priority: the earlier of the two baseline signatures (either one when
    only one is present), then the supplier-side signature of the variation
    it was reconstructed from, then ``now``.
    """
    earliest = earliest_timestamp(supplier_signed_at, customer_signed_at)
    if earliest is not None:
        return earliest
    if variation_signed_at is not None:
        return as_utc(variation_signed_at)
    return as_utc(now)


def original_billable(
    baseline_billable: Decimal | None,
    billable: Decimal | None,
) -> Decimal:
    """Billable of an original row: historical baseline, then general figure, then zero."""
    if baseline_billable is not None:
        return baseline_billable
    if billable is not None:
        return billable
    return ZERO_BILLABLE


def _rank_key(key: VersionKey) -> tuple:
    # Original first; amendments by created_at.  Equal timestamps keep their
    # current relative order, then fall back to row identity.
    return (
        0 if key.is_original else 1,
        key.created_at,
        key.version,
        str(key.row_id),
    )


def rank_versions(keys: Iterable[VersionKey]) -> tuple[tuple[VersionKey, int], ...]:
    """
    Compute the final version of every row of ONE milestone.

    Returns (row, rank) pairs in rank order, ranks starting at 1.
    """
    ordered = sorted(keys, key=_rank_key)
    return tuple((key, rank) for rank, key in enumerate(ordered, start=1))


def plan_renumbering(keys: Iterable[VersionKey]) -> tuple[tuple[VersionKey, int], ...]:
    """
    The subset of rank_versions() whose stored version differs from its rank.

    Empty for an already-consistent ledger.
    """
    return tuple(
        (key, rank) for key, rank in rank_versions(keys) if key.version != rank
    )


def next_provisional_version(existing_versions: Sequence[int]) -> int:
    """
    Provisional number for a new amendment row.

    One past the highest existing version; never 1, which stays reserved for
    the original commitment even when the ledger is still empty.
    """
    return max([1, *existing_versions]) + 1


def original_insert_version(existing_versions: Sequence[int]) -> int:
    """
    Number at which to insert an original row.

    Version 1 when free.  When an amendment already occupies version 1 the
    original is parked one past the highest version; renumbering then moves
    it to the front.
    """
    if 1 not in existing_versions:
        return 1
    return max(existing_versions) + 1


def sequence_violations(
    keys: Sequence[VersionKey],
) -> list[tuple[LedgerInvariant, str]]:
    """
    Check one milestone's ledger rows against the ordering invariants.

    Returns (invariant, detail) pairs; empty when the rows are consistent.
    An empty ledger is consistent.
    """
    if not keys:
        return []

    violations: list[tuple[LedgerInvariant, str]] = []

    originals = [k for k in keys if k.is_original]
    if len(originals) != 1:
        violations.append(
            (LedgerInvariant.SINGLE_ORIGINAL, f"{len(originals)} rows without a variation")
        )
    elif originals[0].version != 1:
        violations.append(
            (
                LedgerInvariant.SINGLE_ORIGINAL,
                f"original row has version {originals[0].version}",
            )
        )

    versions = sorted(k.version for k in keys)
    expected = list(range(1, len(keys) + 1))
    if versions != expected:
        violations.append(
            (LedgerInvariant.CONTIGUOUS_VERSIONS, f"versions {versions}, expected {expected}")
        )

    by_version = sorted(keys, key=lambda k: k.version)
    amendments = [k for k in by_version if not k.is_original]
    for earlier, later in zip(amendments, amendments[1:]):
        if later.created_at < earlier.created_at:
            violations.append(
                (
                    LedgerInvariant.CAUSAL_ORDER,
                    f"version {later.version} created before version {earlier.version}",
                )
            )
    if originals and by_version[0].variation_id is not None:
        violations.append(
            (LedgerInvariant.CAUSAL_ORDER, "first version is an amendment")
        )

    return violations
