"""
Tests for VersionRenumberer.

Invariants tested:
- CONTIGUOUS_VERSIONS: versions become 1..N per milestone
- CAUSAL_ORDER: original first, amendments by created_at
- Renumbering an already-consistent ledger changes nothing
"""

from datetime import datetime, timezone

from sqlalchemy import select

from baseline_ledger.models.baseline_version import BaselineVersion


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def _versions(session, milestone) -> list[tuple[int, object]]:
    rows = session.execute(
        select(BaselineVersion)
        .where(BaselineVersion.milestone_id == milestone.id)
        .order_by(BaselineVersion.version)
    ).scalars().all()
    return [(r.version, r.variation_id) for r in rows]


class TestRenumbering:

    def test_gap_closed(
        self, session, renumberer, make_milestone, make_variation, make_version_row,
    ):
        milestone = make_milestone(signed=True)
        v2 = make_variation(applied_at=_utc(2024, 1, 10))
        v5 = make_variation(applied_at=_utc(2024, 1, 20))
        make_version_row(milestone, 1, created_at=_utc(2024, 1, 5))
        make_version_row(milestone, 2, variation=v2, created_at=_utc(2024, 1, 10))
        make_version_row(milestone, 5, variation=v5, created_at=_utc(2024, 1, 20))

        result = renumberer.run()

        assert _versions(session, milestone) == [(1, None), (2, v2.id), (3, v5.id)]
        assert result.renumbered == 1
        assert result.changes[0].old_version == 5
        assert result.changes[0].new_version == 3

    def test_out_of_order_amendments_swapped(
        self, session, renumberer, make_milestone, make_variation, make_version_row,
    ):
        milestone = make_milestone(signed=True)
        early = make_variation(applied_at=_utc(2024, 2, 1))
        late = make_variation(applied_at=_utc(2024, 3, 1))
        make_version_row(milestone, 1, created_at=_utc(2024, 1, 5))
        make_version_row(milestone, 2, variation=late, created_at=_utc(2024, 3, 1))
        make_version_row(milestone, 3, variation=early, created_at=_utc(2024, 2, 1))

        result = renumberer.run()

        assert _versions(session, milestone) == [(1, None), (2, early.id), (3, late.id)]
        assert result.renumbered == 2

    def test_original_moved_to_front(
        self, session, renumberer, make_milestone, make_variation, make_version_row,
    ):
        milestone = make_milestone(signed=True)
        first = make_variation(applied_at=_utc(2024, 2, 1))
        make_version_row(milestone, 1, variation=first, created_at=_utc(2024, 2, 1))
        make_version_row(milestone, 2, created_at=_utc(2024, 3, 15))

        renumberer.run()

        assert _versions(session, milestone) == [(1, None), (2, first.id)]

    def test_consistent_ledger_untouched(
        self, session, renumberer, make_milestone, make_variation, make_version_row,
        captured_logs,
    ):
        milestone = make_milestone(signed=True)
        variation = make_variation(applied_at=_utc(2024, 2, 1))
        make_version_row(milestone, 1, created_at=_utc(2024, 1, 5))
        make_version_row(milestone, 2, variation=variation, created_at=_utc(2024, 2, 1))

        result = renumberer.run()

        assert result.renumbered == 0
        assert result.rows_examined == 2
        assert result.unchanged == 2
        assert not any(r["message"] == "version_renumbered" for r in captured_logs())

    def test_milestones_renumbered_independently(
        self, session, renumberer, make_milestone, make_variation, make_version_row,
    ):
        a = make_milestone(signed=True)
        b = make_milestone(signed=True)
        variation = make_variation(applied_at=_utc(2024, 2, 1))
        make_version_row(a, 1, created_at=_utc(2024, 1, 5))
        make_version_row(a, 4, variation=variation, created_at=_utc(2024, 2, 1))
        make_version_row(b, 1, created_at=_utc(2024, 1, 5))
        make_version_row(b, 2, variation=variation, created_at=_utc(2024, 2, 1))

        result = renumberer.run()

        assert _versions(session, a) == [(1, None), (2, variation.id)]
        assert _versions(session, b) == [(1, None), (2, variation.id)]
        assert result.milestones_examined == 2
        assert result.renumbered == 1

    def test_restricted_to_given_milestones(
        self, session, renumberer, make_milestone, make_variation, make_version_row,
    ):
        a = make_milestone(signed=True)
        b = make_milestone(signed=True)
        variation = make_variation(applied_at=_utc(2024, 2, 1))
        make_version_row(a, 1, created_at=_utc(2024, 1, 5))
        make_version_row(a, 4, variation=variation, created_at=_utc(2024, 2, 1))
        make_version_row(b, 1, created_at=_utc(2024, 1, 5))
        make_version_row(b, 7, variation=variation, created_at=_utc(2024, 2, 1))

        renumberer.run(milestone_ids=[a.id])

        assert _versions(session, a) == [(1, None), (2, variation.id)]
        assert _versions(session, b) == [(1, None), (7, variation.id)]

    def test_second_run_is_noop(
        self, session, renumberer, make_milestone, make_variation, make_version_row,
    ):
        milestone = make_milestone(signed=True)
        v2 = make_variation(applied_at=_utc(2024, 1, 10))
        v5 = make_variation(applied_at=_utc(2024, 1, 20))
        make_version_row(milestone, 2, variation=v2, created_at=_utc(2024, 1, 10))
        make_version_row(milestone, 5, variation=v5, created_at=_utc(2024, 1, 20))
        make_version_row(milestone, 9, created_at=_utc(2024, 1, 5))

        first = renumberer.run()
        second = renumberer.run()

        assert first.renumbered == 2
        assert second.renumbered == 0

    def test_logs_each_change(
        self, renumberer, make_milestone, make_variation, make_version_row, captured_logs,
    ):
        milestone = make_milestone(signed=True)
        variation = make_variation(applied_at=_utc(2024, 2, 1))
        make_version_row(milestone, 1, created_at=_utc(2024, 1, 5))
        make_version_row(milestone, 3, variation=variation, created_at=_utc(2024, 2, 1))

        renumberer.run()

        events = [r for r in captured_logs() if r["message"] == "version_renumbered"]
        assert len(events) == 1
        assert events[0]["old_version"] == 3
        assert events[0]["new_version"] == 2


class TestBackfillThenRenumber:
    """The two passes together."""

    def test_reconstructed_history_numbered_chronologically(
        self, session, reconciler, renumberer, make_milestone, make_variation, make_version_row,
    ):
        milestone = make_milestone(signed=True)
        v2 = make_variation(
            applied_at=_utc(2024, 1, 10),
            impacts=[{"milestone": milestone, "original_baseline_cost": milestone.baseline_billable}],
        )
        v5 = make_variation(
            applied_at=_utc(2024, 1, 20),
            impacts=[{"milestone": milestone}],
        )
        make_version_row(milestone, 2, variation=v2, created_at=_utc(2024, 1, 10))
        make_version_row(milestone, 5, variation=v5, created_at=_utc(2024, 1, 20))

        reconciler.run()
        renumberer.run()

        assert _versions(session, milestone) == [(1, None), (2, v2.id), (3, v5.id)]
