"""
Concurrency tests for the ledger write path.

Real commits from parallel sessions against PostgreSQL: the milestone row
lock plus the unique constraints must keep exactly one original per
milestone and distinct versions per amendment.

Run with: DATABASE_URL=postgresql://... pytest tests/concurrency -v
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from threading import Barrier
from uuid import uuid4

import pytest
from sqlalchemy import select

from baseline_ledger.domain.clock import DeterministicClock
from baseline_ledger.domain.dtos import WriteStatus
from baseline_ledger.models.baseline_version import BaselineVersion
from baseline_ledger.models.milestone import Milestone
from baseline_ledger.models.variation import Variation, VariationMilestone, VariationStatus
from baseline_ledger.selectors.baseline_history_selector import BaselineHistorySelector
from baseline_ledger.services.ledger_repair import LedgerRepairService
from baseline_ledger.services.ledger_writer import VersionLedgerWriter

pytestmark = pytest.mark.postgres

T0 = datetime(2024, 1, 5, 10, tzinfo=timezone.utc)
WORKERS = 8


def _seed_milestone(session_factory) -> Milestone:
    session = session_factory()
    milestone = Milestone(
        milestone_ref=f"MS-{uuid4().hex[:8]}",
        baseline_locked=True,
        baseline_billable=Decimal("1000.00"),
        supplier_signed_by=uuid4(),
        supplier_signed_at=T0,
        customer_signed_by=uuid4(),
        customer_signed_at=T0 + timedelta(days=1),
    )
    session.add(milestone)
    session.commit()
    return milestone


def _seed_applied_variations(session_factory, milestone_id, count) -> list:
    session = session_factory()
    ids = []
    for i in range(count):
        variation = Variation(
            variation_ref=f"VAR-{uuid4().hex[:8]}",
            status=VariationStatus.APPLIED.value,
            applied_at=T0 + timedelta(days=10 + i),
        )
        session.add(variation)
        session.flush()
        session.add(VariationMilestone(variation_id=variation.id, milestone_id=milestone_id))
        ids.append(variation.id)
    session.commit()
    return ids


class TestConcurrentOriginals:

    def test_parallel_locks_write_one_original(self, pg_session_factory):
        milestone = _seed_milestone(pg_session_factory)
        barrier = Barrier(WORKERS)

        def record():
            session = pg_session_factory()
            m = session.get(Milestone, milestone.id)
            barrier.wait()
            result = VersionLedgerWriter(session, DeterministicClock()).record_original_baseline(m)
            session.commit()
            return result.status

        with ThreadPoolExecutor(max_workers=WORKERS) as pool:
            statuses = list(pool.map(lambda _: record(), range(WORKERS)))

        assert statuses.count(WriteStatus.RECORDED) == 1
        assert set(statuses) <= {
            WriteStatus.RECORDED,
            WriteStatus.ALREADY_RECORDED,
            WriteStatus.CONFLICT_ABSORBED,
        }

        check = pg_session_factory()
        rows = check.execute(
            select(BaselineVersion).where(BaselineVersion.milestone_id == milestone.id)
        ).scalars().all()
        assert len(rows) == 1
        assert rows[0].version == 1


class TestConcurrentAmendments:

    def test_parallel_amendments_get_distinct_versions(self, pg_session_factory):
        milestone = _seed_milestone(pg_session_factory)
        variation_ids = _seed_applied_variations(pg_session_factory, milestone.id, WORKERS)
        barrier = Barrier(WORKERS)

        def amend(variation_id):
            session = pg_session_factory()
            variation = session.get(Variation, variation_id)
            vm = variation.affected_milestones[0]
            barrier.wait()
            result = VersionLedgerWriter(session, DeterministicClock()).record_amendment(
                vm, variation
            )
            session.commit()
            return result

        with ThreadPoolExecutor(max_workers=WORKERS) as pool:
            results = list(pool.map(amend, variation_ids))

        assert all(r.status == WriteStatus.RECORDED for r in results)
        assert len({r.version for r in results}) == WORKERS

    def test_repair_after_race_restores_invariants(self, pg_session_factory):
        milestone = _seed_milestone(pg_session_factory)
        variation_ids = _seed_applied_variations(pg_session_factory, milestone.id, WORKERS)

        def amend(variation_id):
            session = pg_session_factory()
            variation = session.get(Variation, variation_id)
            VersionLedgerWriter(session, DeterministicClock()).record_amendment(
                variation.affected_milestones[0], variation
            )
            session.commit()

        with ThreadPoolExecutor(max_workers=WORKERS) as pool:
            list(pool.map(amend, variation_ids))

        session = pg_session_factory()
        report = LedgerRepairService(session, DeterministicClock()).run()
        session.commit()

        assert report.is_clean
        history = BaselineHistorySelector(pg_session_factory()).get_history(milestone.id)
        assert [h.version for h in history] == list(range(1, WORKERS + 2))
        assert history[0].is_original
        created = [h.created_at for h in history[1:]]
        assert created == sorted(created)
