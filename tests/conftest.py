"""
Pytest fixtures for the baseline ledger test suite.

Provides:
- One engine and schema per test session (in-memory SQLite by default)
- Per-test sessions isolated by transaction rollback
- Factories for milestones, variations and raw ledger rows
- Captured structured logs

Environment Variables:
- DATABASE_URL: connection URL for the test database.  Defaults to an
  in-memory SQLite database.  Tests marked ``postgres`` (real commits,
  parallel sessions) run only when this points at PostgreSQL.
"""

import json
import logging
import os
import threading
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session

from baseline_ledger.db.base import Base
from baseline_ledger.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from baseline_ledger.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from baseline_ledger.domain.clock import DeterministicClock
from baseline_ledger.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from baseline_ledger.models.baseline_version import BaselineVersion
from baseline_ledger.models.milestone import Milestone
from baseline_ledger.models.variation import Variation, VariationMilestone, VariationStatus
from baseline_ledger.selectors.baseline_history_selector import BaselineHistorySelector
from baseline_ledger.services.backfill_reconciler import BackfillReconciler
from baseline_ledger.services.ledger_writer import VersionLedgerWriter
from baseline_ledger.services.version_renumberer import VersionRenumberer

DEFAULT_DATABASE_URL = "sqlite://"

# Test actors for signatures
SUPPLIER_USER_ID = uuid4()
CUSTOMER_USER_ID = uuid4()


def get_database_url() -> str:
    """Get database URL from environment, or use in-memory SQLite."""
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)


def _is_postgres_url(url: str) -> bool:
    return make_url(url).get_backend_name() == "postgresql"


def utc(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> datetime:
    """Aware UTC datetime shorthand."""
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL (real commits, parallel sessions)"
    )


def pytest_collection_modifyitems(config, items):
    if _is_postgres_url(get_database_url()):
        return
    skip_pg = pytest.mark.skip(reason="requires DATABASE_URL pointing at PostgreSQL")
    for item in items:
        if "postgres" in item.keywords:
            item.add_marker(skip_pg)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture baseline_ledger logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ledger_writer, make_milestone):
            ledger_writer.record_original_baseline(make_milestone(signed=True))
            logs = captured_logs()
            assert any(r["message"] == "original_baseline_recorded" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("baseline_ledger")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Session-scoped DB infrastructure (engine + tables ONCE per suite)
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    """Single engine for the entire test session."""
    eng = init_engine_from_url(
        get_database_url(), echo=False,
        pool_size=30, max_overflow=20, pool_timeout=10,
    )
    yield eng
    reset_engine()


@pytest.fixture(scope="session")
def db_tables(db_engine):
    """Create all tables once per session, drop once at end.

    Immutability listeners are registered once and remain active.
    """
    drop_tables()
    create_tables()
    register_immutability_listeners()
    yield
    unregister_immutability_listeners()
    drop_tables()


def _truncate_all_tables(engine):
    """Delete all rows.  Used by tests that really commit."""
    table_names = [t.name for t in reversed(Base.metadata.sorted_tables)]
    with engine.connect() as conn:
        if engine.dialect.name == "postgresql":
            conn.execute(text("TRUNCATE " + ", ".join(table_names) + " CASCADE"))
        else:
            for name in table_names:
                conn.execute(text(f"DELETE FROM {name}"))
        conn.commit()


# =============================================================================
# Per-test session with automatic rollback
# =============================================================================


@pytest.fixture(scope="function")
def session(db_tables, db_engine) -> Generator[Session, None, None]:
    """Provide a database session for testing.

    Uses the SQLAlchemy 2.0 ``join_transaction_mode`` pattern: the session
    joins an outer transaction on a dedicated connection, ``commit()``
    inside a test only releases a savepoint, and the outer transaction is
    rolled back at teardown.
    """
    conn = db_engine.connect()
    trans = conn.begin()
    sess = Session(bind=conn, join_transaction_mode="create_savepoint", expire_on_commit=False)
    yield sess
    try:
        sess.close()
    finally:
        try:
            trans.rollback()
        finally:
            conn.close()


# =============================================================================
# Concurrency testing fixtures (real commits + TRUNCATE cleanup)
# =============================================================================


@pytest.fixture(scope="function")
def pg_session_factory(db_engine, db_tables):
    """Tracked session factory for concurrent threads.

    On teardown, blocks new sessions, closes every tracked session and
    deletes all data.
    """
    factory = get_session_factory()
    created_sessions = []
    lock = threading.Lock()
    closed = False

    def tracked_factory():
        nonlocal closed
        with lock:
            if closed:
                raise RuntimeError("pg_session_factory closed (fixture teardown)")
            s = factory()
            created_sessions.append(s)
            return s

    yield tracked_factory

    with lock:
        closed = True

    for s in created_sessions:
        if s.is_active:
            s.rollback()
        s.close()

    _truncate_all_tables(db_engine)


# =============================================================================
# Clock and services
# =============================================================================


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    """Clock fixed at 2024-06-01 09:00 UTC."""
    return DeterministicClock(utc(2024, 6, 1, 9))


@pytest.fixture
def ledger_writer(session, deterministic_clock) -> VersionLedgerWriter:
    return VersionLedgerWriter(session, deterministic_clock)


@pytest.fixture
def reconciler(session, deterministic_clock, ledger_writer) -> BackfillReconciler:
    return BackfillReconciler(session, deterministic_clock, writer=ledger_writer)


@pytest.fixture
def renumberer(session, deterministic_clock) -> VersionRenumberer:
    return VersionRenumberer(session, deterministic_clock)


@pytest.fixture
def history(session) -> BaselineHistorySelector:
    return BaselineHistorySelector(session)


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def make_milestone(session):
    """
    Create and flush a Milestone.

    ``signed=True`` sets both signatures (supplier Jan 5, customer Jan 7)
    and locks the baseline unless overridden.
    """
    counter = {"n": 0}

    def _make(signed: bool = False, **overrides) -> Milestone:
        counter["n"] += 1
        values = dict(
            milestone_ref=f"MS-{counter['n']:03d}",
            name=f"Milestone {counter['n']}",
            baseline_locked=False,
            baseline_start_date=date(2024, 2, 1),
            baseline_end_date=date(2024, 3, 31),
            baseline_billable=Decimal("10000.00"),
            billable=Decimal("10000.00"),
        )
        if signed:
            values.update(
                baseline_locked=True,
                supplier_signed_by=SUPPLIER_USER_ID,
                supplier_signed_at=utc(2024, 1, 5, 10),
                customer_signed_by=CUSTOMER_USER_ID,
                customer_signed_at=utc(2024, 1, 7, 15),
            )
        values.update(overrides)
        milestone = Milestone(**values)
        session.add(milestone)
        session.flush()
        return milestone

    return _make


@pytest.fixture
def make_variation(session):
    """
    Create and flush a Variation with one impact row per milestone.

    ``impacts`` is a list of dicts, each with a ``milestone`` key plus any
    VariationMilestone column values (original_baseline_*, new_baseline_*).
    """
    counter = {"n": 0}

    def _make(
        status: VariationStatus = VariationStatus.APPLIED,
        impacts: list[dict] | None = None,
        **overrides,
    ) -> Variation:
        counter["n"] += 1
        values = dict(
            variation_ref=f"VAR-{counter['n']:03d}",
            title=f"Variation {counter['n']}",
            status=status.value,
            supplier_signed_by=SUPPLIER_USER_ID,
            supplier_signed_at=utc(2024, 4, 1, 9),
            customer_signed_by=CUSTOMER_USER_ID,
            customer_signed_at=utc(2024, 4, 2, 9),
        )
        values.update(overrides)
        variation = Variation(**values)
        session.add(variation)
        session.flush()

        for impact in impacts or []:
            impact = dict(impact)
            milestone = impact.pop("milestone")
            session.add(
                VariationMilestone(
                    variation_id=variation.id,
                    milestone_id=milestone.id if milestone is not None else None,
                    **impact,
                )
            )
        session.flush()
        session.refresh(variation)
        return variation

    return _make


@pytest.fixture
def make_version_row(session):
    """
    Insert a raw ledger row, bypassing the writer.

    Used to set up legacy or inconsistent ledgers for the repair passes.
    """

    def _make(
        milestone: Milestone,
        version: int,
        variation: Variation | None = None,
        created_at: datetime | None = None,
        baseline_billable: Decimal = Decimal("10000.00"),
        **overrides,
    ) -> BaselineVersion:
        row = BaselineVersion(
            milestone_id=milestone.id,
            version=version,
            variation_id=variation.id if variation is not None else None,
            baseline_start_date=milestone.baseline_start_date,
            baseline_end_date=milestone.baseline_end_date,
            baseline_billable=baseline_billable,
            created_at=created_at or utc(2024, 1, 1),
            **overrides,
        )
        session.add(row)
        session.flush()
        return row

    return _make


@pytest.fixture
def test_actor_id() -> UUID:
    """Provide a consistent test actor ID."""
    return SUPPLIER_USER_ID
