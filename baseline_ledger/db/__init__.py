"""Database layer - engine, base classes, types, and immutability."""

from baseline_ledger.db.base import UUID, Base, TimestampedBase, UTCDateTime, UUIDString
from baseline_ledger.db.engine import (
    create_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    session_scope,
)
from baseline_ledger.db.types import round_money

__all__ = [
    "init_engine_from_url",
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "TimestampedBase",
    "UTCDateTime",
    "UUIDString",
    "UUID",
    "round_money",
]
