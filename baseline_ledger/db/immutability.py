"""
ORM-Level Immutability Enforcement for the baseline version ledger.

===============================================================================
WHY THIS EXISTS
===============================================================================

A ledger row records what was committed, as of a version, and who signed
it.  Once written it must never change, with a single exception: the
renumbering pass corrects the ``version`` column so that numbering stays
gapless and chronologically ordered.

SQLAlchemy fires events before UPDATE/DELETE operations reach the database:

    session.flush()
         |
         v
    [before_update] --> _check_baseline_version_immutability() --> ImmutabilityViolationError
         |
         v
    [before_delete] --> _check_baseline_version_delete() ---------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

Ledger rows disappear only through the database-level ON DELETE CASCADE
of a hard-deleted milestone, which bypasses the ORM entirely.

===============================================================================
USAGE
===============================================================================

Called once at application startup, after models are imported:

    from baseline_ledger.db.immutability import register_immutability_listeners
    register_immutability_listeners()

To temporarily disable (TESTS ONLY - never in production):

    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect

from baseline_ledger.exceptions import ImmutabilityViolationError
from baseline_ledger.logging_config import get_logger

logger = get_logger("db.immutability")

# The only column the renumbering pass may correct
MUTABLE_LEDGER_COLUMNS: frozenset[str] = frozenset({"version"})


def _changed_columns(target) -> list[str]:
    """Names of mapped columns with pending changes on ``target``."""
    state = inspect(target)
    changed = []
    for attr in state.mapper.column_attrs:
        if state.attrs[attr.key].history.has_changes():
            changed.append(attr.key)
    return changed


def _check_baseline_version_immutability(mapper, connection, target):
    """
    Reject updates to any ledger column other than ``version``.
    """
    forbidden = [
        name for name in _changed_columns(target) if name not in MUTABLE_LEDGER_COLUMNS
    ]
    if not forbidden:
        return

    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "BaselineVersion",
            "entity_id": str(target.id),
            "operation": "UPDATE",
            "fields": sorted(forbidden),
        },
    )
    raise ImmutabilityViolationError(
        entity_type="BaselineVersion",
        entity_id=str(target.id),
        reason=f"Ledger rows are write-once; attempted to modify {sorted(forbidden)}",
    )


def _check_baseline_version_delete(mapper, connection, target):
    """
    Reject ORM deletes of ledger rows.
    """
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "BaselineVersion",
            "entity_id": str(target.id),
            "operation": "DELETE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="BaselineVersion",
        entity_id=str(target.id),
        reason="Ledger rows cannot be deleted",
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners (idempotent).
    """
    from baseline_ledger.models.baseline_version import BaselineVersion

    if not event.contains(BaselineVersion, "before_update", _check_baseline_version_immutability):
        event.listen(BaselineVersion, "before_update", _check_baseline_version_immutability)
    if not event.contains(BaselineVersion, "before_delete", _check_baseline_version_delete):
        event.listen(BaselineVersion, "before_delete", _check_baseline_version_delete)


def _safe_remove_listener(target, event_name, listener_fn):
    """
    Safely remove an event listener, ignoring if not registered.
    """
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    from baseline_ledger.models.baseline_version import BaselineVersion

    _safe_remove_listener(BaselineVersion, "before_update", _check_baseline_version_immutability)
    _safe_remove_listener(BaselineVersion, "before_delete", _check_baseline_version_delete)
