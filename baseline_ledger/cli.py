"""
Out-of-band repair of the baseline version ledger.

Runs the backfill reconciler (phase A, phase B) and the version renumberer
in one transaction, then prints a JSON summary.  Safe to re-run: a second
run over the same data writes nothing.

Usage:
  python -m baseline_ledger.cli [--config PATH] [--dry-run] [--check]

Exit status:
  0 on success; 1 when --check is given and invariant violations remain
  (e.g. unreconstructable milestones), or when the database is unreachable.
"""

import argparse
import json
import sys
from typing import Any

from baseline_ledger.config import load_config
from baseline_ledger.db.engine import init_engine_from_url, session_scope
from baseline_ledger.db.immutability import register_immutability_listeners
from baseline_ledger.domain.dtos import RepairReport
from baseline_ledger.logging_config import configure_logging, get_logger
from baseline_ledger.services.ledger_repair import LedgerRepairService

logger = get_logger("cli")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        description="Backfill missing original baselines and renumber ledger versions"
    )
    p.add_argument(
        "--config",
        default=None,
        help="YAML config file (database_url, log_level, repair_batch_size, ...)",
    )
    p.add_argument(
        "--dry-run",
        action="store_true",
        help="Run the repair and report, then roll back",
    )
    p.add_argument(
        "--check",
        action="store_true",
        help="Exit 1 if any ledger invariant is still violated after the repair",
    )
    return p.parse_args(argv)


def report_to_dict(report: RepairReport, *, dry_run: bool = False) -> dict[str, Any]:
    """JSON-ready summary of a repair run."""
    backfill = report.backfill
    renumber = report.renumber
    return {
        "dry_run": dry_run,
        "started_at": report.started_at.isoformat(),
        "completed_at": report.completed_at.isoformat(),
        "backfill": {
            "synthesized": len(backfill.synthesized),
            "reconstructed": len(backfill.reconstructed),
            "conflicts_absorbed": backfill.conflicts_absorbed,
            "unreconstructable": [
                {
                    "milestone_id": str(u.milestone_id),
                    "milestone_ref": u.milestone_ref,
                    "existing_versions": list(u.existing_versions),
                    "reason": u.reason,
                }
                for u in backfill.unreconstructable
            ],
        },
        "renumber": {
            "milestones_examined": renumber.milestones_examined,
            "rows_examined": renumber.rows_examined,
            "renumbered": renumber.renumbered,
            "unchanged": renumber.unchanged,
        },
        "violations": [
            {
                "milestone_id": str(v.milestone_id),
                "invariant": v.invariant.value,
                "detail": v.detail,
            }
            for v in report.violations
        ],
    }


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    config = load_config(args.config)
    configure_logging(level=config.log_level_value)

    try:
        init_engine_from_url(
            config.database_url,
            echo=config.echo,
            pool_size=config.pool_size,
            max_overflow=config.max_overflow,
        )
    except Exception as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 1
    register_immutability_listeners()

    try:
        with session_scope() as session:
            report = LedgerRepairService(
                session, batch_size=config.repair_batch_size
            ).run()
            if args.dry_run:
                session.rollback()
    except Exception:
        logger.exception("ledger_repair_failed")
        raise

    print(json.dumps(report_to_dict(report, dry_run=args.dry_run), indent=2))

    if args.check and not report.is_clean:
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
