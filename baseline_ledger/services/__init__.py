"""Write side: ledger writer, repair passes and workflow trigger points."""

from baseline_ledger.services.backfill_reconciler import BackfillReconciler
from baseline_ledger.services.base import BaseService
from baseline_ledger.services.baseline_signing import BaselineSigningService
from baseline_ledger.services.ledger_repair import LedgerRepairService
from baseline_ledger.services.ledger_writer import VersionLedgerWriter
from baseline_ledger.services.variation_application import VariationApplicationService
from baseline_ledger.services.version_renumberer import VersionRenumberer

__all__ = [
    "BackfillReconciler",
    "BaseService",
    "BaselineSigningService",
    "LedgerRepairService",
    "VariationApplicationService",
    "VersionLedgerWriter",
    "VersionRenumberer",
]
