"""Pure domain core: clock, DTOs and ordering rules (zero I/O)."""

from baseline_ledger.domain.clock import Clock, DeterministicClock, SystemClock
from baseline_ledger.domain.dtos import (
    ApplicationResult,
    BackfillResult,
    BaselineVersionInfo,
    InvariantViolation,
    LedgerWriteResult,
    RenumberResult,
    RepairReport,
    SignerRole,
    SigningResult,
    UnreconstructableMilestone,
    VersionChange,
    VersionKey,
    WriteStatus,
)

__all__ = [
    "ApplicationResult",
    "BackfillResult",
    "BaselineVersionInfo",
    "Clock",
    "DeterministicClock",
    "InvariantViolation",
    "LedgerWriteResult",
    "RenumberResult",
    "RepairReport",
    "SignerRole",
    "SigningResult",
    "SystemClock",
    "UnreconstructableMilestone",
    "VersionChange",
    "VersionKey",
    "WriteStatus",
]
