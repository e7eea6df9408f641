"""
Baseline Ledger

Version history of contractually committed milestone baselines:
- Immutable version-1 record of the originally signed commitment
- One appended version per applied variation
- Idempotent backfill of history that predates the ledger
- Gapless, chronologically ordered version numbering
"""

__version__ = "0.1.0"
