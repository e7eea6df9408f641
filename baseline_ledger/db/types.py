"""
Module: baseline_ledger.db.types
Responsibility: Rounding helpers for billable columns.  Centralizes billable
    precision so that the milestone, variation and ledger rows store
    identical values.
Architecture position: Ledger > DB.  May be imported by services/ and
    selectors/.  MUST NOT import from any of those layers.

CRITICAL: No floats for billable amounts.  All amounts use Decimal with
    two decimal places (Numeric(14, 2) columns).
"""

from decimal import ROUND_HALF_UP, Decimal

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a billable value to the ledger precision.

    This is the ONLY sanctioned rounding function for billable values.

    Args:
        value: The Decimal value to round.
        decimal_places: Number of decimal places to round to.
        rounding: Rounding mode (default: ROUND_HALF_UP).

    Returns:
        Rounded Decimal value.
    """
    quantize_str = "0." + "0" * decimal_places
    return Decimal(value).quantize(Decimal(quantize_str), rounding=rounding)
