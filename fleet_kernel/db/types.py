"""
Module: fleet_kernel.db.types
Responsibility: Annotated type aliases and rounding helpers for monetary and
    quantity columns.  Centralizes precision so every model and engine uses
    identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, selectors/ and fleet_engines.  MUST NOT import from any of them.

Invariants enforced:
    CRITICAL: No floats for amounts or quantities.  All values are Decimal.
    round_money() is the only sanctioned rounding function for display and
    rejection messages; stored values are never rounded.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated

from sqlalchemy import Numeric

# Monetary amount: 38 digits total, 9 decimal places
Money = Annotated[Decimal, Numeric(38, 9)]

MONEY_DECIMAL_PLACES = 9
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")


def round_money(
    value: Decimal,
    decimal_places: int = 0,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the given number of decimal places.

    Defaults to whole rupees, the precision operators see on screen.
    """
    quantum = Decimal(1).scaleb(-decimal_places)
    return value.quantize(quantum, rounding=rounding)


def format_money(value: Decimal, symbol: str = "₹") -> str:
    """Render an amount as whole currency units, sign before the symbol."""
    rounded = round_money(value)
    if rounded < 0:
        return f"-{symbol}{-rounded}"
    # Normalizes Decimal("-0") to "0"
    return f"{symbol}{abs(rounded)}"
