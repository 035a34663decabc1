"""
Module: fleet_engines
Responsibility:
    Pure calculation layer for the trip ledger.  Re-exports the public
    symbols of ``fleet_engines.trip_ledger``.

Architecture position:
    Engines -- zero I/O.  May only import fleet_kernel.domain,
    fleet_kernel.exceptions and fleet_kernel.db.types.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()``; timestamps are passed in.
    - Decimal-only arithmetic for amounts and quantities.
    - Determinism: identical inputs always produce identical outputs.

Usage:
    from fleet_engines import compute_totals, validate_close

    totals = compute_totals(trip, expenses, payments)
    validate_close(trip, totals)
"""

from fleet_engines.trip_ledger import (
    CloseSnapshot,
    TripTotals,
    assert_editable,
    build_close_snapshot,
    compute_revenue,
    compute_totals,
    require_positive_amount,
    require_positive_quantity,
    validate_close,
)

__all__ = [
    "CloseSnapshot",
    "TripTotals",
    "assert_editable",
    "build_close_snapshot",
    "compute_revenue",
    "compute_totals",
    "require_positive_amount",
    "require_positive_quantity",
    "validate_close",
]
