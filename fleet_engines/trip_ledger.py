"""
Module: fleet_engines.trip_ledger
Responsibility:
    Derived trip financials and the lifecycle rules that depend on them:
    revenue, expense and payment totals, balance, outstanding, the
    editability guard, close validation and the close snapshot.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Inputs are DTOs (or any
    object with the same attributes); the caller supplies the current
    time and the acting user.

Invariants enforced:
    - revenue = actual_qty * rate_per_unit, and 0 when either is absent.
    - balance = revenue - total_expenses; outstanding = revenue - total_payments.
    - Close requires, in this order: at least one expense, revenue > 0 with a
      positive actual quantity, and (when settlement is required)
      outstanding <= 0.  The first unmet condition is reported.
    - Nothing is cached: every call recomputes from the records passed in.

Failure modes:
    - TripClosedError from assert_editable().
    - TripCloseRejected from validate_close(), carrying a CloseRejection.
    - InvalidAmountError / InvalidQuantityError from the input validators.

Usage:
    totals = compute_totals(trip, expenses, payments)
    validate_close(trip=trip, totals=totals)
    snapshot = build_close_snapshot(totals, closed_by="operator", closed_at=now)
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from fleet_engines.tracer import traced_engine
from fleet_kernel.db.types import ZERO, format_money
from fleet_kernel.domain.enums import TripStatus
from fleet_kernel.exceptions import (
    CloseRejection,
    InvalidAmountError,
    InvalidQuantityError,
    TripClosedError,
    TripCloseRejected,
)
from fleet_kernel.logging_config import get_logger

logger = get_logger("engines.trip_ledger")


@dataclass(frozen=True)
class TripTotals:
    """
    Derived financial position of a trip at one point in time.

    Contract:
        Frozen; computed by ``compute_totals`` from the current record set.
    """

    revenue: Decimal
    total_expenses: Decimal
    total_payments: Decimal
    expense_count: int
    payment_count: int

    @property
    def balance(self) -> Decimal:
        """Operating margin: revenue minus recorded expenses."""
        return self.revenue - self.total_expenses

    @property
    def outstanding(self) -> Decimal:
        """Collections gap: revenue not yet covered by payments."""
        return self.revenue - self.total_payments


@dataclass(frozen=True)
class CloseSnapshot:
    """The values frozen onto a trip by the close transition."""

    final_revenue: Decimal
    final_expenses: Decimal
    final_balance: Decimal
    closed_at: datetime
    closed_by: str

    def as_values(self) -> dict[str, Any]:
        """Column values for the close UPDATE (end_date is the close time)."""
        return {
            "final_revenue": self.final_revenue,
            "final_expenses": self.final_expenses,
            "final_balance": self.final_balance,
            "closed_at": self.closed_at,
            "closed_by": self.closed_by,
            "end_date": self.closed_at,
        }


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------


def _to_decimal(value: Any) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            return None
    if not result.is_finite():
        return None
    return result


def require_positive_amount(value: Any, field: str = "amount") -> Decimal:
    """Parse a monetary input; anything missing, zero or negative is rejected."""
    amount = _to_decimal(value)
    if amount is None or amount <= ZERO:
        raise InvalidAmountError(field, value)
    return amount


def require_positive_quantity(value: Any) -> Decimal:
    """Parse an actual quantity; anything missing, zero or negative is rejected."""
    quantity = _to_decimal(value)
    if quantity is None or quantity <= ZERO:
        raise InvalidQuantityError(value)
    return quantity


# ---------------------------------------------------------------------------
# Derived values
# ---------------------------------------------------------------------------


def compute_revenue(actual_qty: Decimal | None, rate_per_unit: Decimal | None) -> Decimal:
    """Revenue earned by a trip; zero until both factors are known."""
    if actual_qty is None or rate_per_unit is None:
        return ZERO
    return actual_qty * rate_per_unit


def compute_totals(trip, expenses: Iterable, payments: Iterable) -> TripTotals:
    """
    Compute the derived financial position of ``trip``.

    Args:
        trip: Object with ``actual_qty`` and ``rate_per_unit``.
        expenses: Records with an ``amount`` attribute.
        payments: Records with an ``amount`` attribute.
    """
    expense_amounts = [e.amount for e in expenses]
    payment_amounts = [p.amount for p in payments]
    return TripTotals(
        revenue=compute_revenue(trip.actual_qty, trip.rate_per_unit),
        total_expenses=sum(expense_amounts, ZERO),
        total_payments=sum(payment_amounts, ZERO),
        expense_count=len(expense_amounts),
        payment_count=len(payment_amounts),
    )


# ---------------------------------------------------------------------------
# Lifecycle rules
# ---------------------------------------------------------------------------


def assert_editable(trip) -> None:
    """Raise TripClosedError if ``trip`` is CLOSED."""
    if trip.status == TripStatus.CLOSED:
        raise TripClosedError(str(trip.id))


@traced_engine(
    "trip_ledger.validate_close",
    "1.0",
    fingerprint_fields=("trip.id", "trip.actual_qty", "trip.rate_per_unit", "totals"),
)
def validate_close(
    trip,
    totals: TripTotals,
    require_settlement: bool = True,
    currency_symbol: str = "₹",
) -> None:
    """
    Check the close preconditions against ``totals``.

    Raises:
        TripCloseRejected: with the reason of the first unmet condition.
    """
    trip_id = str(trip.id)

    if totals.expense_count == 0:
        raise TripCloseRejected(
            trip_id,
            CloseRejection.NO_EXPENSES,
            "Cannot close trip without expenses",
        )

    if trip.actual_qty is None or trip.actual_qty <= ZERO or totals.revenue <= ZERO:
        raise TripCloseRejected(
            trip_id,
            CloseRejection.NO_REVENUE,
            "Cannot close trip without valid revenue",
        )

    outstanding = totals.outstanding
    if require_settlement and outstanding > ZERO:
        raise TripCloseRejected(
            trip_id,
            CloseRejection.OUTSTANDING,
            f"Cannot close trip with {format_money(outstanding, currency_symbol)} outstanding",
            outstanding=outstanding,
        )


def build_close_snapshot(totals: TripTotals, closed_by: str, closed_at: datetime) -> CloseSnapshot:
    """Freeze ``totals`` into the values written by the close transition."""
    return CloseSnapshot(
        final_revenue=totals.revenue,
        final_expenses=totals.total_expenses,
        final_balance=totals.balance,
        closed_at=closed_at,
        closed_by=closed_by,
    )
