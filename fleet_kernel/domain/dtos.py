"""
Frozen data transfer objects for the fleet kernel.

Services and selectors return these, never ORM instances, so callers
cannot mutate persisted state behind the trip guard's back.  The ledger
engine consumes them as its only input.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from fleet_kernel.domain.enums import ExpenseCategory, PaymentMode, PaymentType, TripStatus


@dataclass(frozen=True)
class TruckInfo:
    """A registered truck."""
    id: UUID
    number_plate: str
    company_id: UUID
    daily_fixed_cost: Decimal | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class TripInfo:
    """
    A trip as persisted.

    The ``final_*``, ``closed_at`` and ``closed_by`` fields are None until
    the trip is CLOSED and never change afterwards.
    """
    id: UUID
    truck_id: UUID
    source: str
    destination: str
    status: TripStatus
    version: int
    estimated_qty: Decimal | None = None
    actual_qty: Decimal | None = None
    rate_per_unit: Decimal | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    final_revenue: Decimal | None = None
    final_expenses: Decimal | None = None
    final_balance: Decimal | None = None
    closed_at: datetime | None = None
    closed_by: str | None = None

    @property
    def is_closed(self) -> bool:
        return self.status == TripStatus.CLOSED


@dataclass(frozen=True)
class ExpenseInfo:
    """A single on-road expense."""
    id: UUID
    trip_id: UUID
    category: ExpenseCategory
    amount: Decimal
    expense_date: date
    note: str | None = None
    bill_path: str | None = None


@dataclass(frozen=True)
class PaymentInfo:
    """A customer payment against a trip."""
    id: UUID
    trip_id: UUID
    amount: Decimal
    payment_type: PaymentType
    mode: PaymentMode
    payment_date: date
    note: str | None = None
