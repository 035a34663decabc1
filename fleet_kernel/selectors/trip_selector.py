"""
Module: fleet_kernel.selectors.trip_selector
Responsibility: Read-only trip views: the per-trip ledger, the trip list,
    temporary bill links and the operations dashboard.
Architecture position: Kernel > Selectors.  Derived values come from
    ``fleet_engines.trip_ledger``; nothing here writes.

Invariants enforced:
    - Open trips: revenue, totals, balance and outstanding are recomputed
      from the current rows on every call.
    - Closed trips: revenue, total expenses and balance are the frozen
      close snapshot, never recomputed.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from fleet_engines.trip_ledger import compute_totals
from fleet_kernel.db.types import ZERO
from fleet_kernel.domain.dtos import ExpenseInfo, PaymentInfo, TripInfo
from fleet_kernel.domain.enums import TripStatus
from fleet_kernel.exceptions import NotFoundError
from fleet_kernel.models.expense import Expense
from fleet_kernel.models.payment import Payment
from fleet_kernel.models.trip import Trip
from fleet_kernel.models.truck import Truck
from fleet_kernel.selectors.base import BaseSelector
from fleet_kernel.storage.object_store import ObjectStore

DEFAULT_BILL_URL_TTL_SECONDS = 600


@dataclass(frozen=True)
class TripLedger:
    """A trip with its records and financial position."""

    trip: TripInfo
    truck_plate: str
    expenses: tuple[ExpenseInfo, ...]
    payments: tuple[PaymentInfo, ...]
    revenue: Decimal
    total_expenses: Decimal
    total_payments: Decimal
    balance: Decimal
    outstanding: Decimal


@dataclass(frozen=True)
class TripSummary:
    """One row of the trip list."""

    id: UUID
    truck_plate: str
    source: str
    destination: str
    status: TripStatus
    start_date: datetime | None
    result: Decimal | None

    @property
    def route(self) -> str:
        return f"{self.source} -> {self.destination}"


@dataclass(frozen=True)
class BillLink:
    """Temporary download link for an expense bill."""

    expense_id: UUID
    bill_path: str
    url: str | None


@dataclass(frozen=True)
class DashboardSummary:
    """Operations overview."""

    active_trips: int
    cash_deployed: Decimal


class TripSelector(BaseSelector[Trip]):
    """
    Selector for trip views.

    Contract:
        Returns frozen DTOs; raises NotFoundError for an unknown trip id.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    def _load(self, trip_id: UUID) -> Trip:
        trip = self.session.execute(
            select(Trip)
            .where(Trip.id == trip_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if trip is None:
            raise NotFoundError("Trip", str(trip_id))
        return trip

    def _expenses(self, trip_id: UUID) -> list[Expense]:
        return list(
            self.session.execute(
                select(Expense)
                .where(Expense.trip_id == trip_id)
                .order_by(Expense.expense_date, Expense.created_at)
            ).scalars()
        )

    def _payments(self, trip_id: UUID) -> list[Payment]:
        return list(
            self.session.execute(
                select(Payment)
                .where(Payment.trip_id == trip_id)
                .order_by(Payment.payment_date, Payment.created_at)
            ).scalars()
        )

    def get_trip(self, trip_id: UUID) -> TripInfo:
        return self._load(trip_id).to_dto()

    def get_ledger(self, trip_id: UUID) -> TripLedger:
        """
        The full financial view of one trip.

        Args:
            trip_id: The trip to report.

        Returns:
            TripLedger with derived totals for an open trip, or the frozen
            snapshot for a closed one.

        Raises:
            NotFoundError: the trip does not exist.
        """
        trip = self._load(trip_id)
        expenses = self._expenses(trip_id)
        payments = self._payments(trip_id)
        totals = compute_totals(trip, expenses, payments)

        if trip.is_closed:
            revenue = trip.final_revenue
            total_expenses = trip.final_expenses
            balance = trip.final_balance
        else:
            revenue = totals.revenue
            total_expenses = totals.total_expenses
            balance = totals.balance

        return TripLedger(
            trip=trip.to_dto(),
            truck_plate=trip.truck.number_plate,
            expenses=tuple(e.to_dto() for e in expenses),
            payments=tuple(p.to_dto() for p in payments),
            revenue=revenue,
            total_expenses=total_expenses,
            total_payments=totals.total_payments,
            balance=balance,
            outstanding=revenue - totals.total_payments,
        )

    def list_trips(self, status: TripStatus | None = None) -> list[TripSummary]:
        """Trips newest first; ``result`` is the final balance of closed trips."""
        query = (
            select(Trip, Truck.number_plate)
            .join(Truck, Trip.truck_id == Truck.id)
            .order_by(Trip.created_at.desc())
        )
        if status is not None:
            query = query.where(Trip.status == status)

        summaries = []
        for trip, plate in self.session.execute(query).unique():
            summaries.append(
                TripSummary(
                    id=trip.id,
                    truck_plate=plate,
                    source=trip.source,
                    destination=trip.destination,
                    status=trip.status,
                    start_date=trip.start_date,
                    result=trip.final_balance if trip.is_closed else None,
                )
            )
        return summaries

    def bill_urls(
        self,
        trip_id: UUID,
        store: ObjectStore,
        ttl_seconds: int = DEFAULT_BILL_URL_TTL_SECONDS,
    ) -> list[BillLink]:
        """Temporary URLs for every expense bill of a trip."""
        self._load(trip_id)
        return [
            BillLink(
                expense_id=expense.id,
                bill_path=expense.bill_path,
                url=store.create_temporary_access_url(expense.bill_path, ttl_seconds),
            )
            for expense in self._expenses(trip_id)
            if expense.bill_path
        ]

    def dashboard(self) -> DashboardSummary:
        """Count of ACTIVE trips and the expenses spent on them so far."""
        active_trips = self.session.execute(
            select(func.count(Trip.id)).where(Trip.status == TripStatus.ACTIVE)
        ).scalar_one()

        cash_deployed = self.session.execute(
            select(func.coalesce(func.sum(Expense.amount), ZERO))
            .select_from(Expense)
            .join(Trip, Expense.trip_id == Trip.id)
            .where(Trip.status == TripStatus.ACTIVE)
        ).scalar_one()

        return DashboardSummary(
            active_trips=active_trips,
            cash_deployed=Decimal(str(cash_deployed)),
        )
