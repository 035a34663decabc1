"""
TripService -- trip registration and lifecycle transitions.

Responsibility:
    Creates trips, starts them, records the measured quantity and the
    agreed rate, and closes them with the frozen financial snapshot.

Architecture position:
    Kernel > Services -- imperative shell.  Delegates every write on an
    existing trip to TripGuard and every calculation to
    ``fleet_engines.trip_ledger``.

Invariants enforced:
    - Close preconditions are evaluated on expenses and payments read in
      the same transaction as the close UPDATE; the UPDATE is gated on the
      version those reads saw, so a concurrent expense or payment turns the
      close into a ConflictError instead of freezing stale totals.
    - The close snapshot is written by the close transition only.
    - Flush-only: never commits or rolls back the session.

Failure modes:
    - InvalidTripError, InvalidAmountError, InvalidQuantityError on input.
    - NotFoundError for an unknown truck or trip.
    - TripClosedError, InvalidTransitionError, TripCloseRejected,
      ConflictError from the lifecycle operations.

Audit relevance:
    Start and close are logged with trip_id and actor; close rejections
    are logged at WARNING with the rejection reason.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from fleet_engines.trip_ledger import (
    build_close_snapshot,
    compute_totals,
    require_positive_amount,
    require_positive_quantity,
    validate_close,
)
from fleet_kernel.domain.clock import Clock, SystemClock
from fleet_kernel.domain.dtos import TripInfo
from fleet_kernel.domain.enums import TripStatus
from fleet_kernel.domain.trip_workflow import CLOSE, START
from fleet_kernel.exceptions import (
    ConflictError,
    InvalidTripError,
    NotFoundError,
    TripCloseRejected,
)
from fleet_kernel.logging_config import LogContext, get_logger
from fleet_kernel.models.expense import Expense
from fleet_kernel.models.payment import Payment
from fleet_kernel.models.trip import Trip
from fleet_kernel.models.truck import Truck
from fleet_kernel.services.base import BaseService
from fleet_kernel.services.trip_guard import TripGuard

logger = get_logger("services.trip")


def _require_text(value: str | None, field: str) -> str:
    text = (value or "").strip()
    if not text:
        raise InvalidTripError(field)
    return text


class TripService(BaseService[Trip]):
    """
    Service for the trip lifecycle.

    Contract:
        Returns frozen ``TripInfo`` DTOs.  Every mutation of an existing
        trip re-checks its persisted status through TripGuard.

    Non-goals:
        - Does NOT record expenses or payments (ExpenseService,
          PaymentService).
        - Does NOT reopen or cancel trips; CLOSED is terminal.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        require_settlement: bool = True,
        default_closed_by: str = "operator",
        currency_symbol: str = "₹",
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._guard = TripGuard(session)
        self._require_settlement = require_settlement
        self._default_closed_by = default_closed_by
        self._currency_symbol = currency_symbol

    def create_trip(
        self,
        truck_id: UUID,
        source: str,
        destination: str,
        estimated_qty: Decimal | str | None = None,
        rate_per_unit: Decimal | str | None = None,
    ) -> TripInfo:
        """
        Register a PLANNED trip for a truck.

        Raises:
            InvalidTripError: source or destination is blank.
            InvalidAmountError: estimated quantity or rate is not positive.
            NotFoundError: the truck does not exist.
        """
        source = _require_text(source, "source")
        destination = _require_text(destination, "destination")
        estimated = (
            require_positive_amount(estimated_qty, "estimated_qty")
            if estimated_qty is not None
            else None
        )
        rate = (
            require_positive_amount(rate_per_unit, "rate_per_unit")
            if rate_per_unit is not None
            else None
        )

        if self.session.get(Truck, truck_id) is None:
            raise NotFoundError("Truck", str(truck_id))

        trip = Trip(
            truck_id=truck_id,
            source=source,
            destination=destination,
            status=TripStatus.PLANNED,
            version=1,
            estimated_qty=estimated,
            rate_per_unit=rate,
        )
        self.session.add(trip)
        self.session.flush()

        logger.info(
            "trip_created",
            extra={
                "trip_id": str(trip.id),
                "truck_id": str(truck_id),
                "source": source,
                "destination": destination,
            },
        )
        return trip.to_dto()

    def start_trip(self, trip_id: UUID) -> TripInfo:
        """PLANNED -> ACTIVE, stamping ``start_date``."""
        with LogContext.bind(trip_id=str(trip_id)):
            trip = self._guard.load(trip_id)
            trip = self._guard.apply_transition(
                trip,
                START,
                {"start_date": self._clock.now()},
            )
            logger.info("trip_started", extra={"start_date": trip.start_date})
            return trip.to_dto()

    def close_trip(
        self,
        trip_id: UUID,
        actor: str | None = None,
        expected_version: int | None = None,
    ) -> TripInfo:
        """
        ACTIVE -> CLOSED, freezing the financial snapshot.

        Args:
            trip_id: The trip to close.
            actor: Who certifies the close; defaults to the configured
                operator name.
            expected_version: The trip version the caller reviewed.  When
                given, a trip changed since then is a ConflictError.

        Raises:
            TripClosedError: the trip is already CLOSED.
            InvalidTransitionError: the trip is still PLANNED.
            TripCloseRejected: no expenses, no revenue, or unpaid balance.
            ConflictError: the trip changed concurrently.
        """
        closed_by = actor or self._default_closed_by

        with LogContext.bind(trip_id=str(trip_id), actor_id=closed_by):
            trip = self._guard.load(trip_id)
            if expected_version is not None and trip.version != expected_version:
                raise ConflictError("Trip", str(trip_id), CLOSE)

            self._guard.require_transition(trip, CLOSE)

            expenses = self.session.execute(
                select(Expense).where(Expense.trip_id == trip_id)
            ).scalars().all()
            payments = self.session.execute(
                select(Payment).where(Payment.trip_id == trip_id)
            ).scalars().all()
            totals = compute_totals(trip, expenses, payments)

            try:
                validate_close(
                    trip=trip,
                    totals=totals,
                    require_settlement=self._require_settlement,
                    currency_symbol=self._currency_symbol,
                )
            except TripCloseRejected as exc:
                logger.warning(
                    "trip_close_rejected",
                    extra={
                        "action": CLOSE,
                        "reason": exc.reason.value,
                        "revenue": totals.revenue,
                        "total_expenses": totals.total_expenses,
                        "total_payments": totals.total_payments,
                    },
                )
                raise

            snapshot = build_close_snapshot(
                totals,
                closed_by=closed_by,
                closed_at=self._clock.now(),
            )
            trip = self._guard.apply_transition(trip, CLOSE, snapshot.as_values())

            logger.info(
                "trip_closed",
                extra={
                    "final_revenue": trip.final_revenue,
                    "final_expenses": trip.final_expenses,
                    "final_balance": trip.final_balance,
                    "closed_by": trip.closed_by,
                },
            )
            return trip.to_dto()

    def update_actual_qty(self, trip_id: UUID, actual_qty: Decimal | str) -> TripInfo:
        """Record the measured quantity of a trip that is not CLOSED."""
        with LogContext.bind(trip_id=str(trip_id)):
            self._guard.load_editable(trip_id)
            quantity = require_positive_quantity(actual_qty)
            self._guard.lock_editable(
                trip_id, "update_actual_qty", {"actual_qty": quantity}
            )
            logger.info("trip_actual_qty_updated", extra={"actual_qty": quantity})
            return self._guard.load(trip_id).to_dto()

    def update_rate_per_unit(self, trip_id: UUID, rate_per_unit: Decimal | str) -> TripInfo:
        """Record the agreed rate of a trip that is not CLOSED."""
        with LogContext.bind(trip_id=str(trip_id)):
            self._guard.load_editable(trip_id)
            rate = require_positive_amount(rate_per_unit, "rate_per_unit")
            self._guard.lock_editable(
                trip_id, "update_rate_per_unit", {"rate_per_unit": rate}
            )
            logger.info("trip_rate_updated", extra={"rate_per_unit": rate})
            return self._guard.load(trip_id).to_dto()
