"""
PaymentService -- customer payments against a trip.

Payments of a CLOSED trip are frozen: every write re-checks the trip
through TripGuard.  Type and mode are parsed at this boundary, so only the
closed PaymentType / PaymentMode sets reach the table.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from fleet_engines.trip_ledger import require_positive_amount
from fleet_kernel.domain.clock import Clock, SystemClock
from fleet_kernel.domain.dtos import PaymentInfo
from fleet_kernel.domain.enums import (
    PaymentMode,
    PaymentType,
    parse_payment_mode,
    parse_payment_type,
)
from fleet_kernel.logging_config import LogContext, get_logger
from fleet_kernel.models.payment import Payment
from fleet_kernel.services.base import BaseService
from fleet_kernel.services.trip_guard import TripGuard

logger = get_logger("services.payment")


class PaymentService(BaseService[Payment]):
    """Service for recording trip payments."""

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._guard = TripGuard(session)

    def add_payment(
        self,
        trip_id: UUID,
        amount: Decimal | str,
        payment_type: PaymentType | str,
        mode: PaymentMode | str,
        payment_date: date | None = None,
        note: str | None = None,
    ) -> PaymentInfo:
        """
        Record a payment received for a trip that is not CLOSED.

        Raises:
            TripClosedError: the trip is CLOSED.
            InvalidAmountError: amount is not positive.
            InvalidEnumValueError: unknown payment type or mode.
        """
        with LogContext.bind(trip_id=str(trip_id)):
            self._guard.load_editable(trip_id)
            value = require_positive_amount(amount)
            parsed_type = parse_payment_type(payment_type)
            parsed_mode = parse_payment_mode(mode)

            self._guard.lock_editable(trip_id, "add_payment")
            payment = Payment(
                trip_id=trip_id,
                amount=value,
                payment_type=parsed_type,
                mode=parsed_mode,
                payment_date=payment_date or self._clock.now().date(),
                note=(note or "").strip() or None,
            )
            self.session.add(payment)
            self.session.flush()

            logger.info(
                "payment_added",
                extra={
                    "payment_id": str(payment.id),
                    "amount": value,
                    "payment_type": parsed_type.value,
                    "mode": parsed_mode.value,
                },
            )
            return payment.to_dto()
