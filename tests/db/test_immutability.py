"""
ORM-level immutability of closed trips.

These tests bypass the services and write ORM objects directly, which is
exactly the path the listeners exist to stop.
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from fleet_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from fleet_kernel.domain.enums import ExpenseCategory, PaymentMode, PaymentType
from fleet_kernel.exceptions import ImmutabilityViolationError
from fleet_kernel.models.expense import Expense
from fleet_kernel.models.payment import Payment
from fleet_kernel.models.trip import Trip


def _load(session, model, **criteria):
    return session.execute(
        select(model).filter_by(**criteria).execution_options(populate_existing=True)
    ).scalars().first()


class TestClosedTrip:

    @pytest.mark.parametrize("field,value", [
        ("final_balance", Decimal("1")),
        ("closed_by", "someone-else"),
        ("rate_per_unit", Decimal("500")),
        ("destination", "Coimbatore"),
    ])
    def test_field_update_blocked(self, session, closed_trip, field, value):
        trip = _load(session, Trip, id=closed_trip.id)
        setattr(trip, field, value)
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "Trip"

    def test_delete_blocked(self, session, closed_trip):
        trip = _load(session, Trip, id=closed_trip.id)
        session.delete(trip)
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "Trip"

    def test_delete_with_loaded_children_blocked(self, session, closed_trip):
        """Deleting the trip never rewrites its expenses' or payments' trip_id."""
        trip = _load(session, Trip, id=closed_trip.id)
        expense, payment = trip.expenses[0], trip.payments[0]
        session.delete(trip)
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "Trip"
        assert expense.trip_id == closed_trip.id
        assert payment.trip_id == closed_trip.id

    def test_open_trip_update_allowed(self, session, active_trip):
        trip = _load(session, Trip, id=active_trip.id)
        trip.destination = "Trichy"
        session.flush()
        assert _load(session, Trip, id=active_trip.id).destination == "Trichy"


class TestClosedTripChildren:

    def test_expense_insert_blocked(self, session, closed_trip):
        session.add(Expense(
            trip_id=closed_trip.id,
            category=ExpenseCategory.TOLL,
            amount=Decimal("10"),
            expense_date=date(2024, 3, 1),
        ))
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "Expense"

    def test_expense_update_blocked(self, session, closed_trip):
        expense = _load(session, Expense, trip_id=closed_trip.id)
        expense.amount = Decimal("1")
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_expense_moved_off_closed_trip_blocked(self, session, closed_trip, active_trip):
        expense = _load(session, Expense, trip_id=closed_trip.id)
        expense.trip_id = active_trip.id
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert str(closed_trip.id) in exc_info.value.reason

    def test_payment_delete_blocked(self, session, closed_trip):
        payment = _load(session, Payment, trip_id=closed_trip.id)
        session.delete(payment)
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "Payment"

    def test_payment_insert_blocked(self, session, closed_trip):
        session.add(Payment(
            trip_id=closed_trip.id,
            amount=Decimal("10"),
            payment_type=PaymentType.ADVANCE,
            mode=PaymentMode.CASH,
            payment_date=date(2024, 3, 1),
        ))
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_violation_logged(self, session, closed_trip, captured_logs):
        expense = _load(session, Expense, trip_id=closed_trip.id)
        session.delete(expense)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        blocked = [r for r in captured_logs() if r["message"] == "immutability_violation_blocked"]
        assert blocked[0]["operation"] == "DELETE"


class TestListenerRegistration:

    def test_registration_is_idempotent(self, session, closed_trip):
        register_immutability_listeners()
        register_immutability_listeners()

        trip = _load(session, Trip, id=closed_trip.id)
        trip.closed_by = "x"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_unregister_removes_backstop(self, session, closed_trip):
        unregister_immutability_listeners()
        try:
            trip = _load(session, Trip, id=closed_trip.id)
            trip.closed_by = "x"
            session.flush()
        finally:
            register_immutability_listeners()
