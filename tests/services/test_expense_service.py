"""
Tests for ExpenseService: expense recording and the bill upload pairing.

The bill-related tests check both sides of each write: the expense table
and the object store must agree after every success and every failure.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from fleet_kernel.domain.enums import ExpenseCategory
from fleet_kernel.exceptions import (
    InvalidAmountError,
    InvalidBillError,
    InvalidEnumValueError,
    NotFoundError,
    TripClosedError,
    UploadFailedError,
)
from fleet_kernel.models.expense import Expense
from fleet_kernel.services import ExpenseService
from fleet_kernel.services.expense_service import bill_reference
from fleet_kernel.storage import BillUpload


def _bill(name="receipt.JPG", content=b"\xff\xd8jpeg-bytes"):
    return BillUpload(filename=name, content=content, content_type="image/jpeg")


def _expense_count(session, trip_id) -> int:
    return session.execute(
        select(func.count(Expense.id)).where(Expense.trip_id == trip_id)
    ).scalar_one()


class TestBillReference:

    def test_scoped_to_trip_with_extension(self):
        trip_id = uuid4()
        path = bill_reference(trip_id, _bill())
        prefix, name = path.split("/")
        assert prefix == str(trip_id)
        assert name.endswith(".jpg")

    def test_unique_per_upload(self):
        trip_id = uuid4()
        assert bill_reference(trip_id, _bill()) != bill_reference(trip_id, _bill())

    def test_missing_extension(self):
        assert bill_reference(uuid4(), _bill(name="scan")).endswith(".bin")


# =============================================================================
# add_expense
# =============================================================================


class TestAddExpense:

    def test_records_expense(self, expense_service, active_trip, clock):
        expense = expense_service.add_expense(
            active_trip.id, category="FUEL", amount="2500.50", note="  diesel  "
        )
        assert expense.trip_id == active_trip.id
        assert expense.category == ExpenseCategory.FUEL
        assert expense.amount == Decimal("2500.50")
        assert expense.expense_date == clock.now().date()
        assert expense.note == "diesel"
        assert expense.bill_path is None

    def test_explicit_date(self, expense_service, active_trip):
        expense = expense_service.add_expense(
            active_trip.id, "toll", "120", expense_date=date(2024, 2, 28)
        )
        assert expense.expense_date == date(2024, 2, 28)

    def test_planned_trip_accepts_expenses(self, expense_service, planned_trip):
        expense = expense_service.add_expense(planned_trip.id, "loading", "300")
        assert expense.category == ExpenseCategory.LOADING

    def test_bumps_trip_version(self, expense_service, trip_selector, active_trip):
        expense_service.add_expense(active_trip.id, "fuel", "100")
        assert trip_selector.get_trip(active_trip.id).version == active_trip.version + 1

    @pytest.mark.parametrize("amount", ["0", "-5", "abc", None])
    def test_non_positive_amount(self, expense_service, active_trip, session, amount):
        with pytest.raises(InvalidAmountError):
            expense_service.add_expense(active_trip.id, "fuel", amount)
        assert _expense_count(session, active_trip.id) == 0

    def test_unknown_category(self, expense_service, active_trip):
        with pytest.raises(InvalidEnumValueError) as exc_info:
            expense_service.add_expense(active_trip.id, "snacks", "10")
        assert "FUEL" in exc_info.value.allowed

    def test_unknown_trip(self, expense_service):
        with pytest.raises(NotFoundError):
            expense_service.add_expense(uuid4(), "fuel", "10")

    def test_with_bill(self, expense_service, object_store, active_trip):
        expense = expense_service.add_expense(active_trip.id, "repair", "900", bill=_bill())
        assert expense.bill_path.startswith(f"{active_trip.id}/")
        assert object_store.read(expense.bill_path) == b"\xff\xd8jpeg-bytes"

    def test_empty_bill_is_ignored(self, expense_service, object_store, active_trip):
        expense = expense_service.add_expense(
            active_trip.id, "fuel", "10", bill=_bill(content=b"")
        )
        assert expense.bill_path is None
        assert object_store.objects == {}

    def test_logs_expense_added(self, expense_service, active_trip, captured_logs):
        expense_service.add_expense(active_trip.id, "fuel", "10", bill=_bill())
        added = [r for r in captured_logs() if r["message"] == "expense_added"]
        assert added[0]["trip_id"] == str(active_trip.id)
        assert added[0]["has_bill"] is True


class TestClosedTripExpenses:
    """Scenario D: an expense on a closed trip touches neither table nor store."""

    def test_rejected_with_store_untouched(
        self, expense_service, object_store, closed_trip, session
    ):
        before_rows = _expense_count(session, closed_trip.id)
        before_objects = dict(object_store.objects)

        with pytest.raises(TripClosedError):
            expense_service.add_expense(closed_trip.id, "fuel", "50", bill=_bill())

        assert _expense_count(session, closed_trip.id) == before_rows
        assert object_store.objects == before_objects

    def test_closed_check_precedes_input_validation(self, expense_service, closed_trip):
        with pytest.raises(TripClosedError):
            expense_service.add_expense(closed_trip.id, "not-a-category", "-1")

    def test_delete_rejected(self, expense_service, closed_trip, trip_selector):
        expense_id = trip_selector.get_ledger(closed_trip.id).expenses[0].id
        with pytest.raises(TripClosedError):
            expense_service.delete_expense(expense_id)

    def test_replace_bill_rejected(self, expense_service, object_store, closed_trip, trip_selector):
        expense_id = trip_selector.get_ledger(closed_trip.id).expenses[0].id
        with pytest.raises(TripClosedError):
            expense_service.replace_bill(expense_id, _bill())
        assert object_store.objects == {}


class TestUploadFailures:

    def test_failed_upload_writes_no_row(
        self, session, failing_object_store, clock, active_trip, trip_selector, captured_logs
    ):
        service = ExpenseService(session, failing_object_store, clock=clock)

        with pytest.raises(UploadFailedError):
            service.add_expense(active_trip.id, "fuel", "100", bill=_bill())

        assert _expense_count(session, active_trip.id) == 0
        assert trip_selector.get_trip(active_trip.id).version == active_trip.version
        assert any(r["message"] == "bill_upload_failed" for r in captured_logs())

    def test_row_failure_discards_uploaded_bill(
        self, expense_service, object_store, active_trip, monkeypatch, captured_logs
    ):
        def _fail(*args, **kwargs):
            raise RuntimeError("database went away")

        monkeypatch.setattr(expense_service._guard, "lock_editable", _fail)

        with pytest.raises(RuntimeError, match="database went away"):
            expense_service.add_expense(active_trip.id, "fuel", "100", bill=_bill())

        assert object_store.objects == {}
        assert any(r["message"] == "bill_upload_discarded" for r in captured_logs())

    def test_cleanup_failure_keeps_original_error(
        self, expense_service, object_store, active_trip, monkeypatch, captured_logs
    ):
        def _fail_lock(*args, **kwargs):
            raise RuntimeError("database went away")

        def _fail_delete(reference):
            raise OSError("store offline")

        monkeypatch.setattr(expense_service._guard, "lock_editable", _fail_lock)
        monkeypatch.setattr(object_store, "delete", _fail_delete)

        with pytest.raises(RuntimeError, match="database went away"):
            expense_service.add_expense(active_trip.id, "fuel", "100", bill=_bill())

        assert any(r["message"] == "bill_cleanup_failed" for r in captured_logs())


# =============================================================================
# replace_bill / delete_expense
# =============================================================================


class TestReplaceBill:

    def test_swaps_reference_and_keeps_old_object(
        self, expense_service, object_store, active_trip
    ):
        original = expense_service.add_expense(
            active_trip.id, "fuel", "100", bill=_bill(content=b"first")
        )
        replaced = expense_service.replace_bill(
            original.id, _bill(name="second.png", content=b"second")
        )

        assert replaced.bill_path != original.bill_path
        assert replaced.bill_path.endswith(".png")
        assert object_store.read(replaced.bill_path) == b"second"
        assert object_store.read(original.bill_path) == b"first"

    def test_attach_to_expense_without_bill(self, expense_service, active_trip):
        expense = expense_service.add_expense(active_trip.id, "toll", "40")
        replaced = expense_service.replace_bill(expense.id, _bill())
        assert replaced.bill_path is not None

    def test_empty_bill_rejected(self, expense_service, active_trip):
        expense = expense_service.add_expense(active_trip.id, "toll", "40")
        with pytest.raises(InvalidBillError):
            expense_service.replace_bill(expense.id, _bill(content=b""))

    def test_failed_upload_keeps_previous_reference(
        self, session, expense_service, failing_object_store, clock, active_trip, trip_selector
    ):
        original = expense_service.add_expense(active_trip.id, "fuel", "100", bill=_bill())
        failing = ExpenseService(session, failing_object_store, clock=clock)

        with pytest.raises(UploadFailedError):
            failing.replace_bill(original.id, _bill(content=b"new"))

        ledger = trip_selector.get_ledger(active_trip.id)
        assert ledger.expenses[0].bill_path == original.bill_path

    def test_unknown_expense(self, expense_service):
        with pytest.raises(NotFoundError) as exc_info:
            expense_service.replace_bill(uuid4(), _bill())
        assert exc_info.value.entity_type == "Expense"


class TestDeleteExpense:

    def test_removes_row_and_keeps_bill(
        self, expense_service, object_store, active_trip, session
    ):
        expense = expense_service.add_expense(active_trip.id, "fuel", "100", bill=_bill())
        expense_service.delete_expense(expense.id)

        assert _expense_count(session, active_trip.id) == 0
        assert object_store.exists(expense.bill_path)

    def test_unknown_expense(self, expense_service):
        with pytest.raises(NotFoundError):
            expense_service.delete_expense(uuid4())
