"""
Structured logging as the fleet services emit it.

The envelope (trip_id, truck_id, actor_id, action, reason) is checked on
real service events; the formatter and LogContext mechanics are checked
directly against a handler.
"""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from fleet_kernel.domain.enums import TripStatus
from fleet_kernel.exceptions import (
    CloseRejection,
    TripClosedError,
    TripCloseRejected,
    UploadFailedError,
)
from fleet_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)
from fleet_kernel.services import ExpenseService
from fleet_kernel.storage import BillUpload


@pytest.fixture(autouse=True)
def _fresh_logging():
    reset_logging()
    yield
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())


@pytest.fixture
def log_lines():
    """Install a JSON handler at DEBUG and return a reader for its records."""
    stream = StringIO()
    configure_logging(level=logging.DEBUG, handler=logging.StreamHandler(stream))

    def _read() -> list[dict]:
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]

    return _read


def _only(records: list[dict], message: str) -> dict:
    matching = [r for r in records if r["message"] == message]
    assert len(matching) == 1, [r["message"] for r in records]
    return matching[0]


# =============================================================================
# Service events
# =============================================================================


class TestServiceEvents:

    def test_close_rejection_envelope(self, make_trip, trip_service, captured_logs):
        trip = make_trip(actual_qty="10", rate="100", expenses=["200"], payments=["600"])

        with pytest.raises(TripCloseRejected):
            trip_service.close_trip(trip.id, actor="ravi")

        record = _only(captured_logs(), "trip_close_rejected")
        assert record["level"] == "WARNING"
        assert record["trip_id"] == str(trip.id)
        assert record["actor_id"] == "ravi"
        assert record["action"] == "close"
        assert record["reason"] == "outstanding"

    def test_bill_upload_failure_is_typed_and_logged(
        self, session, failing_object_store, clock, active_trip, captured_logs
    ):
        service = ExpenseService(session, failing_object_store, clock=clock)
        bill = BillUpload("diesel.jpg", b"\xff\xd8receipt", "image/jpeg")

        with pytest.raises(UploadFailedError):
            service.add_expense(active_trip.id, "fuel", "100", bill=bill)

        record = _only(captured_logs(), "bill_upload_failed")
        assert record["level"] == "ERROR"
        assert record["trip_id"] == str(active_trip.id)
        assert record["bill_filename"] == "diesel.jpg"
        assert record["bill_path"].startswith(f"{active_trip.id}/")
        assert record["exc_code"] == "UPLOAD_FAILED"
        assert record["exc_cause"] == "storage unavailable"

    def test_truck_context_on_truck_events(self, truck_service, truck, captured_logs):
        truck_service.update_daily_fixed_cost(truck.id, "1800")

        records = [r for r in captured_logs() if r.get("truck_id") == str(truck.id)]
        assert records
        assert all("trip_id" not in r for r in records)


# =============================================================================
# Formatter
# =============================================================================


class TestStructuredFormatter:

    def test_envelope_order(self, log_lines):
        with LogContext.bind(trip_id="trip-1", actor_id="ravi"):
            get_logger("services.trip").info(
                "trip_started", extra={"version": 2, "action": "start"}
            )

        record = log_lines()[0]
        assert list(record) == [
            "ts", "level", "logger", "message", "trip_id", "actor_id", "action", "version",
        ]
        assert record["logger"] == "fleet_kernel.services.trip"

    def test_extra_overrides_bound_context(self, log_lines):
        with LogContext.bind(trip_id="outer"):
            get_logger("services.guard").warning("trip_update_missed", extra={"trip_id": "inner"})

        assert log_lines()[0]["trip_id"] == "inner"

    def test_exception_fills_envelope(self, log_lines):
        trip_id = str(uuid4())
        try:
            raise TripCloseRejected(trip_id, CloseRejection.NO_REVENUE, "no revenue")
        except TripCloseRejected:
            get_logger("test").error("close_failed", exc_info=True)

        record = log_lines()[0]
        assert record["trip_id"] == trip_id
        assert record["reason"] == "no_revenue"
        assert record["exc_code"] == "TRIP_CLOSE_REJECTED"
        assert record["exc_type"] == "TripCloseRejected"
        assert "traceback" in record

    def test_plain_exception(self, log_lines):
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("test").error("failed", exc_info=True)

        record = log_lines()[0]
        assert record["exc_message"] == "boom"
        assert "exc_code" not in record
        assert "reason" not in record

    def test_domain_values_serialized(self, log_lines):
        trip_id = uuid4()
        get_logger("test").info(
            "trip_closed",
            extra={
                "closed_trip": trip_id,
                "final_balance": Decimal("800.50"),
                "status": TripStatus.CLOSED,
                "bill_filename": "₹-receipt.pdf",
            },
        )

        record = log_lines()[0]
        assert record["closed_trip"] == str(trip_id)
        assert record["final_balance"] == "800.50"
        assert record["status"] == "closed"
        assert record["bill_filename"] == "₹-receipt.pdf"

    def test_record_attribute_names_rejected_by_stdlib(self, log_lines):
        with pytest.raises(KeyError):
            get_logger("test").info("bad", extra={"filename": "x.pdf"})

    def test_formatter_usable_on_its_own_handler(self):
        stream = StringIO()
        handler = logging.StreamHandler(stream)
        handler.setFormatter(StructuredFormatter())
        record = logging.LogRecord("fleet_kernel.x", logging.INFO, __file__, 1, "hello", (), None)

        handler.emit(record)

        assert json.loads(stream.getvalue())["message"] == "hello"


# =============================================================================
# LogContext
# =============================================================================


class TestLogContext:

    def test_bind_nests_and_restores(self):
        with LogContext.bind(trip_id="a"):
            with LogContext.bind(trip_id="b", truck_id="k"):
                assert LogContext.get_all() == {"trip_id": "b", "truck_id": "k"}
            assert LogContext.get_all() == {"trip_id": "a"}
        assert LogContext.get_all() == {}

    def test_bind_restores_on_exception(self):
        with pytest.raises(TripClosedError):
            with LogContext.bind(trip_id="t"):
                raise TripClosedError("t")
        assert LogContext.get_all() == {}

    def test_none_values_ignored(self):
        with LogContext.bind(trip_id="t", actor_id=None):
            assert LogContext.get_all() == {"trip_id": "t"}

    def test_values_stringified(self):
        trip_id = uuid4()
        LogContext.set(trip_id=trip_id)
        assert LogContext.get_all() == {"trip_id": str(trip_id)}

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError, match="route"):
            LogContext.set(route="Chennai -> Madurai")


# =============================================================================
# configure_logging
# =============================================================================


class TestConfigureLogging:

    def test_first_call_wins(self):
        first = configure_logging(level=logging.WARNING, stream=StringIO())
        second = configure_logging(level=logging.DEBUG, stream=StringIO())

        root = logging.getLogger("fleet_kernel")
        assert second is first
        assert root.handlers == [first]
        assert root.level == logging.WARNING

    def test_level_filters_children(self, log_lines):
        logging.getLogger("fleet_kernel").setLevel(logging.INFO)
        logger = get_logger("services.expense")
        logger.debug("FLEET_ENGINE_TRACE")
        logger.info("expense_added")

        assert [r["message"] for r in log_lines()] == ["expense_added"]

    def test_reset_removes_handler(self):
        installed = configure_logging(stream=StringIO())
        reset_logging()
        assert installed not in logging.getLogger("fleet_kernel").handlers
