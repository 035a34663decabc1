"""
ExpenseService -- on-road expenses and their bill documents.

Responsibility:
    Records, re-documents and deletes expenses of trips that are not
    CLOSED, pairing each bill upload with the row that references it.

Architecture position:
    Kernel > Services -- imperative shell.  Writes go through TripGuard;
    bill documents go to an injected ObjectStore.

Invariants enforced:
    - The editability check runs before anything touches the object store,
      so a CLOSED trip leaves both the store and the table unmodified.
    - A bill is uploaded before its row is written.  A failed upload means
      no row; a failed row write after a successful upload deletes the
      uploaded object again.
    - Replacing a bill uploads the new document first and only then swaps
      the reference.  The previous document is left in the store.

Failure modes:
    - TripClosedError, NotFoundError, ConflictError from TripGuard.
    - InvalidAmountError, InvalidEnumValueError, InvalidBillError on input.
    - UploadFailedError from the object store.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from fleet_engines.trip_ledger import require_positive_amount
from fleet_kernel.domain.clock import Clock, SystemClock
from fleet_kernel.domain.dtos import ExpenseInfo
from fleet_kernel.domain.enums import ExpenseCategory, parse_expense_category
from fleet_kernel.exceptions import InvalidBillError, NotFoundError, UploadFailedError
from fleet_kernel.logging_config import LogContext, get_logger
from fleet_kernel.models.expense import Expense
from fleet_kernel.services.base import BaseService
from fleet_kernel.services.trip_guard import TripGuard
from fleet_kernel.storage.object_store import BillUpload, ObjectStore

logger = get_logger("services.expense")


def bill_reference(trip_id: UUID, bill: BillUpload) -> str:
    """Object store path for a new bill of ``trip_id``."""
    return f"{trip_id}/{uuid4()}.{bill.extension}"


class ExpenseService(BaseService[Expense]):
    """
    Service for trip expenses.

    Contract:
        Returns frozen ``ExpenseInfo`` DTOs.  Flush-only.
    """

    def __init__(
        self,
        session: Session,
        object_store: ObjectStore,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._store = object_store
        self._clock = clock or SystemClock()
        self._guard = TripGuard(session)

    def add_expense(
        self,
        trip_id: UUID,
        category: ExpenseCategory | str,
        amount: Decimal | str,
        expense_date: date | None = None,
        note: str | None = None,
        bill: BillUpload | None = None,
    ) -> ExpenseInfo:
        """
        Record an expense, optionally with a bill document.

        An empty bill (no content) is treated as no bill.

        Raises:
            TripClosedError: the trip is CLOSED.
            InvalidAmountError: amount is not positive.
            InvalidEnumValueError: unknown category.
            UploadFailedError: the bill could not be stored; no row is written.
        """
        with LogContext.bind(trip_id=str(trip_id)):
            self._guard.load_editable(trip_id)
            parsed_category = parse_expense_category(category)
            value = require_positive_amount(amount)

            bill_path = None
            if bill is not None and bill.content:
                bill_path = self._upload(trip_id, bill)

            try:
                self._guard.lock_editable(trip_id, "add_expense")
                expense = Expense(
                    trip_id=trip_id,
                    category=parsed_category,
                    amount=value,
                    expense_date=expense_date or self._clock.now().date(),
                    note=(note or "").strip() or None,
                    bill_path=bill_path,
                )
                self.session.add(expense)
                self.session.flush()
            except Exception:
                if bill_path is not None:
                    self._discard(bill_path)
                raise

            logger.info(
                "expense_added",
                extra={
                    "expense_id": str(expense.id),
                    "category": parsed_category.value,
                    "amount": value,
                    "has_bill": bill_path is not None,
                },
            )
            return expense.to_dto()

    def replace_bill(self, expense_id: UUID, bill: BillUpload) -> ExpenseInfo:
        """
        Attach a new bill document to an existing expense.

        Raises:
            NotFoundError: the expense does not exist.
            TripClosedError: the parent trip is CLOSED.
            InvalidBillError: the document is empty.
            UploadFailedError: the new bill could not be stored; the
                expense keeps its previous reference.
        """
        expense = self._get(expense_id)
        trip_id = expense.trip_id

        with LogContext.bind(trip_id=str(trip_id)):
            self._guard.load_editable(trip_id)
            if not bill.content:
                raise InvalidBillError(bill.filename)

            new_path = self._upload(trip_id, bill)
            old_path = expense.bill_path
            try:
                self._guard.lock_editable(trip_id, "replace_bill")
                expense.bill_path = new_path
                self.session.flush()
            except Exception:
                self._discard(new_path)
                raise

            logger.info(
                "expense_bill_replaced",
                extra={
                    "expense_id": str(expense_id),
                    "old_bill_path": old_path,
                    "new_bill_path": new_path,
                },
            )
            return expense.to_dto()

    def delete_expense(self, expense_id: UUID) -> None:
        """
        Delete an expense of a trip that is not CLOSED.

        The bill document, if any, stays in the object store.
        """
        expense = self._get(expense_id)
        trip_id = expense.trip_id

        with LogContext.bind(trip_id=str(trip_id)):
            self._guard.load_editable(trip_id)
            self._guard.lock_editable(trip_id, "delete_expense")
            self.session.delete(expense)
            self.session.flush()

            logger.info(
                "expense_deleted",
                extra={"expense_id": str(expense_id), "amount": expense.amount},
            )

    def _get(self, expense_id: UUID) -> Expense:
        expense = self.session.execute(
            select(Expense)
            .where(Expense.id == expense_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if expense is None:
            raise NotFoundError("Expense", str(expense_id))
        return expense

    def _upload(self, trip_id: UUID, bill: BillUpload) -> str:
        path = bill_reference(trip_id, bill)
        try:
            stored = self._store.upload(path, bill.content, bill.content_type)
        except UploadFailedError:
            logger.error(
                "bill_upload_failed",
                extra={"bill_path": path, "bill_filename": bill.filename},
                exc_info=True,
            )
            raise
        return stored.reference

    def _discard(self, bill_path: str) -> None:
        """Remove an uploaded bill whose row write failed."""
        try:
            self._store.delete(bill_path)
        except Exception:
            # The row-write failure is re-raised by the caller.
            logger.error(
                "bill_cleanup_failed",
                extra={"bill_path": bill_path},
                exc_info=True,
            )
        else:
            logger.warning("bill_upload_discarded", extra={"bill_path": bill_path})
