"""
Module: fleet_kernel.models.expense
Responsibility: ORM persistence for on-road trip expenses and their
    optional bill document reference.

Invariants enforced:
    - amount is positive (ExpenseService rejects anything else).
    - category is one of the closed ExpenseCategory set.
    - Rows of a CLOSED trip are never inserted, updated or deleted
      (TripGuard, backed by db/immutability.py).
"""

from datetime import date
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, String, Text
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fleet_kernel.db.base import TrackedBase, UUIDString
from fleet_kernel.db.types import Money
from fleet_kernel.domain.enums import ExpenseCategory
from fleet_kernel.models.trip import _enum_values


class Expense(TrackedBase):
    """An expense recorded against a trip."""

    __tablename__ = "expenses"

    __table_args__ = (
        Index("idx_expense_trip", "trip_id"),
    )

    trip_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("trips.id"),
        nullable=False,
    )

    category: Mapped[ExpenseCategory] = mapped_column(
        SAEnum(
            ExpenseCategory,
            native_enum=False,
            length=20,
            values_callable=_enum_values,
            validate_strings=True,
        ),
        nullable=False,
    )

    amount: Mapped[Money] = mapped_column(nullable=False)
    expense_date: Mapped[date] = mapped_column(Date, nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Object store reference of the uploaded bill, e.g. "<trip_id>/<uuid>.pdf"
    bill_path: Mapped[str | None] = mapped_column(String(500), nullable=True)

    trip: Mapped["Trip"] = relationship(  # noqa: F821
        "Trip",
        back_populates="expenses",
    )

    def __repr__(self) -> str:
        return f"<Expense {self.category.value} {self.amount}>"

    def to_dto(self):
        from fleet_kernel.domain.dtos import ExpenseInfo

        return ExpenseInfo(
            id=self.id,
            trip_id=self.trip_id,
            category=self.category,
            amount=self.amount,
            expense_date=self.expense_date,
            note=self.note,
            bill_path=self.bill_path,
        )
