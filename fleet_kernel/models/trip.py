"""
Module: fleet_kernel.models.trip
Responsibility: ORM persistence for trips and their frozen close snapshot.
Architecture position: Kernel > Models.  May import from db/ and domain/enums.

Invariants enforced:
    - status follows PLANNED -> ACTIVE -> CLOSED; CLOSED is terminal.
    - final_revenue, final_expenses, final_balance, closed_at and closed_by are
      written exactly once, by the close transition, and never again
      (db/immutability.py blocks ORM writes; TripGuard gates SQL writes).
    - version increments on every guarded mutation of the trip or its
      expenses/payments; conditional updates compare against it.

Failure modes:
    - ImmutabilityViolationError on any ORM write to a closed trip.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fleet_kernel.db.base import TrackedBase, UTCDateTime, UUIDString
from fleet_kernel.domain.enums import TripStatus


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class Trip(TrackedBase):
    """
    A single truck journey tracked for cost and revenue accounting.

    Guarantees:
        - Derived values (revenue, totals, balance, outstanding) are NOT
          stored while the trip is open; the ledger engine computes them
          from the current expenses and payments on every read.
    """

    __tablename__ = "trips"

    __table_args__ = (
        Index("idx_trip_status", "status"),
        Index("idx_trip_truck", "truck_id"),
    )

    truck_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("trucks.id"),
        nullable=False,
    )

    source: Mapped[str] = mapped_column(String(200), nullable=False)
    destination: Mapped[str] = mapped_column(String(200), nullable=False)

    status: Mapped[TripStatus] = mapped_column(
        SAEnum(
            TripStatus,
            native_enum=False,
            length=20,
            values_callable=_enum_values,
            validate_strings=True,
        ),
        default=TripStatus.PLANNED,
        nullable=False,
    )

    # Row version compared by TripGuard's conditional updates
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    estimated_qty: Mapped[Decimal | None] = mapped_column(nullable=True)
    actual_qty: Mapped[Decimal | None] = mapped_column(nullable=True)
    rate_per_unit: Mapped[Decimal | None] = mapped_column(nullable=True)

    start_date: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    end_date: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    # Close snapshot
    final_revenue: Mapped[Decimal | None] = mapped_column(nullable=True)
    final_expenses: Mapped[Decimal | None] = mapped_column(nullable=True)
    final_balance: Mapped[Decimal | None] = mapped_column(nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    closed_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    truck: Mapped["Truck"] = relationship(  # noqa: F821
        "Truck",
        back_populates="trips",
        lazy="joined",
    )

    expenses: Mapped[list["Expense"]] = relationship(  # noqa: F821
        "Expense",
        back_populates="trip",
        order_by="Expense.expense_date",
        passive_deletes="all",
    )

    payments: Mapped[list["Payment"]] = relationship(  # noqa: F821
        "Payment",
        back_populates="trip",
        order_by="Payment.payment_date",
        passive_deletes="all",
    )

    def __repr__(self) -> str:
        return f"<Trip {self.id}: {self.source} -> {self.destination} [{self.status.value}]>"

    @property
    def is_closed(self) -> bool:
        return self.status == TripStatus.CLOSED

    def to_dto(self):
        from fleet_kernel.domain.dtos import TripInfo

        return TripInfo(
            id=self.id,
            truck_id=self.truck_id,
            source=self.source,
            destination=self.destination,
            status=self.status,
            version=self.version,
            estimated_qty=self.estimated_qty,
            actual_qty=self.actual_qty,
            rate_per_unit=self.rate_per_unit,
            start_date=self.start_date,
            end_date=self.end_date,
            final_revenue=self.final_revenue,
            final_expenses=self.final_expenses,
            final_balance=self.final_balance,
            closed_at=self.closed_at,
            closed_by=self.closed_by,
        )
