"""
Module: fleet_kernel.models.payment
Responsibility: ORM persistence for customer payments received against a trip.

Invariants enforced:
    - amount is positive (PaymentService rejects anything else).
    - payment_type and mode are members of their closed sets.
    - Rows of a CLOSED trip are never inserted, updated or deleted.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, Text
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fleet_kernel.db.base import TrackedBase, UUIDString
from fleet_kernel.db.types import Money
from fleet_kernel.domain.enums import PaymentMode, PaymentType
from fleet_kernel.models.trip import _enum_values


class Payment(TrackedBase):
    """A payment received for a trip."""

    __tablename__ = "payments"

    __table_args__ = (
        Index("idx_payment_trip", "trip_id"),
    )

    trip_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("trips.id"),
        nullable=False,
    )

    amount: Mapped[Money] = mapped_column(nullable=False)

    payment_type: Mapped[PaymentType] = mapped_column(
        SAEnum(
            PaymentType,
            native_enum=False,
            length=20,
            values_callable=_enum_values,
            validate_strings=True,
        ),
        nullable=False,
    )

    mode: Mapped[PaymentMode] = mapped_column(
        SAEnum(
            PaymentMode,
            native_enum=False,
            length=20,
            values_callable=_enum_values,
            validate_strings=True,
        ),
        nullable=False,
    )

    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    trip: Mapped["Trip"] = relationship(  # noqa: F821
        "Trip",
        back_populates="payments",
    )

    def __repr__(self) -> str:
        return f"<Payment {self.payment_type.value}/{self.mode.value} {self.amount}>"

    def to_dto(self):
        from fleet_kernel.domain.dtos import PaymentInfo

        return PaymentInfo(
            id=self.id,
            trip_id=self.trip_id,
            amount=self.amount,
            payment_type=self.payment_type,
            mode=self.mode,
            payment_date=self.payment_date,
            note=self.note,
        )
