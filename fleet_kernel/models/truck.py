"""
Module: fleet_kernel.models.truck
Responsibility: ORM persistence for the truck registry.

Invariants enforced:
    - number_plate is unique (uq_truck_number_plate).
    - daily_fixed_cost, when set, is positive (enforced by TruckService).
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fleet_kernel.db.base import TrackedBase, UUIDString


class Truck(TrackedBase):
    """A truck owned by a company."""

    __tablename__ = "trucks"

    __table_args__ = (
        UniqueConstraint("number_plate", name="uq_truck_number_plate"),
    )

    number_plate: Mapped[str] = mapped_column(String(20), nullable=False)

    daily_fixed_cost: Mapped[Decimal | None] = mapped_column(nullable=True)

    company_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("companies.id"),
        nullable=False,
    )

    company: Mapped["Company"] = relationship(  # noqa: F821
        "Company",
        back_populates="trucks",
    )

    trips: Mapped[list["Trip"]] = relationship(  # noqa: F821
        "Trip",
        back_populates="truck",
    )

    def __repr__(self) -> str:
        return f"<Truck {self.number_plate}>"

    def to_dto(self):
        from fleet_kernel.domain.dtos import TruckInfo

        return TruckInfo(
            id=self.id,
            number_plate=self.number_plate,
            company_id=self.company_id,
            daily_fixed_cost=self.daily_fixed_cost,
            created_at=self.created_at,
        )
