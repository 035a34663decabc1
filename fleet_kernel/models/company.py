"""
Module: fleet_kernel.models.company
Responsibility: ORM persistence for the owning company.  A single default
    company is found-or-created by TruckService when the first truck is
    registered.
"""

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fleet_kernel.db.base import TrackedBase


class Company(TrackedBase):
    """A company owning trucks."""

    __tablename__ = "companies"

    __table_args__ = (
        UniqueConstraint("name", name="uq_company_name"),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    trucks: Mapped[list["Truck"]] = relationship(  # noqa: F821
        "Truck",
        back_populates="company",
    )

    def __repr__(self) -> str:
        return f"<Company {self.name}>"
