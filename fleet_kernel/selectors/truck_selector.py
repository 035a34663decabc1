"""Read-only truck registry queries."""

from uuid import UUID

from sqlalchemy import select

from fleet_kernel.domain.dtos import TruckInfo
from fleet_kernel.exceptions import NotFoundError
from fleet_kernel.models.truck import Truck
from fleet_kernel.selectors.base import BaseSelector


class TruckSelector(BaseSelector[Truck]):
    """Selector for the truck registry."""

    def get(self, truck_id: UUID) -> TruckInfo:
        truck = self.session.get(Truck, truck_id)
        if truck is None:
            raise NotFoundError("Truck", str(truck_id))
        return truck.to_dto()

    def get_by_plate(self, number_plate: str) -> TruckInfo | None:
        """Exact match on the trimmed plate, or None."""
        truck = self.session.execute(
            select(Truck).where(Truck.number_plate == (number_plate or "").strip())
        ).scalar_one_or_none()
        return truck.to_dto() if truck is not None else None

    def list_trucks(self) -> list[TruckInfo]:
        """All trucks, newest first."""
        trucks = self.session.execute(
            select(Truck).order_by(Truck.created_at.desc(), Truck.number_plate)
        ).scalars().all()
        return [t.to_dto() for t in trucks]
