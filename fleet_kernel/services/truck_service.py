"""
TruckService -- the truck registry and the default company.

Responsibility:
    Registers trucks under the single default company (found or created
    by name) and maintains each truck's daily fixed cost.

Invariants enforced:
    - number_plate is trimmed, non-empty and unique.  The pre-check gives
      a clean error; the unique constraint catches a concurrent insert.
    - daily_fixed_cost, when set, is positive.

Failure modes:
    - InvalidTruckError: blank number plate.
    - DuplicateNumberPlateError: plate already registered.
    - InvalidAmountError: non-positive daily fixed cost.
    - NotFoundError: unknown truck id.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fleet_engines.trip_ledger import require_positive_amount
from fleet_kernel.domain.dtos import TruckInfo
from fleet_kernel.exceptions import (
    DuplicateNumberPlateError,
    InvalidTruckError,
    NotFoundError,
)
from fleet_kernel.logging_config import LogContext, get_logger
from fleet_kernel.models.company import Company
from fleet_kernel.models.truck import Truck
from fleet_kernel.services.base import BaseService

logger = get_logger("services.truck")


class TruckService(BaseService[Truck]):
    """
    Service for registering trucks.

    Contract:
        Returns frozen ``TruckInfo`` DTOs.  Flush-only.

    Non-goals:
        - Does NOT manage more than one company.
    """

    def __init__(self, session: Session, company_name: str = "Logisco"):
        super().__init__(session)
        self._company_name = company_name

    def get_or_create_company(self) -> Company:
        """The default company, created on first use."""
        company = self.session.execute(
            select(Company).where(Company.name == self._company_name)
        ).scalar_one_or_none()
        if company is None:
            company = Company(name=self._company_name)
            self.session.add(company)
            self.session.flush()
            logger.info(
                "company_created",
                extra={"company_id": str(company.id), "company_name": company.name},
            )
        return company

    def register_truck(
        self,
        number_plate: str,
        daily_fixed_cost: Decimal | str | None = None,
    ) -> TruckInfo:
        """
        Register a truck under the default company.

        Raises:
            InvalidTruckError: number plate is blank.
            DuplicateNumberPlateError: number plate already registered.
            InvalidAmountError: daily fixed cost is not positive.
        """
        plate = (number_plate or "").strip()
        if not plate:
            raise InvalidTruckError("Number plate is required")

        cost = (
            require_positive_amount(daily_fixed_cost, "daily_fixed_cost")
            if daily_fixed_cost is not None
            else None
        )

        existing = self.session.execute(
            select(Truck.id).where(Truck.number_plate == plate)
        ).scalar_one_or_none()
        if existing is not None:
            raise DuplicateNumberPlateError(plate)

        company = self.get_or_create_company()
        truck = Truck(number_plate=plate, company_id=company.id, daily_fixed_cost=cost)
        self.session.add(truck)
        try:
            self.session.flush()
        except IntegrityError as exc:
            logger.warning(
                "concurrent_truck_registration_conflict",
                extra={"number_plate": plate},
            )
            raise DuplicateNumberPlateError(plate) from exc

        logger.info(
            "truck_registered",
            extra={"truck_id": str(truck.id), "number_plate": plate},
        )
        return truck.to_dto()

    def update_daily_fixed_cost(self, truck_id: UUID, cost: Decimal | str) -> TruckInfo:
        """
        Set the daily fixed cost of a truck.

        Raises:
            NotFoundError: the truck does not exist.
            InvalidAmountError: cost is not positive.
        """
        with LogContext.bind(truck_id=str(truck_id)):
            value = require_positive_amount(cost, "daily_fixed_cost")
            truck = self.session.get(Truck, truck_id)
            if truck is None:
                raise NotFoundError("Truck", str(truck_id))

            truck.daily_fixed_cost = value
            self.session.flush()

            logger.info("truck_fixed_cost_updated", extra={"daily_fixed_cost": value})
            return truck.to_dto()
