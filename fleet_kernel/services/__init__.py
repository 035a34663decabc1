"""Write-side services for the fleet kernel."""

from fleet_kernel.services.expense_service import ExpenseService
from fleet_kernel.services.payment_service import PaymentService
from fleet_kernel.services.trip_guard import TripGuard
from fleet_kernel.services.trip_service import TripService
from fleet_kernel.services.truck_service import TruckService

__all__ = [
    "ExpenseService",
    "PaymentService",
    "TripGuard",
    "TripService",
    "TruckService",
]
