"""Read-side selectors for the fleet kernel."""

from fleet_kernel.selectors.trip_selector import (
    BillLink,
    DashboardSummary,
    TripLedger,
    TripSelector,
    TripSummary,
)
from fleet_kernel.selectors.truck_selector import TruckSelector

__all__ = [
    "BillLink",
    "DashboardSummary",
    "TripLedger",
    "TripSelector",
    "TripSummary",
    "TruckSelector",
]
