"""ORM models for the fleet kernel."""

from fleet_kernel.models.company import Company
from fleet_kernel.models.expense import Expense
from fleet_kernel.models.payment import Payment
from fleet_kernel.models.trip import Trip
from fleet_kernel.models.truck import Truck

__all__ = [
    "Company",
    "Truck",
    "Trip",
    "Expense",
    "Payment",
    "import_all_models",
]


def import_all_models() -> None:
    """Make sure every model is registered on ``Base.metadata``.

    Importing this package already does so; the function exists so
    ``create_tables()`` has an explicit call site.  Idempotent.
    """
