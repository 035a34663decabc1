"""Trip Workflow.

State machine for a truck trip: PLANNED -> ACTIVE -> CLOSED.
"""

from fleet_kernel.domain.enums import TripStatus
from fleet_kernel.domain.workflow import Guard, Transition, Workflow
from fleet_kernel.logging_config import get_logger

logger = get_logger("domain.trip_workflow")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

HAS_EXPENSES = Guard(
    name="has_expenses",
    description="At least one expense is recorded for the trip",
)

HAS_REVENUE = Guard(
    name="has_revenue",
    description="Actual quantity times rate per unit is greater than zero",
)

FULLY_SETTLED = Guard(
    name="fully_settled",
    description="Recorded payments cover the computed revenue",
)

START = "start"
CLOSE = "close"


# -----------------------------------------------------------------------------
# Trip Workflow
# -----------------------------------------------------------------------------

TRIP_WORKFLOW = Workflow(
    name="trip",
    description="Truck trip lifecycle",
    initial_state=TripStatus.PLANNED.value,
    states=(
        TripStatus.PLANNED.value,
        TripStatus.ACTIVE.value,
        TripStatus.CLOSED.value,
    ),
    transitions=(
        Transition(TripStatus.PLANNED.value, TripStatus.ACTIVE.value, action=START),
        Transition(
            TripStatus.ACTIVE.value,
            TripStatus.CLOSED.value,
            action=CLOSE,
            guards=(HAS_EXPENSES, HAS_REVENUE, FULLY_SETTLED),
        ),
    ),
    terminal_states=(TripStatus.CLOSED.value,),
)

logger.debug(
    "trip_workflow_defined",
    extra={
        "states": list(TRIP_WORKFLOW.states),
        "actions": [t.action for t in TRIP_WORKFLOW.transitions],
    },
)
