"""
Typed Exception Hierarchy for the Fleet Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (the CLI, a web layer, tests) must be able to tell a closed trip
from a missing one, and a rejected close from a lost race, without parsing
message strings. Every error therefore has:

  1. A TYPED exception class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA attributes (trip_id, amount, reason, ...)

Example:
    try:
        trip_service.close_trip(trip_id, actor="operator")
    except TripCloseRejected as e:
        render_error(e.reason, e.args[0])   # NO_EXPENSES / NO_REVENUE / OUTSTANDING
    except ConflictError:
        ask_user_to_reload()

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    FleetLedgerError (base)
    |
    +-- TripError
    |   +-- TripClosedError
    |   +-- TripCloseRejected
    |   +-- InvalidTransitionError
    |
    +-- ValidationError
    |   +-- InvalidAmountError
    |   +-- InvalidQuantityError
    |   +-- InvalidEnumValueError
    |   +-- InvalidTruckError
    |   +-- InvalidTripError
    |   +-- InvalidBillError
    |
    +-- NotFoundError
    |
    +-- DuplicateNumberPlateError
    |
    +-- StorageError
    |   +-- UploadFailedError
    |
    +-- ConcurrencyError
    |   +-- ConflictError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                    | When Raised
------------------------|------------------------------------------------------
TRIP_CLOSED             | Mutation attempted on a CLOSED trip
TRIP_CLOSE_REJECTED     | Close preconditions unmet (see CloseRejection)
INVALID_TRANSITION      | No workflow transition for (status, action)
INVALID_AMOUNT          | Non-positive monetary input
INVALID_QUANTITY        | Non-positive actual quantity
INVALID_ENUM_VALUE      | Category / payment type / mode outside closed set
INVALID_TRUCK           | Missing number plate
INVALID_TRIP            | Missing source or destination
INVALID_BILL            | Bill document has no content
NOT_FOUND               | Referenced truck/trip/expense/payment missing
DUPLICATE_NUMBER_PLATE  | Number plate already registered
UPLOAD_FAILED           | Object store rejected a bill upload
CONFLICT                | Concurrent mutation won the race
IMMUTABILITY_VIOLATION  | ORM-level write to frozen closed-trip data
"""

from decimal import Decimal
from enum import Enum


class FleetLedgerError(Exception):
    """
    Base exception for all fleet kernel errors.

    All subclasses must have a `code` class attribute for
    machine-readable error identification.
    """

    code: str = "FLEET_LEDGER_ERROR"


# Trip lifecycle exceptions


class TripError(FleetLedgerError):
    """Base exception for trip lifecycle errors."""

    code: str = "TRIP_ERROR"


class TripClosedError(TripError):
    """Mutation attempted on a trip that is already CLOSED."""

    code: str = "TRIP_CLOSED"

    def __init__(self, trip_id: str):
        self.trip_id = trip_id
        super().__init__(f"Trip {trip_id} is closed and cannot be modified")


class CloseRejection(str, Enum):
    """Which close precondition failed, in evaluation order."""

    NO_EXPENSES = "no_expenses"
    NO_REVENUE = "no_revenue"
    OUTSTANDING = "outstanding"


class TripCloseRejected(TripError):
    """
    Close preconditions are not met.

    ``reason`` identifies the first unmet condition so the caller can
    render exactly what is missing; ``outstanding`` is set only for
    the OUTSTANDING reason.
    """

    code: str = "TRIP_CLOSE_REJECTED"

    def __init__(
        self,
        trip_id: str,
        reason: CloseRejection,
        message: str,
        outstanding: Decimal | None = None,
    ):
        self.trip_id = trip_id
        self.reason = reason
        self.outstanding = outstanding
        super().__init__(message)


class InvalidTransitionError(TripError):
    """No transition from the current status for the requested action."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, trip_id: str, current_status: str, action: str):
        self.trip_id = trip_id
        self.current_status = current_status
        self.action = action
        super().__init__(
            f"Cannot {action} trip {trip_id} from status {current_status}"
        )


# Input validation exceptions


class ValidationError(FleetLedgerError):
    """Base exception for rejected input values."""

    code: str = "VALIDATION_ERROR"


class InvalidAmountError(ValidationError):
    """Monetary input is missing, zero or negative."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, field: str, amount):
        self.field = field
        self.amount = amount
        super().__init__(f"{field} must be greater than 0 (got {amount})")


class InvalidQuantityError(ValidationError):
    """Actual quantity is missing, zero or negative."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, quantity):
        self.quantity = quantity
        super().__init__(f"Actual quantity must be greater than 0 (got {quantity})")


class InvalidEnumValueError(ValidationError):
    """Value outside a closed enumeration."""

    code: str = "INVALID_ENUM_VALUE"

    def __init__(self, enum_name: str, value, allowed: list[str]):
        self.enum_name = enum_name
        self.value = value
        self.allowed = allowed
        super().__init__(
            f"Invalid {enum_name} {value!r}; expected one of {', '.join(allowed)}"
        )


class InvalidTruckError(ValidationError):
    """Truck input is incomplete."""

    code: str = "INVALID_TRUCK"

    def __init__(self, message: str):
        super().__init__(message)


class InvalidTripError(ValidationError):
    """Trip input is incomplete."""

    code: str = "INVALID_TRIP"

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Trip {field} is required")


class InvalidBillError(ValidationError):
    """A bill document was supplied without content."""

    code: str = "INVALID_BILL"

    def __init__(self, filename: str):
        self.filename = filename
        super().__init__(f"Bill document {filename!r} is empty")


# Lookup exceptions


class NotFoundError(FleetLedgerError):
    """Referenced record does not exist."""

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


class DuplicateNumberPlateError(FleetLedgerError):
    """A truck with this number plate is already registered."""

    code: str = "DUPLICATE_NUMBER_PLATE"

    def __init__(self, number_plate: str):
        self.number_plate = number_plate
        super().__init__(f"Truck with number plate {number_plate} already exists")


# Object storage exceptions


class StorageError(FleetLedgerError):
    """Base exception for object store errors."""

    code: str = "STORAGE_ERROR"


class UploadFailedError(StorageError):
    """The object store rejected an upload."""

    code: str = "UPLOAD_FAILED"

    def __init__(self, path: str, cause: str):
        self.path = path
        self.cause = cause
        super().__init__(f"Upload of {path} failed: {cause}")


# Concurrency exceptions


class ConcurrencyError(FleetLedgerError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConflictError(ConcurrencyError):
    """A concurrent transaction changed the trip first."""

    code: str = "CONFLICT"

    def __init__(self, entity_type: str, entity_id: str, action: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.action = action
        super().__init__(
            f"Conflict on {entity_type} {entity_id} during {action}: "
            "record was modified by another transaction"
        )


# Immutability exceptions


class ImmutabilityError(FleetLedgerError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete frozen closed-trip data.

    Raised by the ORM listeners in ``fleet_kernel.db.immutability``.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
