"""
Closed enumerations of the trip ledger and their boundary parsers.

Values arriving from forms or the CLI are parsed here, before any service
or engine sees them.  Anything outside the closed sets is rejected with
InvalidEnumValueError; nothing downstream has to re-validate.
"""

from enum import Enum

from fleet_kernel.exceptions import InvalidEnumValueError


class TripStatus(str, Enum):
    """Lifecycle status of a trip.

    Contract: PLANNED -> ACTIVE -> CLOSED.  CLOSED is terminal.
    """

    PLANNED = "planned"
    ACTIVE = "active"
    CLOSED = "closed"


class ExpenseCategory(str, Enum):
    """What an on-road expense was spent on."""

    FUEL = "fuel"
    TOLL = "toll"
    POLICE = "police"
    LOADING = "loading"
    UNLOADING = "unloading"
    REPAIR = "repair"
    OTHER = "other"


class PaymentType(str, Enum):
    """Whether a customer payment is an advance or the final settlement."""

    ADVANCE = "advance"
    SETTLEMENT = "settlement"


class PaymentMode(str, Enum):
    """How a customer payment was received."""

    CASH = "cash"
    UPI = "upi"
    BANK = "bank"


def _parse(enum_cls: type[Enum], label: str, value) -> Enum:
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        key = value.strip()
        for member in enum_cls:
            if key.upper() == member.name or key.lower() == member.value:
                return member
    raise InvalidEnumValueError(label, value, [m.name for m in enum_cls])


def parse_expense_category(value) -> ExpenseCategory:
    """Parse FUEL/fuel/... into an ExpenseCategory."""
    return _parse(ExpenseCategory, "expense category", value)


def parse_payment_type(value) -> PaymentType:
    """Parse ADVANCE/SETTLEMENT into a PaymentType."""
    return _parse(PaymentType, "payment type", value)


def parse_payment_mode(value) -> PaymentMode:
    """Parse CASH/UPI/BANK into a PaymentMode."""
    return _parse(PaymentMode, "payment mode", value)
