"""
ORM-Level Immutability Enforcement for closed trips.

===============================================================================
WHY THIS EXISTS
===============================================================================

A closed trip is a certified financial outcome.  TripGuard is the primary
enforcement point: every service mutation passes through its conditional
UPDATE on the trip row.  This module is the backstop for code that goes
around the services and writes ORM objects directly:

    session.flush()
         |
         v
    [before_update / before_insert / before_delete]
         |
         +--> _check_*() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity    | When Immutable                | What is blocked
----------|-------------------------------|-----------------------------------
Trip      | status was CLOSED before      | every field except updated_at
Trip      | status is CLOSED              | DELETE
Expense   | old or new parent trip CLOSED | INSERT, UPDATE, DELETE
Payment   | old or new parent trip CLOSED | INSERT, UPDATE, DELETE

Bulk ``session.execute(update(...))`` statements do not fire these events;
TripGuard's conditional WHERE clauses cover that path.
"""

from sqlalchemy import event, inspect, select
from sqlalchemy.orm.attributes import get_history

from fleet_kernel.domain.enums import TripStatus
from fleet_kernel.exceptions import ImmutabilityViolationError
from fleet_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_FIELDS = frozenset({"updated_at"})


def _block(entity_type: str, entity_id, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            "field": field,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _check_trip_immutability(mapper, connection, target):
    """
    Prevent updates to a trip that was already CLOSED.

    The close transition itself (status changing TO closed) is allowed;
    anything after it is not.
    """
    status_history = get_history(target, "status")

    if status_history.deleted:
        was_closed = status_history.deleted[0] == TripStatus.CLOSED
    else:
        was_closed = target.status == TripStatus.CLOSED

    if not was_closed:
        return

    for attr in inspect(target).attrs:
        if attr.key in _AUDIT_FIELDS:
            continue
        if attr.history.has_changes():
            _block(
                "Trip",
                target.id,
                "UPDATE",
                f"Cannot modify field '{attr.key}' on closed trip",
                field=attr.key,
            )


def _check_trip_delete(mapper, connection, target):
    if target.status == TripStatus.CLOSED:
        _block("Trip", target.id, "DELETE", "Closed trips cannot be deleted")


def _parent_trip_closed(connection, trip_id) -> bool:
    from fleet_kernel.models.trip import Trip

    status = connection.execute(
        select(Trip.status).where(Trip.id == trip_id)
    ).scalar_one_or_none()
    return status == TripStatus.CLOSED


def _parent_trip_ids(target) -> list:
    """Current parent and, when trip_id is being changed, the previous one."""
    history = get_history(target, "trip_id")
    candidates = [target.trip_id, *history.deleted]
    return [trip_id for trip_id in dict.fromkeys(candidates) if trip_id is not None]


def _make_child_check(entity_type: str, operation: str):
    def _check(mapper, connection, target):
        for trip_id in _parent_trip_ids(target):
            if _parent_trip_closed(connection, trip_id):
                _block(
                    entity_type,
                    target.id,
                    operation,
                    f"Trip {trip_id} is closed; its {entity_type.lower()}s are frozen",
                )

    _check.__name__ = f"_check_{entity_type.lower()}_{operation.lower()}"
    return _check


_check_expense_insert = _make_child_check("Expense", "INSERT")
_check_expense_update = _make_child_check("Expense", "UPDATE")
_check_expense_delete = _make_child_check("Expense", "DELETE")
_check_payment_insert = _make_child_check("Payment", "INSERT")
_check_payment_update = _make_child_check("Payment", "UPDATE")
_check_payment_delete = _make_child_check("Payment", "DELETE")


def _listeners():
    from fleet_kernel.models.expense import Expense
    from fleet_kernel.models.payment import Payment
    from fleet_kernel.models.trip import Trip

    return (
        (Trip, "before_update", _check_trip_immutability),
        (Trip, "before_delete", _check_trip_delete),
        (Expense, "before_insert", _check_expense_insert),
        (Expense, "before_update", _check_expense_update),
        (Expense, "before_delete", _check_expense_delete),
        (Payment, "before_insert", _check_payment_insert),
        (Payment, "before_update", _check_payment_update),
        (Payment, "before_delete", _check_payment_delete),
    )


def register_immutability_listeners():
    """
    Register all closed-trip enforcement listeners.

    Idempotent: listeners already registered are skipped.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove the enforcement listeners.

    WARNING: Only use this in tests that need to bypass the backstop.
    """
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
