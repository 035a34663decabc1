"""
TripGuard -- the single funnel through which every trip mutation passes.

Responsibility:
    Re-checks the persisted trip status atomically with each write.  Every
    mutating operation (start, close, quantity and rate updates, expense
    and payment writes) first runs a conditional UPDATE on the trip row and
    proceeds only if exactly one row matched.

Architecture position:
    Kernel > Services -- imperative shell.  Used by TripService,
    ExpenseService and PaymentService; never called by selectors.

Invariants enforced:
    - A CLOSED trip is never mutated: the guarded UPDATE carries
      ``status <> 'closed'`` in its WHERE clause, so a close committed by
      another transaction between our read and our write is detected at
      write time instead of being overwritten.
    - Transitions come from TRIP_WORKFLOW only.  The transition UPDATE
      is gated on the source status and on the version the caller saw,
      so of two racing closes exactly one matches a row.
    - ``version`` increments on every guarded write.

Failure modes:
    - NotFoundError: the trip does not exist.
    - TripClosedError: the trip is CLOSED.
    - InvalidTransitionError: the workflow has no transition for
      (status, action).
    - ConflictError: a concurrent transaction changed the trip after the
      caller read it.

Usage:
    guard = TripGuard(session)
    guard.lock_editable(trip_id, action="add_expense")
    session.add(expense)
    session.flush()
"""

from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from fleet_engines.trip_ledger import assert_editable
from fleet_kernel.domain.enums import TripStatus
from fleet_kernel.domain.trip_workflow import TRIP_WORKFLOW
from fleet_kernel.domain.workflow import Transition, resolve_transition
from fleet_kernel.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    TripClosedError,
)
from fleet_kernel.logging_config import get_logger
from fleet_kernel.models.trip import Trip

logger = get_logger("services.trip_guard")


class TripGuard:
    """
    Conditional-update gate for trip mutations.

    Contract:
        Every method re-reads or re-checks the trip row in the database;
        nothing is decided from a value held in memory by the caller.
    """

    def __init__(self, session: Session):
        self.session = session

    def load(self, trip_id: UUID) -> Trip:
        """Fetch the latest persisted state of a trip, bypassing the identity map."""
        trip = self.session.execute(
            select(Trip)
            .where(Trip.id == trip_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if trip is None:
            raise NotFoundError("Trip", str(trip_id))
        return trip

    def load_editable(self, trip_id: UUID) -> Trip:
        """Fresh read followed by the editability check."""
        trip = self.load(trip_id)
        assert_editable(trip)
        return trip

    def lock_editable(
        self,
        trip_id: UUID,
        action: str,
        values: dict[str, Any] | None = None,
    ) -> int:
        """
        Claim the trip for a mutation that does not change its status.

        Issues ``UPDATE trips SET version = version + 1 WHERE id = :id AND
        status <> 'closed'``, writing ``values`` in the same statement.
        On PostgreSQL this also takes the row lock until the caller's
        transaction ends.

        Returns:
            The new version of the trip row.
        """
        result = self.session.execute(
            update(Trip)
            .where(Trip.id == trip_id, Trip.status != TripStatus.CLOSED)
            .values(version=Trip.version + 1, **(values or {}))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self._raise_for_missed_update(trip_id, action, expected_version=None)

        trip = self.load(trip_id)
        logger.debug(
            "trip_guard_locked",
            extra={"trip_id": str(trip_id), "action": action, "version": trip.version},
        )
        return trip.version

    def require_transition(self, trip: Trip, action: str) -> Transition:
        """Editability check, then the workflow edge for ``action`` from the current status."""
        assert_editable(trip)

        current = TripStatus(trip.status)
        transition = resolve_transition(TRIP_WORKFLOW, current.value, action)
        if transition is None:
            raise InvalidTransitionError(str(trip.id), current.value, action)
        return transition

    def apply_transition(
        self,
        trip: Trip,
        action: str,
        values: dict[str, Any] | None = None,
    ) -> Trip:
        """
        Move ``trip`` along the workflow edge named ``action``.

        The UPDATE matches only if the row still has the status and version
        that ``trip`` was read with.

        Args:
            trip: The trip as read by the caller (its version is the one
                the caller's validation was based on).
            action: Workflow action, e.g. ``"start"`` or ``"close"``.
            values: Extra column values written with the status change.

        Returns:
            The trip reloaded after the transition.
        """
        transition = self.require_transition(trip, action)

        seen_version = trip.version
        result = self.session.execute(
            update(Trip)
            .where(
                Trip.id == trip.id,
                Trip.status == TripStatus(transition.from_state),
                Trip.version == seen_version,
            )
            .values(
                status=TripStatus(transition.to_state),
                version=Trip.version + 1,
                **(values or {}),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self._raise_for_missed_update(trip.id, action, expected_version=seen_version)

        logger.info(
            "trip_transitioned",
            extra={
                "trip_id": str(trip.id),
                "action": action,
                "from_status": transition.from_state,
                "to_status": transition.to_state,
            },
        )
        return self.load(trip.id)

    def _raise_for_missed_update(
        self,
        trip_id: UUID,
        action: str,
        expected_version: int | None,
    ) -> None:
        """Work out why a guarded UPDATE matched no row and raise accordingly."""
        current = self.session.execute(
            select(Trip.status, Trip.version).where(Trip.id == trip_id)
        ).one_or_none()

        if current is None:
            raise NotFoundError("Trip", str(trip_id))

        status, version = current
        if expected_version is not None and version != expected_version:
            logger.warning(
                "trip_update_conflict",
                extra={
                    "trip_id": str(trip_id),
                    "action": action,
                    "expected_version": expected_version,
                    "actual_version": version,
                    "status": TripStatus(status).value,
                },
            )
            raise ConflictError("Trip", str(trip_id), action)

        if status == TripStatus.CLOSED:
            logger.warning(
                "trip_mutation_rejected_closed",
                extra={"trip_id": str(trip_id), "action": action},
            )
            raise TripClosedError(str(trip_id))

        raise ConflictError("Trip", str(trip_id), action)
