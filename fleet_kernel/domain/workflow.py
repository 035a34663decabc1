"""
Canonical workflow types (``fleet_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for state machines plus the lookup that resolves an
action against the current state.  The trip lifecycle is declared once as
a ``Workflow`` and every status change goes through ``resolve_transition``.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing transitions.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Contract: frozen, descriptive only.
    Non-goals: does not evaluate the condition -- the ledger engine does.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow."""
    from_state: str
    to_state: str
    action: str
    guards: tuple[Guard, ...] = ()


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a record lifecycle.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    """
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def actions_from(self, state: str) -> tuple[str, ...]:
        """Actions available from ``state`` (empty for terminal states)."""
        return tuple(t.action for t in self.transitions if t.from_state == state)


def resolve_transition(workflow: Workflow, state: str, action: str) -> Transition | None:
    """Return the transition for ``action`` out of ``state``, or None."""
    for transition in workflow.transitions:
        if transition.from_state == state and transition.action == action:
            return transition
    return None
