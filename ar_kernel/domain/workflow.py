"""
Canonical workflow types (``ar_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for document state machines (invoice, credit note,
payment arrangement, installment).  Each module declares its lifecycle
once as a ``Workflow``; services ask the workflow whether an action is
allowed from the current status instead of hand-writing status checks.

Architecture position
---------------------
**Kernel domain layer** -- ZERO I/O.  No imports from ``db/``,
``services/`` or any ``ar_modules`` package.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing transitions.
"""

from __future__ import annotations

from dataclasses import dataclass

from ar_kernel.exceptions import InvalidStateError


@dataclass(frozen=True)
class Guard:
    """A condition that must hold before a transition fires (descriptive only)."""
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition.

    ``moves_money=True`` marks transitions that change a balance and must
    run inside the account lock.
    """
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None
    moves_money: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle."""
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"{self.name}: initial state {self.initial_state!r} not in states"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"{self.name}: transition {t.action!r} references unknown state"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"{self.name}: terminal state {t.from_state!r} has an outgoing transition"
                )

    def find(self, from_state: str, action: str) -> Transition | None:
        for t in self.transitions:
            if t.from_state == from_state and t.action == action:
                return t
        return None

    def sources_for(self, action: str) -> tuple[str, ...]:
        """States from which *action* may be taken."""
        return tuple(t.from_state for t in self.transitions if t.action == action)

    def require(
        self,
        from_state: str,
        action: str,
        *,
        entity_type: str,
        entity_id: object,
    ) -> Transition:
        """Return the transition for *action*, or raise InvalidStateError."""
        transition = self.find(from_state, action)
        if transition is None:
            raise InvalidStateError(entity_type, entity_id, from_state, action)
        return transition
