"""
Canonical workflow types (``sourcing_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for document lifecycle state machines.  Used by the
requisition, RFQ and quotation modules so that Guard, Transition and
Workflow are defined once, and so that every service asks the same
question ("is ``action`` legal from ``state``?") the same way.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing transitions.
* ``(from_state, action)`` pairs are unique, so every lookup resolves to
  at most one target state.
"""

from __future__ import annotations

from dataclasses import dataclass

from sourcing_kernel.exceptions import StateTransitionError


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Contract: frozen, descriptive only.
    Non-goals: does not evaluate the condition -- the owning service does.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow."""
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    Guarantees: ``initial_state`` is a member of ``states``.
    ``terminal_states`` are states with no outgoing transitions.
    """
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
        seen: set[tuple[str, str]] = set()
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"{self.name}: transition {t.action} references unknown state"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"{self.name}: terminal state {t.from_state!r} has outgoing "
                    f"transition {t.action!r}"
                )
            key = (t.from_state, t.action)
            if key in seen:
                raise ValueError(
                    f"{self.name}: duplicate transition {t.action!r} from {t.from_state!r}"
                )
            seen.add(key)

    def find_transition(self, from_state: str, action: str) -> Transition | None:
        for t in self.transitions:
            if t.from_state == from_state and t.action == action:
                return t
        return None

    def allowed_actions(self, state: str) -> tuple[str, ...]:
        return tuple(t.action for t in self.transitions if t.from_state == state)

    def is_terminal(self, state: str) -> bool:
        return state in self.terminal_states

    def require_transition(
        self,
        entity_type: str,
        entity_id: object,
        current_state: str,
        action: str,
    ) -> Transition:
        """Return the transition for ``action`` or raise StateTransitionError.

        Raised before any mutation, so a rejected action leaves the entity
        untouched.
        """
        transition = self.find_transition(current_state, action)
        if transition is None:
            allowed = self.allowed_actions(current_state)
            reason = (
                f"allowed actions: {', '.join(allowed)}" if allowed
                else "state is terminal" if self.is_terminal(current_state)
                else None
            )
            raise StateTransitionError(
                entity_type=entity_type,
                entity_id=str(entity_id),
                current_state=current_state,
                action=action,
                reason=reason,
            )
        return transition
