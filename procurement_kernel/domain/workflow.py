"""
Canonical workflow types (``procurement_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for document state machines.  Used by every module
(requests, preparation, receiving, billing) so that Guard, Transition, and
Workflow are defined once, and so that "may this action fire from this
state?" has exactly one answer.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``store/``, ``services/``, or outer layers.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* ``resolve()`` only ever returns a declared edge; any other
  (state, action) pair raises ``InvalidTransitionError``.
"""

from __future__ import annotations

from dataclasses import dataclass

from procurement_kernel.exceptions import InvalidTransitionError


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
    """A valid state transition in a workflow.

    ``notifies`` names the roles the owning service fans out to after the
    transition commits.
    """

    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None
    notifies: tuple[str, ...] = ()


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
                f"Workflow {self.name}: initial state "
                f"'{self.initial_state}' is not a declared state"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Workflow {self.name}: transition '{t.action}' "
                    f"references an undeclared state"
                )

    def transitions_from(self, state: str) -> tuple[Transition, ...]:
        return tuple(t for t in self.transitions if t.from_state == state)

    def is_terminal(self, state: str) -> bool:
        return state in self.terminal_states

    def resolve(
        self,
        current_state: str | None,
        action: str,
        entity_id: str = "",
    ) -> Transition:
        """Return the edge ``action`` takes from ``current_state``.

        Raises:
            InvalidTransitionError: no such edge exists.
        """
        for t in self.transitions:
            if t.from_state == current_state and t.action == action:
                return t
        expected = tuple(
            sorted({t.from_state for t in self.transitions if t.action == action})
        )
        raise InvalidTransitionError(
            self.name, entity_id, current_state, action, expected,
        )
