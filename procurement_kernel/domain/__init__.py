"""
Pure domain layer.

Value objects and pure functions with NO dependencies on the entity store
or any other I/O.  The one exception is ``SystemClock``.
"""

from procurement_kernel.domain.clock import (
    Clock,
    DeterministicClock,
    SystemClock,
    epoch_millis,
)
from procurement_kernel.domain.identity import (
    SYSTEM_ACTOR,
    Actor,
    IdentityContext,
    Role,
    StaticIdentityContext,
)
from procurement_kernel.domain.workflow import Guard, Transition, Workflow

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "epoch_millis",
    "Actor",
    "Role",
    "SYSTEM_ACTOR",
    "IdentityContext",
    "StaticIdentityContext",
    "Guard",
    "Transition",
    "Workflow",
]
