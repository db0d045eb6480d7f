"""
Identity -- the acting user, passed explicitly to every workflow operation.

Responsibility:
    Carries who performed a transition (id, display name, role).  The kernel
    never decides who is *allowed* to act; the surrounding route layer does.
    It only records the actor on every state change.

Architecture position:
    Kernel > Domain -- pure value objects, zero I/O.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol


class Role(str, Enum):
    """Roles that appear as notification recipients and on audit records."""

    WAREHOUSE_STAFF = "WarehouseStaff"
    HEAD_OF_OPERATIONS = "HeadOfOperations"
    MAIN_DIRECTOR = "MainDirector"
    PACKING_MATERIALS_STORE_MANAGER = "PackingMaterialsStoreManager"
    PRODUCTION_MANAGER = "ProductionManager"
    PURCHASING_MANAGER = "PurchasingManager"
    QC_OFFICER = "QCOfficer"
    ACCOUNTANT = "Accountant"
    SYSTEM = "System"


@dataclass(frozen=True)
class Actor:
    """The identity performing an operation."""

    id: str
    display_name: str
    role: Role

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("Actor id must be non-empty")

    def to_document(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.display_name, "role": self.role.value}

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "Actor":
        return cls(id=doc["id"], display_name=doc.get("name", ""), role=Role(doc["role"]))


SYSTEM_ACTOR = Actor(id="system", display_name="System", role=Role.SYSTEM)


class IdentityContext(Protocol):
    """Supplies the acting identity to the outer layer that calls services."""

    def current_actor(self) -> Actor: ...


class StaticIdentityContext:
    """IdentityContext that always returns one actor (scripts, tests)."""

    def __init__(self, actor: Actor):
        self._actor = actor

    def current_actor(self) -> Actor:
        return self._actor
