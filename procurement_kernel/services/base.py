"""
BaseService -- shared plumbing for workflow services.

Responsibility:
    Holds the injected collaborators every workflow service needs (entity
    store, clock, notification fan-out) and the small helpers they share:
    loading a document or raising NotFoundError, and stamping audit fields.

Architecture position:
    Kernel > Services.  Every module service in ``procurement_modules``
    extends this class.

Invariants enforced:
    - Every write made through ``audit_fields`` carries ``updatedAt`` and
      ``updatedBy``.
"""

from abc import ABC
from typing import Any

from procurement_kernel.domain.clock import Clock, SystemClock
from procurement_kernel.domain.identity import Actor
from procurement_kernel.exceptions import NotFoundError
from procurement_kernel.notifications import NotificationFanout
from procurement_kernel.store.base import Document, EntityStore


class BaseService(ABC):
    """
    Abstract base class for workflow services.

    Contract:
        Collaborators are injected; the service never constructs a store.
    """

    def __init__(
        self,
        store: EntityStore,
        clock: Clock | None = None,
        notifications: NotificationFanout | None = None,
    ):
        self._store = store
        self._clock = clock or SystemClock()
        self._notifications = notifications or NotificationFanout()

    @property
    def store(self) -> EntityStore:
        return self._store

    def _now(self) -> int:
        return self._clock.now_millis()

    def _load(self, collection: str, entity_id: str, entity_type: str) -> Document:
        document = self._store.read(f"{collection}/{entity_id}")
        if document is None:
            raise NotFoundError(entity_type, entity_id)
        return document

    def _audit_fields(self, actor: Actor, **fields: Any) -> dict[str, Any]:
        stamped = dict(fields)
        stamped["updatedAt"] = self._now()
        stamped["updatedBy"] = actor.to_document()
        return stamped

    def _creation_fields(self, actor: Actor) -> dict[str, Any]:
        now = self._now()
        return {
            "createdAt": now,
            "updatedAt": now,
            "createdBy": actor.to_document(),
            "updatedBy": actor.to_document(),
        }
