"""
In-memory Entity Store adapter.

Responsibility:
    Dict-backed implementation of ``EntityStore`` for tests, scripts, and
    single-process deployments.

Architecture position:
    Kernel > Store adapter.  Implements the contract in ``store.base``.

Invariants enforced:
    - One ``threading.RLock`` serializes units of work, so a
      fetch-check-write inside ``atomic()`` cannot interleave with another
      writer.
    - A failed unit restores the pre-unit snapshot.

Failure modes:
    - NotFoundError from ``patch`` on a missing document.
"""

from __future__ import annotations

import copy
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from uuid import uuid4

from procurement_kernel.exceptions import NotFoundError
from procurement_kernel.logging_config import get_logger
from procurement_kernel.store.base import (
    ChangeListener,
    Document,
    EntityStore,
    ListenerRegistry,
    apply_patch,
    normalize_path,
    split_path,
)

logger = get_logger("store.memory")


class InMemoryEntityStore(EntityStore):
    """
    Entity store holding documents in a process-local dict.

    Contract:
        Every operation outside an explicit ``atomic()`` runs as its own
        single-operation unit.

    Guarantees:
        - Reads return deep copies.
        - ``list()`` preserves insertion order.
    """

    def __init__(self) -> None:
        self._documents: dict[str, Document] = {}
        self._lock = threading.RLock()
        self._depth = 0
        self._pending: list[tuple[str, Document | None]] = []
        self._listeners = ListenerRegistry()

    @contextmanager
    def atomic(self) -> Iterator[InMemoryEntityStore]:
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield self
                finally:
                    self._depth -= 1
                return

            snapshot = copy.deepcopy(self._documents)
            self._depth = 1
            try:
                yield self
            except Exception:
                self._documents = snapshot
                self._pending = []
                logger.warning("unit_rolled_back", exc_info=True)
                raise
            finally:
                self._depth = 0
            changes, self._pending = self._pending, []
        self._listeners.dispatch(changes)

    def read(self, path: str) -> Document | None:
        path = normalize_path(path)
        with self._lock:
            document = self._documents.get(path)
            return copy.deepcopy(document) if document is not None else None

    def write(self, path: str, entity: Document) -> None:
        path = normalize_path(path)
        split_path(path)
        with self.atomic():
            self._documents[path] = copy.deepcopy(entity)
            self._pending.append((path, copy.deepcopy(entity)))

    def append(self, collection_path: str, entity: Document) -> str:
        collection_path = normalize_path(collection_path)
        entity_id = uuid4().hex
        self.write(f"{collection_path}/{entity_id}", entity)
        return entity_id

    def patch(self, path: str, fields: Document) -> None:
        path = normalize_path(path)
        with self.atomic():
            current = self._documents.get(path)
            if current is None:
                collection, entity_id = split_path(path)
                raise NotFoundError(collection, entity_id)
            updated = apply_patch(current, copy.deepcopy(fields))
            self._documents[path] = updated
            self._pending.append((path, copy.deepcopy(updated)))

    def subscribe(self, path: str, on_change: ChangeListener) -> Callable[[], None]:
        return self._listeners.add(path, on_change)

    def list(self, collection_path: str) -> dict[str, Document]:
        prefix = normalize_path(collection_path) + "/"
        with self._lock:
            return {
                path[len(prefix):]: copy.deepcopy(document)
                for path, document in self._documents.items()
                if path.startswith(prefix) and "/" not in path[len(prefix):]
            }

    def __len__(self) -> int:
        return len(self._documents)
