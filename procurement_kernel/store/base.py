"""
Entity Store contract (``procurement_kernel.store.base``).

Responsibility
--------------
The single persistence seam of the procurement core.  Workflow services
talk to a key-value document store through this contract only:

    read(path)                    -> dict | None
    write(path, entity)           -> None
    append(collection_path, doc)  -> generated id
    patch(path, fields)           -> None       (NotFoundError if absent)
    subscribe(path, on_change)    -> unsubscribe()
    list(collection_path)         -> {id: doc}  (insertion order)
    atomic()                      -> context manager, one unit of work

Paths are slash-separated: ``materialRequests/<id>``.  A collection path is
a document path without its final segment.

Architecture position
---------------------
**Kernel store layer.**  Adapters (``memory``, ``sql``) implement the
contract; modules depend only on ``EntityStore``.

Invariants enforced
-------------------
* Documents cross the boundary as deep copies; callers never alias stored
  state.
* Inside ``atomic()`` every read-check-write is one unit: on exception all
  writes of the unit are discarded.  Units nest by joining the outermost.
* Change notifications are delivered after the outermost unit commits,
  never for a rolled-back unit.  A subscriber that raises is logged and
  ignored.

Failure modes
-------------
* ``NotFoundError`` from ``patch`` on a missing document.
* ``DependencyError`` from adapters whose backend fails.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager
from typing import Any

from procurement_kernel.exceptions import ValidationError
from procurement_kernel.logging_config import get_logger

logger = get_logger("store")

Document = dict[str, Any]
ChangeListener = Callable[[str, Document | None], None]


def split_path(path: str) -> tuple[str, str]:
    """Split ``coll/sub/id`` into (``coll/sub``, ``id``)."""
    path = normalize_path(path)
    if "/" not in path:
        raise ValidationError("path", f"'{path}' is not a document path")
    collection, _, entity_id = path.rpartition("/")
    return collection, entity_id


def normalize_path(path: str) -> str:
    cleaned = "/".join(part for part in str(path).split("/") if part)
    if not cleaned:
        raise ValidationError("path", "must be non-empty")
    return cleaned


def join_path(*parts: str) -> str:
    return normalize_path("/".join(parts))


def apply_patch(document: Document, fields: Document) -> Document:
    """Merge ``fields`` into ``document``; dotted keys address nested maps."""
    result = dict(document)
    for key, value in fields.items():
        if "." not in key:
            result[key] = value
            continue
        head, _, rest = key.partition(".")
        nested = result.get(head)
        nested = dict(nested) if isinstance(nested, dict) else {}
        result[head] = apply_patch(nested, {rest: value})
    return result


class ListenerRegistry:
    """Path-prefix subscriptions shared by the store adapters."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listeners: dict[int, tuple[str, ChangeListener]] = {}
        self._next = 0

    def add(self, path: str, on_change: ChangeListener) -> Callable[[], None]:
        path = normalize_path(path)
        with self._lock:
            token = self._next
            self._next += 1
            self._listeners[token] = (path, on_change)

        def unsubscribe() -> None:
            with self._lock:
                self._listeners.pop(token, None)

        return unsubscribe

    def dispatch(self, changes: list[tuple[str, Document | None]]) -> None:
        if not changes:
            return
        with self._lock:
            listeners = list(self._listeners.values())
        for changed_path, document in changes:
            for path, on_change in listeners:
                if changed_path == path or changed_path.startswith(path + "/"):
                    try:
                        on_change(changed_path, document)
                    except Exception:
                        logger.warning(
                            "subscriber_failed",
                            extra={"path": changed_path},
                            exc_info=True,
                        )


class EntityStore(ABC):
    """Abstract document store used by every workflow service."""

    @abstractmethod
    def read(self, path: str) -> Document | None:
        ...

    @abstractmethod
    def write(self, path: str, entity: Document) -> None:
        ...

    @abstractmethod
    def append(self, collection_path: str, entity: Document) -> str:
        """Store ``entity`` under a generated id and return the id."""
        ...

    @abstractmethod
    def patch(self, path: str, fields: Document) -> None:
        ...

    @abstractmethod
    def subscribe(self, path: str, on_change: ChangeListener) -> Callable[[], None]:
        ...

    @abstractmethod
    def list(self, collection_path: str) -> dict[str, Document]:
        ...

    @abstractmethod
    def atomic(self) -> AbstractContextManager["EntityStore"]:
        ...

    def iter_documents(self, collection_path: str) -> Iterator[tuple[str, Document]]:
        yield from self.list(collection_path).items()
