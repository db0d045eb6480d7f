"""
SQLAlchemy Entity Store adapter.

Responsibility:
    Implements ``EntityStore`` on a single relational table of JSON
    documents (``entity_documents``).  Gives the workflow core real
    transactions: a unit of work is one database transaction.

Architecture position:
    Kernel > Store adapter.  Depends on ``db.base`` for the mapped table and
    on a ``sessionmaker`` supplied by ``db.engine`` (or by tests).

Invariants enforced:
    - Inside ``atomic()`` every read locks its row (``SELECT ... FOR UPDATE``
      on PostgreSQL), so a fetch-check-write cannot interleave with a
      concurrent writer of the same document.
    - Each write bumps the row ``version``.
    - Change notifications fire only after commit.

Failure modes:
    - DependencyError wrapping any SQLAlchemyError (connection loss,
      integrity failure, serialization failure).
    - NotFoundError from ``patch`` on a missing document.
"""

from __future__ import annotations

import copy
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from procurement_kernel.db.base import EntityDocumentRow
from procurement_kernel.exceptions import DependencyError, NotFoundError
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

logger = get_logger("store.sql")


@dataclass
class _Unit:
    session: Session
    changes: list[tuple[str, Document | None]] = field(default_factory=list)


class SqlEntityStore(EntityStore):
    """
    Entity store persisting documents through SQLAlchemy.

    Contract:
        One thread-local session per outermost ``atomic()`` unit; operations
        outside a unit open their own short unit.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory
        self._local = threading.local()
        self._listeners = ListenerRegistry()

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    @contextmanager
    def atomic(self) -> Iterator[SqlEntityStore]:
        if getattr(self._local, "unit", None) is not None:
            yield self
            return

        unit = _Unit(session=self._session_factory())
        self._local.unit = unit
        try:
            try:
                yield self
            except Exception:
                unit.session.rollback()
                logger.warning("unit_rolled_back", exc_info=True)
                raise
            try:
                unit.session.commit()
            except SQLAlchemyError as exc:
                unit.session.rollback()
                raise DependencyError("entity_store", "commit", exc) from exc
        finally:
            unit.session.close()
            self._local.unit = None
        self._listeners.dispatch(unit.changes)

    @contextmanager
    def _operation(self, name: str) -> Iterator[_Unit]:
        with self.atomic():
            unit: _Unit = self._local.unit
            try:
                yield unit
            except SQLAlchemyError as exc:
                raise DependencyError("entity_store", name, exc) from exc

    def _locked_row(self, session: Session, path: str) -> EntityDocumentRow | None:
        stmt = (
            select(EntityDocumentRow)
            .where(EntityDocumentRow.path == path)
            .with_for_update()
        )
        return session.execute(stmt).scalar_one_or_none()

    def _store(self, unit: _Unit, path: str, body: Document) -> None:
        collection, entity_id = split_path(path)
        row = self._locked_row(unit.session, path)
        if row is None:
            unit.session.add(
                EntityDocumentRow(
                    path=path,
                    collection=collection,
                    entity_id=entity_id,
                    body=body,
                    version=1,
                )
            )
        else:
            row.body = body
            row.version = row.version + 1
        unit.session.flush()
        unit.changes.append((path, copy.deepcopy(body)))

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    def read(self, path: str) -> Document | None:
        path = normalize_path(path)
        with self._operation("read") as unit:
            row = self._locked_row(unit.session, path)
            return copy.deepcopy(row.body) if row is not None else None

    def write(self, path: str, entity: Document) -> None:
        path = normalize_path(path)
        with self._operation("write") as unit:
            self._store(unit, path, copy.deepcopy(entity))

    def append(self, collection_path: str, entity: Document) -> str:
        entity_id = uuid4().hex
        self.write(f"{normalize_path(collection_path)}/{entity_id}", entity)
        return entity_id

    def patch(self, path: str, fields: Document) -> None:
        path = normalize_path(path)
        with self._operation("patch") as unit:
            row = self._locked_row(unit.session, path)
            if row is None:
                collection, entity_id = split_path(path)
                raise NotFoundError(collection, entity_id)
            self._store(unit, path, apply_patch(row.body, copy.deepcopy(fields)))

    def subscribe(self, path: str, on_change: ChangeListener) -> Callable[[], None]:
        return self._listeners.add(path, on_change)

    def list(self, collection_path: str) -> dict[str, Document]:
        collection = normalize_path(collection_path)
        with self._operation("list") as unit:
            stmt = (
                select(EntityDocumentRow)
                .where(EntityDocumentRow.collection == collection)
                .order_by(EntityDocumentRow.seq)
            )
            rows = unit.session.execute(stmt).scalars().all()
            return {row.entity_id: copy.deepcopy(row.body) for row in rows}

    def version_of(self, path: str) -> int | None:
        """Row version of a stored document (None when absent)."""
        with self._operation("version_of") as unit:
            row = self._locked_row(unit.session, normalize_path(path))
            return row.version if row is not None else None
