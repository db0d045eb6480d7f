"""
Module: procurement_kernel.db.base
Responsibility: Declarative base and the document table backing the SQL
    entity store.
Architecture position: Kernel > DB.  Lowest-level import target for the SQL
    adapter.  MUST NOT import from store/, services/, or outer layers.

Invariants enforced:
    - One row per document path (unique ``path``).
    - ``version`` increments on every write of a row.
    - Timestamps are timezone-aware.
"""

from datetime import datetime
from typing import Any, ClassVar

from sqlalchemy import JSON, BigInteger, DateTime, Integer, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Guarantees:
        - datetime maps to DateTime(timezone=True).
        - int maps to BigInteger.
    """

    type_annotation_map: ClassVar[dict] = {
        datetime: DateTime(timezone=True),
        int: BigInteger,
    }


class EntityDocumentRow(Base):
    """A stored document: JSON body addressed by its slash path."""

    __tablename__ = "entity_documents"

    # Integer (not BigInteger) so SQLite treats it as ROWID autoincrement.
    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    path: Mapped[str] = mapped_column(String(512), unique=True, nullable=False)
    collection: Mapped[str] = mapped_column(String(512), index=True, nullable=False)
    entity_id: Mapped[str] = mapped_column(String(128), nullable=False)
    body: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<EntityDocumentRow {self.path} v{self.version}>"
