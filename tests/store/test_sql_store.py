"""
Tests for the SQLAlchemy entity store adapter.

Covers:
- Row versioning on every write
- Backend failures surfacing as DependencyError
- Documents surviving across sessions
"""

import pytest

from procurement_kernel.db.engine import drop_tables
from procurement_kernel.exceptions import DependencyError
from procurement_kernel.store.sql import SqlEntityStore

pytestmark = pytest.mark.sql


class TestSqlEntityStore:

    def test_version_increments_on_every_write(self, sql_store):
        assert sql_store.version_of("invoices/i-1") is None
        sql_store.write("invoices/i-1", {"status": "pending"})
        assert sql_store.version_of("invoices/i-1") == 1
        sql_store.patch("invoices/i-1", {"status": "verified"})
        assert sql_store.version_of("invoices/i-1") == 2

    def test_rolled_back_write_keeps_version(self, sql_store):
        sql_store.write("invoices/i-1", {"status": "pending"})
        with pytest.raises(RuntimeError):
            with sql_store.atomic():
                sql_store.patch("invoices/i-1", {"status": "verified"})
                raise RuntimeError("boom")
        assert sql_store.version_of("invoices/i-1") == 1
        assert sql_store.read("invoices/i-1") == {"status": "pending"}

    def test_documents_visible_to_a_second_store(self, sql_session_factory):
        writer = SqlEntityStore(sql_session_factory)
        reader = SqlEntityStore(sql_session_factory)
        writer.write("rawMaterialStock/mat-1", {"currentStock": "480"})
        assert reader.read("rawMaterialStock/mat-1") == {"currentStock": "480"}

    def test_backend_failure_wrapped(self, sql_store):
        drop_tables()
        with pytest.raises(DependencyError) as exc_info:
            sql_store.write("invoices/i-1", {"status": "pending"})
        assert exc_info.value.dependency == "entity_store"
        assert exc_info.value.operation == "write"
        assert exc_info.value.cause is not None
