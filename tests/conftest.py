"""
Pytest fixtures for the procurement core test suite.

Provides:
- Structured logging configured once per session, plus a ``captured_logs``
  fixture for asserting on emitted events
- An in-memory entity store, a deterministic clock and a recording notifier
- A fully wired ``ProcurementSuite``
- The actors of the lifecycle (requester, operations head, director, QC
  officer, accountant)
- Factory fixtures that drive a request to an approved preparation and a
  delivery to a pending GRN

The SQL store fixtures run on in-memory SQLite; nothing here needs a
database server.
"""

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from io import StringIO

import pytest

from procurement_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from procurement_kernel.domain.clock import DeterministicClock
from procurement_kernel.domain.identity import Actor, Role
from procurement_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from procurement_kernel.notifications import RecordingNotifier
from procurement_kernel.store.memory import InMemoryEntityStore
from procurement_kernel.store.sql import SqlEntityStore
from procurement_services import ProcurementSuite


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture procurement_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, suite):
            suite.receiving.create_grn(...)
            logs = captured_logs()
            assert any(r["message"] == "grn_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("procurement_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "sql: mark test as using the SQLAlchemy entity store"
    )
    config.addinivalue_line(
        "markers", "scenario: end-to-end procurement lifecycle scenario"
    )
    config.addinivalue_line(
        "markers", "slow: property-based tests with many generated examples"
    )


# =============================================================================
# Core infrastructure
# =============================================================================


FIXED_TIME = datetime(2024, 3, 15, 9, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    return DeterministicClock(FIXED_TIME)


@pytest.fixture
def store():
    return InMemoryEntityStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def suite(store, clock, notifier):
    """Every procurement service wired around one in-memory store."""
    return ProcurementSuite(store, clock=clock, notifier=notifier)


# =============================================================================
# Actors
# =============================================================================


@pytest.fixture
def requester():
    return Actor(id="u1", display_name="Warehouse Clerk", role=Role.WAREHOUSE_STAFF)


@pytest.fixture
def operations_head():
    return Actor(id="u2", display_name="Operations Head", role=Role.HEAD_OF_OPERATIONS)


@pytest.fixture
def director():
    return Actor(id="u3", display_name="Main Director", role=Role.MAIN_DIRECTOR)


@pytest.fixture
def purchasing_manager():
    return Actor(id="u4", display_name="Purchasing Manager", role=Role.PURCHASING_MANAGER)


@pytest.fixture
def qc_officer():
    return Actor(id="u5", display_name="QC Officer", role=Role.QC_OFFICER)


@pytest.fixture
def accountant():
    return Actor(id="u6", display_name="Accountant", role=Role.ACCOUNTANT)


# =============================================================================
# Lifecycle factories
# =============================================================================


CAUSTIC_SODA = {
    "materialId": "mat-caustic-soda",
    "materialName": "Caustic Soda",
    "quantity": "500",
    "unit": "kg",
    "category": "raw",
}


@pytest.fixture
def caustic_soda_line():
    return dict(CAUSTIC_SODA)


@pytest.fixture
def approved_preparation(suite, requester, operations_head, director):
    """
    Factory: submit a one-line request, approve it at both tiers, and
    return the single preparation created for it.
    """

    def _approve(**overrides):
        line = dict(CAUSTIC_SODA)
        line.update(overrides)
        request = suite.requests.create_request([line], requester)
        suite.requests.approve_at_operations_head(request.id, operations_head)
        suite.requests.approve_at_director(request.id, director)
        [preparation] = suite.preparations.list_for_request(request.id)
        return preparation

    return _approve


@pytest.fixture
def pending_grn(suite, approved_preparation, purchasing_manager, requester):
    """
    Factory: approved preparation, supplier assigned at ``unit_price``,
    delivery marked with ``delivered``, GRN opened from the delivery.
    """

    def _receive(delivered="480", unit_price="120.00", supplier_id="sup-s", **overrides):
        preparation = approved_preparation(**overrides)
        suite.preparations.assign_supplier(
            preparation.id, supplier_id, Decimal(unit_price), "2024-03-20",
            purchasing_manager, supplier_name="Supplier S",
        )
        handle = suite.preparations.mark_delivered(
            preparation.id, Decimal(delivered), requester, delivery_date="2024-03-20",
        )
        return suite.receiving.create_grn_from_delivery(handle, requester)

    return _receive


# =============================================================================
# SQL store
# =============================================================================


@pytest.fixture
def sql_session_factory():
    """In-memory SQLite engine with the document table created."""
    init_engine_from_url("sqlite://")
    create_tables()
    yield get_session_factory()
    drop_tables()
    reset_engine()


@pytest.fixture
def sql_store(sql_session_factory):
    return SqlEntityStore(sql_session_factory)
