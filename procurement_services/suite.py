"""
procurement_services.suite -- Central DI container for the procurement core.

Responsibility:
    Creates every workflow service exactly once around one entity store,
    one clock, one sequence service, and one notification fan-out, and
    wires them in dependency order.  No module service constructs another.

Architecture position:
    Services -- the top layer.  The only place module services are
    composed.

Invariants enforced:
    - Single-instance lifecycle: every service in a suite shares the same
      store, clock, sequences and fan-out, so document numbers and units
      of work are consistent across modules.

Usage:
    suite = ProcurementSuite.in_memory(clock=DeterministicClock())
    request = suite.requests.create_request(items, requester)
    ...
    suite.receiving.approve_grn(grn.id, qc_officer)
"""

from __future__ import annotations

from sqlalchemy.orm import Session, sessionmaker

from procurement_config import ProcurementSettings
from procurement_engines.grading import SupplierGrader
from procurement_engines.matching import ThreeWayMatcher
from procurement_engines.variance import DeliveryVarianceCalculator
from procurement_kernel.domain.clock import Clock, SystemClock
from procurement_kernel.logging_config import get_logger
from procurement_kernel.notifications import NotificationFanout, Notifier
from procurement_kernel.services.sequence_service import SequenceService
from procurement_kernel.store.base import EntityStore
from procurement_kernel.store.memory import InMemoryEntityStore
from procurement_kernel.store.sql import SqlEntityStore
from procurement_modules.billing.service import BillingService
from procurement_modules.preparation.service import PreparationService
from procurement_modules.receiving.service import ReceivingService
from procurement_modules.requests.service import RequestService
from procurement_modules.stock.service import StockLedger

logger = get_logger("services.suite")


class ProcurementSuite:
    """All procurement managers wired around one store.

    Contract:
        Receives an ``EntityStore`` and optional settings, clock and
        notifier.  Exposes the managers as public attributes.

    Non-goals:
        - Does NOT own the store's lifecycle (engine disposal, table
          creation).
        - Does NOT authenticate; callers pass the acting identity.
    """

    def __init__(
        self,
        store: EntityStore,
        settings: ProcurementSettings | None = None,
        clock: Clock | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        self.store = store
        self.settings = settings or ProcurementSettings()
        self.clock = clock or SystemClock()
        self.notifications = NotificationFanout(notifier)
        self.sequences = SequenceService(store, self.clock)

        # Order matters: each manager depends only on those above it.
        self.stock = StockLedger(
            store, self.clock, self.notifications,
            config=self.settings.stock, sequences=self.sequences,
        )
        self.billing = BillingService(
            store, self.clock, self.notifications,
            config=self.settings.billing, sequences=self.sequences,
            matcher=ThreeWayMatcher(),
        )
        self.preparations = PreparationService(
            store, self.clock, self.notifications,
            config=self.settings.preparation, sequences=self.sequences,
            grader=SupplierGrader(),
        )
        self.requests = RequestService(
            store, self.preparations, self.clock, self.notifications,
            config=self.settings.requests,
        )
        self.receiving = ReceivingService(
            store, self.stock, self.billing, self.preparations,
            clock=self.clock,
            notifications=self.notifications,
            config=self.settings.receiving,
            sequences=self.sequences,
            calculator=DeliveryVarianceCalculator(),
        )

        logger.info(
            "procurement_suite_initialized",
            extra={
                "store": type(store).__name__,
                "config_id": self.settings.config_id,
                "config_checksum": self.settings.checksum,
            },
        )

    @classmethod
    def in_memory(
        cls,
        settings: ProcurementSettings | None = None,
        clock: Clock | None = None,
        notifier: Notifier | None = None,
    ) -> ProcurementSuite:
        return cls(InMemoryEntityStore(), settings, clock, notifier)

    @classmethod
    def with_sql_store(
        cls,
        session_factory: sessionmaker[Session],
        settings: ProcurementSettings | None = None,
        clock: Clock | None = None,
        notifier: Notifier | None = None,
    ) -> ProcurementSuite:
        return cls(SqlEntityStore(session_factory), settings, clock, notifier)
