"""
Stock Ledger Service (``procurement_modules.stock.service``).

Responsibility
--------------
Authoritative movement history and current-quantity projection per
material, kept in two namespaces (raw, packing) with one contract.  Also
owns dispatch to the packing area, low-stock alerts, and the stock report.

Architecture position
---------------------
**Modules layer.**  ``StockLedger`` is the ONLY writer of projected
quantity.  Receiving (GRN approval, QC acceptance) and dispatch flows call
``record_movement``; nothing else touches ``currentStock``.

Invariants enforced
-------------------
* Movements are append-only; quantity must be > 0.
* ``in`` adds; ``out`` subtracts and floors at zero.  An over-dispatch is
  logged at WARNING and clamped, never negative.
* The movement append and the projection update share one unit of work,
  so the projection always equals the replay of its movements.

Failure modes
-------------
* ``ValidationError`` on non-positive quantity, missing material or reason.
* ``NotFoundError`` for unknown materials in master-data lookups.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal

from procurement_kernel.domain.clock import Clock
from procurement_kernel.domain.identity import Actor, Role
from procurement_kernel.domain.values import (
    ZERO,
    decimal_str,
    require_positive,
    require_text,
    round_money,
)
from procurement_kernel.exceptions import NotFoundError, ValidationError
from procurement_kernel.logging_config import LogContext, get_logger
from procurement_kernel.notifications import NotificationFanout, NotificationKind
from procurement_kernel.services.base import BaseService
from procurement_kernel.services.sequence_service import DISPATCH_PREFIX, SequenceService
from procurement_kernel.store.base import EntityStore
from procurement_modules import collections
from procurement_modules.stock.config import StockConfig
from procurement_modules.stock.models import (
    AlertSeverity,
    Dispatch,
    DispatchItem,
    LowStockAlert,
    MaterialCategory,
    MaterialMaster,
    MovementDirection,
    MovementRefs,
    StockLevel,
    StockMovement,
    StockReportLine,
    StockStatus,
    apply_movement,
    replay_quantity,
)

logger = get_logger("modules.stock.service")


class StockLedger(BaseService):
    """
    Movement log plus quantity projection.

    Contract:
        Every quantity change is a ``record_movement`` call.
    Guarantees:
        - ``current_quantity(m) == replay_quantity(get_movements(m))``.
    Non-goals:
        - Stock valuation beyond the report's last-price estimate.
    """

    def __init__(
        self,
        store: EntityStore,
        clock: Clock | None = None,
        notifications: NotificationFanout | None = None,
        config: StockConfig | None = None,
        sequences: SequenceService | None = None,
    ):
        super().__init__(store, clock, notifications)
        self._config = config or StockConfig()
        self._sequences = sequences or SequenceService(store, self._clock)

    # ------------------------------------------------------------------
    # Movements
    # ------------------------------------------------------------------

    def record_movement(
        self,
        category: MaterialCategory,
        material_id: str,
        direction: MovementDirection,
        quantity: Decimal | str | int,
        reason: str,
        actor: Actor,
        refs: MovementRefs | None = None,
    ) -> StockMovement:
        """Append a movement and update the projection in one unit."""
        material_id = require_text(material_id, "materialId")
        quantity = require_positive(quantity, "quantity")
        reason = require_text(reason, "reason")
        refs = refs or MovementRefs()

        with LogContext.bind(actor_id=actor.id, entity_id=material_id):
            with self._store.atomic():
                level_path = f"{category.stock_collection}/{material_id}"
                level = StockLevel.from_document(
                    category, material_id, self._store.read(level_path),
                )
                after = apply_movement(level.quantity, direction, quantity)
                if direction is MovementDirection.OUT and quantity > level.quantity:
                    logger.warning("stock_dispatch_clamped", extra={
                        "category": category.value,
                        "material_id": material_id,
                        "requested": str(quantity),
                        "available": str(level.quantity),
                    })

                now = self._now()
                movement = StockMovement(
                    id="",
                    category=category,
                    material_id=material_id,
                    direction=direction,
                    quantity=quantity,
                    reason=reason,
                    refs=refs,
                    recorded_at=now,
                    recorded_by=actor.id,
                    quantity_before=level.quantity,
                    quantity_after=after,
                )
                movement_id = self._store.append(
                    category.movement_collection, movement.to_document(),
                )

                updated = StockLevel(
                    category=category,
                    material_id=material_id,
                    quantity=after,
                    last_movement_at=now,
                    last_supplier_id=refs.supplier_id or level.last_supplier_id,
                    last_unit_price=(
                        refs.unit_price
                        if direction is MovementDirection.IN and refs.unit_price is not None
                        else level.last_unit_price
                    ),
                    last_quality_grade=refs.quality_grade or level.last_quality_grade,
                )
                self._store.write(level_path, updated.to_document())

            logger.info("stock_movement_recorded", extra={
                "movement_id": movement_id,
                "category": category.value,
                "direction": direction.value,
                "quantity": str(quantity),
                "quantity_after": str(after),
                "reference_id": refs.reference_id,
            })

        return StockMovement(
            id=movement_id,
            category=category,
            material_id=material_id,
            direction=direction,
            quantity=quantity,
            reason=reason,
            refs=refs,
            recorded_at=movement.recorded_at,
            recorded_by=actor.id,
            quantity_before=level.quantity,
            quantity_after=after,
        )

    def dispatch(
        self,
        category: MaterialCategory,
        items: Sequence[DispatchItem],
        destination: str,
        actor: Actor,
        request_id: str | None = None,
    ) -> Dispatch:
        """Issue stock to a destination: one ``out`` movement per item."""
        destination = require_text(destination, "destination")
        if not items:
            raise ValidationError("items", "at least one item is required")
        reason = self._config.dispatch_reason_template.format(destination=destination)

        with self._store.atomic():
            number = self._sequences.next_number(DISPATCH_PREFIX)
            movement_ids = []
            for item in items:
                movement = self.record_movement(
                    category,
                    item.material_id,
                    MovementDirection.OUT,
                    item.quantity,
                    reason,
                    actor,
                    MovementRefs(reference_type="dispatch", reference_id=number),
                )
                movement_ids.append(movement.id)

            now = self._now()
            dispatch_id = self._store.append(collections.DISPATCHES, {
                "dispatchNumber": number,
                "category": category.value,
                "destination": destination,
                "requestId": request_id,
                "items": [
                    {
                        "materialId": item.material_id,
                        "materialName": item.material_name,
                        "quantity": decimal_str(Decimal(str(item.quantity))),
                    }
                    for item in items
                ],
                "movementIds": movement_ids,
                "createdAt": now,
                "createdBy": actor.to_document(),
            })

        logger.info("stock_dispatched", extra={
            "dispatch_id": dispatch_id,
            "dispatch_number": number,
            "destination": destination,
            "item_count": len(items),
        })
        self._notifications.send(
            [Role.PRODUCTION_MANAGER], NotificationKind.STOCK_DISPATCHED, dispatch_id,
        )
        return Dispatch(
            id=dispatch_id,
            dispatch_number=number,
            category=category,
            destination=destination,
            items=tuple(items),
            movement_ids=tuple(movement_ids),
            request_id=request_id,
            dispatched_at=now,
            dispatched_by=actor.id,
        )

    # ------------------------------------------------------------------
    # Projection
    # ------------------------------------------------------------------

    def get_level(self, category: MaterialCategory, material_id: str) -> StockLevel:
        return StockLevel.from_document(
            category,
            material_id,
            self._store.read(f"{category.stock_collection}/{material_id}"),
        )

    def current_quantity(self, category: MaterialCategory, material_id: str) -> Decimal:
        return self.get_level(category, material_id).quantity

    def get_movements(
        self,
        category: MaterialCategory,
        material_id: str | None = None,
    ) -> list[StockMovement]:
        """Movements in recorded order, optionally for one material."""
        movements = [
            StockMovement.from_document(movement_id, doc)
            for movement_id, doc in self._store.list(category.movement_collection).items()
        ]
        if material_id is not None:
            movements = [m for m in movements if m.material_id == material_id]
        return movements

    def rebuild_projection(self, category: MaterialCategory, material_id: str) -> Decimal:
        """Recompute the projection from the movement log; repair on drift."""
        with self._store.atomic():
            replayed = replay_quantity(self.get_movements(category, material_id))
            level = self.get_level(category, material_id)
            if level.quantity != replayed:
                logger.warning("stock_projection_drift", extra={
                    "category": category.value,
                    "material_id": material_id,
                    "projected": str(level.quantity),
                    "replayed": str(replayed),
                })
                self._store.patch(
                    f"{category.stock_collection}/{material_id}",
                    {"currentStock": decimal_str(replayed)},
                )
        return replayed

    # ------------------------------------------------------------------
    # Material master
    # ------------------------------------------------------------------

    def register_material(self, category: MaterialCategory, material: MaterialMaster) -> None:
        require_text(material.material_id, "materialId")
        if material.reorder_level < ZERO:
            raise ValidationError("reorderLevel", "must not be negative")
        self._store.write(
            f"{category.master_collection}/{material.material_id}",
            material.to_document(),
        )

    def get_material(self, category: MaterialCategory, material_id: str) -> MaterialMaster:
        doc = self._store.read(f"{category.master_collection}/{material_id}")
        if doc is None:
            raise NotFoundError("material", material_id)
        return MaterialMaster.from_document(material_id, doc)

    def list_materials(self, category: MaterialCategory) -> list[MaterialMaster]:
        return [
            MaterialMaster.from_document(material_id, doc)
            for material_id, doc in self._store.list(category.master_collection).items()
        ]

    # ------------------------------------------------------------------
    # Read models
    # ------------------------------------------------------------------

    def get_low_stock_alerts(self, category: MaterialCategory) -> list[LowStockAlert]:
        """Materials at or below their reorder level, lowest quantity first.

        Materials without a reorder level (zero) never alert.
        """
        alerts = []
        for material in self.list_materials(category):
            if material.reorder_level <= ZERO:
                continue
            quantity = self.current_quantity(category, material.material_id)
            if quantity > material.reorder_level:
                continue
            critical_at = material.reorder_level * self._config.critical_ratio
            alerts.append(LowStockAlert(
                material_id=material.material_id,
                material_name=material.name,
                current_quantity=quantity,
                reorder_level=material.reorder_level,
                severity=(
                    AlertSeverity.CRITICAL if quantity <= critical_at
                    else AlertSeverity.WARNING
                ),
                unit=material.unit,
            ))
        alerts.sort(key=lambda a: (a.current_quantity, a.material_id))
        return alerts

    def stock_report(self, category: MaterialCategory) -> list[StockReportLine]:
        lines = []
        for material in self.list_materials(category):
            level = self.get_level(category, material.material_id)
            if level.quantity <= material.reorder_level:
                status = StockStatus.LOW
            elif level.quantity <= material.reorder_level * self._config.medium_multiplier:
                status = StockStatus.MEDIUM
            else:
                status = StockStatus.GOOD
            unit_price = level.last_unit_price or material.unit_price
            value = round_money(level.quantity * unit_price) if unit_price else round_money(ZERO)
            lines.append(StockReportLine(
                material_id=material.material_id,
                material_name=material.name,
                unit=material.unit,
                current_quantity=level.quantity,
                reorder_level=material.reorder_level,
                unit_price=unit_price,
                total_value=value,
                status=status,
            ))
        return lines
