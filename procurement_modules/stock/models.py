"""
Stock Domain Models.

The nouns of the stock ledger: immutable movements, the per-material
quantity projection, low-stock alerts, and report lines.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

from procurement_kernel.domain.values import ZERO, decimal_str, optional_decimal, to_decimal
from procurement_kernel.logging_config import get_logger
from procurement_modules import collections

logger = get_logger("modules.stock.models")


class MaterialCategory(Enum):
    """Stock namespace.  Raw and packing stock share one contract."""
    RAW = "raw"
    PACKING = "packing"

    @property
    def master_collection(self) -> str:
        if self is MaterialCategory.RAW:
            return collections.RAW_MATERIALS
        return collections.PACKING_MATERIALS

    @property
    def stock_collection(self) -> str:
        if self is MaterialCategory.RAW:
            return collections.RAW_MATERIAL_STOCK
        return collections.PACKING_MATERIAL_STOCK

    @property
    def movement_collection(self) -> str:
        if self is MaterialCategory.RAW:
            return collections.RAW_MATERIAL_MOVEMENTS
        return collections.PACKING_MATERIAL_MOVEMENTS


class MovementDirection(Enum):
    IN = "in"
    OUT = "out"


class AlertSeverity(Enum):
    CRITICAL = "critical"
    WARNING = "warning"


class StockStatus(Enum):
    LOW = "low"
    MEDIUM = "medium"
    GOOD = "good"


@dataclass(frozen=True)
class MovementRefs:
    """Optional provenance carried on a movement."""
    batch_number: str | None = None
    supplier_id: str | None = None
    reference_type: str | None = None
    reference_id: str | None = None
    unit_price: Decimal | None = None
    quality_grade: str | None = None


@dataclass(frozen=True)
class StockMovement:
    """An immutable ledger entry."""
    id: str
    category: MaterialCategory
    material_id: str
    direction: MovementDirection
    quantity: Decimal
    reason: str
    refs: MovementRefs
    recorded_at: int
    recorded_by: str
    quantity_before: Decimal
    quantity_after: Decimal

    @property
    def signed_quantity(self) -> Decimal:
        return self.quantity if self.direction is MovementDirection.IN else -self.quantity

    def to_document(self) -> dict[str, Any]:
        return {
            "category": self.category.value,
            "materialId": self.material_id,
            "type": self.direction.value,
            "quantity": decimal_str(self.quantity),
            "reason": self.reason,
            "batchNumber": self.refs.batch_number,
            "supplierId": self.refs.supplier_id,
            "referenceType": self.refs.reference_type,
            "referenceId": self.refs.reference_id,
            "unitPrice": decimal_str(self.refs.unit_price),
            "qualityGrade": self.refs.quality_grade,
            "quantityBefore": decimal_str(self.quantity_before),
            "quantityAfter": decimal_str(self.quantity_after),
            "createdAt": self.recorded_at,
            "createdBy": self.recorded_by,
        }

    @classmethod
    def from_document(cls, movement_id: str, doc: dict[str, Any]) -> StockMovement:
        return cls(
            id=movement_id,
            category=MaterialCategory(doc["category"]),
            material_id=doc["materialId"],
            direction=MovementDirection(doc["type"]),
            quantity=to_decimal(doc["quantity"], "quantity"),
            reason=doc.get("reason", ""),
            refs=MovementRefs(
                batch_number=doc.get("batchNumber"),
                supplier_id=doc.get("supplierId"),
                reference_type=doc.get("referenceType"),
                reference_id=doc.get("referenceId"),
                unit_price=optional_decimal(doc.get("unitPrice"), "unitPrice"),
                quality_grade=doc.get("qualityGrade"),
            ),
            recorded_at=doc.get("createdAt", 0),
            recorded_by=doc.get("createdBy", ""),
            quantity_before=to_decimal(doc.get("quantityBefore", "0"), "quantityBefore"),
            quantity_after=to_decimal(doc.get("quantityAfter", "0"), "quantityAfter"),
        )


@dataclass(frozen=True)
class StockLevel:
    """Projected current quantity of one material."""
    category: MaterialCategory
    material_id: str
    quantity: Decimal
    last_movement_at: int | None = None
    last_supplier_id: str | None = None
    last_unit_price: Decimal | None = None
    last_quality_grade: str | None = None

    def to_document(self) -> dict[str, Any]:
        return {
            "category": self.category.value,
            "materialId": self.material_id,
            "currentStock": decimal_str(self.quantity),
            "lastMovementAt": self.last_movement_at,
            "lastSupplierId": self.last_supplier_id,
            "lastUnitPrice": decimal_str(self.last_unit_price),
            "lastQualityGrade": self.last_quality_grade,
        }

    @classmethod
    def from_document(cls, category: MaterialCategory, material_id: str,
                      doc: dict[str, Any] | None) -> StockLevel:
        if doc is None:
            return cls(category=category, material_id=material_id, quantity=ZERO)
        return cls(
            category=category,
            material_id=material_id,
            quantity=to_decimal(doc.get("currentStock", "0"), "currentStock"),
            last_movement_at=doc.get("lastMovementAt"),
            last_supplier_id=doc.get("lastSupplierId"),
            last_unit_price=optional_decimal(doc.get("lastUnitPrice"), "lastUnitPrice"),
            last_quality_grade=doc.get("lastQualityGrade"),
        )


@dataclass(frozen=True)
class MaterialMaster:
    """Reference data for a stocked material (name, unit, reorder level)."""
    material_id: str
    name: str
    unit: str
    reorder_level: Decimal
    unit_price: Decimal | None = None

    def to_document(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "unit": self.unit,
            "reorderLevel": decimal_str(self.reorder_level),
            "unitPrice": decimal_str(self.unit_price),
        }

    @classmethod
    def from_document(cls, material_id: str, doc: dict[str, Any]) -> MaterialMaster:
        return cls(
            material_id=material_id,
            name=doc.get("name", material_id),
            unit=doc.get("unit", ""),
            reorder_level=to_decimal(doc.get("reorderLevel", "0"), "reorderLevel"),
            unit_price=optional_decimal(doc.get("unitPrice"), "unitPrice"),
        )


@dataclass(frozen=True)
class LowStockAlert:
    material_id: str
    material_name: str
    current_quantity: Decimal
    reorder_level: Decimal
    severity: AlertSeverity
    unit: str = ""


@dataclass(frozen=True)
class StockReportLine:
    material_id: str
    material_name: str
    unit: str
    current_quantity: Decimal
    reorder_level: Decimal
    unit_price: Decimal | None
    total_value: Decimal
    status: StockStatus


@dataclass(frozen=True)
class DispatchItem:
    material_id: str
    quantity: Decimal
    material_name: str = ""


@dataclass(frozen=True)
class Dispatch:
    id: str
    dispatch_number: str
    category: MaterialCategory
    destination: str
    items: tuple[DispatchItem, ...]
    movement_ids: tuple[str, ...]
    request_id: str | None
    dispatched_at: int
    dispatched_by: str


def apply_movement(current: Decimal, direction: MovementDirection, quantity: Decimal) -> Decimal:
    """Next projected quantity.  Outbound movements floor at zero."""
    if direction is MovementDirection.IN:
        return current + quantity
    return max(ZERO, current - quantity)


def replay_quantity(movements: Iterable[StockMovement]) -> Decimal:
    """Fold movements (in recorded order) into the projected quantity."""
    quantity = ZERO
    for movement in movements:
        quantity = apply_movement(quantity, movement.direction, movement.quantity)
    return quantity
