"""
Purchase Preparation Domain Models.

The nouns of sourcing: one preparation per approved request line, the
supplier assignment or multi-supplier allocation, the purchase orders they
issue, and the delivery handle that opens a goods receipt.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from typing import Any

from procurement_kernel.domain.values import (
    ZERO,
    decimal_str,
    require_positive,
    require_text,
    round_money,
    to_decimal,
)
from procurement_kernel.exceptions import ValidationError
from procurement_kernel.logging_config import get_logger
from procurement_modules.stock.models import MaterialCategory

logger = get_logger("modules.preparation.models")


class PreparationStatus(Enum):
    """Purchase preparation lifecycle states."""
    AWAITING_SUPPLIER = "awaiting_supplier"
    SUPPLIER_ASSIGNED = "supplier_assigned"
    DELIVERED = "delivered"
    HANDED_TO_RECEIVING = "handed_to_receiving"


class PurchaseOrderStatus(Enum):
    """Receipt status, derived from GRN totals."""
    ISSUED = "issued"
    PARTIALLY_RECEIVED = "partially_received"
    FULLY_RECEIVED = "fully_received"


@dataclass(frozen=True)
class SupplierAssignment:
    supplier_id: str
    supplier_name: str
    unit_price: Decimal
    expected_delivery_date: str | None
    purchase_order_id: str | None = None

    def to_document(self) -> dict[str, Any]:
        return {
            "supplierId": self.supplier_id,
            "supplierName": self.supplier_name,
            "unitPrice": decimal_str(self.unit_price),
            "expectedDeliveryDate": self.expected_delivery_date,
            "purchaseOrderId": self.purchase_order_id,
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> SupplierAssignment:
        return cls(
            supplier_id=doc["supplierId"],
            supplier_name=doc.get("supplierName", ""),
            unit_price=to_decimal(doc["unitPrice"], "unitPrice"),
            expected_delivery_date=doc.get("expectedDeliveryDate"),
            purchase_order_id=doc.get("purchaseOrderId"),
        )


@dataclass(frozen=True)
class DeliveryRecord:
    delivered_quantity: Decimal
    delivery_date: str
    batch_number: str
    packaging_condition: str
    over_delivery: bool = False
    qc_status: str | None = None
    qc_record_id: str | None = None

    def to_document(self) -> dict[str, Any]:
        return {
            "deliveredQuantity": decimal_str(self.delivered_quantity),
            "deliveryDate": self.delivery_date,
            "batchNumber": self.batch_number,
            "packagingCondition": self.packaging_condition,
            "overDelivery": self.over_delivery,
            "qcStatus": self.qc_status,
            "qcRecordId": self.qc_record_id,
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> DeliveryRecord:
        return cls(
            delivered_quantity=to_decimal(doc["deliveredQuantity"], "deliveredQuantity"),
            delivery_date=doc.get("deliveryDate", ""),
            batch_number=doc.get("batchNumber", ""),
            packaging_condition=doc.get("packagingCondition", "good"),
            over_delivery=bool(doc.get("overDelivery", False)),
            qc_status=doc.get("qcStatus"),
            qc_record_id=doc.get("qcRecordId"),
        )


@dataclass(frozen=True)
class PurchasePreparation:
    """Sourcing record for one approved request line."""
    id: str
    request_id: str
    request_kind: str
    line_index: int
    material_id: str
    material_name: str
    required_quantity: Decimal
    unit: str
    request_type: MaterialCategory
    status: PreparationStatus = PreparationStatus.AWAITING_SUPPLIER
    supplier_assignment: SupplierAssignment | None = None
    allocation_id: str | None = None
    purchase_order_ids: tuple[str, ...] = ()
    delivery_record: DeliveryRecord | None = None
    grn_id: str | None = None
    grn_ids: tuple[str, ...] = ()
    created_at: int = 0
    updated_at: int = 0

    def to_document(self) -> dict[str, Any]:
        return {
            "requestId": self.request_id,
            "requestKind": self.request_kind,
            "lineIndex": self.line_index,
            "materialId": self.material_id,
            "materialName": self.material_name,
            "requiredQuantity": decimal_str(self.required_quantity),
            "unit": self.unit,
            "requestType": self.request_type.value,
            "status": self.status.value,
            "supplierAssignment": (
                self.supplier_assignment.to_document()
                if self.supplier_assignment else None
            ),
            "allocationId": self.allocation_id,
            "purchaseOrderIds": list(self.purchase_order_ids),
            "deliveryRecord": (
                self.delivery_record.to_document() if self.delivery_record else None
            ),
            "grnId": self.grn_id,
            "grnIds": list(self.grn_ids),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_document(cls, preparation_id: str, doc: dict[str, Any]) -> PurchasePreparation:
        assignment = doc.get("supplierAssignment")
        delivery = doc.get("deliveryRecord")
        return cls(
            id=preparation_id,
            request_id=doc["requestId"],
            request_kind=doc.get("requestKind", "material"),
            line_index=int(doc.get("lineIndex", 0)),
            material_id=doc["materialId"],
            material_name=doc.get("materialName", ""),
            required_quantity=to_decimal(doc["requiredQuantity"], "requiredQuantity"),
            unit=doc.get("unit", ""),
            request_type=MaterialCategory(doc.get("requestType", "raw")),
            status=PreparationStatus(doc["status"]),
            supplier_assignment=(
                SupplierAssignment.from_document(assignment) if assignment else None
            ),
            allocation_id=doc.get("allocationId"),
            purchase_order_ids=tuple(doc.get("purchaseOrderIds") or ()),
            delivery_record=DeliveryRecord.from_document(delivery) if delivery else None,
            grn_id=doc.get("grnId"),
            grn_ids=tuple(doc.get("grnIds") or ((doc["grnId"],) if doc.get("grnId") else ())),
            created_at=doc.get("createdAt", 0),
            updated_at=doc.get("updatedAt", 0),
        )


# -----------------------------------------------------------------------------
# Multi-supplier allocation
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class AllocationLine:
    supplier_id: str
    supplier_name: str
    quantity: Decimal
    unit_price: Decimal
    delivery_date: str | None = None

    def __post_init__(self) -> None:
        require_text(self.supplier_id, "supplierId")
        object.__setattr__(self, "quantity", require_positive(self.quantity, "quantity"))
        object.__setattr__(self, "unit_price", require_positive(self.unit_price, "unitPrice"))

    def to_document(self) -> dict[str, Any]:
        return {
            "supplierId": self.supplier_id,
            "supplierName": self.supplier_name,
            "quantity": decimal_str(self.quantity),
            "unitPrice": decimal_str(self.unit_price),
            "deliveryDate": self.delivery_date,
        }


@dataclass(frozen=True)
class RequestAllocation:
    """
    Split of one preparation's quantity across suppliers.

    Every mutation returns a new aggregate with totals recomputed.  A
    mutation that would allocate more than the target is rejected; a
    partially allocated aggregate is a valid draft but cannot be submitted
    (``require_balanced``).
    """
    preparation_id: str
    target_quantity: Decimal
    lines: tuple[AllocationLine, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "target_quantity",
            require_positive(self.target_quantity, "targetQuantity"),
        )
        if self.allocated_quantity > self.target_quantity:
            raise ValidationError(
                "allocations",
                f"allocated {self.allocated_quantity} exceeds required "
                f"{self.target_quantity}",
            )

    @property
    def allocated_quantity(self) -> Decimal:
        return sum((line.quantity for line in self.lines), ZERO)

    @property
    def remaining_quantity(self) -> Decimal:
        return self.target_quantity - self.allocated_quantity

    @property
    def is_balanced(self) -> bool:
        return bool(self.lines) and self.allocated_quantity == self.target_quantity

    @property
    def total_value(self) -> Decimal:
        return round_money(sum((l.quantity * l.unit_price for l in self.lines), ZERO))

    def with_line(self, line: AllocationLine) -> RequestAllocation:
        return replace(self, lines=self.lines + (line,))

    def without_line(self, index: int) -> RequestAllocation:
        if not 0 <= index < len(self.lines):
            raise ValidationError("index", f"no allocation line {index}")
        return replace(self, lines=self.lines[:index] + self.lines[index + 1:])

    def replace_line(self, index: int, line: AllocationLine) -> RequestAllocation:
        if not 0 <= index < len(self.lines):
            raise ValidationError("index", f"no allocation line {index}")
        lines = list(self.lines)
        lines[index] = line
        return replace(self, lines=tuple(lines))

    def require_balanced(self) -> None:
        if not self.lines:
            raise ValidationError("allocations", "at least one supplier is required")
        if self.allocated_quantity != self.target_quantity:
            raise ValidationError(
                "allocations",
                f"allocated {self.allocated_quantity} of required "
                f"{self.target_quantity}; remaining {self.remaining_quantity}",
            )

    def to_document(self) -> dict[str, Any]:
        return {
            "preparationId": self.preparation_id,
            "targetQuantity": decimal_str(self.target_quantity),
            "allocatedQuantity": decimal_str(self.allocated_quantity),
            "remainingQuantity": decimal_str(self.remaining_quantity),
            "allocations": [line.to_document() for line in self.lines],
        }


# -----------------------------------------------------------------------------
# Purchase orders
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class PurchaseOrderLine:
    material_id: str
    material_name: str
    quantity: Decimal
    unit: str
    unit_price: Decimal

    def to_document(self) -> dict[str, Any]:
        return {
            "materialId": self.material_id,
            "materialName": self.material_name,
            "quantity": decimal_str(self.quantity),
            "unit": self.unit,
            "unitPrice": decimal_str(self.unit_price),
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> PurchaseOrderLine:
        return cls(
            material_id=doc["materialId"],
            material_name=doc.get("materialName", ""),
            quantity=to_decimal(doc["quantity"], "quantity"),
            unit=doc.get("unit", ""),
            unit_price=to_decimal(doc["unitPrice"], "unitPrice"),
        )


@dataclass(frozen=True)
class PurchaseOrder:
    id: str
    po_number: str
    supplier_id: str
    supplier_name: str
    preparation_id: str | None
    items: tuple[PurchaseOrderLine, ...]
    status: PurchaseOrderStatus = PurchaseOrderStatus.ISSUED
    total_received: Decimal = ZERO
    expected_delivery_date: str | None = None
    created_at: int = 0

    @property
    def ordered_quantity(self) -> Decimal:
        return sum((line.quantity for line in self.items), ZERO)

    @property
    def total_amount(self) -> Decimal:
        return round_money(sum((l.quantity * l.unit_price for l in self.items), ZERO))

    def line_for(self, material_id: str) -> PurchaseOrderLine | None:
        for line in self.items:
            if line.material_id == material_id:
                return line
        return None

    def to_document(self) -> dict[str, Any]:
        return {
            "poNumber": self.po_number,
            "supplierId": self.supplier_id,
            "supplierName": self.supplier_name,
            "preparationId": self.preparation_id,
            "items": [line.to_document() for line in self.items],
            "status": self.status.value,
            "totalReceived": decimal_str(self.total_received),
            "totalAmount": decimal_str(self.total_amount),
            "expectedDeliveryDate": self.expected_delivery_date,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_document(cls, po_id: str, doc: dict[str, Any]) -> PurchaseOrder:
        return cls(
            id=po_id,
            po_number=doc.get("poNumber", ""),
            supplier_id=doc["supplierId"],
            supplier_name=doc.get("supplierName", ""),
            preparation_id=doc.get("preparationId"),
            items=tuple(PurchaseOrderLine.from_document(i) for i in doc.get("items", ())),
            status=PurchaseOrderStatus(doc.get("status", "issued")),
            total_received=to_decimal(doc.get("totalReceived", "0"), "totalReceived"),
            expected_delivery_date=doc.get("expectedDeliveryDate"),
            created_at=doc.get("createdAt", 0),
        )


@dataclass(frozen=True)
class DeliverySplit:
    """The share of a delivery received against one purchase order."""
    purchase_order_id: str
    supplier_id: str
    supplier_name: str
    ordered_quantity: Decimal
    delivered_quantity: Decimal
    unit_price: Decimal


def apportion_delivery(ordered: list[Decimal], delivered: Decimal) -> list[Decimal]:
    """
    Split a delivered quantity across orders in allocation order.

    Each order is filled up to its ordered quantity before the next one;
    any excess over the total ordered lands on the last order.
    """
    shares = []
    remaining = delivered
    for quantity in ordered:
        share = min(quantity, remaining)
        shares.append(share)
        remaining -= share
    if shares and remaining > ZERO:
        shares[-1] += remaining
    return shares


@dataclass(frozen=True)
class DeliveryHandle:
    """
    What receiving needs to open GRNs for a marked delivery.

    ``splits`` holds one entry per purchase order of the preparation; an
    allocated delivery therefore yields one GRN per supplier.
    """
    preparation_id: str
    purchase_order_ids: tuple[str, ...]
    material_id: str
    material_name: str
    unit: str
    ordered_quantity: Decimal
    delivered_quantity: Decimal
    unit_price: Decimal | None
    supplier_id: str | None
    supplier_name: str | None
    delivery_date: str
    batch_number: str
    packaging_condition: str
    category: MaterialCategory
    over_delivery: bool = False
    splits: tuple[DeliverySplit, ...] = ()

    @property
    def purchase_order_id(self) -> str | None:
        return self.purchase_order_ids[0] if len(self.purchase_order_ids) == 1 else None
