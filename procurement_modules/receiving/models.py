"""
Receiving Domain Models.

The nouns of goods receipt: the GRN with its header and variance-bearing
lines, the QC decision attached on approval, and the standalone QC record
used for ad-hoc deliveries.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

from procurement_kernel.domain.identity import Actor
from procurement_kernel.domain.values import (
    ZERO,
    decimal_str,
    optional_decimal,
    require_non_negative,
    require_text,
    round_money,
    to_decimal,
)
from procurement_kernel.exceptions import ValidationError
from procurement_kernel.logging_config import get_logger
from procurement_modules.stock.models import MaterialCategory

logger = get_logger("modules.receiving.models")

MAX_DEFECT_RATE = Decimal("100")


class GRNStatus(Enum):
    PENDING_QC = "pending_qc"
    QC_PASSED = "qc_passed"
    QC_FAILED = "qc_failed"


class QCGrade(Enum):
    A = "A"
    B = "B"
    C = "C"
    D = "D"

    @classmethod
    def parse(cls, value: Any, field: str = "grade") -> QCGrade:
        if isinstance(value, QCGrade):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise ValidationError(field, f"'{value}' is not one of A, B, C, D") from None


class AcceptanceStatus(Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"

    @classmethod
    def parse(cls, value: Any) -> AcceptanceStatus:
        if isinstance(value, AcceptanceStatus):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValidationError(
                "acceptanceStatus", f"'{value}' must be accepted or rejected",
            ) from None


def parse_defect_rate(value: Any) -> Decimal | None:
    rate = optional_decimal(value, "defectRate")
    if rate is not None and not ZERO <= rate <= MAX_DEFECT_RATE:
        raise ValidationError("defectRate", f"must be within 0-100, got {rate}")
    return rate


def resolve_accepted_quantity(
    acceptance: AcceptanceStatus,
    received: Decimal,
    override: Any = None,
) -> Decimal:
    """Accepted quantity: received when accepted, 0 when rejected, or an
    override within ``[0, received]``."""
    if override is None or override == "":
        return received if acceptance is AcceptanceStatus.ACCEPTED else ZERO
    accepted = to_decimal(override, "quantityAccepted")
    if accepted < ZERO or accepted > received:
        raise ValidationError(
            "quantityAccepted", f"{accepted} is outside [0, {received}]",
        )
    return accepted


# -----------------------------------------------------------------------------
# Goods receipt note
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class GRNReference:
    """What the delivery is received against."""
    purchase_order_id: str | None = None
    preparation_id: str | None = None

    def __post_init__(self) -> None:
        if not self.purchase_order_id and not self.preparation_id:
            raise ValidationError(
                "reference", "a purchase order or preparation reference is required",
            )


@dataclass(frozen=True)
class GRNHeader:
    supplier_id: str | None = None
    supplier_name: str = ""
    delivery_date: str | None = None
    received_by: str = ""
    packaging_condition: str = "good"
    transport_condition: str = "good"
    notes: str = ""
    category: MaterialCategory | None = None

    def to_document(self) -> dict[str, Any]:
        return {
            "supplierId": self.supplier_id,
            "supplierName": self.supplier_name,
            "deliveryDate": self.delivery_date,
            "receivedBy": self.received_by,
            "packagingCondition": self.packaging_condition,
            "transportCondition": self.transport_condition,
            "notes": self.notes,
            "category": self.category.value if self.category else None,
        }

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> GRNHeader:
        category = doc.get("category")
        return cls(
            supplier_id=doc.get("supplierId"),
            supplier_name=doc.get("supplierName", ""),
            delivery_date=doc.get("deliveryDate"),
            received_by=doc.get("receivedBy", ""),
            packaging_condition=doc.get("packagingCondition", "good"),
            transport_condition=doc.get("transportCondition", "good"),
            notes=doc.get("notes", ""),
            category=MaterialCategory(category) if category else None,
        )


@dataclass(frozen=True)
class GRNLine:
    """
    One received material.

    ``ordered_quantity`` and ``unit_price`` may be left empty on input; the
    receiving service fills them from the purchase order.  The variance
    fields are computed by the service and stored with the line.
    """
    material_id: str
    delivered_quantity: Decimal
    ordered_quantity: Decimal | None = None
    material_name: str = ""
    unit: str = ""
    unit_price: Decimal | None = None
    lot_number: str = ""
    manufacture_date: str | None = None
    expiry_date: str | None = None
    condition: str = "good"
    variance: Decimal = ZERO
    variance_percent: Decimal = ZERO
    is_over_delivery: bool = False
    is_short_delivery: bool = False

    @property
    def line_value(self) -> Decimal:
        if self.unit_price is None:
            return ZERO
        return round_money(self.delivered_quantity * self.unit_price)

    def to_document(self) -> dict[str, Any]:
        return {
            "materialId": self.material_id,
            "materialName": self.material_name,
            "orderedQty": decimal_str(self.ordered_quantity),
            "deliveredQty": decimal_str(self.delivered_quantity),
            "unit": self.unit,
            "unitPrice": decimal_str(self.unit_price),
            "lotNumber": self.lot_number,
            "manufactureDate": self.manufacture_date,
            "expiryDate": self.expiry_date,
            "condition": self.condition,
            "variance": decimal_str(self.variance),
            "variancePercent": decimal_str(self.variance_percent),
            "isOverDelivery": self.is_over_delivery,
            "isShortDelivery": self.is_short_delivery,
        }

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> GRNLine:
        return cls(
            material_id=doc["materialId"],
            material_name=doc.get("materialName", ""),
            ordered_quantity=optional_decimal(doc.get("orderedQty"), "orderedQty"),
            delivered_quantity=to_decimal(doc["deliveredQty"], "deliveredQty"),
            unit=doc.get("unit", ""),
            unit_price=optional_decimal(doc.get("unitPrice"), "unitPrice"),
            lot_number=doc.get("lotNumber", ""),
            manufacture_date=doc.get("manufactureDate"),
            expiry_date=doc.get("expiryDate"),
            condition=doc.get("condition", "good"),
            variance=to_decimal(doc.get("variance", "0"), "variance"),
            variance_percent=to_decimal(doc.get("variancePercent", "0"), "variancePercent"),
            is_over_delivery=bool(doc.get("isOverDelivery", False)),
            is_short_delivery=bool(doc.get("isShortDelivery", False)),
        )

    @classmethod
    def parse(cls, item: GRNLine | Mapping[str, Any], index: int) -> GRNLine:
        """Validate caller input; accepts a GRNLine or a camelCase dict."""
        prefix = f"items[{index}]"
        if isinstance(item, GRNLine):
            require_text(item.material_id, f"{prefix}.materialId")
            require_non_negative(item.delivered_quantity, f"{prefix}.deliveredQty")
            if item.ordered_quantity is not None:
                require_non_negative(item.ordered_quantity, f"{prefix}.orderedQty")
            return item

        def pick(*keys: str) -> Any:
            for key in keys:
                if item.get(key) not in (None, ""):
                    return item[key]
            return None

        material_id = pick("materialId", "material_id")
        if material_id is None:
            raise ValidationError(f"{prefix}.materialId", "material reference is required")
        delivered = pick("deliveredQty", "deliveredQuantity", "delivered_quantity")
        if delivered is None:
            raise ValidationError(f"{prefix}.deliveredQty", "delivered quantity is required")
        ordered = pick("orderedQty", "orderedQuantity", "ordered_quantity")
        price = pick("unitPrice", "unit_price")
        return cls(
            material_id=require_text(material_id, f"{prefix}.materialId"),
            material_name=str(pick("materialName", "material_name") or "").strip(),
            delivered_quantity=require_non_negative(delivered, f"{prefix}.deliveredQty"),
            ordered_quantity=(
                require_non_negative(ordered, f"{prefix}.orderedQty")
                if ordered is not None else None
            ),
            unit=str(pick("unit") or "").strip(),
            unit_price=(
                require_non_negative(price, f"{prefix}.unitPrice")
                if price is not None else None
            ),
            lot_number=str(pick("lotNumber", "lot_number") or "").strip(),
            manufacture_date=pick("manufactureDate", "manufacture_date"),
            expiry_date=pick("expiryDate", "expiry_date"),
            condition=str(pick("condition") or "good"),
        )


@dataclass(frozen=True)
class QCData:
    """QC decision captured when a GRN is approved."""
    grade: QCGrade
    defect_rate: Decimal | None = None
    packaging_condition: str = "good"
    notes: str = ""

    def to_document(self) -> dict[str, Any]:
        return {
            "grade": self.grade.value,
            "defectRate": decimal_str(self.defect_rate),
            "packagingCondition": self.packaging_condition,
            "notes": self.notes,
        }

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> QCData:
        return cls(
            grade=QCGrade.parse(doc["grade"]),
            defect_rate=optional_decimal(doc.get("defectRate"), "defectRate"),
            packaging_condition=doc.get("packagingCondition", "good"),
            notes=doc.get("notes", ""),
        )


@dataclass(frozen=True)
class GoodsReceiptNote:
    id: str
    grn_number: str
    reference: GRNReference
    header: GRNHeader
    lines: tuple[GRNLine, ...]
    category: MaterialCategory
    status: GRNStatus = GRNStatus.PENDING_QC
    variance_warning: bool = False
    qc_data: QCData | None = None
    invoice_id: str | None = None
    rejection_reason: str | None = None
    created_by: Actor | None = None
    created_at: int = 0
    updated_at: int = 0

    @property
    def total_delivered(self) -> Decimal:
        return sum((line.delivered_quantity for line in self.lines), ZERO)

    @property
    def total_value(self) -> Decimal:
        return round_money(sum((line.line_value for line in self.lines), ZERO))

    def to_document(self) -> dict[str, Any]:
        return {
            "grnNumber": self.grn_number,
            "poId": self.reference.purchase_order_id,
            "preparationId": self.reference.preparation_id,
            "header": self.header.to_document(),
            "category": self.category.value,
            "items": [line.to_document() for line in self.lines],
            "status": self.status.value,
            "varianceWarning": self.variance_warning,
            "qcData": self.qc_data.to_document() if self.qc_data else None,
            "invoiceId": self.invoice_id,
            "rejectionReason": self.rejection_reason,
            "createdBy": self.created_by.to_document() if self.created_by else None,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_document(cls, grn_id: str, doc: Mapping[str, Any]) -> GoodsReceiptNote:
        qc = doc.get("qcData")
        created_by = doc.get("createdBy")
        return cls(
            id=grn_id,
            grn_number=doc.get("grnNumber", ""),
            reference=GRNReference(
                purchase_order_id=doc.get("poId"),
                preparation_id=doc.get("preparationId"),
            ),
            header=GRNHeader.from_document(doc.get("header") or {}),
            lines=tuple(GRNLine.from_document(i) for i in doc.get("items", ())),
            category=MaterialCategory(doc.get("category", "packing")),
            status=GRNStatus(doc["status"]),
            variance_warning=bool(doc.get("varianceWarning", False)),
            qc_data=QCData.from_document(qc) if qc else None,
            invoice_id=doc.get("invoiceId"),
            rejection_reason=doc.get("rejectionReason"),
            created_by=Actor.from_document(created_by) if created_by else None,
            created_at=doc.get("createdAt", 0),
            updated_at=doc.get("updatedAt", 0),
        )


# -----------------------------------------------------------------------------
# QC records
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class QCSubmission:
    """
    Caller input for a QC record.

    ``quantity_accepted`` is optional; see ``resolve_accepted_quantity``.
    ``preparation_id`` links the record to a marked delivery and
    ``grn_id`` to a goods receipt.
    """
    material_id: str
    quantity_received: Decimal | str | int
    grade: QCGrade | str
    acceptance_status: AcceptanceStatus | str = AcceptanceStatus.ACCEPTED
    quantity_accepted: Decimal | str | int | None = None
    category: MaterialCategory = MaterialCategory.PACKING
    material_name: str = ""
    supplier_id: str | None = None
    supplier_name: str = ""
    defect_rate: Decimal | str | None = None
    packaging_condition: str = "good"
    batch_number: str = ""
    unit_price: Decimal | str | None = None
    expiry_date: str | None = None
    notes: str = ""
    preparation_id: str | None = None
    grn_id: str | None = None


@dataclass(frozen=True)
class QCRecord:
    id: str
    material_id: str
    material_name: str
    category: MaterialCategory
    supplier_id: str | None
    supplier_name: str
    grade: QCGrade
    defect_rate: Decimal | None
    packaging_condition: str
    acceptance_status: AcceptanceStatus
    quantity_received: Decimal
    quantity_accepted: Decimal
    batch_number: str
    unit_price: Decimal | None
    expiry_date: str | None
    notes: str
    preparation_id: str | None
    grn_id: str | None
    qc_officer: Actor
    created_at: int

    @classmethod
    def from_submission(cls, submission: QCSubmission, officer: Actor, now: int) -> QCRecord:
        """Validate a submission and resolve its accepted quantity."""
        acceptance = AcceptanceStatus.parse(submission.acceptance_status)
        received = require_non_negative(submission.quantity_received, "quantityReceived")
        unit_price = optional_decimal(submission.unit_price, "unitPrice")
        if unit_price is not None and unit_price < ZERO:
            raise ValidationError("unitPrice", f"must not be negative, got {unit_price}")
        return cls(
            id="",
            material_id=require_text(submission.material_id, "materialId"),
            material_name=submission.material_name,
            category=submission.category,
            supplier_id=submission.supplier_id,
            supplier_name=submission.supplier_name,
            grade=QCGrade.parse(submission.grade),
            defect_rate=parse_defect_rate(submission.defect_rate),
            packaging_condition=submission.packaging_condition,
            acceptance_status=acceptance,
            quantity_received=received,
            quantity_accepted=resolve_accepted_quantity(
                acceptance, received, submission.quantity_accepted,
            ),
            batch_number=submission.batch_number,
            unit_price=unit_price,
            expiry_date=submission.expiry_date,
            notes=submission.notes,
            preparation_id=submission.preparation_id,
            grn_id=submission.grn_id,
            qc_officer=officer,
            created_at=now,
        )

    @property
    def is_accepted(self) -> bool:
        return self.acceptance_status is AcceptanceStatus.ACCEPTED

    def to_document(self) -> dict[str, Any]:
        return {
            "materialId": self.material_id,
            "materialName": self.material_name,
            "category": self.category.value,
            "supplierId": self.supplier_id,
            "supplierName": self.supplier_name,
            "grade": self.grade.value,
            "defectRate": decimal_str(self.defect_rate),
            "packagingCondition": self.packaging_condition,
            "acceptanceStatus": self.acceptance_status.value,
            "quantityReceived": decimal_str(self.quantity_received),
            "quantityAccepted": decimal_str(self.quantity_accepted),
            "batchNumber": self.batch_number,
            "unitPrice": decimal_str(self.unit_price),
            "expiryDate": self.expiry_date,
            "notes": self.notes,
            "deliveryId": self.preparation_id,
            "grnId": self.grn_id,
            "qcOfficer": self.qc_officer.to_document(),
            "createdAt": self.created_at,
        }

    @classmethod
    def from_document(cls, record_id: str, doc: Mapping[str, Any]) -> QCRecord:
        return cls(
            id=record_id,
            material_id=doc["materialId"],
            material_name=doc.get("materialName", ""),
            category=MaterialCategory(doc.get("category", "packing")),
            supplier_id=doc.get("supplierId"),
            supplier_name=doc.get("supplierName", ""),
            grade=QCGrade.parse(doc["grade"]),
            defect_rate=optional_decimal(doc.get("defectRate"), "defectRate"),
            packaging_condition=doc.get("packagingCondition", "good"),
            acceptance_status=AcceptanceStatus(doc["acceptanceStatus"]),
            quantity_received=to_decimal(doc["quantityReceived"], "quantityReceived"),
            quantity_accepted=to_decimal(doc["quantityAccepted"], "quantityAccepted"),
            batch_number=doc.get("batchNumber", ""),
            unit_price=optional_decimal(doc.get("unitPrice"), "unitPrice"),
            expiry_date=doc.get("expiryDate"),
            notes=doc.get("notes", ""),
            preparation_id=doc.get("deliveryId"),
            grn_id=doc.get("grnId"),
            qc_officer=Actor.from_document(doc["qcOfficer"]),
            created_at=doc.get("createdAt", 0),
        )
