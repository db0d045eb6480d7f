"""
Billing Domain Models.

Invoices generated from approved GRNs, the immutable payments posted
against them, and the pure totals/status arithmetic both share.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from decimal import Decimal
from enum import Enum
from typing import Any

from procurement_kernel.domain.identity import Actor
from procurement_kernel.domain.values import (
    ZERO,
    decimal_str,
    optional_decimal,
    round_money,
    to_decimal,
)
from procurement_kernel.exceptions import ValidationError
from procurement_kernel.logging_config import get_logger

logger = get_logger("modules.billing.models")


class InvoiceStatus(Enum):
    """Match status of an invoice."""
    PENDING = "pending"
    VERIFIED = "verified"
    VARIANCE_REVIEW = "variance_review"


class PaymentStatus(Enum):
    PENDING = "pending"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"


class PaymentMethod(Enum):
    CARD = "card"
    CHEQUE = "cheque"
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"

    @classmethod
    def parse(cls, value: Any) -> PaymentMethod:
        if isinstance(value, PaymentMethod):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValidationError(
                "method", f"'{value}' must be one of card, cheque, cash, bank_transfer",
            ) from None


def payment_status_for(total: Decimal, remaining: Decimal) -> PaymentStatus:
    """Payment status as a function of the remaining amount."""
    if remaining <= ZERO:
        return PaymentStatus.PAID
    if remaining < total:
        return PaymentStatus.PARTIALLY_PAID
    return PaymentStatus.PENDING


@dataclass(frozen=True)
class InvoiceLine:
    material_id: str
    material_name: str
    quantity: Decimal
    unit: str
    unit_price: Decimal

    @property
    def amount(self) -> Decimal:
        return round_money(self.quantity * self.unit_price)

    def to_document(self) -> dict[str, Any]:
        return {
            "materialId": self.material_id,
            "materialName": self.material_name,
            "quantity": decimal_str(self.quantity),
            "unit": self.unit,
            "unitPrice": decimal_str(self.unit_price),
            "amount": decimal_str(self.amount),
        }

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> InvoiceLine:
        return cls(
            material_id=doc["materialId"],
            material_name=doc.get("materialName", ""),
            quantity=to_decimal(doc["quantity"], "quantity"),
            unit=doc.get("unit", ""),
            unit_price=to_decimal(doc["unitPrice"], "unitPrice"),
        )


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: Decimal
    tax: Decimal
    total: Decimal


def compute_totals(lines: Iterable[InvoiceLine], tax_rate: Decimal) -> InvoiceTotals:
    """subtotal = sum of line amounts; tax = round(subtotal * rate)."""
    subtotal = round_money(sum((line.amount for line in lines), ZERO))
    tax = round_money(subtotal * tax_rate)
    return InvoiceTotals(subtotal=subtotal, tax=tax, total=subtotal + tax)


@dataclass(frozen=True)
class Invoice:
    """
    Supplier invoice for one GRN.

    ``remaining_amount`` is always ``total - total_paid`` floored at zero and
    ``payment_status`` is always ``payment_status_for(total, remaining)``;
    ``apply_payment`` is the only way either changes.
    """
    id: str
    invoice_number: str
    grn_id: str
    grn_number: str
    purchase_order_id: str | None
    preparation_id: str | None
    supplier_id: str | None
    supplier_name: str
    lines: tuple[InvoiceLine, ...]
    subtotal: Decimal
    tax_rate: Decimal
    tax: Decimal
    total: Decimal
    total_paid: Decimal = ZERO
    remaining_amount: Decimal | None = None
    payment_status: PaymentStatus = PaymentStatus.PENDING
    status: InvoiceStatus = InvoiceStatus.PENDING
    match_result: dict[str, Any] | None = None
    last_payment_date: str | None = None
    idempotency_key: str = ""
    created_at: int = 0
    updated_at: int = 0

    def __post_init__(self) -> None:
        if self.remaining_amount is None:
            object.__setattr__(
                self, "remaining_amount", max(self.total - self.total_paid, ZERO),
            )

    def apply_payment(self, amount: Decimal, payment_date: str, now: int) -> Invoice:
        total_paid = self.total_paid + amount
        remaining = max(self.total - total_paid, ZERO)
        return replace(
            self,
            total_paid=total_paid,
            remaining_amount=remaining,
            payment_status=payment_status_for(self.total, remaining),
            last_payment_date=payment_date,
            updated_at=now,
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "invoiceNumber": self.invoice_number,
            "grnId": self.grn_id,
            "grnNumber": self.grn_number,
            "poId": self.purchase_order_id,
            "preparationId": self.preparation_id,
            "supplierId": self.supplier_id,
            "supplierName": self.supplier_name,
            "items": [line.to_document() for line in self.lines],
            "subtotal": decimal_str(self.subtotal),
            "taxRate": decimal_str(self.tax_rate),
            "tax": decimal_str(self.tax),
            "total": decimal_str(self.total),
            "totalPaid": decimal_str(self.total_paid),
            "remainingAmount": decimal_str(self.remaining_amount),
            "paymentStatus": self.payment_status.value,
            "status": self.status.value,
            "matchResult": self.match_result,
            "lastPaymentDate": self.last_payment_date,
            "idempotencyKey": self.idempotency_key,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_document(cls, invoice_id: str, doc: Mapping[str, Any]) -> Invoice:
        return cls(
            id=invoice_id,
            invoice_number=doc.get("invoiceNumber", ""),
            grn_id=doc["grnId"],
            grn_number=doc.get("grnNumber", ""),
            purchase_order_id=doc.get("poId"),
            preparation_id=doc.get("preparationId"),
            supplier_id=doc.get("supplierId"),
            supplier_name=doc.get("supplierName", ""),
            lines=tuple(InvoiceLine.from_document(i) for i in doc.get("items", ())),
            subtotal=to_decimal(doc["subtotal"], "subtotal"),
            tax_rate=to_decimal(doc["taxRate"], "taxRate"),
            tax=to_decimal(doc["tax"], "tax"),
            total=to_decimal(doc["total"], "total"),
            total_paid=to_decimal(doc.get("totalPaid", "0"), "totalPaid"),
            remaining_amount=optional_decimal(doc.get("remainingAmount"), "remainingAmount"),
            payment_status=PaymentStatus(doc.get("paymentStatus", "pending")),
            status=InvoiceStatus(doc.get("status", "pending")),
            match_result=doc.get("matchResult"),
            last_payment_date=doc.get("lastPaymentDate"),
            idempotency_key=doc.get("idempotencyKey", ""),
            created_at=doc.get("createdAt", 0),
            updated_at=doc.get("updatedAt", 0),
        )


@dataclass(frozen=True)
class Payment:
    """A posted payment.  Never modified after it is appended."""
    id: str
    payment_number: str
    invoice_id: str
    invoice_number: str
    supplier_id: str | None
    amount: Decimal
    method: PaymentMethod
    payment_date: str
    reference: str
    notes: str
    recorded_by: Actor
    status: str = "posted"
    created_at: int = 0

    def to_document(self) -> dict[str, Any]:
        return {
            "paymentNumber": self.payment_number,
            "invoiceId": self.invoice_id,
            "invoiceNumber": self.invoice_number,
            "supplierId": self.supplier_id,
            "amount": decimal_str(self.amount),
            "method": self.method.value,
            "paymentDate": self.payment_date,
            "reference": self.reference,
            "notes": self.notes,
            "status": self.status,
            "createdBy": self.recorded_by.to_document(),
            "createdAt": self.created_at,
        }

    @classmethod
    def from_document(cls, payment_id: str, doc: Mapping[str, Any]) -> Payment:
        return cls(
            id=payment_id,
            payment_number=doc.get("paymentNumber", ""),
            invoice_id=doc["invoiceId"],
            invoice_number=doc.get("invoiceNumber", ""),
            supplier_id=doc.get("supplierId"),
            amount=to_decimal(doc["amount"], "amount"),
            method=PaymentMethod(doc["method"]),
            payment_date=doc.get("paymentDate", ""),
            reference=doc.get("reference", ""),
            notes=doc.get("notes", ""),
            recorded_by=Actor.from_document(doc["createdBy"]),
            status=doc.get("status", "posted"),
            created_at=doc.get("createdAt", 0),
        )
