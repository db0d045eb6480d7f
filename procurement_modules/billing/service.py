"""
Billing Service (``procurement_modules.billing.service``).

Responsibility
--------------
Generates one invoice per approved GRN, runs the three-way match of
invoice against purchase order and GRN, and posts payments that roll up
into the invoice's paid/remaining totals and payment status.

Architecture position
---------------------
**Modules layer.**  Called by ``ReceivingService`` inside the GRN approval
unit.  Delegates the comparison itself to the pure
``procurement_engines.matching.ThreeWayMatcher``.

Invariants enforced
-------------------
* One invoice per GRN.  The GRN id is the idempotency key: an index
  document ``invoicesByGrn/{grnId}`` is written in the same unit as the
  invoice, and a second generation raises ``DuplicateInvoiceError``.
* ``remainingAmount == max(0, total - totalPaid)`` after every payment;
  ``totalPaid`` never decreases.
* A payment and its invoice roll-up commit together or not at all.
* Payment status follows ``PAYMENT_WORKFLOW``; a paid invoice takes no
  further payments.

Failure modes
-------------
* ``InvalidTransitionError`` -- GRN not ``qc_passed``; invoice already paid.
* ``DuplicateInvoiceError`` -- invoice already exists for the GRN.
* ``ValidationError`` -- non-positive amount, amount above remaining,
  unknown payment method, GRN line without a unit price.
* ``NotFoundError`` -- unknown invoice, purchase order, or GRN.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from procurement_engines.matching import (
    InvoiceLineFacts,
    MatchTolerance,
    OrderLineFacts,
    ReceiptLineFacts,
    ThreeWayMatcher,
    ThreeWayMatchResult,
)
from procurement_kernel.domain.clock import Clock
from procurement_kernel.domain.identity import Actor, Role
from procurement_kernel.domain.values import (
    decimal_str,
    iso_date,
    require_positive,
    round_money,
)
from procurement_kernel.exceptions import (
    DuplicateInvoiceError,
    InvalidTransitionError,
    ValidationError,
)
from procurement_kernel.logging_config import LogContext, get_logger
from procurement_kernel.notifications import NotificationFanout, NotificationKind
from procurement_kernel.services.base import BaseService
from procurement_kernel.services.sequence_service import (
    INVOICE_PREFIX,
    PAYMENT_PREFIX,
    SequenceService,
)
from procurement_kernel.store.base import EntityStore
from procurement_kernel.utils.idempotency import generate_idempotency_key
from procurement_modules import collections
from procurement_modules.billing.config import BillingConfig
from procurement_modules.billing.models import (
    Invoice,
    InvoiceLine,
    InvoiceStatus,
    Payment,
    PaymentMethod,
    PaymentStatus,
    compute_totals,
    payment_status_for,
)
from procurement_modules.billing.workflows import INVOICE_WORKFLOW, PAYMENT_WORKFLOW
from procurement_modules.preparation.models import PurchaseOrder
from procurement_modules.receiving.models import GoodsReceiptNote, GRNStatus

logger = get_logger("modules.billing.service")


class BillingService(BaseService):
    """
    Invoices, three-way matching, and payments.

    Contract:
        Amounts are Decimals rounded to two places (HALF_UP).
    Guarantees:
        - ``generate_invoice_from_grn`` is safe to retry: it either creates
          the single invoice or raises ``DuplicateInvoiceError`` naming it.
        - ``three_way_match`` never blocks payment; it only flags.
    Non-goals:
        - Payment reversal.  ``totalPaid`` is monotonic; corrections are
          handled outside this service.
    """

    def __init__(
        self,
        store: EntityStore,
        clock: Clock | None = None,
        notifications: NotificationFanout | None = None,
        config: BillingConfig | None = None,
        sequences: SequenceService | None = None,
        matcher: ThreeWayMatcher | None = None,
    ):
        super().__init__(store, clock, notifications)
        self._config = config or BillingConfig()
        self._sequences = sequences or SequenceService(store, self._clock)
        self._matcher = matcher or ThreeWayMatcher()

    # ------------------------------------------------------------------
    # Invoices
    # ------------------------------------------------------------------

    def generate_invoice_from_grn(
        self,
        grn: GoodsReceiptNote,
        actor: Actor,
        notify: bool = True,
    ) -> Invoice:
        """
        Create the invoice for an approved GRN.

        Args:
            grn: A ``qc_passed`` goods receipt note.
            actor: Who triggers generation (the GRN approver, usually).
            notify: Send ``invoice_generated`` after commit.  The receiving
                service passes False when it runs this inside its own unit
                and notifies after that unit commits.

        Raises:
            InvalidTransitionError: GRN is not ``qc_passed``.
            DuplicateInvoiceError: the GRN already has an invoice.
        """
        if grn.status is not GRNStatus.QC_PASSED:
            raise InvalidTransitionError(
                "grn", grn.id, grn.status.value, "generate_invoice", ("qc_passed",),
            )

        key = generate_idempotency_key("billing", "invoice.generate", grn.id)
        with LogContext.bind(actor_id=actor.id, entity_id=grn.id):
            with self._store.atomic():
                index_path = f"{collections.INVOICES_BY_GRN}/{grn.id}"
                existing = self._store.read(index_path)
                if existing is not None:
                    logger.warning("invoice_duplicate_rejected", extra={
                        "grn_id": grn.id,
                        "invoice_id": existing["invoiceId"],
                        "idempotency_key": key,
                    })
                    raise DuplicateInvoiceError(grn.id, existing["invoiceId"])

                lines = []
                for line in grn.lines:
                    if line.unit_price is None:
                        raise ValidationError(
                            "unitPrice",
                            f"GRN {grn.grn_number} line {line.material_id} has no unit price",
                        )
                    lines.append(InvoiceLine(
                        material_id=line.material_id,
                        material_name=line.material_name,
                        quantity=line.delivered_quantity,
                        unit=line.unit,
                        unit_price=line.unit_price,
                    ))
                totals = compute_totals(lines, self._config.tax_rate)

                now = self._now()
                invoice = Invoice(
                    id="",
                    invoice_number=self._sequences.next_number(INVOICE_PREFIX),
                    grn_id=grn.id,
                    grn_number=grn.grn_number,
                    purchase_order_id=grn.reference.purchase_order_id,
                    preparation_id=grn.reference.preparation_id,
                    supplier_id=grn.header.supplier_id,
                    supplier_name=grn.header.supplier_name,
                    lines=tuple(lines),
                    subtotal=totals.subtotal,
                    tax_rate=self._config.tax_rate,
                    tax=totals.tax,
                    total=totals.total,
                    payment_status=payment_status_for(totals.total, totals.total),
                    idempotency_key=key,
                    created_at=now,
                    updated_at=now,
                )
                document = invoice.to_document()
                document["createdBy"] = actor.to_document()
                invoice_id = self._store.append(collections.INVOICES, document)
                self._store.write(index_path, {
                    "invoiceId": invoice_id,
                    "invoiceNumber": invoice.invoice_number,
                    "idempotencyKey": key,
                    "createdAt": now,
                })

            logger.info("invoice_generated", extra={
                "invoice_id": invoice_id,
                "invoice_number": invoice.invoice_number,
                "grn_id": grn.id,
                "subtotal": str(invoice.subtotal),
                "tax": str(invoice.tax),
                "total": str(invoice.total),
            })

        generated = Invoice.from_document(invoice_id, document)
        if notify:
            self.notify_generated(generated)
        return generated

    def notify_generated(self, invoice: Invoice) -> None:
        self._notifications.send(
            [Role.ACCOUNTANT], NotificationKind.INVOICE_GENERATED, invoice.id,
        )

    def three_way_match(
        self,
        invoice_id: str,
        actor: Actor,
        po_id: str | None = None,
        grn_id: str | None = None,
    ) -> Invoice:
        """
        Compare invoice lines with PO prices and GRN quantities.

        ``po_id`` and ``grn_id`` default to the invoice's own references.
        Stores ``matchResult`` and sets the status to ``verified`` or
        ``variance_review``.  Re-running replaces the previous result.
        """
        with LogContext.bind(actor_id=actor.id, entity_id=invoice_id):
            with self._store.atomic():
                invoice = self.get_invoice(invoice_id)
                po_id = po_id or invoice.purchase_order_id
                grn_id = grn_id or invoice.grn_id
                if not po_id:
                    raise ValidationError(
                        "poId", f"invoice {invoice.invoice_number} has no purchase order",
                    )
                po = PurchaseOrder.from_document(
                    po_id, self._load(collections.PURCHASE_ORDERS, po_id, "purchase_order"),
                )
                grn = GoodsReceiptNote.from_document(
                    grn_id, self._load(collections.GOODS_RECEIPTS, grn_id, "grn"),
                )

                result = self._matcher.match(
                    invoice_lines=[
                        InvoiceLineFacts(l.material_id, l.quantity, l.unit_price)
                        for l in invoice.lines
                    ],
                    order_lines=[
                        OrderLineFacts(l.material_id, l.quantity, l.unit_price)
                        for l in po.items
                    ],
                    receipt_lines=[
                        ReceiptLineFacts(l.material_id, l.delivered_quantity)
                        for l in grn.lines
                    ],
                    tolerance=MatchTolerance(
                        quantity_tolerance=self._config.quantity_tolerance,
                        price_tolerance=self._config.price_tolerance,
                    ),
                )
                action = "flag_variance" if result.has_variances else "verify"
                transition = INVOICE_WORKFLOW.resolve(invoice.status.value, action, invoice_id)

                now = self._now()
                match_document = self._match_document(result, po_id, grn_id, actor, now)
                self._store.patch(
                    f"{collections.INVOICES}/{invoice_id}",
                    self._audit_fields(
                        actor,
                        matchResult=match_document,
                        status=transition.to_state,
                    ),
                )

            logger.info("invoice_matched", extra={
                "invoice_id": invoice_id,
                "po_id": po_id,
                "grn_id": grn_id,
                "verdict": result.verdict.value,
                "variance_count": len(result.variances),
            })

        if result.has_variances:
            self._notifications.send(
                [Role(r) for r in transition.notifies],
                NotificationKind.INVOICE_VARIANCE,
                invoice_id,
            )
        return self.get_invoice(invoice_id)

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def record_payment(
        self,
        invoice_id: str,
        amount: Decimal | str | int,
        method: PaymentMethod | str,
        actor: Actor,
        payment_date: date | str | None = None,
        reference: str = "",
        notes: str = "",
    ) -> Payment:
        """Post a payment and roll it up into the invoice in one unit."""
        amount = round_money(require_positive(amount, "amount"))
        if amount <= 0:
            raise ValidationError("amount", "must be at least 0.01")
        method = PaymentMethod.parse(method)
        paid_on = (
            iso_date(payment_date, "paymentDate") if payment_date
            else self._clock.today_iso()
        )

        with LogContext.bind(actor_id=actor.id, entity_id=invoice_id):
            with self._store.atomic():
                invoice = self.get_invoice(invoice_id)
                remaining = invoice.remaining_amount
                action = "pay_in_full" if amount >= remaining else "pay_partially"
                try:
                    PAYMENT_WORKFLOW.resolve(invoice.payment_status.value, action, invoice_id)
                except InvalidTransitionError:
                    logger.warning("payment_rejected", extra={
                        "invoice_id": invoice_id,
                        "payment_status": invoice.payment_status.value,
                        "amount": str(amount),
                    })
                    raise
                if self._config.enforce_remaining_ceiling and amount > remaining:
                    raise ValidationError(
                        "amount",
                        f"{amount} exceeds remaining {remaining} on "
                        f"invoice {invoice.invoice_number}",
                    )

                now = self._now()
                payment = Payment(
                    id="",
                    payment_number=self._sequences.next_number(PAYMENT_PREFIX),
                    invoice_id=invoice_id,
                    invoice_number=invoice.invoice_number,
                    supplier_id=invoice.supplier_id,
                    amount=amount,
                    method=method,
                    payment_date=paid_on,
                    reference=reference,
                    notes=notes,
                    recorded_by=actor,
                    created_at=now,
                )
                payment_id = self._store.append(collections.PAYMENTS, payment.to_document())

                updated = invoice.apply_payment(amount, paid_on, now)
                self._store.patch(
                    f"{collections.INVOICES}/{invoice_id}",
                    self._audit_fields(
                        actor,
                        totalPaid=decimal_str(updated.total_paid),
                        remainingAmount=decimal_str(updated.remaining_amount),
                        paymentStatus=updated.payment_status.value,
                        lastPaymentDate=updated.last_payment_date,
                    ),
                )

            logger.info("payment_recorded", extra={
                "payment_id": payment_id,
                "payment_number": payment.payment_number,
                "invoice_id": invoice_id,
                "amount": str(amount),
                "total_paid": str(updated.total_paid),
                "remaining_amount": str(updated.remaining_amount),
                "payment_status": updated.payment_status.value,
            })

        self._notifications.send(
            [Role.ACCOUNTANT], NotificationKind.PAYMENT_RECORDED, payment_id,
        )
        return Payment.from_document(payment_id, payment.to_document())

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_invoice(self, invoice_id: str) -> Invoice:
        return Invoice.from_document(
            invoice_id, self._load(collections.INVOICES, invoice_id, "invoice"),
        )

    def invoice_for_grn(self, grn_id: str) -> Invoice | None:
        index = self._store.read(f"{collections.INVOICES_BY_GRN}/{grn_id}")
        if index is None:
            return None
        return self.get_invoice(index["invoiceId"])

    def list_invoices(
        self,
        status: InvoiceStatus | None = None,
        payment_status: PaymentStatus | None = None,
        supplier_id: str | None = None,
    ) -> list[Invoice]:
        """Invoices matching every given filter, newest first."""
        invoices = [
            Invoice.from_document(invoice_id, doc)
            for invoice_id, doc in self._store.list(collections.INVOICES).items()
        ]
        if status is not None:
            invoices = [i for i in invoices if i.status is status]
        if payment_status is not None:
            invoices = [i for i in invoices if i.payment_status is payment_status]
        if supplier_id is not None:
            invoices = [i for i in invoices if i.supplier_id == supplier_id]
        invoices.reverse()
        return sorted(invoices, key=lambda i: i.created_at, reverse=True)

    def get_payment(self, payment_id: str) -> Payment:
        return Payment.from_document(
            payment_id, self._load(collections.PAYMENTS, payment_id, "payment"),
        )

    def list_payments(
        self,
        invoice_id: str | None = None,
        supplier_id: str | None = None,
    ) -> list[Payment]:
        payments = [
            Payment.from_document(payment_id, doc)
            for payment_id, doc in self._store.list(collections.PAYMENTS).items()
        ]
        if invoice_id is not None:
            payments = [p for p in payments if p.invoice_id == invoice_id]
        if supplier_id is not None:
            payments = [p for p in payments if p.supplier_id == supplier_id]
        payments.reverse()
        return sorted(payments, key=lambda p: p.created_at, reverse=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _match_document(
        result: ThreeWayMatchResult,
        po_id: str,
        grn_id: str,
        actor: Actor,
        now: int,
    ) -> dict:
        return {
            "hasVariances": result.has_variances,
            "verdict": result.verdict.value,
            "linesChecked": result.lines_checked,
            "variances": [
                {
                    "materialId": v.material_id,
                    "kind": v.kind.value,
                    "expected": decimal_str(v.expected),
                    "actual": decimal_str(v.actual),
                    "difference": decimal_str(v.difference),
                }
                for v in result.variances
            ],
            "poId": po_id,
            "grnId": grn_id,
            "matchedAt": now,
            "matchedBy": actor.id,
        }
