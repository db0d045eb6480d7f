"""
Receiving & QC Service (``procurement_modules.receiving.service``).

Responsibility
--------------
Formalizes deliveries as goods receipt notes, computes ordered-versus-
delivered variances, gates stock posting on QC, and recomputes purchase
order receipt status.  Also records ad-hoc QC for deliveries received
outside a GRN.

Architecture position
---------------------
**Modules layer.**  Consumes ``DeliveryHandle`` from the preparation
module; posts stock only through ``StockLedger``; delegates invoice
generation to ``BillingService``.  Variance arithmetic comes from the pure
``procurement_engines.variance`` calculator.

Invariants enforced
-------------------
* A GRN moves only along ``GRN_WORKFLOW``: ``pending_qc`` to
  ``qc_passed`` or ``qc_failed``, both terminal.
* GRN approval is one unit: inbound movements for every line with a
  delivered quantity, the ``qc_passed`` status, and the invoice commit
  together or not at all.
* Stock rises only through an approved GRN or an accepted ad-hoc QC
  record; QC against a GRN never posts stock.
* PO receipt status is recomputed from the sum of its GRNs that did not
  fail QC, never incremented.
* Variance warnings are logged and flagged, never raised.

Failure modes
-------------
* ``ValidationError`` -- missing reference, empty items, missing material,
  negative quantity, accepted quantity out of range, empty reason.
* ``InvalidTransitionError`` -- GRN not ``pending_qc``.
* ``NotFoundError`` -- unknown GRN, purchase order, or preparation.
* Errors raised while posting stock or generating the invoice roll the
  approval back and propagate.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import replace
from typing import Any

from procurement_engines.variance import DeliveryLineInput, DeliveryVarianceCalculator
from procurement_kernel.domain.clock import Clock
from procurement_kernel.domain.identity import Actor, Role
from procurement_kernel.domain.values import ZERO, decimal_str, require_text
from procurement_kernel.domain.workflow import Transition
from procurement_kernel.exceptions import InvalidTransitionError, ValidationError
from procurement_kernel.logging_config import LogContext, get_logger
from procurement_kernel.notifications import NotificationFanout, NotificationKind
from procurement_kernel.services.base import BaseService
from procurement_kernel.services.sequence_service import GRN_PREFIX, SequenceService
from procurement_kernel.store.base import EntityStore
from procurement_modules import collections
from procurement_modules.billing.models import Invoice
from procurement_modules.billing.service import BillingService
from procurement_modules.preparation.models import (
    DeliveryHandle,
    PurchaseOrder,
    PurchaseOrderStatus,
)
from procurement_modules.preparation.service import PreparationService
from procurement_modules.receiving.config import ReceivingConfig
from procurement_modules.receiving.models import (
    AcceptanceStatus,
    GoodsReceiptNote,
    GRNHeader,
    GRNLine,
    GRNReference,
    GRNStatus,
    QCData,
    QCRecord,
    QCSubmission,
)
from procurement_modules.receiving.workflows import GRN_WORKFLOW
from procurement_modules.stock.models import MovementDirection, MovementRefs
from procurement_modules.stock.service import StockLedger

logger = get_logger("modules.receiving.service")


class ReceivingService(BaseService):
    """
    Goods receipt, QC, and PO receipt status.

    Contract:
        Every mutator runs its fetch-check-write in one unit of work and
        notifies after that unit commits.
    Guarantees:
        - ``approve_grn`` leaves either a ``qc_passed`` GRN with stock posted
          and exactly one invoice, or no change at all.
        - ``retry_invoice`` never posts stock.
    Non-goals:
        - Supplier returns for rejected deliveries.
    """

    def __init__(
        self,
        store: EntityStore,
        stock: StockLedger,
        billing: BillingService,
        preparations: PreparationService | None = None,
        clock: Clock | None = None,
        notifications: NotificationFanout | None = None,
        config: ReceivingConfig | None = None,
        sequences: SequenceService | None = None,
        calculator: DeliveryVarianceCalculator | None = None,
    ):
        super().__init__(store, clock, notifications)
        self._stock = stock
        self._billing = billing
        self._preparations = preparations
        self._config = config or ReceivingConfig()
        self._sequences = sequences or SequenceService(store, self._clock)
        self._calculator = calculator or DeliveryVarianceCalculator()

    # ------------------------------------------------------------------
    # GRN creation
    # ------------------------------------------------------------------

    def create_grn(
        self,
        reference: GRNReference,
        items: Sequence[GRNLine | Mapping[str, Any]],
        header: GRNHeader,
        actor: Actor,
    ) -> GoodsReceiptNote:
        """
        Record a delivery as a ``pending_qc`` GRN.

        Ordered quantity and unit price missing from a line are taken from
        the referenced purchase order.  Variances beyond the configured
        percentage set ``varianceWarning``; creation still succeeds.
        """
        with LogContext.bind(actor_id=actor.id, actor_role=actor.role.value):
            with self._store.atomic():
                grn = self._create_grn(reference, items, header, actor)
        self._notify_created(grn)
        return grn

    def create_grn_from_delivery(
        self,
        handle: DeliveryHandle,
        actor: Actor,
        header: GRNHeader | None = None,
        lot_number: str | None = None,
        manufacture_date: str | None = None,
        expiry_date: str | None = None,
    ) -> GoodsReceiptNote:
        """Open the single-line GRN for a delivery against one purchase order
        and hand the preparation to receiving."""
        if len(handle.splits) > 1:
            raise ValidationError(
                "handle",
                f"delivery spans {len(handle.splits)} purchase orders; "
                "open one GRN per order with create_grns_from_delivery",
            )
        [grn] = self.create_grns_from_delivery(
            handle, actor, header, lot_number, manufacture_date, expiry_date,
        )
        return grn

    def create_grns_from_delivery(
        self,
        handle: DeliveryHandle,
        actor: Actor,
        header: GRNHeader | None = None,
        lot_number: str | None = None,
        manufacture_date: str | None = None,
        expiry_date: str | None = None,
    ) -> list[GoodsReceiptNote]:
        """
        Open one single-line GRN per purchase order of a marked delivery.

        An allocated delivery yields one GRN per supplier, each carrying its
        order's reference, price, ordered quantity and share of the delivered
        quantity.  The GRNs and the hand-over of the preparation commit in
        one unit.
        """
        header = header or GRNHeader(
            supplier_id=handle.supplier_id,
            supplier_name=handle.supplier_name or "",
            delivery_date=handle.delivery_date,
            received_by=actor.display_name,
            packaging_condition=handle.packaging_condition,
            category=handle.category,
        )
        if header.category is None:
            header = replace(header, category=handle.category)

        receipts = [
            (
                GRNReference(
                    purchase_order_id=split.purchase_order_id,
                    preparation_id=handle.preparation_id,
                ),
                replace(
                    header,
                    supplier_id=split.supplier_id,
                    supplier_name=split.supplier_name or header.supplier_name,
                ) if len(handle.splits) > 1 else header,
                split.ordered_quantity,
                split.delivered_quantity,
                split.unit_price,
            )
            for split in handle.splits
        ] or [
            (
                GRNReference(preparation_id=handle.preparation_id),
                header,
                handle.ordered_quantity,
                handle.delivered_quantity,
                handle.unit_price,
            ),
        ]

        with LogContext.bind(actor_id=actor.id, entity_id=handle.preparation_id):
            with self._store.atomic():
                grns = [
                    self._create_grn(
                        reference,
                        [
                            GRNLine(
                                material_id=handle.material_id,
                                material_name=handle.material_name,
                                ordered_quantity=ordered,
                                delivered_quantity=delivered,
                                unit=handle.unit,
                                unit_price=unit_price,
                                lot_number=lot_number or handle.batch_number,
                                manufacture_date=manufacture_date,
                                expiry_date=expiry_date,
                                condition=handle.packaging_condition,
                            ),
                        ],
                        receipt_header,
                        actor,
                    )
                    for reference, receipt_header, ordered, delivered, unit_price in receipts
                ]
                if self._preparations is not None:
                    self._preparations.mark_handed_to_receiving(
                        handle.preparation_id, grns[0].id, actor,
                        grn_ids=[grn.id for grn in grns],
                    )
            if len(grns) > 1:
                logger.info("delivery_split_across_orders", extra={
                    "preparation_id": handle.preparation_id,
                    "grn_ids": [grn.id for grn in grns],
                    "purchase_order_ids": [s.purchase_order_id for s in handle.splits],
                })

        for grn in grns:
            self._notify_created(grn)
        return grns

    # ------------------------------------------------------------------
    # QC decisions
    # ------------------------------------------------------------------

    def approve_grn(
        self,
        grn_id: str,
        actor: Actor,
        qc_data: QCData | None = None,
    ) -> GoodsReceiptNote:
        """
        Pass QC: post stock, mark ``qc_passed``, and generate the invoice.

        Stock movements are written before the status change and the
        invoice after it, all inside one unit.
        """
        with LogContext.bind(actor_id=actor.id, actor_role=actor.role.value, entity_id=grn_id):
            with self._store.atomic():
                grn = self.get_grn(grn_id)
                transition = self._resolve(grn, "approve")

                logger.info("grn_approval_started", extra={
                    "grn_id": grn_id,
                    "grn_number": grn.grn_number,
                    "line_count": len(grn.lines),
                })
                movement_ids = []
                grade = qc_data.grade.value if qc_data else None
                for line in grn.lines:
                    if line.delivered_quantity <= ZERO:
                        continue
                    movement = self._stock.record_movement(
                        grn.category,
                        line.material_id,
                        MovementDirection.IN,
                        line.delivered_quantity,
                        f"GRN {grn.grn_number} approved",
                        actor,
                        MovementRefs(
                            batch_number=line.lot_number or None,
                            supplier_id=grn.header.supplier_id,
                            reference_type="grn",
                            reference_id=grn_id,
                            unit_price=line.unit_price,
                            quality_grade=grade,
                        ),
                    )
                    movement_ids.append(movement.id)

                if qc_data is not None:
                    now = self._now()
                    for line in grn.lines:
                        self._append_qc_record(
                            self._grn_qc_record(grn, line, qc_data, actor, now),
                        )

                passed = replace(
                    grn,
                    status=GRNStatus(transition.to_state),
                    qc_data=qc_data,
                    updated_at=self._now(),
                )
                self._save(passed, actor)

                invoice = self._billing.generate_invoice_from_grn(passed, actor, notify=False)
                self._store.patch(
                    f"{collections.GOODS_RECEIPTS}/{grn_id}", {"invoiceId": invoice.id},
                )
                approved = replace(passed, invoice_id=invoice.id)

            logger.info("grn_approved", extra={
                "grn_id": grn_id,
                "movement_count": len(movement_ids),
                "invoice_id": invoice.id,
                "invoice_total": str(invoice.total),
            })

        self._notify_transition(approved, transition, NotificationKind.GRN_APPROVED)
        self._billing.notify_generated(invoice)
        return approved

    def retry_invoice(self, grn_id: str, actor: Actor) -> Invoice:
        """Generate the missing invoice of a ``qc_passed`` GRN (no stock effect).

        Returns the existing invoice when there already is one.
        """
        with self._store.atomic():
            grn = self.get_grn(grn_id)
            if grn.status is not GRNStatus.QC_PASSED:
                raise InvalidTransitionError(
                    "grn", grn_id, grn.status.value, "retry_invoice", ("qc_passed",),
                )
            existing = self._billing.invoice_for_grn(grn_id)
            if existing is not None:
                logger.info("invoice_retry_skipped", extra={
                    "grn_id": grn_id,
                    "invoice_id": existing.id,
                })
                return existing
            invoice = self._billing.generate_invoice_from_grn(grn, actor, notify=False)
            self._store.patch(
                f"{collections.GOODS_RECEIPTS}/{grn_id}", {"invoiceId": invoice.id},
            )
        logger.info("invoice_retried", extra={"grn_id": grn_id, "invoice_id": invoice.id})
        self._billing.notify_generated(invoice)
        return invoice

    def reject_grn(self, grn_id: str, reason: str, actor: Actor) -> GoodsReceiptNote:
        """Fail QC.  Terminal; no stock or invoice effects.  The PO receipt
        status is re-derived without this delivery."""
        reason = require_text(reason, "reason")
        with LogContext.bind(actor_id=actor.id, entity_id=grn_id):
            with self._store.atomic():
                grn = self.get_grn(grn_id)
                transition = self._resolve(grn, "reject")
                rejected = replace(
                    grn,
                    status=GRNStatus(transition.to_state),
                    rejection_reason=reason,
                    updated_at=self._now(),
                )
                self._save(rejected, actor)
                if grn.reference.purchase_order_id:
                    self.recompute_po_receipt_status(grn.reference.purchase_order_id)
            logger.info("grn_rejected", extra={"grn_id": grn_id, "reason": reason})

        self._notify_transition(rejected, transition, NotificationKind.GRN_REJECTED)
        return rejected

    def record_qc(self, submission: QCSubmission, actor: Actor) -> QCRecord:
        """
        QC record for a delivery.

        Only an ad-hoc delivery (no GRN of its own) posts stock: an accepted
        quantity above zero becomes an inbound movement.  A record for a GRN,
        or for a preparation already handed to receiving, is linked to that
        GRN and leaves stock to ``approve_grn``.  A linked delivery
        (preparation) is patched to ``qc_passed`` or ``qc_failed``.
        """
        record = QCRecord.from_submission(submission, actor, self._now())

        with LogContext.bind(actor_id=actor.id, entity_id=record.material_id):
            with self._store.atomic():
                linked_grn_id = self._receipt_for(record)
                if linked_grn_id is not None:
                    record = replace(record, grn_id=linked_grn_id)
                record = self._append_qc_record(record)

                posts_stock = (
                    linked_grn_id is None
                    and record.is_accepted
                    and record.quantity_accepted > ZERO
                )
                if posts_stock:
                    self._stock.record_movement(
                        record.category,
                        record.material_id,
                        MovementDirection.IN,
                        record.quantity_accepted,
                        "QC accepted delivery",
                        actor,
                        MovementRefs(
                            batch_number=record.batch_number or None,
                            supplier_id=record.supplier_id,
                            reference_type="qc_record",
                            reference_id=record.id,
                            unit_price=record.unit_price,
                            quality_grade=record.grade.value,
                        ),
                    )

                if record.preparation_id:
                    self._store.patch(
                        f"{collections.PURCHASE_PREPARATIONS}/{record.preparation_id}",
                        {
                            "deliveryRecord.qcStatus": (
                                GRNStatus.QC_PASSED.value if record.is_accepted
                                else GRNStatus.QC_FAILED.value
                            ),
                            "deliveryRecord.qcRecordId": record.id,
                            "updatedAt": self._now(),
                        },
                    )

            logger.info("qc_recorded", extra={
                "qc_record_id": record.id,
                "acceptance_status": record.acceptance_status.value,
                "quantity_received": str(record.quantity_received),
                "quantity_accepted": str(record.quantity_accepted),
                "grade": record.grade.value,
                "grn_id": record.grn_id,
                "stock_posted": posts_stock,
            })

        self._notifications.send(
            [Role.WAREHOUSE_STAFF, Role.PACKING_MATERIALS_STORE_MANAGER],
            NotificationKind.QC_RECORDED,
            record.id,
        )
        return record

    # ------------------------------------------------------------------
    # Purchase order receipt status
    # ------------------------------------------------------------------

    def recompute_po_receipt_status(self, po_id: str) -> PurchaseOrder:
        """Derive the PO status from the delivered totals of its GRNs.

        ``qc_failed`` GRNs count as not received.
        """
        with self._store.atomic():
            po = PurchaseOrder.from_document(
                po_id, self._load(collections.PURCHASE_ORDERS, po_id, "purchase_order"),
            )
            received = sum(
                (
                    grn.total_delivered for grn in self.list_grns(po_id=po_id)
                    if grn.status is not GRNStatus.QC_FAILED
                ),
                ZERO,
            )
            if received <= ZERO:
                status = PurchaseOrderStatus.ISSUED
            elif received >= po.ordered_quantity:
                status = PurchaseOrderStatus.FULLY_RECEIVED
            else:
                status = PurchaseOrderStatus.PARTIALLY_RECEIVED

            if status is not po.status or received != po.total_received:
                self._store.patch(f"{collections.PURCHASE_ORDERS}/{po_id}", {
                    "status": status.value,
                    "totalReceived": decimal_str(received),
                    "updatedAt": self._now(),
                })
                logger.info("po_receipt_status_recomputed", extra={
                    "po_id": po_id,
                    "previous_status": po.status.value,
                    "status": status.value,
                    "total_received": str(received),
                    "ordered": str(po.ordered_quantity),
                })
        return replace(po, status=status, total_received=received)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_grn(self, grn_id: str) -> GoodsReceiptNote:
        return GoodsReceiptNote.from_document(
            grn_id, self._load(collections.GOODS_RECEIPTS, grn_id, "grn"),
        )

    def list_grns(
        self,
        status: GRNStatus | None = None,
        po_id: str | None = None,
    ) -> list[GoodsReceiptNote]:
        """GRNs matching every given filter, newest first."""
        grns = [
            GoodsReceiptNote.from_document(grn_id, doc)
            for grn_id, doc in self._store.list(collections.GOODS_RECEIPTS).items()
        ]
        if status is not None:
            grns = [g for g in grns if g.status is status]
        if po_id is not None:
            grns = [g for g in grns if g.reference.purchase_order_id == po_id]
        grns.reverse()
        return sorted(grns, key=lambda g: g.created_at, reverse=True)

    def list_qc_records(
        self,
        material_id: str | None = None,
        supplier_id: str | None = None,
        grn_id: str | None = None,
    ) -> list[QCRecord]:
        records = [
            QCRecord.from_document(record_id, doc)
            for record_id, doc in self._store.list(collections.QC_RECORDS).items()
        ]
        if material_id is not None:
            records = [r for r in records if r.material_id == material_id]
        if supplier_id is not None:
            records = [r for r in records if r.supplier_id == supplier_id]
        if grn_id is not None:
            records = [r for r in records if r.grn_id == grn_id]
        records.reverse()
        return sorted(records, key=lambda r: r.created_at, reverse=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _create_grn(
        self,
        reference: GRNReference,
        items: Sequence[GRNLine | Mapping[str, Any]],
        header: GRNHeader,
        actor: Actor,
    ) -> GoodsReceiptNote:
        if not items:
            raise ValidationError("items", "at least one item is required")
        lines = [GRNLine.parse(item, index) for index, item in enumerate(items)]

        po = None
        if reference.purchase_order_id:
            po = PurchaseOrder.from_document(
                reference.purchase_order_id,
                self._load(
                    collections.PURCHASE_ORDERS, reference.purchase_order_id,
                    "purchase_order",
                ),
            )
        if reference.preparation_id:
            self._load(
                collections.PURCHASE_PREPARATIONS, reference.preparation_id,
                "purchase_preparation",
            )
        lines = [self._fill_from_order(line, po, index) for index, line in enumerate(lines)]

        result = self._calculator.compute(
            lines=[
                DeliveryLineInput(
                    material_id=line.material_id,
                    ordered_quantity=line.ordered_quantity,
                    delivered_quantity=line.delivered_quantity,
                )
                for line in lines
            ],
            warning_percent=self._config.variance_warning_percent,
        )
        lines = [
            replace(
                line,
                variance=computed.variance,
                variance_percent=computed.variance_percent,
                is_over_delivery=computed.is_over_delivery,
                is_short_delivery=computed.is_short_delivery,
            )
            for line, computed in zip(lines, result.lines)
        ]

        supplier_id = header.supplier_id or (po.supplier_id if po else None)
        supplier_name = header.supplier_name or (po.supplier_name if po else "")
        header = replace(header, supplier_id=supplier_id, supplier_name=supplier_name)

        now = self._now()
        grn = GoodsReceiptNote(
            id="",
            grn_number=self._sequences.next_number(GRN_PREFIX),
            reference=reference,
            header=header,
            lines=tuple(lines),
            category=header.category or self._config.default_category,
            variance_warning=result.has_warning,
            created_by=actor,
            created_at=now,
            updated_at=now,
        )
        document = grn.to_document()
        document["updatedBy"] = actor.to_document()
        grn_id = self._store.append(collections.GOODS_RECEIPTS, document)
        grn = replace(grn, id=grn_id)

        if result.has_warning:
            logger.warning("grn_variance_warning", extra={
                "grn_id": grn_id,
                "grn_number": grn.grn_number,
                "threshold_percent": str(self._config.variance_warning_percent),
                "lines": [
                    {
                        "material_id": w.material_id,
                        "variance": str(w.variance),
                        "variance_percent": str(w.variance_percent),
                    }
                    for w in result.warnings
                ],
            })
        logger.info("grn_created", extra={
            "grn_id": grn_id,
            "grn_number": grn.grn_number,
            "po_id": reference.purchase_order_id,
            "preparation_id": reference.preparation_id,
            "line_count": len(lines),
            "variance_warning": result.has_warning,
        })

        if reference.purchase_order_id:
            self.recompute_po_receipt_status(reference.purchase_order_id)
        return grn

    @staticmethod
    def _fill_from_order(line: GRNLine, po: PurchaseOrder | None, index: int) -> GRNLine:
        """Take ordered quantity, unit price, name and unit from the PO line."""
        order_line = po.line_for(line.material_id) if po else None
        if order_line is not None:
            line = replace(
                line,
                ordered_quantity=(
                    line.ordered_quantity if line.ordered_quantity is not None
                    else order_line.quantity
                ),
                unit_price=(
                    line.unit_price if line.unit_price is not None
                    else order_line.unit_price
                ),
                material_name=line.material_name or order_line.material_name,
                unit=line.unit or order_line.unit,
            )
        if line.ordered_quantity is None:
            raise ValidationError(
                f"items[{index}].orderedQty",
                "ordered quantity is required when no purchase order line matches",
            )
        return line

    def _resolve(self, grn: GoodsReceiptNote, action: str) -> Transition:
        try:
            return GRN_WORKFLOW.resolve(grn.status.value, action, grn.id)
        except InvalidTransitionError:
            logger.warning("grn_transition_rejected", extra={
                "grn_id": grn.id,
                "status": grn.status.value,
                "action": action,
            })
            raise

    def _save(self, grn: GoodsReceiptNote, actor: Actor) -> None:
        document = grn.to_document()
        document["updatedBy"] = actor.to_document()
        self._store.write(f"{collections.GOODS_RECEIPTS}/{grn.id}", document)

    def _receipt_for(self, record: QCRecord) -> str | None:
        """The GRN a QC record belongs to, if its delivery has one."""
        if record.grn_id:
            return self.get_grn(record.grn_id).id
        if record.preparation_id:
            preparation = self._load(
                collections.PURCHASE_PREPARATIONS, record.preparation_id,
                "purchase_preparation",
            )
            return preparation.get("grnId")
        return None

    def _append_qc_record(self, record: QCRecord) -> QCRecord:
        record_id = self._store.append(collections.QC_RECORDS, record.to_document())
        return replace(record, id=record_id)

    @staticmethod
    def _grn_qc_record(
        grn: GoodsReceiptNote,
        line: GRNLine,
        qc_data: QCData,
        actor: Actor,
        now: int,
    ) -> QCRecord:
        return QCRecord(
            id="",
            material_id=line.material_id,
            material_name=line.material_name,
            category=grn.category,
            supplier_id=grn.header.supplier_id,
            supplier_name=grn.header.supplier_name,
            grade=qc_data.grade,
            defect_rate=qc_data.defect_rate,
            packaging_condition=qc_data.packaging_condition,
            acceptance_status=AcceptanceStatus.ACCEPTED,
            quantity_received=line.delivered_quantity,
            quantity_accepted=line.delivered_quantity,
            batch_number=line.lot_number,
            unit_price=line.unit_price,
            expiry_date=line.expiry_date,
            notes=qc_data.notes,
            preparation_id=grn.reference.preparation_id,
            grn_id=grn.id,
            qc_officer=actor,
            created_at=now,
        )

    def _notify_created(self, grn: GoodsReceiptNote) -> None:
        self._notifications.send(
            [Role.QC_OFFICER], NotificationKind.GRN_CREATED, grn.id,
        )

    def _notify_transition(
        self,
        grn: GoodsReceiptNote,
        transition: Transition,
        kind: NotificationKind,
    ) -> None:
        self._notifications.send([Role(r) for r in transition.notifies], kind, grn.id)
