"""
Purchase Preparation Service (``procurement_modules.preparation.service``).

Responsibility
--------------
Tracks sourcing and delivery confirmation for approved request lines:
creating one preparation per line at final approval, assigning a supplier
(or a balanced multi-supplier allocation), issuing the purchase orders,
marking delivery, and handing the delivery to receiving.

Architecture position
---------------------
**Modules layer.**  Called by ``RequestService`` inside the director
approval unit; its ``DeliveryHandle`` is consumed by ``ReceivingService``.

Invariants enforced
-------------------
* A preparation exists only for an ``md_approved`` request, and at most
  one per request line (creation is idempotent per request).
* Every status change resolves through ``PREPARATION_WORKFLOW``.
* A submitted allocation is balanced: supplier quantities sum to the
  required quantity.

Failure modes
-------------
* ``InvalidTransitionError`` -- preparation (or request) not in the
  precondition state.
* ``ValidationError`` -- non-positive price, negative delivered quantity,
  unbalanced allocation, over-delivery when disallowed.
* ``NotFoundError`` -- unknown preparation or purchase order.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from decimal import Decimal

from procurement_engines.grading import QualityObservation, SupplierGrade, SupplierGrader
from procurement_kernel.domain.clock import Clock
from procurement_kernel.domain.identity import Actor, Role
from procurement_kernel.domain.values import (
    ZERO,
    iso_date,
    require_non_negative,
    require_positive,
    require_text,
    to_decimal,
)
from procurement_kernel.exceptions import InvalidTransitionError, ValidationError
from procurement_kernel.logging_config import LogContext, get_logger
from procurement_kernel.notifications import NotificationFanout, NotificationKind
from procurement_kernel.services.base import BaseService
from procurement_kernel.services.sequence_service import (
    PURCHASE_ORDER_PREFIX,
    SequenceService,
)
from procurement_kernel.store.base import EntityStore
from procurement_modules import collections
from procurement_modules.preparation.config import PreparationConfig
from procurement_modules.preparation.models import (
    DeliveryHandle,
    DeliveryRecord,
    DeliverySplit,
    PreparationStatus,
    PurchaseOrder,
    PurchaseOrderLine,
    PurchasePreparation,
    RequestAllocation,
    SupplierAssignment,
    apportion_delivery,
)
from procurement_modules.preparation.workflows import PREPARATION_WORKFLOW
from procurement_modules.requests.models import MaterialRequest, RequestStatus

logger = get_logger("modules.preparation.service")


class PreparationService(BaseService):
    """
    Sourcing and delivery of approved request lines.

    Contract:
        Each public mutator runs its fetch-check-write in one unit of work
        and notifies only after the unit commits.
    Guarantees:
        - ``create_from_approved_request`` never duplicates preparations.
        - Every supplier assignment issues a purchase order.
    Non-goals:
        - Supplier master data.  Supplier ids and names are taken as given.
    """

    def __init__(
        self,
        store: EntityStore,
        clock: Clock | None = None,
        notifications: NotificationFanout | None = None,
        config: PreparationConfig | None = None,
        sequences: SequenceService | None = None,
        grader: SupplierGrader | None = None,
    ):
        super().__init__(store, clock, notifications)
        self._config = config or PreparationConfig()
        self._sequences = sequences or SequenceService(store, self._clock)
        self._grader = grader or SupplierGrader()

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_from_approved_request(
        self,
        request: MaterialRequest,
        actor: Actor,
    ) -> list[PurchasePreparation]:
        """One ``awaiting_supplier`` preparation per request line."""
        if request.status is not RequestStatus.MD_APPROVED:
            raise InvalidTransitionError(
                "material_request", request.id, request.status.value,
                "create_preparations", ("md_approved",),
            )

        with self._store.atomic():
            existing = self.list_for_request(request.id)
            if existing:
                logger.info("preparations_already_exist", extra={
                    "request_id": request.id,
                    "count": len(existing),
                })
                return existing

            now = self._now()
            created = []
            for index, line in enumerate(request.items):
                preparation = PurchasePreparation(
                    id="",
                    request_id=request.id,
                    request_kind=request.kind.value,
                    line_index=index,
                    material_id=line.material_id,
                    material_name=line.material_name,
                    required_quantity=line.quantity,
                    unit=line.unit,
                    request_type=line.category,
                    created_at=now,
                    updated_at=now,
                )
                document = preparation.to_document()
                document["createdBy"] = actor.to_document()
                preparation_id = self._store.append(
                    collections.PURCHASE_PREPARATIONS, document,
                )
                created.append(replace(preparation, id=preparation_id))

        logger.info("preparations_created", extra={
            "request_id": request.id,
            "count": len(created),
        })
        return created

    # ------------------------------------------------------------------
    # Supplier assignment
    # ------------------------------------------------------------------

    def assign_supplier(
        self,
        preparation_id: str,
        supplier_id: str,
        unit_price: Decimal | str | int,
        expected_delivery_date: date | str | None,
        actor: Actor,
        supplier_name: str = "",
    ) -> PurchasePreparation:
        supplier_id = require_text(supplier_id, "supplierId")
        unit_price = require_positive(unit_price, "unitPrice")
        expected = (
            iso_date(expected_delivery_date, "expectedDeliveryDate")
            if expected_delivery_date else None
        )

        with LogContext.bind(actor_id=actor.id, entity_id=preparation_id):
            with self._store.atomic():
                preparation = self.get_preparation(preparation_id)
                transition = self._resolve(preparation, "assign_supplier")
                po = self._issue_purchase_order(
                    preparation, supplier_id, supplier_name,
                    preparation.required_quantity, unit_price, expected,
                )
                updated = replace(
                    preparation,
                    status=PreparationStatus(transition.to_state),
                    supplier_assignment=SupplierAssignment(
                        supplier_id=supplier_id,
                        supplier_name=supplier_name,
                        unit_price=unit_price,
                        expected_delivery_date=expected,
                        purchase_order_id=po.id,
                    ),
                    purchase_order_ids=(po.id,),
                    updated_at=self._now(),
                )
                self._save(updated, actor)

            logger.info("preparation_supplier_assigned", extra={
                "preparation_id": preparation_id,
                "supplier_id": supplier_id,
                "unit_price": str(unit_price),
                "purchase_order_id": po.id,
            })
        return updated

    def submit_allocation(
        self,
        preparation_id: str,
        allocation: RequestAllocation,
        actor: Actor,
    ) -> PurchasePreparation:
        """Split the preparation across suppliers; one PO per allocation line."""
        if allocation.preparation_id != preparation_id:
            raise ValidationError(
                "allocation", "belongs to a different preparation",
            )
        allocation.require_balanced()

        with LogContext.bind(actor_id=actor.id, entity_id=preparation_id):
            with self._store.atomic():
                preparation = self.get_preparation(preparation_id)
                if allocation.target_quantity != preparation.required_quantity:
                    raise ValidationError(
                        "allocation",
                        f"target {allocation.target_quantity} does not match "
                        f"required {preparation.required_quantity}",
                    )
                transition = self._resolve(preparation, "submit_allocation")

                document = allocation.to_document()
                document.update(self._creation_fields(actor))
                document["status"] = "submitted"
                allocation_id = self._store.append(
                    collections.SUPPLIER_ALLOCATIONS, document,
                )
                po_ids = tuple(
                    self._issue_purchase_order(
                        preparation, line.supplier_id, line.supplier_name,
                        line.quantity, line.unit_price, line.delivery_date,
                    ).id
                    for line in allocation.lines
                )
                updated = replace(
                    preparation,
                    status=PreparationStatus(transition.to_state),
                    allocation_id=allocation_id,
                    purchase_order_ids=po_ids,
                    updated_at=self._now(),
                )
                self._save(updated, actor)

            logger.info("preparation_allocation_submitted", extra={
                "preparation_id": preparation_id,
                "allocation_id": allocation_id,
                "supplier_count": len(allocation.lines),
            })
        return updated

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def mark_delivered(
        self,
        preparation_id: str,
        delivered_quantity: Decimal | str | int,
        actor: Actor,
        delivery_date: date | str | None = None,
        batch_number: str | None = None,
        packaging_condition: str | None = None,
    ) -> DeliveryHandle:
        """Record the physical delivery and return the handle for a GRN."""
        delivered = require_non_negative(delivered_quantity, "deliveredQuantity")
        delivery_day = (
            iso_date(delivery_date, "deliveryDate") if delivery_date
            else self._clock.today_iso()
        )

        with LogContext.bind(actor_id=actor.id, entity_id=preparation_id):
            with self._store.atomic():
                preparation = self.get_preparation(preparation_id)
                transition = self._resolve(preparation, "mark_delivered")

                over = delivered > preparation.required_quantity
                if over and not self._config.allow_over_delivery:
                    raise ValidationError(
                        "deliveredQuantity",
                        f"{delivered} exceeds required {preparation.required_quantity}",
                    )
                if over:
                    logger.warning("preparation_over_delivery", extra={
                        "preparation_id": preparation_id,
                        "required": str(preparation.required_quantity),
                        "delivered": str(delivered),
                    })

                updated = replace(
                    preparation,
                    status=PreparationStatus(transition.to_state),
                    delivery_record=DeliveryRecord(
                        delivered_quantity=delivered,
                        delivery_date=delivery_day,
                        batch_number=(
                            batch_number.strip() if batch_number and batch_number.strip()
                            else self._default_batch_number(preparation)
                        ),
                        packaging_condition=(
                            packaging_condition or self._config.default_packaging_condition
                        ),
                        over_delivery=over,
                    ),
                    updated_at=self._now(),
                )
                self._save(updated, actor)

            logger.info("preparation_delivered", extra={
                "preparation_id": preparation_id,
                "delivered_quantity": str(delivered),
                "over_delivery": over,
            })

        self._notifications.send(
            [Role.WAREHOUSE_STAFF, Role.QC_OFFICER],
            NotificationKind.DELIVERY_RECORDED,
            preparation_id,
        )
        return self.delivery_handle(updated)

    def delivery_handle(self, preparation: PurchasePreparation | str) -> DeliveryHandle:
        """Handle for a delivered preparation (re-derivable for retries)."""
        if isinstance(preparation, str):
            preparation = self.get_preparation(preparation)
        record = preparation.delivery_record
        if record is None:
            raise InvalidTransitionError(
                "purchase_preparation", preparation.id, preparation.status.value,
                "open_grn", ("delivered",),
            )
        orders = [self.get_purchase_order(po_id) for po_id in preparation.purchase_order_ids]
        order_lines = [
            po.line_for(preparation.material_id) or (po.items[0] if po.items else None)
            for po in orders
        ]
        shares = apportion_delivery(
            [line.quantity if line else ZERO for line in order_lines],
            record.delivered_quantity,
        )
        splits = tuple(
            DeliverySplit(
                purchase_order_id=po.id,
                supplier_id=po.supplier_id,
                supplier_name=po.supplier_name,
                ordered_quantity=line.quantity,
                delivered_quantity=share,
                unit_price=line.unit_price,
            )
            for po, line, share in zip(orders, order_lines, shares)
            if line is not None
        )

        assignment = preparation.supplier_assignment
        supplier_id = assignment.supplier_id if assignment else None
        supplier_name = assignment.supplier_name if assignment else None
        unit_price = assignment.unit_price if assignment else None
        if assignment is None and len(splits) == 1:
            supplier_id, supplier_name = splits[0].supplier_id, splits[0].supplier_name
            unit_price = splits[0].unit_price
        return DeliveryHandle(
            preparation_id=preparation.id,
            purchase_order_ids=preparation.purchase_order_ids,
            material_id=preparation.material_id,
            material_name=preparation.material_name,
            unit=preparation.unit,
            ordered_quantity=preparation.required_quantity,
            delivered_quantity=record.delivered_quantity,
            unit_price=unit_price,
            supplier_id=supplier_id,
            supplier_name=supplier_name,
            delivery_date=record.delivery_date,
            batch_number=record.batch_number,
            packaging_condition=record.packaging_condition,
            category=preparation.request_type,
            over_delivery=record.over_delivery,
            splits=splits,
        )

    def mark_handed_to_receiving(
        self,
        preparation_id: str,
        grn_id: str,
        actor: Actor,
        grn_ids: tuple[str, ...] | list[str] | None = None,
    ) -> PurchasePreparation:
        """Link the delivery's GRN(s); ``grn_id`` is the first of ``grn_ids``."""
        grn_ids = tuple(grn_ids) if grn_ids else (grn_id,)
        with self._store.atomic():
            preparation = self.get_preparation(preparation_id)
            transition = self._resolve(preparation, "hand_to_receiving")
            updated = replace(
                preparation,
                status=PreparationStatus(transition.to_state),
                grn_id=grn_id,
                grn_ids=grn_ids,
                updated_at=self._now(),
            )
            self._save(updated, actor)
        logger.info("preparation_handed_to_receiving", extra={
            "preparation_id": preparation_id,
            "grn_id": grn_id,
            "grn_count": len(grn_ids),
        })
        return updated

    # ------------------------------------------------------------------
    # Supplier grading (read-only)
    # ------------------------------------------------------------------

    def supplier_grade(self, supplier_id: str) -> SupplierGrade:
        observations = [
            QualityObservation(
                grade=doc["grade"],
                defect_rate=(
                    to_decimal(doc["defectRate"], "defectRate")
                    if doc.get("defectRate") is not None else None
                ),
            )
            for doc in self._store.list(collections.QC_RECORDS).values()
            if doc.get("supplierId") == supplier_id and doc.get("grade")
        ]
        return self._grader.grade(supplier_id=supplier_id, observations=observations)

    def rank_suppliers(self, supplier_ids: list[str]) -> list[SupplierGrade]:
        return self._grader.rank([self.supplier_grade(s) for s in supplier_ids])

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_preparation(self, preparation_id: str) -> PurchasePreparation:
        doc = self._load(
            collections.PURCHASE_PREPARATIONS, preparation_id, "purchase_preparation",
        )
        return PurchasePreparation.from_document(preparation_id, doc)

    def list_by_status(self, status: PreparationStatus) -> list[PurchasePreparation]:
        return [p for p in self._all() if p.status is status]

    def list_for_request(self, request_id: str) -> list[PurchasePreparation]:
        return sorted(
            (p for p in self._all() if p.request_id == request_id),
            key=lambda p: p.line_index,
        )

    def get_purchase_order(self, po_id: str) -> PurchaseOrder:
        doc = self._load(collections.PURCHASE_ORDERS, po_id, "purchase_order")
        return PurchaseOrder.from_document(po_id, doc)

    def list_purchase_orders(self, preparation_id: str | None = None) -> list[PurchaseOrder]:
        orders = [
            PurchaseOrder.from_document(po_id, doc)
            for po_id, doc in self._store.list(collections.PURCHASE_ORDERS).items()
        ]
        if preparation_id is not None:
            orders = [o for o in orders if o.preparation_id == preparation_id]
        return orders

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _all(self) -> list[PurchasePreparation]:
        return [
            PurchasePreparation.from_document(pid, doc)
            for pid, doc in self._store.list(collections.PURCHASE_PREPARATIONS).items()
        ]

    def _resolve(self, preparation: PurchasePreparation, action: str):
        try:
            return PREPARATION_WORKFLOW.resolve(
                preparation.status.value, action, preparation.id,
            )
        except InvalidTransitionError:
            logger.warning("preparation_transition_rejected", extra={
                "preparation_id": preparation.id,
                "status": preparation.status.value,
                "action": action,
            })
            raise

    def _save(self, preparation: PurchasePreparation, actor: Actor) -> None:
        document = preparation.to_document()
        document["updatedBy"] = actor.to_document()
        self._store.write(
            f"{collections.PURCHASE_PREPARATIONS}/{preparation.id}", document,
        )

    def _issue_purchase_order(
        self,
        preparation: PurchasePreparation,
        supplier_id: str,
        supplier_name: str,
        quantity: Decimal,
        unit_price: Decimal,
        expected_delivery_date: str | None,
    ) -> PurchaseOrder:
        po = PurchaseOrder(
            id="",
            po_number=self._sequences.next_number(PURCHASE_ORDER_PREFIX),
            supplier_id=supplier_id,
            supplier_name=supplier_name,
            preparation_id=preparation.id,
            items=(
                PurchaseOrderLine(
                    material_id=preparation.material_id,
                    material_name=preparation.material_name,
                    quantity=quantity,
                    unit=preparation.unit,
                    unit_price=unit_price,
                ),
            ),
            expected_delivery_date=expected_delivery_date,
            created_at=self._now(),
        )
        po_id = self._store.append(collections.PURCHASE_ORDERS, po.to_document())
        logger.info("purchase_order_issued", extra={
            "purchase_order_id": po_id,
            "po_number": po.po_number,
            "supplier_id": supplier_id,
            "total_amount": str(po.total_amount),
        })
        return replace(po, id=po_id)

    def _default_batch_number(self, preparation: PurchasePreparation) -> str:
        name = (preparation.material_name or preparation.material_id).replace(" ", "")
        prefix = name[: self._config.batch_prefix_length].upper()
        return f"{prefix}-{str(self._now())[-6:]}"
