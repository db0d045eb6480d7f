"""
Tests for PreparationService.

Covers:
- Preparation creation from an approved request (idempotent, approved only)
- Supplier assignment and the purchase order it issues
- Multi-supplier allocations (balanced submission, one PO per supplier)
- Delivery handles split per purchase order
- Delivery marking, over-delivery policy, delivery handles
- Hand-off to receiving
- Supplier grades from QC history
"""

from decimal import Decimal

import pytest

from procurement_kernel.exceptions import (
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from procurement_modules import collections
from procurement_modules.preparation import (
    AllocationLine,
    PreparationConfig,
    PreparationStatus,
    PurchaseOrderStatus,
    RequestAllocation,
    apportion_delivery,
)
from procurement_modules.preparation.service import PreparationService
from procurement_modules.stock import MaterialCategory


class TestPreparationCreation:

    def test_created_awaiting_supplier(self, approved_preparation):
        preparation = approved_preparation()

        assert preparation.status is PreparationStatus.AWAITING_SUPPLIER
        assert preparation.material_name == "Caustic Soda"
        assert preparation.required_quantity == Decimal("500")
        assert preparation.unit == "kg"
        assert preparation.request_type is MaterialCategory.RAW
        assert preparation.supplier_assignment is None

    def test_packing_line_keeps_category(self, approved_preparation):
        preparation = approved_preparation(category="packing")
        assert preparation.request_type is MaterialCategory.PACKING

    def test_creation_is_idempotent(self, suite, approved_preparation, director):
        preparation = approved_preparation()
        request = suite.requests.get_request(preparation.request_id)

        again = suite.preparations.create_from_approved_request(request, director)

        assert [p.id for p in again] == [preparation.id]
        assert len(suite.store.list(collections.PURCHASE_PREPARATIONS)) == 1

    def test_only_for_approved_requests(self, suite, requester, director, caustic_soda_line):
        request = suite.requests.create_request([caustic_soda_line], requester)

        with pytest.raises(InvalidTransitionError) as exc_info:
            suite.preparations.create_from_approved_request(request, director)
        assert exc_info.value.expected_states == ("md_approved",)

    def test_unknown_preparation(self, suite):
        with pytest.raises(NotFoundError):
            suite.preparations.get_preparation("nope")


class TestSupplierAssignment:

    def test_assign_issues_purchase_order(self, suite, approved_preparation, purchasing_manager):
        preparation = approved_preparation()

        assigned = suite.preparations.assign_supplier(
            preparation.id, "sup-s", Decimal("120.00"), "2024-03-20",
            purchasing_manager, supplier_name="Supplier S",
        )

        assert assigned.status is PreparationStatus.SUPPLIER_ASSIGNED
        assert assigned.supplier_assignment.unit_price == Decimal("120.00")
        assert assigned.supplier_assignment.expected_delivery_date == "2024-03-20"
        po = suite.preparations.get_purchase_order(assigned.supplier_assignment.purchase_order_id)
        assert po.po_number == "PO20240001"
        assert po.status is PurchaseOrderStatus.ISSUED
        assert po.ordered_quantity == Decimal("500")
        assert po.total_amount == Decimal("60000.00")
        assert assigned.purchase_order_ids == (po.id,)

    @pytest.mark.parametrize("price", ["0", "-1"])
    def test_price_must_be_positive(self, suite, approved_preparation, purchasing_manager, price):
        preparation = approved_preparation()
        with pytest.raises(ValidationError):
            suite.preparations.assign_supplier(
                preparation.id, "sup-s", price, None, purchasing_manager,
            )
        assert suite.preparations.list_purchase_orders(preparation.id) == []

    def test_invalid_date_rejected(self, suite, approved_preparation, purchasing_manager):
        preparation = approved_preparation()
        with pytest.raises(ValidationError):
            suite.preparations.assign_supplier(
                preparation.id, "sup-s", "10", "20/03/2024", purchasing_manager,
            )

    def test_cannot_assign_twice(self, suite, approved_preparation, purchasing_manager):
        preparation = approved_preparation()
        suite.preparations.assign_supplier(
            preparation.id, "sup-s", "120", None, purchasing_manager,
        )

        with pytest.raises(InvalidTransitionError):
            suite.preparations.assign_supplier(
                preparation.id, "sup-t", "110", None, purchasing_manager,
            )
        assert len(suite.preparations.list_purchase_orders(preparation.id)) == 1


class TestAllocation:

    def _allocation(self, preparation_id, *quantities):
        allocation = RequestAllocation(preparation_id, Decimal("500"))
        for index, quantity in enumerate(quantities):
            allocation = allocation.with_line(AllocationLine(
                supplier_id=f"sup-{index}",
                supplier_name=f"Supplier {index}",
                quantity=Decimal(quantity),
                unit_price=Decimal("100.00"),
                delivery_date="2024-03-25",
            ))
        return allocation

    def test_draft_tracks_remaining(self):
        allocation = self._allocation("p-1", "300")

        assert allocation.remaining_quantity == Decimal("200")
        assert allocation.is_balanced is False
        with pytest.raises(ValidationError):
            allocation.require_balanced()

    def test_over_allocation_rejected(self):
        with pytest.raises(ValidationError):
            self._allocation("p-1", "300", "300")

    def test_line_edits(self):
        allocation = self._allocation("p-1", "300", "100")

        allocation = allocation.replace_line(1, AllocationLine(
            "sup-9", "Supplier 9", Decimal("200"), Decimal("95.00"),
        ))
        assert allocation.is_balanced
        assert allocation.total_value == Decimal("49000.00")
        assert allocation.without_line(0).remaining_quantity == Decimal("300")
        with pytest.raises(ValidationError):
            allocation.without_line(5)

    def test_submit_issues_one_order_per_supplier(
        self, suite, approved_preparation, purchasing_manager,
    ):
        preparation = approved_preparation()

        updated = suite.preparations.submit_allocation(
            preparation.id, self._allocation(preparation.id, "300", "200"),
            purchasing_manager,
        )

        assert updated.status is PreparationStatus.SUPPLIER_ASSIGNED
        assert updated.allocation_id
        orders = suite.preparations.list_purchase_orders(preparation.id)
        assert sorted(o.ordered_quantity for o in orders) == [Decimal("200"), Decimal("300")]
        assert set(updated.purchase_order_ids) == {o.id for o in orders}

    def test_delivered_allocation_splits_handle_per_order(
        self, suite, approved_preparation, purchasing_manager, requester,
    ):
        preparation = approved_preparation()
        updated = suite.preparations.submit_allocation(
            preparation.id, self._allocation(preparation.id, "300", "200"),
            purchasing_manager,
        )

        handle = suite.preparations.mark_delivered(preparation.id, "500", requester)

        assert handle.purchase_order_id is None
        assert [s.purchase_order_id for s in handle.splits] == list(updated.purchase_order_ids)
        assert [(s.supplier_id, s.ordered_quantity, s.delivered_quantity) for s in handle.splits] == [
            ("sup-0", Decimal("300"), Decimal("300")),
            ("sup-1", Decimal("200"), Decimal("200")),
        ]
        assert all(s.unit_price == Decimal("100.00") for s in handle.splits)

    def test_unbalanced_submission_rejected(self, suite, approved_preparation, purchasing_manager):
        preparation = approved_preparation()

        with pytest.raises(ValidationError):
            suite.preparations.submit_allocation(
                preparation.id, self._allocation(preparation.id, "300"), purchasing_manager,
            )
        assert suite.preparations.get_preparation(preparation.id).status is (
            PreparationStatus.AWAITING_SUPPLIER
        )

    def test_allocation_for_other_preparation_rejected(
        self, suite, approved_preparation, purchasing_manager,
    ):
        preparation = approved_preparation()
        with pytest.raises(ValidationError):
            suite.preparations.submit_allocation(
                preparation.id, self._allocation("other", "500"), purchasing_manager,
            )


class TestDelivery:

    def _assigned(self, suite, approved_preparation, purchasing_manager):
        preparation = approved_preparation()
        suite.preparations.assign_supplier(
            preparation.id, "sup-s", Decimal("120.00"), "2024-03-20",
            purchasing_manager, supplier_name="Supplier S",
        )
        return preparation

    def test_mark_delivered_returns_handle(
        self, suite, approved_preparation, purchasing_manager, requester,
    ):
        preparation = self._assigned(suite, approved_preparation, purchasing_manager)

        handle = suite.preparations.mark_delivered(
            preparation.id, Decimal("480"), requester,
            delivery_date="2024-03-20", batch_number="CS-0001",
        )

        assert handle.ordered_quantity == Decimal("500")
        assert handle.delivered_quantity == Decimal("480")
        assert handle.unit_price == Decimal("120.00")
        assert handle.supplier_id == "sup-s"
        assert handle.batch_number == "CS-0001"
        assert handle.category is MaterialCategory.RAW
        assert handle.purchase_order_id is not None
        stored = suite.preparations.get_preparation(preparation.id)
        assert stored.status is PreparationStatus.DELIVERED
        assert stored.delivery_record.delivery_date == "2024-03-20"

    def test_default_batch_number_and_date(
        self, suite, approved_preparation, purchasing_manager, requester,
    ):
        preparation = self._assigned(suite, approved_preparation, purchasing_manager)

        handle = suite.preparations.mark_delivered(preparation.id, "500", requester)

        assert handle.batch_number.startswith("CAU-")
        assert handle.delivery_date == "2024-03-15"
        assert handle.packaging_condition == "good"

    def test_notifies_warehouse_and_qc(
        self, suite, approved_preparation, purchasing_manager, requester, notifier,
    ):
        preparation = self._assigned(suite, approved_preparation, purchasing_manager)
        notifier.sent.clear()

        suite.preparations.mark_delivered(preparation.id, "480", requester)

        assert {(n.recipient, n.message_kind) for n in notifier.sent} == {
            ("WarehouseStaff", "delivery_recorded"),
            ("QCOfficer", "delivery_recorded"),
        }

    def test_requires_assigned_supplier(self, suite, approved_preparation, requester):
        preparation = approved_preparation()
        with pytest.raises(InvalidTransitionError):
            suite.preparations.mark_delivered(preparation.id, "480", requester)

    def test_negative_quantity_rejected(
        self, suite, approved_preparation, purchasing_manager, requester,
    ):
        preparation = self._assigned(suite, approved_preparation, purchasing_manager)
        with pytest.raises(ValidationError):
            suite.preparations.mark_delivered(preparation.id, "-1", requester)

    def test_over_delivery_flagged(
        self, suite, approved_preparation, purchasing_manager, requester, captured_logs,
    ):
        preparation = self._assigned(suite, approved_preparation, purchasing_manager)

        handle = suite.preparations.mark_delivered(preparation.id, "520", requester)

        assert handle.over_delivery is True
        assert any(r["message"] == "preparation_over_delivery" for r in captured_logs())

    def test_over_delivery_rejected_when_disallowed(
        self, suite, approved_preparation, purchasing_manager, requester,
    ):
        preparation = self._assigned(suite, approved_preparation, purchasing_manager)
        strict = PreparationService(
            suite.store, suite.clock, suite.notifications,
            config=PreparationConfig(allow_over_delivery=False),
            sequences=suite.sequences,
        )

        with pytest.raises(ValidationError):
            strict.mark_delivered(preparation.id, "520", requester)
        assert strict.get_preparation(preparation.id).status is (
            PreparationStatus.SUPPLIER_ASSIGNED
        )

    def test_handle_requires_delivery(self, suite, approved_preparation):
        preparation = approved_preparation()
        with pytest.raises(InvalidTransitionError):
            suite.preparations.delivery_handle(preparation.id)

    def test_hand_to_receiving_is_terminal(
        self, suite, approved_preparation, purchasing_manager, requester,
    ):
        preparation = self._assigned(suite, approved_preparation, purchasing_manager)
        suite.preparations.mark_delivered(preparation.id, "480", requester)

        handed = suite.preparations.mark_handed_to_receiving(preparation.id, "grn-1", requester)

        assert handed.status is PreparationStatus.HANDED_TO_RECEIVING
        assert handed.grn_id == "grn-1"
        with pytest.raises(InvalidTransitionError):
            suite.preparations.mark_handed_to_receiving(preparation.id, "grn-2", requester)


class TestSupplierGrades:

    def _qc(self, store, supplier_id, grade, defect_rate=None):
        store.append(collections.QC_RECORDS, {
            "supplierId": supplier_id,
            "grade": grade,
            "defectRate": defect_rate,
        })

    def test_grade_from_qc_history(self, suite):
        self._qc(suite.store, "sup-s", "A", "1.0")
        self._qc(suite.store, "sup-s", "B", "2.0")
        self._qc(suite.store, "sup-t", "D")

        grade = suite.preparations.supplier_grade("sup-s")

        assert grade.grade == "A"
        assert grade.total_deliveries == 2
        assert grade.average_defect_rate == Decimal("1.50")

    def test_new_supplier_not_graded(self, suite):
        assert suite.preparations.supplier_grade("sup-new").label == "Not graded yet"

    def test_rank_suppliers(self, suite):
        self._qc(suite.store, "sup-s", "C")
        self._qc(suite.store, "sup-t", "A")

        ranked = suite.preparations.rank_suppliers(["sup-new", "sup-s", "sup-t"])

        assert [g.supplier_id for g in ranked] == ["sup-t", "sup-s", "sup-new"]


class TestApportionDelivery:

    @pytest.mark.parametrize("delivered,expected", [
        ("500", ["300", "200"]),
        ("450", ["300", "150"]),
        ("250", ["250", "0"]),
        ("0", ["0", "0"]),
        ("520", ["300", "220"]),
    ])
    def test_fills_orders_in_sequence(self, delivered, expected):
        shares = apportion_delivery([Decimal("300"), Decimal("200")], Decimal(delivered))

        assert shares == [Decimal(e) for e in expected]
        assert sum(shares) == Decimal(delivered)

    def test_single_order_takes_everything(self):
        assert apportion_delivery([Decimal("500")], Decimal("480")) == [Decimal("480")]
        assert apportion_delivery([Decimal("500")], Decimal("520")) == [Decimal("520")]

    def test_no_orders(self):
        assert apportion_delivery([], Decimal("10")) == []
