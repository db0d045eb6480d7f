"""
End-to-end procurement lifecycle scenarios.

Covers:
- Request approved at both tiers yields one awaiting-supplier preparation
- Supplier assignment, short delivery, GRN with a small variance
- GRN approval posts stock and generates the invoice
- Partial then full payment settle the invoice
- A two-supplier allocation received, approved, matched and paid per order
- Rejection at the operations head is terminal
- The full lifecycle on the SQLAlchemy store
"""

from decimal import Decimal

import pytest

from procurement_kernel.exceptions import InvalidTransitionError
from procurement_modules.billing import InvoiceStatus, PaymentStatus
from procurement_modules.preparation import (
    AllocationLine,
    PreparationStatus,
    PurchaseOrderStatus,
    RequestAllocation,
)
from procurement_modules.receiving import GRNStatus
from procurement_modules.requests import RejectionStage, RequestStatus
from procurement_modules.stock.models import MaterialCategory
from procurement_services import ProcurementSuite

pytestmark = pytest.mark.scenario

CAUSTIC_SODA = {
    "materialId": "mat-caustic-soda",
    "materialName": "Caustic Soda",
    "quantity": "500",
    "unit": "kg",
    "category": "raw",
}


def run_lifecycle(suite, requester, operations_head, director, purchasing_manager,
                  qc_officer, accountant):
    """Drive one request from submission to a settled invoice."""
    request = suite.requests.create_request([CAUSTIC_SODA], requester)
    suite.requests.approve_at_operations_head(request.id, operations_head)
    suite.requests.approve_at_director(request.id, director)
    [preparation] = suite.preparations.list_for_request(request.id)

    suite.preparations.assign_supplier(
        preparation.id, "sup-s", Decimal("120.00"), "2024-03-20",
        purchasing_manager, supplier_name="Supplier S",
    )
    handle = suite.preparations.mark_delivered(preparation.id, Decimal("480"), requester)
    grn = suite.receiving.create_grn_from_delivery(handle, requester)
    approved = suite.receiving.approve_grn(grn.id, qc_officer)

    suite.billing.record_payment(approved.invoice_id, Decimal("30000"), "bank_transfer", accountant)
    suite.billing.record_payment(approved.invoice_id, Decimal("33360"), "bank_transfer", accountant)
    return request, preparation, approved


class TestApprovalToPreparation:
    """Request for 500 kg approved by the operations head, then the director."""

    def test_preparation_awaits_supplier(self, suite, requester, operations_head, director):
        request = suite.requests.create_request([CAUSTIC_SODA], requester)

        forwarded = suite.requests.approve_at_operations_head(request.id, operations_head)
        assert forwarded.status is RequestStatus.FORWARDED_TO_MD
        assert suite.preparations.list_for_request(request.id) == []

        approved = suite.requests.approve_at_director(request.id, director)
        assert approved.status is RequestStatus.MD_APPROVED

        [preparation] = suite.preparations.list_for_request(request.id)
        assert preparation.status is PreparationStatus.AWAITING_SUPPLIER
        assert preparation.required_quantity == Decimal("500")
        assert preparation.material_name == "Caustic Soda"
        assert preparation.request_type is MaterialCategory.RAW


class TestDeliveryToGRN:
    """Supplier at 120.00, 480 of 500 delivered."""

    def test_grn_records_short_delivery(self, suite, pending_grn):
        grn = pending_grn(delivered="480", unit_price="120.00")

        [line] = grn.lines
        assert grn.status is GRNStatus.PENDING_QC
        assert line.ordered_quantity == Decimal("500")
        assert line.delivered_quantity == Decimal("480")
        assert line.variance == Decimal("-20")
        assert line.variance_percent == Decimal("-4.00")
        assert line.is_short_delivery is True
        assert grn.variance_warning is False

        preparation = suite.preparations.get_preparation(grn.reference.preparation_id)
        assert preparation.status is PreparationStatus.HANDED_TO_RECEIVING
        assert preparation.grn_id == grn.id


class TestGRNApprovalToInvoice:

    def test_stock_and_invoice(self, suite, pending_grn, qc_officer):
        grn = pending_grn()

        approved = suite.receiving.approve_grn(grn.id, qc_officer)

        assert approved.status is GRNStatus.QC_PASSED
        [movement] = suite.stock.get_movements(MaterialCategory.RAW, "mat-caustic-soda")
        assert movement.quantity == Decimal("480")
        assert suite.stock.current_quantity(MaterialCategory.RAW, "mat-caustic-soda") == Decimal("480")

        invoice = suite.billing.get_invoice(approved.invoice_id)
        assert invoice.subtotal == Decimal("57600.00")
        assert invoice.tax == Decimal("5760.00")
        assert invoice.total == Decimal("63360.00")
        assert invoice.remaining_amount == Decimal("63360.00")
        assert invoice.payment_status is PaymentStatus.PENDING


class TestPaymentsSettleInvoice:

    def test_partial_then_full(self, suite, pending_grn, qc_officer, accountant):
        approved = suite.receiving.approve_grn(pending_grn().id, qc_officer)

        suite.billing.record_payment(approved.invoice_id, Decimal("30000"), "cash", accountant)
        invoice = suite.billing.get_invoice(approved.invoice_id)
        assert invoice.total_paid == Decimal("30000.00")
        assert invoice.remaining_amount == Decimal("33360.00")
        assert invoice.payment_status is PaymentStatus.PARTIALLY_PAID

        suite.billing.record_payment(approved.invoice_id, Decimal("33360"), "cash", accountant)
        invoice = suite.billing.get_invoice(approved.invoice_id)
        assert invoice.remaining_amount == Decimal("0.00")
        assert invoice.payment_status is PaymentStatus.PAID


class TestAllocatedLifecycle:
    """500 kg split 300 @ 120.00 and 200 @ 125.00 across two suppliers."""

    def test_each_order_received_invoiced_and_paid(
        self, suite, approved_preparation, purchasing_manager, requester,
        qc_officer, accountant,
    ):
        preparation = approved_preparation()
        allocation = RequestAllocation(preparation.id, Decimal("500"))
        allocation = allocation.with_line(
            AllocationLine("sup-a", "Supplier A", Decimal("300"), Decimal("120.00")),
        ).with_line(
            AllocationLine("sup-b", "Supplier B", Decimal("200"), Decimal("125.00")),
        )
        suite.preparations.submit_allocation(preparation.id, allocation, purchasing_manager)
        handle = suite.preparations.mark_delivered(preparation.id, Decimal("500"), requester)

        grns = suite.receiving.create_grns_from_delivery(handle, requester)
        approved = [suite.receiving.approve_grn(g.id, qc_officer) for g in grns]

        assert suite.stock.current_quantity(
            MaterialCategory.RAW, "mat-caustic-soda",
        ) == Decimal("500")
        assert all(
            suite.preparations.get_purchase_order(g.reference.purchase_order_id).status
            is PurchaseOrderStatus.FULLY_RECEIVED
            for g in approved
        )
        for grn in approved:
            invoice = suite.billing.three_way_match(grn.invoice_id, accountant)
            assert invoice.status is InvoiceStatus.VERIFIED
            suite.billing.record_payment(invoice.id, invoice.total, "cheque", accountant)
            assert suite.billing.get_invoice(invoice.id).payment_status is PaymentStatus.PAID
        assert sorted(i.total for i in suite.billing.list_invoices()) == [
            Decimal("27500.00"), Decimal("39600.00"),
        ]


class TestRejectionIsTerminal:

    def test_director_cannot_approve_rejected_request(
        self, suite, requester, operations_head, director, notifier,
    ):
        request = suite.requests.create_request([CAUSTIC_SODA], requester)

        rejected = suite.requests.reject_at_operations_head(
            request.id, operations_head, "budget exceeded",
        )
        assert rejected.status is RequestStatus.REJECTED
        assert rejected.rejection_stage is RejectionStage.OPERATIONS_HEAD
        assert rejected.rejection_reason == "budget exceeded"
        sent_before = len(notifier.sent)

        with pytest.raises(InvalidTransitionError):
            suite.requests.approve_at_director(request.id, director)

        assert suite.requests.get_request(request.id).status is RequestStatus.REJECTED
        assert suite.preparations.list_for_request(request.id) == []
        assert len(notifier.sent) == sent_before


@pytest.mark.sql
class TestLifecycleOnSqlStore:

    def test_full_lifecycle(
        self, sql_session_factory, clock, notifier, requester, operations_head,
        director, purchasing_manager, qc_officer, accountant,
    ):
        suite = ProcurementSuite.with_sql_store(sql_session_factory, clock=clock, notifier=notifier)

        request, preparation, grn = run_lifecycle(
            suite, requester, operations_head, director, purchasing_manager,
            qc_officer, accountant,
        )

        assert suite.requests.get_request(request.id).status is RequestStatus.MD_APPROVED
        assert suite.preparations.get_preparation(preparation.id).status is (
            PreparationStatus.HANDED_TO_RECEIVING
        )
        assert grn.grn_number == "GRN20240001"
        assert suite.stock.current_quantity(MaterialCategory.RAW, "mat-caustic-soda") == Decimal("480")
        invoice = suite.billing.get_invoice(grn.invoice_id)
        assert invoice.status is InvoiceStatus.PENDING
        assert invoice.total_paid == Decimal("63360.00")
        assert invoice.payment_status is PaymentStatus.PAID
        assert len(suite.billing.list_payments(invoice_id=grn.invoice_id)) == 2

    def test_same_outcome_as_memory_store(
        self, sql_session_factory, clock, notifier, requester, operations_head,
        director, purchasing_manager, qc_officer, accountant,
    ):
        actors = (requester, operations_head, director, purchasing_manager, qc_officer, accountant)
        on_sql = ProcurementSuite.with_sql_store(sql_session_factory, clock=clock, notifier=notifier)
        in_memory = ProcurementSuite.in_memory(clock=clock)

        *_, sql_grn = run_lifecycle(on_sql, *actors)
        *_, memory_grn = run_lifecycle(in_memory, *actors)

        sql_invoice = on_sql.billing.get_invoice(sql_grn.invoice_id)
        memory_invoice = in_memory.billing.get_invoice(memory_grn.invoice_id)
        assert sql_invoice.invoice_number == memory_invoice.invoice_number
        assert sql_invoice.total == memory_invoice.total
        assert sql_invoice.remaining_amount == memory_invoice.remaining_amount
