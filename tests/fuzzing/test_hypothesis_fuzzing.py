"""
Hypothesis-based fuzzing of the procurement invariants.

Property-based testing using Hypothesis to generate amounts, quantities
and movement sequences and verify invariants hold.

Boundaries fuzzed here:
- Payments: remaining == total - paid after every payment; paid is monotonic
- Invoice totals: total == subtotal + round(subtotal * rate)
- Stock: the projection equals a replay of the movement log and never
  goes negative
- Delivery variance: sign and threshold agree with the inputs
- Allocation: balanced iff allocated == target; over-allocation rejected
"""

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

import pytest
from hypothesis import HealthCheck, assume, given, settings
from hypothesis import strategies as st

from procurement_engines.variance import DeliveryLineInput, DeliveryVarianceCalculator
from procurement_kernel.domain.clock import DeterministicClock
from procurement_kernel.domain.identity import Actor, Role
from procurement_kernel.exceptions import ValidationError
from procurement_modules.billing import (
    Invoice,
    InvoiceLine,
    PaymentStatus,
    compute_totals,
    payment_status_for,
)
from procurement_modules.preparation.models import AllocationLine, RequestAllocation
from procurement_modules.stock.models import (
    MaterialCategory,
    MovementDirection,
    replay_quantity,
)
from procurement_services import ProcurementSuite

pytestmark = pytest.mark.slow

FIXED_TIME = datetime(2024, 3, 15, 9, 0, 0, tzinfo=timezone.utc)
ZERO = Decimal("0")
CENT = Decimal("0.01")

CLERK = Actor(id="u1", display_name="Warehouse Clerk", role=Role.WAREHOUSE_STAFF)
ACCOUNTANT = Actor(id="u6", display_name="Accountant", role=Role.ACCOUNTANT)


# =============================================================================
# Strategies
# =============================================================================


money = st.decimals(
    min_value=Decimal("0.01"), max_value=Decimal("999999.99"),
    places=2, allow_nan=False, allow_infinity=False,
)

quantities = st.decimals(
    min_value=Decimal("0.001"), max_value=Decimal("10000"),
    places=3, allow_nan=False, allow_infinity=False,
)

non_negative_quantities = st.decimals(
    min_value=ZERO, max_value=Decimal("10000"),
    places=3, allow_nan=False, allow_infinity=False,
)

movements = st.lists(
    st.tuples(st.sampled_from(list(MovementDirection)), quantities),
    min_size=1, max_size=25,
)


def _invoice(total: Decimal) -> Invoice:
    return Invoice(
        id="inv-1",
        invoice_number="INV20240001",
        grn_id="grn-1",
        grn_number="GRN20240001",
        purchase_order_id=None,
        preparation_id=None,
        supplier_id="sup-s",
        supplier_name="Supplier S",
        lines=(),
        subtotal=total,
        tax_rate=ZERO,
        tax=ZERO,
        total=total,
    )


# =============================================================================
# Payments
# =============================================================================


class TestPaymentRollupFuzzing:

    @given(total=money, fractions=st.lists(
        st.integers(min_value=1, max_value=100), min_size=1, max_size=10,
    ))
    @settings(max_examples=200)
    def test_remaining_tracks_total_minus_paid(self, total, fractions):
        invoice = _invoice(total)
        previous_paid = ZERO

        for percent in fractions:
            if invoice.remaining_amount <= ZERO:
                break
            amount = (invoice.remaining_amount * percent / 100).quantize(CENT, ROUND_HALF_UP)
            amount = max(amount, CENT)
            invoice = invoice.apply_payment(amount, "2024-04-01", 0)

            assert invoice.remaining_amount == invoice.total - invoice.total_paid
            assert invoice.total_paid >= previous_paid
            assert invoice.payment_status is payment_status_for(
                invoice.total, invoice.remaining_amount,
            )
            previous_paid = invoice.total_paid

        if invoice.remaining_amount == ZERO:
            assert invoice.payment_status is PaymentStatus.PAID

    @given(
        unit_price=st.decimals(
            min_value=Decimal("0.01"), max_value=Decimal("500"),
            places=2, allow_nan=False, allow_infinity=False,
        ),
        delivered=st.integers(min_value=1, max_value=500),
        first_share=st.integers(min_value=1, max_value=99),
    )
    @settings(
        max_examples=25,
        deadline=None,
        suppress_health_check=[HealthCheck.too_slow],
    )
    def test_service_payments_settle_invoice(self, unit_price, delivered, first_share):
        suite = ProcurementSuite.in_memory(clock=DeterministicClock(FIXED_TIME))
        request = suite.requests.create_request([{
            "materialId": "mat-1", "materialName": "Caustic Soda",
            "quantity": "500", "unit": "kg", "category": "raw",
        }], CLERK)
        suite.requests.approve_at_operations_head(
            request.id, Actor("u2", "Operations Head", Role.HEAD_OF_OPERATIONS),
        )
        suite.requests.approve_at_director(
            request.id, Actor("u3", "Main Director", Role.MAIN_DIRECTOR),
        )
        [preparation] = suite.preparations.list_for_request(request.id)
        suite.preparations.assign_supplier(
            preparation.id, "sup-s", unit_price, "2024-03-20",
            Actor("u4", "Purchasing Manager", Role.PURCHASING_MANAGER),
        )
        handle = suite.preparations.mark_delivered(preparation.id, delivered, CLERK)
        grn = suite.receiving.create_grn_from_delivery(handle, CLERK)
        approved = suite.receiving.approve_grn(
            grn.id, Actor("u5", "QC Officer", Role.QC_OFFICER),
        )
        invoice = suite.billing.get_invoice(approved.invoice_id)

        first = (invoice.total * first_share / 100).quantize(CENT, ROUND_HALF_UP)
        assume(ZERO < first < invoice.total)
        suite.billing.record_payment(invoice.id, first, "cash", ACCOUNTANT)
        partial = suite.billing.get_invoice(invoice.id)
        assert partial.remaining_amount == partial.total - partial.total_paid
        assert partial.payment_status is PaymentStatus.PARTIALLY_PAID

        suite.billing.record_payment(invoice.id, partial.remaining_amount, "cash", ACCOUNTANT)
        settled = suite.billing.get_invoice(invoice.id)
        assert settled.total_paid == settled.total
        assert settled.remaining_amount == ZERO
        assert settled.payment_status is PaymentStatus.PAID


class TestInvoiceTotalsFuzzing:

    @given(
        lines=st.lists(st.tuples(quantities, money), min_size=1, max_size=8),
        rate=st.sampled_from([Decimal("0"), Decimal("0.05"), Decimal("0.10"), Decimal("0.15")]),
    )
    @settings(max_examples=200)
    def test_total_is_subtotal_plus_tax(self, lines, rate):
        invoice_lines = [
            InvoiceLine(f"m-{i}", "M", quantity, "kg", price)
            for i, (quantity, price) in enumerate(lines)
        ]

        totals = compute_totals(invoice_lines, rate)

        assert totals.total == totals.subtotal + totals.tax
        assert totals.tax == (totals.subtotal * rate).quantize(CENT, ROUND_HALF_UP)
        assert totals.subtotal == sum((line.amount for line in invoice_lines), ZERO)
        assert totals.subtotal.as_tuple().exponent == -2


# =============================================================================
# Stock ledger
# =============================================================================


class TestStockReplayFuzzing:

    @given(sequence=movements)
    @settings(
        max_examples=50,
        deadline=None,
        suppress_health_check=[HealthCheck.too_slow],
    )
    def test_projection_equals_replay(self, sequence):
        suite = ProcurementSuite.in_memory(clock=DeterministicClock(FIXED_TIME))

        for direction, quantity in sequence:
            movement = suite.stock.record_movement(
                MaterialCategory.RAW, "mat-1", direction, quantity, "fuzz", CLERK,
            )
            assert movement.quantity_after >= ZERO

        log = suite.stock.get_movements(MaterialCategory.RAW, "mat-1")
        projected = suite.stock.current_quantity(MaterialCategory.RAW, "mat-1")
        assert len(log) == len(sequence)
        assert replay_quantity(log) == projected
        assert suite.stock.rebuild_projection(MaterialCategory.RAW, "mat-1") == projected


# =============================================================================
# Delivery variance
# =============================================================================


class TestDeliveryVarianceFuzzing:

    @given(ordered=non_negative_quantities, delivered=non_negative_quantities)
    @settings(max_examples=300)
    def test_variance_sign_and_threshold(self, ordered, delivered):
        line = DeliveryVarianceCalculator.line_variance(
            DeliveryLineInput("m-1", ordered, delivered), Decimal("5"),
        )

        assert line.variance == delivered - ordered
        assert line.is_over_delivery == (delivered > ordered)
        assert line.is_short_delivery == (delivered < ordered)
        if ordered == ZERO:
            assert line.variance_percent == ZERO
            assert line.exceeds_threshold is False
        else:
            exact = abs(line.variance / ordered * 100)
            assert line.exceeds_threshold == (exact > Decimal("5"))


# =============================================================================
# Allocation
# =============================================================================


class TestAllocationFuzzing:

    @given(parts=st.lists(st.integers(min_value=1, max_value=1000), min_size=1, max_size=6))
    @settings(max_examples=200)
    def test_balanced_iff_fully_allocated(self, parts):
        target = Decimal(sum(parts))
        allocation = RequestAllocation("prep-1", target)

        for index, part in enumerate(parts):
            assert not allocation.is_balanced
            allocation = allocation.with_line(
                AllocationLine(f"sup-{index}", "", Decimal(part), Decimal("1.00")),
            )
            assert allocation.remaining_quantity == target - allocation.allocated_quantity

        assert allocation.is_balanced
        allocation.require_balanced()

    @given(
        target=st.integers(min_value=1, max_value=1000),
        excess=st.integers(min_value=1, max_value=100),
    )
    @settings(max_examples=100)
    def test_over_allocation_rejected(self, target, excess):
        allocation = RequestAllocation("prep-1", Decimal(target))

        with pytest.raises(ValidationError):
            allocation.with_line(
                AllocationLine("sup-1", "", Decimal(target + excess), Decimal("1.00")),
            )
