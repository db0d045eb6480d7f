"""
procurement_engines.matching -- Three-way match of invoice, PO, and GRN.

Responsibility:
    For each invoice line, compare the billed quantity against the quantity
    the GRN says was delivered and the billed unit price against the price
    the purchase order agreed.  Produce the list of discrepancies and a
    verdict (``verified`` / ``variance_review``).

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Consumed by ``procurement_modules.billing``.

Invariants enforced:
    - Lines are correlated by material id.  Several GRN lines for one
      material are summed; the first PO line for a material sets its price.
    - A quantity discrepancy is any difference above ``quantity_tolerance``
      (default 0); a price discrepancy is a difference above
      ``price_tolerance`` (default 0.01).
    - A material missing from the GRN counts as 0 delivered; a material
      missing from the PO is reported as an unordered line.
    - Matching never blocks anything.  It only reports.

Failure modes:
    - ValueError if the invoice has no lines.
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from procurement_engines.tracer import traced_engine
from procurement_kernel.logging_config import get_logger

logger = get_logger("engines.matching")

ZERO = Decimal("0")


class MatchVerdict(str, Enum):
    VERIFIED = "verified"
    VARIANCE_REVIEW = "variance_review"


class MatchVarianceKind(str, Enum):
    QUANTITY = "quantity"
    PRICE = "price"
    NOT_ORDERED = "not_ordered"


@dataclass(frozen=True)
class MatchTolerance:
    quantity_tolerance: Decimal = Decimal("0")
    price_tolerance: Decimal = Decimal("0.01")


@dataclass(frozen=True)
class InvoiceLineFacts:
    material_id: str
    quantity: Decimal
    unit_price: Decimal


@dataclass(frozen=True)
class OrderLineFacts:
    material_id: str
    quantity: Decimal
    unit_price: Decimal


@dataclass(frozen=True)
class ReceiptLineFacts:
    material_id: str
    delivered_quantity: Decimal


@dataclass(frozen=True)
class MatchVariance:
    """One discrepancy found on an invoice line."""

    material_id: str
    kind: MatchVarianceKind
    expected: Decimal
    actual: Decimal

    @property
    def difference(self) -> Decimal:
        return abs(self.actual - self.expected)


@dataclass(frozen=True)
class ThreeWayMatchResult:
    variances: tuple[MatchVariance, ...]
    lines_checked: int

    @property
    def has_variances(self) -> bool:
        return bool(self.variances)

    @property
    def verdict(self) -> MatchVerdict:
        if self.variances:
            return MatchVerdict.VARIANCE_REVIEW
        return MatchVerdict.VERIFIED


class ThreeWayMatcher:
    """
    Pure invoice/PO/GRN comparison.

    Contract:
        No I/O, no clock, fully deterministic.
    Non-goals:
        Does not persist the result or change any document status; the
        billing service does.
    """

    @traced_engine(
        "three_way_match", "1.0",
        fingerprint_fields=("invoice_lines", "order_lines", "receipt_lines"),
    )
    def match(
        self,
        *,
        invoice_lines: Sequence[InvoiceLineFacts],
        order_lines: Sequence[OrderLineFacts],
        receipt_lines: Sequence[ReceiptLineFacts],
        tolerance: MatchTolerance | None = None,
    ) -> ThreeWayMatchResult:
        if not invoice_lines:
            raise ValueError("Invoice has no lines to match")
        tolerance = tolerance or MatchTolerance()
        t0 = time.monotonic()

        ordered_price: dict[str, Decimal] = {}
        for line in order_lines:
            ordered_price.setdefault(line.material_id, line.unit_price)

        delivered: dict[str, Decimal] = {}
        for line in receipt_lines:
            delivered[line.material_id] = (
                delivered.get(line.material_id, ZERO) + line.delivered_quantity
            )

        variances: list[MatchVariance] = []
        for line in invoice_lines:
            received = delivered.get(line.material_id, ZERO)
            if abs(line.quantity - received) > tolerance.quantity_tolerance:
                variances.append(MatchVariance(
                    material_id=line.material_id,
                    kind=MatchVarianceKind.QUANTITY,
                    expected=received,
                    actual=line.quantity,
                ))

            agreed = ordered_price.get(line.material_id)
            if agreed is None:
                variances.append(MatchVariance(
                    material_id=line.material_id,
                    kind=MatchVarianceKind.NOT_ORDERED,
                    expected=ZERO,
                    actual=line.unit_price,
                ))
            elif abs(line.unit_price - agreed) > tolerance.price_tolerance:
                variances.append(MatchVariance(
                    material_id=line.material_id,
                    kind=MatchVarianceKind.PRICE,
                    expected=agreed,
                    actual=line.unit_price,
                ))

        result = ThreeWayMatchResult(
            variances=tuple(variances),
            lines_checked=len(invoice_lines),
        )
        logger.info("three_way_match_completed", extra={
            "lines_checked": result.lines_checked,
            "variance_count": len(result.variances),
            "verdict": result.verdict.value,
            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
        })
        return result
