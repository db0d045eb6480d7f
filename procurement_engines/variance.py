"""
procurement_engines.variance -- Ordered vs delivered quantity variance.

Responsibility:
    Compute per-line delivery variance for a goods receipt:
    ``variance = delivered - ordered`` and
    ``variance_percent = variance / ordered * 100`` (0 when ordered is 0),
    and flag lines whose magnitude exceeds the warning threshold.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Consumed by the receiving module when a GRN is created.

Invariants enforced:
    - Identical inputs produce identical outputs; no clock access.
    - The warning is advisory: the calculator never raises for a large
      variance.
    - Percentages are rounded to 2 places (HALF_UP) for storage; the
      threshold comparison uses the unrounded value.

Failure modes:
    - ValueError if a quantity is negative.

Usage:
    calculator = DeliveryVarianceCalculator()
    result = calculator.compute(
        lines=[DeliveryLineInput("m-1", Decimal("500"), Decimal("480"))],
        warning_percent=Decimal("5"),
    )
    result.lines[0].variance          # Decimal("-20")
    result.lines[0].variance_percent  # Decimal("-4.00")
    result.has_warning                # False
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from procurement_engines.tracer import traced_engine

HUNDRED = Decimal("100")
ZERO = Decimal("0")


@dataclass(frozen=True)
class DeliveryLineInput:
    material_id: str
    ordered_quantity: Decimal
    delivered_quantity: Decimal


@dataclass(frozen=True)
class DeliveryLineVariance:
    """Variance of one GRN line."""

    material_id: str
    ordered_quantity: Decimal
    delivered_quantity: Decimal
    variance: Decimal
    variance_percent: Decimal
    exceeds_threshold: bool

    @property
    def is_over_delivery(self) -> bool:
        return self.variance > ZERO

    @property
    def is_short_delivery(self) -> bool:
        return self.variance < ZERO

    @property
    def is_exact(self) -> bool:
        return self.variance == ZERO


@dataclass(frozen=True)
class DeliveryVarianceResult:
    lines: tuple[DeliveryLineVariance, ...]
    warning_percent: Decimal

    @property
    def variances(self) -> tuple[DeliveryLineVariance, ...]:
        """Lines whose delivered quantity differs from ordered."""
        return tuple(line for line in self.lines if not line.is_exact)

    @property
    def warnings(self) -> tuple[DeliveryLineVariance, ...]:
        return tuple(line for line in self.lines if line.exceeds_threshold)

    @property
    def has_warning(self) -> bool:
        return any(line.exceeds_threshold for line in self.lines)


class DeliveryVarianceCalculator:
    """
    Pure calculator for GRN delivery variances.

    Contract:
        No I/O, fully deterministic.
    Guarantees:
        - One output line per input line, in input order.
        - ``exceeds_threshold`` iff ``|variance_percent| > warning_percent``.
    """

    @staticmethod
    def line_variance(
        line: DeliveryLineInput,
        warning_percent: Decimal,
    ) -> DeliveryLineVariance:
        if line.ordered_quantity < ZERO or line.delivered_quantity < ZERO:
            raise ValueError(
                f"Quantities must be non-negative for material {line.material_id}"
            )
        variance = line.delivered_quantity - line.ordered_quantity
        if line.ordered_quantity == ZERO:
            percent = ZERO
        else:
            percent = variance / line.ordered_quantity * HUNDRED
        return DeliveryLineVariance(
            material_id=line.material_id,
            ordered_quantity=line.ordered_quantity,
            delivered_quantity=line.delivered_quantity,
            variance=variance,
            variance_percent=percent.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP),
            exceeds_threshold=abs(percent) > warning_percent,
        )

    @traced_engine(
        "delivery_variance", "1.0",
        fingerprint_fields=("lines", "warning_percent"),
    )
    def compute(
        self,
        *,
        lines: list[DeliveryLineInput] | tuple[DeliveryLineInput, ...],
        warning_percent: Decimal,
    ) -> DeliveryVarianceResult:
        return DeliveryVarianceResult(
            lines=tuple(self.line_variance(line, warning_percent) for line in lines),
            warning_percent=warning_percent,
        )
