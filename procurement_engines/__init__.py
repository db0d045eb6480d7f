"""
Module: procurement_engines
Responsibility:
    Re-exports the pure calculation engines used by the procurement
    modules.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    MUST NOT import procurement_modules or procurement_services.

Invariants enforced:
    - Determinism: identical inputs always produce identical outputs.
    - Decimal-only arithmetic.

Usage:
    from procurement_engines.variance import DeliveryVarianceCalculator
    from procurement_engines.matching import ThreeWayMatcher
    from procurement_engines.grading import SupplierGrader
"""

from procurement_engines.grading import (
    QualityObservation,
    SupplierGrade,
    SupplierGrader,
)
from procurement_engines.matching import (
    InvoiceLineFacts,
    MatchTolerance,
    MatchVariance,
    MatchVarianceKind,
    MatchVerdict,
    OrderLineFacts,
    ReceiptLineFacts,
    ThreeWayMatcher,
    ThreeWayMatchResult,
)
from procurement_engines.tracer import traced_engine
from procurement_engines.variance import (
    DeliveryLineInput,
    DeliveryLineVariance,
    DeliveryVarianceCalculator,
    DeliveryVarianceResult,
)

__all__ = [
    "DeliveryLineInput",
    "DeliveryLineVariance",
    "DeliveryVarianceCalculator",
    "DeliveryVarianceResult",
    "InvoiceLineFacts",
    "MatchTolerance",
    "MatchVariance",
    "MatchVarianceKind",
    "MatchVerdict",
    "OrderLineFacts",
    "ReceiptLineFacts",
    "ThreeWayMatcher",
    "ThreeWayMatchResult",
    "QualityObservation",
    "SupplierGrade",
    "SupplierGrader",
    "traced_engine",
]
