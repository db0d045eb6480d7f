"""
procurement_engines.grading -- Supplier quality grade from QC history.

Responsibility:
    Aggregate a supplier's QC observations into an average grade, a
    delivery count, and an average defect rate, and rank suppliers for
    assignment choices.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Grade points: A=4, B=3, C=2, D=1.  The average maps back to a letter
      at the half-point boundaries (>= 3.5 is A, >= 2.5 is B, >= 1.5 is C).
    - A supplier with no history has no grade and is ranked last.
    - Ranking is stable: ties on average points break on delivery count,
      then on supplier id.

Failure modes:
    - ValueError on a grade letter outside A-D.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from procurement_engines.tracer import traced_engine

GRADE_POINTS: dict[str, int] = {"A": 4, "B": 3, "C": 2, "D": 1}

_LETTER_FLOORS: tuple[tuple[Decimal, str], ...] = (
    (Decimal("3.5"), "A"),
    (Decimal("2.5"), "B"),
    (Decimal("1.5"), "C"),
    (Decimal("0"), "D"),
)

NOT_GRADED = "Not graded yet"


@dataclass(frozen=True)
class QualityObservation:
    grade: str
    defect_rate: Decimal | None = None


@dataclass(frozen=True)
class SupplierGrade:
    supplier_id: str
    grade: str | None
    average_points: Decimal
    total_deliveries: int
    average_defect_rate: Decimal | None

    @property
    def is_graded(self) -> bool:
        return self.grade is not None

    @property
    def label(self) -> str:
        return self.grade if self.grade is not None else NOT_GRADED


def grade_points(grade: str) -> int:
    try:
        return GRADE_POINTS[grade.strip().upper()]
    except (KeyError, AttributeError):
        raise ValueError(f"Unknown quality grade: {grade!r}") from None


def letter_for(average_points: Decimal) -> str:
    for floor, letter in _LETTER_FLOORS:
        if average_points >= floor:
            return letter
    return "D"


class SupplierGrader:
    """Pure supplier grading."""

    @traced_engine("supplier_grade", "1.0", fingerprint_fields=("supplier_id", "observations"))
    def grade(
        self,
        *,
        supplier_id: str,
        observations: Sequence[QualityObservation],
    ) -> SupplierGrade:
        if not observations:
            return SupplierGrade(
                supplier_id=supplier_id,
                grade=None,
                average_points=Decimal("0"),
                total_deliveries=0,
                average_defect_rate=None,
            )
        total = sum(grade_points(o.grade) for o in observations)
        average = (Decimal(total) / Decimal(len(observations))).quantize(
            Decimal("0.01"), rounding=ROUND_HALF_UP,
        )
        rates = [o.defect_rate for o in observations if o.defect_rate is not None]
        average_rate = None
        if rates:
            average_rate = (sum(rates, Decimal("0")) / Decimal(len(rates))).quantize(
                Decimal("0.01"), rounding=ROUND_HALF_UP,
            )
        return SupplierGrade(
            supplier_id=supplier_id,
            grade=letter_for(average),
            average_points=average,
            total_deliveries=len(observations),
            average_defect_rate=average_rate,
        )

    @staticmethod
    def rank(grades: Sequence[SupplierGrade]) -> list[SupplierGrade]:
        """Best first; ungraded suppliers last."""
        return sorted(
            grades,
            key=lambda g: (
                0 if g.is_graded else 1,
                -g.average_points,
                -g.total_deliveries,
                g.supplier_id,
            ),
        )
