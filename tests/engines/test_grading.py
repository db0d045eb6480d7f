"""
Tests for supplier grading.

Covers:
- Grade points and letter floors
- Average defect rate over the observations that carry one
- Ungraded suppliers
- Ranking order
"""

from decimal import Decimal

import pytest

from procurement_engines.grading import (
    NOT_GRADED,
    QualityObservation,
    SupplierGrader,
    grade_points,
    letter_for,
)


class TestGradeHelpers:

    @pytest.mark.parametrize("grade,points", [("A", 4), ("b", 3), (" C ", 2), ("D", 1)])
    def test_grade_points(self, grade, points):
        assert grade_points(grade) == points

    def test_unknown_grade(self):
        with pytest.raises(ValueError, match="Unknown quality grade"):
            grade_points("E")

    @pytest.mark.parametrize("average,letter", [
        ("4", "A"), ("3.5", "A"), ("3.49", "B"), ("2.5", "B"),
        ("2.0", "C"), ("1.5", "C"), ("1.49", "D"), ("1", "D"),
    ])
    def test_letter_floors(self, average, letter):
        assert letter_for(Decimal(average)) == letter


class TestSupplierGrader:

    def setup_method(self):
        self.grader = SupplierGrader()

    def test_average_grade(self):
        grade = self.grader.grade(
            supplier_id="sup-s",
            observations=[
                QualityObservation("A", Decimal("1")),
                QualityObservation("B", Decimal("3")),
                QualityObservation("A"),
            ],
        )

        assert grade.average_points == Decimal("3.67")
        assert grade.grade == "A"
        assert grade.total_deliveries == 3
        assert grade.average_defect_rate == Decimal("2.00")
        assert grade.label == "A"

    def test_no_observations(self):
        grade = self.grader.grade(supplier_id="sup-new", observations=[])

        assert grade.is_graded is False
        assert grade.label == NOT_GRADED
        assert grade.average_defect_rate is None

    def test_rank_best_first_ungraded_last(self):
        good = self.grader.grade(supplier_id="s-good", observations=[QualityObservation("A")])
        poor = self.grader.grade(supplier_id="s-poor", observations=[QualityObservation("D")])
        new = self.grader.grade(supplier_id="s-new", observations=[])

        ranked = SupplierGrader.rank([new, poor, good])

        assert [g.supplier_id for g in ranked] == ["s-good", "s-poor", "s-new"]

    def test_rank_ties_prefer_more_deliveries(self):
        one = self.grader.grade(supplier_id="s-one", observations=[QualityObservation("B")])
        two = self.grader.grade(
            supplier_id="s-two",
            observations=[QualityObservation("B"), QualityObservation("B")],
        )
        assert [g.supplier_id for g in SupplierGrader.rank([one, two])] == ["s-two", "s-one"]
