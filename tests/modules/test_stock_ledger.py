"""
Tests for StockLedger.

Covers:
- Inbound and outbound movements and the quantity projection
- Outbound clamping at zero
- Raw and packing namespaces kept apart
- Dispatch to the packing area
- Projection rebuild from the movement log
- Material master, low-stock alerts, stock report
"""

from decimal import Decimal

import pytest

from procurement_kernel.exceptions import NotFoundError, ValidationError
from procurement_modules.stock import (
    AlertSeverity,
    DispatchItem,
    MaterialCategory,
    MaterialMaster,
    MovementDirection,
    MovementRefs,
    StockConfig,
    StockStatus,
    replay_quantity,
)

RAW = MaterialCategory.RAW
PACKING = MaterialCategory.PACKING
IN = MovementDirection.IN
OUT = MovementDirection.OUT


class TestMovements:

    def test_inbound_raises_projection(self, suite, requester):
        movement = suite.stock.record_movement(
            RAW, "mat-1", IN, Decimal("480"), "GRN GRN20240001 approved", requester,
            MovementRefs(supplier_id="sup-s", unit_price=Decimal("120.00")),
        )

        assert movement.id
        assert movement.quantity_before == Decimal("0")
        assert movement.quantity_after == Decimal("480")
        level = suite.stock.get_level(RAW, "mat-1")
        assert level.quantity == Decimal("480")
        assert level.last_supplier_id == "sup-s"
        assert level.last_unit_price == Decimal("120.00")

    def test_outbound_lowers_projection(self, suite, requester):
        suite.stock.record_movement(RAW, "mat-1", IN, "100", "receipt", requester)
        suite.stock.record_movement(RAW, "mat-1", OUT, "30", "issue", requester)

        assert suite.stock.current_quantity(RAW, "mat-1") == Decimal("70")

    def test_outbound_clamps_at_zero(self, suite, requester, captured_logs):
        suite.stock.record_movement(RAW, "mat-1", IN, "10", "receipt", requester)

        movement = suite.stock.record_movement(RAW, "mat-1", OUT, "25", "issue", requester)

        assert movement.quantity_after == Decimal("0")
        assert suite.stock.current_quantity(RAW, "mat-1") == Decimal("0")
        [record] = [r for r in captured_logs() if r["message"] == "stock_dispatch_clamped"]
        assert record["requested"] == "25"
        assert record["available"] == "10"

    @pytest.mark.parametrize("quantity", ["0", "-3"])
    def test_quantity_must_be_positive(self, suite, requester, quantity):
        with pytest.raises(ValidationError):
            suite.stock.record_movement(RAW, "mat-1", IN, quantity, "receipt", requester)
        assert suite.stock.get_movements(RAW) == []

    def test_reason_required(self, suite, requester):
        with pytest.raises(ValidationError):
            suite.stock.record_movement(RAW, "mat-1", IN, "1", "", requester)

    def test_namespaces_are_separate(self, suite, requester):
        suite.stock.record_movement(RAW, "mat-1", IN, "5", "receipt", requester)

        assert suite.stock.current_quantity(PACKING, "mat-1") == Decimal("0")
        assert suite.stock.get_movements(PACKING) == []

    def test_movements_in_recorded_order(self, suite, requester):
        for direction, quantity in ((IN, "10"), (OUT, "4"), (IN, "7")):
            suite.stock.record_movement(PACKING, "mat-2", direction, quantity, "m", requester)
        suite.stock.record_movement(PACKING, "mat-3", IN, "1", "m", requester)

        movements = suite.stock.get_movements(PACKING, "mat-2")

        assert [m.signed_quantity for m in movements] == [
            Decimal("10"), Decimal("-4"), Decimal("7"),
        ]
        assert replay_quantity(movements) == suite.stock.current_quantity(PACKING, "mat-2")


class TestRebuildProjection:

    def test_no_drift(self, suite, requester):
        suite.stock.record_movement(RAW, "mat-1", IN, "12", "receipt", requester)
        assert suite.stock.rebuild_projection(RAW, "mat-1") == Decimal("12")

    def test_repairs_drift(self, suite, store, requester, captured_logs):
        suite.stock.record_movement(RAW, "mat-1", IN, "12", "receipt", requester)
        store.patch(f"{RAW.stock_collection}/mat-1", {"currentStock": "99"})

        assert suite.stock.rebuild_projection(RAW, "mat-1") == Decimal("12")
        assert suite.stock.current_quantity(RAW, "mat-1") == Decimal("12")
        assert any(r["message"] == "stock_projection_drift" for r in captured_logs())


class TestDispatch:

    def test_dispatch_issues_outbound_movements(self, suite, requester, notifier):
        suite.stock.record_movement(PACKING, "mat-bottle", IN, "1000", "receipt", requester)
        suite.stock.record_movement(PACKING, "mat-cap", IN, "1000", "receipt", requester)

        dispatch = suite.stock.dispatch(
            PACKING,
            [
                DispatchItem("mat-bottle", Decimal("400"), "1L Bottle"),
                DispatchItem("mat-cap", Decimal("400"), "Cap"),
            ],
            "Line 2",
            requester,
            request_id="req-9",
        )

        assert dispatch.dispatch_number == "DSP20240001"
        assert len(dispatch.movement_ids) == 2
        assert suite.stock.current_quantity(PACKING, "mat-bottle") == Decimal("600")
        outbound = [m for m in suite.stock.get_movements(PACKING) if m.direction is OUT]
        assert {m.reason for m in outbound} == {"Dispatched to Packing Area - Line 2"}
        assert {m.refs.reference_id for m in outbound} == {"DSP20240001"}
        assert [(n.recipient, n.message_kind) for n in notifier.sent] == [
            ("ProductionManager", "stock_dispatched"),
        ]

    def test_destination_required(self, suite, requester):
        with pytest.raises(ValidationError):
            suite.stock.dispatch(PACKING, [DispatchItem("m", Decimal("1"))], " ", requester)

    def test_items_required(self, suite, requester):
        with pytest.raises(ValidationError):
            suite.stock.dispatch(PACKING, [], "Line 1", requester)

    def test_failed_item_rolls_back_dispatch(self, suite, requester, notifier):
        suite.stock.record_movement(PACKING, "mat-bottle", IN, "10", "receipt", requester)

        with pytest.raises(ValidationError):
            suite.stock.dispatch(
                PACKING,
                [DispatchItem("mat-bottle", Decimal("5")), DispatchItem("mat-cap", Decimal("0"))],
                "Line 1",
                requester,
            )

        assert suite.stock.current_quantity(PACKING, "mat-bottle") == Decimal("10")
        assert notifier.sent == []


class TestMaterialMaster:

    def test_register_and_get(self, suite):
        suite.stock.register_material(
            RAW, MaterialMaster("mat-1", "Caustic Soda", "kg", Decimal("100"), Decimal("118")),
        )

        material = suite.stock.get_material(RAW, "mat-1")
        assert material.name == "Caustic Soda"
        assert material.reorder_level == Decimal("100")
        assert [m.material_id for m in suite.stock.list_materials(RAW)] == ["mat-1"]

    def test_unknown_material(self, suite):
        with pytest.raises(NotFoundError):
            suite.stock.get_material(RAW, "nope")

    def test_negative_reorder_level(self, suite):
        with pytest.raises(ValidationError):
            suite.stock.register_material(
                RAW, MaterialMaster("mat-1", "X", "kg", Decimal("-1")),
            )


class TestLowStockAndReport:

    def setup_method(self):
        self.materials = [
            MaterialMaster("m-critical", "Critical", "kg", Decimal("100")),
            MaterialMaster("m-warning", "Warning", "kg", Decimal("100")),
            MaterialMaster("m-medium", "Medium", "kg", Decimal("100"), Decimal("2.00")),
            MaterialMaster("m-good", "Good", "kg", Decimal("100")),
            MaterialMaster("m-untracked", "Untracked", "kg", Decimal("0")),
        ]
        self.quantities = {
            "m-critical": "40", "m-warning": "80", "m-medium": "150", "m-good": "500",
        }

    def _stock(self, suite, actor):
        for material in self.materials:
            suite.stock.register_material(RAW, material)
        for material_id, quantity in self.quantities.items():
            suite.stock.record_movement(RAW, material_id, IN, quantity, "opening", actor)

    def test_low_stock_alerts(self, suite, requester):
        self._stock(suite, requester)

        alerts = suite.stock.get_low_stock_alerts(RAW)

        assert [(a.material_id, a.severity) for a in alerts] == [
            ("m-critical", AlertSeverity.CRITICAL),
            ("m-warning", AlertSeverity.WARNING),
        ]

    def test_critical_boundary_is_inclusive(self, suite, requester):
        suite.stock.register_material(RAW, MaterialMaster("m-1", "M", "kg", Decimal("100")))
        suite.stock.record_movement(RAW, "m-1", IN, "50", "opening", requester)

        [alert] = suite.stock.get_low_stock_alerts(RAW)
        assert alert.severity is AlertSeverity.CRITICAL

    def test_stock_report(self, suite, requester):
        self._stock(suite, requester)

        report = {line.material_id: line for line in suite.stock.stock_report(RAW)}

        assert report["m-critical"].status is StockStatus.LOW
        assert report["m-medium"].status is StockStatus.MEDIUM
        assert report["m-medium"].total_value == Decimal("300.00")
        assert report["m-good"].status is StockStatus.GOOD
        assert report["m-good"].total_value == Decimal("0.00")
        assert report["m-untracked"].current_quantity == Decimal("0")

    def test_report_prefers_last_receipt_price(self, suite, requester):
        suite.stock.register_material(
            RAW, MaterialMaster("m-1", "M", "kg", Decimal("10"), Decimal("1.00")),
        )
        suite.stock.record_movement(
            RAW, "m-1", IN, "100", "receipt", requester,
            MovementRefs(unit_price=Decimal("1.50")),
        )

        [line] = suite.stock.stock_report(RAW)
        assert line.unit_price == Decimal("1.50")
        assert line.total_value == Decimal("150.00")


class TestStockConfig:

    @pytest.mark.parametrize("ratio", ["0", "1.5"])
    def test_critical_ratio_range(self, ratio):
        with pytest.raises(ValueError):
            StockConfig(critical_ratio=Decimal(ratio))

    def test_medium_multiplier_floor(self):
        with pytest.raises(ValueError):
            StockConfig(medium_multiplier=Decimal("0.5"))
