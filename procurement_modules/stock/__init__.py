"""
Stock Module (``procurement_modules.stock``).

Responsibility
--------------
Append-only stock movements and the per-material quantity projection for
raw and packing materials, plus dispatch, low-stock alerts, and the stock
report.
"""

from procurement_modules.stock.config import StockConfig
from procurement_modules.stock.models import (
    AlertSeverity,
    Dispatch,
    DispatchItem,
    LowStockAlert,
    MaterialCategory,
    MaterialMaster,
    MovementDirection,
    MovementRefs,
    StockLevel,
    StockMovement,
    StockReportLine,
    StockStatus,
    replay_quantity,
)

__all__ = [
    "AlertSeverity",
    "Dispatch",
    "DispatchItem",
    "LowStockAlert",
    "MaterialCategory",
    "MaterialMaster",
    "MovementDirection",
    "MovementRefs",
    "StockLevel",
    "StockMovement",
    "StockReportLine",
    "StockStatus",
    "StockConfig",
    "replay_quantity",
]
