"""
Purchase Preparation Module (``procurement_modules.preparation``).

Responsibility
--------------
Supplier sourcing for approved request lines: assignment or balanced
multi-supplier allocation, purchase order issue, delivery marking, and
supplier grading over QC history.
"""

from procurement_modules.preparation.config import PreparationConfig
from procurement_modules.preparation.models import (
    AllocationLine,
    DeliveryHandle,
    DeliveryRecord,
    DeliverySplit,
    PreparationStatus,
    PurchaseOrder,
    PurchaseOrderLine,
    PurchaseOrderStatus,
    PurchasePreparation,
    RequestAllocation,
    SupplierAssignment,
    apportion_delivery,
)
from procurement_modules.preparation.workflows import PREPARATION_WORKFLOW

__all__ = [
    "AllocationLine",
    "DeliveryHandle",
    "DeliveryRecord",
    "DeliverySplit",
    "PreparationStatus",
    "PurchaseOrder",
    "PurchaseOrderLine",
    "PurchaseOrderStatus",
    "PurchasePreparation",
    "RequestAllocation",
    "SupplierAssignment",
    "apportion_delivery",
    "PreparationConfig",
    "PREPARATION_WORKFLOW",
]
