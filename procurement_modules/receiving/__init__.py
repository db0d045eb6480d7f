"""
Receiving Module (``procurement_modules.receiving``).

Responsibility
--------------
Goods receipt notes with delivery variances, the QC gate that posts stock
and triggers invoicing, ad-hoc QC records, and PO receipt status.
"""

from procurement_modules.receiving.config import ReceivingConfig
from procurement_modules.receiving.models import (
    AcceptanceStatus,
    GoodsReceiptNote,
    GRNHeader,
    GRNLine,
    GRNReference,
    GRNStatus,
    QCData,
    QCGrade,
    QCRecord,
    QCSubmission,
    resolve_accepted_quantity,
)
from procurement_modules.receiving.workflows import GRN_WORKFLOW

__all__ = [
    "AcceptanceStatus",
    "GoodsReceiptNote",
    "GRNHeader",
    "GRNLine",
    "GRNReference",
    "GRNStatus",
    "QCData",
    "QCGrade",
    "QCRecord",
    "QCSubmission",
    "resolve_accepted_quantity",
    "ReceivingConfig",
    "GRN_WORKFLOW",
]
