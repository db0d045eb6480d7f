"""
Billing Module (``procurement_modules.billing``).

Responsibility
--------------
Invoices generated from approved GRNs, three-way matching against the
purchase order and GRN, and payment posting with invoice roll-up.
"""

from procurement_modules.billing.config import BillingConfig
from procurement_modules.billing.models import (
    Invoice,
    InvoiceLine,
    InvoiceStatus,
    InvoiceTotals,
    Payment,
    PaymentMethod,
    PaymentStatus,
    compute_totals,
    payment_status_for,
)
from procurement_modules.billing.workflows import INVOICE_WORKFLOW, PAYMENT_WORKFLOW

__all__ = [
    "BillingConfig",
    "Invoice",
    "InvoiceLine",
    "InvoiceStatus",
    "InvoiceTotals",
    "Payment",
    "PaymentMethod",
    "PaymentStatus",
    "compute_totals",
    "payment_status_for",
    "INVOICE_WORKFLOW",
    "PAYMENT_WORKFLOW",
]
