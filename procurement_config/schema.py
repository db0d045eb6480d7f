"""
Settings schema (``procurement_config.schema``).

The bundle of per-module configuration objects a ``ProcurementSuite`` is
built from, plus the identity of the file it came from.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from procurement_modules.billing.config import BillingConfig
from procurement_modules.preparation.config import PreparationConfig
from procurement_modules.receiving.config import ReceivingConfig
from procurement_modules.requests.config import RequestConfig
from procurement_modules.stock.config import StockConfig

SECTIONS = ("requests", "preparation", "receiving", "stock", "billing")


@dataclass(frozen=True)
class ProcurementSettings:
    """
    Contract:
        ``checksum`` is the SHA-256 of the canonical form of the source
        mapping; identical files always give identical checksums.
    """

    config_id: str = "default"
    version: int = 1
    checksum: str = ""
    requests: RequestConfig = field(default_factory=RequestConfig)
    preparation: PreparationConfig = field(default_factory=PreparationConfig)
    receiving: ReceivingConfig = field(default_factory=ReceivingConfig)
    stock: StockConfig = field(default_factory=StockConfig)
    billing: BillingConfig = field(default_factory=BillingConfig)
