"""
Stock Configuration Schema.

Defines the structure and sensible defaults for stock ledger settings.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Self

from procurement_kernel.logging_config import get_logger

logger = get_logger("modules.stock.config")


@dataclass
class StockConfig:
    """
    Configuration schema for the stock ledger.

        config = StockConfig(critical_ratio=Decimal("0.25"))
    """

    # Low-stock alerts: critical at or below this fraction of reorder level
    critical_ratio: Decimal = Decimal("0.5")

    # Stock report: "medium" up to this multiple of reorder level
    medium_multiplier: Decimal = Decimal("2")

    dispatch_reason_template: str = "Dispatched to Packing Area - {destination}"

    def __post_init__(self):
        self.critical_ratio = Decimal(str(self.critical_ratio))
        self.medium_multiplier = Decimal(str(self.medium_multiplier))
        if not Decimal("0") < self.critical_ratio <= Decimal("1"):
            raise ValueError("critical_ratio must be in (0, 1]")
        if self.medium_multiplier < Decimal("1"):
            raise ValueError("medium_multiplier must be at least 1")
        logger.info(
            "stock_config_initialized",
            extra={
                "critical_ratio": str(self.critical_ratio),
                "medium_multiplier": str(self.medium_multiplier),
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        logger.info("stock_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """Create config from dictionary (e.g., loaded from a YAML file)."""
        logger.info(
            "stock_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        return cls(**data)
