"""
Billing Configuration Schema.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Self

from procurement_kernel.logging_config import get_logger

logger = get_logger("modules.billing.config")


@dataclass
class BillingConfig:
    """
    Configuration schema for invoicing and payments.

        config = BillingConfig(tax_rate=Decimal("0.15"))
    """

    # Applied to the GRN subtotal at invoice generation
    tax_rate: Decimal = Decimal("0.10")

    # Three-way match tolerances (absolute)
    price_tolerance: Decimal = Decimal("0.01")
    quantity_tolerance: Decimal = Decimal("0")

    # Reject payments larger than the invoice's remaining amount
    enforce_remaining_ceiling: bool = True

    def __post_init__(self):
        self.tax_rate = Decimal(str(self.tax_rate))
        self.price_tolerance = Decimal(str(self.price_tolerance))
        self.quantity_tolerance = Decimal(str(self.quantity_tolerance))
        if not Decimal("0") <= self.tax_rate < Decimal("1"):
            raise ValueError("tax_rate must be in [0, 1)")
        if self.price_tolerance < 0 or self.quantity_tolerance < 0:
            raise ValueError("match tolerances must be non-negative")
        logger.info(
            "billing_config_initialized",
            extra={
                "tax_rate": str(self.tax_rate),
                "price_tolerance": str(self.price_tolerance),
                "enforce_remaining_ceiling": self.enforce_remaining_ceiling,
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        logger.info("billing_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        logger.info(
            "billing_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        return cls(**data)
