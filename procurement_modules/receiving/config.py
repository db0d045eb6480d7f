"""
Receiving Configuration Schema.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Self

from procurement_kernel.logging_config import get_logger
from procurement_modules.stock.models import MaterialCategory

logger = get_logger("modules.receiving.config")


@dataclass
class ReceivingConfig:
    """
    Configuration schema for receiving and QC.

        config = ReceivingConfig(variance_warning_percent=Decimal("2.5"))
    """

    # Absolute variance percent above which a GRN line raises a warning.
    # Warnings never block GRN creation.
    variance_warning_percent: Decimal = Decimal("5")

    # Stock namespace for GRNs whose header does not name one
    default_category: MaterialCategory = MaterialCategory.PACKING

    def __post_init__(self):
        self.variance_warning_percent = Decimal(str(self.variance_warning_percent))
        if not isinstance(self.default_category, MaterialCategory):
            self.default_category = MaterialCategory(self.default_category)
        if self.variance_warning_percent < 0:
            raise ValueError("variance_warning_percent must be non-negative")
        logger.info(
            "receiving_config_initialized",
            extra={
                "variance_warning_percent": str(self.variance_warning_percent),
                "default_category": self.default_category.value,
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        logger.info("receiving_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        logger.info(
            "receiving_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        return cls(**data)
