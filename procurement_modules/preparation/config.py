"""
Purchase Preparation Configuration Schema.
"""

from dataclasses import dataclass
from typing import Self

from procurement_kernel.logging_config import get_logger

logger = get_logger("modules.preparation.config")


@dataclass
class PreparationConfig:
    """
    Configuration schema for purchase preparation.

        config = PreparationConfig(allow_over_delivery=False)
    """

    # Deliveries above the required quantity are accepted and flagged.
    # When False they are rejected at mark_delivered.
    allow_over_delivery: bool = True

    default_packaging_condition: str = "good"

    # Characters of the material name used in generated batch numbers
    batch_prefix_length: int = 3

    def __post_init__(self):
        if self.batch_prefix_length < 1:
            raise ValueError("batch_prefix_length must be at least 1")
        logger.info(
            "preparation_config_initialized",
            extra={
                "allow_over_delivery": self.allow_over_delivery,
                "default_packaging_condition": self.default_packaging_condition,
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        logger.info("preparation_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        logger.info(
            "preparation_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        return cls(**data)
