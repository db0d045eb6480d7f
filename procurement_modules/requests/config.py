"""
Request Configuration Schema.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Self

from procurement_kernel.logging_config import get_logger

logger = get_logger("modules.requests.config")


@dataclass
class RequestConfig:
    """
    Configuration schema for the request approval chain.

    Director sign-off is always required unless a threshold is supplied:

        config = RequestConfig(director_signoff_threshold=Decimal("5000.00"))

    With a threshold, a *product* request whose estimated value (every line
    carrying an estimated unit price) is strictly below it is finalized by
    the operations head.
    """

    director_signoff_threshold: Decimal | None = None

    def __post_init__(self):
        if self.director_signoff_threshold is not None:
            self.director_signoff_threshold = Decimal(str(self.director_signoff_threshold))
            if self.director_signoff_threshold <= Decimal("0"):
                raise ValueError("director_signoff_threshold must be positive")
        logger.info(
            "request_config_initialized",
            extra={
                "director_signoff_threshold": (
                    str(self.director_signoff_threshold)
                    if self.director_signoff_threshold is not None else None
                ),
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        logger.info("request_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        logger.info(
            "request_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        return cls(**data)
