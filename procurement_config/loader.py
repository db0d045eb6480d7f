"""
Configuration Loader (``procurement_config.loader``).

Responsibility
--------------
Loads a YAML settings file and parses it into ``ProcurementSettings``:
one section per module, each handed to that module's config
``from_dict``.

Invariants enforced
-------------------
* Unknown top-level sections are rejected; a typo never silently falls
  back to a default.
* ``compute_checksum`` is deterministic for identical input.

Failure modes
-------------
* Missing file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown section or key, or an invalid value  -> ``ValueError`` /
  ``TypeError`` from the module config.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from procurement_config.schema import SECTIONS, ProcurementSettings
from procurement_modules.billing.config import BillingConfig
from procurement_modules.preparation.config import PreparationConfig
from procurement_modules.receiving.config import ReceivingConfig
from procurement_modules.requests.config import RequestConfig
from procurement_modules.stock.config import StockConfig

_META_KEYS = ("config_id", "version")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_settings(data: dict[str, Any]) -> ProcurementSettings:
    """Build ``ProcurementSettings`` from a parsed settings mapping."""
    unknown = sorted(set(data) - set(SECTIONS) - set(_META_KEYS))
    if unknown:
        raise ValueError(f"Unknown settings sections: {', '.join(unknown)}")

    def section(name: str) -> dict[str, Any]:
        value = data.get(name) or {}
        if not isinstance(value, dict):
            raise ValueError(f"Settings section '{name}' must be a mapping")
        return value

    return ProcurementSettings(
        config_id=str(data.get("config_id", "default")),
        version=int(data.get("version", 1)),
        checksum=compute_checksum(data),
        requests=RequestConfig.from_dict(section("requests")),
        preparation=PreparationConfig.from_dict(section("preparation")),
        receiving=ReceivingConfig.from_dict(section("receiving")),
        stock=StockConfig.from_dict(section("stock")),
        billing=BillingConfig.from_dict(section("billing")),
    )
