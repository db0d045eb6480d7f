"""
procurement_config -- entrypoint for procurement settings.

Responsibility:
    ``load_settings()`` is the one way to obtain settings at runtime.  It
    reads a YAML file (the packaged ``defaults.yaml`` unless a path is
    given) and returns a validated ``ProcurementSettings`` bundle.

Architecture position:
    Configuration.  Sits above ``procurement_modules`` (whose config
    dataclasses it instantiates) and below ``procurement_services``.  The
    kernel never imports from this package.

Failure modes:
    - ``FileNotFoundError`` -- the settings file does not exist.
    - ``yaml.YAMLError`` -- the file is not valid YAML.
    - ``ValueError`` -- unknown section or invalid value.

Audit relevance:
    Every successful call emits a ``PROCUREMENT_CONFIG_TRACE`` log entry
    with the config id, version, and checksum.
"""

from __future__ import annotations

from pathlib import Path

from procurement_config.loader import compute_checksum, load_yaml_file, parse_settings
from procurement_config.schema import ProcurementSettings
from procurement_kernel.logging_config import get_logger

logger = get_logger("config")

DEFAULT_SETTINGS_FILE = Path(__file__).parent / "defaults.yaml"


def load_settings(path: Path | str | None = None) -> ProcurementSettings:
    """Load and validate procurement settings from YAML."""
    source = Path(path) if path is not None else DEFAULT_SETTINGS_FILE
    settings = parse_settings(load_yaml_file(source))
    logger.info(
        "PROCUREMENT_CONFIG_TRACE",
        extra={
            "trace_type": "PROCUREMENT_CONFIG_TRACE",
            "config_id": settings.config_id,
            "config_version": settings.version,
            "checksum": settings.checksum,
            "source": str(source),
        },
    )
    return settings


__all__ = [
    "DEFAULT_SETTINGS_FILE",
    "ProcurementSettings",
    "compute_checksum",
    "load_settings",
    "load_yaml_file",
    "parse_settings",
]
