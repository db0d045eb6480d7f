"""
procurement_engines.tracer -- PROCUREMENT_ENGINE_TRACE for pure engine calls.

Responsibility:
    ``@traced_engine`` wraps a pure calculation (delivery variance, three-way
    match, supplier grading) and logs one trace record per call: engine
    name and version, a fingerprint of the named inputs, the call duration
    and the current LogContext (who triggered it, on which document).

Architecture position:
    Engines -- the only logging the pure layer does.  Engines still take
    and return values only; the decorator never touches their inputs.

Invariants enforced:
    - The fingerprint depends only on the named arguments' values, whether
      they were passed positionally or by keyword.  Mappings are ordered by
      key, dataclasses by field, Decimals keep their exponent, Enums use
      their value.  The digest is SHA-256 truncated to 16 hex chars.

Failure modes:
    - A fingerprint field the engine does not accept raises ``TypeError`` at
      decoration time.
"""

from __future__ import annotations

import dataclasses
import functools
import hashlib
import inspect
import time
from collections.abc import Callable, Mapping
from decimal import Decimal
from enum import Enum
from typing import Any

from procurement_kernel.logging_config import get_logger

logger = get_logger("engines.tracer")

FINGERPRINT_LENGTH = 16


def _canonicalize(value: Any) -> str:
    """Stable text form of an engine input."""
    if value is None:
        return "null"
    if isinstance(value, Enum):
        return _canonicalize(value.value)
    if isinstance(value, bool | int | Decimal | str):
        return str(value)
    if isinstance(value, Mapping):
        body = ",".join(
            f"{key}:{_canonicalize(value[key])}" for key in sorted(value, key=str)
        )
        return "{" + body + "}"
    if isinstance(value, list | tuple):
        return "[" + ",".join(_canonicalize(item) for item in value) + "]"
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return type(value).__name__ + _canonicalize(
            {f.name: getattr(value, f.name) for f in dataclasses.fields(value)}
        )
    return repr(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    arguments: Mapping[str, Any],
) -> str:
    """Digest of ``field=value`` pairs for the named arguments."""
    canonical = "|".join(
        f"{name}={_canonicalize(arguments.get(name))}" for name in fingerprint_fields
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """
    Decorator emitting PROCUREMENT_ENGINE_TRACE around a pure engine call.

    Args:
        engine_name: Stable identifier, e.g. ``"delivery_variance"``.
        engine_version: Bumped when the engine's arithmetic changes.
        fingerprint_fields: Parameter names hashed into ``input_fingerprint``.
    """

    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)
        unknown = [name for name in fingerprint_fields if name not in signature.parameters]
        if unknown:
            raise TypeError(
                f"{func.__qualname__} has no parameter(s) {', '.join(unknown)} to fingerprint"
            )

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            bound = signature.bind(*args, **kwargs)
            bound.apply_defaults()
            fingerprint = (
                compute_input_fingerprint(fingerprint_fields, bound.arguments)
                if fingerprint_fields else ""
            )

            started = time.perf_counter()
            result = func(*args, **kwargs)
            elapsed_ms = round((time.perf_counter() - started) * 1000, 3)

            logger.info(
                "PROCUREMENT_ENGINE_TRACE",
                extra={
                    "trace_type": "PROCUREMENT_ENGINE_TRACE",
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": fingerprint,
                    "duration_ms": elapsed_ms,
                    "function": func.__qualname__,
                },
            )
            return result

        return wrapper

    return decorator
