"""
SequenceService -- yearly document numbers.

Responsibility:
    Issues human-facing document numbers of the form
    ``{prefix}{year}{counter:04d}`` (``GRN20260001``, ``INV20260001``,
    ``PAY20260001``).  The counter restarts every calendar year.

Architecture position:
    Kernel > Services.  Reads and writes ``counters/{prefix}{year}`` through
    the entity store.

Invariants enforced:
    - Monotonic, gap-free per (prefix, year) within committed units: the
      counter is read and bumped inside one ``atomic()`` unit, so a caller's
      rollback also rolls back the number.
"""

from procurement_kernel.domain.clock import Clock
from procurement_kernel.exceptions import ValidationError
from procurement_kernel.logging_config import get_logger
from procurement_kernel.store.base import EntityStore

logger = get_logger("services.sequence")

COUNTERS_COLLECTION = "counters"

GRN_PREFIX = "GRN"
INVOICE_PREFIX = "INV"
PAYMENT_PREFIX = "PAY"
PURCHASE_ORDER_PREFIX = "PO"
DISPATCH_PREFIX = "DSP"


class SequenceService:
    """
    Issues document numbers from per-year counters.

    Contract:
        ``next_number`` may be called inside a caller's unit of work; the
        increment then commits or rolls back with that unit.
    """

    def __init__(self, store: EntityStore, clock: Clock):
        self._store = store
        self._clock = clock

    def next_value(self, prefix: str, year: int | None = None) -> int:
        if not prefix or not prefix.isalnum():
            raise ValidationError("prefix", f"'{prefix}' must be alphanumeric")
        year = year or self._clock.now_utc().year
        path = f"{COUNTERS_COLLECTION}/{prefix}{year}"
        with self._store.atomic():
            current = self._store.read(path)
            value = (current or {}).get("value", 0) + 1
            self._store.write(
                path,
                {
                    "prefix": prefix,
                    "year": year,
                    "value": value,
                    "updatedAt": self._clock.now_millis(),
                },
            )
        return value

    def next_number(self, prefix: str) -> str:
        year = self._clock.now_utc().year
        value = self.next_value(prefix, year)
        number = f"{prefix}{year}{value:04d}"
        logger.debug("document_number_issued", extra={"number": number})
        return number

    def current_value(self, prefix: str, year: int) -> int:
        current = self._store.read(f"{COUNTERS_COLLECTION}/{prefix}{year}")
        return (current or {}).get("value", 0)
