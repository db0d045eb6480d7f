"""
Idempotency key generation utilities.

Idempotency keys make a side effect happen at most once per source document,
even under retries.  Invoice generation uses the GRN id as its key.
"""


def generate_idempotency_key(
    producer: str,
    action: str,
    source_id: str,
) -> str:
    """
    Generate an idempotency key for a derived side effect.

    Format: producer:action:source_id

    Example:
        >>> generate_idempotency_key("billing", "invoice.generate", "g-17")
        'billing:invoice.generate:g-17'
    """
    return f"{producer}:{action}:{source_id}"


def parse_idempotency_key(key: str) -> tuple[str, str, str]:
    """
    Parse an idempotency key into its components.

    Raises:
        ValueError: If key format is invalid.
    """
    parts = key.split(":", 2)
    if len(parts) != 3 or not all(parts):
        raise ValueError(f"Invalid idempotency key format: {key}")
    return parts[0], parts[1], parts[2]
