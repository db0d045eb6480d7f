"""
Typed Exception Hierarchy for the Procurement Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Workflow callers (UI route handlers, batch jobs, tests) must be able to tell
"fix your input" apart from "refresh and look again" without parsing message
strings. Every error therefore has:
  1. A TYPED exception class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA attributes (entity, id, state, field)

Example:
    try:
        requests.approve_at_director(request_id, approver, "ok")
    except InvalidTransitionError as e:
        refresh_view(e.entity_id)                     # stale view
        api_response(code=e.code, state=e.current_state)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ProcurementKernelError (base)
    |
    +-- ValidationError
    |
    +-- InvalidTransitionError
    |   +-- DuplicateInvoiceError
    |
    +-- NotFoundError
    |
    +-- DependencyError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                 | When Raised
---------------------|---------------------------------------------------------
VALIDATION_ERROR     | Malformed or missing input (empty items, qty <= 0,
                     | missing reason, out-of-range accepted quantity)
INVALID_TRANSITION   | Entity not in the precondition state for the action
DUPLICATE_INVOICE    | Second invoice requested for a GRN that already has one
NOT_FOUND            | Referenced entity id does not exist
DEPENDENCY_FAILURE   | Entity store or another collaborator failed

===============================================================================
HANDLING PATTERNS
===============================================================================

ValidationError is never retried automatically; the caller corrects input.
InvalidTransitionError signals a stale view or duplicate submission; the
caller re-reads state instead of blindly retrying. DependencyError carries
the underlying exception as ``cause`` (and as ``__cause__``).

Notification delivery failures are the single exception to propagation:
they are logged and dropped by the notification fan-out.
"""

from typing import Any


class ProcurementKernelError(Exception):
    """
    Base exception for all procurement kernel errors.

    All subclasses carry a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "PROCUREMENT_KERNEL_ERROR"


class ValidationError(ProcurementKernelError):
    """Input is malformed or a required field is missing."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class InvalidTransitionError(ProcurementKernelError):
    """Operation attempted against an entity not in its precondition state."""

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current_state: str | None,
        action: str,
        expected_states: tuple[str, ...] = (),
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.current_state = current_state
        self.action = action
        self.expected_states = expected_states
        expected = ""
        if expected_states:
            expected = f" (requires {', '.join(expected_states)})"
        super().__init__(
            f"Cannot {action} {entity_type} {entity_id} "
            f"in state '{current_state}'{expected}"
        )


class DuplicateInvoiceError(InvalidTransitionError):
    """An invoice already exists for this GRN."""

    code: str = "DUPLICATE_INVOICE"

    def __init__(self, grn_id: str, invoice_id: str):
        self.grn_id = grn_id
        self.invoice_id = invoice_id
        super().__init__(
            "grn", grn_id, "invoiced", "generate_invoice",
        )
        self.args = (
            f"GRN {grn_id} already has invoice {invoice_id}",
        )


class NotFoundError(ProcurementKernelError):
    """Referenced entity does not exist."""

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


class DependencyError(ProcurementKernelError):
    """A collaborator (entity store, notifier) failed."""

    code: str = "DEPENDENCY_FAILURE"

    def __init__(self, dependency: str, operation: str, cause: Any = None):
        self.dependency = dependency
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"{dependency} failed during {operation}{detail}")
