"""
Request Workflows.

The two-tier approval chain for material and product requests, and the
boundary mapping from legacy status names onto the canonical states.
"""

from procurement_kernel.domain.workflow import Guard, Transition, Workflow
from procurement_kernel.exceptions import ValidationError
from procurement_kernel.logging_config import get_logger
from procurement_modules.requests.models import RejectionStage, RequestStatus

logger = get_logger("modules.requests.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

REASON_PROVIDED = Guard(
    name="reason_provided",
    description="A non-empty rejection reason is supplied",
)

LOW_VALUE_PRODUCT = Guard(
    name="low_value_product",
    description=(
        "Product request whose estimated value is below the configured "
        "director sign-off threshold"
    ),
)

logger.info(
    "request_workflow_guards_defined",
    extra={"guards": [REASON_PROVIDED.name, LOW_VALUE_PRODUCT.name]},
)


# -----------------------------------------------------------------------------
# Request Workflow
# -----------------------------------------------------------------------------

REQUEST_WORKFLOW = Workflow(
    name="material_request",
    description="Operations head then director approval of a request",
    initial_state="pending_ho",
    states=(
        "pending_ho",
        "forwarded_to_md",
        "md_approved",
        "rejected",
    ),
    transitions=(
        Transition("pending_ho", "forwarded_to_md", action="approve_at_operations_head",
                   notifies=("MainDirector", "requester")),
        Transition("pending_ho", "md_approved", action="approve_low_value",
                   guard=LOW_VALUE_PRODUCT, notifies=("requester", "WarehouseStaff")),
        Transition("pending_ho", "rejected", action="reject_at_operations_head",
                   guard=REASON_PROVIDED, notifies=("requester",)),
        Transition("forwarded_to_md", "md_approved", action="approve_at_director",
                   notifies=("requester", "operations_head", "WarehouseStaff")),
        Transition("forwarded_to_md", "rejected", action="reject_at_director",
                   guard=REASON_PROVIDED, notifies=("requester", "operations_head")),
    ),
    terminal_states=("md_approved", "rejected"),
)

logger.info(
    "request_workflow_registered",
    extra={
        "workflow_name": REQUEST_WORKFLOW.name,
        "state_count": len(REQUEST_WORKFLOW.states),
        "transition_count": len(REQUEST_WORKFLOW.transitions),
        "initial_state": REQUEST_WORKFLOW.initial_state,
    },
)


# -----------------------------------------------------------------------------
# Legacy status names
# -----------------------------------------------------------------------------

_LEGACY_STATUS: dict[str, tuple[RequestStatus, RejectionStage | None]] = {
    "pending": (RequestStatus.PENDING_HO, None),
    "pending_ho": (RequestStatus.PENDING_HO, None),
    "approved": (RequestStatus.FORWARDED_TO_MD, None),
    "approved_by_ho": (RequestStatus.FORWARDED_TO_MD, None),
    "ho_approved": (RequestStatus.FORWARDED_TO_MD, None),
    "forwarded_to_md": (RequestStatus.FORWARDED_TO_MD, None),
    "md_approved": (RequestStatus.MD_APPROVED, None),
    "rejected": (RequestStatus.REJECTED, None),
    "ho_rejected": (RequestStatus.REJECTED, RejectionStage.OPERATIONS_HEAD),
    "md_rejected": (RequestStatus.REJECTED, RejectionStage.DIRECTOR),
}


def normalize_status(raw: str) -> tuple[RequestStatus, RejectionStage | None]:
    """Map a stored or legacy status name onto the canonical lifecycle.

    Returns the canonical status and, for the legacy tier-specific rejection
    names, the stage that rejected.
    """
    try:
        return _LEGACY_STATUS[str(raw).strip().lower()]
    except KeyError:
        raise ValidationError("status", f"unknown request status '{raw}'") from None
