"""
Receiving Workflows.

QC gate for goods receipt notes.  Both outcomes are terminal; a fresh
delivery after a failed QC needs a new GRN.
"""

from procurement_kernel.domain.workflow import Guard, Transition, Workflow
from procurement_kernel.logging_config import get_logger

logger = get_logger("modules.receiving.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

STOCK_POSTED = Guard(
    name="stock_posted",
    description="Every line with a delivered quantity has an inbound movement",
)

REASON_PROVIDED = Guard(
    name="reason_provided",
    description="A non-empty rejection reason is supplied",
)

logger.info(
    "receiving_workflow_guards_defined",
    extra={"guards": [STOCK_POSTED.name, REASON_PROVIDED.name]},
)


# -----------------------------------------------------------------------------
# GRN Workflow
# -----------------------------------------------------------------------------

GRN_WORKFLOW = Workflow(
    name="goods_receipt",
    description="Quality check of a received delivery",
    initial_state="pending_qc",
    states=(
        "pending_qc",
        "qc_passed",
        "qc_failed",
    ),
    transitions=(
        Transition("pending_qc", "qc_passed", action="approve",
                   guard=STOCK_POSTED, notifies=("Accountant", "WarehouseStaff")),
        Transition("pending_qc", "qc_failed", action="reject",
                   guard=REASON_PROVIDED, notifies=("WarehouseStaff", "PurchasingManager")),
    ),
    terminal_states=("qc_passed", "qc_failed"),
)

logger.info(
    "receiving_workflow_registered",
    extra={
        "workflow_name": GRN_WORKFLOW.name,
        "state_count": len(GRN_WORKFLOW.states),
        "transition_count": len(GRN_WORKFLOW.transitions),
        "initial_state": GRN_WORKFLOW.initial_state,
    },
)
