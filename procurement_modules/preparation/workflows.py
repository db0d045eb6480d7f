"""
Purchase Preparation Workflows.

State machine for sourcing an approved request line.
"""

from procurement_kernel.domain.workflow import Guard, Transition, Workflow
from procurement_kernel.logging_config import get_logger

logger = get_logger("modules.preparation.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

POSITIVE_UNIT_PRICE = Guard(
    name="positive_unit_price",
    description="Assigned unit price is greater than zero",
)

ALLOCATION_BALANCED = Guard(
    name="allocation_balanced",
    description="Allocated supplier quantities sum to the required quantity",
)

DELIVERY_WITHIN_POLICY = Guard(
    name="delivery_within_policy",
    description="Delivered quantity is non-negative and over-delivery is allowed",
)

logger.info(
    "preparation_workflow_guards_defined",
    extra={
        "guards": [
            POSITIVE_UNIT_PRICE.name,
            ALLOCATION_BALANCED.name,
            DELIVERY_WITHIN_POLICY.name,
        ],
    },
)


# -----------------------------------------------------------------------------
# Preparation Workflow
# -----------------------------------------------------------------------------

PREPARATION_WORKFLOW = Workflow(
    name="purchase_preparation",
    description="Supplier sourcing and delivery of an approved request line",
    initial_state="awaiting_supplier",
    states=(
        "awaiting_supplier",
        "supplier_assigned",
        "delivered",
        "handed_to_receiving",
    ),
    transitions=(
        Transition("awaiting_supplier", "supplier_assigned", action="assign_supplier",
                   guard=POSITIVE_UNIT_PRICE),
        Transition("awaiting_supplier", "supplier_assigned", action="submit_allocation",
                   guard=ALLOCATION_BALANCED),
        Transition("supplier_assigned", "delivered", action="mark_delivered",
                   guard=DELIVERY_WITHIN_POLICY, notifies=("WarehouseStaff",)),
        Transition("delivered", "handed_to_receiving", action="hand_to_receiving"),
    ),
    terminal_states=("handed_to_receiving",),
)

logger.info(
    "preparation_workflow_registered",
    extra={
        "workflow_name": PREPARATION_WORKFLOW.name,
        "state_count": len(PREPARATION_WORKFLOW.states),
        "transition_count": len(PREPARATION_WORKFLOW.transitions),
        "initial_state": PREPARATION_WORKFLOW.initial_state,
    },
)
