"""
Billing Workflows.

Two independent state machines on an invoice: the match status set by the
three-way match (re-runnable), and the payment status driven by posted
payments.
"""

from procurement_kernel.domain.workflow import Guard, Transition, Workflow
from procurement_kernel.logging_config import get_logger

logger = get_logger("modules.billing.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

NO_VARIANCES = Guard(
    name="no_variances",
    description="Every invoice line agrees with the PO price and GRN quantity",
)

WITHIN_REMAINING = Guard(
    name="within_remaining",
    description="Payment amount is positive and does not exceed the remaining amount",
)

SETTLES_BALANCE = Guard(
    name="settles_balance",
    description="Payment brings the remaining amount to zero",
)

logger.info(
    "billing_workflow_guards_defined",
    extra={"guards": [NO_VARIANCES.name, WITHIN_REMAINING.name, SETTLES_BALANCE.name]},
)


# -----------------------------------------------------------------------------
# Invoice match workflow
# -----------------------------------------------------------------------------

_MATCH_STATES = ("pending", "verified", "variance_review")

INVOICE_WORKFLOW = Workflow(
    name="invoice",
    description="Three-way match status of a supplier invoice",
    initial_state="pending",
    states=_MATCH_STATES,
    transitions=tuple(
        Transition(state, "verified", action="verify", guard=NO_VARIANCES)
        for state in _MATCH_STATES
    ) + tuple(
        Transition(state, "variance_review", action="flag_variance",
                   notifies=("Accountant", "PurchasingManager"))
        for state in _MATCH_STATES
    ),
)


# -----------------------------------------------------------------------------
# Payment workflow
# -----------------------------------------------------------------------------

PAYMENT_WORKFLOW = Workflow(
    name="invoice_payment",
    description="Payment status of a supplier invoice",
    initial_state="pending",
    states=("pending", "partially_paid", "paid"),
    transitions=(
        Transition("pending", "partially_paid", action="pay_partially",
                   guard=WITHIN_REMAINING, notifies=("Accountant",)),
        Transition("pending", "paid", action="pay_in_full",
                   guard=SETTLES_BALANCE, notifies=("Accountant",)),
        Transition("partially_paid", "partially_paid", action="pay_partially",
                   guard=WITHIN_REMAINING, notifies=("Accountant",)),
        Transition("partially_paid", "paid", action="pay_in_full",
                   guard=SETTLES_BALANCE, notifies=("Accountant",)),
    ),
    terminal_states=("paid",),
)

for _workflow in (INVOICE_WORKFLOW, PAYMENT_WORKFLOW):
    logger.info(
        "billing_workflow_registered",
        extra={
            "workflow_name": _workflow.name,
            "state_count": len(_workflow.states),
            "transition_count": len(_workflow.transitions),
            "initial_state": _workflow.initial_state,
        },
    )
