"""
Tests for the canonical workflow types.

Covers:
- Construction-time validation of states and transitions
- resolve() returning declared edges only
- The error raised for an undeclared (state, action) pair
- Structure of every registered procurement workflow
"""

import pytest

from procurement_kernel.domain.workflow import Guard, Transition, Workflow
from procurement_kernel.exceptions import InvalidTransitionError
from procurement_modules.billing.workflows import INVOICE_WORKFLOW, PAYMENT_WORKFLOW
from procurement_modules.preparation.workflows import PREPARATION_WORKFLOW
from procurement_modules.receiving.workflows import GRN_WORKFLOW
from procurement_modules.requests.workflows import REQUEST_WORKFLOW

ALL_WORKFLOWS = (
    REQUEST_WORKFLOW,
    PREPARATION_WORKFLOW,
    GRN_WORKFLOW,
    INVOICE_WORKFLOW,
    PAYMENT_WORKFLOW,
)


def _simple_workflow() -> Workflow:
    return Workflow(
        name="door",
        description="test",
        initial_state="closed",
        states=("closed", "open", "locked"),
        transitions=(
            Transition("closed", "open", action="open"),
            Transition("open", "closed", action="close"),
            Transition("closed", "locked", action="lock",
                       guard=Guard("has_key", "Holder has the key")),
        ),
        terminal_states=("locked",),
    )


class TestWorkflowConstruction:

    def test_initial_state_must_be_declared(self):
        with pytest.raises(ValueError, match="initial state"):
            Workflow(
                name="bad",
                description="",
                initial_state="nowhere",
                states=("a",),
                transitions=(),
            )

    def test_transition_states_must_be_declared(self):
        with pytest.raises(ValueError, match="undeclared state"):
            Workflow(
                name="bad",
                description="",
                initial_state="a",
                states=("a",),
                transitions=(Transition("a", "b", action="go"),),
            )

    def test_transitions_from(self):
        workflow = _simple_workflow()
        actions = {t.action for t in workflow.transitions_from("closed")}
        assert actions == {"open", "lock"}

    def test_is_terminal(self):
        workflow = _simple_workflow()
        assert workflow.is_terminal("locked")
        assert not workflow.is_terminal("open")


class TestWorkflowResolve:

    def setup_method(self):
        self.workflow = _simple_workflow()

    def test_resolve_returns_declared_edge(self):
        transition = self.workflow.resolve("closed", "open", "d-1")
        assert transition.to_state == "open"

    def test_resolve_carries_guard(self):
        transition = self.workflow.resolve("closed", "lock")
        assert transition.guard is not None
        assert transition.guard.name == "has_key"

    def test_undeclared_action_raises(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            self.workflow.resolve("open", "lock", "d-1")

        error = exc_info.value
        assert error.entity_type == "door"
        assert error.entity_id == "d-1"
        assert error.current_state == "open"
        assert error.action == "lock"
        assert error.expected_states == ("closed",)
        assert error.code == "INVALID_TRANSITION"

    def test_terminal_state_has_no_edges(self):
        with pytest.raises(InvalidTransitionError):
            self.workflow.resolve("locked", "open")

    def test_unknown_current_state_raises(self):
        with pytest.raises(InvalidTransitionError):
            self.workflow.resolve(None, "open")


class TestRegisteredWorkflows:
    """Every procurement workflow is well formed."""

    @pytest.mark.parametrize("workflow", ALL_WORKFLOWS, ids=lambda w: w.name)
    def test_terminal_states_have_no_outgoing_edges(self, workflow):
        for state in workflow.terminal_states:
            assert workflow.transitions_from(state) == ()

    @pytest.mark.parametrize("workflow", ALL_WORKFLOWS, ids=lambda w: w.name)
    def test_every_state_reachable_from_initial(self, workflow):
        reachable = {workflow.initial_state}
        frontier = [workflow.initial_state]
        while frontier:
            state = frontier.pop()
            for t in workflow.transitions_from(state):
                if t.to_state not in reachable:
                    reachable.add(t.to_state)
                    frontier.append(t.to_state)
        assert reachable == set(workflow.states)

    @pytest.mark.parametrize("workflow", ALL_WORKFLOWS, ids=lambda w: w.name)
    def test_resolution_is_unambiguous(self, workflow):
        pairs = [(t.from_state, t.action) for t in workflow.transitions]
        assert len(pairs) == len(set(pairs))

    def test_request_lifecycle_edges(self):
        assert REQUEST_WORKFLOW.initial_state == "pending_ho"
        assert REQUEST_WORKFLOW.resolve(
            "pending_ho", "approve_at_operations_head",
        ).to_state == "forwarded_to_md"
        assert REQUEST_WORKFLOW.resolve(
            "forwarded_to_md", "approve_at_director",
        ).to_state == "md_approved"
        assert set(REQUEST_WORKFLOW.terminal_states) == {"md_approved", "rejected"}

    def test_director_cannot_act_on_rejected_request(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            REQUEST_WORKFLOW.resolve("rejected", "approve_at_director", "r-1")
        assert exc_info.value.expected_states == ("forwarded_to_md",)

    def test_grn_decisions_are_terminal(self):
        assert set(GRN_WORKFLOW.terminal_states) == {"qc_passed", "qc_failed"}
        for action in ("approve", "reject"):
            with pytest.raises(InvalidTransitionError):
                GRN_WORKFLOW.resolve("qc_passed", action)

    def test_paid_invoice_accepts_no_payment(self):
        for action in ("pay_partially", "pay_in_full"):
            with pytest.raises(InvalidTransitionError):
                PAYMENT_WORKFLOW.resolve("paid", action)
