"""
Tests for the lifecycle state machines.

Covers:
- Workflow construction checks (unknown states, terminal exits, duplicates)
- Requisition, RFQ, quotation and response transitions
- StateTransitionError payload
"""

import pytest

from sourcing_kernel.domain.workflow import Transition, Workflow
from sourcing_kernel.exceptions import StateTransitionError
from sourcing_modules.quotation.workflows import QUOTATION_WORKFLOW, RESPONSE_WORKFLOW
from sourcing_modules.requisition.workflows import EDITABLE_STATES, REQUISITION_WORKFLOW
from sourcing_modules.rfq.workflows import (
    RESPONSE_ACCEPTING_STATES,
    RFQ_WORKFLOW,
    SOLICITING_STATES,
)

ALL_WORKFLOWS = (REQUISITION_WORKFLOW, RFQ_WORKFLOW, QUOTATION_WORKFLOW, RESPONSE_WORKFLOW)


class TestWorkflowConstruction:
    """Workflow.__post_init__ rejects malformed machines."""

    def test_initial_state_must_be_a_state(self):
        with pytest.raises(ValueError, match="initial state"):
            Workflow(
                name="broken",
                description="",
                initial_state="nowhere",
                states=("a", "b"),
                transitions=(),
            )

    def test_transition_to_unknown_state_rejected(self):
        with pytest.raises(ValueError, match="unknown state"):
            Workflow(
                name="broken",
                description="",
                initial_state="a",
                states=("a",),
                transitions=(Transition("a", "b", action="go"),),
            )

    def test_terminal_state_cannot_have_exits(self):
        with pytest.raises(ValueError, match="terminal state"):
            Workflow(
                name="broken",
                description="",
                initial_state="a",
                states=("a", "b"),
                transitions=(Transition("b", "a", action="reopen"),),
                terminal_states=("b",),
            )

    def test_duplicate_action_from_same_state_rejected(self):
        with pytest.raises(ValueError, match="duplicate transition"):
            Workflow(
                name="broken",
                description="",
                initial_state="a",
                states=("a", "b", "c"),
                transitions=(
                    Transition("a", "b", action="go"),
                    Transition("a", "c", action="go"),
                ),
            )

    @pytest.mark.parametrize("workflow", ALL_WORKFLOWS, ids=lambda w: w.name)
    def test_registered_workflows_are_well_formed(self, workflow):
        assert workflow.initial_state in workflow.states
        for terminal in workflow.terminal_states:
            assert workflow.allowed_actions(terminal) == ()


class TestRequisitionWorkflow:

    @pytest.mark.parametrize(
        "state, action, target",
        [
            ("draft", "submit", "submitted"),
            ("submitted", "approve", "approved"),
            ("submitted", "reject", "rejected"),
            ("approved", "convert", "converted"),
        ],
    )
    def test_legal_transitions(self, state, action, target):
        transition = REQUISITION_WORKFLOW.require_transition("purchase_requisition", "pr-1", state, action)
        assert transition.to_state == target

    @pytest.mark.parametrize(
        "state, action",
        [
            ("draft", "approve"),
            ("draft", "convert"),
            ("submitted", "submit"),
            ("approved", "reject"),
            ("rejected", "submit"),
            ("converted", "convert"),
        ],
    )
    def test_illegal_transitions_raise(self, state, action):
        with pytest.raises(StateTransitionError) as exc_info:
            REQUISITION_WORKFLOW.require_transition("purchase_requisition", "pr-1", state, action)
        err = exc_info.value
        assert err.code == "INVALID_STATE_TRANSITION"
        assert err.current_state == state
        assert err.action == action
        assert err.entity_type == "purchase_requisition"

    def test_terminal_state_reason(self):
        with pytest.raises(StateTransitionError) as exc_info:
            REQUISITION_WORKFLOW.require_transition("purchase_requisition", "pr-1", "rejected", "approve")
        assert exc_info.value.reason == "state is terminal"

    def test_only_drafts_are_editable(self):
        assert EDITABLE_STATES == frozenset({"draft"})


class TestRFQWorkflow:

    def test_send_is_repeatable_while_sent(self):
        assert RFQ_WORKFLOW.require_transition("rfq", "r", "open", "send").to_state == "sent"
        assert RFQ_WORKFLOW.require_transition("rfq", "r", "sent", "send").to_state == "sent"

    def test_award_only_after_close(self):
        with pytest.raises(StateTransitionError):
            RFQ_WORKFLOW.require_transition("rfq", "r", "sent", "award")
        assert RFQ_WORKFLOW.require_transition("rfq", "r", "closed", "award").to_state == "awarded"

    @pytest.mark.parametrize("state", ["draft", "open", "sent"])
    def test_cancel_before_close(self, state):
        assert RFQ_WORKFLOW.require_transition("rfq", "r", state, "cancel").to_state == "cancelled"

    def test_cannot_cancel_closed(self):
        with pytest.raises(StateTransitionError) as exc_info:
            RFQ_WORKFLOW.require_transition("rfq", "r", "closed", "cancel")
        assert "award" in exc_info.value.reason

    def test_reply_window(self):
        assert RESPONSE_ACCEPTING_STATES == frozenset({"open", "sent"})
        assert SOLICITING_STATES <= RESPONSE_ACCEPTING_STATES


class TestQuotationWorkflows:

    @pytest.mark.parametrize("state", ["received", "under_review"])
    @pytest.mark.parametrize("action, target", [
        ("accept", "accepted"),
        ("reject", "rejected"),
        ("withdraw", "withdrawn"),
    ])
    def test_decisions_from_open_states(self, state, action, target):
        transition = QUOTATION_WORKFLOW.require_transition("quotation", "q", state, action)
        assert transition.to_state == target

    def test_review_only_from_received(self):
        assert QUOTATION_WORKFLOW.require_transition("quotation", "q", "received", "review").to_state == "under_review"
        with pytest.raises(StateTransitionError):
            QUOTATION_WORKFLOW.require_transition("quotation", "q", "under_review", "review")

    @pytest.mark.parametrize("state", ["accepted", "rejected", "withdrawn"])
    def test_decided_quotations_are_final(self, state):
        assert QUOTATION_WORKFLOW.is_terminal(state)

    def test_response_review(self):
        assert RESPONSE_WORKFLOW.require_transition("quotation_response", "r", "pending_review", "review").to_state == "reviewed"
        assert RESPONSE_WORKFLOW.require_transition("quotation_response", "r", "failed", "review").to_state == "reviewed"
        with pytest.raises(StateTransitionError):
            RESPONSE_WORKFLOW.require_transition("quotation_response", "r", "reviewed", "review")
