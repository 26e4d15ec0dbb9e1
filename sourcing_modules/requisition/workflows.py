"""
Requisition Workflows.

State machine for purchase requisition processing.
"""

from sourcing_kernel.domain.workflow import Guard, Transition, Workflow
from sourcing_kernel.logging_config import get_logger

logger = get_logger("modules.requisition.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

HAS_LINES = Guard(
    name="has_lines",
    description="Requisition carries at least one line item",
)

REQUIRED_BY_NOT_PAST = Guard(
    name="required_by_not_past",
    description="Required-by date is today or later",
)

REJECTION_REASON_GIVEN = Guard(
    name="rejection_reason_given",
    description="A non-empty rejection reason is supplied",
)

VENDORS_SELECTED = Guard(
    name="vendors_selected",
    description="At least one vendor is invited to quote",
)


# -----------------------------------------------------------------------------
# Requisition Workflow
# -----------------------------------------------------------------------------

REQUISITION_WORKFLOW = Workflow(
    name="purchase_requisition",
    description="Purchase requisition lifecycle",
    initial_state="draft",
    states=(
        "draft",
        "submitted",
        "approved",
        "rejected",
        "converted",
    ),
    transitions=(
        Transition("draft", "submitted", action="submit", guard=HAS_LINES),
        Transition("submitted", "approved", action="approve"),
        Transition("submitted", "rejected", action="reject", guard=REJECTION_REASON_GIVEN),
        Transition("approved", "converted", action="convert", guard=VENDORS_SELECTED),
    ),
    terminal_states=("rejected", "converted"),
)

# Only a draft may be edited or deleted
EDITABLE_STATES: frozenset[str] = frozenset({"draft"})

logger.info(
    "requisition_workflow_registered",
    extra={
        "workflow_name": REQUISITION_WORKFLOW.name,
        "state_count": len(REQUISITION_WORKFLOW.states),
        "transition_count": len(REQUISITION_WORKFLOW.transitions),
        "initial_state": REQUISITION_WORKFLOW.initial_state,
    },
)
