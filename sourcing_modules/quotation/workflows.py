"""
Quotation Workflows.

State machines for vendor quotations and for the stored replies they are
read from.
"""

from sourcing_kernel.domain.workflow import Transition, Workflow
from sourcing_kernel.logging_config import get_logger

logger = get_logger("modules.quotation.workflows")


# -----------------------------------------------------------------------------
# Quotation Workflow
# -----------------------------------------------------------------------------

QUOTATION_WORKFLOW = Workflow(
    name="quotation",
    description="Vendor quotation evaluation",
    initial_state="received",
    states=(
        "received",
        "under_review",
        "accepted",
        "rejected",
        "withdrawn",
    ),
    transitions=(
        Transition("received", "under_review", action="review"),
        Transition("received", "accepted", action="accept"),
        Transition("under_review", "accepted", action="accept"),
        Transition("received", "rejected", action="reject"),
        Transition("under_review", "rejected", action="reject"),
        Transition("received", "withdrawn", action="withdraw"),
        Transition("under_review", "withdrawn", action="withdraw"),
    ),
    terminal_states=("accepted", "rejected", "withdrawn"),
)


# -----------------------------------------------------------------------------
# Quotation Response Workflow
# -----------------------------------------------------------------------------

RESPONSE_WORKFLOW = Workflow(
    name="quotation_response",
    description="Review of a stored vendor reply",
    initial_state="pending_review",
    states=(
        "pending_review",
        "reviewed",
        "failed",
    ),
    transitions=(
        Transition("pending_review", "reviewed", action="review"),
        Transition("failed", "reviewed", action="review"),
    ),
    terminal_states=("reviewed",),
)

for _workflow in (QUOTATION_WORKFLOW, RESPONSE_WORKFLOW):
    logger.info(
        "quotation_workflow_registered",
        extra={
            "workflow_name": _workflow.name,
            "state_count": len(_workflow.states),
            "transition_count": len(_workflow.transitions),
            "initial_state": _workflow.initial_state,
        },
    )
