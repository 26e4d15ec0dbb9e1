"""
RFQ Workflows.

State machine for requests for quotation.
"""

from sourcing_kernel.domain.workflow import Guard, Transition, Workflow
from sourcing_kernel.logging_config import get_logger

logger = get_logger("modules.rfq.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

VENDOR_EMAILED = Guard(
    name="vendor_emailed",
    description="At least one invited vendor was emailed successfully",
)

PENDING_VENDORS = Guard(
    name="pending_vendors",
    description="At least one invited vendor has not been emailed yet",
)

CANCELLATION_REASON_GIVEN = Guard(
    name="cancellation_reason_given",
    description="A non-empty cancellation reason is supplied",
)


# -----------------------------------------------------------------------------
# RFQ Workflow
# -----------------------------------------------------------------------------

RFQ_WORKFLOW = Workflow(
    name="rfq",
    description="Request for quotation lifecycle",
    initial_state="draft",
    states=(
        "draft",
        "open",
        "sent",
        "closed",
        "cancelled",
        "awarded",
    ),
    transitions=(
        Transition("draft", "open", action="publish"),
        Transition("open", "sent", action="send", guard=VENDOR_EMAILED),
        Transition("sent", "sent", action="send", guard=PENDING_VENDORS),
        Transition("sent", "closed", action="close"),
        Transition("draft", "cancelled", action="cancel", guard=CANCELLATION_REASON_GIVEN),
        Transition("open", "cancelled", action="cancel", guard=CANCELLATION_REASON_GIVEN),
        Transition("sent", "cancelled", action="cancel", guard=CANCELLATION_REASON_GIVEN),
        Transition("closed", "awarded", action="award"),
    ),
    terminal_states=("cancelled", "awarded"),
)

# Resend and reminders only make sense while vendors can still answer
SOLICITING_STATES: frozenset[str] = frozenset({"sent"})

# States in which vendor replies are still accepted
RESPONSE_ACCEPTING_STATES: frozenset[str] = frozenset({"open", "sent"})

logger.info(
    "rfq_workflow_registered",
    extra={
        "workflow_name": RFQ_WORKFLOW.name,
        "state_count": len(RFQ_WORKFLOW.states),
        "transition_count": len(RFQ_WORKFLOW.transitions),
        "initial_state": RFQ_WORKFLOW.initial_state,
    },
)
