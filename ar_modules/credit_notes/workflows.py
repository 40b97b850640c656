"""
Credit Note Workflow.

DRAFT -> PENDING_APPROVAL -> APPROVED -> {APPLIED, PARTIALLY_APPLIED, REFUNDED}.
A credit note can be voided until money has moved; once any of it is
applied or refunded it cannot be voided.
"""

from ar_kernel.domain.workflow import Guard, Transition, Workflow
from ar_kernel.logging_config import get_logger

logger = get_logger("modules.credit_notes.workflows")


FULLY_APPLIED = Guard(
    name="fully_applied",
    description="applied_to_balance equals total_amount",
)

WITHIN_REMAINING = Guard(
    name="within_remaining",
    description="Amount does not exceed the unapplied credit or the invoice balance",
)


CREDIT_NOTE_WORKFLOW = Workflow(
    name="ar_credit_note",
    description="Credit note approval and application",
    initial_state="DRAFT",
    states=(
        "DRAFT",
        "PENDING_APPROVAL",
        "APPROVED",
        "APPLIED",
        "PARTIALLY_APPLIED",
        "REFUNDED",
        "VOIDED",
    ),
    transitions=(
        Transition("DRAFT", "PENDING_APPROVAL", action="submit"),
        Transition("PENDING_APPROVAL", "APPROVED", action="approve"),
        Transition("APPROVED", "APPLIED", action="apply_to_balance", moves_money=True),
        Transition("APPROVED", "PARTIALLY_APPLIED", action="apply_to_invoice", guard=WITHIN_REMAINING, moves_money=True),
        Transition("APPROVED", "APPLIED", action="apply_to_invoice", guard=FULLY_APPLIED, moves_money=True),
        Transition("PARTIALLY_APPLIED", "PARTIALLY_APPLIED", action="apply_to_invoice", guard=WITHIN_REMAINING, moves_money=True),
        Transition("PARTIALLY_APPLIED", "APPLIED", action="apply_to_invoice", guard=FULLY_APPLIED, moves_money=True),
        Transition("APPROVED", "REFUNDED", action="refund", moves_money=True),
        Transition("DRAFT", "VOIDED", action="void"),
        Transition("PENDING_APPROVAL", "VOIDED", action="void"),
        Transition("APPROVED", "VOIDED", action="void"),
    ),
    terminal_states=("APPLIED", "REFUNDED", "VOIDED"),
)

logger.info(
    "credit_note_workflow_registered",
    extra={
        "workflow_name": CREDIT_NOTE_WORKFLOW.name,
        "state_count": len(CREDIT_NOTE_WORKFLOW.states),
        "transition_count": len(CREDIT_NOTE_WORKFLOW.transitions),
    },
)
