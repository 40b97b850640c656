"""
Invoice Workflow.

DRAFT -> SENT -> {PARTIALLY_PAID, PAID, OVERDUE} -> VOID.
PAID and VOID are terminal.  Money can be applied to a DRAFT invoice by an
explicit allocation; FIFO settlement only picks SENT, PARTIALLY_PAID and
OVERDUE invoices.
"""

from ar_kernel.domain.workflow import Guard, Transition, Workflow
from ar_kernel.logging_config import get_logger

logger = get_logger("modules.invoicing.workflows")


BALANCE_ZERO = Guard(
    name="balance_zero",
    description="Invoice balance is zero",
)

PAST_DUE = Guard(
    name="past_due",
    description="Business date is after the due date and a balance remains",
)

VOID_REASON_GIVEN = Guard(
    name="void_reason_given",
    description="A non-empty void reason was supplied",
)


INVOICE_WORKFLOW = Workflow(
    name="ar_invoice",
    description="Member and city-ledger invoice lifecycle",
    initial_state="DRAFT",
    states=(
        "DRAFT",
        "SENT",
        "PARTIALLY_PAID",
        "PAID",
        "OVERDUE",
        "VOID",
    ),
    transitions=(
        Transition("DRAFT", "SENT", action="send"),
        Transition("DRAFT", "PARTIALLY_PAID", action="apply_payment", moves_money=True),
        Transition("DRAFT", "PAID", action="apply_payment", guard=BALANCE_ZERO, moves_money=True),
        Transition("SENT", "PARTIALLY_PAID", action="apply_payment", moves_money=True),
        Transition("SENT", "PAID", action="apply_payment", guard=BALANCE_ZERO, moves_money=True),
        Transition("SENT", "OVERDUE", action="mark_overdue", guard=PAST_DUE),
        Transition("PARTIALLY_PAID", "PAID", action="apply_payment", guard=BALANCE_ZERO, moves_money=True),
        Transition("OVERDUE", "PARTIALLY_PAID", action="apply_payment", moves_money=True),
        Transition("OVERDUE", "PAID", action="apply_payment", guard=BALANCE_ZERO, moves_money=True),
        Transition("DRAFT", "VOID", action="void", guard=VOID_REASON_GIVEN, moves_money=True),
        Transition("SENT", "VOID", action="void", guard=VOID_REASON_GIVEN, moves_money=True),
        Transition("PARTIALLY_PAID", "VOID", action="void", guard=VOID_REASON_GIVEN, moves_money=True),
        Transition("OVERDUE", "VOID", action="void", guard=VOID_REASON_GIVEN, moves_money=True),
    ),
    terminal_states=("PAID", "VOID"),
)

logger.info(
    "invoice_workflow_registered",
    extra={
        "workflow_name": INVOICE_WORKFLOW.name,
        "state_count": len(INVOICE_WORKFLOW.states),
        "transition_count": len(INVOICE_WORKFLOW.transitions),
        "initial_state": INVOICE_WORKFLOW.initial_state,
    },
)
