"""
Payment Arrangement Workflows.

Arrangement: DRAFT -> ACTIVE -> {COMPLETED, DEFAULTED, CANCELLED}; a DRAFT
can also be cancelled.  Installment: PENDING -> {PAID, OVERDUE},
OVERDUE -> PAID.  Zero-amount installments are created WAIVED.
"""

from ar_kernel.domain.workflow import Guard, Transition, Workflow
from ar_kernel.logging_config import get_logger

logger = get_logger("modules.arrangements.workflows")


ALL_INSTALLMENTS_SETTLED = Guard(
    name="all_installments_settled",
    description="Every installment is PAID or WAIVED",
)

INSTALLMENT_FULLY_PAID = Guard(
    name="installment_fully_paid",
    description="paid_amount has reached the installment amount",
)


ARRANGEMENT_WORKFLOW = Workflow(
    name="ar_payment_arrangement",
    description="Installment plan lifecycle",
    initial_state="DRAFT",
    states=("DRAFT", "ACTIVE", "COMPLETED", "DEFAULTED", "CANCELLED"),
    transitions=(
        Transition("DRAFT", "ACTIVE", action="activate"),
        Transition("ACTIVE", "ACTIVE", action="pay_installment", moves_money=True),
        Transition("ACTIVE", "COMPLETED", action="pay_installment", guard=ALL_INSTALLMENTS_SETTLED, moves_money=True),
        Transition("ACTIVE", "DEFAULTED", action="default"),
        Transition("DRAFT", "CANCELLED", action="cancel"),
        Transition("ACTIVE", "CANCELLED", action="cancel"),
    ),
    terminal_states=("COMPLETED", "DEFAULTED", "CANCELLED"),
)

INSTALLMENT_WORKFLOW = Workflow(
    name="ar_arrangement_installment",
    description="Single installment of an arrangement",
    initial_state="PENDING",
    states=("PENDING", "PAID", "OVERDUE", "WAIVED"),
    transitions=(
        Transition("PENDING", "PENDING", action="pay", moves_money=True),
        Transition("PENDING", "PAID", action="pay", guard=INSTALLMENT_FULLY_PAID, moves_money=True),
        Transition("OVERDUE", "OVERDUE", action="pay", moves_money=True),
        Transition("OVERDUE", "PAID", action="pay", guard=INSTALLMENT_FULLY_PAID, moves_money=True),
        Transition("PENDING", "OVERDUE", action="mark_overdue"),
    ),
    terminal_states=("PAID", "WAIVED"),
)

logger.info(
    "arrangement_workflows_registered",
    extra={
        "arrangement_transitions": len(ARRANGEMENT_WORKFLOW.transitions),
        "installment_transitions": len(INSTALLMENT_WORKFLOW.transitions),
    },
)
