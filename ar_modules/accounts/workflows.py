"""
AR Account Workflow.

Account status changes: members get suspended for non-payment and
reinstated; accounts are closed once settled.
"""

from ar_kernel.domain.workflow import Guard, Transition, Workflow
from ar_kernel.logging_config import get_logger

logger = get_logger("modules.accounts.workflows")


ACCOUNT_SETTLED = Guard(
    name="account_settled",
    description="No outstanding balance and no unused credit",
)


_OPEN_STATES = ("ACTIVE", "INACTIVE", "SUSPENDED")

_ACTION_TARGETS = {
    "activate": "ACTIVE",
    "deactivate": "INACTIVE",
    "suspend": "SUSPENDED",
}


def _status_transitions() -> tuple[Transition, ...]:
    transitions = []
    for source in _OPEN_STATES:
        for action, target in _ACTION_TARGETS.items():
            if source != target:
                transitions.append(Transition(source, target, action=action))
        transitions.append(Transition(source, "CLOSED", action="close", guard=ACCOUNT_SETTLED))
    return tuple(transitions)


ACCOUNT_WORKFLOW = Workflow(
    name="ar_account",
    description="Receivable account status",
    initial_state="ACTIVE",
    states=_OPEN_STATES + ("CLOSED",),
    transitions=_status_transitions(),
    terminal_states=("CLOSED",),
)

# Target status -> action name used with ACCOUNT_WORKFLOW.require()
STATUS_ACTIONS = {**{v: k for k, v in _ACTION_TARGETS.items()}, "CLOSED": "close"}

logger.info(
    "account_workflow_registered",
    extra={
        "workflow": ACCOUNT_WORKFLOW.name,
        "transition_count": len(ACCOUNT_WORKFLOW.transitions),
    },
)
