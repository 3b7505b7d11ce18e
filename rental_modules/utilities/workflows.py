"""
Utility Bill Workflow (``rental_modules.utilities.workflows``).

Responsibility
--------------
Declares the bill lifecycle state machine and the guards on its approval
and posting transitions.  ``posts_entry=True`` marks APPROVED -> POSTED,
the only transition that writes to the ledger.

Invariants enforced
-------------------
* POSTED and REJECTED are terminal (checked by ``Workflow.__post_init__``).
* Nothing returns to DRAFT.
"""

from decimal import Decimal
from typing import Any

from rental_kernel.domain.workflow import Guard, Transition, Workflow
from rental_kernel.logging_config import get_logger
from rental_kernel.models.billing import UtilityBillStatus as S

logger = get_logger("modules.utilities.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

ALLOCATIONS_COVER_TOTAL = Guard(
    name="allocations_cover_total",
    description="Allocations must sum to the bill total within tolerance",
)

ALLOCATIONS_PRESENT = Guard(
    name="allocations_present",
    description="Bill must have at least one allocation",
)


def allocations_cover_total(context: dict[str, Any]) -> bool:
    total = context.get("total")
    allocated = context.get("allocated")
    tolerance = context.get("tolerance", Decimal("0.01"))
    if total is None or allocated is None or not context.get("allocation_count"):
        return False
    return abs(Decimal(total) - Decimal(allocated)) <= Decimal(tolerance)


def allocations_present(context: dict[str, Any]) -> bool:
    return bool(context.get("allocation_count"))


GUARD_EVALUATORS = {
    ALLOCATIONS_COVER_TOTAL.name: allocations_cover_total,
    ALLOCATIONS_PRESENT.name: allocations_present,
}


# -----------------------------------------------------------------------------
# Bill Workflow
# -----------------------------------------------------------------------------

BILL_WORKFLOW = Workflow(
    name="utility_bill",
    description="Utility bill import, allocation, approval and posting",
    initial_state=S.DRAFT.value,
    states=tuple(s.value for s in S),
    terminal_states=(S.POSTED.value, S.REJECTED.value),
    transitions=(
        Transition(S.DRAFT.value, S.PROCESSING.value, action="start_processing"),
        Transition(S.PROCESSING.value, S.REVIEW_REQUIRED.value, action="request_review"),
        Transition(
            S.PROCESSING.value, S.APPROVED.value,
            action="approve", guard=ALLOCATIONS_COVER_TOTAL,
        ),
        Transition(
            S.REVIEW_REQUIRED.value, S.APPROVED.value,
            action="approve", guard=ALLOCATIONS_COVER_TOTAL,
        ),
        Transition(
            S.APPROVED.value, S.POSTED.value,
            action="post", guard=ALLOCATIONS_PRESENT, posts_entry=True,
        ),
        Transition(S.DRAFT.value, S.REJECTED.value, action="reject"),
        Transition(S.PROCESSING.value, S.REJECTED.value, action="reject"),
        Transition(S.REVIEW_REQUIRED.value, S.REJECTED.value, action="reject"),
        Transition(S.APPROVED.value, S.REJECTED.value, action="reject"),
    ),
)

logger.info(
    "utility_bill_workflow_registered",
    extra={
        "workflow_name": BILL_WORKFLOW.name,
        "state_count": len(BILL_WORKFLOW.states),
        "transition_count": len(BILL_WORKFLOW.transitions),
    },
)
