"""
Lease Workflow (``rental_modules.leasing.workflows``).

Responsibility
--------------
Declares the lease lifecycle.  A lease advances one step at a time from
DRAFT to ACTIVE, ends as EXPIRED or TERMINATED, and may be terminated at
any point before it ends.

Invariants enforced
-------------------
* EXPIRED and TERMINATED are terminal.
* Only an ACTIVE lease can expire.
"""

from rental_kernel.domain.workflow import Transition, Workflow
from rental_kernel.logging_config import get_logger
from rental_kernel.models.property import LeaseStatus as S

logger = get_logger("modules.leasing.workflows")

LEASE_WORKFLOW = Workflow(
    name="lease",
    description="Lease drafting, approval, signature, tenancy and end",
    initial_state=S.DRAFT.value,
    states=tuple(s.value for s in S),
    terminal_states=(S.EXPIRED.value, S.TERMINATED.value),
    transitions=(
        Transition(S.DRAFT.value, S.PENDING_APPROVAL.value, action="submit"),
        Transition(S.PENDING_APPROVAL.value, S.APPROVED.value, action="approve"),
        Transition(S.APPROVED.value, S.SIGNED.value, action="sign"),
        Transition(S.SIGNED.value, S.ACTIVE.value, action="activate"),
        Transition(S.ACTIVE.value, S.EXPIRED.value, action="expire"),
        *(
            Transition(source.value, S.TERMINATED.value, action="terminate")
            for source in (S.DRAFT, S.PENDING_APPROVAL, S.APPROVED, S.SIGNED, S.ACTIVE)
        ),
    ),
)

logger.info(
    "lease_workflow_registered",
    extra={
        "workflow_name": LEASE_WORKFLOW.name,
        "state_count": len(LEASE_WORKFLOW.states),
        "transition_count": len(LEASE_WORKFLOW.transitions),
    },
)
