"""
Listing Status Workflow (``rental_modules.listings.workflows``).

Responsibility
--------------
Declares the marketplace-visibility state machine for a unit's listing.
Every transition into ACTIVE carries the ``no_active_lease`` guard: a unit
whose lease is ACTIVE is occupied and must not be advertised.

Invariants enforced
-------------------
* Table membership and the guard are both required for entry into ACTIVE.
* There are no terminal states; PRIVATE is reachable from every status.
* ``SWEEP_WORKFLOW`` holds the clock-driven transitions separately so the
  request-driven table stays exactly as declared.
"""

from typing import Any

from rental_kernel.domain.workflow import Guard, Transition, Workflow
from rental_kernel.logging_config import get_logger
from rental_kernel.models.listing import ListingStatus as S

logger = get_logger("modules.listings.workflows")


NO_ACTIVE_LEASE = Guard(
    name="no_active_lease",
    description="Unit has an active lease and cannot be listed as ACTIVE",
)


def no_active_lease(context: dict[str, Any]) -> bool:
    # Missing count means the caller did not check; fail closed
    count = context.get("active_lease_count")
    return count is not None and count == 0


GUARD_EVALUATORS = {NO_ACTIVE_LEASE.name: no_active_lease}


_TABLE: dict[S, tuple[S, ...]] = {
    S.PRIVATE: (S.ACTIVE, S.PENDING, S.COMING_SOON),
    S.PENDING: (S.ACTIVE, S.PRIVATE, S.SUSPENDED, S.COMING_SOON),
    S.COMING_SOON: (S.ACTIVE, S.PRIVATE, S.SUSPENDED),
    S.ACTIVE: (S.SUSPENDED, S.PRIVATE, S.EXPIRED, S.MAINTENANCE),
    S.SUSPENDED: (S.ACTIVE, S.PRIVATE, S.MAINTENANCE),
    S.EXPIRED: (S.ACTIVE, S.PRIVATE, S.COMING_SOON),
    S.MAINTENANCE: (S.ACTIVE, S.PRIVATE, S.SUSPENDED),
}

_ACTIONS: dict[S, str] = {
    S.PRIVATE: "unlist",
    S.PENDING: "submit",
    S.COMING_SOON: "schedule",
    S.ACTIVE: "activate",
    S.SUSPENDED: "suspend",
    S.EXPIRED: "expire",
    S.MAINTENANCE: "start_maintenance",
}


def _transitions() -> tuple[Transition, ...]:
    return tuple(
        Transition(
            source.value,
            target.value,
            action=_ACTIONS[target],
            guard=NO_ACTIVE_LEASE if target == S.ACTIVE else None,
        )
        for source, targets in _TABLE.items()
        for target in targets
    )


LISTING_WORKFLOW = Workflow(
    name="listing",
    description="Marketplace visibility of a rental unit",
    initial_state=S.PRIVATE.value,
    states=tuple(s.value for s in S),
    transitions=_transitions(),
)


# Clock-driven changes applied by the periodic sweep.  Expiry is reachable
# from every advertised status, not only ACTIVE.
EXPIRABLE_STATUSES: tuple[S, ...] = (
    S.PENDING, S.COMING_SOON, S.ACTIVE, S.SUSPENDED, S.MAINTENANCE,
)

SWEEP_WORKFLOW = Workflow(
    name="listing_sweep",
    description="Time-based activation and expiry of listings",
    initial_state=S.COMING_SOON.value,
    states=tuple(s.value for s in S),
    transitions=(
        Transition(
            S.COMING_SOON.value, S.ACTIVE.value,
            action="auto_activate", guard=NO_ACTIVE_LEASE,
        ),
        *(
            Transition(source.value, S.EXPIRED.value, action="auto_expire")
            for source in EXPIRABLE_STATUSES
        ),
    ),
)


def allowed_targets(status: S) -> frozenset[S]:
    return frozenset(S(t) for t in LISTING_WORKFLOW.allowed_targets(status.value))


def is_valid_transition(current: S, requested: S) -> bool:
    """Table membership only; the lease guard is evaluated by the executor."""
    return LISTING_WORKFLOW.find(current.value, requested.value) is not None


logger.info(
    "listing_workflow_registered",
    extra={
        "workflow_name": LISTING_WORKFLOW.name,
        "state_count": len(LISTING_WORKFLOW.states),
        "transition_count": len(LISTING_WORKFLOW.transitions),
    },
)
