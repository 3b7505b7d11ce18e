"""
Lease Service (``rental_modules.leasing.service``).

Responsibility
--------------
Changes lease status along ``LEASE_WORKFLOW`` and reconciles the unit's
occupancy and listing in the same transaction.

Invariants enforced
-------------------
* After a committed change, ``unit.is_occupied`` is true exactly when the
  unit has an ACTIVE lease.
* The lease status write, the occupancy write and any automatic listing
  removal commit together or not at all.
* Notifications are delivered only after the commit, and a delivery
  failure never undoes it.
"""

from __future__ import annotations

from datetime import timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from rental_config.schema import RentalSettings
from rental_kernel.domain.clock import Clock, SystemClock
from rental_kernel.exceptions import InvalidLeaseTransitionError
from rental_kernel.logging_config import OperationTimer, get_logger
from rental_kernel.models.listing import Listing
from rental_kernel.models.property import Lease, LeaseStatus, Unit
from rental_kernel.services.audit_service import SYSTEM_USER, AuditService
from rental_modules.leasing.models import LeaseResult, LeaseResultStatus
from rental_modules.leasing.reconciler import LeaseListingReconciler, decision_prompt
from rental_modules.leasing.workflows import LEASE_WORKFLOW
from rental_modules.listings.service import ListingService
from rental_services.notifications import LoggingNotifier, Notifier, send_safely
from rental_services.workflow_executor import WorkflowExecutor

logger = get_logger("modules.leasing.service")

_ENDED = (LeaseStatus.EXPIRED, LeaseStatus.TERMINATED)


class LeaseService:
    """Lease lifecycle with listing reconciliation."""

    def __init__(
        self,
        session: Session,
        settings: RentalSettings | None = None,
        clock: Clock | None = None,
        listing_service: ListingService | None = None,
        reconciler: LeaseListingReconciler | None = None,
        notifier: Notifier | None = None,
        workflow_executor: WorkflowExecutor | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._settings = settings or RentalSettings()
        self._notifier = notifier or LoggingNotifier()
        self._workflow_executor = workflow_executor or WorkflowExecutor()
        audit = AuditService(session, clock=self._clock)
        listings = listing_service or ListingService(
            session,
            settings=self._settings,
            clock=self._clock,
            audit_service=audit,
            notifier=self._notifier,
        )
        self._reconciler = reconciler or LeaseListingReconciler(
            session, listing_service=listings, audit_service=audit, clock=self._clock
        )

    def get_lease(self, lease_id: UUID) -> Lease | None:
        return self._session.get(Lease, lease_id)

    def change_status(
        self,
        lease_id: UUID,
        new_status: LeaseStatus,
        actor_id: UUID | str = SYSTEM_USER,
    ) -> LeaseResult:
        """
        Move a lease to ``new_status`` and reconcile its unit.

        Preconditions:
            - The transition is in ``LEASE_WORKFLOW``.
        Postconditions:
            - Lease status, ``status_changed_at``, unit occupancy and any
              automatic listing removal are committed together.
        Raises:
            Whatever the reconciler's occupancy write raised, after rolling
            back the lease change.
        """
        try:
            lease = self.get_lease(lease_id)
            if lease is None:
                self._session.rollback()
                return LeaseResult(
                    LeaseResultStatus.LEASE_NOT_FOUND,
                    lease_id=lease_id,
                    message=f"Lease {lease_id} not found",
                )

            previous = lease.status
            try:
                self._check_transition(lease, new_status)
            except InvalidLeaseTransitionError as exc:
                logger.info(
                    "lease_transition_refused",
                    extra={
                        "lease_id": str(lease_id),
                        "from_status": previous.value,
                        "to_status": new_status.value,
                    },
                )
                self._session.rollback()
                return LeaseResult(
                    LeaseResultStatus.INVALID_TRANSITION,
                    lease_id=lease_id,
                    lease_status=previous,
                    previous_status=previous,
                    message=str(exc),
                )

            with OperationTimer() as timer:
                lease.status = new_status
                lease.status_changed_at = self._clock.now()
                lease.updated_by_id = actor_id if isinstance(actor_id, UUID) else None
                self._session.flush()
                outcome = self._reconciler.handle_lease_status_change(
                    lease.id, new_status, previous, actor_id
                )
                self._session.commit()

            logger.info(
                "lease_status_changed",
                extra={
                    "lease_id": str(lease_id),
                    "from_status": previous.value,
                    "to_status": new_status.value,
                    "is_occupied": outcome.is_occupied,
                    "listing_removed": outcome.listing_removed,
                    "duration_ms": timer.duration_ms,
                },
            )
        except Exception:
            self._session.rollback()
            raise

        for notification in outcome.notifications:
            send_safely(self._notifier, notification)

        return LeaseResult(
            LeaseResultStatus.SUCCESS,
            lease_id=lease_id,
            lease_status=new_status,
            previous_status=previous,
            reconciliation=outcome,
        )

    def _check_transition(self, lease: Lease, new_status: LeaseStatus) -> None:
        result = self._workflow_executor.execute_transition(
            LEASE_WORKFLOW,
            current_state=lease.status.value,
            requested_state=new_status.value,
            entity_type="lease",
            entity_id=lease.id,
        )
        if not result.success:
            raise InvalidLeaseTransitionError(
                str(lease.id), lease.status.value, new_status.value
            )

    # =========================================================================
    # Listing decisions
    # =========================================================================

    def units_needing_listing_decisions(self, lookback_days: int | None = None) -> list[Unit]:
        """Vacant, unlisted units whose lease ended within the lookback window."""
        if lookback_days is None:
            lookback_days = self._settings.listings.decision_lookback_days
        since = self._clock.now() - timedelta(days=lookback_days)
        recently_ended = (
            select(Lease.unit_id)
            .where(Lease.status.in_(_ENDED))
            .where(Lease.status_changed_at >= since)
        )
        listed = select(Listing.unit_id)
        return list(
            self._session.scalars(
                select(Unit)
                .where(Unit.is_occupied.is_(False))
                .where(Unit.id.in_(recently_ended))
                .where(Unit.id.not_in(listed))
                .order_by(Unit.unit_number, Unit.id)
            )
        )

    def prompt_listing_decisions(self, lookback_days: int | None = None) -> int:
        """Send a decision prompt for every unit needing one.  Returns the count sent."""
        sent = 0
        for unit in self.units_needing_listing_decisions(lookback_days):
            ended = sorted(
                (
                    lease for lease in unit.leases
                    if lease.status in _ENDED and lease.status_changed_at is not None
                ),
                key=lambda lease: lease.status_changed_at,
                reverse=True,
            )
            lease = ended[0]
            word = "expiration" if lease.status == LeaseStatus.EXPIRED else "termination"
            if send_safely(self._notifier, decision_prompt(unit, lease, word)):
                sent += 1
        logger.info("listing_decision_prompts_sent", extra={"count": sent})
        return sent
