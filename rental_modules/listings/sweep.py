"""
Time-Based Listing Sweep (``rental_modules.listings.sweep``).

Responsibility
--------------
Applies the clock-driven listing transitions.  Run by an external periodic
trigger; nothing here schedules itself.

* Any advertised listing whose ``expiration_date`` has passed moves to
  EXPIRED (audit AUTO_EXPIRE) and the property manager is notified.
* A COMING_SOON listing whose ``availability_date`` has arrived moves to
  ACTIVE (audit AUTO_ACTIVATE), subject to the active-lease guard.

Expiry runs first, so a listing that is both available and expired ends in
EXPIRED without passing through ACTIVE.

Invariants enforced
-------------------
* Idempotent: only rows whose stored status disagrees with the clock are
  selected, so a second run against the same clock performs zero writes.
* Each listing is changed inside its own SAVEPOINT; a failure on one is
  reported in ``errors`` and does not undo the others.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from rental_kernel.domain.clock import Clock, SystemClock
from rental_kernel.logging_config import OperationTimer, get_logger
from rental_kernel.models.listing import Listing, ListingAction, ListingStatus
from rental_kernel.models.property import Lease, LeaseStatus
from rental_kernel.services.audit_service import SYSTEM_USER, AuditService
from rental_modules.listings.models import SweepResult
from rental_modules.listings.workflows import (
    EXPIRABLE_STATUSES,
    GUARD_EVALUATORS,
    SWEEP_WORKFLOW,
)
from rental_services.notifications import (
    LoggingNotifier,
    Notification,
    NotificationKind,
    Notifier,
    send_safely,
)
from rental_services.workflow_executor import WorkflowExecutor

logger = get_logger("modules.listings.sweep")


class TimeBasedTransitionSweep:
    """One pass of automatic activation and expiry."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        workflow_executor: WorkflowExecutor | None = None,
        audit_service: AuditService | None = None,
        notifier: Notifier | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._audit = audit_service or AuditService(session, clock=self._clock)
        self._notifier = notifier or LoggingNotifier()
        self._workflow_executor = workflow_executor or WorkflowExecutor()
        for name, evaluator in GUARD_EVALUATORS.items():
            self._workflow_executor.guards.register(name, evaluator)

    def run(self) -> SweepResult:
        try:
            now = self._clock.now()
            errors: list[str] = []
            expired: list[Listing] = []
            activated = 0

            with OperationTimer() as timer:
                due_expiry = list(
                    self._session.scalars(
                        select(Listing)
                        .where(Listing.status.in_(EXPIRABLE_STATUSES))
                        .where(Listing.expiration_date.is_not(None))
                        .where(Listing.expiration_date < now)
                        .order_by(Listing.expiration_date, Listing.id)
                    )
                )
                for listing in due_expiry:
                    if self._apply(listing, ListingStatus.EXPIRED, errors):
                        expired.append(listing)

                due_activation = list(
                    self._session.scalars(
                        select(Listing)
                        .where(Listing.status == ListingStatus.COMING_SOON)
                        .where(Listing.availability_date <= now)
                        .order_by(Listing.availability_date, Listing.id)
                    )
                )
                for listing in due_activation:
                    if self._apply(listing, ListingStatus.ACTIVE, errors):
                        activated += 1

                self._session.commit()

            for listing in expired:
                self._notify_expired(listing)

            result = SweepResult(
                processed=activated + len(expired),
                activated=activated,
                expired=len(expired),
                errors=tuple(errors),
            )
            logger.info(
                "sweep_completed",
                extra={
                    "processed": result.processed,
                    "activated": result.activated,
                    "expired": result.expired,
                    "error_count": len(result.errors),
                    "duration_ms": timer.duration_ms,
                },
            )
            return result
        except Exception:
            self._session.rollback()
            raise

    def _apply(self, listing: Listing, target: ListingStatus, errors: list[str]) -> bool:
        listing_id = listing.id
        active_leases = self._session.scalars(
            select(Lease.id)
            .where(Lease.unit_id == listing.unit_id)
            .where(Lease.status == LeaseStatus.ACTIVE)
        ).all()
        check = self._workflow_executor.execute_transition(
            SWEEP_WORKFLOW,
            current_state=listing.status.value,
            requested_state=target.value,
            entity_type="listing",
            entity_id=listing_id,
            context={"active_lease_count": len(active_leases)},
        )
        if not check.success:
            errors.append(f"Listing {listing_id} not moved to {target.value}: {check.reason}")
            return False

        auto_expire = target == ListingStatus.EXPIRED
        try:
            with self._session.begin_nested():
                previous = listing.status
                listing.status = target
                self._session.flush()
                self._audit.create_audit_entry(
                    unit_id=listing.unit_id,
                    listing_id=listing_id,
                    action=ListingAction.AUTO_EXPIRE if auto_expire else ListingAction.AUTO_ACTIVATE,
                    user_id=SYSTEM_USER,
                    previous_status=previous,
                    new_status=target,
                    reason=(
                        "Automatically expired on expiration date"
                        if auto_expire
                        else "Automatically activated on availability date"
                    ),
                )
        except Exception as exc:  # noqa: BLE001
            errors.append(f"Failed to move listing {listing_id} to {target.value}: {exc}")
            logger.error(
                "sweep_item_failed",
                extra={"listing_id": str(listing_id), "target_status": target.value},
                exc_info=True,
            )
            return False
        return True

    def _notify_expired(self, listing: Listing) -> None:
        unit = listing.unit
        prop = unit.property
        send_safely(
            self._notifier,
            Notification(
                kind=NotificationKind.LISTING_EXPIRED,
                recipient_id=prop.manager_id,
                subject=f"Listing expired: {unit.unit_number or 'Unit'}",
                body=(
                    f"The listing '{listing.title}' for unit {unit.unit_number} at "
                    f"{prop.name} has expired and is no longer visible."
                ),
                unit_id=unit.id,
                data={
                    "listing_id": str(listing.id),
                    "organization_id": str(prop.organization_id),
                },
            ),
        )
