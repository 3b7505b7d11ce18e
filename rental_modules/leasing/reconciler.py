"""
Lease-Listing Reconciler (``rental_modules.leasing.reconciler``).

Responsibility
--------------
Keeps unit occupancy and marketplace listings consistent with lease status.
Runs inside the lease status transaction and never commits.

==========================  ===============================================
New lease status            Effect
==========================  ===============================================
ACTIVE                      unit occupied; an ACTIVE listing is removed
EXPIRED / TERMINATED        unit vacated (unless another lease is ACTIVE);
                            audit UPDATE; manager asked to decide on a
                            new listing.  No listing is created.
SIGNED                      manager told the existing listing will go
                            once the lease activates
anything else               nothing
==========================  ===============================================

Failure modes
-------------
* Occupancy write fails  -> exception propagates; the caller rolls back the
  lease status change with it.
* Listing removal fails (already gone, or a database error inside its
  SAVEPOINT)  -> logged as ``listing_auto_removal_failed``; reconciliation
  continues and the lease activation stands.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from rental_kernel.domain.clock import Clock, SystemClock
from rental_kernel.exceptions import EntityNotFoundError
from rental_kernel.logging_config import get_logger
from rental_kernel.models.listing import ListingAction, ListingStatus
from rental_kernel.models.property import Lease, LeaseStatus, Unit
from rental_kernel.services.audit_service import SYSTEM_USER, AuditService
from rental_modules.leasing.models import ReconciliationOutcome
from rental_modules.listings.service import ListingService
from rental_services.notifications import Notification, NotificationKind

logger = get_logger("modules.leasing.reconciler")

AUTO_REMOVAL_REASON = "Automatic removal due to lease activation"

_ENDINGS = {
    LeaseStatus.EXPIRED: ("expiration", "lease_expiration"),
    LeaseStatus.TERMINATED: ("termination", "lease_termination"),
}


class LeaseListingReconciler:
    """Applies the listing side effects of one lease status change."""

    def __init__(
        self,
        session: Session,
        listing_service: ListingService | None = None,
        audit_service: AuditService | None = None,
        clock: Clock | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._audit = audit_service or AuditService(session, clock=self._clock)
        self._listings = listing_service or ListingService(
            session, clock=self._clock, audit_service=self._audit
        )

    def handle_lease_status_change(
        self,
        lease_id: UUID,
        new_status: LeaseStatus,
        previous_status: LeaseStatus | None,
        actor_id: UUID | str = SYSTEM_USER,
    ) -> ReconciliationOutcome:
        """
        Reconcile occupancy and listing for ``lease_id`` now in ``new_status``.

        Raises:
            EntityNotFoundError: the lease does not exist.
            SQLAlchemyError: the occupancy write failed.
        """
        lease = self._session.get(Lease, lease_id)
        if lease is None:
            raise EntityNotFoundError("Lease", str(lease_id))
        unit = lease.unit

        logger.info(
            "lease_reconciliation_started",
            extra={
                "lease_id": str(lease_id),
                "unit_id": str(unit.id),
                "from_status": previous_status.value if previous_status else None,
                "to_status": new_status.value,
            },
        )

        if new_status == LeaseStatus.ACTIVE:
            outcome = self._on_activation(lease, unit, actor_id)
        elif new_status in _ENDINGS:
            outcome = self._on_ending(lease, unit, new_status, actor_id)
        elif new_status == LeaseStatus.SIGNED:
            outcome = self._on_signed(lease, unit)
        else:
            outcome = ReconciliationOutcome(unit_id=unit.id, is_occupied=unit.is_occupied)

        logger.info(
            "lease_reconciliation_completed",
            extra={
                "lease_id": str(lease_id),
                "unit_id": str(unit.id),
                "is_occupied": outcome.is_occupied,
                "listing_removed": outcome.listing_removed,
                "notification_count": len(outcome.notifications),
            },
        )
        return outcome

    # -------------------------------------------------------------------------
    # Occupancy
    # -------------------------------------------------------------------------

    def _set_occupancy(self, unit: Unit, occupied: bool) -> bool:
        changed = unit.is_occupied != occupied
        unit.is_occupied = occupied
        self._session.flush()
        return changed

    def _has_active_lease(self, unit: Unit) -> bool:
        return bool(
            self._session.scalar(
                select(func.count(Lease.id))
                .where(Lease.unit_id == unit.id)
                .where(Lease.status == LeaseStatus.ACTIVE)
            )
        )

    # -------------------------------------------------------------------------
    # Per-status handling
    # -------------------------------------------------------------------------

    def _on_activation(self, lease: Lease, unit: Unit, actor_id: UUID | str) -> ReconciliationOutcome:
        changed = self._set_occupancy(unit, True)

        removed = False
        listing = self._listings.get_listing_for_unit(unit.id)
        if listing is not None and listing.status == ListingStatus.ACTIVE:
            removed = self._remove_listing(lease, unit, actor_id)

        notifications: tuple[Notification, ...] = ()
        if removed:
            notifications = (
                Notification(
                    kind=NotificationKind.LISTING_AUTO_REMOVED,
                    recipient_id=unit.property.manager_id,
                    subject=f"Listing removed: unit {unit.unit_number}",
                    body=(
                        f"The lease for unit {unit.unit_number} at {unit.property.name} "
                        "is now active, so its listing was taken off the marketplace."
                    ),
                    unit_id=unit.id,
                    data={"lease_id": str(lease.id)},
                ),
            )
        return ReconciliationOutcome(
            unit_id=unit.id,
            is_occupied=True,
            occupancy_changed=changed,
            listing_removed=removed,
            notifications=notifications,
        )

    def _remove_listing(self, lease: Lease, unit: Unit, actor_id: UUID | str) -> bool:
        try:
            with self._session.begin_nested():
                result = self._listings.detach_listing(unit.id, actor_id, AUTO_REMOVAL_REASON)
        except SQLAlchemyError:
            logger.error(
                "listing_auto_removal_failed",
                extra={"lease_id": str(lease.id), "unit_id": str(unit.id)},
                exc_info=True,
            )
            return False
        if not result.is_success:
            logger.warning(
                "listing_auto_removal_failed",
                extra={
                    "lease_id": str(lease.id),
                    "unit_id": str(unit.id),
                    "result": result.status.value,
                    "message": result.message,
                },
            )
            return False
        return True

    def _on_ending(
        self,
        lease: Lease,
        unit: Unit,
        new_status: LeaseStatus,
        actor_id: UUID | str,
    ) -> ReconciliationOutcome:
        word, trigger = _ENDINGS[new_status]
        occupied = self._has_active_lease(unit)
        changed = self._set_occupancy(unit, occupied)

        listing = self._listings.get_listing_for_unit(unit.id)
        current = listing.status if listing is not None else ListingStatus.PRIVATE
        self._audit.create_audit_entry(
            unit_id=unit.id,
            listing_id=listing.id if listing is not None else None,
            action=ListingAction.UPDATE,
            user_id=actor_id,
            previous_status=current,
            new_status=current,
            reason=f"Unit available due to lease {word}",
            metadata={"lease_id": lease.id, "trigger": trigger},
        )

        notifications: tuple[Notification, ...] = ()
        if not occupied and listing is None:
            notifications = (decision_prompt(unit, lease, word),)
        return ReconciliationOutcome(
            unit_id=unit.id,
            is_occupied=occupied,
            occupancy_changed=changed,
            notifications=notifications,
        )

    def _on_signed(self, lease: Lease, unit: Unit) -> ReconciliationOutcome:
        listing = self._listings.get_listing_for_unit(unit.id)
        notifications: tuple[Notification, ...] = ()
        if listing is not None:
            start = lease.start_date.isoformat() if lease.start_date else "activation"
            notifications = (
                Notification(
                    kind=NotificationKind.LISTING_REMOVAL_PENDING,
                    recipient_id=unit.property.manager_id,
                    subject=f"Lease signed: unit {unit.unit_number}",
                    body=(
                        f"A lease for unit {unit.unit_number} at {unit.property.name} was "
                        f"signed. Its listing will be removed on {start}."
                    ),
                    unit_id=unit.id,
                    data={"lease_id": str(lease.id), "listing_id": str(listing.id)},
                ),
            )
        return ReconciliationOutcome(
            unit_id=unit.id, is_occupied=unit.is_occupied, notifications=notifications
        )


def decision_prompt(unit: Unit, lease: Lease, word: str) -> Notification:
    """Ask the property manager whether to list a vacated unit."""
    return Notification(
        kind=NotificationKind.LISTING_DECISION_REQUIRED,
        recipient_id=unit.property.manager_id,
        subject=f"Listing decision needed: unit {unit.unit_number}",
        body=(
            f"Unit {unit.unit_number} at {unit.property.name} is vacant after lease "
            f"{word}. Choose whether to list it and at what price."
        ),
        unit_id=unit.id,
        data={"lease_id": str(lease.id), "lease_status": lease.status.value},
    )
