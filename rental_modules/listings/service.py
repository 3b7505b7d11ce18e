"""
Listing Service (``rental_modules.listings.service``).

Responsibility
--------------
Creates, transitions, edits and removes the marketplace listing of a unit,
and drives maintenance mode and expiration extension.  Status changes go
through ``LISTING_WORKFLOW`` and the workflow executor; every change is
recorded in the listing audit trail.

Invariants enforced
-------------------
* At most one listing per unit.
* No listing is created for a unit holding an ACTIVE or PENDING_APPROVAL
  lease, and no listing enters ACTIVE while the unit has an ACTIVE lease.
* An invalid transition is refused with a message naming both statuses;
  the stored status is never clamped.

Failure modes
-------------
* Expected failures  -> ``ListingResult`` with ``is_success == False``,
  session rolled back.
* Rate limit exhausted  -> ``RateLimitExceededError`` before any read.
* Unexpected exception  -> session rolled back, exception re-raised.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from rental_config.schema import RentalSettings
from rental_kernel.domain.clock import Clock, SystemClock
from rental_kernel.exceptions import InvalidListingTransitionError
from rental_kernel.logging_config import OperationTimer, get_logger
from rental_kernel.models.listing import (
    Listing,
    ListingAction,
    ListingAuditEntry,
    ListingStatus,
)
from rental_kernel.models.property import Lease, LeaseStatus, Unit
from rental_kernel.services.audit_service import AuditService
from rental_modules._transactions import commit_or_rollback
from rental_modules.listings.defaults import populate_defaults
from rental_modules.listings.models import (
    ExpiringListing,
    ListingInput,
    ListingResult,
    ListingResultStatus,
    MaintenanceStatus,
    SweepResult,
)
from rental_modules.listings.sweep import TimeBasedTransitionSweep
from rental_modules.listings.validation import ListingInputValidator
from rental_modules.listings.workflows import GUARD_EVALUATORS, LISTING_WORKFLOW
from rental_services.notifications import LoggingNotifier, Notifier
from rental_services.rate_limiter import SlidingWindowRateLimiter
from rental_services.workflow_executor import TransitionResult, WorkflowExecutor

logger = get_logger("modules.listings.service")

ENTITY_TYPE = "listing"

_BLOCKING_LEASE_STATUSES = (LeaseStatus.ACTIVE, LeaseStatus.PENDING_APPROVAL)

_STATUS_ACTIONS = {
    ListingStatus.ACTIVE: ListingAction.ACTIVATE,
    ListingStatus.SUSPENDED: ListingAction.SUSPEND,
    ListingStatus.EXPIRED: ListingAction.EXPIRE,
    ListingStatus.MAINTENANCE: ListingAction.MAINTENANCE_START,
}


def _audit_action(previous: ListingStatus, new: ListingStatus) -> ListingAction:
    if previous == ListingStatus.MAINTENANCE:
        return ListingAction.MAINTENANCE_END
    return _STATUS_ACTIONS.get(new, ListingAction.UPDATE)


def _as_text(value) -> str | None:
    return None if value is None else str(value)


def _actor_uuid(actor_id: UUID | str) -> UUID | None:
    # String actors ("system") are kept in audit rows only
    return actor_id if isinstance(actor_id, UUID) else None


class ListingService:
    """
    Listing status machine for rental units.

    Contract:
        Public methods return ``ListingResult`` and own the transaction.
        The ``_do_*`` helpers never commit; the lease reconciler removes
        listings through ``detach_listing`` inside the lease transaction.
    """

    def __init__(
        self,
        session: Session,
        settings: RentalSettings | None = None,
        clock: Clock | None = None,
        workflow_executor: WorkflowExecutor | None = None,
        audit_service: AuditService | None = None,
        notifier: Notifier | None = None,
        rate_limiter: SlidingWindowRateLimiter | None = None,
        validator: ListingInputValidator | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._settings = settings or RentalSettings()
        self._audit = audit_service or AuditService(session, clock=self._clock)
        self._notifier = notifier or LoggingNotifier()
        self._rate_limiter = rate_limiter
        self._validator = validator or ListingInputValidator(self._settings.listings)
        self._workflow_executor = workflow_executor or WorkflowExecutor()
        for name, evaluator in GUARD_EVALUATORS.items():
            self._workflow_executor.guards.register(name, evaluator)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_listing(self, listing_id: UUID) -> Listing | None:
        return self._session.get(Listing, listing_id)

    def get_listing_for_unit(self, unit_id: UUID) -> Listing | None:
        return self._session.scalars(
            select(Listing).where(Listing.unit_id == unit_id)
        ).first()

    def get_listing_history(self, unit_id: UUID) -> list[ListingAuditEntry]:
        """Audit entries for the unit, newest first."""
        return self._audit.history_for_unit(unit_id)

    def active_lease_count(self, unit_id: UUID) -> int:
        return self._session.scalar(
            select(func.count(Lease.id))
            .where(Lease.unit_id == unit_id)
            .where(Lease.status == LeaseStatus.ACTIVE)
        ) or 0

    def _has_blocking_lease(self, unit_id: UUID) -> bool:
        return bool(
            self._session.scalar(
                select(func.count(Lease.id))
                .where(Lease.unit_id == unit_id)
                .where(Lease.status.in_(_BLOCKING_LEASE_STATUSES))
            )
        )

    def get_maintenance_status(self, unit_id: UUID) -> MaintenanceStatus:
        listing = self.get_listing_for_unit(unit_id)
        if listing is None or listing.status != ListingStatus.MAINTENANCE:
            return MaintenanceStatus(is_in_maintenance=False)

        entry = self._audit.latest_entry(unit_id, [ListingAction.MAINTENANCE_START])
        if entry is None:
            return MaintenanceStatus(is_in_maintenance=True)
        metadata = entry.entry_metadata or {}
        return MaintenanceStatus(
            is_in_maintenance=True,
            previous_status=entry.previous_status,
            reason=entry.reason,
            started_at=entry.recorded_at,
            maintenance_request_id=metadata.get("maintenance_request_id"),
            estimated_end_date=metadata.get("estimated_end_date"),
        )

    def get_expiring_soon_listings(self, days_ahead: int | None = None) -> list[ExpiringListing]:
        """Listings whose expiration falls within the next ``days_ahead`` days."""
        if days_ahead is None:
            days_ahead = self._settings.listings.expiring_soon_days
        now = self._clock.now()
        horizon = now + timedelta(days=days_ahead)
        rows = self._session.scalars(
            select(Listing)
            .where(Listing.expiration_date.is_not(None))
            .where(Listing.expiration_date >= now)
            .where(Listing.expiration_date <= horizon)
            .order_by(Listing.expiration_date)
        )
        return [
            ExpiringListing(
                listing_id=listing.id,
                unit_id=listing.unit_id,
                unit_number=listing.unit.unit_number or "Unknown",
                title=listing.title,
                expiration_date=listing.expiration_date,
                days_until_expiration=math.ceil(
                    (listing.expiration_date - now).total_seconds() / 86400
                ),
            )
            for listing in rows
        ]

    # =========================================================================
    # Helpers
    # =========================================================================

    def _limit(self, actor_id: UUID | str | None, operation: str) -> None:
        if self._rate_limiter is not None and actor_id is not None:
            self._rate_limiter.enforce(str(actor_id), operation)

    def _fail(
        self,
        status: ListingResultStatus,
        message: str | None = None,
        *,
        unit_id: UUID | None = None,
        listing: Listing | None = None,
        errors: tuple[str, ...] = (),
    ) -> ListingResult:
        result = ListingResult(
            status,
            unit_id=unit_id if unit_id is not None else (listing.unit_id if listing else None),
            listing_id=listing.id if listing else None,
            listing_status=listing.status if listing else None,
            message=message,
            errors=errors,
        )
        logger.info(
            "listing_operation_refused",
            extra={
                "unit_id": _as_text(result.unit_id),
                "listing_id": _as_text(result.listing_id),
                "result": status.value,
                "message": message,
            },
        )
        return result

    def _check_transition(self, listing: Listing, target: ListingStatus) -> TransitionResult:
        return self._workflow_executor.execute_transition(
            LISTING_WORKFLOW,
            current_state=listing.status.value,
            requested_state=target.value,
            entity_type=ENTITY_TYPE,
            entity_id=listing.id,
            context={"active_lease_count": self.active_lease_count(listing.unit_id)},
        )

    def _do_transition(
        self,
        listing: Listing,
        target: ListingStatus,
        actor_id: UUID | str,
        reason: str | None = None,
        action: ListingAction | None = None,
        metadata: dict | None = None,
    ) -> ListingResult:
        """Move ``listing`` to ``target`` and audit it.  Does not commit.

        Raises:
            InvalidListingTransitionError: not in the table, or the
                active-lease guard refused entry into ACTIVE.
        """
        check = self._check_transition(listing, target)
        if not check.success:
            raise InvalidListingTransitionError(
                listing.status.value,
                target.value,
                reason=check.reason if check.guard_name else None,
            )

        previous = listing.status
        listing.status = target
        listing.updated_by_id = _actor_uuid(actor_id)
        self._session.flush()
        self._audit.create_audit_entry(
            unit_id=listing.unit_id,
            listing_id=listing.id,
            action=action or _audit_action(previous, target),
            user_id=actor_id,
            previous_status=previous,
            new_status=target,
            reason=reason or f"Status updated to {target.value}",
            metadata=metadata,
        )
        logger.info(
            "listing_status_changed",
            extra={
                "listing_id": str(listing.id),
                "unit_id": str(listing.unit_id),
                "from_status": previous.value,
                "to_status": target.value,
            },
        )
        return ListingResult(
            ListingResultStatus.SUCCESS,
            unit_id=listing.unit_id,
            listing_id=listing.id,
            listing_status=target,
            previous_status=previous,
        )

    # =========================================================================
    # Create
    # =========================================================================

    def create_listing(
        self,
        unit_id: UUID,
        data: ListingInput | None,
        actor_id: UUID | str,
    ) -> ListingResult:
        """
        List a unit on the marketplace.

        Missing fields are synthesized from the unit.  A future availability
        date creates the listing in COMING_SOON, otherwise in ACTIVE.
        """
        self._limit(actor_id, "listing:create")
        try:
            with OperationTimer() as timer:
                result = self._do_create(unit_id, data or ListingInput(), actor_id)
            if result.is_success:
                logger.info(
                    "listing_created",
                    extra={
                        "listing_id": str(result.listing_id),
                        "unit_id": str(unit_id),
                        "status": result.listing_status.value,
                        "duration_ms": timer.duration_ms,
                    },
                )
            commit_or_rollback(self._session, result)
            return result
        except Exception:
            self._session.rollback()
            raise

    def _do_create(self, unit_id: UUID, data: ListingInput, actor_id: UUID | str) -> ListingResult:
        unit = self._session.get(Unit, unit_id)
        if unit is None:
            return self._fail(
                ListingResultStatus.UNIT_NOT_FOUND,
                f"Unit with ID {unit_id} not found",
                unit_id=unit_id,
            )
        if self.get_listing_for_unit(unit_id) is not None:
            return self._fail(
                ListingResultStatus.ALREADY_LISTED,
                f"Unit {unit.unit_number} is already listed",
                unit_id=unit_id,
            )
        if self._has_blocking_lease(unit_id):
            return self._fail(
                ListingResultStatus.ACTIVE_LEASE_EXISTS,
                f"Unit {unit.unit_number} has an active or pending lease",
                unit_id=unit_id,
            )

        now = self._clock.now()
        populated = populate_defaults(data, unit, self._settings.listings, now)
        validation = self._validator.validate_listing(populated, now)
        if not validation.is_valid:
            return self._fail(
                ListingResultStatus.VALIDATION_FAILED,
                ", ".join(validation.errors),
                unit_id=unit_id,
                errors=validation.errors,
            )
        clean: ListingInput = validation.sanitized_data

        coming_soon = clean.availability_date > now
        target = ListingStatus.COMING_SOON if coming_soon else ListingStatus.ACTIVE
        listing = Listing(
            unit_id=unit_id,
            title=clean.title,
            description=clean.description,
            price=clean.price,
            availability_date=clean.availability_date,
            expiration_date=clean.expiration_date,
            status=ListingStatus.PRIVATE,
            created_by_id=_actor_uuid(actor_id),
        )
        self._session.add(listing)
        self._session.flush()

        check = self._check_transition(listing, target)
        if not check.success:
            return self._fail(
                ListingResultStatus.INVALID_TRANSITION,
                str(InvalidListingTransitionError(
                    ListingStatus.PRIVATE.value, target.value, reason=check.reason
                )),
                unit_id=unit_id,
            )
        listing.status = target
        self._session.flush()

        self._audit.create_audit_entry(
            unit_id=unit_id,
            listing_id=listing.id,
            action=ListingAction.SET_COMING_SOON if coming_soon else ListingAction.CREATE,
            user_id=actor_id,
            previous_status=ListingStatus.PRIVATE,
            new_status=target,
            reason=(
                "Listing created with future availability date"
                if coming_soon
                else "Listing created"
            ),
            metadata={
                "availability_date": clean.availability_date,
                "expiration_date": clean.expiration_date,
            },
        )
        return ListingResult(
            ListingResultStatus.SUCCESS,
            unit_id=unit_id,
            listing_id=listing.id,
            listing_status=target,
            previous_status=ListingStatus.PRIVATE,
        )

    # =========================================================================
    # Status
    # =========================================================================

    def update_listing_status(
        self,
        listing_id: UUID,
        new_status: ListingStatus,
        actor_id: UUID | str,
        reason: str | None = None,
    ) -> ListingResult:
        """Move a listing to ``new_status`` if the table and lease guard allow it."""
        self._limit(actor_id, "listing:status")
        try:
            listing = self.get_listing(listing_id)
            if listing is None:
                result = self._fail(
                    ListingResultStatus.LISTING_NOT_FOUND,
                    f"Listing with ID {listing_id} not found",
                )
            else:
                result = self._transition_result(listing, new_status, actor_id, reason)
            commit_or_rollback(self._session, result)
            return result
        except Exception:
            self._session.rollback()
            raise

    def update_unit_listing_status(
        self,
        unit_id: UUID,
        new_status: ListingStatus,
        actor_id: UUID | str,
        reason: str | None = None,
    ) -> ListingResult:
        """``update_listing_status`` addressed by unit, as bulk requests are."""
        listing = self.get_listing_for_unit(unit_id)
        if listing is None:
            result = self._fail(
                ListingResultStatus.LISTING_NOT_FOUND,
                "Unit does not have an active listing",
                unit_id=unit_id,
            )
            self._session.rollback()
            return result
        return self.update_listing_status(listing.id, new_status, actor_id, reason)

    def _transition_result(
        self,
        listing: Listing,
        target: ListingStatus,
        actor_id: UUID | str,
        reason: str | None,
        action: ListingAction | None = None,
        metadata: dict | None = None,
    ) -> ListingResult:
        try:
            return self._do_transition(listing, target, actor_id, reason, action, metadata)
        except InvalidListingTransitionError as exc:
            return self._fail(ListingResultStatus.INVALID_TRANSITION, str(exc), listing=listing)

    # =========================================================================
    # Edit
    # =========================================================================

    def update_listing_information(
        self,
        listing_id: UUID,
        data: ListingInput,
        actor_id: UUID | str,
    ) -> ListingResult:
        """Edit title, description and price.  Status is left unchanged."""
        self._limit(actor_id, "listing:update")
        try:
            listing = self.get_listing(listing_id)
            if listing is None:
                result = self._fail(
                    ListingResultStatus.LISTING_NOT_FOUND,
                    f"Listing with ID {listing_id} not found",
                )
                commit_or_rollback(self._session, result)
                return result

            merged = ListingInput(
                title=data.title if data.title is not None else listing.title,
                description=(
                    data.description if data.description is not None else listing.description
                ),
                price=data.price if data.price is not None else listing.price,
            )
            validation = self._validator.validate_listing(merged, self._clock.now())
            if not validation.is_valid:
                result = self._fail(
                    ListingResultStatus.VALIDATION_FAILED,
                    ", ".join(validation.errors),
                    listing=listing,
                    errors=validation.errors,
                )
                commit_or_rollback(self._session, result)
                return result

            clean: ListingInput = validation.sanitized_data
            changes = {
                name: {"from": _as_text(getattr(listing, name)), "to": _as_text(new)}
                for name, new in (
                    ("title", clean.title),
                    ("description", clean.description),
                    ("price", clean.price),
                )
                if getattr(listing, name) != new
            }
            if changes:
                listing.title = clean.title
                listing.description = clean.description
                listing.price = clean.price
                self._session.flush()
                self._audit.create_audit_entry(
                    unit_id=listing.unit_id,
                    listing_id=listing.id,
                    action=ListingAction.UPDATE,
                    user_id=actor_id,
                    previous_status=listing.status,
                    new_status=listing.status,
                    reason="Listing information updated",
                    metadata={"changes": changes},
                )
            logger.info(
                "listing_information_updated",
                extra={"listing_id": str(listing.id), "changed_fields": sorted(changes)},
            )
            result = ListingResult(
                ListingResultStatus.SUCCESS,
                unit_id=listing.unit_id,
                listing_id=listing.id,
                listing_status=listing.status,
                changes=changes,
            )
            commit_or_rollback(self._session, result)
            return result
        except Exception:
            self._session.rollback()
            raise

    def extend_listing_expiration(
        self,
        listing_id: UUID,
        new_expiration_date: datetime,
        actor_id: UUID | str,
        reason: str | None = None,
    ) -> ListingResult:
        """
        Push the expiration date into the future.

        An EXPIRED listing is returned to ACTIVE through the status table,
        so the active-lease guard applies.
        """
        self._limit(actor_id, "listing:update")
        try:
            result = self._do_extend(listing_id, new_expiration_date, actor_id, reason)
            commit_or_rollback(self._session, result)
            return result
        except Exception:
            self._session.rollback()
            raise

    def _do_extend(
        self,
        listing_id: UUID,
        new_expiration_date: datetime,
        actor_id: UUID | str,
        reason: str | None,
    ) -> ListingResult:
        listing = self.get_listing(listing_id)
        if listing is None:
            return self._fail(
                ListingResultStatus.LISTING_NOT_FOUND,
                f"Listing with ID {listing_id} not found",
            )
        if new_expiration_date <= self._clock.now():
            return self._fail(
                ListingResultStatus.VALIDATION_FAILED,
                "New expiration date must be in the future",
                listing=listing,
            )
        if new_expiration_date <= listing.availability_date:
            return self._fail(
                ListingResultStatus.VALIDATION_FAILED,
                "Expiration date must be after availability date",
                listing=listing,
            )

        previous_expiration = listing.expiration_date
        previous_status = listing.status
        metadata = {
            "previous_expiration_date": previous_expiration,
            "new_expiration_date": new_expiration_date,
        }
        listing.expiration_date = new_expiration_date
        reason = reason or "Expiration date extended"

        if listing.status == ListingStatus.EXPIRED:
            result = self._transition_result(
                listing, ListingStatus.ACTIVE, actor_id, reason,
                action=ListingAction.UPDATE, metadata=metadata,
            )
            if result.is_success:
                logger.info(
                    "listing_expiration_extended",
                    extra={"listing_id": str(listing.id), "reactivated": True},
                )
            return result

        self._session.flush()
        self._audit.create_audit_entry(
            unit_id=listing.unit_id,
            listing_id=listing.id,
            action=ListingAction.UPDATE,
            user_id=actor_id,
            previous_status=previous_status,
            new_status=listing.status,
            reason=reason,
            metadata=metadata,
        )
        logger.info(
            "listing_expiration_extended",
            extra={"listing_id": str(listing.id), "reactivated": False},
        )
        return ListingResult(
            ListingResultStatus.SUCCESS,
            unit_id=listing.unit_id,
            listing_id=listing.id,
            listing_status=listing.status,
            previous_status=previous_status,
        )

    # =========================================================================
    # Remove
    # =========================================================================

    def remove_listing(
        self,
        unit_id: UUID,
        actor_id: UUID | str,
        reason: str | None = None,
    ) -> ListingResult:
        """Take the unit off the marketplace and delete its listing."""
        self._limit(actor_id, "listing:delete")
        try:
            result = self._do_remove(unit_id, actor_id, reason)
            commit_or_rollback(self._session, result)
            return result
        except Exception:
            self._session.rollback()
            raise

    def detach_listing(
        self,
        unit_id: UUID,
        actor_id: UUID | str,
        reason: str | None = None,
    ) -> ListingResult:
        """``remove_listing`` inside the caller's transaction: no commit, no rate limit."""
        return self._do_remove(unit_id, actor_id, reason)

    def _do_remove(
        self,
        unit_id: UUID,
        actor_id: UUID | str,
        reason: str | None = None,
    ) -> ListingResult:
        """Audit REMOVE (status -> PRIVATE) and delete the row.  Does not commit."""
        if self._session.get(Unit, unit_id) is None:
            return self._fail(
                ListingResultStatus.UNIT_NOT_FOUND,
                f"Unit with ID {unit_id} not found",
                unit_id=unit_id,
            )
        listing = self.get_listing_for_unit(unit_id)
        if listing is None:
            return self._fail(
                ListingResultStatus.LISTING_NOT_FOUND,
                "Unit does not have an active listing",
                unit_id=unit_id,
            )

        previous = listing.status
        listing_id = listing.id
        self._audit.create_audit_entry(
            unit_id=unit_id,
            listing_id=listing_id,
            action=ListingAction.REMOVE,
            user_id=actor_id,
            previous_status=previous,
            new_status=ListingStatus.PRIVATE,
            reason=reason or "Listing removed",
        )
        self._session.delete(listing)
        self._session.flush()
        logger.info(
            "listing_removed",
            extra={
                "listing_id": str(listing_id),
                "unit_id": str(unit_id),
                "previous_status": previous.value,
            },
        )
        return ListingResult(
            ListingResultStatus.SUCCESS,
            unit_id=unit_id,
            listing_id=listing_id,
            listing_status=ListingStatus.PRIVATE,
            previous_status=previous,
        )

    # =========================================================================
    # Maintenance mode
    # =========================================================================

    def start_maintenance(
        self,
        unit_id: UUID,
        actor_id: UUID | str,
        reason: str,
        maintenance_request_id: str | None = None,
        estimated_end_date: datetime | None = None,
    ) -> ListingResult:
        """Hide the listing while the unit is under maintenance.

        The status held before maintenance is kept in the audit entry and
        restored by ``end_maintenance``.
        """
        try:
            listing = self.get_listing_for_unit(unit_id)
            if listing is None:
                result = self._fail(
                    ListingResultStatus.LISTING_NOT_FOUND,
                    "Unit does not have an active listing",
                    unit_id=unit_id,
                )
            else:
                result = self._transition_result(
                    listing,
                    ListingStatus.MAINTENANCE,
                    actor_id,
                    reason,
                    action=ListingAction.MAINTENANCE_START,
                    metadata={
                        "maintenance_request_id": maintenance_request_id,
                        "start_date": self._clock.now(),
                        "estimated_end_date": estimated_end_date,
                    },
                )
            commit_or_rollback(self._session, result)
            return result
        except Exception:
            self._session.rollback()
            raise

    def end_maintenance(
        self,
        unit_id: UUID,
        actor_id: UUID | str,
        restore_to: ListingStatus | None = None,
        reason: str | None = None,
    ) -> ListingResult:
        """Leave maintenance, returning to ``restore_to`` or the remembered status."""
        try:
            listing = self.get_listing_for_unit(unit_id)
            if listing is None:
                result = self._fail(
                    ListingResultStatus.LISTING_NOT_FOUND,
                    "Unit does not have an active listing",
                    unit_id=unit_id,
                )
            elif listing.status != ListingStatus.MAINTENANCE:
                result = self._fail(
                    ListingResultStatus.NOT_IN_MAINTENANCE,
                    f"Unit {listing.unit.unit_number} is not currently in maintenance mode",
                    listing=listing,
                )
            else:
                status = self.get_maintenance_status(unit_id)
                target = restore_to or status.previous_status or ListingStatus.ACTIVE
                result = self._transition_result(
                    listing,
                    target,
                    actor_id,
                    reason or "Maintenance completed",
                    action=ListingAction.MAINTENANCE_END,
                    metadata={
                        "maintenance_request_id": status.maintenance_request_id,
                        "end_date": self._clock.now(),
                        "restored_to_status": target.value,
                    },
                )
            commit_or_rollback(self._session, result)
            return result
        except Exception:
            self._session.rollback()
            raise

    # =========================================================================
    # Time-based transitions
    # =========================================================================

    def process_time_based_transitions(self) -> SweepResult:
        """Run the activation/expiry sweep against the injected clock."""
        sweep = TimeBasedTransitionSweep(
            self._session,
            clock=self._clock,
            workflow_executor=self._workflow_executor,
            audit_service=self._audit,
            notifier=self._notifier,
        )
        return sweep.run()
