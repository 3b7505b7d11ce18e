"""
BulkOperationCoordinator -- per-item isolated bulk listing and bill operations.

Contract:
    Each item runs through the ordinary public service method, which commits
    or rolls back on its own.  One item's failure never prevents, undoes or
    alters another item's outcome, and the result does not depend on the
    order the items are given in.

Architecture: rental_modules/bulk.  Imports the listing and utility bill
    services; owns no tables.

Invariants enforced:
    - ``succeeded + failed == total`` and every input id lands in exactly
      one of ``successful`` / ``failed``.
    - A batch that fails shape validation (empty, over the unit limit,
      duplicate ids, unknown action) runs no item; every item is reported
      failed with the batch errors.
    - LIST without listing data fails that item only.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from rental_config.schema import RentalSettings
from rental_kernel.domain.clock import Clock, SystemClock
from rental_kernel.logging_config import OperationTimer, get_logger
from rental_kernel.models.billing import UtilityBillStatus
from rental_kernel.models.listing import ListingStatus
from rental_modules.bulk.models import (
    BulkAction,
    BulkListingOperation,
    BulkResult,
    BulkResultBuilder,
)
from rental_modules.listings.models import ListingInput, ListingResult
from rental_modules.listings.service import ListingService
from rental_modules.listings.validation import (
    BulkRequestValidator,
    ListingInputValidator,
    listing_input_from,
)
from rental_modules.utilities.service import UtilityBillService
from rental_services.rate_limiter import SlidingWindowRateLimiter

logger = get_logger("modules.bulk.coordinator")

LISTING_DATA_REQUIRED = "Listing data required for LIST operation"


class BulkOperationCoordinator:
    """Runs batches of listing operations or bill transitions item by item."""

    def __init__(
        self,
        session: Session,
        listing_service: ListingService | None = None,
        bill_service: UtilityBillService | None = None,
        settings: RentalSettings | None = None,
        clock: Clock | None = None,
        rate_limiter: SlidingWindowRateLimiter | None = None,
    ):
        self._session = session
        self._settings = settings or RentalSettings()
        self._clock = clock or SystemClock()
        self._rate_limiter = rate_limiter
        # Item calls are not rate limited individually; the batch is.
        self._listings = listing_service or ListingService(
            session, settings=self._settings, clock=self._clock
        )
        self._bills = bill_service or UtilityBillService(
            session, settings=self._settings, clock=self._clock
        )
        self._batch_validator = BulkRequestValidator(self._settings.listings)
        self._listing_validator = ListingInputValidator(self._settings.listings)

    # -------------------------------------------------------------------------
    # Listings
    # -------------------------------------------------------------------------

    def bulk_update_listings(
        self,
        operations: Sequence[BulkListingOperation],
        actor_id: UUID | str,
    ) -> BulkResult:
        """Apply LIST / UNLIST / SUSPEND / ACTIVATE to each unit independently."""
        if self._rate_limiter is not None:
            self._rate_limiter.enforce(str(actor_id), "listing:bulk")

        ids = [op.unit_id for op in operations]
        check = self._batch_validator.validate_items(
            ids, [_action_name(op.action) for op in operations]
        )
        if not check.is_valid:
            return self._reject(ids, check.errors, "listings")

        builder = BulkResultBuilder()
        with OperationTimer() as timer:
            for op in operations:
                error = self._run_isolated(op.unit_id, lambda op=op: self._run_listing(op, actor_id))
                if error is None:
                    builder.succeed(op.unit_id)
                else:
                    builder.fail(op.unit_id, error)
        return self._finish(builder, "listings", timer.duration_ms)

    def bulk_update_request(self, payload: Mapping, actor_id: UUID | str) -> BulkResult:
        """Bulk request as received from the API: one action for many units.

        ``payload`` is ``{"unit_ids": [...], "action": "...", "data": {...}}``.
        """
        check = self._batch_validator.validate(payload)
        if not check.is_valid:
            raw_ids = payload.get("unit_ids")
            ids = list(raw_ids) if isinstance(raw_ids, (list, tuple)) else []
            return self._reject(ids, check.errors, "listings")

        try:
            unit_ids = [u if isinstance(u, UUID) else UUID(str(u)) for u in payload["unit_ids"]]
        except ValueError:
            return self._reject(list(payload["unit_ids"]), ("unit_ids must be UUIDs",), "listings")

        action = BulkAction(payload["action"])
        data = payload.get("data")
        operations = [
            BulkListingOperation(unit_id=u, action=action, data=data) for u in unit_ids
        ]
        return self.bulk_update_listings(operations, actor_id)

    def _run_listing(self, op: BulkListingOperation, actor_id: UUID | str) -> str | None:
        action = BulkAction(op.action)
        if action == BulkAction.LIST:
            if op.data is None:
                return LISTING_DATA_REQUIRED
            data = op.data
            if not isinstance(data, ListingInput):
                validation = self._listing_validator.validate("listing:create", data)
                if not validation.is_valid:
                    return ", ".join(validation.errors)
                data = listing_input_from(validation.sanitized_data)
            result = self._listings.create_listing(op.unit_id, data, actor_id)
        elif action == BulkAction.UNLIST:
            result = self._listings.remove_listing(op.unit_id, actor_id, "Bulk unlist operation")
        elif action == BulkAction.SUSPEND:
            result = self._listings.update_unit_listing_status(
                op.unit_id, ListingStatus.SUSPENDED, actor_id, "Bulk suspend operation"
            )
        else:
            result = self._listings.update_unit_listing_status(
                op.unit_id, ListingStatus.ACTIVE, actor_id, "Bulk activate operation"
            )
        return _listing_error(result)

    # -------------------------------------------------------------------------
    # Utility bills
    # -------------------------------------------------------------------------

    def bulk_transition_bills(
        self,
        bill_ids: Sequence[UUID],
        target: UtilityBillStatus,
        actor_id: UUID | None = None,
        reason: str | None = None,
    ) -> BulkResult:
        """Request ``target`` for each bill independently."""
        check = self._batch_validator.validate_items(bill_ids, [])
        if not check.is_valid:
            return self._reject(list(bill_ids), check.errors, "bills")

        builder = BulkResultBuilder()
        with OperationTimer() as timer:
            for bill_id in bill_ids:
                error = self._run_isolated(
                    bill_id,
                    lambda bill_id=bill_id: self._run_bill(bill_id, target, actor_id, reason),
                )
                if error is None:
                    builder.succeed(bill_id)
                else:
                    builder.fail(bill_id, error)
        return self._finish(builder, "bills", timer.duration_ms)

    def _run_bill(
        self,
        bill_id: UUID,
        target: UtilityBillStatus,
        actor_id: UUID | None,
        reason: str | None,
    ) -> str | None:
        result = self._bills.transition_bill(bill_id, target, actor_id, reason)
        if result.is_success:
            return None
        if result.message:
            return f"{result.status.value}: {result.message}"
        return result.status.value

    # -------------------------------------------------------------------------
    # Shared
    # -------------------------------------------------------------------------

    def _run_isolated(self, item_id: UUID, run) -> str | None:
        """Run one item; an exception becomes that item's error."""
        try:
            return run()
        except Exception as exc:  # noqa: BLE001
            self._session.rollback()
            logger.error(
                "bulk_item_failed",
                extra={"item_id": str(item_id)},
                exc_info=True,
            )
            return str(exc) or type(exc).__name__

    def _reject(self, ids: Sequence[UUID], errors: tuple[str, ...], kind: str) -> BulkResult:
        message = f"Batch rejected: {'; '.join(errors)}"
        builder = BulkResultBuilder()
        for item_id in ids:
            builder.fail(item_id, message)
        logger.warning(
            "bulk_batch_rejected",
            extra={"kind": kind, "item_count": len(ids), "errors": list(errors)},
        )
        return builder.build(batch_errors=errors)

    def _finish(self, builder: BulkResultBuilder, kind: str, duration_ms: float) -> BulkResult:
        result = builder.build()
        logger.info(
            "bulk_operation_completed",
            extra={
                "kind": kind,
                "total": result.summary.total,
                "succeeded": result.summary.succeeded,
                "failed": result.summary.failed,
                "duration_ms": duration_ms,
            },
        )
        return result


def _listing_error(result: ListingResult) -> str | None:
    if result.is_success:
        return None
    return result.message or result.status.value


def _action_name(action: BulkAction | str) -> str:
    return action.value if isinstance(action, BulkAction) else str(action)
