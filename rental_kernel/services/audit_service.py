"""
Module: rental_kernel.services.audit_service
Responsibility: Write interface for the append-only listing audit trail.
Architecture position: Kernel > Services.

Invariants enforced:
    - Entries are write-once (see db/immutability.py).
    - ``sequence`` increases by one per unit, giving a total order that does
      not depend on timestamp resolution.

Failure modes:
    - Database errors while writing an entry are rolled back to a SAVEPOINT,
      logged as ``audit_write_failed`` and reported as ``None``.  The primary
      operation that requested the entry carries on; audit writes are
      fire-and-observe.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from rental_kernel.domain.clock import Clock, SystemClock
from rental_kernel.logging_config import get_logger
from rental_kernel.models.listing import ListingAction, ListingAuditEntry, ListingStatus
from rental_kernel.utils.hashing import canonicalize_json

logger = get_logger("services.audit")

SYSTEM_USER = "system"


class AuditService:
    """Records and reads listing audit entries."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    def create_audit_entry(
        self,
        *,
        unit_id: UUID,
        action: ListingAction,
        user_id: str | UUID,
        listing_id: UUID | None = None,
        previous_status: ListingStatus | None = None,
        new_status: ListingStatus | None = None,
        reason: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ListingAuditEntry | None:
        """Append one entry inside a SAVEPOINT.  Returns None if the write failed."""
        try:
            with self._session.begin_nested():
                entry = self._write(
                    unit_id=unit_id,
                    listing_id=listing_id,
                    action=action,
                    user_id=str(user_id),
                    previous_status=previous_status,
                    new_status=new_status,
                    reason=reason,
                    metadata=metadata,
                )
        except SQLAlchemyError:
            logger.error(
                "audit_write_failed",
                extra={
                    "unit_id": str(unit_id),
                    "listing_id": str(listing_id) if listing_id else None,
                    "action": action.value,
                },
                exc_info=True,
            )
            return None

        logger.info(
            "listing_audit_recorded",
            extra={
                "unit_id": str(unit_id),
                "listing_id": str(listing_id) if listing_id else None,
                "action": action.value,
                "previous_status": previous_status.value if previous_status else None,
                "new_status": new_status.value if new_status else None,
                "sequence": entry.sequence,
            },
        )
        return entry

    def _write(
        self,
        *,
        unit_id: UUID,
        listing_id: UUID | None,
        action: ListingAction,
        user_id: str,
        previous_status: ListingStatus | None,
        new_status: ListingStatus | None,
        reason: str | None,
        metadata: dict[str, Any] | None,
    ) -> ListingAuditEntry:
        last = self._session.scalar(
            select(func.max(ListingAuditEntry.sequence)).where(
                ListingAuditEntry.unit_id == unit_id
            )
        )
        entry = ListingAuditEntry(
            unit_id=unit_id,
            listing_id=listing_id,
            action=action,
            user_id=user_id,
            previous_status=previous_status,
            new_status=new_status,
            reason=reason,
            recorded_at=self._clock.now(),
            sequence=(last or 0) + 1,
            # JSON column: normalize UUID/Decimal/datetime to plain values
            entry_metadata=json.loads(canonicalize_json(metadata)) if metadata else None,
        )
        self._session.add(entry)
        self._session.flush()
        return entry

    def history_for_unit(self, unit_id: UUID) -> list[ListingAuditEntry]:
        """Entries for ``unit_id``, newest first."""
        return list(
            self._session.scalars(
                select(ListingAuditEntry)
                .where(ListingAuditEntry.unit_id == unit_id)
                .order_by(ListingAuditEntry.sequence.desc())
            )
        )

    def latest_entry(
        self, unit_id: UUID, actions: Iterable[ListingAction]
    ) -> ListingAuditEntry | None:
        return self._session.scalars(
            select(ListingAuditEntry)
            .where(ListingAuditEntry.unit_id == unit_id)
            .where(ListingAuditEntry.action.in_(list(actions)))
            .order_by(ListingAuditEntry.sequence.desc())
            .limit(1)
        ).first()
