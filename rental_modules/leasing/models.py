"""Result types for lease status changes and their listing reconciliation."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from rental_kernel.models.property import LeaseStatus
from rental_services.notifications import Notification


class LeaseResultStatus(str, Enum):
    SUCCESS = "SUCCESS"
    LEASE_NOT_FOUND = "LEASE_NOT_FOUND"
    INVALID_TRANSITION = "INVALID_TRANSITION"


@dataclass(frozen=True)
class ReconciliationOutcome:
    """What the reconciler changed for one lease status change.

    ``notifications`` are handed back rather than sent so the caller can
    deliver them after the lease transaction commits.
    """

    unit_id: UUID
    is_occupied: bool
    occupancy_changed: bool = False
    listing_removed: bool = False
    notifications: tuple[Notification, ...] = ()


@dataclass(frozen=True)
class LeaseResult:
    status: LeaseResultStatus
    lease_id: UUID | None = None
    lease_status: LeaseStatus | None = None
    previous_status: LeaseStatus | None = None
    message: str | None = None
    reconciliation: ReconciliationOutcome | None = None

    @property
    def is_success(self) -> bool:
        return self.status == LeaseResultStatus.SUCCESS
