"""
Listing Result Types (``rental_modules.listings.models``).

Frozen inputs and results for the listing service and the time-based
sweep.  Expected failures (unit already listed, invalid transition,
validation errors) are reported through ``ListingResult.status``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from rental_kernel.models.listing import ListingStatus


class ListingResultStatus(str, Enum):
    SUCCESS = "SUCCESS"
    UNIT_NOT_FOUND = "UNIT_NOT_FOUND"
    LISTING_NOT_FOUND = "LISTING_NOT_FOUND"
    ALREADY_LISTED = "ALREADY_LISTED"
    ACTIVE_LEASE_EXISTS = "ACTIVE_LEASE_EXISTS"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    NOT_IN_MAINTENANCE = "NOT_IN_MAINTENANCE"


@dataclass(frozen=True)
class ListingInput:
    """Caller-supplied listing fields.  ``None`` means "use the default"."""

    title: str | None = None
    description: str | None = None
    price: Decimal | None = None
    availability_date: datetime | None = None
    expiration_date: datetime | None = None


@dataclass(frozen=True)
class ListingResult:
    status: ListingResultStatus
    unit_id: UUID | None = None
    listing_id: UUID | None = None
    listing_status: ListingStatus | None = None
    previous_status: ListingStatus | None = None
    message: str | None = None
    errors: tuple[str, ...] = ()
    changes: dict[str, dict[str, str | None]] = field(default_factory=dict)

    @property
    def is_success(self) -> bool:
        return self.status == ListingResultStatus.SUCCESS


@dataclass(frozen=True)
class MaintenanceStatus:
    is_in_maintenance: bool
    previous_status: ListingStatus | None = None
    reason: str | None = None
    started_at: datetime | None = None
    maintenance_request_id: str | None = None
    estimated_end_date: str | None = None

    @property
    def can_restore(self) -> bool:
        return self.is_in_maintenance


@dataclass(frozen=True)
class ExpiringListing:
    listing_id: UUID
    unit_id: UUID
    unit_number: str
    title: str
    expiration_date: datetime
    days_until_expiration: int


@dataclass(frozen=True)
class SweepResult:
    """Counts from one run of the time-based sweep.

    ``processed == activated + expired``; a second run against the same
    clock reports zero for all three.
    """

    processed: int = 0
    activated: int = 0
    expired: int = 0
    errors: tuple[str, ...] = ()
