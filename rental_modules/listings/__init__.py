"""Listing status machine: create, transition, maintain, expire, remove."""

from rental_modules.listings.defaults import populate_defaults
from rental_modules.listings.models import (
    ExpiringListing,
    ListingInput,
    ListingResult,
    ListingResultStatus,
    MaintenanceStatus,
    SweepResult,
)
from rental_modules.listings.service import ListingService
from rental_modules.listings.sweep import TimeBasedTransitionSweep
from rental_modules.listings.validation import (
    BulkRequestValidator,
    ListingInputValidator,
    ValidationResult,
    sanitize_text,
)
from rental_modules.listings.workflows import LISTING_WORKFLOW, SWEEP_WORKFLOW

__all__ = [
    "BulkRequestValidator",
    "ExpiringListing",
    "LISTING_WORKFLOW",
    "ListingInput",
    "ListingInputValidator",
    "ListingResult",
    "ListingResultStatus",
    "ListingService",
    "MaintenanceStatus",
    "SWEEP_WORKFLOW",
    "SweepResult",
    "TimeBasedTransitionSweep",
    "ValidationResult",
    "populate_defaults",
    "sanitize_text",
]
