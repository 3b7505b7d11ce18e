"""Bulk listing operations and bill transitions with per-item isolation."""

from rental_modules.bulk.coordinator import LISTING_DATA_REQUIRED, BulkOperationCoordinator
from rental_modules.bulk.models import (
    BulkAction,
    BulkFailure,
    BulkListingOperation,
    BulkResult,
    BulkSummary,
)

__all__ = [
    "BulkAction",
    "BulkFailure",
    "BulkListingOperation",
    "BulkOperationCoordinator",
    "BulkResult",
    "BulkSummary",
    "LISTING_DATA_REQUIRED",
]
