"""Lease lifecycle and lease-listing reconciliation."""

from rental_modules.leasing.models import (
    LeaseResult,
    LeaseResultStatus,
    ReconciliationOutcome,
)
from rental_modules.leasing.reconciler import LeaseListingReconciler
from rental_modules.leasing.service import LeaseService
from rental_modules.leasing.workflows import LEASE_WORKFLOW

__all__ = [
    "LEASE_WORKFLOW",
    "LeaseListingReconciler",
    "LeaseResult",
    "LeaseResultStatus",
    "LeaseService",
    "ReconciliationOutcome",
]
