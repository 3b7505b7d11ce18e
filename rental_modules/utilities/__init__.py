"""Utility bill lifecycle: create, allocate, approve, invoice, post."""

from rental_modules.utilities.meters import MeterReadingService
from rental_modules.utilities.models import (
    AllocationSnapshot,
    BillInput,
    BillResult,
    BillResultStatus,
    ReadingResult,
    ReadingResultStatus,
)
from rental_modules.utilities.service import UtilityBillService, compute_allocation_hash
from rental_modules.utilities.workflows import BILL_WORKFLOW

__all__ = [
    "AllocationSnapshot",
    "BILL_WORKFLOW",
    "BillInput",
    "BillResult",
    "BillResultStatus",
    "MeterReadingService",
    "ReadingResult",
    "ReadingResultStatus",
    "UtilityBillService",
    "compute_allocation_hash",
]
