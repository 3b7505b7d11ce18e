"""
Utility Bill Result Types (``rental_modules.utilities.models``).

Frozen result objects returned by the bill and meter-reading services.
Expected domain failures (wrong status, uncovered allocations, missing
lease) come back as a ``BillResult`` with ``is_success == False``; the
``status`` value is the machine-readable error code.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from rental_kernel.models.billing import (
    UtilityBillStatus,
    UtilityImportMethod,
    UtilitySplitMethod,
)


class BillResultStatus(str, Enum):
    SUCCESS = "SUCCESS"
    ALREADY_POSTED = "ALREADY_POSTED"
    BILL_NOT_FOUND = "BILL_NOT_FOUND"
    PROPERTY_NOT_FOUND = "PROPERTY_NOT_FOUND"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    INVALID_DATES = "INVALID_DATES"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    INVALID_STATUS = "INVALID_STATUS"
    ALREADY_ALLOCATED = "ALREADY_ALLOCATED"
    NO_UNITS_FOUND = "NO_UNITS_FOUND"
    MISSING_SPLIT_DATA = "MISSING_SPLIT_DATA"
    NO_ALLOCATIONS = "NO_ALLOCATIONS"
    ALLOCATION_SUM_MISMATCH = "ALLOCATION_SUM_MISMATCH"
    REVIEW_REQUIRED = "REVIEW_REQUIRED"
    ALLOCATION_MISSING_LEASE = "ALLOCATION_MISSING_LEASE"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    NOT_APPROVED = "NOT_APPROVED"
    NO_FINANCIAL_ENTITY = "NO_FINANCIAL_ENTITY"
    JOURNAL_FAILED = "JOURNAL_FAILED"


@dataclass(frozen=True)
class BillInput:
    """Caller-supplied fields for a new bill, before validation."""

    property_id: UUID | None
    provider_name: str
    total_amount: Decimal
    bill_date: date
    due_date: date
    split_method: UtilitySplitMethod = UtilitySplitMethod.EQUAL
    import_method: UtilityImportMethod = UtilityImportMethod.MANUAL_ENTRY
    ocr_confidence: Decimal | None = None
    file_url: str | None = None


@dataclass(frozen=True)
class AllocationSnapshot:
    unit_id: UUID
    amount: Decimal
    percentage: Decimal


@dataclass(frozen=True)
class BillResult:
    status: BillResultStatus
    bill_id: UUID | None = None
    bill_status: UtilityBillStatus | None = None
    message: str | None = None
    errors: tuple[str, ...] = ()
    allocations: tuple[AllocationSnapshot, ...] = ()
    invoice_ids: tuple[UUID, ...] = ()
    journal_entry_id: UUID | None = None
    audit_hash: str | None = None

    @property
    def is_success(self) -> bool:
        return self.status == BillResultStatus.SUCCESS


class ReadingResultStatus(str, Enum):
    SUCCESS = "SUCCESS"
    LEASE_NOT_FOUND = "LEASE_NOT_FOUND"
    NEGATIVE_VALUE = "NEGATIVE_VALUE"
    DECREASING_VALUE = "DECREASING_VALUE"


@dataclass(frozen=True)
class ReadingResult:
    status: ReadingResultStatus
    reading_id: UUID | None = None
    message: str | None = None

    @property
    def is_success(self) -> bool:
        return self.status == ReadingResultStatus.SUCCESS
