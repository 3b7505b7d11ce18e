"""
Utility bill input validation.

Every check runs and every violation is reported; nothing here touches
the database.  The first error code decides the result status the service
returns (INVALID_AMOUNT, INVALID_DATES or VALIDATION_FAILED).
"""

from __future__ import annotations

from decimal import Decimal

from rental_modules.utilities.models import BillInput, BillResultStatus


def validate_bill_input(data: BillInput) -> list[tuple[BillResultStatus, str]]:
    errors: list[tuple[BillResultStatus, str]] = []
    if data.property_id is None:
        errors.append((BillResultStatus.VALIDATION_FAILED, "Property ID is required"))
    if not (data.provider_name or "").strip():
        errors.append((BillResultStatus.VALIDATION_FAILED, "Provider name is required"))
    if isinstance(data.total_amount, float) or not isinstance(data.total_amount, Decimal):
        errors.append((BillResultStatus.INVALID_AMOUNT, "Bill amount must be a Decimal"))
    elif not data.total_amount.is_finite() or data.total_amount <= 0:
        errors.append((BillResultStatus.INVALID_AMOUNT, "Bill amount must be positive"))
    if data.due_date < data.bill_date:
        errors.append((BillResultStatus.INVALID_DATES, "Due date must be on or after bill date"))
    if data.ocr_confidence is not None and not Decimal("0") <= data.ocr_confidence <= Decimal("1"):
        errors.append((BillResultStatus.VALIDATION_FAILED, "OCR confidence must be between 0 and 1"))
    return errors


def validate_new_reading(value: Decimal, previous: Decimal | None) -> str | None:
    """Return the failing code name, or None.  Meters never run backwards."""
    if value < 0:
        return "NEGATIVE_VALUE"
    if previous is not None and value < previous:
        return "DECREASING_VALUE"
    return None
