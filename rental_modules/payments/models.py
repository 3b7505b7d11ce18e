"""
Invoice and payment result types (``rental_modules.payments.models``).

Expected failures (unknown invoice, overpayment, reversed payment, ledger
not set up) come back as a ``PaymentResult`` whose ``status`` is the
machine-readable code.  Fraud blocks and rate limits are raised instead.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from rental_engines.fraud import Recommendation
from rental_kernel.models.billing import InvoiceStatus, PostingStatus


class PaymentResultStatus(str, Enum):
    SUCCESS = "SUCCESS"
    INVOICE_NOT_FOUND = "INVOICE_NOT_FOUND"
    PAYMENT_NOT_FOUND = "PAYMENT_NOT_FOUND"
    LEASE_NOT_FOUND = "LEASE_NOT_FOUND"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    OVERPAYMENT = "OVERPAYMENT"
    ALREADY_PAID = "ALREADY_PAID"
    ALREADY_REVERSED = "ALREADY_REVERSED"
    PAYMENT_REVERSED = "PAYMENT_REVERSED"
    NO_FINANCIAL_ENTITY = "NO_FINANCIAL_ENTITY"
    JOURNAL_FAILED = "JOURNAL_FAILED"


@dataclass(frozen=True)
class PaymentRequest:
    """A payment as submitted by a payer, before validation."""

    invoice_id: UUID
    amount: Decimal
    method: str
    currency: str = "KES"
    reference: str | None = None
    payer_email: str | None = None
    payer_region: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    paid_on: datetime | None = None


@dataclass(frozen=True)
class PaymentResult:
    status: PaymentResultStatus
    invoice_id: UUID | None = None
    payment_id: UUID | None = None
    invoice_status: InvoiceStatus | None = None
    amount_paid: Decimal | None = None
    balance: Decimal | None = None
    posting_status: PostingStatus | None = None
    journal_entry_id: UUID | None = None
    fraud_recommendation: Recommendation | None = None
    message: str | None = None

    @property
    def is_success(self) -> bool:
        return self.status == PaymentResultStatus.SUCCESS
