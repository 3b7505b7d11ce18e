"""
Payment field validation.

All rules run and every violation is reported.  Nothing here touches the
database; the balance check belongs to ``InvoiceService``.
"""

from __future__ import annotations

import re
from decimal import Decimal

from rental_modules.payments.models import PaymentRequest

PAYMENT_METHODS = frozenset({
    "CASH", "BANK_TRANSFER", "CHEQUE", "CARD", "MPESA", "STRIPE", "PAYSTACK",
})

MAX_REFERENCE_LENGTH = 100

_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_CURRENCY = re.compile(r"^[A-Z]{3}$")


def validate_payment_request(request: PaymentRequest) -> list[str]:
    errors: list[str] = []
    amount = request.amount
    if isinstance(amount, float) or not isinstance(amount, Decimal):
        errors.append("Payment amount must be a Decimal")
    elif not amount.is_finite() or amount <= 0:
        errors.append("Payment amount must be positive")
    elif amount != amount.quantize(Decimal("0.01")):
        errors.append("Payment amount cannot have more than two decimal places")

    if (request.method or "").upper() not in PAYMENT_METHODS:
        errors.append(f"Unsupported payment method: {request.method}")
    if not _CURRENCY.match(request.currency or ""):
        errors.append("Currency must be a three-letter ISO code")
    if request.payer_email and not _EMAIL.match(request.payer_email):
        errors.append("Payer email is invalid")
    if request.reference and len(request.reference) > MAX_REFERENCE_LENGTH:
        errors.append(f"Reference must be at most {MAX_REFERENCE_LENGTH} characters")
    return errors
