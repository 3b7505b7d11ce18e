"""Invoice balances, fraud-gated payment intake, invoice and payment posting."""

from rental_modules.payments.intake import PaymentIntakeService
from rental_modules.payments.invoices import InvoiceService, amount_paid
from rental_modules.payments.models import PaymentRequest, PaymentResult, PaymentResultStatus
from rental_modules.payments.validation import PAYMENT_METHODS, validate_payment_request

__all__ = [
    "InvoiceService",
    "PAYMENT_METHODS",
    "PaymentIntakeService",
    "PaymentRequest",
    "PaymentResult",
    "PaymentResultStatus",
    "amount_paid",
    "validate_payment_request",
]
