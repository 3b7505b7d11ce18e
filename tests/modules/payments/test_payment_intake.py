"""
PaymentIntakeService gates: rate limit, validation, fraud, then record.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from rental_engines.fraud import Recommendation
from rental_kernel.exceptions import FraudBlockedError, InvalidPaymentError, RateLimitExceededError
from rental_kernel.models.billing import Invoice, InvoiceType
from rental_modules.payments.models import PaymentRequest, PaymentResultStatus
from tests.conftest import TEST_ACTOR_ID


@pytest.fixture
def invoice(session, make_property, make_lease):
    lease = make_lease(make_property(unit_count=1).units[0])
    invoice = Invoice(
        lease_id=lease.id,
        invoice_type=InvoiceType.RENT,
        total_amount=Decimal("1000000.00"),
        amount_paid=Decimal("0"),
        balance=Decimal("1000000.00"),
        due_date=date(2024, 1, 31),
    )
    session.add(invoice)
    session.commit()
    return invoice


def _request(invoice, amount="1200.00", **overrides):
    fields = {
        "invoice_id": invoice.id,
        "amount": Decimal(amount) if isinstance(amount, str) else amount,
        "method": "MPESA",
        "payer_email": "tenant@acme.co.ke",
    }
    fields.update(overrides)
    return PaymentRequest(**fields)


def test_clean_payment_recorded(payment_intake, invoice_service, invoice):
    result = payment_intake.submit_payment(_request(invoice), TEST_ACTOR_ID)

    assert result.is_success
    assert result.fraud_recommendation == Recommendation.ALLOW
    assert result.balance == Decimal("998800.00")
    assert invoice_service.get_payment(result.payment_id).payer_email == "tenant@acme.co.ke"


def test_validation_reports_every_error(payment_intake, invoice):
    request = _request(invoice, method="BARTER", currency="shillings", payer_email="nobody")
    with pytest.raises(InvalidPaymentError) as exc_info:
        payment_intake.submit_payment(request, TEST_ACTOR_ID)
    assert exc_info.value.errors == [
        "Unsupported payment method: BARTER",
        "Currency must be a three-letter ISO code",
        "Payer email is invalid",
    ]


@pytest.mark.parametrize(
    "amount, message",
    [
        (12.5, "Payment amount must be a Decimal"),
        (Decimal("-1.00"), "Payment amount must be positive"),
        (Decimal("10.005"), "Payment amount cannot have more than two decimal places"),
    ],
)
def test_amount_rules(payment_intake, invoice, amount, message):
    with pytest.raises(InvalidPaymentError) as exc_info:
        payment_intake.submit_payment(_request(invoice, amount=amount), TEST_ACTOR_ID)
    assert exc_info.value.errors == [message]


def test_fraud_block_raises_generic_error(payment_intake, invoice_service, invoice, captured_logs):
    request = _request(invoice, amount="600000.00", payer_email="x@mailinator.com", reference="TX-77")

    with pytest.raises(FraudBlockedError) as exc_info:
        payment_intake.submit_payment(request, TEST_ACTOR_ID)

    assert exc_info.value.transaction_id == "TX-77"
    assert "score" not in str(exc_info.value).lower()
    assert invoice_service.get_invoice(invoice.id).payments == []
    blocked = [r for r in captured_logs() if r["message"] == "payment_blocked"]
    assert blocked and blocked[0]["overall_score"] == "100"


def test_review_is_flagged_but_recorded(payment_intake, invoice, captured_logs):
    request = _request(invoice, amount="450000.00", payer_email="tenant@gmail.com")

    result = payment_intake.submit_payment(request, TEST_ACTOR_ID)

    assert result.is_success
    assert result.fraud_recommendation == Recommendation.REVIEW
    assert any(r["message"] == "payment_flagged_for_review" for r in captured_logs())


def test_rapid_successive_payments_blocked(payment_intake, invoice):
    for _ in range(3):
        payment_intake.submit_payment(_request(invoice, amount="100.00"), TEST_ACTOR_ID)
    with pytest.raises(FraudBlockedError):
        payment_intake.submit_payment(_request(invoice, amount="100.00"), TEST_ACTOR_ID)


def test_rate_limit(payment_intake, invoice):
    for _ in range(10):
        payment_intake.submit_payment(_request(invoice, amount="1.00", payer_email=None), TEST_ACTOR_ID)
    with pytest.raises(RateLimitExceededError) as exc_info:
        payment_intake.submit_payment(_request(invoice, amount="1.00", payer_email=None), TEST_ACTOR_ID)
    assert exc_info.value.operation == "payment:create"


def test_balance_check_still_applies(payment_intake, invoice):
    result = payment_intake.submit_payment(_request(invoice, amount="1000000.01"), TEST_ACTOR_ID)
    assert result.status == PaymentResultStatus.OVERPAYMENT


def test_unknown_invoice(payment_intake, invoice):
    result = payment_intake.submit_payment(_request(invoice, invoice_id=uuid4()), TEST_ACTOR_ID)
    assert result.status == PaymentResultStatus.INVOICE_NOT_FOUND
