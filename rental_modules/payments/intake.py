"""
Payment Intake (``rental_modules.payments.intake``).

Gates a payer's payment before anything is written:

    rate limit  ->  field validation  ->  fraud check  ->  record

* Rate limit exhausted   -> ``RateLimitExceededError``.
* Invalid fields         -> ``InvalidPaymentError`` carrying every error.
* Fraud BLOCK            -> ``FraudBlockedError`` with the generic message;
  scores and rule names stay in the logs.
* Fraud REVIEW           -> logged, payment proceeds.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import timedelta
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from rental_config.schema import RentalSettings
from rental_engines.fraud import FraudDetector, FraudReport, Recommendation, TransactionContext
from rental_kernel.domain.clock import Clock, SystemClock
from rental_kernel.exceptions import FraudBlockedError, InvalidPaymentError
from rental_kernel.logging_config import get_logger
from rental_kernel.models.billing import Payment
from rental_modules.payments.invoices import InvoiceService
from rental_modules.payments.models import PaymentRequest, PaymentResult
from rental_modules.payments.validation import validate_payment_request
from rental_services.rate_limiter import SlidingWindowRateLimiter

logger = get_logger("modules.payments.intake")

RATE_LIMIT_OPERATION = "payment:create"


class PaymentIntakeService:
    """Validates, fraud-checks and records payer-submitted payments."""

    def __init__(
        self,
        session: Session,
        invoice_service: InvoiceService | None = None,
        fraud_detector: FraudDetector | None = None,
        rate_limiter: SlidingWindowRateLimiter | None = None,
        settings: RentalSettings | None = None,
        clock: Clock | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._settings = settings or RentalSettings()
        self._invoices = invoice_service or InvoiceService(
            session, settings=self._settings, clock=self._clock
        )
        self._detector = fraud_detector or FraudDetector(self._settings.fraud)
        self._rate_limiter = rate_limiter

    def submit_payment(self, request: PaymentRequest, actor_id: UUID | str) -> PaymentResult:
        """
        Run the intake gates and record the payment.

        Raises:
            RateLimitExceededError: too many payment submissions by ``actor_id``.
            InvalidPaymentError: one or more fields are invalid.
            FraudBlockedError: the fraud check recommended BLOCK.
        """
        if self._rate_limiter is not None:
            self._rate_limiter.enforce(str(actor_id), RATE_LIMIT_OPERATION)

        errors = validate_payment_request(request)
        if errors:
            logger.info(
                "payment_validation_failed",
                extra={"invoice_id": str(request.invoice_id), "errors": errors},
            )
            raise InvalidPaymentError("Payment validation failed", errors)

        report = self.check_fraud(request)
        if report.recommendation == Recommendation.BLOCK:
            logger.warning(
                "payment_blocked",
                extra={
                    "transaction_id": report.transaction_id,
                    "invoice_id": str(request.invoice_id),
                    "overall_score": str(report.overall_score),
                    "failed_rules": list(report.failed_rule_names),
                },
            )
            raise FraudBlockedError(report.transaction_id)
        if report.recommendation == Recommendation.REVIEW:
            logger.warning(
                "payment_flagged_for_review",
                extra={
                    "transaction_id": report.transaction_id,
                    "invoice_id": str(request.invoice_id),
                    "overall_score": str(report.overall_score),
                    "failed_rules": list(report.failed_rule_names),
                },
            )

        result = self._invoices.record_payment(
            request.invoice_id,
            request.amount,
            request.method,
            reference=request.reference,
            paid_on=request.paid_on,
            payer_email=request.payer_email,
            currency=request.currency,
            actor_id=actor_id if isinstance(actor_id, UUID) else None,
        )
        return replace(result, fraud_recommendation=report.recommendation)

    def check_fraud(self, request: PaymentRequest) -> FraudReport:
        now = request.paid_on or self._clock.now()
        context = TransactionContext(
            transaction_id=request.reference or str(uuid4()),
            amount=request.amount,
            currency=request.currency,
            timestamp=now,
            payer_email=request.payer_email or "",
            payer_region=request.payer_region,
            ip_address=request.ip_address,
            user_agent=request.user_agent,
            recent_transaction_times=self._recent_payment_times(request, now),
        )
        return self._detector.check(context)

    def _recent_payment_times(self, request: PaymentRequest, now) -> tuple:
        if not request.payer_email:
            return ()
        since = now - timedelta(seconds=self._settings.fraud.rapid_window_seconds)
        return tuple(
            self._session.scalars(
                select(Payment.paid_on)
                .where(Payment.payer_email == request.payer_email)
                .where(Payment.paid_on >= since)
                .order_by(Payment.paid_on)
            )
        )
