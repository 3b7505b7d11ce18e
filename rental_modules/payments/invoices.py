"""
Invoice Service (``rental_modules.payments.invoices``).

Responsibility
--------------
Keeps invoice balances consistent with the payments recorded against them
and posts invoices and payments to the ledger.

Invariants enforced
-------------------
* ``balance == total_amount - amount_paid`` after every write, where
  ``amount_paid`` sums the invoice's non-reversed payments only.
* A payment never exceeds the open balance.
* Posting is idempotent on ``posting_status``: a POSTED document is
  returned as-is and never gets a second journal entry.
* A ledger failure leaves no journal entry and marks the document FAILED;
  FAILED documents may be posted again.

Posting
-------
==========  ==================================  =================================
Document    Debit                               Credit
==========  ==================================  =================================
Invoice     1100 Accounts Receivable            4000 Rental Income, or 4100
                                                Utility Recovery for UTILITY
Payment     1000 Cash                           1100 Accounts Receivable
==========  ==================================  =================================
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from rental_config.schema import RentalSettings
from rental_kernel.domain.clock import Clock, SystemClock
from rental_kernel.domain.money import ZERO, to_money
from rental_kernel.exceptions import FinancialEntityNotFoundError, LedgerError
from rental_kernel.logging_config import OperationTimer, get_logger
from rental_kernel.models.billing import (
    Invoice,
    InvoiceStatus,
    InvoiceType,
    Payment,
    PostingStatus,
)
from rental_kernel.models.property import Lease
from rental_kernel.services.journal_service import JournalLineInput, JournalService
from rental_modules._transactions import commit_or_rollback
from rental_modules.payments.models import PaymentResult, PaymentResultStatus

logger = get_logger("modules.payments.invoices")

INVOICE_SOURCE = "invoice"
PAYMENT_SOURCE = "payment"


def amount_paid(invoice: Invoice) -> Decimal:
    """Sum of the invoice's payments, reversed payments excluded."""
    return to_money(sum((p.amount for p in invoice.payments if not p.is_reversed), ZERO))


class InvoiceService:
    """
    Invoice balances and invoice/payment posting.

    Contract:
        Public methods return ``PaymentResult`` and own the transaction.
        ``_do_record`` never commits so payment intake can compose it.
    """

    def __init__(
        self,
        session: Session,
        journal_service: JournalService | None = None,
        settings: RentalSettings | None = None,
        clock: Clock | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._settings = settings or RentalSettings()
        self._journal = journal_service or JournalService(session, clock=self._clock)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_invoice(self, invoice_id: UUID) -> Invoice | None:
        return self._session.get(Invoice, invoice_id)

    def get_payment(self, payment_id: UUID) -> Payment | None:
        return self._session.get(Payment, payment_id)

    # =========================================================================
    # Balances
    # =========================================================================

    def _recompute(self, invoice: Invoice) -> None:
        paid = amount_paid(invoice)
        invoice.amount_paid = paid
        invoice.balance = to_money(invoice.total_amount) - paid
        if invoice.balance <= ZERO:
            invoice.status = InvoiceStatus.PAID
        elif invoice.due_date < self._clock.now().date():
            invoice.status = InvoiceStatus.OVERDUE
        else:
            invoice.status = InvoiceStatus.PENDING

    def _invoice_result(self, invoice: Invoice, payment: Payment | None = None, **kwargs) -> PaymentResult:
        return PaymentResult(
            kwargs.pop("status", PaymentResultStatus.SUCCESS),
            invoice_id=invoice.id,
            payment_id=payment.id if payment is not None else None,
            invoice_status=invoice.status,
            amount_paid=to_money(invoice.amount_paid),
            balance=to_money(invoice.balance),
            **kwargs,
        )

    def record_payment(
        self,
        invoice_id: UUID,
        amount: Decimal,
        method: str,
        reference: str | None = None,
        paid_on: datetime | None = None,
        payer_email: str | None = None,
        currency: str = "KES",
        actor_id: UUID | None = None,
    ) -> PaymentResult:
        """
        Record a payment and recompute the invoice balance.

        Preconditions:
            - ``0 < amount <= balance``.
        Postconditions:
            - Payment row inserted; ``amount_paid``/``balance``/``status``
              recomputed from non-reversed payments; committed together.
        """
        try:
            result = self._do_record(
                invoice_id, amount, method, reference, paid_on, payer_email, currency, actor_id
            )
            commit_or_rollback(self._session, result)
            return result
        except Exception:
            self._session.rollback()
            raise

    def _do_record(
        self,
        invoice_id: UUID,
        amount: Decimal,
        method: str,
        reference: str | None,
        paid_on: datetime | None,
        payer_email: str | None,
        currency: str,
        actor_id: UUID | None,
    ) -> PaymentResult:
        invoice = self.get_invoice(invoice_id)
        if invoice is None:
            return PaymentResult(
                PaymentResultStatus.INVOICE_NOT_FOUND,
                invoice_id=invoice_id,
                message=f"Invoice {invoice_id} not found",
            )
        if isinstance(amount, float) or not isinstance(amount, Decimal) or amount <= 0:
            return self._invoice_result(
                invoice,
                status=PaymentResultStatus.INVALID_AMOUNT,
                message="Payment amount must be a positive Decimal",
            )
        amount = to_money(amount)
        self._recompute(invoice)
        if invoice.status == InvoiceStatus.PAID:
            return self._invoice_result(
                invoice,
                status=PaymentResultStatus.ALREADY_PAID,
                message="Invoice is already paid in full",
            )
        if amount > invoice.balance:
            return self._invoice_result(
                invoice,
                status=PaymentResultStatus.OVERPAYMENT,
                message=f"Payment {amount} exceeds balance {to_money(invoice.balance)}",
            )

        payment = Payment(
            amount=amount,
            method=method.upper(),
            reference=reference,
            paid_on=paid_on or self._clock.now(),
            payer_email=payer_email,
            currency=currency,
            created_by_id=actor_id,
        )
        invoice.payments.append(payment)
        self._recompute(invoice)
        invoice.updated_by_id = actor_id
        self._session.flush()

        logger.info(
            "payment_recorded",
            extra={
                "invoice_id": str(invoice.id),
                "payment_id": str(payment.id),
                "amount": str(amount),
                "balance": str(invoice.balance),
                "invoice_status": invoice.status.value,
            },
        )
        return self._invoice_result(invoice, payment)

    def reverse_payment(
        self,
        payment_id: UUID,
        reason: str = "Payment reversed",
        actor_id: UUID | None = None,
    ) -> PaymentResult:
        """
        Mark a payment reversed and recompute its invoice.

        A payment already in the ledger gets a mirror journal entry in the
        same transaction.
        """
        try:
            result = self._do_reverse(payment_id, reason, actor_id)
            commit_or_rollback(self._session, result)
            return result
        except Exception:
            self._session.rollback()
            raise

    def _do_reverse(self, payment_id: UUID, reason: str, actor_id: UUID | None) -> PaymentResult:
        payment = self.get_payment(payment_id)
        if payment is None:
            return PaymentResult(
                PaymentResultStatus.PAYMENT_NOT_FOUND,
                payment_id=payment_id,
                message=f"Payment {payment_id} not found",
            )
        invoice = payment.invoice
        if payment.is_reversed:
            return self._invoice_result(
                invoice, payment, status=PaymentResultStatus.ALREADY_REVERSED
            )

        reversal_id = None
        if payment.posting_status == PostingStatus.POSTED and payment.journal_entry_id:
            try:
                reversal = self._journal.reverse(payment.journal_entry_id, reason, actor_id=actor_id)
            except LedgerError as exc:
                logger.error(
                    "payment_reversal_posting_failed",
                    extra={"payment_id": str(payment.id), "error_code": exc.code, "error": str(exc)},
                )
                return self._invoice_result(
                    invoice, payment, status=PaymentResultStatus.JOURNAL_FAILED, message=str(exc)
                )
            reversal_id = reversal.id

        payment.is_reversed = True
        payment.reversed_at = self._clock.now()
        payment.updated_by_id = actor_id
        self._recompute(invoice)
        self._session.flush()

        logger.info(
            "payment_reversed",
            extra={
                "payment_id": str(payment.id),
                "invoice_id": str(invoice.id),
                "amount": str(payment.amount),
                "balance": str(invoice.balance),
                "reversal_entry_id": str(reversal_id) if reversal_id else None,
            },
        )
        return self._invoice_result(invoice, payment, journal_entry_id=reversal_id)

    # =========================================================================
    # Posting
    # =========================================================================

    def post_invoice_to_ledger(self, invoice_id: UUID, actor_id: UUID | None = None) -> PaymentResult:
        """Dr Accounts Receivable / Cr income.  Idempotent on ``posting_status``."""
        invoice = self.get_invoice(invoice_id)
        if invoice is None:
            self._session.rollback()
            return PaymentResult(
                PaymentResultStatus.INVOICE_NOT_FOUND,
                invoice_id=invoice_id,
                message=f"Invoice {invoice_id} not found",
            )
        if invoice.posting_status == PostingStatus.POSTED:
            return self._invoice_result(
                invoice,
                posting_status=invoice.posting_status,
                journal_entry_id=invoice.journal_entry_id,
                message="Invoice already posted",
            )

        lease = self._session.get(Lease, invoice.lease_id)
        if lease is None:
            self._session.rollback()
            return self._invoice_result(invoice, status=PaymentResultStatus.LEASE_NOT_FOUND)

        ledger = self._settings.ledger
        income = (
            ledger.utility_recovery_income
            if invoice.invoice_type == InvoiceType.UTILITY
            else ledger.rental_income
        )
        total = to_money(invoice.total_amount)
        dimensions = {
            "property_id": lease.unit.property_id,
            "unit_id": lease.unit_id,
            "lease_id": lease.id,
            "tenant_id": lease.tenant_id,
        }
        lines = [
            JournalLineInput(
                account_code=ledger.accounts_receivable,
                debit=total,
                description=f"{invoice.invoice_type.value.title()} invoice receivable",
                **dimensions,
            ),
            JournalLineInput(
                account_code=income,
                credit=total,
                description=f"{invoice.invoice_type.value.title()} income",
                **dimensions,
            ),
        ]
        return self._post(
            invoice,
            organization_id=lease.unit.property.organization_id,
            transaction_date=invoice.due_date,
            description=f"Invoice {invoice.invoice_type.value}",
            reference=f"INV-{invoice.id}",
            lines=lines,
            source_type=INVOICE_SOURCE,
            actor_id=actor_id,
            invoice=invoice,
        )

    def post_payment_to_ledger(self, payment_id: UUID, actor_id: UUID | None = None) -> PaymentResult:
        """Dr Cash / Cr Accounts Receivable.  Idempotent on ``posting_status``."""
        payment = self.get_payment(payment_id)
        if payment is None:
            self._session.rollback()
            return PaymentResult(
                PaymentResultStatus.PAYMENT_NOT_FOUND,
                payment_id=payment_id,
                message=f"Payment {payment_id} not found",
            )
        invoice = payment.invoice
        if payment.posting_status == PostingStatus.POSTED:
            return self._invoice_result(
                invoice,
                payment,
                posting_status=payment.posting_status,
                journal_entry_id=payment.journal_entry_id,
                message="Payment already posted",
            )
        if payment.is_reversed:
            self._session.rollback()
            return self._invoice_result(
                invoice, payment, status=PaymentResultStatus.PAYMENT_REVERSED
            )

        lease = self._session.get(Lease, invoice.lease_id)
        if lease is None:
            self._session.rollback()
            return self._invoice_result(invoice, payment, status=PaymentResultStatus.LEASE_NOT_FOUND)

        ledger = self._settings.ledger
        amount = to_money(payment.amount)
        dimensions = {
            "property_id": lease.unit.property_id,
            "unit_id": lease.unit_id,
            "lease_id": lease.id,
            "tenant_id": lease.tenant_id,
        }
        lines = [
            JournalLineInput(
                account_code=ledger.cash,
                debit=amount,
                description=f"Payment received ({payment.method})",
                **dimensions,
            ),
            JournalLineInput(
                account_code=ledger.accounts_receivable,
                credit=amount,
                description="Receivable settled",
                **dimensions,
            ),
        ]
        return self._post(
            payment,
            organization_id=lease.unit.property.organization_id,
            transaction_date=payment.paid_on.date(),
            description=f"Payment {payment.reference or payment.method}",
            reference=f"PAY-{payment.id}",
            lines=lines,
            source_type=PAYMENT_SOURCE,
            actor_id=actor_id,
            invoice=invoice,
            payment=payment,
        )

    def _post(
        self,
        document: Invoice | Payment,
        *,
        organization_id: UUID,
        transaction_date,
        description: str,
        reference: str,
        lines: list[JournalLineInput],
        source_type: str,
        actor_id: UUID | None,
        invoice: Invoice,
        payment: Payment | None = None,
    ) -> PaymentResult:
        """Post one document.  A ledger failure commits ``posting_status = FAILED``."""
        try:
            with OperationTimer() as timer:
                try:
                    entry = self._journal.post(
                        organization_id=organization_id,
                        transaction_date=transaction_date,
                        description=description,
                        reference=reference,
                        lines=lines,
                        source_type=source_type,
                        source_id=document.id,
                        actor_id=actor_id,
                    )
                except LedgerError as exc:
                    status = (
                        PaymentResultStatus.NO_FINANCIAL_ENTITY
                        if isinstance(exc, FinancialEntityNotFoundError)
                        else PaymentResultStatus.JOURNAL_FAILED
                    )
                    logger.error(
                        f"{source_type}_posting_failed",
                        extra={
                            "source_id": str(document.id),
                            "error_code": exc.code,
                            "error": str(exc),
                        },
                    )
                    document.posting_status = PostingStatus.FAILED
                    self._session.commit()
                    return self._invoice_result(
                        invoice,
                        payment,
                        status=status,
                        posting_status=PostingStatus.FAILED,
                        message=str(exc),
                    )

                document.posting_status = PostingStatus.POSTED
                document.journal_entry_id = entry.id
                document.updated_by_id = actor_id
                self._session.flush()
                self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        logger.info(
            f"{source_type}_posted",
            extra={
                "source_id": str(document.id),
                "journal_entry_id": str(entry.id),
                "duration_ms": timer.duration_ms,
            },
        )
        return self._invoice_result(
            invoice,
            payment,
            posting_status=PostingStatus.POSTED,
            journal_entry_id=entry.id,
        )
