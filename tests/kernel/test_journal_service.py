"""
Tests for JournalService: balanced posting, chart resolution, reversal.

Validates:
- setup_financials: entity + default chart, idempotent
- post: balance check, negative/empty lines, unknown account, missing entity
- reverse: mirror entry, second reversal refused
- account_balance: debits minus credits
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from rental_config.schema import DEFAULT_CHART_OF_ACCOUNTS
from rental_kernel.exceptions import (
    AccountNotConfiguredError,
    EntryAlreadyReversedError,
    FinancialEntityNotFoundError,
    InvalidJournalLineError,
    UnbalancedEntryError,
)
from rental_kernel.models.ledger import JournalEntry
from rental_kernel.services.journal_service import JournalLineInput
from tests.conftest import TEST_NOW, TEST_ORG_ID


def _lines(amount: str = "100.00", debit_code: str = "6100", credit_code: str = "2000"):
    return [
        JournalLineInput(account_code=debit_code, debit=Decimal(amount)),
        JournalLineInput(account_code=credit_code, credit=Decimal(amount)),
    ]


class TestSetupFinancials:

    def test_creates_default_chart(self, financials):
        codes = {a.code for a in financials.accounts}
        assert codes == {a.code for a in DEFAULT_CHART_OF_ACCOUNTS}

    def test_idempotent(self, session, journal_service, financials):
        again = journal_service.setup_financials(TEST_ORG_ID, "Test Org")
        session.commit()
        assert again.id == financials.id
        assert len(again.accounts) == len(DEFAULT_CHART_OF_ACCOUNTS)


class TestPost:

    def test_balanced_entry_is_posted_locked(self, session, journal_service, financials):
        entry = journal_service.post(
            organization_id=TEST_ORG_ID,
            transaction_date=date(2024, 1, 1),
            description="Water bill",
            lines=_lines("900.00"),
            reference="UTIL-1",
        )
        session.commit()

        assert entry.is_locked
        assert entry.is_balanced
        assert entry.total_debits == Decimal("900.00")
        assert entry.posted_at == TEST_NOW
        assert [line.line_no for line in entry.lines] == [1, 2]

    def test_unbalanced_entry_raises_before_insert(self, session, journal_service, financials):
        lines = [
            JournalLineInput(account_code="6100", debit=Decimal("100.00")),
            JournalLineInput(account_code="2000", credit=Decimal("99.99")),
        ]
        with pytest.raises(UnbalancedEntryError, match="GL IMBALANCE"):
            journal_service.post(TEST_ORG_ID, date(2024, 1, 1), "Bad", lines)
        assert session.query(JournalEntry).count() == 0

    def test_missing_entity(self, journal_service, db_engine):
        with pytest.raises(FinancialEntityNotFoundError):
            journal_service.post(uuid4(), date(2024, 1, 1), "Nobody", _lines())

    def test_unknown_account(self, journal_service, financials):
        with pytest.raises(AccountNotConfiguredError) as exc_info:
            journal_service.post(
                TEST_ORG_ID, date(2024, 1, 1), "Unknown", _lines(debit_code="9999")
            )
        assert exc_info.value.account_code == "9999"

    def test_empty_lines(self, journal_service, financials):
        with pytest.raises(InvalidJournalLineError):
            journal_service.post(TEST_ORG_ID, date(2024, 1, 1), "Empty", [])

    def test_negative_amount(self, journal_service, financials):
        lines = [
            JournalLineInput(account_code="6100", debit=Decimal("-5.00"), credit=Decimal("-5.00")),
        ]
        with pytest.raises(InvalidJournalLineError):
            journal_service.post(TEST_ORG_ID, date(2024, 1, 1), "Negative", lines)


class TestReverse:

    def test_reversal_mirrors_lines(self, session, journal_service, financials):
        original = journal_service.post(
            TEST_ORG_ID, date(2024, 1, 1), "Rent", _lines("500.00", "1100", "4000"),
            reference="INV-1",
        )
        reversal = journal_service.reverse(original.id, "Entered twice")
        session.commit()

        assert reversal.reversal_of_id == original.id
        assert reversal.reference == "REV-INV-1"
        assert [(l.account_code, l.debit, l.credit) for l in reversal.lines] == [
            ("1100", Decimal("0.00"), Decimal("500.00")),
            ("4000", Decimal("500.00"), Decimal("0.00")),
        ]
        assert journal_service.account_balance(TEST_ORG_ID, "1100") == Decimal("0.00")

    def test_second_reversal_refused(self, session, journal_service, financials):
        original = journal_service.post(TEST_ORG_ID, date(2024, 1, 1), "Rent", _lines())
        journal_service.reverse(original.id, "once")
        with pytest.raises(EntryAlreadyReversedError):
            journal_service.reverse(original.id, "twice")


class TestAccountBalance:

    def test_debits_minus_credits(self, session, journal_service, financials):
        journal_service.post(TEST_ORG_ID, date(2024, 1, 1), "A", _lines("300.00", "1100", "4000"))
        journal_service.post(TEST_ORG_ID, date(2024, 1, 2), "B", _lines("120.00", "1000", "1100"))
        session.commit()

        assert journal_service.account_balance(TEST_ORG_ID, "1100") == Decimal("180.00")
        assert journal_service.account_balance(TEST_ORG_ID, "4000") == Decimal("-300.00")
        assert journal_service.account_balance(TEST_ORG_ID, "1000") == Decimal("120.00")
