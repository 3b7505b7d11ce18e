"""
ORM immutability listeners.

Journal entries, journal lines and listing audit entries are write-once;
utility bills and their allocations freeze once the bill is POSTED.
Violations raise before any SQL is sent.
"""

from datetime import date
from decimal import Decimal

import pytest

from rental_kernel.exceptions import ImmutabilityViolationError
from rental_kernel.models.billing import UtilityBill, UtilityBillStatus
from rental_kernel.models.listing import ListingAction
from rental_kernel.services.journal_service import JournalLineInput
from tests.conftest import TEST_ORG_ID


@pytest.fixture
def posted_entry(session, journal_service, financials):
    entry = journal_service.post(
        TEST_ORG_ID,
        date(2024, 1, 1),
        "Water",
        [
            JournalLineInput(account_code="6100", debit=Decimal("50.00")),
            JournalLineInput(account_code="2000", credit=Decimal("50.00")),
        ],
    )
    session.commit()
    return entry


class TestJournalImmutability:

    def test_entry_update_blocked(self, session, posted_entry):
        posted_entry.description = "Edited"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_entry_delete_blocked(self, session, posted_entry):
        session.delete(posted_entry)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_line_update_blocked(self, session, posted_entry):
        posted_entry.lines[0].debit = Decimal("51.00")
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()


class TestUtilityBillImmutability:

    def _bill(self, session, make_property, status):
        prop = make_property(unit_count=1)
        bill = UtilityBill(
            property_id=prop.id,
            provider_name="City Water",
            total_amount=Decimal("100.00"),
            bill_date=date(2024, 1, 1),
            due_date=date(2024, 1, 31),
            status=status,
        )
        session.add(bill)
        session.commit()
        return bill

    def test_posted_bill_update_blocked(self, session, make_property):
        bill = self._bill(session, make_property, UtilityBillStatus.POSTED)
        assert bill.is_posted
        bill.total_amount = Decimal("1.00")
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_posted_bill_delete_blocked(self, session, make_property):
        bill = self._bill(session, make_property, UtilityBillStatus.POSTED)
        assert bill.is_posted
        session.delete(bill)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_draft_bill_is_mutable(self, session, make_property):
        bill = self._bill(session, make_property, UtilityBillStatus.DRAFT)
        bill.total_amount = Decimal("120.00")
        session.commit()
        assert bill.total_amount == Decimal("120.00")

    def test_posting_write_itself_passes(self, session, make_property):
        bill = self._bill(session, make_property, UtilityBillStatus.APPROVED)
        assert not bill.is_posted
        bill.status = UtilityBillStatus.POSTED
        bill.audit_hash = "0" * 64
        session.commit()
        assert bill.is_posted


class TestAuditEntryImmutability:

    def test_audit_entry_update_blocked(self, session, make_property, audit_service):
        prop = make_property(unit_count=1)
        entry = audit_service.create_audit_entry(
            unit_id=prop.units[0].id,
            action=ListingAction.UPDATE,
            user_id="system",
            reason="note",
        )
        session.commit()
        entry.reason = "rewritten"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()
