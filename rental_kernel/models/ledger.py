"""
Module: rental_kernel.models.ledger
Responsibility: ORM persistence for the organization ledger: financial entity,
    chart of accounts, journal entries and journal lines.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One financial entity per organization (UNIQUE organization_id).
    - Account codes unique per entity.
    - Journal entries are created locked and are never updated or deleted
      (ORM listeners in db/immutability.py); corrections are reversing entries.
    - Balance (sum of debits == sum of credits) is checked by JournalService
      before insert; ``is_balanced`` is the read-side check.

Failure modes:
    - IntegrityError on a duplicate (entity_id, reference).
    - ImmutabilityViolationError on UPDATE/DELETE of an entry or line.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rental_kernel.db.base import TrackedBase, UUIDString, status_enum


class AccountType(str, Enum):
    ASSET = "ASSET"
    LIABILITY = "LIABILITY"
    EQUITY = "EQUITY"
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class FinancialEntity(TrackedBase):
    """The ledger owner for one organization."""

    __tablename__ = "financial_entities"
    __table_args__ = (
        UniqueConstraint("organization_id", name="uq_financial_entity_org"),
    )

    organization_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    accounts: Mapped[list["LedgerAccount"]] = relationship(
        back_populates="entity",
        lazy="selectin",
    )

    def account_by_code(self, code: str) -> "LedgerAccount | None":
        for account in self.accounts:
            if account.code == code:
                return account
        return None


class LedgerAccount(TrackedBase):
    """One account in an entity's chart of accounts."""

    __tablename__ = "ledger_accounts"
    __table_args__ = (
        UniqueConstraint("entity_id", "code", name="uq_ledger_account_code"),
    )

    entity_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("financial_entities.id"), nullable=False
    )
    code: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    account_type: Mapped[AccountType] = mapped_column(
        status_enum(AccountType), nullable=False
    )
    is_system: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    entity: Mapped[FinancialEntity] = relationship(back_populates="accounts")


class JournalEntry(TrackedBase):
    """
    Journal entry header, the atomic unit of double-entry accounting.

    Contract:
        Created in a single insert together with its lines and never touched
        again.  ``source_type``/``source_id`` point back at the document
        (bill, invoice, payment) the entry reflects.

    Non-goals:
        Balance is not enforced at the ORM level; JournalService does that.
    """

    __tablename__ = "journal_entries"
    __table_args__ = (
        UniqueConstraint("entity_id", "reference", name="uq_journal_entity_reference"),
        Index("idx_journal_source", "source_type", "source_id"),
        Index("idx_journal_transaction_date", "transaction_date"),
    )

    entity_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("financial_entities.id"), nullable=False
    )
    organization_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)
    posted_at: Mapped[datetime] = mapped_column(nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    is_locked: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    source_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    source_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    reversal_of_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("journal_entries.id"), nullable=True
    )

    lines: Mapped[list["JournalLine"]] = relationship(
        back_populates="entry",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="JournalLine.line_no",
    )

    def __repr__(self) -> str:
        return f"<JournalEntry {self.id} ref={self.reference}>"

    @property
    def total_debits(self) -> Decimal:
        return sum((line.debit for line in self.lines), Decimal("0"))

    @property
    def total_credits(self) -> Decimal:
        return sum((line.credit for line in self.lines), Decimal("0"))

    @property
    def is_balanced(self) -> bool:
        return self.total_debits == self.total_credits


class JournalLine(TrackedBase):
    """
    One debit/credit line of a journal entry.

    Contract:
        Both amounts are non-negative.  Dimension columns tag the line with the
        property, unit, lease and tenant it concerns.
    """

    __tablename__ = "journal_lines"
    __table_args__ = (
        Index("idx_journal_line_account", "account_id"),
        Index("idx_journal_line_property", "property_id"),
    )

    entry_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("journal_entries.id"), nullable=False
    )
    line_no: Mapped[int] = mapped_column(nullable=False)
    account_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("ledger_accounts.id"), nullable=False
    )
    account_code: Mapped[str] = mapped_column(String(20), nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    debit: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    credit: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    property_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    unit_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    lease_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    tenant_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    entry: Mapped[JournalEntry] = relationship(back_populates="lines")
