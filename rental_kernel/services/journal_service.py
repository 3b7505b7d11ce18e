"""
Module: rental_kernel.services.journal_service
Responsibility: The ledger posting engine.  Appends balanced double-entry
    journal entries for an organization and is the single point where money
    enters the books.
Architecture position: Kernel > Services.  Imports models, domain and
    exceptions.  Does not commit: the calling module service owns the
    transaction so the entry and the source document's status flip land in
    one atomic write.

Invariants enforced:
    - sum(debits) == sum(credits) for every entry, checked before insert.
    - Line amounts are non-negative; an entry has at least one line.
    - Entries are created locked and never edited; ``reverse`` posts a mirror.
    - Every account code resolves against the organization's chart.

Failure modes:
    - FinancialEntityNotFoundError  -> organization has no ledger set up.
    - UnbalancedEntryError  -> debits != credits ("GL IMBALANCE").
    - AccountNotConfiguredError  -> unknown account code.
    - InvalidJournalLineError  -> empty or negative lines.
    - EntryAlreadyReversedError  -> second reversal of one entry.

Audit relevance:
    ``journal_entry_posted`` is logged for every entry with its reference,
    totals, line count and duration.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from rental_config.schema import DEFAULT_CHART_OF_ACCOUNTS, AccountDef
from rental_kernel.domain.clock import Clock, SystemClock
from rental_kernel.domain.money import ZERO, to_money
from rental_kernel.exceptions import (
    AccountNotConfiguredError,
    EntityNotFoundError,
    EntryAlreadyReversedError,
    FinancialEntityNotFoundError,
    InvalidJournalLineError,
    UnbalancedEntryError,
)
from rental_kernel.logging_config import OperationTimer, get_logger
from rental_kernel.models.ledger import (
    FinancialEntity,
    JournalEntry,
    JournalLine,
    LedgerAccount,
)

logger = get_logger("services.journal")


@dataclass(frozen=True)
class JournalLineInput:
    """One requested line.  Exactly one of debit/credit is normally non-zero."""

    account_code: str
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    description: str | None = None
    property_id: UUID | None = None
    unit_id: UUID | None = None
    lease_id: UUID | None = None
    tenant_id: UUID | None = None


class JournalService:
    """
    Posts immutable, balanced journal entries.

    Contract:
        ``post`` either inserts one entry with all its lines (flushed, not
        committed) or raises before anything is added to the session.

    Non-goals:
        Does not own the transaction boundary and does not track the source
        document's posting status; callers do both.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def setup_financials(
        self,
        organization_id: UUID,
        name: str,
        accounts: Sequence[AccountDef] = DEFAULT_CHART_OF_ACCOUNTS,
    ) -> FinancialEntity:
        """Create the financial entity and its chart of accounts.

        Idempotent: an existing entity is returned with any missing accounts
        added.
        """
        entity = self.get_entity(organization_id)
        if entity is None:
            entity = FinancialEntity(organization_id=organization_id, name=f"{name} Financials")
            self._session.add(entity)
            self._session.flush()

        existing = {a.code for a in entity.accounts}
        for account in accounts:
            if account.code in existing:
                continue
            self._session.add(
                LedgerAccount(
                    entity_id=entity.id,
                    code=account.code,
                    name=account.name,
                    account_type=account.account_type,
                    is_system=True,
                )
            )
        self._session.flush()
        self._session.refresh(entity, attribute_names=["accounts"])

        logger.info(
            "financials_setup",
            extra={
                "organization_id": str(organization_id),
                "entity_id": str(entity.id),
                "account_count": len(entity.accounts),
            },
        )
        return entity

    def get_entity(self, organization_id: UUID) -> FinancialEntity | None:
        return self._session.scalars(
            select(FinancialEntity).where(FinancialEntity.organization_id == organization_id)
        ).one_or_none()

    # ------------------------------------------------------------------
    # Posting
    # ------------------------------------------------------------------

    def post(
        self,
        organization_id: UUID,
        transaction_date: date,
        description: str,
        lines: Sequence[JournalLineInput],
        reference: str | None = None,
        source_type: str | None = None,
        source_id: UUID | None = None,
        actor_id: UUID | None = None,
        reversal_of_id: UUID | None = None,
    ) -> JournalEntry:
        """
        Post a journal entry to the organization's ledger.

        Preconditions:
            - The organization has a financial entity.
            - ``lines`` is non-empty; all amounts >= 0; debits == credits.
        Postconditions:
            - One JournalEntry plus its lines are flushed, locked, with
              ``posted_at`` from the injected clock.
        Raises:
            FinancialEntityNotFoundError, UnbalancedEntryError,
            AccountNotConfiguredError, InvalidJournalLineError.
        """
        with OperationTimer() as timer:
            entity = self.get_entity(organization_id)
            if entity is None:
                logger.warning(
                    "journal_entity_missing",
                    extra={"organization_id": str(organization_id), "reference": reference},
                )
                raise FinancialEntityNotFoundError(str(organization_id))

            if not lines:
                raise InvalidJournalLineError("A journal entry needs at least one line")

            total_debit = ZERO
            total_credit = ZERO
            for line in lines:
                debit = to_money(line.debit)
                credit = to_money(line.credit)
                if debit < 0 or credit < 0:
                    raise InvalidJournalLineError(
                        f"Negative amount on account {line.account_code}"
                    )
                total_debit += debit
                total_credit += credit

            if total_debit != total_credit:
                logger.error(
                    "journal_imbalance_blocked",
                    extra={
                        "organization_id": str(organization_id),
                        "reference": reference,
                        "debits": str(total_debit),
                        "credits": str(total_credit),
                    },
                )
                raise UnbalancedEntryError(total_debit, total_credit)

            resolved: list[tuple[JournalLineInput, LedgerAccount]] = []
            for line in lines:
                account = entity.account_by_code(line.account_code)
                if account is None:
                    raise AccountNotConfiguredError(line.account_code, str(organization_id))
                resolved.append((line, account))

            entry = JournalEntry(
                entity_id=entity.id,
                organization_id=organization_id,
                transaction_date=transaction_date,
                posted_at=self._clock.now(),
                description=description,
                reference=reference,
                is_locked=True,
                source_type=source_type,
                source_id=source_id,
                reversal_of_id=reversal_of_id,
                created_by_id=actor_id,
            )
            for line_no, (line, account) in enumerate(resolved, start=1):
                entry.lines.append(
                    JournalLine(
                        line_no=line_no,
                        account_id=account.id,
                        account_code=account.code,
                        description=line.description or description,
                        debit=to_money(line.debit),
                        credit=to_money(line.credit),
                        property_id=line.property_id,
                        unit_id=line.unit_id,
                        lease_id=line.lease_id,
                        tenant_id=line.tenant_id,
                        created_by_id=actor_id,
                    )
                )
            self._session.add(entry)
            self._session.flush()

        logger.info(
            "journal_entry_posted",
            extra={
                "entry_id": str(entry.id),
                "organization_id": str(organization_id),
                "reference": reference,
                "total": str(total_debit),
                "line_count": len(resolved),
                "duration_ms": timer.duration_ms,
            },
        )
        return entry

    def reverse(
        self,
        entry_id: UUID,
        reason: str,
        actor_id: UUID | None = None,
        transaction_date: date | None = None,
    ) -> JournalEntry:
        """Post a mirror entry (debits and credits swapped) for ``entry_id``."""
        original = self.get_entry(entry_id)
        if original is None:
            raise EntityNotFoundError("JournalEntry", str(entry_id))

        existing = self._session.scalars(
            select(JournalEntry).where(JournalEntry.reversal_of_id == entry_id)
        ).first()
        if existing is not None:
            raise EntryAlreadyReversedError(str(entry_id), str(existing.id))

        mirror = [
            JournalLineInput(
                account_code=line.account_code,
                debit=line.credit,
                credit=line.debit,
                description=line.description,
                property_id=line.property_id,
                unit_id=line.unit_id,
                lease_id=line.lease_id,
                tenant_id=line.tenant_id,
            )
            for line in original.lines
        ]
        reference = f"REV-{original.reference}" if original.reference else None
        return self.post(
            organization_id=original.organization_id,
            transaction_date=transaction_date or self._clock.now().date(),
            description=f"Reversal: {reason}",
            lines=mirror,
            reference=reference,
            source_type=original.source_type,
            source_id=original.source_id,
            actor_id=actor_id,
            reversal_of_id=original.id,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_entry(self, entry_id: UUID) -> JournalEntry | None:
        return self._session.get(JournalEntry, entry_id)

    def entries_for_source(self, source_type: str, source_id: UUID) -> list[JournalEntry]:
        return list(
            self._session.scalars(
                select(JournalEntry)
                .where(JournalEntry.source_type == source_type)
                .where(JournalEntry.source_id == source_id)
            )
        )

    def account_balance(self, organization_id: UUID, account_code: str) -> Decimal:
        """Debits minus credits posted to ``account_code``."""
        row = self._session.execute(
            select(
                func.coalesce(func.sum(JournalLine.debit), 0),
                func.coalesce(func.sum(JournalLine.credit), 0),
            )
            .join(JournalEntry, JournalLine.entry_id == JournalEntry.id)
            .where(JournalEntry.organization_id == organization_id)
            .where(JournalLine.account_code == account_code)
        ).one()
        return to_money(Decimal(str(row[0])) - Decimal(str(row[1])))
