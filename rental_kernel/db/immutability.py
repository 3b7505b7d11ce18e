"""
ORM-level immutability enforcement.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity              | When immutable                   | Why
--------------------|----------------------------------|------------------------------
JournalEntry        | ALWAYS (created locked)          | Ledger history is append-only
JournalLine         | ALWAYS                           | Lines are part of the entry
UtilityBill         | After status = POSTED            | Posted = reflected in the books
UtilityAllocation   | When the parent bill is POSTED   | Audit hash covers these rows
ListingAuditEntry   | ALWAYS                           | Audit trail is write-once

SQLAlchemy fires ``before_update``/``before_delete`` before the SQL is sent.
The listeners below raise ImmutabilityViolationError and the flush aborts, so
the database is never modified.

===============================================================================
DESIGN DECISIONS
===============================================================================

1. updated_at/updated_by_id may change on any record: they are audit
   metadata, not financial data.

2. "Was posted" is read from attribute history, not the current value.  The
   posting write itself (APPROVED -> POSTED together with journal_entry_id,
   audit_hash and posted_at) must pass; every later write must not.

3. Model imports are inline to avoid a models <-> db import cycle.

===============================================================================
USAGE
===============================================================================

    from rental_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

Tests that need to provoke a violation on purpose may call
``unregister_immutability_listeners()`` afterwards.
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from rental_kernel.exceptions import ImmutabilityViolationError
from rental_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})


def _block(entity_type: str, target, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
            "field": field,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _changed_fields(target) -> list[str]:
    changed = []
    for attr in inspect(target).attrs:
        if attr.key in _AUDIT_FIELDS:
            continue
        if attr.history.has_changes():
            changed.append(attr.key)
    return changed


def _bill_was_posted(target) -> bool:
    """True if the bill was already POSTED before the pending change."""
    from rental_kernel.models.billing import UtilityBillStatus

    status_history = get_history(target, "status")
    if status_history.deleted:
        return status_history.deleted[0] == UtilityBillStatus.POSTED
    if not status_history.added:
        return target.status == UtilityBillStatus.POSTED
    return False


def _check_journal_entry_update(mapper, connection, target):
    changed = _changed_fields(target)
    if changed:
        _block(
            "JournalEntry",
            target,
            "UPDATE",
            f"Cannot modify field '{changed[0]}' on a journal entry; post a reversal",
            field=changed[0],
        )


def _check_journal_entry_delete(mapper, connection, target):
    _block("JournalEntry", target, "DELETE", "Journal entries cannot be deleted")


def _check_journal_line_update(mapper, connection, target):
    changed = _changed_fields(target)
    if changed:
        _block(
            "JournalLine",
            target,
            "UPDATE",
            "Journal lines cannot be modified",
            field=changed[0],
        )


def _check_journal_line_delete(mapper, connection, target):
    _block("JournalLine", target, "DELETE", "Journal lines cannot be deleted")


def _check_utility_bill_update(mapper, connection, target):
    if not _bill_was_posted(target):
        return
    changed = _changed_fields(target)
    if changed:
        _block(
            "UtilityBill",
            target,
            "UPDATE",
            f"Cannot modify field '{changed[0]}' on a posted utility bill",
            field=changed[0],
        )


def _check_utility_bill_delete(mapper, connection, target):
    from rental_kernel.models.billing import UtilityBillStatus

    if target.status == UtilityBillStatus.POSTED:
        _block("UtilityBill", target, "DELETE", "Posted utility bills cannot be deleted")


def _check_utility_allocation_update(mapper, connection, target):
    from rental_kernel.models.billing import UtilityBillStatus

    bill = target.bill
    if bill is not None and bill.status == UtilityBillStatus.POSTED and _changed_fields(target):
        _block(
            "UtilityAllocation",
            target,
            "UPDATE",
            "Allocations cannot be modified after the bill is posted",
        )


def _check_utility_allocation_delete(mapper, connection, target):
    from rental_kernel.models.billing import UtilityBillStatus

    bill = target.bill
    if bill is not None and bill.status == UtilityBillStatus.POSTED:
        _block(
            "UtilityAllocation",
            target,
            "DELETE",
            "Allocations cannot be deleted after the bill is posted",
        )


def _check_audit_entry_update(mapper, connection, target):
    _block("ListingAuditEntry", target, "UPDATE", "Audit entries are write-once")


def _check_audit_entry_delete(mapper, connection, target):
    _block("ListingAuditEntry", target, "DELETE", "Audit entries cannot be deleted")


def _listener_table():
    from rental_kernel.models.billing import UtilityAllocation, UtilityBill
    from rental_kernel.models.ledger import JournalEntry, JournalLine
    from rental_kernel.models.listing import ListingAuditEntry

    return (
        (JournalEntry, "before_update", _check_journal_entry_update),
        (JournalEntry, "before_delete", _check_journal_entry_delete),
        (JournalLine, "before_update", _check_journal_line_update),
        (JournalLine, "before_delete", _check_journal_line_delete),
        (UtilityBill, "before_update", _check_utility_bill_update),
        (UtilityBill, "before_delete", _check_utility_bill_delete),
        (UtilityAllocation, "before_update", _check_utility_allocation_update),
        (UtilityAllocation, "before_delete", _check_utility_allocation_delete),
        (ListingAuditEntry, "before_update", _check_audit_entry_update),
        (ListingAuditEntry, "before_delete", _check_audit_entry_delete),
    )


def register_immutability_listeners() -> None:
    """Register every immutability listener (idempotent)."""
    for target, event_name, listener in _listener_table():
        if not event.contains(target, event_name, listener):
            event.listen(target, event_name, listener)


def unregister_immutability_listeners() -> None:
    """Remove the listeners.  Tests only."""
    for target, event_name, listener in _listener_table():
        if event.contains(target, event_name, listener):
            event.remove(target, event_name, listener)
