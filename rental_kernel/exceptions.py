"""
Typed exception hierarchy for the rental kernel.

===============================================================================
WHEN TO RAISE
===============================================================================

Expected domain outcomes (wrong status, missing allocation coverage, duplicate
listing) are returned as frozen result objects so callers branch on
``result.is_success``.  The exceptions below are raised for the conditions a
caller cannot handle by branching:

  - the ledger refusing an entry (imbalance, unknown account, no entity)
  - a mutation reaching an already-POSTED bill or an append-only record
  - a fraud BLOCK or a rate limit that must stop the request
  - configuration that fails validation at load time

Every class carries a ``code`` class attribute (machine-readable, API-safe)
and stores its context as attributes, never only in the message.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    RentalKernelError (base)
    |
    +-- NotFoundError
    |   +-- EntityNotFoundError
    |
    +-- LedgerError
    |   +-- UnbalancedEntryError
    |   +-- FinancialEntityNotFoundError
    |   +-- AccountNotConfiguredError
    |   +-- InvalidJournalLineError
    |   +-- EntryAlreadyReversedError
    |
    +-- BillError
    |   +-- BillAlreadyPostedError
    |
    +-- ListingError
    |   +-- InvalidListingTransitionError
    |
    +-- LeaseError
    |   +-- InvalidLeaseTransitionError
    |
    +-- PaymentError
    |   +-- InvalidPaymentError
    |   +-- FraudBlockedError
    |
    +-- RateLimitExceededError
    |
    +-- ImmutabilityViolationError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES
===============================================================================

Code                      | When raised
--------------------------|-------------------------------------------------
ENTITY_NOT_FOUND          | Row lookup by id failed where absence is a bug
UNBALANCED_ENTRY          | sum(debits) != sum(credits)
NO_FINANCIAL_ENTITY       | Organization has no ledger set up
ACCOUNT_NOT_CONFIGURED    | Line references an unknown account code
INVALID_JOURNAL_LINE      | Negative amount, or empty line list
ENTRY_ALREADY_REVERSED    | Reversal of an entry that was reversed before
BILL_ALREADY_POSTED       | Any mutator reached a POSTED utility bill
INVALID_TRANSITION        | Listing status change not in the table/guard
INVALID_LEASE_TRANSITION  | Lease status change not in the lease table
INVALID_PAYMENT           | Payment amount/reference rejected
FRAUD_BLOCKED             | Fraud recommendation was BLOCK
RATE_LIMITED              | Sliding window for (actor, operation) is full
IMMUTABILITY_VIOLATION    | ORM update/delete of an append-only record
CONFIGURATION_ERROR       | Settings failed validation
"""

from decimal import Decimal


class RentalKernelError(Exception):
    """Base exception for all rental kernel errors."""

    code: str = "RENTAL_KERNEL_ERROR"


# Lookups


class NotFoundError(RentalKernelError):
    """Base exception for missing rows."""

    code: str = "NOT_FOUND"


class EntityNotFoundError(NotFoundError):
    """A row with the given id does not exist."""

    code: str = "ENTITY_NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


# Ledger


class LedgerError(RentalKernelError):
    """Base exception for journal posting failures."""

    code: str = "LEDGER_ERROR"


class UnbalancedEntryError(LedgerError):
    """Debits do not equal credits."""

    code: str = "UNBALANCED_ENTRY"

    def __init__(self, debits: Decimal, credits: Decimal):
        self.debits = str(debits)
        self.credits = str(credits)
        super().__init__(
            f"GL IMBALANCE: Debits ({debits}) do not equal Credits ({credits}). "
            "Transaction blocked."
        )


class FinancialEntityNotFoundError(LedgerError):
    """The organization has no financial entity (chart of accounts)."""

    code: str = "NO_FINANCIAL_ENTITY"

    def __init__(self, organization_id: str):
        self.organization_id = organization_id
        super().__init__(f"Financial Entity not found for Org: {organization_id}")


class AccountNotConfiguredError(LedgerError):
    """A journal line references an account code the entity does not have."""

    code: str = "ACCOUNT_NOT_CONFIGURED"

    def __init__(self, account_code: str, organization_id: str):
        self.account_code = account_code
        self.organization_id = organization_id
        super().__init__(
            f"Account Code {account_code} not configured for this entity."
        )


class InvalidJournalLineError(LedgerError):
    """A journal line is structurally invalid."""

    code: str = "INVALID_JOURNAL_LINE"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class EntryAlreadyReversedError(LedgerError):
    """The journal entry already has a reversing entry."""

    code: str = "ENTRY_ALREADY_REVERSED"

    def __init__(self, entry_id: str, reversal_id: str):
        self.entry_id = entry_id
        self.reversal_id = reversal_id
        super().__init__(
            f"Journal entry {entry_id} was already reversed by {reversal_id}"
        )


# Utility bills


class BillError(RentalKernelError):
    """Base exception for utility bill errors."""

    code: str = "BILL_ERROR"


class BillAlreadyPostedError(BillError):
    """A mutating operation reached a bill that is already POSTED."""

    code: str = "BILL_ALREADY_POSTED"

    def __init__(self, bill_id: str):
        self.bill_id = bill_id
        super().__init__(f"Cannot modify bill {bill_id}: already posted to financials")


# Listings and leases


class ListingError(RentalKernelError):
    """Base exception for listing errors."""

    code: str = "LISTING_ERROR"


class InvalidListingTransitionError(ListingError):
    """The requested listing status change is not permitted."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, current_status: str, requested_status: str, reason: str | None = None):
        self.current_status = current_status
        self.requested_status = requested_status
        self.reason = reason
        message = f"Invalid status transition from {current_status} to {requested_status}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class LeaseError(RentalKernelError):
    """Base exception for lease errors."""

    code: str = "LEASE_ERROR"


class InvalidLeaseTransitionError(LeaseError):
    """The requested lease status change is not permitted."""

    code: str = "INVALID_LEASE_TRANSITION"

    def __init__(self, lease_id: str, current_status: str, requested_status: str):
        self.lease_id = lease_id
        self.current_status = current_status
        self.requested_status = requested_status
        super().__init__(
            f"Lease {lease_id} cannot move from {current_status} to {requested_status}"
        )


# Payments


class PaymentError(RentalKernelError):
    """Base exception for payment-path errors."""

    code: str = "PAYMENT_ERROR"


class InvalidPaymentError(PaymentError):
    """The payment was rejected before any write."""

    code: str = "INVALID_PAYMENT"

    def __init__(self, reason: str, errors: list[str] | None = None):
        self.reason = reason
        self.errors = list(errors or [reason])
        super().__init__(reason)


class FraudBlockedError(PaymentError):
    """The fraud check recommended BLOCK.

    The message is deliberately generic; ``transaction_id`` is the only
    detail carried so scores and rule names never reach the payer.
    """

    code: str = "FRAUD_BLOCKED"

    USER_MESSAGE = (
        "This transaction has been flagged for review. "
        "Please contact support for assistance."
    )

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(self.USER_MESSAGE)


# Cross-cutting


class RateLimitExceededError(RentalKernelError):
    """The (actor, operation) window is exhausted."""

    code: str = "RATE_LIMITED"

    def __init__(self, actor_id: str, operation: str, retry_after_seconds: float):
        self.actor_id = actor_id
        self.operation = operation
        self.retry_after_seconds = retry_after_seconds
        super().__init__(
            f"Rate limit exceeded for {operation}; retry in {retry_after_seconds:.0f}s"
        )


class ImmutabilityViolationError(RentalKernelError):
    """An update or delete reached an append-only or POSTED record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Cannot modify {entity_type} {entity_id}: {reason}")


class ConfigurationError(RentalKernelError):
    """Settings failed validation."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, reason: str, key: str | None = None):
        self.reason = reason
        self.key = key
        super().__init__(f"{key}: {reason}" if key else reason)
