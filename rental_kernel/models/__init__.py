"""ORM models for the rental ledger."""

from rental_kernel.models.billing import (
    Invoice,
    InvoiceStatus,
    InvoiceType,
    Payment,
    PostingStatus,
    UtilityAllocation,
    UtilityBill,
    UtilityBillStatus,
    UtilityImportMethod,
    UtilitySplitMethod,
)
from rental_kernel.models.ledger import (
    AccountType,
    FinancialEntity,
    JournalEntry,
    JournalLine,
    LedgerAccount,
)
from rental_kernel.models.listing import (
    Listing,
    ListingAction,
    ListingAuditEntry,
    ListingStatus,
)
from rental_kernel.models.property import Lease, LeaseStatus, MeterReading, Property, Unit


def import_all_models() -> None:
    """Importing this package registers every table on Base.metadata."""


__all__ = [
    "AccountType",
    "FinancialEntity",
    "Invoice",
    "InvoiceStatus",
    "InvoiceType",
    "JournalEntry",
    "JournalLine",
    "Lease",
    "LeaseStatus",
    "LedgerAccount",
    "Listing",
    "ListingAction",
    "ListingAuditEntry",
    "ListingStatus",
    "MeterReading",
    "Payment",
    "PostingStatus",
    "Property",
    "Unit",
    "UtilityAllocation",
    "UtilityBill",
    "UtilityBillStatus",
    "UtilityImportMethod",
    "UtilitySplitMethod",
    "import_all_models",
]
