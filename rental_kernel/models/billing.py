"""
Module: rental_kernel.models.billing
Responsibility: ORM persistence for utility bills, their allocations, invoices
    and payments.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - A POSTED utility bill and its allocations are frozen (ORM listeners in
      db/immutability.py).  The DRAFT..APPROVED -> POSTED write itself is allowed.
    - ``Invoice.balance == total_amount - amount_paid``; InvoiceService
      recomputes both from non-reversed payments on every payment change.
    - At most one allocation per (bill, unit).

Audit relevance:
    ``UtilityBill.audit_hash`` is the tamper-evidence checksum over the
    allocation rows taken at posting time; it can be recomputed from the
    allocation table alone.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rental_kernel.db.base import TrackedBase, UUIDString, status_enum


class UtilityBillStatus(str, Enum):
    DRAFT = "DRAFT"
    PROCESSING = "PROCESSING"
    REVIEW_REQUIRED = "REVIEW_REQUIRED"
    APPROVED = "APPROVED"
    POSTED = "POSTED"
    REJECTED = "REJECTED"


class UtilitySplitMethod(str, Enum):
    EQUAL = "EQUAL"
    OCCUPANCY_BASED = "OCCUPANCY_BASED"
    SQ_FOOTAGE = "SQ_FOOTAGE"
    SUB_METERED = "SUB_METERED"
    CUSTOM_RATIO = "CUSTOM_RATIO"
    AI_OPTIMIZED = "AI_OPTIMIZED"


class UtilityImportMethod(str, Enum):
    CSV = "CSV"
    API = "API"
    PDF_OCR = "PDF_OCR"
    MANUAL_ENTRY = "MANUAL_ENTRY"
    IMAGE_SCAN = "IMAGE_SCAN"


class InvoiceType(str, Enum):
    RENT = "RENT"
    UTILITY = "UTILITY"
    DEPOSIT = "DEPOSIT"
    MAINTENANCE = "MAINTENANCE"
    LATE_FEE = "LATE_FEE"


class InvoiceStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    OVERDUE = "OVERDUE"


class PostingStatus(str, Enum):
    PENDING = "PENDING"
    POSTED = "POSTED"
    FAILED = "FAILED"


class UtilityBill(TrackedBase):
    """A provider invoice addressed to a property."""

    __tablename__ = "utility_bills"
    __table_args__ = (
        Index("idx_utility_bill_property", "property_id"),
        Index("idx_utility_bill_status", "status"),
    )

    property_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("properties.id"), nullable=False
    )
    provider_name: Mapped[str] = mapped_column(String(200), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)
    bill_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[UtilityBillStatus] = mapped_column(
        status_enum(UtilityBillStatus),
        default=UtilityBillStatus.DRAFT,
        nullable=False,
    )
    split_method: Mapped[UtilitySplitMethod] = mapped_column(
        status_enum(UtilitySplitMethod),
        default=UtilitySplitMethod.EQUAL,
        nullable=False,
    )
    import_method: Mapped[UtilityImportMethod] = mapped_column(
        status_enum(UtilityImportMethod),
        default=UtilityImportMethod.MANUAL_ENTRY,
        nullable=False,
    )
    ocr_confidence: Mapped[Decimal | None] = mapped_column(nullable=True)
    file_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    posted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejected_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    journal_entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("journal_entries.id"), nullable=True
    )
    audit_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    allocations: Mapped[list["UtilityAllocation"]] = relationship(
        back_populates="bill",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def is_posted(self) -> bool:
        return self.status == UtilityBillStatus.POSTED


class UtilityAllocation(TrackedBase):
    """One unit's share of a bill.  ``percentage`` is derived, 0-100."""

    __tablename__ = "utility_allocations"
    __table_args__ = (
        UniqueConstraint("bill_id", "unit_id", name="uq_utility_allocation_unit"),
    )

    bill_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("utility_bills.id"), nullable=False
    )
    unit_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("units.id"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    percentage: Mapped[Decimal] = mapped_column(nullable=False)
    invoice_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("invoices.id"), nullable=True
    )

    bill: Mapped[UtilityBill] = relationship(back_populates="allocations")


class Invoice(TrackedBase):
    """A billable claim against a lease."""

    __tablename__ = "invoices"
    __table_args__ = (
        Index("idx_invoice_lease", "lease_id"),
        Index("idx_invoice_utility_bill", "utility_bill_id"),
    )

    lease_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("leases.id"), nullable=False
    )
    invoice_type: Mapped[InvoiceType] = mapped_column(
        status_enum(InvoiceType), nullable=False
    )
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)
    amount_paid: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    balance: Mapped[Decimal] = mapped_column(nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[InvoiceStatus] = mapped_column(
        status_enum(InvoiceStatus), default=InvoiceStatus.PENDING, nullable=False
    )
    utility_bill_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("utility_bills.id"), nullable=True
    )
    posting_status: Mapped[PostingStatus] = mapped_column(
        status_enum(PostingStatus), default=PostingStatus.PENDING, nullable=False
    )
    journal_entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("journal_entries.id"), nullable=True
    )

    payments: Mapped[list["Payment"]] = relationship(
        back_populates="invoice",
        lazy="selectin",
    )


class Payment(TrackedBase):
    """A payment recorded against an invoice."""

    __tablename__ = "payments"
    __table_args__ = (Index("idx_payment_invoice", "invoice_id"),)

    invoice_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("invoices.id"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    method: Mapped[str] = mapped_column(String(50), nullable=False)
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    paid_on: Mapped[datetime] = mapped_column(nullable=False)
    payer_email: Mapped[str | None] = mapped_column(String(254), nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="KES")
    is_reversed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    reversed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    posting_status: Mapped[PostingStatus] = mapped_column(
        status_enum(PostingStatus), default=PostingStatus.PENDING, nullable=False
    )
    journal_entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("journal_entries.id"), nullable=True
    )

    invoice: Mapped[Invoice] = relationship(back_populates="payments")
