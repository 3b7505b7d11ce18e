"""
Module: rental_kernel.models.listing
Responsibility: ORM persistence for marketplace listings and the append-only
    listing audit log.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - At most one listing per unit (UNIQUE unit_id).
    - ListingAuditEntry rows are write-once (ORM listeners refuse UPDATE and
      DELETE).  ``listing_id`` is a plain column, not a foreign key, so the
      trail outlives the listing it describes.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rental_kernel.db.base import TrackedBase, UUIDString, status_enum
from rental_kernel.models.property import Unit


class ListingStatus(str, Enum):
    PRIVATE = "PRIVATE"
    PENDING = "PENDING"
    COMING_SOON = "COMING_SOON"
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    EXPIRED = "EXPIRED"
    MAINTENANCE = "MAINTENANCE"


class ListingAction(str, Enum):
    CREATE = "CREATE"
    REMOVE = "REMOVE"
    SUSPEND = "SUSPEND"
    ACTIVATE = "ACTIVATE"
    UPDATE = "UPDATE"
    EXPIRE = "EXPIRE"
    MAINTENANCE_START = "MAINTENANCE_START"
    MAINTENANCE_END = "MAINTENANCE_END"
    AUTO_ACTIVATE = "AUTO_ACTIVATE"
    AUTO_EXPIRE = "AUTO_EXPIRE"
    SET_COMING_SOON = "SET_COMING_SOON"


class Listing(TrackedBase):
    """Marketplace visibility record for a unit."""

    __tablename__ = "listings"
    __table_args__ = (
        UniqueConstraint("unit_id", name="uq_listing_unit"),
        Index("idx_listing_status", "status"),
    )

    unit_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("units.id"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    price: Mapped[Decimal] = mapped_column(nullable=False)
    availability_date: Mapped[datetime] = mapped_column(nullable=False)
    expiration_date: Mapped[datetime | None] = mapped_column(nullable=True)
    status: Mapped[ListingStatus] = mapped_column(
        status_enum(ListingStatus), default=ListingStatus.PRIVATE, nullable=False
    )

    unit: Mapped[Unit] = relationship()


class ListingAuditEntry(TrackedBase):
    """Write-once record of one listing action."""

    __tablename__ = "listing_audit_entries"
    __table_args__ = (
        UniqueConstraint("unit_id", "sequence", name="uq_listing_audit_sequence"),
    )

    unit_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    listing_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    action: Mapped[ListingAction] = mapped_column(
        status_enum(ListingAction), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    previous_status: Mapped[ListingStatus | None] = mapped_column(
        status_enum(ListingStatus), nullable=True
    )
    new_status: Mapped[ListingStatus | None] = mapped_column(
        status_enum(ListingStatus), nullable=True
    )
    reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    recorded_at: Mapped[datetime] = mapped_column(nullable=False)
    sequence: Mapped[int] = mapped_column(nullable=False)
    entry_metadata: Mapped[dict | None] = mapped_column(JSON, nullable=True)
