"""
Module: rental_kernel.models.property
Responsibility: ORM persistence for properties, units, leases and meter readings.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - ``Unit.is_occupied`` mirrors whether the unit's lease is ACTIVE.  The
      lease service writes both in one transaction; nothing else sets it.
    - At most one listing per unit (UNIQUE listings.unit_id, see listing.py).
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rental_kernel.db.base import TrackedBase, UUIDString, status_enum


class LeaseStatus(str, Enum):
    DRAFT = "DRAFT"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    SIGNED = "SIGNED"
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    TERMINATED = "TERMINATED"


class Property(TrackedBase):
    __tablename__ = "properties"

    organization_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    manager_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    units: Mapped[list["Unit"]] = relationship(
        back_populates="property",
        order_by="Unit.unit_number",
    )


class Unit(TrackedBase):
    """A rentable unit.  Bedrooms/bathrooms/footage feed listing defaults."""

    __tablename__ = "units"
    __table_args__ = (Index("idx_unit_property", "property_id"),)

    property_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("properties.id"), nullable=False
    )
    unit_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    bedrooms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    bathrooms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    square_footage: Mapped[Decimal | None] = mapped_column(nullable=True)
    rent_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    is_occupied: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    property: Mapped[Property] = relationship(back_populates="units")
    leases: Mapped[list["Lease"]] = relationship(back_populates="unit")


class Lease(TrackedBase):
    """Tenancy attached to a unit."""

    __tablename__ = "leases"
    __table_args__ = (
        Index("idx_lease_unit_status", "unit_id", "status"),
    )

    unit_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("units.id"), nullable=False
    )
    tenant_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    status: Mapped[LeaseStatus] = mapped_column(
        status_enum(LeaseStatus), default=LeaseStatus.DRAFT, nullable=False
    )
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    rent_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    occupants: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status_changed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    unit: Mapped[Unit] = relationship(back_populates="leases")
    meter_readings: Mapped[list["MeterReading"]] = relationship(
        back_populates="lease",
        order_by=lambda: MeterReading.reading_date.desc(),
    )


class MeterReading(TrackedBase):
    """A sub-meter reading for a lease.  Values never decrease per lease."""

    __tablename__ = "meter_readings"
    __table_args__ = (Index("idx_meter_reading_lease_date", "lease_id", "reading_date"),)

    lease_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("leases.id"), nullable=False
    )
    reading_value: Mapped[Decimal] = mapped_column(nullable=False)
    reading_date: Mapped[date] = mapped_column(Date, nullable=False)

    lease: Mapped[Lease] = relationship(back_populates="meter_readings")
