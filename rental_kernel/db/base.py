"""
Module: rental_kernel.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.  Provides
    the UUID primary key convention, the type annotation map that keeps money
    and timestamps consistent, and the TrackedBase mixin for audit timestamps.
Architecture position: Kernel > DB.  Lowest-level import target in the kernel.
    MUST NOT import from models/, services/, domain/, or outer packages.

Invariants enforced:
    - UUID primary keys (uuid4), stored as String(36) so SQLite and PostgreSQL
      share one schema.
    - Decimal maps to Numeric(38, 9).  NEVER use float for monetary amounts.
    - datetime columns are always timezone-aware on the Python side, even on
      backends (SQLite) that store naive values.
    - Status enums are persisted by value through ``status_enum``; the domain
      enum is the only representation services ever see.

Failure modes:
    - LookupError on load if a stored status string is not a member of the
      mapped enum (corrupted row or removed member).
"""

from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import DateTime, Enum as SAEnum, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """
    UUID type stored as String(36) for cross-database portability.

    Guarantees:
        - process_bind_param: UUID -> str on INSERT/UPDATE.
        - process_result_value: str -> UUID on SELECT.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return PyUUID(str(value))
        return None


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetime normalized to UTC.

    Contract:
        Binds aware datetimes converted to UTC; naive inputs are rejected so
        local wall-clock times never reach the database unlabelled.

    Guarantees:
        - Values loaded from backends without timezone support come back with
          tzinfo=UTC, so comparisons against an injected Clock never mix
          naive and aware datetimes.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime not allowed: {value!r}")
        return value.astimezone(UTC)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


def status_enum(enum_cls: type[Enum], length: int = 30) -> SAEnum:
    """Column type persisting a domain status enum by its value.

    This is the single persistence mapping for every state machine; stored
    strings equal the enum values, and rows load back as enum members.
    """
    return SAEnum(
        enum_cls,
        native_enum=False,
        create_constraint=False,
        length=length,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


class Base(DeclarativeBase):
    """
    Declarative base for all rental ORM models.

    Guarantees:
        - id is always a uuid4-generated UUID stored as String(36).
        - Decimal maps to Numeric(38, 9).
        - datetime maps to UTCDateTime.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: UTCDateTime(),
        PyUUID: UUIDString(),
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class TrackedBase(Base):
    """
    Abstract base with audit timestamp and actor tracking.

    Contract:
        created_at/updated_at/created_by_id/updated_by_id are audit metadata,
        not financial data, so they may change even on records that are
        otherwise frozen (see db/immutability.py).
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    created_by_id: Mapped[PyUUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    updated_by_id: Mapped[PyUUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )


UUID = PyUUID
