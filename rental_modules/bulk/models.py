"""
Bulk operation types (``rental_modules.bulk.models``).

Frozen dataclasses with enum actions and tuples for the collections, so a
``BulkResult`` can be handed across layers without copying.

Invariants enforced:
    - ``summary.succeeded + summary.failed == summary.total``.
    - Every input item id appears in exactly one of ``successful`` /
      ``failed`` (built only through ``BulkResultBuilder``).
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from uuid import UUID

from rental_modules.listings.models import ListingInput


class BulkAction(str, Enum):
    LIST = "LIST"
    UNLIST = "UNLIST"
    SUSPEND = "SUSPEND"
    ACTIVATE = "ACTIVATE"


@dataclass(frozen=True)
class BulkListingOperation:
    unit_id: UUID
    action: BulkAction
    data: ListingInput | Mapping[str, Any] | None = None


@dataclass(frozen=True)
class BulkFailure:
    item_id: UUID
    error: str


@dataclass(frozen=True)
class BulkSummary:
    total: int
    succeeded: int
    failed: int


@dataclass(frozen=True)
class BulkResult:
    successful: tuple[UUID, ...]
    failed: tuple[BulkFailure, ...]
    summary: BulkSummary
    batch_errors: tuple[str, ...] = ()

    @property
    def is_success(self) -> bool:
        """True when every item succeeded."""
        return self.summary.failed == 0

    def to_dict(self, id_key: str = "unit_id") -> dict[str, Any]:
        return {
            "successful": [str(i) for i in self.successful],
            "failed": [{id_key: str(f.item_id), "error": f.error} for f in self.failed],
            "summary": {
                "total": self.summary.total,
                "succeeded": self.summary.succeeded,
                "failed": self.summary.failed,
            },
        }


@dataclass
class BulkResultBuilder:
    """Accumulates per-item outcomes in input order."""

    successful: list[UUID] = field(default_factory=list)
    failed: list[BulkFailure] = field(default_factory=list)

    def succeed(self, item_id: UUID) -> None:
        self.successful.append(item_id)

    def fail(self, item_id: UUID, error: str) -> None:
        self.failed.append(BulkFailure(item_id, error))

    def build(self, batch_errors: tuple[str, ...] = ()) -> BulkResult:
        return BulkResult(
            successful=tuple(self.successful),
            failed=tuple(self.failed),
            summary=BulkSummary(
                total=len(self.successful) + len(self.failed),
                succeeded=len(self.successful),
                failed=len(self.failed),
            ),
            batch_errors=batch_errors,
        )
