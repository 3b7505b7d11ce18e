"""
Listing Input Validation (``rental_modules.listings.validation``).

Responsibility
--------------
Checks listing payloads before any side effect.  Every violated rule is
reported; nothing here raises for bad input.  Text fields are sanitized
(angle brackets, ``javascript:`` and inline ``on*=`` handlers removed,
trimmed, truncated) in the returned ``sanitized_data``.

Operations are named like the rate-limit keys: ``listing:create``,
``listing:update``, ``listing:status``, ``listing:bulk``.
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from rental_config.schema import ListingSettings
from rental_kernel.domain.money import to_decimal
from rental_kernel.logging_config import get_logger
from rental_modules.listings.models import ListingInput

logger = get_logger("modules.listings.validation")

SANITIZED_MAX_LENGTH = 1000

_ANGLE_BRACKETS = re.compile(r"[<>]")
_JS_PROTOCOL = re.compile(r"javascript:", re.IGNORECASE)
_EVENT_HANDLER = re.compile(r"on\w+=", re.IGNORECASE)


def sanitize_text(text: str | None, max_length: int | None = SANITIZED_MAX_LENGTH) -> str:
    """Strip markup and script vectors; ``max_length=None`` keeps the full length."""
    if not text:
        return ""
    cleaned = _ANGLE_BRACKETS.sub("", text.strip())
    cleaned = _JS_PROTOCOL.sub("", cleaned)
    cleaned = _EVENT_HANDLER.sub("", cleaned).strip()
    return cleaned if max_length is None else cleaned[:max_length]


def parse_datetime(value: datetime | str) -> datetime:
    """Parse an ISO-8601 value; naive values are taken as UTC.

    Raises ValueError for unparseable strings.
    """
    parsed = value if isinstance(value, datetime) else datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    errors: tuple[str, ...] = ()
    sanitized_data: Any = None


class ListingInputValidator:
    """Field rules for listing create/update payloads."""

    def __init__(self, settings: ListingSettings | None = None):
        self._settings = settings or ListingSettings()

    # -------------------------------------------------------------------------
    # Field rules
    # -------------------------------------------------------------------------

    def _title_errors(self, title: str | None) -> list[str]:
        s = self._settings
        title = (title or "").strip()
        if not title:
            return ["Title is required"]
        if len(title) < s.title_min_length:
            return [f"Title must be at least {s.title_min_length} characters long"]
        if len(title) > s.title_max_length:
            return [f"Title must be less than {s.title_max_length} characters"]
        return []

    def _description_errors(self, description: str | None) -> list[str]:
        s = self._settings
        description = (description or "").strip()
        if not description:
            return ["Description is required"]
        if len(description) < s.description_min_length:
            return [f"Description must be at least {s.description_min_length} characters long"]
        if len(description) > s.description_max_length:
            return [f"Description must be less than {s.description_max_length} characters"]
        return []

    def _price_errors(self, price: Decimal | None) -> list[str]:
        if price is None:
            return ["Price is required"]
        if price <= 0:
            return ["Price must be a positive number"]
        if price > self._settings.max_price:
            return [f"Price must not exceed {self._settings.max_price}"]
        return []

    # -------------------------------------------------------------------------
    # Typed listing input
    # -------------------------------------------------------------------------

    def validate_listing(self, data: ListingInput, now: datetime) -> ValidationResult:
        """Validate a fully populated listing and return a sanitized copy.

        Availability may not fall before the start of ``now``'s day;
        expiration must come after availability.
        """
        title = sanitize_text(data.title, max_length=None)
        description = sanitize_text(data.description, max_length=None)
        errors = [
            *self._title_errors(title),
            *self._description_errors(description),
            *self._price_errors(data.price),
        ]
        if data.availability_date is not None:
            start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
            if data.availability_date < start_of_day:
                errors.append("Availability date cannot be in the past")
        if data.expiration_date is not None and data.availability_date is not None:
            if data.expiration_date <= data.availability_date:
                errors.append("Expiration date must be after availability date")

        if errors:
            logger.info("listing_validation_failed", extra={"errors": errors})
            return ValidationResult(False, tuple(errors))

        sanitized = replace(data, title=title, description=description)
        return ValidationResult(True, sanitized_data=sanitized)

    # -------------------------------------------------------------------------
    # Raw payloads
    # -------------------------------------------------------------------------

    def validate(self, operation: str, data: Mapping[str, Any] | None) -> ValidationResult:
        """Validate a raw payload for ``operation``.

        Only the fields present are checked.  Price must arrive as a
        Decimal, int or numeric string; floats are rejected.
        """
        data = dict(data or {})
        errors: list[str] = []
        sanitized: dict[str, Any] = dict(data)

        if "bulk" in operation:
            bulk = BulkRequestValidator(self._settings).validate(data)
            errors.extend(bulk.errors)

        if any(op in operation for op in ("create", "update", "status")):
            if data.get("title") is not None:
                title = data["title"]
                if not isinstance(title, str):
                    errors.append("Title must be text")
                else:
                    title = sanitize_text(title, max_length=None)
                    errors.extend(self._title_errors(title))
                    sanitized["title"] = title
            if data.get("description") is not None:
                description = data["description"]
                if not isinstance(description, str):
                    errors.append("Description must be text")
                else:
                    description = sanitize_text(description, max_length=None)
                    errors.extend(self._description_errors(description))
                    sanitized["description"] = description
            if data.get("price") is not None:
                try:
                    price = to_decimal(data["price"])
                except (TypeError, ValueError):
                    errors.append("Price must be a number")
                else:
                    errors.extend(self._price_errors(price))
                    sanitized["price"] = price
            for name in ("availability_date", "expiration_date"):
                if data.get(name):
                    try:
                        sanitized[name] = parse_datetime(data[name])
                    except ValueError:
                        errors.append(f"{name} is invalid")

        is_valid = not errors
        logger.debug(
            "listing_payload_validated",
            extra={"operation": operation, "is_valid": is_valid, "error_count": len(errors)},
        )
        return ValidationResult(is_valid, tuple(errors), sanitized if is_valid else None)


def listing_input_from(data: Mapping[str, Any]) -> ListingInput:
    """Build a ``ListingInput`` from a payload already passed through ``validate``."""
    price = data.get("price")
    return ListingInput(
        title=data.get("title"),
        description=data.get("description"),
        price=to_decimal(price) if price is not None else None,
        availability_date=(
            parse_datetime(data["availability_date"]) if data.get("availability_date") else None
        ),
        expiration_date=(
            parse_datetime(data["expiration_date"]) if data.get("expiration_date") else None
        ),
    )


class BulkRequestValidator:
    """Shape checks for bulk requests.

    ``validate`` takes the API payload ``{"unit_ids": [...], "action": ...}``;
    ``validate_items`` checks already-typed per-item operations.
    """

    REQUIRED_FIELDS = ("unit_ids", "action")

    def __init__(self, settings: ListingSettings | None = None):
        self._settings = settings or ListingSettings()

    def validate(self, payload: Mapping[str, Any]) -> ValidationResult:
        errors = [
            f"Missing required field: {name}"
            for name in self.REQUIRED_FIELDS
            if name not in payload
        ]

        unit_ids = payload.get("unit_ids")
        if isinstance(unit_ids, (list, tuple)):
            errors.extend(self._id_errors(unit_ids))
        elif unit_ids is not None:
            errors.append("unit_ids must be an array")

        action = payload.get("action")
        if action is not None:
            errors.extend(self._action_errors([action]))

        return ValidationResult(not errors, tuple(errors), dict(payload) if not errors else None)

    def validate_items(self, item_ids: Sequence[Any], actions: Iterable[str]) -> ValidationResult:
        errors = [*self._id_errors(item_ids), *self._action_errors(actions)]
        return ValidationResult(not errors, tuple(errors))

    def _id_errors(self, item_ids: Sequence[Any]) -> list[str]:
        errors = []
        if not item_ids:
            errors.append("unit_ids must include at least one unit")
        if len(item_ids) > self._settings.bulk_max_units:
            errors.append(f"unit_ids cannot exceed {self._settings.bulk_max_units}")
        duplicates = sorted(str(i) for i, n in Counter(item_ids).items() if n > 1)
        if duplicates:
            errors.append(f"Duplicate unit ids: {', '.join(duplicates)}")
        return errors

    def _action_errors(self, actions: Iterable[str]) -> list[str]:
        allowed = self._settings.bulk_allowed_actions
        invalid = sorted({str(a) for a in actions if str(a) not in allowed})
        return [f"Invalid bulk action: {a}" for a in invalid]
