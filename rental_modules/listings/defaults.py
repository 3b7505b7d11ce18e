"""Default listing fields synthesized from unit data.

Given the same unit and the same partial input the result is identical,
except for the availability date, which falls back to ``now``.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from decimal import Decimal

from rental_config.schema import ListingSettings
from rental_kernel.domain.money import to_money
from rental_kernel.models.property import Unit
from rental_modules.listings.models import ListingInput

_CONTACT = "Contact us for more details and to schedule a viewing."


def _plain(value: Decimal | int) -> str:
    if isinstance(value, Decimal):
        return format(value.normalize(), "f")
    return str(value)


def _plural(count: Decimal | int, noun: str) -> str:
    return f"{_plain(count)} {noun}{'s' if count > 1 else ''}"


def default_title(unit: Unit) -> str:
    unit_number = unit.unit_number or "Unit"
    details = "/".join(
        part
        for part in (
            f"{unit.bedrooms}BR" if unit.bedrooms else "",
            f"{unit.bathrooms}BA" if unit.bathrooms else "",
        )
        if part
    )
    return f"{unit_number} - {details}" if details else unit_number


def default_description(unit: Unit) -> str:
    parts = []
    if unit.bedrooms:
        parts.append(_plural(unit.bedrooms, "bedroom"))
    if unit.bathrooms:
        parts.append(_plural(unit.bathrooms, "bathroom"))
    if unit.square_footage:
        parts.append(f"{_plain(unit.square_footage)} sq ft")
    if parts:
        base = f"Spacious {', '.join(parts)} unit available for rent."
    else:
        base = "Quality rental unit available."
    return f"{base} {_CONTACT}"


def default_price(unit: Unit, settings: ListingSettings) -> Decimal:
    if unit.rent_amount is not None and unit.rent_amount > 0:
        return to_money(unit.rent_amount)
    return to_money(settings.default_price)


def populate_defaults(
    data: ListingInput, unit: Unit, settings: ListingSettings, now: datetime
) -> ListingInput:
    """Fill every missing field of ``data`` from ``unit``."""
    title = data.title if data.title and data.title.strip() else default_title(unit)
    description = (
        data.description
        if data.description and data.description.strip()
        else default_description(unit)
    )
    return replace(
        data,
        title=title.strip(),
        description=description.strip(),
        price=data.price if data.price is not None else default_price(unit, settings),
        availability_date=data.availability_date or now,
    )
