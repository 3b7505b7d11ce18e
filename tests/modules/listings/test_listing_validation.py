"""Listing payload validation, sanitization and defaults."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from rental_config.schema import ListingSettings
from rental_kernel.models.property import Unit
from rental_modules.listings.defaults import default_description, default_title, populate_defaults
from rental_modules.listings.models import ListingInput
from rental_modules.listings.validation import (
    BulkRequestValidator,
    ListingInputValidator,
    listing_input_from,
    parse_datetime,
    sanitize_text,
)

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def validator():
    return ListingInputValidator(ListingSettings())


def _listing(**overrides):
    fields = dict(
        title="Sunny loft",
        description="Top floor loft with skylights.",
        price=Decimal("1500.00"),
        availability_date=NOW,
    )
    fields.update(overrides)
    return ListingInput(**fields)


class TestSanitize:

    def test_strips_markup(self):
        assert sanitize_text("  <b>hi</b> ") == "bhi/b"

    def test_strips_script_vectors(self):
        assert sanitize_text('JavaScript:alert(1) onclick=run') == "alert(1) run"

    def test_truncates(self):
        assert len(sanitize_text("x" * 1500)) == 1000

    def test_empty(self):
        assert sanitize_text(None) == ""


class TestValidateListing:

    def test_valid(self, validator):
        result = validator.validate_listing(_listing(), NOW)
        assert result.is_valid
        assert result.sanitized_data.title == "Sunny loft"

    @pytest.mark.parametrize(
        "overrides, message",
        [
            ({"title": "ab"}, "Title must be at least 3 characters long"),
            ({"title": "x" * 101}, "Title must be less than 100 characters"),
            ({"description": "short"}, "Description must be at least 10 characters long"),
            ({"price": Decimal("0")}, "Price must be a positive number"),
            ({"price": Decimal("50000.01")}, "Price must not exceed 50000"),
            ({"availability_date": NOW - timedelta(days=1)}, "Availability date cannot be in the past"),
            ({"expiration_date": NOW}, "Expiration date must be after availability date"),
        ],
    )
    def test_rules(self, validator, overrides, message):
        result = validator.validate_listing(_listing(**overrides), NOW)
        assert not result.is_valid
        assert message in result.errors

    def test_earlier_today_is_allowed(self, validator):
        result = validator.validate_listing(_listing(availability_date=NOW.replace(hour=1)), NOW)
        assert result.is_valid

    @pytest.mark.parametrize(
        "overrides, message",
        [
            ({"title": "<<<>>>"}, "Title is required"),
            ({"title": "<a>b"}, "Title must be at least 3 characters long"),
            ({"description": "<" * 10 + "ok"}, "Description must be at least 10 characters long"),
            ({"description": "onload=" * 3 + "hi"}, "Description must be at least 10 characters long"),
        ],
    )
    def test_rules_apply_to_sanitized_text(self, validator, overrides, message):
        result = validator.validate_listing(_listing(**overrides), NOW)
        assert not result.is_valid
        assert message in result.errors

    def test_overlong_description_is_refused_not_truncated(self, validator):
        result = validator.validate_listing(_listing(description="x" * 1500), NOW)
        assert "Description must be less than 1000 characters" in result.errors

    def test_sanitized_copy_is_what_was_checked(self, validator):
        result = validator.validate_listing(_listing(title="  <i>Sunny</i> loft "), NOW)
        assert result.sanitized_data.title == "iSunny/i loft"


class TestValidatePayload:

    def test_float_price_rejected(self, validator):
        result = validator.validate("listing:update", {"price": 1200.5})
        assert result.errors == ("Price must be a number",)

    def test_string_price_parsed(self, validator):
        result = validator.validate("listing:update", {"price": "1200.50"})
        assert result.sanitized_data["price"] == Decimal("1200.50")

    def test_dates_parsed(self, validator):
        result = validator.validate("listing:create", {"availability_date": "2024-02-01T00:00:00"})
        assert result.sanitized_data["availability_date"] == datetime(2024, 2, 1, tzinfo=UTC)

    def test_bad_date(self, validator):
        result = validator.validate("listing:create", {"expiration_date": "next week"})
        assert result.errors == ("expiration_date is invalid",)

    def test_payload_text_checked_after_sanitizing(self, validator):
        result = validator.validate("listing:update", {"title": "<<<>>>", "description": "<" * 10 + "ok"})
        assert result.errors == (
            "Title is required",
            "Description must be at least 10 characters long",
        )
        assert result.sanitized_data is None

    def test_listing_input_from_payload(self, validator):
        payload = validator.validate("listing:create", {"title": "Garden flat", "price": "900"}).sanitized_data
        data = listing_input_from(payload)
        assert data.title == "Garden flat"
        assert data.price == Decimal("900")

    def test_naive_datetime_is_utc(self):
        assert parse_datetime(datetime(2024, 1, 1)).tzinfo is UTC


class TestBulkRequestValidator:

    def test_valid(self):
        assert BulkRequestValidator().validate({"unit_ids": ["a", "b"], "action": "LIST"}).is_valid

    def test_missing_fields(self):
        result = BulkRequestValidator().validate({})
        assert result.errors == (
            "Missing required field: unit_ids",
            "Missing required field: action",
        )

    def test_limits(self):
        result = BulkRequestValidator(ListingSettings(bulk_max_units=2)).validate(
            {"unit_ids": ["a", "b", "a"], "action": "DEMOLISH"}
        )
        assert "unit_ids cannot exceed 2" in result.errors
        assert "Duplicate unit ids: a" in result.errors
        assert "Invalid bulk action: DEMOLISH" in result.errors

    def test_empty_ids(self):
        result = BulkRequestValidator().validate({"unit_ids": [], "action": "LIST"})
        assert result.errors == ("unit_ids must include at least one unit",)

    def test_ids_must_be_array(self):
        result = BulkRequestValidator().validate({"unit_ids": "abc", "action": "LIST"})
        assert result.errors == ("unit_ids must be an array",)


class TestDefaults:

    def test_title_and_description(self):
        unit = Unit(unit_number="B4", bedrooms=1, bathrooms=1, square_footage=Decimal("480"))
        assert default_title(unit) == "B4 - 1BR/1BA"
        assert default_description(unit).startswith(
            "Spacious 1 bedroom, 1 bathroom, 480 sq ft unit available for rent."
        )

    def test_bare_unit(self):
        unit = Unit(unit_number=None)
        assert default_title(unit) == "Unit"
        assert default_description(unit).startswith("Quality rental unit available.")

    def test_populate_keeps_caller_fields(self):
        unit = Unit(unit_number="B4", bedrooms=1, rent_amount=Decimal("800"))
        data = populate_defaults(ListingInput(title="Corner flat"), unit, ListingSettings(), NOW)
        assert data.title == "Corner flat"
        assert data.price == Decimal("800.00")
        assert data.availability_date == NOW
