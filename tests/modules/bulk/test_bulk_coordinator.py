"""
BulkOperationCoordinator: per-item isolation for listing and bill batches.

Validates:
- one item's failure leaves the others' outcomes untouched, in any order
- malformed batches run nothing and report every item failed
- LIST without data fails only that item
- bill batches post what can be posted
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from rental_kernel.exceptions import RateLimitExceededError
from rental_kernel.models.billing import UtilityBillStatus
from rental_kernel.models.listing import ListingStatus
from rental_modules.bulk.coordinator import LISTING_DATA_REQUIRED, BulkOperationCoordinator
from rental_modules.bulk.models import BulkAction, BulkListingOperation
from rental_modules.listings.models import ListingInput
from rental_modules.utilities.models import BillInput
from rental_services.rate_limiter import SlidingWindowRateLimiter
from tests.conftest import TEST_ACTOR_ID


def _ops(units, action, data=None):
    return [BulkListingOperation(unit_id=u.id, action=action, data=data) for u in units]


def _outcome(result):
    return set(result.successful), {f.item_id for f in result.failed}


@pytest.fixture
def units(make_property):
    return make_property(unit_count=3).units


class TestListingIsolation:

    @pytest.mark.parametrize("reverse", [False, True])
    def test_failure_does_not_affect_others(
        self, bulk_coordinator, listing_service, units, make_listing, reverse
    ):
        make_listing(units[0], status=ListingStatus.ACTIVE)
        make_listing(units[2], status=ListingStatus.ACTIVE)
        batch = list(units)[::-1] if reverse else list(units)

        result = bulk_coordinator.bulk_update_listings(_ops(batch, BulkAction.SUSPEND), TEST_ACTOR_ID)

        assert _outcome(result) == ({units[0].id, units[2].id}, {units[1].id})
        assert result.failed[0].error == "Unit does not have an active listing"
        assert listing_service.get_listing_for_unit(units[0].id).status == ListingStatus.SUSPENDED
        assert listing_service.get_listing_for_unit(units[2].id).status == ListingStatus.SUSPENDED
        assert (result.summary.total, result.summary.succeeded, result.summary.failed) == (3, 2, 1)

    def test_exception_in_one_item(
        self, bulk_coordinator, listing_service, units, make_listing, monkeypatch, captured_logs
    ):
        for unit in units:
            make_listing(unit)
        original = listing_service.remove_listing

        def flaky(unit_id, actor_id, reason=None):
            if unit_id == units[1].id:
                raise RuntimeError("disk full")
            return original(unit_id, actor_id, reason)

        monkeypatch.setattr(listing_service, "remove_listing", flaky)
        result = bulk_coordinator.bulk_update_listings(_ops(units, BulkAction.UNLIST), TEST_ACTOR_ID)

        assert _outcome(result) == ({units[0].id, units[2].id}, {units[1].id})
        assert result.failed[0].error == "disk full"
        assert listing_service.get_listing_for_unit(units[1].id) is not None
        assert any(r["message"] == "bulk_item_failed" for r in captured_logs())

    def test_activate_respects_lease_guard(
        self, bulk_coordinator, units, make_listing, make_lease
    ):
        for unit in units:
            make_listing(unit, status=ListingStatus.SUSPENDED)
        make_lease(units[0])

        result = bulk_coordinator.bulk_update_listings(_ops(units, BulkAction.ACTIVATE), TEST_ACTOR_ID)

        assert _outcome(result) == ({units[1].id, units[2].id}, {units[0].id})
        assert "active lease" in result.failed[0].error


class TestList:

    def test_list_requires_data(self, bulk_coordinator, units):
        ops = [
            BulkListingOperation(units[0].id, BulkAction.LIST, ListingInput(title="Garden flat")),
            BulkListingOperation(units[1].id, BulkAction.LIST, None),
        ]
        result = bulk_coordinator.bulk_update_listings(ops, TEST_ACTOR_ID)

        assert result.successful == (units[0].id,)
        assert result.failed[0].error == LISTING_DATA_REQUIRED

    def test_list_with_raw_payload(self, bulk_coordinator, listing_service, units):
        data = {"title": "Garden flat", "price": "950"}
        result = bulk_coordinator.bulk_update_listings(_ops(units[:2], BulkAction.LIST, data), TEST_ACTOR_ID)

        assert result.is_success
        listing = listing_service.get_listing_for_unit(units[0].id)
        assert (listing.title, listing.price) == ("Garden flat", Decimal("950.00"))

    def test_invalid_raw_payload_fails_items(self, bulk_coordinator, listing_service, units):
        result = bulk_coordinator.bulk_update_listings(
            _ops(units[:1], BulkAction.LIST, {"price": 950.0}), TEST_ACTOR_ID
        )
        assert result.failed[0].error == "Price must be a number"
        assert listing_service.get_listing_for_unit(units[0].id) is None


class TestBatchRejection:

    def test_too_many_units(self, bulk_coordinator, make_property, listing_service):
        prop = make_property(unit_count=51)
        result = bulk_coordinator.bulk_update_listings(
            _ops(prop.units, BulkAction.LIST, ListingInput()), TEST_ACTOR_ID
        )
        assert result.summary.failed == 51
        assert result.successful == ()
        assert "unit_ids cannot exceed 50" in result.batch_errors
        assert all(f.error.startswith("Batch rejected") for f in result.failed)
        assert listing_service.get_listing_for_unit(prop.units[0].id) is None

    def test_duplicate_ids(self, bulk_coordinator, units):
        ops = _ops([units[0], units[0]], BulkAction.SUSPEND)
        result = bulk_coordinator.bulk_update_listings(ops, TEST_ACTOR_ID)
        assert result.summary.failed == 2
        assert any(e.startswith("Duplicate unit ids") for e in result.batch_errors)

    def test_empty_batch(self, bulk_coordinator):
        result = bulk_coordinator.bulk_update_listings([], TEST_ACTOR_ID)
        assert result.summary.total == 0
        assert result.batch_errors == ("unit_ids must include at least one unit",)


class TestBulkRequest:

    def test_payload_with_string_ids(self, bulk_coordinator, listing_service, units, make_listing):
        make_listing(units[0], status=ListingStatus.ACTIVE)
        payload = {"unit_ids": [str(units[0].id), str(units[1].id)], "action": "SUSPEND"}

        result = bulk_coordinator.bulk_update_request(payload, TEST_ACTOR_ID)

        assert result.to_dict() == {
            "successful": [str(units[0].id)],
            "failed": [{"unit_id": str(units[1].id), "error": "Unit does not have an active listing"}],
            "summary": {"total": 2, "succeeded": 1, "failed": 1},
        }

    def test_unknown_action(self, bulk_coordinator, units):
        result = bulk_coordinator.bulk_update_request(
            {"unit_ids": [str(units[0].id)], "action": "DEMOLISH"}, TEST_ACTOR_ID
        )
        assert result.batch_errors == ("Invalid bulk action: DEMOLISH",)

    def test_malformed_ids(self, bulk_coordinator):
        result = bulk_coordinator.bulk_update_request(
            {"unit_ids": ["not-a-uuid"], "action": "UNLIST"}, TEST_ACTOR_ID
        )
        assert result.batch_errors == ("unit_ids must be UUIDs",)

    def test_rate_limited(self, session, settings, deterministic_clock, listing_service, bill_service, units):
        coordinator = BulkOperationCoordinator(
            session,
            listing_service=listing_service,
            bill_service=bill_service,
            settings=settings,
            clock=deterministic_clock,
            rate_limiter=SlidingWindowRateLimiter(settings.rate_limits, clock=deterministic_clock),
        )
        ops = _ops(units[:1], BulkAction.SUSPEND)
        for _ in range(5):
            coordinator.bulk_update_listings(ops, TEST_ACTOR_ID)
        with pytest.raises(RateLimitExceededError):
            coordinator.bulk_update_listings(ops, TEST_ACTOR_ID)


class TestBulkBills:

    @pytest.fixture
    def bills(self, bill_service, make_property, financials):
        prop = make_property(unit_count=2)
        ids = []
        for provider in ("Nairobi Water", "Kenya Power", "City Gas"):
            result = bill_service.create_bill(
                BillInput(prop.id, provider, Decimal("200.00"), date(2024, 1, 1), date(2024, 1, 31))
            )
            ids.append(result.bill_id)
        for bill_id in ids[:2]:
            bill_service.allocate_bill(bill_id)
            bill_service.approve_bill(bill_id)
        return ids

    @pytest.mark.parametrize("reverse", [False, True])
    def test_posts_approved_bills_only(self, bulk_coordinator, bill_service, bills, reverse):
        batch = bills[::-1] if reverse else bills
        result = bulk_coordinator.bulk_transition_bills(batch, UtilityBillStatus.POSTED, TEST_ACTOR_ID)

        assert _outcome(result) == ({bills[0], bills[1]}, {bills[2]})
        assert result.failed[0].error.startswith("NOT_APPROVED")
        assert bill_service.is_bill_posted(bills[0]) and bill_service.is_bill_posted(bills[1])
        assert bill_service.get_bill(bills[2]).status == UtilityBillStatus.DRAFT

    def test_posted_bill_reports_already_posted(self, bulk_coordinator, bill_service, bills):
        bill_service.post_utility_bill(bills[0])
        result = bulk_coordinator.bulk_transition_bills([bills[0]], UtilityBillStatus.REJECTED, TEST_ACTOR_ID)
        assert result.failed[0].error.startswith("ALREADY_POSTED")

    def test_unknown_bill(self, bulk_coordinator, bills):
        missing = uuid4()
        result = bulk_coordinator.bulk_transition_bills([bills[2], missing], UtilityBillStatus.REJECTED)
        assert _outcome(result) == ({bills[2]}, {missing})

    def test_bill_id_dict_key(self, bulk_coordinator, bills):
        result = bulk_coordinator.bulk_transition_bills([bills[2]], UtilityBillStatus.REJECTED, reason="Duplicate")
        assert result.to_dict(id_key="bill_id")["successful"] == [str(bills[2])]
