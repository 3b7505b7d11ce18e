"""
Time-based listing sweep.

Validates:
- COMING_SOON listings activate once available, unless the unit is leased
- advertised listings past expiration move to EXPIRED and notify the manager
- expiry wins when both apply
- a second run against the same clock does nothing
"""

from datetime import timedelta

import pytest

from rental_kernel.models.listing import ListingAction, ListingStatus
from rental_services.notifications import NotificationKind
from tests.conftest import TEST_MANAGER_ID


@pytest.fixture
def units(make_property):
    return make_property(unit_count=3).units


class TestSweep:

    def test_activates_available_listing(self, listing_service, units, make_listing):
        listing = make_listing(units[0], status=ListingStatus.COMING_SOON, availability_offset=timedelta(hours=-1))

        result = listing_service.process_time_based_transitions()

        assert (result.processed, result.activated, result.expired) == (1, 1, 0)
        assert listing_service.get_listing(listing.id).status == ListingStatus.ACTIVE
        entry = listing_service.get_listing_history(units[0].id)[0]
        assert entry.action == ListingAction.AUTO_ACTIVATE
        assert entry.user_id == "system"

    def test_future_listing_untouched(self, listing_service, units, make_listing):
        listing = make_listing(units[0], status=ListingStatus.COMING_SOON, availability_offset=timedelta(days=2))
        assert listing_service.process_time_based_transitions().processed == 0
        assert listing_service.get_listing(listing.id).status == ListingStatus.COMING_SOON

    @pytest.mark.parametrize(
        "status",
        [ListingStatus.ACTIVE, ListingStatus.PENDING, ListingStatus.SUSPENDED, ListingStatus.MAINTENANCE],
    )
    def test_expires_past_listing(self, listing_service, units, make_listing, notifier, status):
        listing = make_listing(units[0], status=status, expiration_offset=timedelta(minutes=-5))

        result = listing_service.process_time_based_transitions()

        assert result.expired == 1
        assert listing_service.get_listing(listing.id).status == ListingStatus.EXPIRED
        sent = notifier.of_kind(NotificationKind.LISTING_EXPIRED)
        assert [n.recipient_id for n in sent] == [TEST_MANAGER_ID]
        assert sent[0].unit_id == units[0].id

    def test_private_listing_never_expires(self, listing_service, units, make_listing):
        make_listing(units[0], status=ListingStatus.PRIVATE, expiration_offset=timedelta(days=-1))
        assert listing_service.process_time_based_transitions().processed == 0

    def test_expiry_wins_over_activation(self, listing_service, units, make_listing):
        listing = make_listing(
            units[0],
            status=ListingStatus.COMING_SOON,
            availability_offset=timedelta(days=-3),
            expiration_offset=timedelta(days=-1),
        )
        result = listing_service.process_time_based_transitions()

        assert (result.activated, result.expired) == (0, 1)
        actions = [e.action for e in listing_service.get_listing_history(units[0].id)]
        assert actions == [ListingAction.AUTO_EXPIRE]
        assert listing_service.get_listing(listing.id).status == ListingStatus.EXPIRED

    def test_leased_unit_not_activated(self, listing_service, units, make_listing, make_lease):
        listing = make_listing(units[0], status=ListingStatus.COMING_SOON)
        make_lease(units[0])

        result = listing_service.process_time_based_transitions()

        assert result.activated == 0
        assert len(result.errors) == 1
        assert listing_service.get_listing(listing.id).status == ListingStatus.COMING_SOON

    def test_mixed_batch(self, listing_service, units, make_listing):
        make_listing(units[0], status=ListingStatus.COMING_SOON)
        make_listing(units[1], status=ListingStatus.ACTIVE, expiration_offset=timedelta(days=-1))
        make_listing(units[2], status=ListingStatus.ACTIVE)

        result = listing_service.process_time_based_transitions()
        assert (result.processed, result.activated, result.expired) == (2, 1, 1)

    def test_second_run_is_a_no_op(self, listing_service, units, make_listing, notifier):
        make_listing(units[0], status=ListingStatus.COMING_SOON)
        make_listing(units[1], status=ListingStatus.ACTIVE, expiration_offset=timedelta(days=-1))

        listing_service.process_time_based_transitions()
        history_before = len(listing_service.get_listing_history(units[0].id))
        second = listing_service.process_time_based_transitions()

        assert (second.processed, second.activated, second.expired) == (0, 0, 0)
        assert len(listing_service.get_listing_history(units[0].id)) == history_before
        assert len(notifier.sent) == 1

    def test_clock_advance_expires_later(self, listing_service, units, make_listing, deterministic_clock):
        listing = make_listing(units[0], status=ListingStatus.ACTIVE, expiration_offset=timedelta(days=2))
        assert listing_service.process_time_based_transitions().expired == 0

        deterministic_clock.advance(days=3)
        assert listing_service.process_time_based_transitions().expired == 1
        assert listing_service.get_listing(listing.id).status == ListingStatus.EXPIRED

    def test_sweep_logged(self, listing_service, units, make_listing, captured_logs):
        make_listing(units[0], status=ListingStatus.COMING_SOON)
        listing_service.process_time_based_transitions()
        record = next(r for r in captured_logs() if r["message"] == "sweep_completed")
        assert record["activated"] == 1
