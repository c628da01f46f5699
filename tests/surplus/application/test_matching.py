from datetime import timedelta

import pytest

from surplus.errors import ObjectNotFoundError
from surplus.matching.finder import MatchFinder, haversine_km
from surplus.shared.food import Location


@pytest.fixture()
def finder(store):
    return MatchFinder(store)


def test_haversine_distance():
    bangalore = Location(address="MG Road", latitude=12.9716, longitude=77.5946)
    mysore = Location(address="Palace Road", latitude=12.2958, longitude=76.6394)

    assert haversine_km(bangalore, mysore) == pytest.approx(128.3, abs=1.0)


def test_haversine_without_coordinates():
    located = Location(address="MG Road", latitude=12.9716, longitude=77.5946)
    unknown = Location(address="Somewhere")

    assert haversine_km(located, unknown) is None


class TestDonationsForRequest:
    def test_orders_nearest_first(self, finder, list_donation, open_request, now):
        far = list_donation(latitude=13.1016, longitude=77.5946)
        near = list_donation(latitude=12.9826, longitude=77.6046)
        request_id = open_request()

        matches = finder.donations_for_request(request_id, now)

        assert [match.donation_id for match in matches] == [near, far]
        assert matches[0].distance_km < matches[1].distance_km

    def test_filters_category_and_quantity(self, finder, list_donation, open_request, now):
        list_donation(category="Pulses")
        list_donation(quantity=2)
        list_donation(unit="kg")
        suitable = list_donation()
        request_id = open_request()

        assert [match.donation_id for match in finder.donations_for_request(request_id, now)] == [suitable]

    def test_filters_by_category_distance(self, finder, list_donation, open_request, now):
        # About 14 km away: beyond cooked food's reach
        list_donation(category="CookedFood", latitude=13.1016, longitude=77.6046)
        request_id = open_request(category="CookedFood")

        assert finder.donations_for_request(request_id, now) == []

    def test_unlocated_donations_sort_last(self, finder, list_donation, open_request, now):
        unlocated = list_donation(latitude=None, longitude=None)
        located = list_donation(latitude=13.1016, longitude=77.5946)
        request_id = open_request()

        matches = finder.donations_for_request(request_id, now)

        assert [match.donation_id for match in matches] == [located, unlocated]
        assert matches[1].distance_km is None

    def test_earlier_deadline_breaks_distance_ties(self, finder, list_donation, open_request, now):
        later = list_donation(spoil_deadline=now + timedelta(hours=48))
        sooner = list_donation(spoil_deadline=now + timedelta(hours=12))
        request_id = open_request()

        matches = finder.donations_for_request(request_id, now)

        assert [match.donation_id for match in matches] == [sooner, later]

    def test_skips_claimed_and_expired(self, finder, orchestrator, list_donation, open_request, now):
        claimed = list_donation()
        list_donation(spoil_deadline=now + timedelta(hours=1))
        other_request = open_request(requester_id="requester-002")
        orchestrator.claim_donation(other_request, claimed, now)
        request_id = open_request()

        assert finder.donations_for_request(request_id, now + timedelta(hours=2)) == []

    def test_includes_current_price(self, finder, list_donation, open_request, now):
        list_donation()
        request_id = open_request()

        match = finder.donations_for_request(request_id, now)[0]

        assert match.final_price == 850
        assert match.discount_percent == 15

    def test_claimed_request_gets_no_matches(self, finder, orchestrator, list_donation, open_request, now):
        donation_id = list_donation()
        request_id = open_request()
        orchestrator.claim_donation(request_id, donation_id, now)
        list_donation()

        assert finder.donations_for_request(request_id, now) == []

    def test_unknown_request(self, finder, now):
        with pytest.raises(ObjectNotFoundError):
            finder.donations_for_request("missing", now)


class TestRequestsForDonation:
    def test_urgent_requests_first_at_equal_distance(self, finder, list_donation, open_request, now):
        donation_id = list_donation()
        low = open_request(urgency="Low")
        high = open_request(urgency="High")

        matches = finder.requests_for_donation(donation_id, now)

        assert [match.request_id for match in matches] == [high, low]
