"""Find compatible Donation/Request pairs.

A donation suits a request when the categories match, the donation's
quantity covers the request's (same unit, at least as much), the donation
is still Available once lazy expiry is applied, and, when both sides carry
coordinates, the donor is within the category's maximum distance.

Candidates are ordered nearest first, then by earliest spoil deadline, then
by request urgency. Sides without coordinates are never filtered on
distance and sort after every located candidate.
"""

import math
from dataclasses import dataclass
from datetime import datetime

import structlog

from surplus.donation.donation import Donation, DonationStatus
from surplus.errors import ObjectNotFoundError
from surplus.pricing.engine import price_donation
from surplus.request.food_request import FoodRequest, RequestStatus
from surplus.shared.food import FoodCategory, Location, Urgency
from surplus.store.mapping import from_row
from surplus.store.port import EntityStore, RecordKind

logger = structlog.get_logger(__name__)

EARTH_RADIUS_KM = 6371.0

# Perishables travel shorter distances
MAX_DISTANCE_KM = {
    FoodCategory.COOKED_FOOD.value: 10.0,
    FoodCategory.PRODUCE_FRESH.value: 20.0,
    FoodCategory.PACKAGED_FOOD.value: 40.0,
    FoodCategory.PULSES.value: 40.0,
    FoodCategory.OTHER.value: 30.0,
}
DEFAULT_MAX_DISTANCE_KM = 30.0

_URGENCY_RANK = {Urgency.HIGH.value: 0, Urgency.MEDIUM.value: 1, Urgency.LOW.value: 2}


def haversine_km(origin: Location, destination: Location) -> float | None:
    """Great-circle distance in km, or None when either side has no coordinates."""
    if not (origin.has_coordinates and destination.has_coordinates):
        return None
    lat1, lat2 = math.radians(origin.latitude), math.radians(destination.latitude)
    d_lat = lat2 - lat1
    d_lon = math.radians(destination.longitude - origin.longitude)
    a = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lon / 2) ** 2
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def incompatibility(donation: Donation, request: FoodRequest) -> str | None:
    """Why ``donation`` cannot serve ``request`` on category and quantity, or None."""
    if donation.category != request.category:
        return f"Donation is {donation.category} but the request needs {request.category}"
    if donation.quantity.unit != request.quantity.unit:
        return f"Donation is measured in {donation.quantity.unit}, the request in {request.quantity.unit}"
    if not donation.quantity.covers(request.quantity):
        return f"Donation has {donation.quantity.amount} {donation.quantity.unit}, the request needs {request.quantity.amount}"
    return None


@dataclass(frozen=True)
class Match:
    donation_id: str
    request_id: str
    category: str
    distance_km: float | None
    spoil_deadline: datetime
    urgency: str
    final_price: int
    discount_percent: int

    def sort_key(self) -> tuple:
        return (
            self.distance_km is None,
            self.distance_km or 0.0,
            self.spoil_deadline,
            _URGENCY_RANK.get(self.urgency, len(_URGENCY_RANK)),
        )


class MatchFinder:
    def __init__(self, store: EntityStore) -> None:
        self.store = store

    def _match(self, donation: Donation, request: FoodRequest, now: datetime) -> Match | None:
        if donation.effective_status(now) != DonationStatus.AVAILABLE:
            return None
        if incompatibility(donation, request):
            return None

        distance = haversine_km(donation.location, request.location)
        limit = MAX_DISTANCE_KM.get(donation.category, DEFAULT_MAX_DISTANCE_KM)
        if distance is not None and distance > limit:
            return None

        breakdown = price_donation(donation, now)
        return Match(
            donation_id=str(donation.id),
            request_id=str(request.id),
            category=donation.category,
            distance_km=round(distance, 3) if distance is not None else None,
            spoil_deadline=donation.spoil_deadline,
            urgency=request.urgency,
            final_price=breakdown.final_price,
            discount_percent=breakdown.discount_percent,
        )

    def _load(self, kind: RecordKind, record_id: str):
        row = self.store.get(kind, record_id)
        if row is None:
            raise ObjectNotFoundError(f"{kind.value.capitalize()} {record_id} does not exist")
        return from_row(kind, row)

    def donations_for_request(self, request_id: str, now: datetime) -> list[Match]:
        """Available donations that could serve the request, best first."""
        request = self._load(RecordKind.REQUEST, request_id)
        if RequestStatus(request.status) != RequestStatus.PENDING:
            return []

        rows = self.store.find(RecordKind.DONATION, status=DonationStatus.AVAILABLE.value, category=request.category)
        matches = [
            match
            for match in (self._match(from_row(RecordKind.DONATION, row), request, now) for row in rows)
            if match is not None
        ]
        matches.sort(key=Match.sort_key)
        logger.debug("Matched donations", request_id=request_id, candidates=len(rows), matches=len(matches))
        return matches

    def requests_for_donation(self, donation_id: str, now: datetime) -> list[Match]:
        """Pending requests the donation could serve, best first."""
        donation = self._load(RecordKind.DONATION, donation_id)
        rows = self.store.find(RecordKind.REQUEST, status=RequestStatus.PENDING.value, category=donation.category)
        matches = [
            match
            for match in (self._match(donation, from_row(RecordKind.REQUEST, row), now) for row in rows)
            if match is not None
        ]
        matches.sort(key=Match.sort_key)
        logger.debug("Matched requests", donation_id=donation_id, candidates=len(rows), matches=len(matches))
        return matches
