"""Donation aggregate — a perishable-food lot with a decaying value.

State Machine:
    AVAILABLE → CLAIMED → AWAITING_PICKUP → IN_TRANSIT → DELIVERED → BILLED
    {AVAILABLE, CLAIMED} → EXPIRED             (spoil deadline passed)
    {CLAIMED, AWAITING_PICKUP} → AVAILABLE     (released: payment failed, fulfillment cancelled)

Transitions are looked up in ``_TRANSITIONS`` keyed by (status, trigger);
anything missing from the table is rejected. The aggregate only validates
and records a transition in memory. Persisting it is the claim
coordinator's job, through the store's conditional update.

Expiry is lazy: once ``now`` is past the spoil deadline, the donation reads
as EXPIRED for every operation unless it was already delivered, billed or
expired, whatever status is stored.
"""

from datetime import datetime
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, Identifier, Integer, String, ValueObject

from surplus.domain import surplus
from surplus.donation.events import (
    DeliveryCompleted,
    DonationClaimed,
    DonationExpired,
    DonationListed,
    DonationReleased,
    PickupStarted,
)
from surplus.errors import ExpiredError
from surplus.shared.food import FoodCategory, Location, Quantity


class DonationStatus(Enum):
    AVAILABLE = "Available"
    CLAIMED = "Claimed"
    AWAITING_PICKUP = "AwaitingPickup"
    IN_TRANSIT = "InTransit"
    DELIVERED = "Delivered"
    BILLED = "Billed"
    EXPIRED = "Expired"


class DonationTrigger(Enum):
    CLAIM = "claim"
    PAY = "pay"
    RELEASE = "release"
    START_PICKUP = "start_pickup"
    DELIVER = "deliver"
    BILL = "bill"
    EXPIRE = "expire"


_TRANSITIONS = {
    (DonationStatus.AVAILABLE, DonationTrigger.CLAIM): DonationStatus.CLAIMED,
    (DonationStatus.AVAILABLE, DonationTrigger.EXPIRE): DonationStatus.EXPIRED,
    (DonationStatus.CLAIMED, DonationTrigger.PAY): DonationStatus.AWAITING_PICKUP,
    (DonationStatus.CLAIMED, DonationTrigger.RELEASE): DonationStatus.AVAILABLE,
    (DonationStatus.CLAIMED, DonationTrigger.EXPIRE): DonationStatus.EXPIRED,
    (DonationStatus.AWAITING_PICKUP, DonationTrigger.START_PICKUP): DonationStatus.IN_TRANSIT,
    (DonationStatus.AWAITING_PICKUP, DonationTrigger.RELEASE): DonationStatus.AVAILABLE,
    (DonationStatus.IN_TRANSIT, DonationTrigger.DELIVER): DonationStatus.DELIVERED,
    (DonationStatus.DELIVERED, DonationTrigger.BILL): DonationStatus.BILLED,
}

CLAIMED_STATUSES = frozenset(
    {
        DonationStatus.CLAIMED,
        DonationStatus.AWAITING_PICKUP,
        DonationStatus.IN_TRANSIT,
        DonationStatus.DELIVERED,
        DonationStatus.BILLED,
    }
)

# Statuses immune to lazy expiry
SETTLED_STATUSES = frozenset({DonationStatus.DELIVERED, DonationStatus.BILLED, DonationStatus.EXPIRED})


def next_status(current: DonationStatus, trigger: DonationTrigger) -> DonationStatus:
    try:
        return _TRANSITIONS[(current, trigger)]
    except KeyError:
        raise ValidationError(
            {"status": [f"Cannot {trigger.value.replace('_', ' ')} a donation in {current.value} state"]}
        ) from None


@surplus.aggregate
class Donation:
    donor_id = Identifier(required=True)
    category = String(required=True, choices=FoodCategory)
    quantity = ValueObject(Quantity, required=True)
    listed_value = Float(required=True, min_value=0.0)
    location = ValueObject(Location, required=True)
    status = String(choices=DonationStatus, default=DonationStatus.AVAILABLE.value)
    claimant_request_id = Identifier()
    assigned_partner_id = Identifier()
    spoil_deadline = DateTime(required=True)
    created_at = DateTime(required=True)
    updated_at = DateTime()
    version = Integer(default=0)

    @invariant.post
    def spoil_deadline_follows_creation(self):
        if self.spoil_deadline and self.created_at and self.spoil_deadline <= self.created_at:
            raise ValidationError({"spoil_deadline": ["Spoil deadline must be after the listing time"]})

    @invariant.post
    def claimant_set_only_while_claimed(self):
        claimed = DonationStatus(self.status) in CLAIMED_STATUSES
        if claimed and not self.claimant_request_id:
            raise ValidationError({"claimant_request_id": [f"A {self.status} donation needs a claimant"]})
        if not claimed and self.claimant_request_id:
            raise ValidationError({"claimant_request_id": [f"A {self.status} donation cannot have a claimant"]})

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        donor_id: str,
        category: str,
        quantity: Quantity,
        listed_value: float,
        spoil_deadline: datetime,
        location: Location,
        now: datetime,
    ):
        """List a new donation. It enters the core as AVAILABLE."""
        if listed_value is None or listed_value <= 0:
            raise ValidationError({"listed_value": ["Listed value must be greater than zero"]})
        if quantity.amount <= 0:
            raise ValidationError({"quantity": ["Quantity must be greater than zero"]})

        donation = cls(
            donor_id=donor_id,
            category=category,
            quantity=quantity,
            listed_value=listed_value,
            location=location,
            spoil_deadline=spoil_deadline,
            status=DonationStatus.AVAILABLE.value,
            created_at=now,
            updated_at=now,
        )
        donation.raise_(
            DonationListed(
                donation_id=str(donation.id),
                donor_id=donor_id,
                category=category,
                quantity=quantity.amount,
                unit=quantity.unit,
                listed_value=listed_value,
                spoil_deadline=spoil_deadline,
                address=location.address,
                listed_at=now,
            )
        )
        return donation

    # -------------------------------------------------------------------
    # Expiry
    # -------------------------------------------------------------------
    def is_past_deadline(self, now: datetime) -> bool:
        return now > self.spoil_deadline

    def effective_status(self, now: datetime) -> DonationStatus:
        """The status every operation must act on, with lazy expiry applied."""
        stored = DonationStatus(self.status)
        if stored not in SETTLED_STATUSES and self.is_past_deadline(now):
            return DonationStatus.EXPIRED
        return stored

    def ensure_fresh(self, now: datetime) -> None:
        if self.effective_status(now) == DonationStatus.EXPIRED:
            raise ExpiredError(str(self.id))

    def _advance(self, trigger: DonationTrigger, now: datetime) -> DonationStatus:
        previous = DonationStatus(self.status)
        self.status = next_status(previous, trigger).value
        self.updated_at = now
        return previous

    # -------------------------------------------------------------------
    # Claiming
    # -------------------------------------------------------------------
    def claim(self, request_id: str, now: datetime) -> None:
        self.ensure_fresh(now)
        with atomic_change(self):
            self._advance(DonationTrigger.CLAIM, now)
            self.claimant_request_id = request_id
        self.raise_(
            DonationClaimed(
                donation_id=str(self.id),
                request_id=request_id,
                donor_id=str(self.donor_id),
                claimed_at=now,
            )
        )

    def release(self, reason: str, now: datetime) -> None:
        """Send a claimed or paid donation back to AVAILABLE."""
        request_id = self.claimant_request_id
        with atomic_change(self):
            previous = self._advance(DonationTrigger.RELEASE, now)
            self.claimant_request_id = None
            self.assigned_partner_id = None
        self.raise_(
            DonationReleased(
                donation_id=str(self.id),
                request_id=request_id,
                previous_status=previous.value,
                reason=reason,
                released_at=now,
            )
        )

    def mark_paid(self, now: datetime) -> None:
        self.ensure_fresh(now)
        self._advance(DonationTrigger.PAY, now)

    # -------------------------------------------------------------------
    # Delivery partner
    # -------------------------------------------------------------------
    def assign_partner(self, partner_id: str, now: datetime) -> None:
        self.ensure_fresh(now)
        if DonationStatus(self.status) != DonationStatus.AWAITING_PICKUP:
            raise ValidationError({"status": [f"Cannot assign a partner to a donation in {self.status} state"]})
        if self.assigned_partner_id:
            raise ValidationError({"assigned_partner_id": ["Donation already has a delivery partner"]})
        self.assigned_partner_id = partner_id
        self.updated_at = now

    def unassign_partner(self, partner_id: str, now: datetime) -> None:
        if str(self.assigned_partner_id or "") != partner_id:
            raise ValidationError({"assigned_partner_id": ["Partner is not assigned to this donation"]})
        if DonationStatus(self.status) != DonationStatus.AWAITING_PICKUP:
            raise ValidationError({"status": ["A partner can only step back before pickup"]})
        self.assigned_partner_id = None
        self.updated_at = now

    def start_pickup(self, partner_id: str, now: datetime) -> None:
        self.ensure_fresh(now)
        if str(self.assigned_partner_id or "") != partner_id:
            raise ValidationError({"assigned_partner_id": ["Only the assigned partner can start the pickup"]})
        self._advance(DonationTrigger.START_PICKUP, now)
        self.raise_(
            PickupStarted(
                donation_id=str(self.id),
                partner_id=partner_id,
                started_at=now,
            )
        )

    def mark_delivered(self, now: datetime) -> None:
        self.ensure_fresh(now)
        self._advance(DonationTrigger.DELIVER, now)
        self.raise_(
            DeliveryCompleted(
                donation_id=str(self.id),
                request_id=str(self.claimant_request_id),
                partner_id=str(self.assigned_partner_id),
                delivered_at=now,
            )
        )

    def mark_billed(self, now: datetime) -> None:
        self._advance(DonationTrigger.BILL, now)

    # -------------------------------------------------------------------
    # Expiry persistence
    # -------------------------------------------------------------------
    def expire(self, now: datetime) -> None:
        """Persist lazy expiry. Only valid once the deadline has passed."""
        if not self.is_past_deadline(now):
            raise ValidationError({"spoil_deadline": ["Donation has not reached its spoil deadline"]})
        request_id = self.claimant_request_id
        with atomic_change(self):
            previous = self._advance(DonationTrigger.EXPIRE, now)
            self.claimant_request_id = None
        self.raise_(
            DonationExpired(
                donation_id=str(self.id),
                request_id=request_id,
                previous_status=previous.value,
                spoil_deadline=self.spoil_deadline,
                expired_at=now,
            )
        )
