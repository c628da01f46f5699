"""FoodRequest aggregate — a recipient's ask for food.

State Machine:
    PENDING → CLAIMED → IN_PROGRESS → COMPLETED
    CLAIMED → PENDING        (payment failed, donation expired)
    IN_PROGRESS → PENDING    (fulfillment cancelled before pickup)
"""

from datetime import datetime
from enum import Enum

from protean import atomic_change
from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, Integer, String, ValueObject

from surplus.domain import surplus
from surplus.request.events import FoodRequested
from surplus.shared.food import FoodCategory, Location, Quantity, Urgency


class RequestStatus(Enum):
    PENDING = "Pending"
    CLAIMED = "Claimed"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"


_VALID_TRANSITIONS = {
    RequestStatus.PENDING: {RequestStatus.CLAIMED},
    RequestStatus.CLAIMED: {RequestStatus.IN_PROGRESS, RequestStatus.PENDING},
    RequestStatus.IN_PROGRESS: {RequestStatus.COMPLETED, RequestStatus.PENDING},
    RequestStatus.COMPLETED: set(),  # terminal
}


@surplus.aggregate
class FoodRequest:
    requester_id = Identifier(required=True)
    category = String(required=True, choices=FoodCategory)
    quantity = ValueObject(Quantity, required=True)
    urgency = String(choices=Urgency, default=Urgency.MEDIUM.value)
    location = ValueObject(Location, required=True)
    status = String(choices=RequestStatus, default=RequestStatus.PENDING.value)
    donation_id = Identifier()
    created_at = DateTime(required=True)
    updated_at = DateTime()
    version = Integer(default=0)

    @classmethod
    def create(
        cls,
        requester_id: str,
        category: str,
        quantity: Quantity,
        location: Location,
        now: datetime,
        urgency: str = Urgency.MEDIUM.value,
    ):
        """Open a new request. It enters the core as PENDING."""
        if quantity.amount <= 0:
            raise ValidationError({"quantity": ["Quantity must be greater than zero"]})

        request = cls(
            requester_id=requester_id,
            category=category,
            quantity=quantity,
            urgency=urgency,
            location=location,
            status=RequestStatus.PENDING.value,
            created_at=now,
            updated_at=now,
        )
        request.raise_(
            FoodRequested(
                request_id=str(request.id),
                requester_id=requester_id,
                category=category,
                quantity=quantity.amount,
                unit=quantity.unit,
                urgency=urgency,
                address=location.address,
                requested_at=now,
            )
        )
        return request

    def _assert_can_transition(self, target_status: RequestStatus) -> None:
        current = RequestStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})

    def link(self, donation_id: str, now: datetime) -> None:
        """Record the claim on ``donation_id``."""
        self._assert_can_transition(RequestStatus.CLAIMED)
        with atomic_change(self):
            self.status = RequestStatus.CLAIMED.value
            self.donation_id = donation_id
            self.updated_at = now

    def start(self, now: datetime) -> None:
        self._assert_can_transition(RequestStatus.IN_PROGRESS)
        self.status = RequestStatus.IN_PROGRESS.value
        self.updated_at = now

    def reopen(self, now: datetime) -> None:
        """Unlink the donation and go back to PENDING so the requester can search again."""
        self._assert_can_transition(RequestStatus.PENDING)
        with atomic_change(self):
            self.status = RequestStatus.PENDING.value
            self.donation_id = None
            self.updated_at = now

    def complete(self, now: datetime) -> None:
        self._assert_can_transition(RequestStatus.COMPLETED)
        self.status = RequestStatus.COMPLETED.value
        self.updated_at = now
