"""DeliveryAssignment aggregate — an offer that binds a partner to a paid donation.

State Machine:
    OFFERED → ACCEPTED → COMPLETED
    OFFERED → DECLINED           (turned down, or withdrawn on cancellation)
    ACCEPTED → DECLINED          (the accepting partner backs out before pickup)

Declined assignments are terminal and stay in the store as an audit trail.
At most one assignment per donation is ACCEPTED at a time; the claim
coordinator guarantees it by guarding the donation's partner reference in
the same commit.
"""

from datetime import datetime
from enum import Enum

from protean import atomic_change
from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, Integer, String

from surplus.delivery.events import DeliveryAccepted, DeliveryDeclined, DeliveryOffered
from surplus.domain import surplus


class AssignmentStatus(Enum):
    OFFERED = "Offered"
    ACCEPTED = "Accepted"
    DECLINED = "Declined"
    COMPLETED = "Completed"


_VALID_TRANSITIONS = {
    AssignmentStatus.OFFERED: {AssignmentStatus.ACCEPTED, AssignmentStatus.DECLINED},
    AssignmentStatus.ACCEPTED: {AssignmentStatus.COMPLETED, AssignmentStatus.DECLINED},
    AssignmentStatus.DECLINED: set(),  # terminal
    AssignmentStatus.COMPLETED: set(),  # terminal
}


@surplus.aggregate
class DeliveryAssignment:
    donation_id = Identifier(required=True)
    partner_id = Identifier()
    offer_round = Integer(default=1, min_value=1)
    status = String(choices=AssignmentStatus, default=AssignmentStatus.OFFERED.value)
    decline_reason = String(max_length=500)
    offered_at = DateTime(required=True)
    responded_at = DateTime()
    completed_at = DateTime()
    version = Integer(default=0)

    @classmethod
    def offer(cls, donation, now: datetime, offer_round: int = 1):
        """Open an offer for ``donation`` and broadcast it to partners."""
        assignment = cls(
            donation_id=str(donation.id),
            offer_round=offer_round,
            status=AssignmentStatus.OFFERED.value,
            offered_at=now,
        )
        location = donation.location
        assignment.raise_(
            DeliveryOffered(
                assignment_id=str(assignment.id),
                donation_id=str(donation.id),
                offer_round=offer_round,
                category=donation.category,
                quantity=donation.quantity.amount,
                unit=donation.quantity.unit,
                pickup_address=location.address,
                pickup_latitude=location.latitude,
                pickup_longitude=location.longitude,
                offered_at=now,
            )
        )
        return assignment

    def _assert_can_transition(self, target_status: AssignmentStatus) -> None:
        current = AssignmentStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})

    @property
    def is_open(self) -> bool:
        return AssignmentStatus(self.status) == AssignmentStatus.OFFERED

    def accept(self, partner_id: str, now: datetime) -> None:
        self._assert_can_transition(AssignmentStatus.ACCEPTED)
        if self.partner_id:
            raise ValidationError({"partner_id": ["Assignment already has a partner"]})
        with atomic_change(self):
            self.status = AssignmentStatus.ACCEPTED.value
            self.partner_id = partner_id
            self.responded_at = now
        self.raise_(
            DeliveryAccepted(
                assignment_id=str(self.id),
                donation_id=str(self.donation_id),
                partner_id=partner_id,
                accepted_at=now,
            )
        )

    def decline(self, partner_id: str | None, now: datetime, reason: str | None = None) -> None:
        """Turn the assignment down.

        An open offer can be declined by any partner (``None`` when the
        platform withdraws it). An accepted one only by its own partner.
        """
        current = AssignmentStatus(self.status)
        self._assert_can_transition(AssignmentStatus.DECLINED)
        if current == AssignmentStatus.ACCEPTED and str(self.partner_id) != str(partner_id):
            raise ValidationError({"partner_id": ["Only the accepting partner can decline this assignment"]})

        with atomic_change(self):
            self.status = AssignmentStatus.DECLINED.value
            self.partner_id = partner_id
            self.decline_reason = reason
            self.responded_at = now
        self.raise_(
            DeliveryDeclined(
                assignment_id=str(self.id),
                donation_id=str(self.donation_id),
                partner_id=partner_id,
                was_accepted=current == AssignmentStatus.ACCEPTED,
                reason=reason,
                declined_at=now,
            )
        )

    def complete(self, now: datetime) -> None:
        self._assert_can_transition(AssignmentStatus.COMPLETED)
        self.status = AssignmentStatus.COMPLETED.value
        self.completed_at = now

    def withdraw(self, now: datetime, reason: str) -> None:
        """Close an open or accepted assignment because fulfillment was cancelled."""
        current = AssignmentStatus(self.status)
        self._assert_can_transition(AssignmentStatus.DECLINED)
        with atomic_change(self):
            self.status = AssignmentStatus.DECLINED.value
            self.decline_reason = reason
            self.responded_at = now
        self.raise_(
            DeliveryDeclined(
                assignment_id=str(self.id),
                donation_id=str(self.donation_id),
                partner_id=str(self.partner_id) if self.partner_id else None,
                was_accepted=current == AssignmentStatus.ACCEPTED,
                reason=reason,
                declined_at=now,
            )
        )
