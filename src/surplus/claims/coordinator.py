"""ClaimCoordinator — drives every state transition through the store.

The coordinator holds no state of its own. Each transition loads the
records involved, lets the aggregates validate and apply the change in
memory, then persists all of them in one conditional commit guarded on the
status and reference fields that were read. A concurrent writer that got
there first makes the commit fail with ``ConflictError`` and nothing is
written, so operations on one donation are linearized by the store alone.
"""

import time
from collections.abc import Callable
from datetime import datetime
from typing import TypeVar

import structlog

from surplus.billing.bill import Bill, BillStatus
from surplus.claims.changeset import Changeset
from surplus.delivery.assignment import AssignmentStatus, DeliveryAssignment
from surplus.donation.donation import Donation, DonationStatus
from surplus.errors import ConflictError, ObjectNotFoundError
from surplus.request.food_request import FoodRequest, RequestStatus
from surplus.store.mapping import from_row
from surplus.store.port import EntityStore, RecordKind

logger = structlog.get_logger(__name__)

T = TypeVar("T")

_DONATION_GUARD = ("status", "claimant_request_id", "assigned_partner_id")
_REQUEST_GUARD = ("status", "donation_id")
_ASSIGNMENT_GUARD = ("status", "partner_id")
_BILL_GUARD = ("status",)


def with_retry(operation: Callable[[], T], attempts: int = 3, backoff_seconds: float = 0.05) -> T:
    """Run ``operation`` again after a ``ConflictError``, re-raising the last one.

    Only for benign races where re-reading and re-applying is correct
    (expiry sweep re-reads). Claims are never retried.
    """
    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except ConflictError as exc:
            if attempt == attempts:
                raise
            logger.info(
                "Retrying after conflict",
                kind=exc.kind,
                record_id=exc.record_id,
                attempt=attempt,
            )
            time.sleep(backoff_seconds * 2 ** (attempt - 1))
    raise AssertionError("unreachable")


class ClaimCoordinator:
    def __init__(self, store: EntityStore) -> None:
        self.store = store

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    def _load(self, kind: RecordKind, record_id: str | None, label: str):
        row = self.store.get(kind, record_id) if record_id else None
        if row is None:
            raise ObjectNotFoundError(f"{label} {record_id} does not exist")
        return from_row(kind, row)

    def donation(self, donation_id: str) -> Donation:
        return self._load(RecordKind.DONATION, donation_id, "Donation")

    def request(self, request_id: str) -> FoodRequest:
        return self._load(RecordKind.REQUEST, request_id, "Request")

    def assignment(self, assignment_id: str) -> DeliveryAssignment:
        return self._load(RecordKind.ASSIGNMENT, assignment_id, "Assignment")

    def assignments_for(self, donation_id: str) -> list[DeliveryAssignment]:
        rows = self.store.find(RecordKind.ASSIGNMENT, order_by="offer_round", donation_id=str(donation_id))
        return [from_row(RecordKind.ASSIGNMENT, row) for row in rows]

    def open_assignment(self, donation_id: str) -> DeliveryAssignment | None:
        rows = self.store.find(RecordKind.ASSIGNMENT, donation_id=str(donation_id), status=AssignmentStatus.OFFERED.value)
        return from_row(RecordKind.ASSIGNMENT, rows[0]) if rows else None

    def accepted_assignment(self, donation_id: str) -> DeliveryAssignment | None:
        rows = self.store.find(RecordKind.ASSIGNMENT, donation_id=str(donation_id), status=AssignmentStatus.ACCEPTED.value)
        return from_row(RecordKind.ASSIGNMENT, rows[0]) if rows else None

    def bill_for(self, donation_id: str) -> Bill | None:
        """The live (Pending or Completed) bill of the donation's current claim."""
        rows = self.store.find(
            RecordKind.BILL,
            order_by="created_at",
            donation_id=str(donation_id),
            status=(BillStatus.PENDING.value, BillStatus.COMPLETED.value),
        )
        return from_row(RecordKind.BILL, rows[-1]) if rows else None

    # -------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------
    def register(self, *aggregates, now: datetime) -> None:
        """Persist newly listed donations or opened requests."""
        changes = Changeset()
        for aggregate in aggregates:
            changes.add(aggregate)
        changes.commit(self.store, now)

    def claim(self, donation: Donation, request: FoodRequest, now: datetime) -> None:
        """Available -> Claimed for ``request``, and the request Pending -> Claimed."""
        changes = Changeset()
        changes.track(donation, *_DONATION_GUARD)
        changes.track(request, *_REQUEST_GUARD)

        donation.claim(str(request.id), now)
        request.link(str(donation.id), now)

        changes.commit(self.store, now)
        logger.info("Donation claimed", donation_id=str(donation.id), request_id=str(request.id))

    def release(self, donation: Donation, request: FoodRequest, reason: str, now: datetime) -> None:
        """Claimed -> Available, the request back to Pending."""
        changes = Changeset()
        changes.track(donation, *_DONATION_GUARD)
        changes.track(request, *_REQUEST_GUARD)

        donation.release(reason, now)
        request.reopen(now)

        changes.commit(self.store, now)
        logger.info("Donation released", donation_id=str(donation.id), request_id=str(request.id), reason=reason)

    def confirm(
        self,
        donation: Donation,
        request: FoodRequest,
        bill: Bill,
        assignment: DeliveryAssignment,
        now: datetime,
    ) -> None:
        """Claimed -> AwaitingPickup with the bill and the first delivery offer."""
        changes = Changeset()
        changes.track(donation, *_DONATION_GUARD)
        changes.track(request, *_REQUEST_GUARD)

        donation.mark_paid(now)
        request.start(now)
        changes.add(bill)
        changes.add(assignment)

        changes.commit(self.store, now)
        logger.info(
            "Payment confirmed",
            donation_id=str(donation.id),
            bill_id=str(bill.id),
            assignment_id=str(assignment.id),
        )

    def accept(self, assignment: DeliveryAssignment, donation: Donation, partner_id: str, now: datetime) -> None:
        """Offered -> Accepted, binding the partner to the donation."""
        changes = Changeset()
        changes.track(assignment, *_ASSIGNMENT_GUARD)
        changes.track(donation, *_DONATION_GUARD)

        assignment.accept(partner_id, now)
        donation.assign_partner(partner_id, now)

        changes.commit(self.store, now)
        logger.info("Delivery accepted", assignment_id=str(assignment.id), partner_id=partner_id)

    def decline(
        self,
        assignment: DeliveryAssignment,
        donation: Donation,
        partner_id: str,
        now: datetime,
        reason: str | None = None,
    ) -> DeliveryAssignment | None:
        """Decline the assignment and open the next offer round.

        Returns the new offer, or None when the donation is past its spoil
        deadline and no partner should be asked again.
        """
        changes = Changeset()
        changes.track(assignment, *_ASSIGNMENT_GUARD)
        # The donation guard holds even when only the assignment changes
        changes.track(donation, *_DONATION_GUARD)

        was_accepted = AssignmentStatus(assignment.status) == AssignmentStatus.ACCEPTED
        assignment.decline(partner_id, now, reason=reason)
        if was_accepted:
            donation.unassign_partner(partner_id, now)

        next_offer = None
        if donation.effective_status(now) == DonationStatus.AWAITING_PICKUP:
            next_offer = changes.add(DeliveryAssignment.offer(donation, now, offer_round=assignment.offer_round + 1))

        changes.commit(self.store, now)
        logger.info(
            "Delivery declined",
            assignment_id=str(assignment.id),
            partner_id=partner_id,
            reoffered=next_offer is not None,
        )
        return next_offer

    def begin_pickup(self, donation: Donation, partner_id: str, now: datetime) -> None:
        """AwaitingPickup -> InTransit for the assigned partner."""
        changes = Changeset()
        changes.track(donation, *_DONATION_GUARD)
        donation.start_pickup(partner_id, now)
        changes.commit(self.store, now)
        logger.info("Pickup started", donation_id=str(donation.id), partner_id=partner_id)

    def deliver(
        self,
        donation: Donation,
        request: FoodRequest,
        assignment: DeliveryAssignment,
        bill: Bill,
        now: datetime,
    ) -> None:
        """InTransit -> Delivered -> Billed in one commit.

        The request and the assignment are completed and the bill finalized
        alongside, so a delivered donation is never left with a pending bill.
        """
        changes = Changeset()
        changes.track(donation, *_DONATION_GUARD)
        changes.track(request, *_REQUEST_GUARD)
        changes.track(assignment, *_ASSIGNMENT_GUARD)
        changes.track(bill, *_BILL_GUARD)

        donation.mark_delivered(now)
        request.complete(now)
        assignment.complete(now)
        bill.finalize(now)
        donation.mark_billed(now)

        changes.commit(self.store, now)
        logger.info(
            "Delivery completed and billed",
            donation_id=str(donation.id),
            assignment_id=str(assignment.id),
            bill_id=str(bill.id),
            final_price=bill.final_price,
        )

    def cancel(
        self,
        donation: Donation,
        request: FoodRequest,
        bill: Bill,
        assignments: list[DeliveryAssignment],
        reason: str,
        now: datetime,
    ) -> None:
        """Undo a paid claim before pickup.

        The bill is refunded, the donation goes back to Available, the
        request to Pending, and every live assignment is withdrawn.
        """
        changes = Changeset()
        changes.track(donation, *_DONATION_GUARD)
        changes.track(request, *_REQUEST_GUARD)
        changes.track(bill, *_BILL_GUARD)

        bill.refund(reason, now)
        donation.release(reason, now)
        request.reopen(now)
        for assignment in assignments:
            changes.track(assignment, *_ASSIGNMENT_GUARD)
            assignment.withdraw(now, reason)

        changes.commit(self.store, now)
        logger.info("Fulfillment cancelled", donation_id=str(donation.id), bill_id=str(bill.id), reason=reason)

    def record_refund(self, bill: Bill, refund_id: str, now: datetime) -> None:
        changes = Changeset()
        changes.track(bill, "status", "refund_id")
        bill.record_refund(refund_id)
        changes.commit(self.store, now)

    def expire(self, donation: Donation, request: FoodRequest | None, now: datetime) -> None:
        """Persist lazy expiry; a request holding the claim goes back to Pending."""
        changes = Changeset()
        changes.track(donation, *_DONATION_GUARD)
        donation.expire(now)
        if request is not None and RequestStatus(request.status) == RequestStatus.CLAIMED:
            changes.track(request, *_REQUEST_GUARD)
            request.reopen(now)

        changes.commit(self.store, now)
        logger.info("Donation expired", donation_id=str(donation.id), request_id=str(request.id) if request else None)
