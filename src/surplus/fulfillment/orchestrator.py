"""FulfillmentOrchestrator — sequences a donation from claim to bill.

    claim -> payment -> delivery offer -> acceptance -> pickup -> delivery -> bill

Every operation takes the evaluation time ``now`` explicitly and returns a
``FulfillmentResult``. State changes go through the ClaimCoordinator, one
atomic store commit per step, so a failure between steps never leaves half
a transition behind. Calls to the payment authority happen outside any
commit; when a commit loses a race after money was authorized, the
authorization is refunded.
"""

from collections.abc import Callable
from datetime import datetime

import structlog

from surplus.billing.bill import Bill, BillStatus
from surplus.claims.coordinator import ClaimCoordinator
from surplus.config import Settings, load_settings
from surplus.delivery.assignment import AssignmentStatus, DeliveryAssignment
from surplus.donation.donation import Donation, DonationStatus
from surplus.errors import (
    ConflictError,
    ExpiredError,
    IntegrityError,
    ObjectNotFoundError,
    PaymentFailure,
    ValidationError,
)
from surplus.fulfillment.results import (
    ALREADY_CLAIMED_MESSAGE,
    EXPIRED_MESSAGE,
    FulfillmentResult,
    Outcome,
)
from surplus.matching.finder import incompatibility
from surplus.payment.port import PaymentAuthority, PaymentResult
from surplus.pricing.engine import price_donation
from surplus.request.food_request import FoodRequest, RequestStatus
from surplus.shared.food import Location, Quantity, Urgency
from surplus.store.mapping import from_row
from surplus.store.port import EntityStore, RecordKind

logger = structlog.get_logger(__name__)

ANOTHER_PARTNER_MESSAGE = "Another partner already accepted this delivery"


def _describe(exc: Exception) -> str:
    messages = getattr(exc, "messages", None)
    if isinstance(messages, dict):
        parts = []
        for name, errors in messages.items():
            text = ", ".join(str(error) for error in errors) if isinstance(errors, (list, tuple)) else str(errors)
            parts.append(f"{name}: {text}")
        return "; ".join(parts)
    if messages:
        return str(messages)
    return str(exc)


class FulfillmentOrchestrator:
    def __init__(
        self,
        store: EntityStore,
        authority: PaymentAuthority,
        settings: Settings | None = None,
    ) -> None:
        self.store = store
        self.authority = authority
        self.settings = settings or load_settings()
        self.claims = ClaimCoordinator(store)

    # -------------------------------------------------------------------
    # Error translation
    # -------------------------------------------------------------------
    def _run(self, operation: str, action: Callable[[], FulfillmentResult], **context) -> FulfillmentResult:
        log = logger.bind(operation=operation, **context)
        ids = {key: value for key, value in context.items() if key in ("donation_id", "request_id", "assignment_id")}
        try:
            return action()
        except IntegrityError:
            log.error("Integrity violation", exc_info=True)
            raise
        except ObjectNotFoundError as exc:
            log.info("Record not found", error=_describe(exc))
            return FulfillmentResult(Outcome.NOT_FOUND, _describe(exc), **ids)
        except ExpiredError:
            log.info("Donation expired")
            return FulfillmentResult(Outcome.EXPIRED, EXPIRED_MESSAGE, status=DonationStatus.EXPIRED.value, **ids)
        except PaymentFailure as exc:
            log.info("Payment failed", reason=exc.reason)
            return FulfillmentResult(Outcome.PAYMENT_FAILED, exc.reason, transaction_id=exc.transaction_id, **ids)
        except ConflictError as exc:
            log.info("Conflicting update", kind=exc.kind, record_id=exc.record_id)
            current = exc.current or {}
            return FulfillmentResult(
                Outcome.CONFLICT,
                f"The {exc.kind} changed while this operation ran; reload and try again",
                status=current.get("status"),
                **ids,
            )
        except ValidationError as exc:
            log.info("Rejected", error=_describe(exc))
            return FulfillmentResult(Outcome.INVALID, _describe(exc), **ids)

    def _refund_authorization(self, payment: PaymentResult, reason: str) -> None:
        if not payment.success or not payment.transaction_id:
            return
        refund = self.authority.refund(payment.transaction_id, payment.amount or 0.0, reason)
        if refund.success:
            logger.info("Authorization refunded", transaction_id=payment.transaction_id, reason=reason)
        else:
            logger.error(
                "Refund of an unused authorization failed",
                transaction_id=payment.transaction_id,
                reason=reason,
                failure_reason=refund.failure_reason,
            )

    def _persist_expiry(self, donation: Donation, now: datetime) -> None:
        """Write lazy expiry through when the stored status allows it."""
        if DonationStatus(donation.status) not in (DonationStatus.AVAILABLE, DonationStatus.CLAIMED):
            return
        request = self.claims.request(donation.claimant_request_id) if donation.claimant_request_id else None
        try:
            self.claims.expire(donation, request, now)
        except ConflictError:
            logger.info("Expiry already recorded by another writer", donation_id=str(donation.id))

    # -------------------------------------------------------------------
    # Intake
    # -------------------------------------------------------------------
    def list_donation(
        self,
        donor_id: str,
        category: str,
        quantity: float,
        listed_value: float,
        spoil_deadline: datetime,
        address: str,
        now: datetime,
        unit: str = "units",
        latitude: float | None = None,
        longitude: float | None = None,
    ) -> FulfillmentResult:
        def action():
            donation = Donation.create(
                donor_id=donor_id,
                category=category,
                quantity=Quantity(amount=quantity, unit=unit),
                listed_value=listed_value,
                spoil_deadline=spoil_deadline,
                location=Location(address=address, latitude=latitude, longitude=longitude),
                now=now,
            )
            self.claims.register(donation, now=now)
            return FulfillmentResult(
                Outcome.OK,
                "Donation listed",
                donation_id=str(donation.id),
                status=donation.status,
                price=price_donation(donation, now),
            )

        return self._run("list_donation", action, donor_id=donor_id)

    def open_request(
        self,
        requester_id: str,
        category: str,
        quantity: float,
        address: str,
        now: datetime,
        unit: str = "units",
        urgency: str = Urgency.MEDIUM.value,
        latitude: float | None = None,
        longitude: float | None = None,
    ) -> FulfillmentResult:
        def action():
            request = FoodRequest.create(
                requester_id=requester_id,
                category=category,
                quantity=Quantity(amount=quantity, unit=unit),
                location=Location(address=address, latitude=latitude, longitude=longitude),
                now=now,
                urgency=urgency,
            )
            self.claims.register(request, now=now)
            return FulfillmentResult(Outcome.OK, "Request opened", request_id=str(request.id), status=request.status)

        return self._run("open_request", action, requester_id=requester_id)

    # -------------------------------------------------------------------
    # Claiming and payment
    # -------------------------------------------------------------------
    def claim_donation(self, request_id: str, donation_id: str, now: datetime) -> FulfillmentResult:
        """Claim the donation for the request. A lost race is final, never retried."""

        def action():
            donation = self.claims.donation(donation_id)
            request = self.claims.request(request_id)

            status = donation.effective_status(now)
            if status == DonationStatus.EXPIRED:
                raise ExpiredError(donation_id)
            if status != DonationStatus.AVAILABLE:
                if str(donation.claimant_request_id) == str(request.id):
                    return FulfillmentResult(
                        Outcome.OK,
                        "Donation already claimed by this request",
                        donation_id=donation_id,
                        request_id=request_id,
                        status=status.value,
                    )
                return FulfillmentResult(
                    Outcome.ALREADY_CLAIMED,
                    ALREADY_CLAIMED_MESSAGE,
                    donation_id=donation_id,
                    request_id=request_id,
                    status=status.value,
                )
            if RequestStatus(request.status) != RequestStatus.PENDING:
                raise ValidationError({"request": [f"Request is {request.status}; only Pending requests can claim"]})
            reason = incompatibility(donation, request)
            if reason:
                raise ValidationError({"donation": [reason]})

            try:
                self.claims.claim(donation, request, now)
            except ConflictError as exc:
                if exc.kind != RecordKind.DONATION.value:
                    raise
                current = exc.current or {}
                if current.get("status") == DonationStatus.EXPIRED.value:
                    raise ExpiredError(donation_id) from exc
                logger.info(
                    "Claim lost",
                    donation_id=donation_id,
                    request_id=request_id,
                    winner=current.get("claimant_request_id"),
                )
                return FulfillmentResult(
                    Outcome.ALREADY_CLAIMED,
                    ALREADY_CLAIMED_MESSAGE,
                    donation_id=donation_id,
                    request_id=request_id,
                    status=current.get("status"),
                )

            return FulfillmentResult(
                Outcome.OK,
                "Donation claimed",
                donation_id=donation_id,
                request_id=request_id,
                status=donation.status,
                price=price_donation(donation, now),
            )

        return self._run("claim_donation", action, donation_id=donation_id, request_id=request_id)

    def request_payment(self, donation_id: str, now: datetime) -> FulfillmentResult:
        """Quote the current price, authorize it and confirm the outcome."""

        def action():
            donation = self.claims.donation(donation_id)
            status = donation.effective_status(now)
            if status == DonationStatus.EXPIRED:
                self._persist_expiry(donation, now)
                raise ExpiredError(donation_id)
            if status != DonationStatus.CLAIMED:
                raise ValidationError({"status": [f"Cannot pay for a donation in {status.value} state"]})

            breakdown = price_donation(donation, now)
            # The version changes with every commit, so a re-claim gets a fresh key
            idempotency_key = f"{donation.id}:{donation.claimant_request_id}:{donation.version}"
            logger.info(
                "Requesting authorization",
                donation_id=donation_id,
                amount=breakdown.final_price,
                currency=self.settings.currency,
            )
            payment = self.authority.authorize(breakdown.final_price, self.settings.currency, idempotency_key)
            return self.confirm_payment(donation_id, payment, now)

        return self._run("request_payment", action, donation_id=donation_id)

    def confirm_payment(self, donation_id: str, payment_result: PaymentResult, now: datetime) -> FulfillmentResult:
        """Apply the payment authority's answer to a claimed donation.

        Success bills the donation at the price as of ``now`` and opens the
        first delivery offer. Failure releases the claim.
        """

        def action():
            donation = self.claims.donation(donation_id)
            status = donation.effective_status(now)
            if status == DonationStatus.EXPIRED:
                self._refund_authorization(payment_result, "donation expired before payment was confirmed")
                self._persist_expiry(donation, now)
                raise ExpiredError(donation_id)

            if status == DonationStatus.AWAITING_PICKUP and payment_result.success:
                bill = self.claims.bill_for(donation_id)
                if bill is not None and bill.transaction_id == payment_result.transaction_id:
                    return FulfillmentResult(
                        Outcome.OK,
                        "Payment already confirmed",
                        donation_id=donation_id,
                        bill_id=str(bill.id),
                        transaction_id=bill.transaction_id,
                        status=status.value,
                    )
            if status != DonationStatus.CLAIMED:
                raise ValidationError({"status": [f"Cannot confirm payment for a donation in {status.value} state"]})

            request = self.claims.request(donation.claimant_request_id)
            if not payment_result.success:
                reason = payment_result.failure_reason or "Payment was declined"
                self.claims.release(donation, request, f"payment_failed: {reason}", now)
                raise PaymentFailure(reason, payment_result.transaction_id)

            breakdown = price_donation(donation, now)
            if payment_result.amount is not None and payment_result.amount < breakdown.final_price:
                self._refund_authorization(payment_result, "authorized amount below the price")
                self.claims.release(donation, request, "payment_failed: insufficient authorization", now)
                raise PaymentFailure(
                    f"Authorized {payment_result.amount} does not cover the price {breakdown.final_price}",
                    payment_result.transaction_id,
                )

            bill = Bill.issue(
                donation,
                request,
                breakdown,
                payment_result.transaction_id,
                now,
                platform_fee_fraction=self.settings.platform_fee_fraction,
                currency=self.settings.currency,
            )
            assignment = DeliveryAssignment.offer(donation, now)
            try:
                self.claims.confirm(donation, request, bill, assignment, now)
            except ConflictError:
                self._refund_authorization(payment_result, "claim changed while payment was confirmed")
                raise

            return FulfillmentResult(
                Outcome.OK,
                "Payment confirmed",
                donation_id=donation_id,
                request_id=str(request.id),
                assignment_id=str(assignment.id),
                bill_id=str(bill.id),
                transaction_id=payment_result.transaction_id,
                status=donation.status,
                price=breakdown,
            )

        return self._run("confirm_payment", action, donation_id=donation_id)

    # -------------------------------------------------------------------
    # Delivery
    # -------------------------------------------------------------------
    def accept_delivery(self, assignment_id: str, partner_id: str, now: datetime) -> FulfillmentResult:
        def action():
            assignment = self.claims.assignment(assignment_id)
            donation = self.claims.donation(assignment.donation_id)
            donation_id = str(donation.id)
            if donation.effective_status(now) == DonationStatus.EXPIRED:
                raise ExpiredError(donation_id)

            # The donation may be newer than the assignment read just before it
            if assignment.is_open and donation.assigned_partner_id:
                assignment = self.claims.assignment(assignment_id)

            if not assignment.is_open:
                if AssignmentStatus(assignment.status) == AssignmentStatus.ACCEPTED:
                    if str(assignment.partner_id) == partner_id:
                        return FulfillmentResult(
                            Outcome.OK,
                            "Delivery already accepted",
                            donation_id=donation_id,
                            assignment_id=assignment_id,
                            status=donation.status,
                        )
                    return FulfillmentResult(
                        Outcome.ALREADY_CLAIMED,
                        ANOTHER_PARTNER_MESSAGE,
                        donation_id=donation_id,
                        assignment_id=assignment_id,
                        status=donation.status,
                    )
                raise ValidationError({"status": [f"Assignment is {assignment.status} and no longer open"]})

            try:
                self.claims.accept(assignment, donation, partner_id, now)
            except ConflictError as exc:
                if exc.kind != RecordKind.ASSIGNMENT.value:
                    raise
                return FulfillmentResult(
                    Outcome.ALREADY_CLAIMED,
                    ANOTHER_PARTNER_MESSAGE,
                    donation_id=donation_id,
                    assignment_id=assignment_id,
                    status=(exc.current or {}).get("status"),
                )

            return FulfillmentResult(
                Outcome.OK,
                "Delivery accepted",
                donation_id=donation_id,
                assignment_id=assignment_id,
                status=donation.status,
            )

        return self._run("accept_delivery", action, assignment_id=assignment_id, partner_id=partner_id)

    def decline_delivery(
        self,
        assignment_id: str,
        partner_id: str,
        now: datetime,
        reason: str | None = None,
    ) -> FulfillmentResult:
        """Turn an offer down (or back out of an accepted one) and re-offer."""

        def action():
            assignment = self.claims.assignment(assignment_id)
            donation = self.claims.donation(assignment.donation_id)
            next_offer = self.claims.decline(assignment, donation, partner_id, now, reason=reason)
            return FulfillmentResult(
                Outcome.OK,
                "Delivery declined; offered again" if next_offer else "Delivery declined",
                donation_id=str(donation.id),
                assignment_id=str(next_offer.id) if next_offer else None,
                status=donation.status,
                details={"declined_assignment_id": assignment_id},
            )

        return self._run("decline_delivery", action, assignment_id=assignment_id, partner_id=partner_id)

    def begin_pickup(self, donation_id: str, partner_id: str, now: datetime) -> FulfillmentResult:
        def action():
            donation = self.claims.donation(donation_id)
            if donation.effective_status(now) == DonationStatus.EXPIRED:
                raise ExpiredError(donation_id)
            self.claims.begin_pickup(donation, partner_id, now)
            return FulfillmentResult(Outcome.OK, "Pickup started", donation_id=donation_id, status=donation.status)

        return self._run("begin_pickup", action, donation_id=donation_id, partner_id=partner_id)

    def complete_delivery(self, donation_id: str, now: datetime) -> FulfillmentResult:
        """Mark the donation delivered and finalize its bill in the same commit."""

        def action():
            donation = self.claims.donation(donation_id)
            if DonationStatus(donation.status) != DonationStatus.IN_TRANSIT:
                if donation.effective_status(now) == DonationStatus.EXPIRED:
                    raise ExpiredError(donation_id)
                raise ValidationError({"status": [f"Cannot complete delivery of a donation in {donation.status} state"]})

            bill = self.claims.bill_for(donation_id)
            if bill is None or BillStatus(bill.status) != BillStatus.PENDING:
                raise IntegrityError(f"Donation {donation_id} is in transit without a pending bill")
            assignment = self.claims.accepted_assignment(donation_id)
            if assignment is None:
                raise IntegrityError(f"Donation {donation_id} is in transit without an accepted assignment")
            request = self.claims.request(donation.claimant_request_id)

            self.claims.deliver(donation, request, assignment, bill, now)

            return FulfillmentResult(
                Outcome.OK,
                "Delivered and billed",
                donation_id=donation_id,
                request_id=str(request.id),
                assignment_id=str(assignment.id),
                bill_id=str(bill.id),
                transaction_id=bill.transaction_id,
                status=DonationStatus.BILLED.value,
            )

        return self._run("complete_delivery", action, donation_id=donation_id)

    def finalize_bill(self, donation_id: str, now: datetime) -> FulfillmentResult:
        """Report the finalized bill of a delivered donation. Safe to call repeatedly.

        Billing happens in the delivery commit, so there is nothing left to
        write here; a donation that is not Billed yet is rejected.
        """

        def action():
            donation = self.claims.donation(donation_id)
            status = DonationStatus(donation.status)
            if status != DonationStatus.BILLED:
                raise ValidationError({"status": [f"Cannot bill a donation in {status.value} state"]})
            bill = self.claims.bill_for(donation_id)
            if bill is None or BillStatus(bill.status) != BillStatus.COMPLETED:
                raise IntegrityError(f"Donation {donation_id} is billed without a completed bill")
            return FulfillmentResult(
                Outcome.OK,
                "Bill finalized",
                donation_id=donation_id,
                bill_id=str(bill.id),
                transaction_id=bill.transaction_id,
                status=DonationStatus.BILLED.value,
            )

        return self._run("finalize_bill", action, donation_id=donation_id)

    def cancel_fulfillment(self, donation_id: str, reason: str, now: datetime) -> FulfillmentResult:
        """Call off a claim before pickup, refunding it when it was paid."""

        def action():
            donation = self.claims.donation(donation_id)
            status = DonationStatus(donation.status)

            if status == DonationStatus.CLAIMED:
                if donation.effective_status(now) == DonationStatus.EXPIRED:
                    self._persist_expiry(donation, now)
                    raise ExpiredError(donation_id)
                request = self.claims.request(donation.claimant_request_id)
                self.claims.release(donation, request, reason, now)
                return FulfillmentResult(
                    Outcome.OK,
                    "Claim released",
                    donation_id=donation_id,
                    request_id=str(request.id),
                    status=donation.status,
                )
            if status != DonationStatus.AWAITING_PICKUP:
                raise ValidationError({"status": [f"Cannot cancel fulfillment of a donation in {status.value} state"]})

            bill = self.claims.bill_for(donation_id)
            if bill is None:
                raise IntegrityError(f"Donation {donation_id} is awaiting pickup without a bill")
            request = self.claims.request(donation.claimant_request_id)
            live = [
                assignment
                for assignment in self.claims.assignments_for(donation_id)
                if AssignmentStatus(assignment.status) in (AssignmentStatus.OFFERED, AssignmentStatus.ACCEPTED)
            ]

            # Commit first so no partner can start the pickup of a refunded donation
            self.claims.cancel(donation, request, bill, live, reason, now)

            refund = self.authority.refund(bill.transaction_id, bill.final_price, reason)
            if not refund.success:
                logger.error(
                    "Refund failed after cancellation",
                    donation_id=donation_id,
                    bill_id=str(bill.id),
                    transaction_id=bill.transaction_id,
                    failure_reason=refund.failure_reason,
                )
                raise PaymentFailure(
                    f"Fulfillment cancelled but the refund failed: {refund.failure_reason}",
                    bill.transaction_id,
                )
            self.claims.record_refund(bill, refund.refund_id, now)

            return FulfillmentResult(
                Outcome.OK,
                "Fulfillment cancelled and refunded",
                donation_id=donation_id,
                request_id=str(request.id),
                bill_id=str(bill.id),
                transaction_id=bill.transaction_id,
                status=donation.status,
                details={"refund_id": refund.refund_id},
            )

        return self._run("cancel_fulfillment", action, donation_id=donation_id)

    # -------------------------------------------------------------------
    # Read models
    # -------------------------------------------------------------------
    def pending_offers(self, now: datetime) -> list[dict]:
        """Open delivery offers on donations that can still be picked up."""
        offers = []
        for row in self.store.find(RecordKind.ASSIGNMENT, order_by="offered_at", status=AssignmentStatus.OFFERED.value):
            assignment = from_row(RecordKind.ASSIGNMENT, row)
            donation = self.claims.donation(assignment.donation_id)
            if donation.effective_status(now) != DonationStatus.AWAITING_PICKUP:
                continue
            offers.append(
                {
                    "assignment_id": str(assignment.id),
                    "donation_id": str(donation.id),
                    "offer_round": assignment.offer_round,
                    "category": donation.category,
                    "quantity": donation.quantity.amount,
                    "unit": donation.quantity.unit,
                    "pickup_address": donation.location.address,
                    "latitude": donation.location.latitude,
                    "longitude": donation.location.longitude,
                    "spoil_deadline": donation.spoil_deadline,
                    "offered_at": assignment.offered_at,
                }
            )
        return offers

    def partner_deliveries(self, partner_id: str, now: datetime) -> list[dict]:
        """Deliveries a partner accepted, in progress or done."""
        rows = self.store.find(
            RecordKind.ASSIGNMENT,
            order_by="offered_at",
            partner_id=partner_id,
            status=(AssignmentStatus.ACCEPTED.value, AssignmentStatus.COMPLETED.value),
        )
        deliveries = []
        for row in rows:
            assignment = from_row(RecordKind.ASSIGNMENT, row)
            donation = self.claims.donation(assignment.donation_id)
            deliveries.append(
                {
                    "assignment_id": str(assignment.id),
                    "donation_id": str(donation.id),
                    "assignment_status": assignment.status,
                    "donation_status": donation.effective_status(now).value,
                    "pickup_address": donation.location.address,
                    "spoil_deadline": donation.spoil_deadline,
                    "accepted_at": assignment.responded_at,
                    "completed_at": assignment.completed_at,
                }
            )
        return deliveries

    def billing_history(self, party_id: str) -> list[dict]:
        """Bills where the party is the donor or the receiver, oldest first."""
        rows = {row["id"]: row for row in self.store.find(RecordKind.BILL, donor_id=party_id)}
        rows.update({row["id"]: row for row in self.store.find(RecordKind.BILL, receiver_id=party_id)})
        bills = sorted((from_row(RecordKind.BILL, row) for row in rows.values()), key=lambda bill: bill.created_at)
        return [
            {
                "bill_id": str(bill.id),
                "donation_id": str(bill.donation_id),
                "role": "donor" if str(bill.donor_id) == party_id else "receiver",
                "status": bill.status,
                "original_value": bill.original_value,
                "final_price": bill.final_price,
                "discount_percent": bill.discount_percent,
                "platform_fee_amount": bill.platform_fee_amount,
                "donor_payout": bill.donor_payout,
                "currency": bill.currency,
                "transaction_id": bill.transaction_id,
                "created_at": bill.created_at,
                "finalized_at": bill.finalized_at,
                "refunded_at": bill.refunded_at,
            }
            for bill in bills
        ]

    def donation_view(self, donation_id: str, now: datetime) -> dict:
        """Current state of one donation with lazy expiry applied."""
        return self._view(self.claims.donation(donation_id), now)

    def _view(self, donation: Donation, now: datetime) -> dict:
        donation_id = str(donation.id)
        status = donation.effective_status(now)
        open_offer = self.claims.open_assignment(donation_id)
        bill = self.claims.bill_for(donation_id)
        price = None
        if status in (DonationStatus.AVAILABLE, DonationStatus.CLAIMED):
            price = price_donation(donation, now).display()
        return {
            "donation_id": donation_id,
            "donor_id": str(donation.donor_id),
            "category": donation.category,
            "quantity": donation.quantity.amount,
            "unit": donation.quantity.unit,
            "listed_value": donation.listed_value,
            "address": donation.location.address,
            "status": status.value,
            "stored_status": donation.status,
            "claimant_request_id": str(donation.claimant_request_id) if donation.claimant_request_id else None,
            "assigned_partner_id": str(donation.assigned_partner_id) if donation.assigned_partner_id else None,
            "spoil_deadline": donation.spoil_deadline,
            "open_assignment_id": str(open_offer.id) if open_offer else None,
            "bill_id": str(bill.id) if bill else None,
            "price": price,
        }

    def available_donations(self, now: datetime) -> list[dict]:
        """The donation board: claimable donations, soonest to spoil first."""
        rows = self.store.find(RecordKind.DONATION, order_by="spoil_deadline", status=DonationStatus.AVAILABLE.value)
        donations = (from_row(RecordKind.DONATION, row) for row in rows)
        return [
            self._view(donation, now)
            for donation in donations
            if donation.effective_status(now) == DonationStatus.AVAILABLE
        ]

    def donor_donations(self, donor_id: str, now: datetime) -> list[dict]:
        """Everything a donor listed, newest first."""
        rows = self.store.find(RecordKind.DONATION, order_by="created_at", donor_id=donor_id)
        return [self._view(from_row(RecordKind.DONATION, row), now) for row in reversed(rows)]

    def requester_requests(self, requester_id: str) -> list[dict]:
        """A requester's requests, newest first."""
        rows = self.store.find(RecordKind.REQUEST, order_by="created_at", requester_id=requester_id)
        requests = [from_row(RecordKind.REQUEST, row) for row in reversed(rows)]
        return [
            {
                "request_id": str(request.id),
                "requester_id": str(request.requester_id),
                "category": request.category,
                "quantity": request.quantity.amount,
                "unit": request.quantity.unit,
                "urgency": request.urgency,
                "address": request.location.address,
                "status": request.status,
                "donation_id": str(request.donation_id) if request.donation_id else None,
                "created_at": request.created_at,
            }
            for request in requests
        ]
