"""FastAPI routes for the surplus core — intake, claims, delivery, billing.

Actors arrive pre-authenticated as ``X-Actor-Id`` / ``X-Actor-Role``
headers. Typed fulfillment outcomes map onto HTTP status codes.
"""

from dataclasses import asdict
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Header, HTTPException, Query

from surplus.api.schemas import (
    BillResponse,
    CancelFulfillmentRequest,
    ClaimDonationRequest,
    ConfirmPaymentRequest,
    DeclineDeliveryRequest,
    DonationViewResponse,
    FlushResponse,
    FoodRequestResponse,
    ListDonationRequest,
    MatchResponse,
    OfferResponse,
    OpenRequestRequest,
    PartnerDeliveryResponse,
    ResultResponse,
    SweepResponse,
)
from surplus.errors import ObjectNotFoundError, ValidationError
from surplus.events import OutboxRelay, get_sink
from surplus.fulfillment import ExpirySweeper, FulfillmentResult, Outcome, get_orchestrator
from surplus.identity import Actor, Role
from surplus.matching.finder import MatchFinder
from surplus.payment import PaymentResult
from surplus.store import get_store

_OUTCOME_STATUS = {
    Outcome.ALREADY_CLAIMED: 409,
    Outcome.CONFLICT: 409,
    Outcome.EXPIRED: 410,
    Outcome.PAYMENT_FAILED: 402,
    Outcome.INVALID: 422,
    Outcome.NOT_FOUND: 404,
}


def _now() -> datetime:
    return datetime.now(UTC)


def _aware(value: datetime) -> datetime:
    return value.astimezone(UTC) if value.tzinfo is not None else value.replace(tzinfo=UTC)


def current_actor(
    x_actor_id: str = Header(default=""),
    x_actor_role: str = Header(default=""),
) -> Actor:
    try:
        return Actor.parse(x_actor_id, x_actor_role)
    except ValidationError as exc:
        raise HTTPException(status_code=401, detail=exc.messages) from exc


def _require(actor: Actor, *roles: Role) -> None:
    try:
        actor.require_role(*roles)
    except ValidationError as exc:
        raise HTTPException(status_code=403, detail=exc.messages) from exc


def _respond(result: FulfillmentResult) -> ResultResponse:
    if not result.ok:
        raise HTTPException(
            status_code=_OUTCOME_STATUS[result.outcome],
            detail={"outcome": result.outcome.value, "message": result.message, "status": result.status},
        )
    return ResultResponse(
        outcome=result.outcome.value,
        message=result.message,
        donation_id=result.donation_id,
        request_id=result.request_id,
        assignment_id=result.assignment_id,
        bill_id=result.bill_id,
        transaction_id=result.transaction_id,
        status=result.status,
        price=result.price.display() if result.price else None,
    )


# ---------------------------------------------------------------------------
# Donation Router
# ---------------------------------------------------------------------------
donation_router = APIRouter(prefix="/donations", tags=["donations"])


@donation_router.post("", status_code=201, response_model=ResultResponse)
async def list_donation(body: ListDonationRequest, actor: Actor = Depends(current_actor)) -> ResultResponse:
    """List a surplus donation."""
    _require(actor, Role.DONOR)
    result = get_orchestrator().list_donation(
        donor_id=actor.actor_id,
        category=body.category,
        quantity=body.quantity,
        unit=body.unit,
        listed_value=body.listed_value,
        spoil_deadline=_aware(body.spoil_deadline),
        address=body.location.address,
        latitude=body.location.latitude,
        longitude=body.location.longitude,
        now=_now(),
    )
    return _respond(result)


@donation_router.get("", response_model=list[DonationViewResponse])
async def available_donations(actor: Actor = Depends(current_actor)) -> list[DonationViewResponse]:  # noqa: ARG001
    """Donations open for claiming, soonest to spoil first."""
    return [DonationViewResponse(**view) for view in get_orchestrator().available_donations(_now())]


@donation_router.get("/mine", response_model=list[DonationViewResponse])
async def donor_donations(actor: Actor = Depends(current_actor)) -> list[DonationViewResponse]:
    _require(actor, Role.DONOR)
    return [DonationViewResponse(**view) for view in get_orchestrator().donor_donations(actor.actor_id, _now())]


@donation_router.get("/{donation_id}", response_model=DonationViewResponse)
async def get_donation(donation_id: str, actor: Actor = Depends(current_actor)) -> DonationViewResponse:  # noqa: ARG001
    """Donation status with lazy expiry and the current price."""
    try:
        view = get_orchestrator().donation_view(donation_id, _now())
    except ObjectNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc.messages)) from exc
    return DonationViewResponse(**view)


@donation_router.post("/{donation_id}/claim", response_model=ResultResponse)
async def claim_donation(
    donation_id: str,
    body: ClaimDonationRequest,
    actor: Actor = Depends(current_actor),
) -> ResultResponse:
    _require(actor, Role.REQUESTER)
    return _respond(get_orchestrator().claim_donation(body.request_id, donation_id, _now()))


@donation_router.post("/{donation_id}/pay", response_model=ResultResponse)
async def pay_for_donation(donation_id: str, actor: Actor = Depends(current_actor)) -> ResultResponse:
    """Authorize the current price with the payment authority."""
    _require(actor, Role.REQUESTER)
    return _respond(get_orchestrator().request_payment(donation_id, _now()))


@donation_router.post("/{donation_id}/confirm-payment", response_model=ResultResponse)
async def confirm_payment(
    donation_id: str,
    body: ConfirmPaymentRequest,
    actor: Actor = Depends(current_actor),
) -> ResultResponse:
    """Payment authority callback with the outcome of an authorization."""
    _require(actor, Role.OPERATOR)
    payment = PaymentResult(
        success=body.success,
        transaction_id=body.transaction_id,
        amount=body.amount,
        failure_reason=body.failure_reason,
    )
    return _respond(get_orchestrator().confirm_payment(donation_id, payment, _now()))


@donation_router.post("/{donation_id}/pickup", response_model=ResultResponse)
async def begin_pickup(donation_id: str, actor: Actor = Depends(current_actor)) -> ResultResponse:
    _require(actor, Role.PARTNER)
    return _respond(get_orchestrator().begin_pickup(donation_id, actor.actor_id, _now()))


@donation_router.post("/{donation_id}/complete", response_model=ResultResponse)
async def complete_delivery(donation_id: str, actor: Actor = Depends(current_actor)) -> ResultResponse:
    _require(actor, Role.PARTNER)
    return _respond(get_orchestrator().complete_delivery(donation_id, _now()))


@donation_router.post("/{donation_id}/finalize-bill", response_model=ResultResponse)
async def finalize_bill(donation_id: str, actor: Actor = Depends(current_actor)) -> ResultResponse:
    _require(actor, Role.OPERATOR)
    return _respond(get_orchestrator().finalize_bill(donation_id, _now()))


@donation_router.post("/{donation_id}/cancel", response_model=ResultResponse)
async def cancel_fulfillment(
    donation_id: str,
    body: CancelFulfillmentRequest,
    actor: Actor = Depends(current_actor),
) -> ResultResponse:
    """Call off a claim before pickup; paid claims are refunded."""
    _require(actor, Role.REQUESTER)
    return _respond(get_orchestrator().cancel_fulfillment(donation_id, body.reason, _now()))


# ---------------------------------------------------------------------------
# Request Router
# ---------------------------------------------------------------------------
request_router = APIRouter(prefix="/requests", tags=["requests"])


@request_router.post("", status_code=201, response_model=ResultResponse)
async def open_request(body: OpenRequestRequest, actor: Actor = Depends(current_actor)) -> ResultResponse:
    _require(actor, Role.REQUESTER)
    result = get_orchestrator().open_request(
        requester_id=actor.actor_id,
        category=body.category,
        quantity=body.quantity,
        unit=body.unit,
        urgency=body.urgency,
        address=body.location.address,
        latitude=body.location.latitude,
        longitude=body.location.longitude,
        now=_now(),
    )
    return _respond(result)


@request_router.get("/mine", response_model=list[FoodRequestResponse])
async def requester_requests(actor: Actor = Depends(current_actor)) -> list[FoodRequestResponse]:
    _require(actor, Role.REQUESTER)
    return [FoodRequestResponse(**request) for request in get_orchestrator().requester_requests(actor.actor_id)]


@request_router.get("/{request_id}/matches", response_model=list[MatchResponse])
async def find_matches(request_id: str, actor: Actor = Depends(current_actor)) -> list[MatchResponse]:
    """Available donations for the request, nearest first."""
    _require(actor, Role.REQUESTER)
    try:
        matches = MatchFinder(get_store()).donations_for_request(request_id, _now())
    except ObjectNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc.messages)) from exc
    return [MatchResponse(**asdict(match)) for match in matches]


# ---------------------------------------------------------------------------
# Delivery Router
# ---------------------------------------------------------------------------
delivery_router = APIRouter(prefix="/deliveries", tags=["deliveries"])


@delivery_router.get("/offers", response_model=list[OfferResponse])
async def pending_offers(actor: Actor = Depends(current_actor)) -> list[OfferResponse]:
    _require(actor, Role.PARTNER)
    return [OfferResponse(**offer) for offer in get_orchestrator().pending_offers(_now())]


@delivery_router.get("/mine", response_model=list[PartnerDeliveryResponse])
async def partner_deliveries(actor: Actor = Depends(current_actor)) -> list[PartnerDeliveryResponse]:
    _require(actor, Role.PARTNER)
    deliveries = get_orchestrator().partner_deliveries(actor.actor_id, _now())
    return [PartnerDeliveryResponse(**delivery) for delivery in deliveries]


@delivery_router.post("/{assignment_id}/accept", response_model=ResultResponse)
async def accept_delivery(assignment_id: str, actor: Actor = Depends(current_actor)) -> ResultResponse:
    _require(actor, Role.PARTNER)
    return _respond(get_orchestrator().accept_delivery(assignment_id, actor.actor_id, _now()))


@delivery_router.post("/{assignment_id}/decline", response_model=ResultResponse)
async def decline_delivery(
    assignment_id: str,
    body: DeclineDeliveryRequest,
    actor: Actor = Depends(current_actor),
) -> ResultResponse:
    _require(actor, Role.PARTNER)
    return _respond(get_orchestrator().decline_delivery(assignment_id, actor.actor_id, _now(), reason=body.reason))


# ---------------------------------------------------------------------------
# Billing Router
# ---------------------------------------------------------------------------
billing_router = APIRouter(prefix="/bills", tags=["billing"])


@billing_router.get("", response_model=list[BillResponse])
async def billing_history(
    party_id: str | None = Query(default=None),
    actor: Actor = Depends(current_actor),
) -> list[BillResponse]:
    """Bills of the calling donor or receiver. Operators may look up any party."""
    if party_id and party_id != actor.actor_id:
        _require(actor, Role.OPERATOR)
    bills = get_orchestrator().billing_history(party_id or actor.actor_id)
    return [BillResponse(**bill) for bill in bills]


# ---------------------------------------------------------------------------
# Operations Router
# ---------------------------------------------------------------------------
operations_router = APIRouter(prefix="/operations", tags=["operations"])


@operations_router.post("/sweep-expired", response_model=SweepResponse)
def sweep_expired(actor: Actor = Depends(current_actor)) -> SweepResponse:
    """Expire overdue donations. A plain def, so retry backoff sleeps off the event loop."""
    _require(actor, Role.OPERATOR)
    report = ExpirySweeper(get_store()).sweep(_now())
    return SweepResponse(
        expired=report.expired,
        released_requests=report.released_requests,
        stranded=report.stranded,
        conflicts=report.conflicts,
    )


@operations_router.post("/flush-outbox", response_model=FlushResponse)
async def flush_outbox(actor: Actor = Depends(current_actor)) -> FlushResponse:
    _require(actor, Role.OPERATOR)
    return FlushResponse(published=OutboxRelay(get_store(), get_sink()).flush())
