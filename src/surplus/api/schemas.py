"""Pydantic request/response schemas for the surplus API.

These are external contracts, kept separate from the Protean aggregates.
"""

from datetime import datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class LocationSchema(BaseModel):
    address: str = Field(min_length=1, max_length=500)
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)


class PriceSchema(BaseModel):
    original_price: float
    final_price: int
    discount_percent: int
    base_price: float
    time_discount: int
    quantity_discount: int
    category_multiplier: int
    price_per_unit: int


# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------
class ListDonationRequest(BaseModel):
    category: str
    quantity: float = Field(gt=0)
    unit: str = "units"
    listed_value: float = Field(gt=0)
    spoil_deadline: datetime
    location: LocationSchema

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "category": "PackagedFood",
                    "quantity": 10,
                    "unit": "packets",
                    "listed_value": 1000,
                    "spoil_deadline": "2026-01-04T12:00:00Z",
                    "location": {"address": "12 Market Street", "latitude": 12.97, "longitude": 77.59},
                }
            ]
        }
    }


class OpenRequestRequest(BaseModel):
    category: str
    quantity: float = Field(gt=0)
    unit: str = "units"
    urgency: str = "Medium"
    location: LocationSchema


class ClaimDonationRequest(BaseModel):
    request_id: str


class ConfirmPaymentRequest(BaseModel):
    success: bool
    transaction_id: str | None = None
    amount: float | None = Field(default=None, ge=0)
    failure_reason: str | None = None


class DeclineDeliveryRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class CancelFulfillmentRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=500)


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class ResultResponse(BaseModel):
    outcome: str
    message: str
    donation_id: str | None = None
    request_id: str | None = None
    assignment_id: str | None = None
    bill_id: str | None = None
    transaction_id: str | None = None
    status: str | None = None
    price: PriceSchema | None = None


class MatchResponse(BaseModel):
    donation_id: str
    request_id: str
    category: str
    distance_km: float | None
    spoil_deadline: datetime
    urgency: str
    final_price: int
    discount_percent: int


class DonationViewResponse(BaseModel):
    donation_id: str
    donor_id: str
    category: str
    quantity: float
    unit: str
    listed_value: float
    address: str
    status: str
    stored_status: str
    claimant_request_id: str | None = None
    assigned_partner_id: str | None = None
    spoil_deadline: datetime
    open_assignment_id: str | None = None
    bill_id: str | None = None
    price: PriceSchema | None = None


class FoodRequestResponse(BaseModel):
    request_id: str
    requester_id: str
    category: str
    quantity: float
    unit: str
    urgency: str
    address: str
    status: str
    donation_id: str | None = None
    created_at: datetime


class OfferResponse(BaseModel):
    assignment_id: str
    donation_id: str
    offer_round: int
    category: str
    quantity: float
    unit: str
    pickup_address: str
    latitude: float | None = None
    longitude: float | None = None
    spoil_deadline: datetime
    offered_at: datetime


class PartnerDeliveryResponse(BaseModel):
    assignment_id: str
    donation_id: str
    assignment_status: str
    donation_status: str
    pickup_address: str
    spoil_deadline: datetime
    accepted_at: datetime | None = None
    completed_at: datetime | None = None


class BillResponse(BaseModel):
    bill_id: str
    donation_id: str
    role: str
    status: str
    original_value: float
    final_price: int
    discount_percent: int
    platform_fee_amount: float
    donor_payout: float
    currency: str
    transaction_id: str
    created_at: datetime
    finalized_at: datetime | None = None
    refunded_at: datetime | None = None


class SweepResponse(BaseModel):
    expired: list[str]
    released_requests: list[str]
    stranded: list[str]
    conflicts: list[str]


class FlushResponse(BaseModel):
    published: int
