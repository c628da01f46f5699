"""Typed results of fulfillment operations.

Expected failures (a lost race, an expired donation, a declined payment,
bad input, a missing record) come back as a ``FulfillmentResult`` with a
non-OK outcome instead of an exception. Only integrity violations raise.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from surplus.pricing.engine import PriceBreakdown

ALREADY_CLAIMED_MESSAGE = "Someone else just claimed this donation"
EXPIRED_MESSAGE = "This donation is no longer available"


class Outcome(Enum):
    OK = "ok"
    ALREADY_CLAIMED = "already_claimed"
    CONFLICT = "conflict"
    EXPIRED = "expired"
    PAYMENT_FAILED = "payment_failed"
    INVALID = "invalid"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class FulfillmentResult:
    outcome: Outcome
    message: str = ""
    donation_id: str | None = None
    request_id: str | None = None
    assignment_id: str | None = None
    bill_id: str | None = None
    transaction_id: str | None = None
    status: str | None = None
    price: PriceBreakdown | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.outcome == Outcome.OK
