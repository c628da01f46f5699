"""Bill aggregate — the priced record of one fulfilled claim.

A bill is computed once, at payment confirmation, from the price breakdown
at that instant. Afterwards only its status (and the matching timestamp)
may change.

State Machine:
    PENDING → COMPLETED    (delivery completed)
    PENDING → REFUNDED     (fulfillment cancelled before pickup)
    PENDING → FAILED
"""

from datetime import datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, Identifier, Integer, String

from surplus.billing.events import BillFinalized, BillIssued, BillRefunded
from surplus.config import DEFAULT_PLATFORM_FEE
from surplus.domain import surplus
from surplus.pricing.engine import PriceBreakdown


class BillStatus(Enum):
    PENDING = "Pending"
    COMPLETED = "Completed"
    FAILED = "Failed"
    REFUNDED = "Refunded"


_VALID_TRANSITIONS = {
    BillStatus.PENDING: {BillStatus.COMPLETED, BillStatus.FAILED, BillStatus.REFUNDED},
    BillStatus.COMPLETED: set(),  # Terminal
    BillStatus.FAILED: set(),  # Terminal
    BillStatus.REFUNDED: set(),  # Terminal
}

# Fields a stored bill may still change; everything else is frozen at issue time
MUTABLE_FIELDS = frozenset({"status", "finalized_at", "refunded_at", "refund_id", "version"})


@surplus.aggregate
class Bill:
    donation_id = Identifier(required=True)
    request_id = Identifier(required=True)
    donor_id = Identifier(required=True)
    receiver_id = Identifier(required=True)
    original_value = Float(required=True)
    final_price = Integer(required=True, min_value=0)
    discount_percent = Integer(required=True)
    time_factor_percent = Integer(required=True)
    quantity_factor_percent = Integer(required=True)
    category_factor_percent = Integer(required=True)
    platform_fee_fraction = Float(default=DEFAULT_PLATFORM_FEE)
    platform_fee_amount = Float(default=0.0)
    transaction_id = String(required=True, max_length=255)
    currency = String(max_length=3, default="USD")
    status = String(choices=BillStatus, default=BillStatus.PENDING.value)
    refund_id = String(max_length=255)
    created_at = DateTime(required=True)
    finalized_at = DateTime()
    refunded_at = DateTime()
    version = Integer(default=0)

    @classmethod
    def issue(
        cls,
        donation,
        request,
        breakdown: PriceBreakdown,
        transaction_id: str,
        now: datetime,
        platform_fee_fraction: float = DEFAULT_PLATFORM_FEE,
        currency: str = "USD",
    ):
        """Compute the bill for ``donation`` claimed by ``request``."""
        percentages = breakdown.display()
        bill = cls(
            donation_id=str(donation.id),
            request_id=str(request.id),
            donor_id=str(donation.donor_id),
            receiver_id=str(request.requester_id),
            original_value=breakdown.original_value,
            final_price=breakdown.final_price,
            discount_percent=breakdown.discount_percent,
            time_factor_percent=percentages["time_discount"],
            quantity_factor_percent=percentages["quantity_discount"],
            category_factor_percent=percentages["category_multiplier"],
            platform_fee_fraction=platform_fee_fraction,
            platform_fee_amount=round(breakdown.final_price * platform_fee_fraction, 2),
            transaction_id=transaction_id,
            currency=currency,
            status=BillStatus.PENDING.value,
            created_at=now,
        )
        bill.raise_(
            BillIssued(
                bill_id=str(bill.id),
                donation_id=str(donation.id),
                request_id=str(request.id),
                original_value=breakdown.original_value,
                final_price=breakdown.final_price,
                discount_percent=breakdown.discount_percent,
                transaction_id=transaction_id,
                currency=currency,
                issued_at=now,
            )
        )
        return bill

    @property
    def donor_payout(self) -> float:
        return round(self.final_price - (self.platform_fee_amount or 0.0), 2)

    def _assert_can_transition(self, target_status: BillStatus) -> None:
        current = BillStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})

    def finalize(self, now: datetime) -> None:
        self._assert_can_transition(BillStatus.COMPLETED)
        self.status = BillStatus.COMPLETED.value
        self.finalized_at = now
        self.raise_(
            BillFinalized(
                bill_id=str(self.id),
                donation_id=str(self.donation_id),
                donor_id=str(self.donor_id),
                receiver_id=str(self.receiver_id),
                final_price=self.final_price,
                platform_fee_amount=self.platform_fee_amount,
                transaction_id=self.transaction_id,
                finalized_at=now,
            )
        )

    def refund(self, reason: str, now: datetime, refund_id: str | None = None) -> None:
        self._assert_can_transition(BillStatus.REFUNDED)
        self.status = BillStatus.REFUNDED.value
        self.refund_id = refund_id
        self.refunded_at = now
        self.raise_(
            BillRefunded(
                bill_id=str(self.id),
                donation_id=str(self.donation_id),
                transaction_id=self.transaction_id,
                refund_id=refund_id,
                reason=reason,
                refunded_at=now,
            )
        )

    def record_refund(self, refund_id: str) -> None:
        """Attach the authority's refund id once the refund went through."""
        if BillStatus(self.status) != BillStatus.REFUNDED:
            raise ValidationError({"refund_id": ["Only a refunded bill carries a refund id"]})
        if self.refund_id:
            raise ValidationError({"refund_id": ["Refund already recorded"]})
        self.refund_id = refund_id
