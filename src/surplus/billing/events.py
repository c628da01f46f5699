"""Bill domain events."""

from protean.fields import DateTime, Float, Identifier, Integer, String

from surplus.domain import surplus


@surplus.event(part_of="Bill")
class BillIssued:
    """A bill was computed after the payment authority approved the charge."""

    __version__ = 1

    bill_id = Identifier(required=True)
    donation_id = Identifier(required=True)
    request_id = Identifier(required=True)
    original_value = Float(required=True)
    final_price = Integer(required=True)
    discount_percent = Integer(required=True)
    transaction_id = String(required=True)
    currency = String(required=True)
    issued_at = DateTime(required=True)


@surplus.event(part_of="Bill")
class BillFinalized:
    """Delivery completed; the bill is settled."""

    __version__ = 1

    bill_id = Identifier(required=True)
    donation_id = Identifier(required=True)
    donor_id = Identifier(required=True)
    receiver_id = Identifier(required=True)
    final_price = Integer(required=True)
    platform_fee_amount = Float(required=True)
    transaction_id = String(required=True)
    finalized_at = DateTime(required=True)


@surplus.event(part_of="Bill")
class BillRefunded:
    """The fulfillment was cancelled and the charge refunded."""

    __version__ = 1

    bill_id = Identifier(required=True)
    donation_id = Identifier(required=True)
    transaction_id = String(required=True)
    refund_id = String()
    reason = String(required=True)
    refunded_at = DateTime(required=True)
