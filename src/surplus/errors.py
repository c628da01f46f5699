"""Error taxonomy for the surplus core.

``ValidationError`` (malformed input) is Protean's own and is re-exported
here so callers have a single import point. The other errors describe the
expected failure modes of claiming and fulfilling a donation; only
``IntegrityError`` is fatal.
"""

from typing import Any

from protean.exceptions import ObjectNotFoundError, ValidationError

__all__ = [
    "ConflictError",
    "ExpiredError",
    "IntegrityError",
    "InvalidPricingInput",
    "ObjectNotFoundError",
    "PaymentFailure",
    "SurplusError",
    "ValidationError",
]


class SurplusError(Exception):
    """Base class for the non-validation errors raised by the core."""


class ConflictError(SurplusError):
    """A conditional update lost a race on a shared record.

    ``current`` holds the record as the store saw it when the guard failed,
    so the caller can tell who won without a second read.
    """

    def __init__(
        self,
        kind: str,
        record_id: str,
        expected: dict[str, Any] | None = None,
        current: dict[str, Any] | None = None,
    ) -> None:
        self.kind = kind
        self.record_id = record_id
        self.expected = dict(expected or {})
        self.current = dict(current) if current is not None else None
        super().__init__(f"Conditional update on {kind} {record_id} failed: expected {self.expected}")


class ExpiredError(SurplusError):
    """The donation's spoil deadline has passed."""

    def __init__(self, donation_id: str) -> None:
        self.donation_id = donation_id
        super().__init__(f"Donation {donation_id} is no longer available")


class PaymentFailure(SurplusError):
    """The payment authority declined the charge."""

    def __init__(self, reason: str, transaction_id: str | None = None) -> None:
        self.reason = reason
        self.transaction_id = transaction_id
        super().__init__(f"Payment failed: {reason}")


class IntegrityError(SurplusError):
    """A persisted invariant is violated. Operators must look at it."""


class InvalidPricingInput(ValidationError):
    """Pricing inputs that would divide by zero or price nothing."""
