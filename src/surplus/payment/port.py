"""Payment authority port (abstract interface).

The core never captures money itself. It asks the authority to authorize an
amount and later, if fulfillment is cancelled, to refund it. Adapters are
black boxes that answer success or failure.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class PaymentResult:
    """Outcome of an authorization attempt."""

    success: bool
    transaction_id: str | None = None
    amount: float | None = None
    failure_reason: str | None = None


@dataclass(frozen=True)
class RefundResult:
    """Outcome of a refund attempt."""

    success: bool
    refund_id: str | None = None
    failure_reason: str | None = None


class PaymentAuthority(ABC):
    """Abstract payment authority interface."""

    @abstractmethod
    def authorize(self, amount: float, currency: str, idempotency_key: str) -> PaymentResult:
        """Authorize ``amount``; repeated keys must not charge twice."""
        ...

    @abstractmethod
    def refund(self, transaction_id: str, amount: float, reason: str) -> RefundResult:
        """Refund a previous authorization."""
        ...
