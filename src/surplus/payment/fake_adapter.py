"""Configurable fake payment authority for development and testing.

Simulates an authority without any external calls. It can be told to
succeed or fail at runtime, and remembers every call in ``calls`` so tests
can assert on what the core asked for. Repeating an idempotency key returns
the first result again.
"""

import secrets

from surplus.payment.port import PaymentAuthority, PaymentResult, RefundResult


class FakePaymentAuthority(PaymentAuthority):
    """Configurable fake payment authority."""

    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Card declined"
        self.calls: list[dict] = []
        self._authorizations: dict[str, PaymentResult] = {}

    def configure(self, should_succeed: bool, failure_reason: str = "Card declined") -> None:
        """Configure authority behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def authorize(self, amount: float, currency: str, idempotency_key: str) -> PaymentResult:
        self.calls.append(
            {
                "method": "authorize",
                "amount": amount,
                "currency": currency,
                "idempotency_key": idempotency_key,
            }
        )
        if idempotency_key in self._authorizations:
            return self._authorizations[idempotency_key]

        if self.should_succeed:
            result = PaymentResult(
                success=True,
                transaction_id=f"fake_txn_{secrets.token_hex(12)}",
                amount=amount,
            )
            self._authorizations[idempotency_key] = result
            return result
        return PaymentResult(success=False, amount=amount, failure_reason=self.failure_reason)

    def refund(self, transaction_id: str, amount: float, reason: str) -> RefundResult:
        self.calls.append(
            {
                "method": "refund",
                "transaction_id": transaction_id,
                "amount": amount,
                "reason": reason,
            }
        )
        if self.should_succeed:
            return RefundResult(success=True, refund_id=f"fake_ref_{secrets.token_hex(12)}")
        return RefundResult(success=False, failure_reason=self.failure_reason)
