"""Payment authority factory.

Provides get_authority() / set_authority() to swap implementations. The
FakePaymentAuthority is the default for development and testing.
"""

from surplus.payment.fake_adapter import FakePaymentAuthority
from surplus.payment.port import PaymentAuthority, PaymentResult, RefundResult

__all__ = [
    "FakePaymentAuthority",
    "PaymentAuthority",
    "PaymentResult",
    "RefundResult",
    "get_authority",
    "reset_authority",
    "set_authority",
]

_current_authority: PaymentAuthority | None = None


def get_authority() -> PaymentAuthority:
    """Return the current payment authority. Defaults to FakePaymentAuthority."""
    global _current_authority
    if _current_authority is None:
        _current_authority = FakePaymentAuthority()
    return _current_authority


def set_authority(authority: PaymentAuthority) -> None:
    """Override the active payment authority (useful for tests)."""
    global _current_authority
    _current_authority = authority


def reset_authority() -> None:
    """Reset to the default authority."""
    global _current_authority
    _current_authority = None
