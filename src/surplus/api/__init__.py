"""Surplus API package."""

from surplus.api.routes import (
    billing_router,
    delivery_router,
    donation_router,
    operations_router,
    request_router,
)

__all__ = ["billing_router", "delivery_router", "donation_router", "operations_router", "request_router"]
