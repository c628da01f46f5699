"""Fulfillment orchestrator factory.

get_orchestrator() wires the orchestrator to the active store and payment
authority; reset it together with them in tests.
"""

from surplus.config import load_settings
from surplus.fulfillment.expiry import ExpirySweeper, SweepReport
from surplus.fulfillment.orchestrator import FulfillmentOrchestrator
from surplus.fulfillment.results import FulfillmentResult, Outcome
from surplus.payment import get_authority
from surplus.store import get_store

__all__ = [
    "ExpirySweeper",
    "FulfillmentOrchestrator",
    "FulfillmentResult",
    "Outcome",
    "SweepReport",
    "get_orchestrator",
]


def get_orchestrator() -> FulfillmentOrchestrator:
    """An orchestrator over the currently configured store and authority."""
    return FulfillmentOrchestrator(get_store(), get_authority(), load_settings())
