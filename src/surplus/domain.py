"""Surplus bounded context — Perishable Food Matching and Fulfillment.

Matches donations of perishable food with recipient requests and delivery
partners. Prices decay as a donation approaches its spoil deadline. Every
state change goes through the entity store's conditional update, so several
service instances can race on the same donation safely.
"""

import structlog
from protean.domain import Domain

surplus = Domain(name="surplus")

logger = structlog.get_logger(__name__)
