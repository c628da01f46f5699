"""Per-user state tracking for Locust load test scenarios.

Each Locust user instance maintains its own state; nothing is shared across users.
State tracks entity IDs returned by creation endpoints so follow-up
operations can reference them.
"""

from dataclasses import dataclass


@dataclass
class FulfillmentState:
    """Tracks one donation from listing to bill."""

    donor_id: str | None = None
    requester_id: str | None = None
    partner_id: str | None = None
    donation_id: str | None = None
    request_id: str | None = None
    assignment_id: str | None = None
    category: str | None = None
    current_status: str = "Available"
