"""Faker-based data generators for Locust load test scenarios.

Each generator produces payloads that pass the domain's validation rules
and match the field names expected by the API's Pydantic request schemas.
Donors and requesters are placed around one city so matching finds them.
"""

import random
import uuid
from datetime import UTC, datetime, timedelta

from faker import Faker

fake = Faker()

CATEGORIES = ["Pulses", "PackagedFood", "ProduceFresh", "CookedFood", "Other"]
URGENCIES = ["Low", "Medium", "High"]

# Somewhere to cluster everyone so distances stay within category limits
CITY_LATITUDE = 12.9716
CITY_LONGITUDE = 77.5946


def actor_id(role: str) -> str:
    """Generate unique actor IDs like 'donor-a1b2c3d4'."""
    return f"{role}-{uuid.uuid4().hex[:8]}"


def headers(actor: str, role: str) -> dict:
    return {"X-Actor-Id": actor, "X-Actor-Role": role}


def nearby_location(spread: float = 0.02) -> dict:
    """A street address within a couple of kilometres of the city centre."""
    return {
        "address": fake.street_address(),
        "latitude": round(CITY_LATITUDE + random.uniform(-spread, spread), 6),
        "longitude": round(CITY_LONGITUDE + random.uniform(-spread, spread), 6),
    }


def donation_data(category: str | None = None) -> dict:
    """A donation spoiling between 2 hours and 4 days from now."""
    deadline = datetime.now(UTC) + timedelta(hours=random.randint(2, 96))
    return {
        "category": category or random.choice(CATEGORIES),
        "quantity": random.choice([5, 10, 25, 60, 120]),
        "unit": "units",
        "listed_value": float(random.randint(50, 5000)),
        "spoil_deadline": deadline.isoformat(),
        "location": nearby_location(),
    }


def request_data(category: str, quantity: float = 1) -> dict:
    return {
        "category": category,
        "quantity": quantity,
        "unit": "units",
        "urgency": random.choice(URGENCIES),
        "location": nearby_location(),
    }
