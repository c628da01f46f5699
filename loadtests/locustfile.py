"""SurplusLine Load Testing — Locust entry point.

Discovers all user classes from the scenarios package.
Run specific scenarios with Locust's class selection.

Usage:
    # All scenarios (web UI):
    locust -f loadtests/locustfile.py

    # Claim race only:
    locust -f loadtests/locustfile.py DonorUser ClaimRaceUser

    # Headless (CI mode):
    locust -f loadtests/locustfile.py FulfillmentUser --headless \
           -u 50 -r 5 -t 300s --csv=results/loadtest
"""

import logging
import time

from locust import events

# Import all user classes so Locust discovers them
from loadtests.helpers.response import extract_error_detail
from loadtests.scenarios.claims import CLAIM_WINS, ClaimRaceUser, DonorUser  # noqa: F401
from loadtests.scenarios.journey import FulfillmentUser  # noqa: F401

logger = logging.getLogger("loadtest")


@events.request.add_listener
def on_request(request_type, name, response, exception, **_kw):
    """Log error details for every failed request.

    Fires globally for all scenarios — no per-task wiring needed.
    Extracts the outcome and message so you see "already_claimed: Someone
    else just claimed this donation" instead of just "409".
    """
    if exception:
        logger.error("[EXCEPTION] %s %s: %s", request_type, name, exception)
    elif response is not None and response.status_code >= 400:
        detail = extract_error_detail(response)
        logger.error("[%s] %s %s: %s", response.status_code, request_type, name, detail)


@events.test_start.add_listener
def on_test_start(environment, **_kwargs):
    """Log a marker when load test begins."""
    print(f"\n[LOADTEST] Started at {time.strftime('%H:%M:%S')}")
    print(f"[LOADTEST] Target host: {environment.host}")
    print()


@events.test_stop.add_listener
def on_test_stop(**_kwargs):
    """Report the claim race: every donation must have at most one winner."""
    print(f"\n[LOADTEST] Stopped at {time.strftime('%H:%M:%S')}")
    if not CLAIM_WINS:
        return
    doubles = {donation_id: wins for donation_id, wins in CLAIM_WINS.items() if wins > 1}
    print(f"[LOADTEST] Donations claimed: {len(CLAIM_WINS)}")
    if doubles:
        print(f"[LOADTEST] DOUBLE CLAIMS on {len(doubles)} donation(s):")
        for donation_id, wins in doubles.items():
            print(f"  {donation_id}: {wins} winners")
    else:
        print("[LOADTEST] No donation was claimed twice")
    print()
