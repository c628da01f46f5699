"""Claim race scenarios.

DonorUser keeps listing donations into a small shared pool. ClaimRaceUser
instances all grab the newest donation in the pool and try to claim it at
once. Exactly one claim per donation may win; every other attempt must come
back as 409 ALREADY_CLAIMED, which counts as a correct response here.
"""

import random
from collections import Counter, deque

from locust import HttpUser, between, task

from loadtests.data_generators import CATEGORIES, actor_id, donation_data, headers, request_data
from loadtests.helpers.response import extract_error_detail

# Donations open for racing, newest last. Shared by every user in the process.
HOT_DONATIONS: deque = deque(maxlen=20)

# Successful claims per donation; any count above one is a double claim
CLAIM_WINS: Counter = Counter()


class DonorUser(HttpUser):
    """Lists donations for the racers."""

    wait_time = between(0.5, 1.5)
    weight = 1

    def on_start(self):
        self.donor_id = actor_id("donor")

    @task
    def list_donation(self):
        category = random.choice(CATEGORIES)
        with self.client.post(
            "/donations",
            json=donation_data(category),
            headers=headers(self.donor_id, "donor"),
            catch_response=True,
            name="POST /donations",
        ) as resp:
            if resp.status_code == 201:
                HOT_DONATIONS.append((resp.json()["donation_id"], category))
            else:
                resp.failure(f"List donation failed: {resp.status_code} — {extract_error_detail(resp)}")


class ClaimRaceUser(HttpUser):
    """Opens a request and races everyone else for the newest donation."""

    wait_time = between(0.1, 0.5)
    weight = 5

    def on_start(self):
        self.requester_id = actor_id("requester")

    @task
    def race_for_newest(self):
        if not HOT_DONATIONS:
            return
        donation_id, category = HOT_DONATIONS[-1]
        actor = headers(self.requester_id, "requester")

        resp = self.client.post("/requests", json=request_data(category), headers=actor, name="POST /requests")
        if resp.status_code != 201:
            return
        request_id = resp.json()["request_id"]

        with self.client.post(
            f"/donations/{donation_id}/claim",
            json={"request_id": request_id},
            headers=actor,
            catch_response=True,
            name="POST /donations/[id]/claim",
        ) as claim:
            if claim.status_code == 200:
                CLAIM_WINS[donation_id] += 1
                claim.success()
            elif claim.status_code in (409, 410):
                claim.success()
            else:
                claim.failure(f"Claim failed: {claim.status_code} — {extract_error_detail(claim)}")
