"""End-to-end fulfillment journey.

One SequentialTaskSet per donation: list -> request -> claim -> pay ->
accept offer -> pickup -> complete. Generates every domain event from
DonationListed to BillFinalized.
"""

import random

from locust import HttpUser, SequentialTaskSet, between, task

from loadtests.data_generators import CATEGORIES, actor_id, donation_data, headers, request_data
from loadtests.helpers.response import extract_error_detail
from loadtests.helpers.state import FulfillmentState


class FulfillmentJourney(SequentialTaskSet):
    def on_start(self):
        self.state = FulfillmentState(
            donor_id=actor_id("donor"),
            requester_id=actor_id("requester"),
            partner_id=actor_id("partner"),
            category=random.choice(CATEGORIES),
        )

    def _post(self, path, name, actor, role, json=None, expected=200):
        with self.client.post(
            path,
            json=json,
            headers=headers(actor, role),
            catch_response=True,
            name=name,
        ) as resp:
            if resp.status_code != expected:
                resp.failure(f"{name} failed: {resp.status_code} — {extract_error_detail(resp)}")
                self.interrupt()
                return None
            return resp.json()

    @task
    def list_donation(self):
        body = self._post(
            "/donations",
            "POST /donations",
            self.state.donor_id,
            "donor",
            json=donation_data(self.state.category),
            expected=201,
        )
        if body:
            self.state.donation_id = body["donation_id"]

    @task
    def open_request(self):
        body = self._post(
            "/requests",
            "POST /requests",
            self.state.requester_id,
            "requester",
            json=request_data(self.state.category),
            expected=201,
        )
        if body:
            self.state.request_id = body["request_id"]

    @task
    def claim(self):
        body = self._post(
            f"/donations/{self.state.donation_id}/claim",
            "POST /donations/[id]/claim",
            self.state.requester_id,
            "requester",
            json={"request_id": self.state.request_id},
        )
        if body:
            self.state.current_status = body["status"]

    @task
    def pay(self):
        body = self._post(
            f"/donations/{self.state.donation_id}/pay",
            "POST /donations/[id]/pay",
            self.state.requester_id,
            "requester",
        )
        if body:
            self.state.assignment_id = body["assignment_id"]
            self.state.current_status = body["status"]

    @task
    def accept(self):
        self._post(
            f"/deliveries/{self.state.assignment_id}/accept",
            "POST /deliveries/[id]/accept",
            self.state.partner_id,
            "partner",
        )

    @task
    def pickup(self):
        self._post(
            f"/donations/{self.state.donation_id}/pickup",
            "POST /donations/[id]/pickup",
            self.state.partner_id,
            "partner",
        )

    @task
    def complete(self):
        body = self._post(
            f"/donations/{self.state.donation_id}/complete",
            "POST /donations/[id]/complete",
            self.state.partner_id,
            "partner",
        )
        if body:
            self.state.current_status = body["status"]

    @task
    def done(self):
        self.interrupt()


class FulfillmentUser(HttpUser):
    tasks = [FulfillmentJourney]
    wait_time = between(1, 3)
