"""Integration tests for the surplus API endpoints via TestClient."""

import inspect
from datetime import UTC, datetime, timedelta

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from surplus.api import billing_router, delivery_router, donation_router, operations_router, request_router, routes
from surplus.domain import surplus
from surplus.fulfillment import FulfillmentOrchestrator
from surplus.fulfillment.results import ALREADY_CLAIMED_MESSAGE
from surplus.store.port import RecordKind

DONOR = {"X-Actor-Id": "donor-api-001", "X-Actor-Role": "donor"}
REQUESTER = {"X-Actor-Id": "requester-api-001", "X-Actor-Role": "requester"}
PARTNER = {"X-Actor-Id": "partner-api-001", "X-Actor-Role": "partner"}
OPERATOR = {"X-Actor-Id": "ops-api-001", "X-Actor-Role": "operator"}


@pytest.fixture()
def client(store, authority, sink):
    app = FastAPI()

    @app.middleware("http")
    async def domain_context(request: Request, call_next):
        with surplus.domain_context():
            return await call_next(request)

    for router in (donation_router, request_router, delivery_router, billing_router, operations_router):
        app.include_router(router)
    return TestClient(app)


def _list_donation(client, **overrides):
    body = {
        "category": "PackagedFood",
        "quantity": 10,
        "unit": "packets",
        "listed_value": 1000,
        "spoil_deadline": (datetime.now(UTC) + timedelta(hours=72)).isoformat(),
        "location": {"address": "12 Market Street", "latitude": 12.9716, "longitude": 77.5946},
    }
    body.update(overrides)
    response = client.post("/donations", json=body, headers=DONOR)
    assert response.status_code == 201, response.text
    return response.json()["donation_id"]


def _open_request(client, headers=REQUESTER):
    body = {
        "category": "PackagedFood",
        "quantity": 5,
        "unit": "packets",
        "urgency": "High",
        "location": {"address": "48 Temple Road", "latitude": 12.9816, "longitude": 77.6046},
    }
    response = client.post("/requests", json=body, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["request_id"]


def _claim(client, donation_id, request_id, headers=REQUESTER):
    return client.post(f"/donations/{donation_id}/claim", json={"request_id": request_id}, headers=headers)


class TestActors:
    def test_missing_actor_is_401(self, client):
        response = client.get("/deliveries/offers")
        assert response.status_code == 401

    def test_wrong_role_is_403(self, client):
        response = client.get("/deliveries/offers", headers=DONOR)
        assert response.status_code == 403


class TestDonationAPI:
    def test_list_donation_returns_price(self, client, store):
        response = client.post(
            "/donations",
            json={
                "category": "PackagedFood",
                "quantity": 10,
                "unit": "packets",
                "listed_value": 1000,
                "spoil_deadline": (datetime.now(UTC) + timedelta(hours=72)).isoformat(),
                "location": {"address": "12 Market Street"},
            },
            headers=DONOR,
        )

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "Available"
        assert data["price"]["original_price"] == 1000
        assert store.get(RecordKind.DONATION, data["donation_id"])["donor_id"] == "donor-api-001"

    def test_invalid_category_is_422(self, client):
        response = client.post(
            "/donations",
            json={
                "category": "Furniture",
                "quantity": 1,
                "listed_value": 100,
                "spoil_deadline": (datetime.now(UTC) + timedelta(hours=1)).isoformat(),
                "location": {"address": "12 Market Street"},
            },
            headers=DONOR,
        )

        assert response.status_code == 422

    def test_get_donation(self, client):
        donation_id = _list_donation(client)

        response = client.get(f"/donations/{donation_id}", headers=REQUESTER)

        assert response.status_code == 200
        assert response.json()["status"] == "Available"
        assert response.json()["price"] is not None

    def test_unknown_donation_is_404(self, client):
        assert client.get("/donations/missing", headers=REQUESTER).status_code == 404

    def test_board_lists_only_claimable_donations(self, client):
        open_id = _list_donation(client)
        claimed_id = _list_donation(client)
        assert _claim(client, claimed_id, _open_request(client)).status_code == 200

        response = client.get("/donations", headers=REQUESTER)

        assert response.status_code == 200
        assert [view["donation_id"] for view in response.json()] == [open_id]

    def test_donor_lists_own_donations(self, client):
        donation_id = _list_donation(client)

        response = client.get("/donations/mine", headers=DONOR)

        assert response.status_code == 200
        assert [view["donation_id"] for view in response.json()] == [donation_id]
        assert client.get("/donations/mine", headers=REQUESTER).status_code == 403

    def test_requester_lists_own_requests(self, client):
        request_id = _open_request(client)

        response = client.get("/requests/mine", headers=REQUESTER)

        assert response.status_code == 200
        assert [request["request_id"] for request in response.json()] == [request_id]
        assert response.json()[0]["status"] == "Pending"
        other = {"X-Actor-Id": "requester-api-002", "X-Actor-Role": "requester"}
        assert client.get("/requests/mine", headers=other).json() == []


class TestClaimAPI:
    def test_claim_then_lost_claim_is_409(self, client):
        donation_id = _list_donation(client)
        first = _open_request(client)
        second = _open_request(client, headers={"X-Actor-Id": "requester-api-002", "X-Actor-Role": "requester"})

        assert _claim(client, donation_id, first).status_code == 200
        response = _claim(client, donation_id, second)

        assert response.status_code == 409
        assert response.json()["detail"]["outcome"] == "already_claimed"
        assert response.json()["detail"]["message"] == ALREADY_CLAIMED_MESSAGE

    def test_expired_claim_is_410(self, client, store, authority):
        listed_at = datetime.now(UTC) - timedelta(hours=3)
        donation_id = FulfillmentOrchestrator(store, authority).list_donation(
            donor_id="donor-api-001",
            category="PackagedFood",
            quantity=10,
            unit="packets",
            listed_value=1000,
            spoil_deadline=listed_at + timedelta(hours=1),
            address="12 Market Street",
            now=listed_at,
        ).donation_id
        request_id = _open_request(client)

        response = _claim(client, donation_id, request_id)

        assert response.status_code == 410
        assert response.json()["detail"]["outcome"] == "expired"
        assert client.get(f"/donations/{donation_id}", headers=REQUESTER).json()["status"] == "Expired"

    def test_matches_for_request(self, client):
        donation_id = _list_donation(client)
        request_id = _open_request(client)

        response = client.get(f"/requests/{request_id}/matches", headers=REQUESTER)

        assert response.status_code == 200
        assert [match["donation_id"] for match in response.json()] == [donation_id]


class TestFulfillmentAPI:
    def test_full_journey(self, client, store, sink):
        donation_id = _list_donation(client)
        request_id = _open_request(client)
        _claim(client, donation_id, request_id)

        paid = client.post(f"/donations/{donation_id}/pay", headers=REQUESTER)
        assert paid.status_code == 200
        assert paid.json()["status"] == "AwaitingPickup"

        offers = client.get("/deliveries/offers", headers=PARTNER).json()
        assert [offer["donation_id"] for offer in offers] == [donation_id]

        assignment_id = offers[0]["assignment_id"]
        assert client.post(f"/deliveries/{assignment_id}/accept", headers=PARTNER).status_code == 200
        assert client.post(f"/donations/{donation_id}/pickup", headers=PARTNER).status_code == 200
        completed = client.post(f"/donations/{donation_id}/complete", headers=PARTNER)
        assert completed.status_code == 200
        assert completed.json()["status"] == "Billed"

        bills = client.get("/bills", headers=DONOR).json()
        assert [bill["status"] for bill in bills] == ["Completed"]
        assert bills[0]["role"] == "donor"

        flushed = client.post("/operations/flush-outbox", headers=OPERATOR)
        assert flushed.json()["published"] > 0
        assert sink.messages("BillFinalized")

    def test_payment_failure_is_402(self, client, authority):
        donation_id = _list_donation(client)
        _claim(client, donation_id, _open_request(client))
        authority.configure(should_succeed=False, failure_reason="Insufficient funds")

        response = client.post(f"/donations/{donation_id}/pay", headers=REQUESTER)

        assert response.status_code == 402
        assert response.json()["detail"]["message"] == "Insufficient funds"

    def test_second_partner_gets_409(self, client):
        donation_id = _list_donation(client)
        _claim(client, donation_id, _open_request(client))
        assignment_id = client.post(f"/donations/{donation_id}/pay", headers=REQUESTER).json()["assignment_id"]
        client.post(f"/deliveries/{assignment_id}/accept", headers=PARTNER)

        response = client.post(
            f"/deliveries/{assignment_id}/accept",
            headers={"X-Actor-Id": "partner-api-002", "X-Actor-Role": "partner"},
        )

        assert response.status_code == 409

    def test_cancel_refunds(self, client, authority):
        donation_id = _list_donation(client)
        _claim(client, donation_id, _open_request(client))
        client.post(f"/donations/{donation_id}/pay", headers=REQUESTER)

        response = client.post(f"/donations/{donation_id}/cancel", json={"reason": "No longer needed"}, headers=REQUESTER)

        assert response.status_code == 200
        assert response.json()["status"] == "Available"
        assert authority.calls[-1]["method"] == "refund"

    def test_other_party_bills_need_operator(self, client):
        assert client.get("/bills", params={"party_id": "donor-x"}, headers=DONOR).status_code == 403
        assert client.get("/bills", params={"party_id": "donor-x"}, headers=OPERATOR).status_code == 200

    def test_sweep_requires_operator(self, client):
        assert client.post("/operations/sweep-expired", headers=PARTNER).status_code == 403
        response = client.post("/operations/sweep-expired", headers=OPERATOR)
        assert response.status_code == 200
        assert response.json()["expired"] == []

    def test_sweep_runs_off_the_event_loop(self):
        assert not inspect.iscoroutinefunction(routes.sweep_expired)
