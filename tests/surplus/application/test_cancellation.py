from datetime import timedelta

from surplus.fulfillment.results import Outcome
from surplus.store.port import RecordKind


class TestCancelPaidFulfillment:
    def test_cancel_refunds_and_releases(self, orchestrator, store, authority, paid_donation, now):
        donation_id, request_id, assignment_id = paid_donation

        result = orchestrator.cancel_fulfillment(donation_id, "Receiver no longer needs it", now)

        assert result.ok
        assert result.details["refund_id"].startswith("fake_ref_")
        donation = store.get(RecordKind.DONATION, donation_id)
        assert donation["status"] == "Available"
        assert donation["claimant_request_id"] is None
        assert store.get(RecordKind.REQUEST, request_id)["status"] == "Pending"
        assert store.get(RecordKind.ASSIGNMENT, assignment_id)["status"] == "Declined"
        bill = store.get(RecordKind.BILL, result.bill_id)
        assert bill["status"] == "Refunded"
        assert bill["refund_id"] == result.details["refund_id"]
        refund = authority.calls[-1]
        assert refund["method"] == "refund"
        assert refund["transaction_id"] == bill["transaction_id"]
        assert refund["amount"] == bill["final_price"]

    def test_cancel_withdraws_accepted_partner(self, orchestrator, store, paid_donation, now):
        donation_id, _, assignment_id = paid_donation
        orchestrator.accept_delivery(assignment_id, "partner-001", now)

        assert orchestrator.cancel_fulfillment(donation_id, "Donor withdrew", now).ok

        assert store.get(RecordKind.DONATION, donation_id)["assigned_partner_id"] is None
        assert store.get(RecordKind.ASSIGNMENT, assignment_id)["status"] == "Declined"
        assert orchestrator.partner_deliveries("partner-001", now) == []

    def test_cancelled_donation_can_be_claimed_again(self, orchestrator, open_request, paid_donation, now):
        donation_id, _, _ = paid_donation
        orchestrator.cancel_fulfillment(donation_id, "Donor withdrew", now)
        other_request = open_request(requester_id="requester-002")

        assert orchestrator.claim_donation(other_request, donation_id, now).ok
        result = orchestrator.request_payment(donation_id, now)

        assert result.ok
        assert orchestrator.donation_view(donation_id, now)["bill_id"] == result.bill_id

    def test_refund_failure_is_reported(self, orchestrator, store, authority, paid_donation, now):
        donation_id, _, _ = paid_donation
        authority.configure(should_succeed=False, failure_reason="Gateway timeout")

        result = orchestrator.cancel_fulfillment(donation_id, "Donor withdrew", now)

        assert result.outcome == Outcome.PAYMENT_FAILED
        assert "Gateway timeout" in result.message
        assert store.get(RecordKind.DONATION, donation_id)["status"] == "Available"
        bill = store.find(RecordKind.BILL, donation_id=donation_id)[0]
        assert bill["status"] == "Refunded"
        assert bill["refund_id"] is None

    def test_cancel_after_deadline_still_refunds(self, orchestrator, store, paid_donation, now):
        donation_id, _, _ = paid_donation

        result = orchestrator.cancel_fulfillment(donation_id, "Spoiled before pickup", now + timedelta(hours=80))

        assert result.ok
        assert orchestrator.donation_view(donation_id, now + timedelta(hours=80))["status"] == "Expired"


class TestCancelOtherStates:
    def test_cancel_claim_releases_without_refund(self, orchestrator, store, authority, list_donation, open_request, now):
        donation_id = list_donation()
        request_id = open_request()
        orchestrator.claim_donation(request_id, donation_id, now)

        result = orchestrator.cancel_fulfillment(donation_id, "Changed my mind", now)

        assert result.ok
        assert authority.calls == []
        assert store.get(RecordKind.DONATION, donation_id)["status"] == "Available"
        assert store.get(RecordKind.REQUEST, request_id)["status"] == "Pending"

    def test_cannot_cancel_in_transit(self, orchestrator, paid_donation, now):
        donation_id, _, assignment_id = paid_donation
        orchestrator.accept_delivery(assignment_id, "partner-001", now)
        orchestrator.begin_pickup(donation_id, "partner-001", now)

        assert orchestrator.cancel_fulfillment(donation_id, "Too late", now).outcome == Outcome.INVALID

    def test_cannot_cancel_available_donation(self, orchestrator, list_donation, now):
        donation_id = list_donation()

        assert orchestrator.cancel_fulfillment(donation_id, "Nothing to cancel", now).outcome == Outcome.INVALID
