"""Shared BDD fixtures and step definitions for the surplus core."""

from datetime import timedelta

import pytest
from pytest_bdd import given, parsers, then, when

from surplus.fulfillment.results import Outcome
from surplus.store.port import RecordKind


@pytest.fixture()
def journey(now):
    """Ids, results and the clock shared by the steps of one scenario."""
    return {"now": now, "requests": {}, "last": None, "donation_id": None, "assignment_id": None, "bill_id": None}


def _record(journey, result):
    journey["last"] = result
    if result.assignment_id:
        journey["assignment_id"] = result.assignment_id
    if result.bill_id:
        journey["bill_id"] = result.bill_id
    return result


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(
    parsers.cfparse("a {category} donation of {quantity:d} {unit} worth {value:d} that spoils in {hours:d} hours"),
)
def _listed_donation(orchestrator, journey, category, quantity, unit, value, hours):
    now = journey["now"]
    result = orchestrator.list_donation(
        donor_id="donor-bdd-001",
        category=category,
        quantity=quantity,
        unit=unit,
        listed_value=float(value),
        spoil_deadline=now + timedelta(hours=hours),
        address="12 Market Street",
        latitude=12.9716,
        longitude=77.5946,
        now=now,
    )
    assert result.ok, result.message
    journey["donation_id"] = result.donation_id


@given(parsers.cfparse('a pending request "{label}" for {quantity:d} {unit} of {category}'))
def _pending_request(orchestrator, journey, label, quantity, unit, category):
    result = orchestrator.open_request(
        requester_id=f"requester-bdd-{label}",
        category=category,
        quantity=quantity,
        unit=unit,
        address="48 Temple Road",
        latitude=12.9816,
        longitude=77.6046,
        now=journey["now"],
    )
    assert result.ok, result.message
    journey["requests"][label] = result.request_id


@given(parsers.cfparse('request "{label}" has claimed the donation'))
def _claimed(orchestrator, journey, label):
    result = orchestrator.claim_donation(journey["requests"][label], journey["donation_id"], journey["now"])
    assert result.ok, result.message


@given("the claimant has paid")
def _paid(orchestrator, journey):
    result = _record(journey, orchestrator.request_payment(journey["donation_id"], journey["now"]))
    assert result.ok, result.message


@given(parsers.cfparse('the payment authority declines with "{reason}"'))
def _authority_declines(authority, reason):
    authority.configure(should_succeed=False, failure_reason=reason)


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(parsers.cfparse("{hours:d} hours pass"))
def _time_passes(journey, hours):
    journey["now"] = journey["now"] + timedelta(hours=hours)


@when(parsers.cfparse('request "{label}" claims the donation'))
def _claim(orchestrator, journey, label):
    _record(journey, orchestrator.claim_donation(journey["requests"][label], journey["donation_id"], journey["now"]))


@when("the claimant pays")
def _pay(orchestrator, journey):
    _record(journey, orchestrator.request_payment(journey["donation_id"], journey["now"]))


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse("the last outcome is {outcome}"))
def _last_outcome(journey, outcome):
    result = journey["last"]
    assert result.outcome == Outcome[outcome], result.message


@then(parsers.cfparse('the donation status is "{status}"'))
def _donation_status(orchestrator, journey, status):
    assert orchestrator.donation_view(journey["donation_id"], journey["now"])["status"] == status


@then(parsers.cfparse('request "{label}" is "{status}"'))
def _request_status(store, journey, label, status):
    assert store.get(RecordKind.REQUEST, journey["requests"][label])["status"] == status


@then(parsers.cfparse('the bill status is "{status}"'))
def _bill_status(store, journey, status):
    assert store.get(RecordKind.BILL, journey["bill_id"])["status"] == status
