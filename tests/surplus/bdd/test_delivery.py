"""BDD tests for delivering a paid donation."""

from pytest_bdd import parsers, scenarios, then, when

from surplus.store.port import RecordKind

scenarios("features/delivery.feature")


def _record(journey, result):
    journey["last"] = result
    return result


@when(parsers.cfparse('partner "{partner}" accepts the offer'))
def accept(orchestrator, journey, partner):
    _record(journey, orchestrator.accept_delivery(journey["assignment_id"], partner, journey["now"]))


@when(parsers.cfparse('partner "{partner}" declines the offer'))
def decline(orchestrator, journey, partner):
    result = _record(journey, orchestrator.decline_delivery(journey["assignment_id"], partner, journey["now"]))
    journey["assignment_id"] = result.assignment_id


@when(parsers.cfparse('partner "{partner}" picks up the donation'))
def pick_up(orchestrator, journey, partner):
    _record(journey, orchestrator.begin_pickup(journey["donation_id"], partner, journey["now"]))


@when("the delivery is completed")
def complete(orchestrator, journey):
    _record(journey, orchestrator.complete_delivery(journey["donation_id"], journey["now"]))


@when(parsers.cfparse('the fulfillment is cancelled with reason "{reason}"'))
def cancel(orchestrator, journey, reason):
    _record(journey, orchestrator.cancel_fulfillment(journey["donation_id"], reason, journey["now"]))


@then(parsers.cfparse('the donation is assigned to partner "{partner}"'))
def assigned_to(orchestrator, journey, partner):
    assert orchestrator.donation_view(journey["donation_id"], journey["now"])["assigned_partner_id"] == partner


@then(parsers.cfparse("offer round {offer_round:d} is open"))
def round_open(store, journey, offer_round):
    assignment = store.get(RecordKind.ASSIGNMENT, journey["assignment_id"])
    assert assignment["status"] == "Offered"
    assert assignment["offer_round"] == offer_round
