from datetime import UTC, datetime, timedelta

import pytest
from protean.integrations.pytest import DomainFixture

from surplus.config import Settings
from surplus.events import InMemoryEventSink, reset_sink, set_sink
from surplus.fulfillment import FulfillmentOrchestrator
from surplus.payment import FakePaymentAuthority, reset_authority, set_authority
from surplus.store import InMemoryEntityStore, reset_store, set_store

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


@pytest.fixture(scope="session")
def surplus_bed():
    from surplus.domain import surplus

    bed = DomainFixture(surplus)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(surplus_bed):
    with surplus_bed.domain_context():
        yield


@pytest.fixture()
def now():
    return NOW


@pytest.fixture()
def settings():
    return Settings(retry_backoff_seconds=0.0)


@pytest.fixture()
def store():
    store = InMemoryEntityStore()
    set_store(store)
    yield store
    reset_store()


@pytest.fixture()
def authority():
    authority = FakePaymentAuthority()
    set_authority(authority)
    yield authority
    reset_authority()


@pytest.fixture()
def sink():
    sink = InMemoryEventSink()
    set_sink(sink)
    yield sink
    reset_sink()


@pytest.fixture()
def orchestrator(store, authority, settings):
    return FulfillmentOrchestrator(store, authority, settings)


@pytest.fixture()
def list_donation(orchestrator, now):
    """List a donation through the orchestrator and return its id."""

    def _list(**overrides):
        values = {
            "donor_id": "donor-001",
            "category": "PackagedFood",
            "quantity": 10,
            "unit": "packets",
            "listed_value": 1000.0,
            "spoil_deadline": now + timedelta(hours=72),
            "address": "12 Market Street",
            "latitude": 12.9716,
            "longitude": 77.5946,
            "now": now,
        }
        values.update(overrides)
        result = orchestrator.list_donation(**values)
        assert result.ok, result.message
        return result.donation_id

    return _list


@pytest.fixture()
def open_request(orchestrator, now):
    """Open a request through the orchestrator and return its id."""

    def _open(**overrides):
        values = {
            "requester_id": "requester-001",
            "category": "PackagedFood",
            "quantity": 5,
            "unit": "packets",
            "address": "48 Temple Road",
            "latitude": 12.9816,
            "longitude": 77.6046,
            "now": now,
        }
        values.update(overrides)
        result = orchestrator.open_request(**values)
        assert result.ok, result.message
        return result.request_id

    return _open


@pytest.fixture()
def paid_donation(orchestrator, list_donation, open_request, now):
    """A donation claimed and paid for, with its first delivery offer open.

    Returns (donation_id, request_id, assignment_id).
    """
    donation_id = list_donation()
    request_id = open_request()
    assert orchestrator.claim_donation(request_id, donation_id, now).ok
    result = orchestrator.request_payment(donation_id, now + timedelta(minutes=5))
    assert result.ok, result.message
    return donation_id, request_id, result.assignment_id
