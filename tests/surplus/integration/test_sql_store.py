"""Integration tests for the SQLAlchemy entity store on a SQLite file."""

from datetime import UTC, datetime, timedelta, timezone

import pytest

from surplus.errors import ConflictError, IntegrityError
from surplus.events import InMemoryEventSink, OutboxRelay
from surplus.fulfillment import ExpirySweeper, FulfillmentOrchestrator
from surplus.fulfillment.results import Outcome
from surplus.store import SqlAlchemyEntityStore
from surplus.store.port import ConditionalUpdate, NewRecord, OutboxMessage, RecordKind

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


@pytest.fixture()
def sql_store(tmp_path):
    store = SqlAlchemyEntityStore(f"sqlite:///{tmp_path / 'surplus.db'}")
    store.create_schema()
    yield store
    store.drop_schema()
    store.engine.dispose()


@pytest.fixture()
def sql_orchestrator(sql_store, authority, settings):
    return FulfillmentOrchestrator(sql_store, authority, settings)


def _list(orchestrator, **overrides):
    values = {
        "donor_id": "donor-sql-001",
        "category": "PackagedFood",
        "quantity": 10,
        "unit": "packets",
        "listed_value": 1000.0,
        "spoil_deadline": NOW + timedelta(hours=72),
        "address": "12 Market Street",
        "latitude": 12.9716,
        "longitude": 77.5946,
        "now": NOW,
    }
    values.update(overrides)
    result = orchestrator.list_donation(**values)
    assert result.ok, result.message
    return result.donation_id


def _open(orchestrator, requester_id="requester-sql-001"):
    result = orchestrator.open_request(
        requester_id=requester_id,
        category="PackagedFood",
        quantity=5,
        unit="packets",
        address="48 Temple Road",
        now=NOW,
    )
    assert result.ok, result.message
    return result.request_id


def _message(message_id, topic="DonationClaimed"):
    return OutboxMessage(message_id=message_id, topic=topic, stream="d1", payload={"donation_id": "d1"}, created_at=NOW)


class TestConditionalUpdates:
    def test_guarded_update_and_version(self, sql_store, sql_orchestrator):
        donation_id = _list(sql_orchestrator)

        sql_store.compare_and_set(
            RecordKind.DONATION,
            donation_id,
            {"status": "Available", "claimant_request_id": None},
            {"status": "Claimed", "claimant_request_id": "r1"},
        )

        row = sql_store.get(RecordKind.DONATION, donation_id)
        assert row["status"] == "Claimed"
        assert row["version"] == 1

    def test_stale_guard_raises_and_rolls_back(self, sql_store, sql_orchestrator):
        donation_id = _list(sql_orchestrator)
        request_id = _open(sql_orchestrator)
        sql_store.compare_and_set(RecordKind.DONATION, donation_id, {"status": "Available"}, {"status": "Claimed"})

        with pytest.raises(ConflictError) as exc:
            sql_store.commit(
                updates=[
                    ConditionalUpdate(RecordKind.REQUEST, request_id, {"status": "Pending"}, {"status": "Claimed"}),
                    ConditionalUpdate(RecordKind.DONATION, donation_id, {"status": "Available"}, {"status": "Claimed"}),
                ],
                messages=[_message("m-rolled-back")],
            )

        assert exc.value.current["status"] == "Claimed"
        assert sql_store.get(RecordKind.REQUEST, request_id)["status"] == "Pending"
        assert all(message.message_id != "m-rolled-back" for message in sql_store.pending_messages(limit=1000))

    def test_duplicate_insert_is_an_integrity_error(self, sql_store, sql_orchestrator):
        donation_id = _list(sql_orchestrator)
        row = sql_store.get(RecordKind.DONATION, donation_id)

        with pytest.raises(IntegrityError):
            sql_store.commit(inserts=[NewRecord(RecordKind.DONATION, row)])

    def test_find_with_collections_and_nulls(self, sql_store, sql_orchestrator):
        first = _list(sql_orchestrator)
        second = _list(sql_orchestrator, spoil_deadline=NOW + timedelta(hours=1))

        rows = sql_store.find(
            RecordKind.DONATION,
            order_by="spoil_deadline",
            status=("Available", "Claimed"),
            claimant_request_id=None,
        )

        assert [row["id"] for row in rows] == [second, first]

    def test_datetimes_come_back_in_utc(self, sql_store, sql_orchestrator):
        donation_id = _list(sql_orchestrator)

        view = sql_orchestrator.donation_view(donation_id, NOW)

        assert view["spoil_deadline"] == NOW + timedelta(hours=72)
        assert view["spoil_deadline"].tzinfo is not None

    def test_offset_deadlines_keep_their_instant(self, sql_store, sql_orchestrator):
        india = timezone(timedelta(hours=5, minutes=30))
        deadline = (NOW + timedelta(hours=2)).astimezone(india)
        donation_id = _list(sql_orchestrator, spoil_deadline=deadline)
        request_id = _open(sql_orchestrator)

        stored = sql_orchestrator.donation_view(donation_id, NOW)["spoil_deadline"]
        assert stored == NOW + timedelta(hours=2)
        assert stored.utcoffset() == timedelta(0)

        late = NOW + timedelta(hours=2, minutes=1)
        assert sql_orchestrator.donation_view(donation_id, late)["status"] == "Expired"
        assert sql_orchestrator.claim_donation(request_id, donation_id, late).outcome == Outcome.EXPIRED


class TestOutbox:
    def test_pending_messages_in_commit_order(self, sql_store):
        sql_store.commit(messages=[_message("m1"), _message("m2", "BillIssued")])
        sql_store.commit(messages=[_message("m3", "DeliveryOffered")])

        pending = sql_store.pending_messages()

        assert [message.message_id for message in pending] == ["m1", "m2", "m3"]
        assert pending[0].payload == {"donation_id": "d1"}

    def test_relay_marks_messages_delivered(self, sql_store, sql_orchestrator):
        _list(sql_orchestrator)
        sink = InMemoryEventSink()

        assert OutboxRelay(sql_store, sink).flush() == 1
        assert sql_store.pending_messages() == []
        assert [message.topic for message in sink.published] == ["DonationListed"]


class TestOrchestratorOnSql:
    def test_second_claim_loses(self, sql_orchestrator):
        donation_id = _list(sql_orchestrator)
        first = _open(sql_orchestrator)
        second = _open(sql_orchestrator, requester_id="requester-sql-002")

        assert sql_orchestrator.claim_donation(first, donation_id, NOW).ok
        lost = sql_orchestrator.claim_donation(second, donation_id, NOW)

        assert lost.outcome == Outcome.ALREADY_CLAIMED
        view = sql_orchestrator.donation_view(donation_id, NOW)
        assert view["claimant_request_id"] == first

    def test_stale_claim_is_rejected_by_the_guard(self, sql_store, sql_orchestrator):
        donation_id = _list(sql_orchestrator)
        first = _open(sql_orchestrator)
        second = _open(sql_orchestrator, requester_id="requester-sql-002")
        claims = sql_orchestrator.claims
        donation = claims.donation(donation_id)

        assert sql_orchestrator.claim_donation(first, donation_id, NOW).ok
        with pytest.raises(ConflictError):
            claims.claim(donation, claims.request(second), NOW)

        assert sql_store.get(RecordKind.REQUEST, second)["status"] == "Pending"

    def test_full_journey(self, sql_store, sql_orchestrator):
        donation_id = _list(sql_orchestrator)
        request_id = _open(sql_orchestrator)
        sql_orchestrator.claim_donation(request_id, donation_id, NOW)
        paid = sql_orchestrator.request_payment(donation_id, NOW)
        sql_orchestrator.accept_delivery(paid.assignment_id, "partner-sql-001", NOW)
        sql_orchestrator.begin_pickup(donation_id, "partner-sql-001", NOW)

        result = sql_orchestrator.complete_delivery(donation_id, NOW + timedelta(hours=1))

        assert result.ok
        assert sql_store.get(RecordKind.DONATION, donation_id)["status"] == "Billed"
        assert sql_store.get(RecordKind.BILL, result.bill_id)["status"] == "Completed"
        history = sql_orchestrator.billing_history("donor-sql-001")
        assert [bill["final_price"] for bill in history] == [850]

    def test_sweeper(self, sql_store, sql_orchestrator, settings):
        donation_id = _list(sql_orchestrator, spoil_deadline=NOW + timedelta(hours=1))

        report = ExpirySweeper(sql_store, settings).sweep(NOW + timedelta(hours=2))

        assert report.expired == [donation_id]
        assert sql_store.get(RecordKind.DONATION, donation_id)["status"] == "Expired"
