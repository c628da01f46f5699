"""Tests for the management CLI against a SQLite file."""

import pytest

import manage
from surplus.store import SqlAlchemyEntityStore
from surplus.store.port import OutboxMessage, RecordKind


@pytest.fixture(autouse=True)
def _keep_test_logging(monkeypatch):
    monkeypatch.setattr("surplus.utils.logging.configure_logging", lambda *args, **kwargs: None)


@pytest.fixture()
def database_uri(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return f"sqlite:///{tmp_path / 'cli.db'}"


def _run(monkeypatch, *argv):
    monkeypatch.setattr("sys.argv", ["manage.py", *argv])
    manage.main()


def test_setup_db_creates_tables(database_uri, monkeypatch, capsys):
    _run(monkeypatch, "--database-uri", database_uri, "setup-db")

    assert "Done." in capsys.readouterr().out
    assert SqlAlchemyEntityStore(database_uri).find(RecordKind.DONATION) == []


def test_flush_outbox_publishes_pending(database_uri, monkeypatch, capsys, now):
    _run(monkeypatch, "--database-uri", database_uri, "setup-db")
    store = SqlAlchemyEntityStore(database_uri)
    store.commit(
        messages=[OutboxMessage(message_id="m1", topic="DonationListed", stream="d1", payload={}, created_at=now)]
    )

    _run(monkeypatch, "--database-uri", database_uri, "flush-outbox")

    assert "Published 1 message(s)." in capsys.readouterr().out
    assert store.pending_messages() == []


def test_missing_database_exits(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("SURPLUS_DATABASE_URI", raising=False)

    with pytest.raises(SystemExit):
        _run(monkeypatch, "setup-db")
