"""SurplusLine management CLI.

Creates and drops the entity store schema and runs the maintenance jobs
that keep the store tidy: the expiry sweep and the outbox relay.

Usage:
    python src/manage.py setup-db        # Create all tables
    python src/manage.py drop-db         # Drop all tables
    python src/manage.py sweep-expired   # Persist expiry of overdue donations
    python src/manage.py flush-outbox    # Publish pending domain events
"""

import argparse
import sys
from datetime import UTC, datetime


def _sql_store(database_uri=None):
    from surplus.config import load_settings
    from surplus.store import SqlAlchemyEntityStore

    uri = database_uri or load_settings().database_uri
    if not uri:
        print("No database configured; set SURPLUS_DATABASE_URI or pass --database-uri.")
        sys.exit(1)
    return SqlAlchemyEntityStore(uri)


def setup_database(database_uri=None):
    """Create the entity store tables."""
    store = _sql_store(database_uri)
    print("Creating surplus database schema...")
    store.create_schema()
    print("Done.")


def drop_database(database_uri=None):
    """Drop the entity store tables."""
    store = _sql_store(database_uri)
    print("Dropping surplus database schema...")
    store.drop_schema()
    print("Done.")


def sweep_expired(database_uri=None):
    """Expire overdue donations and report stranded paid ones."""
    from surplus.domain import surplus
    from surplus.fulfillment import ExpirySweeper

    surplus.init()
    store = _sql_store(database_uri)
    with surplus.domain_context():
        report = ExpirySweeper(store).sweep(datetime.now(UTC))
    print(f"Expired {len(report.expired)} donation(s), released {len(report.released_requests)} request(s).")
    if report.stranded:
        print(f"Stranded paid donations past their deadline: {', '.join(report.stranded)}")
    if report.conflicts:
        print(f"Skipped after repeated conflicts: {', '.join(report.conflicts)}")


def flush_outbox(database_uri=None):
    """Publish every pending outbox message to the structured log."""
    from surplus.events import LoggingEventSink, OutboxRelay

    store = _sql_store(database_uri)
    published = OutboxRelay(store, LoggingEventSink()).flush()
    print(f"Published {published} message(s).")


def main():
    from surplus.utils.logging import configure_logging, operation

    parser = argparse.ArgumentParser(description="SurplusLine management")
    parser.add_argument("--database-uri", help="Override SURPLUS_DATABASE_URI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")
    subparsers.add_parser("sweep-expired", help="Persist expiry of donations past their spoil deadline")
    subparsers.add_parser("flush-outbox", help="Publish pending domain events")

    args = parser.parse_args()
    configure_logging()

    commands = {
        "setup-db": setup_database,
        "drop-db": drop_database,
        "sweep-expired": sweep_expired,
        "flush-outbox": flush_outbox,
    }
    command = commands.get(args.command)
    if command is None:
        parser.print_help()
        sys.exit(1)
    with operation(command=args.command):
        command(args.database_uri)


if __name__ == "__main__":
    main()
