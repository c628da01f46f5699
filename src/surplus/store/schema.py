"""Relational layout of the entity store.

One table per record kind, keyed by id, with indexes for the secondary
lookups the core performs (status, donor/requester/partner references), and
an outbox table whose autoincrement ``position`` fixes the relay order.
"""

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    MetaData,
    String,
    Table,
)

from surplus.store.port import RecordKind

metadata = MetaData()

donations = Table(
    "donations",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("donor_id", String(64), nullable=False),
    Column("category", String(32), nullable=False),
    Column("quantity_amount", Float, nullable=False),
    Column("quantity_unit", String(20), nullable=False),
    Column("listed_value", Float, nullable=False),
    Column("address", String(500), nullable=False),
    Column("latitude", Float),
    Column("longitude", Float),
    Column("status", String(32), nullable=False),
    Column("claimant_request_id", String(64)),
    Column("assigned_partner_id", String(64)),
    Column("spoil_deadline", DateTime(timezone=True), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True)),
    Column("version", Integer, nullable=False, default=0),
    Index("ix_donations_status", "status"),
    Index("ix_donations_donor_id", "donor_id"),
    Index("ix_donations_assigned_partner_id", "assigned_partner_id"),
)

requests = Table(
    "food_requests",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("requester_id", String(64), nullable=False),
    Column("category", String(32), nullable=False),
    Column("quantity_amount", Float, nullable=False),
    Column("quantity_unit", String(20), nullable=False),
    Column("urgency", String(16), nullable=False),
    Column("address", String(500), nullable=False),
    Column("latitude", Float),
    Column("longitude", Float),
    Column("status", String(32), nullable=False),
    Column("donation_id", String(64)),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True)),
    Column("version", Integer, nullable=False, default=0),
    Index("ix_food_requests_status", "status"),
    Index("ix_food_requests_requester_id", "requester_id"),
)

assignments = Table(
    "delivery_assignments",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("donation_id", String(64), nullable=False),
    Column("partner_id", String(64)),
    Column("offer_round", Integer, nullable=False),
    Column("status", String(32), nullable=False),
    Column("decline_reason", String(500)),
    Column("offered_at", DateTime(timezone=True), nullable=False),
    Column("responded_at", DateTime(timezone=True)),
    Column("completed_at", DateTime(timezone=True)),
    Column("version", Integer, nullable=False, default=0),
    Index("ix_delivery_assignments_donation_id", "donation_id"),
    Index("ix_delivery_assignments_partner_id", "partner_id"),
    Index("ix_delivery_assignments_status", "status"),
)

bills = Table(
    "bills",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("donation_id", String(64), nullable=False),
    Column("request_id", String(64), nullable=False),
    Column("donor_id", String(64), nullable=False),
    Column("receiver_id", String(64), nullable=False),
    Column("original_value", Float, nullable=False),
    Column("final_price", Integer, nullable=False),
    Column("discount_percent", Integer, nullable=False),
    Column("time_factor_percent", Integer, nullable=False),
    Column("quantity_factor_percent", Integer, nullable=False),
    Column("category_factor_percent", Integer, nullable=False),
    Column("platform_fee_fraction", Float, nullable=False),
    Column("platform_fee_amount", Float, nullable=False),
    Column("transaction_id", String(255), nullable=False),
    Column("currency", String(3), nullable=False),
    Column("status", String(32), nullable=False),
    Column("refund_id", String(255)),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("finalized_at", DateTime(timezone=True)),
    Column("refunded_at", DateTime(timezone=True)),
    Column("version", Integer, nullable=False, default=0),
    Index("ix_bills_donation_id", "donation_id"),
    Index("ix_bills_status", "status"),
    Index("ix_bills_donor_id", "donor_id"),
    Index("ix_bills_receiver_id", "receiver_id"),
)

outbox = Table(
    "outbox",
    metadata,
    Column("position", Integer, primary_key=True, autoincrement=True),
    Column("message_id", String(64), nullable=False, unique=True),
    Column("topic", String(100), nullable=False),
    Column("stream", String(64), nullable=False),
    Column("payload", JSON, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("delivered_at", DateTime(timezone=True)),
    Index("ix_outbox_delivered_at", "delivered_at"),
)

TABLES = {
    RecordKind.DONATION: donations,
    RecordKind.REQUEST: requests,
    RecordKind.ASSIGNMENT: assignments,
    RecordKind.BILL: bills,
}

COLUMNS = {kind: tuple(column.name for column in table.columns) for kind, table in TABLES.items()}

DATETIME_COLUMNS = {
    kind: frozenset(column.name for column in table.columns if isinstance(column.type, DateTime))
    for kind, table in TABLES.items()
}
