"""Relational entity store on SQLAlchemy Core.

Every conditional update is a single ``UPDATE ... WHERE <guards>`` whose
row count tells whether the guard held; the whole batch runs inside one
``engine.begin()`` transaction, so a failed guard rolls back everything
written before it. Works with any backend SQLAlchemy supports (PostgreSQL
in production, SQLite for local runs and tests).
"""

from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from typing import Any

import structlog
from sqlalchemy import create_engine, insert, select, update
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError as DatabaseIntegrityError

from surplus.errors import ConflictError, IntegrityError
from surplus.store.port import ConditionalUpdate, EntityStore, NewRecord, OutboxMessage, RecordKind
from surplus.store.schema import TABLES, metadata, outbox

logger = structlog.get_logger(__name__)


def _where(table, criteria: dict[str, Any]) -> list:
    clauses = []
    for name, wanted in criteria.items():
        column = table.c[name]
        if isinstance(wanted, (list, tuple, set, frozenset)):
            clauses.append(column.in_(list(wanted)))
        elif wanted is None:
            clauses.append(column.is_(None))
        else:
            clauses.append(column == wanted)
    return clauses


class SqlAlchemyEntityStore(EntityStore):
    def __init__(self, engine: Engine | str) -> None:
        self.engine = create_engine(engine) if isinstance(engine, str) else engine

    def create_schema(self) -> None:
        metadata.create_all(self.engine)

    def drop_schema(self) -> None:
        metadata.drop_all(self.engine)

    def get(self, kind: RecordKind, record_id: str) -> dict | None:
        table = TABLES[kind]
        with self.engine.connect() as conn:
            row = conn.execute(select(table).where(table.c.id == str(record_id))).mappings().first()
        return dict(row) if row is not None else None

    def find(self, kind: RecordKind, order_by: str | None = None, limit: int | None = None, **criteria: Any) -> list[dict]:
        table = TABLES[kind]
        query = select(table).where(*_where(table, criteria))
        if order_by:
            query = query.order_by(table.c[order_by])
        if limit is not None:
            query = query.limit(limit)
        with self.engine.connect() as conn:
            return [dict(row) for row in conn.execute(query).mappings()]

    def _apply(self, conn: Connection, change: ConditionalUpdate) -> None:
        table = TABLES[change.kind]
        statement = (
            update(table)
            .where(table.c.id == change.record_id, *_where(table, dict(change.expected)))
            .values(**dict(change.changes), version=table.c.version + 1)
        )
        if conn.execute(statement).rowcount != 1:
            current = conn.execute(select(table).where(table.c.id == change.record_id)).mappings().first()
            logger.debug(
                "Conditional update rejected",
                kind=change.kind.value,
                record_id=change.record_id,
                expected=dict(change.expected),
            )
            raise ConflictError(
                change.kind.value,
                change.record_id,
                expected=change.expected,
                current=dict(current) if current is not None else None,
            )

    def commit(
        self,
        updates: Sequence[ConditionalUpdate] = (),
        inserts: Sequence[NewRecord] = (),
        messages: Sequence[OutboxMessage] = (),
    ) -> None:
        try:
            with self.engine.begin() as conn:
                for change in updates:
                    self._apply(conn, change)
                for record in inserts:
                    conn.execute(insert(TABLES[record.kind]).values(**dict(record.values)))
                if messages:
                    conn.execute(
                        insert(outbox),
                        [
                            {
                                "message_id": message.message_id,
                                "topic": message.topic,
                                "stream": message.stream,
                                "payload": dict(message.payload),
                                "created_at": message.created_at,
                            }
                            for message in messages
                        ],
                    )
        except DatabaseIntegrityError as exc:
            raise IntegrityError(f"Store rejected the commit: {exc.orig}") from exc

    def pending_messages(self, limit: int = 100) -> list[OutboxMessage]:
        query = select(outbox).where(outbox.c.delivered_at.is_(None)).order_by(outbox.c.position).limit(limit)
        with self.engine.connect() as conn:
            rows = conn.execute(query).mappings().all()
        return [
            OutboxMessage(
                message_id=row["message_id"],
                topic=row["topic"],
                stream=row["stream"],
                payload=row["payload"],
                created_at=row["created_at"],
                position=row["position"],
            )
            for row in rows
        ]

    def mark_delivered(self, message_ids: Iterable[str]) -> None:
        ids = list(message_ids)
        if not ids:
            return
        with self.engine.begin() as conn:
            conn.execute(
                update(outbox).where(outbox.c.message_id.in_(ids)).values(delivered_at=datetime.now(UTC))
            )
