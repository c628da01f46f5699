"""In-memory entity store for development and testing.

A single lock makes each ``commit`` one indivisible step: every guard in
the batch is checked and every change applied while the lock is held. The
lock never outlives a commit, so no caller holds it across a payment
authority call or any other blocking boundary.
"""

import threading
from collections.abc import Iterable, Sequence
from itertools import count
from typing import Any

import structlog

from surplus.errors import ConflictError, IntegrityError
from surplus.store.port import ConditionalUpdate, EntityStore, NewRecord, OutboxMessage, RecordKind

logger = structlog.get_logger(__name__)


def _matches(row: dict, criteria: dict[str, Any]) -> bool:
    for name, wanted in criteria.items():
        value = row.get(name)
        if isinstance(wanted, (list, tuple, set, frozenset)):
            if value not in wanted:
                return False
        elif value != wanted:
            return False
    return True


class InMemoryEntityStore(EntityStore):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tables: dict[RecordKind, dict[str, dict]] = {kind: {} for kind in RecordKind}
        self._outbox: list[OutboxMessage] = []
        self._positions = count(1)

    def get(self, kind: RecordKind, record_id: str) -> dict | None:
        with self._lock:
            row = self._tables[kind].get(str(record_id))
            return dict(row) if row is not None else None

    def find(self, kind: RecordKind, order_by: str | None = None, limit: int | None = None, **criteria: Any) -> list[dict]:
        with self._lock:
            rows = [dict(row) for row in self._tables[kind].values() if _matches(row, criteria)]
        if order_by:
            rows.sort(key=lambda row: (row.get(order_by) is None, row.get(order_by)))
        return rows[:limit] if limit is not None else rows

    def commit(
        self,
        updates: Sequence[ConditionalUpdate] = (),
        inserts: Sequence[NewRecord] = (),
        messages: Sequence[OutboxMessage] = (),
    ) -> None:
        with self._lock:
            # Check everything first so a failed guard leaves no trace
            for update in updates:
                table = self._tables[update.kind]
                current = table.get(update.record_id)
                if current is None or not _matches(current, dict(update.expected)):
                    logger.debug(
                        "Conditional update rejected",
                        kind=update.kind.value,
                        record_id=update.record_id,
                        expected=dict(update.expected),
                    )
                    raise ConflictError(
                        update.kind.value,
                        update.record_id,
                        expected=update.expected,
                        current=dict(current) if current is not None else None,
                    )
            for record in inserts:
                record_id = str(record.values["id"])
                if record_id in self._tables[record.kind]:
                    raise IntegrityError(f"Duplicate {record.kind.value} id {record_id}")

            for update in updates:
                row = self._tables[update.kind][update.record_id]
                row.update(update.changes)
                row["version"] = row.get("version", 0) + 1
            for record in inserts:
                self._tables[record.kind][str(record.values["id"])] = dict(record.values)
            for message in messages:
                self._outbox.append(
                    OutboxMessage(
                        message_id=message.message_id,
                        topic=message.topic,
                        stream=message.stream,
                        payload=dict(message.payload),
                        created_at=message.created_at,
                        position=next(self._positions),
                    )
                )

    def pending_messages(self, limit: int = 100) -> list[OutboxMessage]:
        with self._lock:
            return self._outbox[:limit]

    def mark_delivered(self, message_ids: Iterable[str]) -> None:
        delivered = set(message_ids)
        with self._lock:
            self._outbox = [message for message in self._outbox if message.message_id not in delivered]

    def reset(self) -> None:
        """Drop every record and message (test isolation)."""
        with self._lock:
            self._tables = {kind: {} for kind in RecordKind}
            self._outbox = []
            self._positions = count(1)
