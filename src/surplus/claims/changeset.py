"""Turn in-memory aggregate changes into one atomic store commit.

Aggregates loaded from the store are ``track``-ed before they are mutated,
naming the fields their persisted state must still hold (the guard). At
commit time each tracked aggregate becomes a conditional update carrying
only the fields that changed, new aggregates become inserts, and every
event the aggregates raised becomes an outbox message in the same commit.
"""

import secrets
from datetime import date, datetime
from enum import Enum
from typing import Any

from surplus.billing.bill import MUTABLE_FIELDS, Bill
from surplus.errors import IntegrityError
from surplus.store.mapping import kind_of, to_row
from surplus.store.port import ConditionalUpdate, EntityStore, NewRecord, OutboxMessage


def _jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


def to_message(event, now: datetime) -> OutboxMessage:
    """Wrap a raised domain event as an outbox message on its own topic."""
    payload = {key: _jsonable(value) for key, value in event.to_dict().items() if not key.startswith("_")}
    return OutboxMessage(
        message_id=secrets.token_hex(12),
        topic=type(event).__name__,
        stream=str(payload.get("donation_id") or payload.get("request_id") or ""),
        payload=payload,
        created_at=now,
    )


class Changeset:
    def __init__(self) -> None:
        self._tracked: list[tuple[Any, dict, tuple[str, ...]]] = []
        self._added: list[Any] = []

    def track(self, aggregate, *guard_fields: str):
        """Snapshot ``aggregate`` as persisted. Call before mutating it."""
        self._tracked.append((aggregate, to_row(aggregate), guard_fields))
        return aggregate

    def add(self, aggregate):
        self._added.append(aggregate)
        return aggregate

    def _updates(self) -> list[ConditionalUpdate]:
        updates = []
        for aggregate, before, guard_fields in self._tracked:
            after = to_row(aggregate)
            changes = {name: value for name, value in after.items() if name != "version" and before.get(name) != value}
            if isinstance(aggregate, Bill) and not set(changes) <= MUTABLE_FIELDS:
                frozen = sorted(set(changes) - MUTABLE_FIELDS)
                raise IntegrityError(f"Bill {aggregate.id} is immutable once issued; attempted to change {frozen}")
            updates.append(
                ConditionalUpdate(
                    kind=kind_of(aggregate),
                    record_id=str(aggregate.id),
                    expected={name: before[name] for name in guard_fields},
                    changes=changes,
                )
            )
        return updates

    def _aggregates(self) -> list:
        return [aggregate for aggregate, _, _ in self._tracked] + self._added

    def commit(self, store: EntityStore, now: datetime) -> None:
        """Write everything at once. Raises ``ConflictError`` when a guard fails."""
        updates = self._updates()
        inserts = [NewRecord(kind_of(aggregate), to_row(aggregate)) for aggregate in self._added]
        messages = [to_message(event, now) for aggregate in self._aggregates() for event in aggregate._events]

        store.commit(updates=updates, inserts=inserts, messages=messages)

        for aggregate in self._aggregates():
            aggregate._events.clear()
