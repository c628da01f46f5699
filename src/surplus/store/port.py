"""Entity store port (abstract interface).

The store owns every persisted Donation, FoodRequest, DeliveryAssignment and
Bill record, plus the outbox of domain events waiting to be relayed.

Its one write primitive is ``commit``: a batch of conditional updates, new
records and outbox messages applied as a single atomic unit. Each
conditional update reads "set these fields iff the record's current values
equal ``expected``". If any guard fails, nothing in the batch is applied and
``ConflictError`` is raised. Adapters must enforce the guard inside the
storage engine itself (one compare-and-set per record), never as a read in
application code followed by a separate write.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class RecordKind(Enum):
    DONATION = "donation"
    REQUEST = "request"
    ASSIGNMENT = "assignment"
    BILL = "bill"


@dataclass(frozen=True)
class ConditionalUpdate:
    """Apply ``changes`` to a record iff its fields equal ``expected``.

    An empty ``changes`` is a pure guard: the record is only checked (and its
    version bumped), which serializes the batch against other writers.
    """

    kind: RecordKind
    record_id: str
    expected: Mapping[str, Any]
    changes: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class NewRecord:
    kind: RecordKind
    values: Mapping[str, Any]


@dataclass(frozen=True)
class OutboxMessage:
    """A domain event waiting to be published to its topic."""

    message_id: str
    topic: str
    stream: str
    payload: Mapping[str, Any]
    created_at: datetime
    position: int | None = None


class EntityStore(ABC):
    """Durable storage with an atomic multi-record conditional update."""

    @abstractmethod
    def get(self, kind: RecordKind, record_id: str) -> dict | None:
        """Return a copy of the record, or None when it does not exist."""
        ...

    @abstractmethod
    def find(self, kind: RecordKind, order_by: str | None = None, limit: int | None = None, **criteria: Any) -> list[dict]:
        """Secondary lookup by field equality.

        A list, tuple or set criterion matches any of its values (used for
        status lookups such as ``status=("Available", "Claimed")``).
        """
        ...

    @abstractmethod
    def commit(
        self,
        updates: Sequence[ConditionalUpdate] = (),
        inserts: Sequence[NewRecord] = (),
        messages: Sequence[OutboxMessage] = (),
    ) -> None:
        """Apply the whole batch atomically or raise without applying any of it."""
        ...

    @abstractmethod
    def pending_messages(self, limit: int = 100) -> list[OutboxMessage]:
        """Undelivered outbox messages in commit order."""
        ...

    @abstractmethod
    def mark_delivered(self, message_ids: Iterable[str]) -> None:
        ...

    def compare_and_set(
        self,
        kind: RecordKind,
        record_id: str,
        expected: Mapping[str, Any],
        changes: Mapping[str, Any],
    ) -> None:
        """Single-record conditional update."""
        self.commit(updates=[ConditionalUpdate(kind, record_id, expected, changes)])

    def insert(self, kind: RecordKind, values: Mapping[str, Any]) -> None:
        self.commit(inserts=[NewRecord(kind, values)])
