"""Event sink port with in-memory and logging sinks.

The notification transport is outside the core. Whatever delivers
messages to donors, requesters and partners subscribes to one topic per
event type (``DonationClaimed``, ``DeliveryOffered``, ...). Delivery is
at-least-once, so subscribers must tolerate duplicates by ``message_id``.
"""

import threading
from abc import ABC, abstractmethod
from collections import defaultdict

import structlog

from surplus.store.port import OutboxMessage


class EventSink(ABC):
    @abstractmethod
    def publish(self, message: OutboxMessage) -> None:
        """Deliver ``message`` to its topic. Raising leaves it in the outbox."""
        ...


class InMemoryEventSink(EventSink):
    """Keeps published messages per topic, in publish order."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.topics: dict[str, list[OutboxMessage]] = defaultdict(list)
        self.published: list[OutboxMessage] = []

    def publish(self, message: OutboxMessage) -> None:
        with self._lock:
            self.topics[message.topic].append(message)
            self.published.append(message)

    def messages(self, topic: str) -> list[OutboxMessage]:
        with self._lock:
            return list(self.topics.get(topic, []))

    def for_stream(self, stream: str) -> list[OutboxMessage]:
        """Everything published about one donation, in order."""
        with self._lock:
            return [message for message in self.published if message.stream == stream]

    def clear(self) -> None:
        with self._lock:
            self.topics.clear()
            self.published.clear()


class LoggingEventSink(EventSink):
    """Writes each message to the structured log, one line per event."""

    def __init__(self) -> None:
        self.logger = structlog.get_logger("surplus.events")

    def publish(self, message: OutboxMessage) -> None:
        self.logger.info(
            "Domain event",
            topic=message.topic,
            stream=message.stream,
            message_id=message.message_id,
            payload=dict(message.payload),
        )
