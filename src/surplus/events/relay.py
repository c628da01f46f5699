"""Outbox relay: moves committed domain events to the event sink.

Messages are published in commit order. A message is marked delivered only
after the sink accepted it, so a crash between the two publishes it again
on the next flush (at-least-once).
"""

import structlog

from surplus.events.sink import EventSink
from surplus.store.port import EntityStore

logger = structlog.get_logger(__name__)


class OutboxRelay:
    def __init__(self, store: EntityStore, sink: EventSink, batch_size: int = 100) -> None:
        self.store = store
        self.sink = sink
        self.batch_size = batch_size

    def flush(self) -> int:
        """Publish every pending message. Returns how many were published."""
        published = 0
        while True:
            batch = self.store.pending_messages(limit=self.batch_size)
            if not batch:
                break
            delivered = []
            try:
                for message in batch:
                    self.sink.publish(message)
                    delivered.append(message.message_id)
            finally:
                # Whatever the sink accepted stays delivered even if a later publish failed
                self.store.mark_delivered(delivered)
            published += len(delivered)

        if published:
            logger.info("Outbox flushed", published=published)
        return published
