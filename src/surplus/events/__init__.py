"""Outbound domain events: sink port, in-memory sink and the outbox relay.

Provides get_sink() / set_sink() to swap the sink the relay publishes to.
"""

from surplus.events.relay import OutboxRelay
from surplus.events.sink import EventSink, InMemoryEventSink, LoggingEventSink

__all__ = ["EventSink", "InMemoryEventSink", "LoggingEventSink", "OutboxRelay", "get_sink", "reset_sink", "set_sink"]

_current_sink: EventSink | None = None


def get_sink() -> EventSink:
    """Return the current event sink. Defaults to InMemoryEventSink."""
    global _current_sink
    if _current_sink is None:
        _current_sink = InMemoryEventSink()
    return _current_sink


def set_sink(sink: EventSink) -> None:
    global _current_sink
    _current_sink = sink


def reset_sink() -> None:
    global _current_sink
    _current_sink = None
