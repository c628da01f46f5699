"""Entity store factory.

Provides get_store() / set_store() to swap implementations:
- InMemoryEntityStore for development and testing
- SqlAlchemyEntityStore when SURPLUS_DATABASE_URI is configured
"""

from surplus.config import load_settings
from surplus.store.memory import InMemoryEntityStore
from surplus.store.port import ConditionalUpdate, EntityStore, NewRecord, OutboxMessage, RecordKind
from surplus.store.sqlalchemy_store import SqlAlchemyEntityStore

__all__ = [
    "ConditionalUpdate",
    "EntityStore",
    "InMemoryEntityStore",
    "NewRecord",
    "OutboxMessage",
    "RecordKind",
    "SqlAlchemyEntityStore",
    "get_store",
    "reset_store",
    "set_store",
]

_current_store: EntityStore | None = None


def get_store() -> EntityStore:
    """Return the current entity store, building it from settings on first use."""
    global _current_store
    if _current_store is None:
        settings = load_settings()
        if settings.database_uri:
            _current_store = SqlAlchemyEntityStore(settings.database_uri)
        else:
            _current_store = InMemoryEntityStore()
    return _current_store


def set_store(store: EntityStore) -> None:
    """Override the active entity store (useful for tests)."""
    global _current_store
    _current_store = store


def reset_store() -> None:
    """Reset to the default store."""
    global _current_store
    _current_store = None
