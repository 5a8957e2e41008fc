"""quotedesk.storage: persistence for the instrument registry and price cache."""

from quotedesk.storage.store import SqliteStore, StoreProtocol, create_store

__all__ = [
    "StoreProtocol",
    "SqliteStore",
    "create_store",
]
