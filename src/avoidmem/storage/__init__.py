"""Storage backings for the memory engine."""

from avoidmem.storage.base import StoragePort
from avoidmem.storage.memory_store import InMemoryStore
from avoidmem.storage.sqlite_store import SQLiteStore

__all__ = ["StoragePort", "InMemoryStore", "SQLiteStore"]
