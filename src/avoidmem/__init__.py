"""avoid-memory: adaptive memory for an avoidance coaching assistant."""

__version__ = "0.1.0"

from avoidmem.config import Config
from avoidmem.engine import MemoryEngine, open_memory_engine
from avoidmem.storage import InMemoryStore, SQLiteStore, StoragePort
from avoidmem.types import Memory, MemoryContext, MemoryType, PatternSummary, Session, SessionStatus

__all__ = [
    "__version__",
    "Config",
    "InMemoryStore",
    "Memory",
    "MemoryContext",
    "MemoryEngine",
    "MemoryType",
    "PatternSummary",
    "SQLiteStore",
    "Session",
    "SessionStatus",
    "StoragePort",
    "open_memory_engine",
]
