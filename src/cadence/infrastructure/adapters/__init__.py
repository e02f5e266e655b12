# Infrastructure Persistence Adapters Package
from .memory import InMemoryCardStateRepository, InMemoryReviewLog
from .sqlite import SqliteCardStateRepository, SqliteReviewLog, SqliteStore

__all__ = [
    "InMemoryCardStateRepository",
    "InMemoryReviewLog",
    "SqliteCardStateRepository",
    "SqliteReviewLog",
    "SqliteStore",
]
