"""Session storage backends.

Abstract contracts plus three concrete variants:
    - memory: in-process dicts (reference implementation)
    - database: SQLAlchemy async (default: embedded SQLite file)
    - cache: Redis
"""

from .base import InvalidationCache, SessionStore
from .cache import RedisInvalidationCache, RedisSessionStore
from .database import Database, DatabaseInvalidationCache, DatabaseSessionStore
from .memory import MemoryInvalidationCache, MemorySessionStore

__all__ = [
    "Database",
    "DatabaseInvalidationCache",
    "DatabaseSessionStore",
    "InvalidationCache",
    "MemoryInvalidationCache",
    "MemorySessionStore",
    "RedisInvalidationCache",
    "RedisSessionStore",
    "SessionStore",
]
