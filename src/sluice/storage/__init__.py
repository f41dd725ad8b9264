"""Storage layer for SLUICE."""

from .collections import RecordCollection
from .store import FallbackStore, KeyValueStore, MemoryStore, RedisStore, create_store

__all__ = [
    "FallbackStore",
    "KeyValueStore",
    "MemoryStore",
    "RecordCollection",
    "RedisStore",
    "create_store",
]
