"""Keyed storage for OAuth proxy state."""

from .store import BaseStore, MemoryStore, RedisConnection, RedisStore, create_store

__all__ = ["BaseStore", "MemoryStore", "RedisConnection", "RedisStore", "create_store"]
