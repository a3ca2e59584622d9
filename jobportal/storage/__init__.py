"""Transient key-value storage."""
from .kv import (
    InMemoryKeyValueStore,
    KeyValueStore,
    RedisKeyValueStore,
    create_kv_store,
)

__all__ = [
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "RedisKeyValueStore",
    "create_kv_store",
]
