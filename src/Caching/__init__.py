"""
Cache Management System

Expiring, namespaced key/value cache used by the data hooks for instant paint
while fresh data is fetched.
"""

# Import public API components for easier access
from src.Caching.local_store import (
    LocalStore,
    MemoryStore,
    JsonFileStore,
    DEFAULT_CAPACITY_BYTES
)
from src.Caching.cache_manager import (
    CacheEntry,
    ExpiringCache,
    CACHE_KEYS,
    CACHE_TTL,
    DEFAULT_NAMESPACE
)

__all__ = [
    'LocalStore',
    'MemoryStore',
    'JsonFileStore',
    'DEFAULT_CAPACITY_BYTES',
    'CacheEntry',
    'ExpiringCache',
    'CACHE_KEYS',
    'CACHE_TTL',
    'DEFAULT_NAMESPACE',
]
