"""
Cache Manager Module

Expiring key/value cache layered over a LocalStore. Entries carry their own
TTL and are checked lazily on read. The cache is best-effort: store failures
are logged and absorbed, never raised to callers.
"""

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from src.Caching.local_store import LocalStore
from src.errors import CacheError, QuotaExceededError

# Configure logging
logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "invoice_app_"

# TTL values in seconds
CACHE_TTL = {
    "SHORT": 5 * 60,
    "MEDIUM": 15 * 60,
    "LONG": 30 * 60,
    "VERY_LONG": 60 * 60,
}

DEFAULT_TTL = CACHE_TTL["SHORT"]


def _detail_key(prefix: str) -> Callable[[str], str]:
    def build(record_id: str) -> str:
        if not record_id:
            raise ValueError("Record id is required for cache key generation")
        return f"{prefix}_{str(record_id).strip()}"
    return build


CACHE_KEYS = {
    "INVOICES": "invoices",
    "VENDORS": "vendors",
    "RULES": "rules",
    "LINE_ITEMS": "line_items",
    "INVOICE_DETAIL": _detail_key("invoice"),
    "VENDOR_DETAIL": _detail_key("vendor"),
    "RULE_DETAIL": _detail_key("rule"),
    "INVOICE_LINE_ITEMS": _detail_key("line_items"),
}


@dataclass
class CacheEntry:
    """A stored value with its write time and expiry, both in epoch seconds."""

    data: Any
    stored_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def to_json(self) -> str:
        payload = {"data": self.data, "stored_at": self.stored_at, "expires_at": self.expires_at}
        return json.dumps(payload, ensure_ascii=False, default=str)

    @classmethod
    def from_json(cls, raw: str) -> "CacheEntry":
        payload = json.loads(raw)
        if not isinstance(payload, dict) or 'expires_at' not in payload:
            raise ValueError("Invalid cache entry structure")
        return cls(
            data=payload.get('data'),
            stored_at=float(payload.get('stored_at', 0)),
            expires_at=float(payload['expires_at']),
        )


class ExpiringCache:
    """Namespaced TTL cache. Construct one per store; nothing is shared implicitly."""

    def __init__(self,
                 store: LocalStore,
                 namespace: str = DEFAULT_NAMESPACE,
                 default_ttl: float = DEFAULT_TTL,
                 clock: Callable[[], float] = time.time):
        """
        Args:
            store: Backing key/value store
            namespace: Prefix applied to every key this cache owns
            default_ttl: TTL in seconds used when set() gets none
            clock: Returns the current time in epoch seconds
        """
        self.store = store
        self.namespace = namespace
        self.default_ttl = default_ttl
        self._clock = clock

    def _store_key(self, key: str) -> str:
        return self.namespace + key

    def _own_keys(self) -> List[str]:
        return [k for k in self.store.keys() if k.startswith(self.namespace)]

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None when absent or expired."""
        store_key = self._store_key(key)
        try:
            raw = self.store.get_item(store_key)
        except CacheError as e:
            logger.warning(f"Cache get error for {key}: {e}")
            return None

        if raw is None:
            return None

        try:
            entry = CacheEntry.from_json(raw)
        except (ValueError, TypeError) as e:
            logger.warning(f"Dropping unreadable cache entry {key}: {e}")
            self.remove(key)
            return None

        if entry.is_expired(self._clock()):
            logger.debug(f"Cache entry {key} expired")
            self.remove(key)
            return None

        return entry.data

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """
        Store a value for ttl seconds.

        On quota exhaustion the cache sweeps expired entries and retries, then
        clears its namespace and retries once more. If the write still fails it
        is dropped.
        """
        ttl = self.default_ttl if ttl is None else ttl
        now = self._clock()
        try:
            raw = CacheEntry(data=value, stored_at=now, expires_at=now + ttl).to_json()
        except (TypeError, ValueError) as e:
            logger.warning(f"Value for {key} is not serializable, skipping cache write: {e}")
            return

        store_key = self._store_key(key)
        recovery_steps = [self.clear_expired, self.clear_all]

        while True:
            try:
                self.store.set_item(store_key, raw)
                return
            except QuotaExceededError as e:
                if not recovery_steps:
                    logger.warning(f"Cache full, dropping write for {key}: {e}")
                    return
                step = recovery_steps.pop(0)
                logger.info(f"Cache quota exceeded writing {key}, running {step.__name__}")
                step()
            except CacheError as e:
                logger.warning(f"Cache set error for {key}: {e}")
                return

    def remove(self, key: str) -> None:
        try:
            self.store.remove_item(self._store_key(key))
        except CacheError as e:
            logger.warning(f"Cache remove error for {key}: {e}")

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def keys(self) -> List[str]:
        """Keys owned by this cache, without the namespace prefix."""
        try:
            return [k[len(self.namespace):] for k in self._own_keys()]
        except CacheError as e:
            logger.warning(f"Cache keys error: {e}")
            return []

    def invalidate(self, prefix: str) -> int:
        """Remove every entry whose key starts with prefix."""
        removed = 0
        for key in self.keys():
            if key.startswith(prefix):
                self.remove(key)
                removed += 1
        if removed:
            logger.debug(f"Invalidated {removed} cache entries with prefix '{prefix}'")
        return removed

    def clear_expired(self) -> int:
        """Remove expired and unreadable entries. Returns the count removed."""
        now = self._clock()
        removed = 0
        for key in self.keys():
            try:
                raw = self.store.get_item(self._store_key(key))
                if raw is None:
                    continue
                if not CacheEntry.from_json(raw).is_expired(now):
                    continue
            except (ValueError, TypeError):
                pass
            except CacheError as e:
                logger.warning(f"Cache clear expired error for {key}: {e}")
                continue
            self.remove(key)
            removed += 1
        return removed

    def clear_all(self) -> int:
        """Remove every entry in this namespace. Other store keys are left alone."""
        keys = self.keys()
        for key in keys:
            self.remove(key)
        return len(keys)

    def get_size(self) -> int:
        """Approximate size in bytes of this namespace's entries."""
        size = 0
        for store_key in self._own_keys():
            value = self.store.get_item(store_key)
            if value:
                size += len(store_key) + len(value)
        return size * 2

    def get_statistics(self) -> Dict[str, Any]:
        now = self._clock()
        total = 0
        expired = 0
        for key in self.keys():
            raw = self.store.get_item(self._store_key(key))
            if raw is None:
                continue
            total += 1
            try:
                if CacheEntry.from_json(raw).is_expired(now):
                    expired += 1
            except (ValueError, TypeError):
                expired += 1

        return {
            "namespace": self.namespace,
            "total_entries": total,
            "expired_entries": expired,
            "size_bytes": self.get_size(),
        }
