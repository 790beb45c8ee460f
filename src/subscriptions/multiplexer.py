"""
Subscription Multiplexer

Shares one backend subscription among every logical subscriber asking for the
same entity type and structurally equal filters. Snapshots and errors fan out
to all listeners; the backend subscription is torn down with the last one.
"""

import asyncio
import copy
import logging
from typing import Dict, List, Optional, Tuple

from src.database.data_service import DataService, Filters, OnData, OnError, Record, Unsubscribe
from src.models.entities import EntityType
from src.models.filters import FilterCriteria, coerce_filters

# Configure logging
logger = logging.getLogger(__name__)

SubscriptionKey = Tuple[EntityType, str]


class _Listener:
    def __init__(self, on_data: OnData, on_error: Optional[OnError]):
        self.on_data = on_data
        self.on_error = on_error
        self.active = True
        self.received = False


class _SharedSubscription:
    def __init__(self, key: SubscriptionKey, filters: FilterCriteria):
        self.key = key
        self.filters = filters
        self.listeners: List[_Listener] = []
        self.last_snapshot: Optional[List[Record]] = None
        self.stop_backend: Optional[Unsubscribe] = None

    def stop(self) -> None:
        stop_backend, self.stop_backend = self.stop_backend, None
        if stop_backend is not None:
            stop_backend()


class SubscriptionMultiplexer:
    """Registry of shared backend subscriptions keyed by (entity type, filter key)."""

    def __init__(self, service: DataService):
        self.service = service
        self._subscriptions: Dict[SubscriptionKey, _SharedSubscription] = {}

    @staticmethod
    def _key(entity_type: EntityType, filters: FilterCriteria) -> SubscriptionKey:
        return EntityType(entity_type), filters.cache_key()

    def subscribe(self, entity_type: EntityType, filters: Filters,
                  on_data: OnData, on_error: Optional[OnError] = None) -> Unsubscribe:
        """Add a listener for (entity_type, filters).

        Args:
            entity_type: Collection to watch
            filters: Filter object or dict; equal filters share a subscription
            on_data: Called with every snapshot
            on_error: Called once if the backend subscription fails

        Returns:
            A function removing this listener only
        """
        entity_type = EntityType(entity_type)
        criteria = coerce_filters(entity_type, filters)
        key = self._key(entity_type, criteria)
        listener = _Listener(on_data, on_error)

        shared = self._subscriptions.get(key)
        if shared is None:
            shared = _SharedSubscription(key, criteria)
            shared.listeners.append(listener)
            self._subscriptions[key] = shared
            logger.debug(f"Opening shared subscription {entity_type.value} {key[1]}")
            try:
                shared.stop_backend = self.service.subscribe(
                    entity_type,
                    criteria,
                    lambda records: self._broadcast(shared, records),
                    lambda error: self._broadcast_error(shared, error),
                )
            except Exception:
                # No registry entry without a backend subscription
                self._subscriptions.pop(key, None)
                listener.active = False
                raise
        else:
            shared.listeners.append(listener)
            logger.debug(f"Joined shared subscription {entity_type.value} {key[1]} "
                         f"({len(shared.listeners)} listeners)")
            if shared.last_snapshot is not None:
                asyncio.get_running_loop().call_soon(self._replay, shared, listener)

        return lambda: self._remove_listener(shared, listener)

    def _is_current(self, shared: _SharedSubscription) -> bool:
        return self._subscriptions.get(shared.key) is shared

    @staticmethod
    def _notify(listener: _Listener, records: List[Record]) -> None:
        listener.received = True
        try:
            # Listeners own their copy of the snapshot
            listener.on_data(copy.deepcopy(records))
        except Exception:
            logger.exception("Subscription listener failed while handling a snapshot")

    def _broadcast(self, shared: _SharedSubscription, records: List[Record]) -> None:
        if not self._is_current(shared):
            return
        shared.last_snapshot = records
        for listener in list(shared.listeners):
            if listener.active:
                self._notify(listener, records)

    def _replay(self, shared: _SharedSubscription, listener: _Listener) -> None:
        """Give a late joiner the last snapshot unless a live one reached it first."""
        if listener.active and not listener.received and shared.last_snapshot is not None:
            self._notify(listener, shared.last_snapshot)

    def _broadcast_error(self, shared: _SharedSubscription, error: Exception) -> None:
        if not self._is_current(shared):
            return
        logger.warning(f"Shared subscription {shared.key[0].value} {shared.key[1]} failed: {error}")
        del self._subscriptions[shared.key]
        shared.stop()

        listeners, shared.listeners = shared.listeners, []
        for listener in listeners:
            if not listener.active:
                continue
            listener.active = False
            if listener.on_error is None:
                continue
            try:
                listener.on_error(error)
            except Exception:
                logger.exception("Subscription listener failed while handling an error")

    def _remove_listener(self, shared: _SharedSubscription, listener: _Listener) -> None:
        listener.active = False
        if listener in shared.listeners:
            shared.listeners.remove(listener)
        if not shared.listeners and self._is_current(shared):
            logger.debug(f"Closing shared subscription {shared.key[0].value} {shared.key[1]}")
            del self._subscriptions[shared.key]
            shared.stop()

    def subscription_count(self) -> int:
        return len(self._subscriptions)

    def listener_count(self, entity_type: EntityType, filters: Filters = None) -> int:
        criteria = coerce_filters(entity_type, filters)
        shared = self._subscriptions.get(self._key(entity_type, criteria))
        return len(shared.listeners) if shared else 0

    def close(self) -> None:
        """Tear down every shared subscription. Listeners receive nothing further."""
        for shared in list(self._subscriptions.values()):
            for listener in shared.listeners:
                listener.active = False
            shared.listeners.clear()
            shared.stop()
        self._subscriptions.clear()
