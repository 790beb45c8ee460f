"""
Data Hook Base

A DataHook keeps one entity type's records in sync for a consumer. It paints
from the cache immediately, revalidates against the backend in the background,
optionally follows realtime snapshots, and routes mutations through the data
service before reloading.

State machine:

    INITIAL -> LOADING_FROM_CACHE -> HYDRATED_STALE | LOADING_FRESH -> READY
    (ERROR is reachable from every fetching state)

Every fetch is tagged with a generation number. Completions from an older
generation, or arriving after deactivate(), are discarded.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, ClassVar, Dict, List, Optional, Set

from src.Caching.cache_manager import ExpiringCache
from src.database.data_service import DataService, Filters, Record
from src.models.entities import EntityType
from src.models.filters import FilterCriteria, coerce_filters
from src.subscriptions.multiplexer import SubscriptionMultiplexer

# Configure logging
logger = logging.getLogger(__name__)


class HookState(str, Enum):
    INITIAL = "INITIAL"
    LOADING_FROM_CACHE = "LOADING_FROM_CACHE"
    HYDRATED_STALE = "HYDRATED_STALE"
    LOADING_FRESH = "LOADING_FRESH"
    READY = "READY"
    ERROR = "ERROR"


@dataclass(frozen=True)
class HookResult:
    """Point-in-time view of a hook handed to listeners."""
    data: List[Record] = field(default_factory=list)
    loading: bool = False
    error: Optional[Exception] = None
    state: HookState = HookState.INITIAL


HookListener = Callable[[HookResult], None]


class DataHook:
    """Base class for the per-entity hooks."""

    entity_type: ClassVar[EntityType]
    cache_base: ClassVar[str]
    detail_key: ClassVar[Callable[[str], str]]
    default_ttl: ClassVar[float]

    def __init__(self,
                 service: DataService,
                 cache: ExpiringCache,
                 multiplexer: Optional[SubscriptionMultiplexer] = None,
                 filters: Filters = None,
                 realtime: bool = False,
                 ttl: Optional[float] = None):
        """
        Args:
            service: Backend used for fetches and mutations
            cache: Cache used for instant paint
            multiplexer: Required when realtime is True
            filters: Initial filter criteria (object or dict)
            realtime: Follow backend snapshots instead of one-shot fetches
            ttl: Cache TTL in seconds; defaults to the entity's TTL
        """
        if realtime and multiplexer is None:
            raise ValueError("Realtime hooks need a SubscriptionMultiplexer")

        self.service = service
        self.cache = cache
        self.multiplexer = multiplexer
        self.realtime = realtime
        self.ttl = self.default_ttl if ttl is None else ttl

        self._filters = coerce_filters(self.entity_type, filters)
        self._server_scope = self._filters.server_scope()
        self._records: List[Record] = []
        self._data: List[Record] = []
        self._loading = False
        self._error: Optional[Exception] = None
        self._state = HookState.INITIAL

        self._active = False
        self._generation = 0
        self._tasks: Set[asyncio.Task] = set()
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._subscription_token: Optional[object] = None
        self._listeners: List[HookListener] = []

    # Exposed state

    @property
    def data(self) -> List[Record]:
        return self._data

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def error(self) -> Optional[Exception]:
        return self._error

    @property
    def state(self) -> HookState:
        return self._state

    @property
    def filters(self) -> FilterCriteria:
        return self._filters

    @property
    def active(self) -> bool:
        return self._active

    def snapshot(self) -> HookResult:
        return HookResult(data=list(self._data), loading=self._loading,
                          error=self._error, state=self._state)

    def add_listener(self, listener: HookListener) -> Callable[[], None]:
        """Register a change callback. Returns a function that removes it."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _emit(self) -> None:
        if not self._active:
            return
        result = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(result)
            except Exception:
                logger.exception(f"{type(self).__name__} listener failed")

    def _set_records(self, records: List[Record]) -> None:
        self._records = records
        self._data = self._filters.apply(records)

    # Cache keys

    def _list_cache_key(self, scope: Optional[FilterCriteria] = None) -> str:
        scope = scope or self._server_scope
        return f"{self.cache_base}:{scope.cache_key()}"

    def _invalidate_cache(self, record_ids: Optional[List[str]] = None) -> None:
        self.cache.invalidate(f"{self.cache_base}:")
        for record_id in record_ids or []:
            self.cache.remove(self.detail_key(record_id))

    # Lifecycle

    async def activate(self) -> None:
        """Start the load sequence. Returns without waiting for the backend."""
        if self._active:
            return
        self._active = True
        logger.debug(f"Activating {type(self).__name__} with filters {self._filters.cache_key()}")
        self._load()

    def deactivate(self) -> None:
        """Stop all activity. No callback touches hook state afterwards."""
        if not self._active:
            return
        self._active = False
        self._generation += 1
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
        self._close_subscription()
        logger.debug(f"Deactivated {type(self).__name__}")

    async def __aenter__(self) -> "DataHook":
        await self.activate()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.deactivate()

    def _load(self) -> None:
        """Cache read followed by a fresh fetch or a realtime subscription."""
        self._state = HookState.LOADING_FROM_CACHE
        cached = self.cache.get(self._list_cache_key())
        if cached is not None:
            self._set_records(cached)
            self._loading = False
            self._state = HookState.HYDRATED_STALE
        else:
            self._set_records(self._records)
            self._loading = True
            self._state = HookState.LOADING_FRESH
        self._emit()

        if self.realtime:
            self._open_subscription()
        else:
            self._start_fetch()

    # Fetching

    def _is_current(self, generation: int) -> bool:
        return self._active and generation == self._generation

    def _start_fetch(self) -> asyncio.Task:
        self._generation += 1
        task = asyncio.get_running_loop().create_task(
            self._fetch(self._generation, self._server_scope)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _fetch(self, generation: int, scope: FilterCriteria) -> None:
        try:
            records = await self.service.list(self.entity_type, scope)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if not self._is_current(generation):
                return
            logger.error(f"Error loading {self.entity_type.value} data: {e}")
            self._fail(e)
            return

        if not self._is_current(generation):
            logger.debug(f"Discarding superseded {self.entity_type.value} fetch (generation {generation})")
            return

        self.cache.set(self._list_cache_key(scope), records, self.ttl)
        self._receive(records)

    def _receive(self, records: List[Record]) -> None:
        self._set_records(records)
        self._error = None
        self._loading = False
        self._state = HookState.READY
        self._emit()

    def _fail(self, error: Exception) -> None:
        # Existing data stays visible
        self._error = error
        self._loading = False
        self._state = HookState.ERROR
        self._emit()

    async def wait_for_fetch(self) -> None:
        """Wait for every in-flight fetch to finish."""
        while self._tasks:
            await asyncio.wait(set(self._tasks))

    async def wait_until_settled(self, timeout: Optional[float] = None) -> HookResult:
        """Wait until the hook reaches READY or ERROR.

        Raises:
            asyncio.TimeoutError: If timeout elapses first
        """
        settled = asyncio.Event()

        def check(result: HookResult) -> None:
            if result.state in (HookState.READY, HookState.ERROR):
                settled.set()

        remove = self.add_listener(check)
        try:
            check(self.snapshot())
            await asyncio.wait_for(settled.wait(), timeout)
        finally:
            remove()
        return self.snapshot()

    async def refresh(self) -> None:
        """Fetch fresh data now. Failures land in `error`, never raised."""
        if not self._active:
            raise RuntimeError(f"{type(self).__name__} is not active")
        if self.realtime and self._unsubscribe is None:
            self._open_subscription()

        self._loading = True
        self._state = HookState.LOADING_FRESH
        self._emit()
        task = self._start_fetch()
        await asyncio.wait({task})

    # Realtime

    def _open_subscription(self) -> None:
        self._close_subscription()
        token = object()
        self._subscription_token = token

        def on_data(records: List[Record]) -> None:
            if not self._active or self._subscription_token is not token:
                return
            # A pushed snapshot supersedes any fetch still in flight
            self._generation += 1
            self._receive(records)

        def on_error(error: Exception) -> None:
            if not self._active or self._subscription_token is not token:
                return
            logger.error(f"Realtime {self.entity_type.value} subscription failed: {error}")
            self._unsubscribe = None
            self._subscription_token = None
            self._fail(error)

        try:
            self._unsubscribe = self.multiplexer.subscribe(self.entity_type, self._server_scope, on_data, on_error)
        except Exception as e:
            logger.error(f"Could not open realtime {self.entity_type.value} subscription: {e}")
            self._subscription_token = None
            self._fail(e)

    def _close_subscription(self) -> None:
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        self._subscription_token = None
        if unsubscribe is not None:
            unsubscribe()

    # Filters

    def set_filters(self, filters: Filters) -> None:
        """Replace the filter criteria.

        When the server scope is unchanged only the in-memory view is
        recomputed. Otherwise a new backend query (or subscription) starts.
        """
        new_filters = coerce_filters(self.entity_type, filters)
        if new_filters == self._filters:
            return

        new_scope = new_filters.server_scope()
        scope_changed = new_scope.cache_key() != self._server_scope.cache_key()
        self._filters = new_filters
        self._server_scope = new_scope

        if not self._active:
            self._set_records(self._records)
            return

        if not scope_changed:
            self._set_records(self._records)
            self._emit()
            return

        logger.debug(f"{self.entity_type.value} server scope changed to {new_scope.cache_key()}")
        self._load()

    def update_filters(self, **changes: Any) -> None:
        """Merge field changes into the current filters."""
        values: Dict[str, Any] = self._filters.model_dump(exclude_defaults=True)
        values.update(changes)
        self.set_filters({k: v for k, v in values.items() if v is not None})

    # Mutations

    async def _after_mutation(self, record_ids: Optional[List[str]] = None) -> None:
        self._invalidate_cache(record_ids)
        if not self._active:
            return
        if self.realtime:
            # The open subscription delivers the change
            return
        self._load()
        await self.wait_for_fetch()

    async def create(self, data: Record) -> Record:
        record = await self.service.create(self.entity_type, data)
        logger.info(f"Created {self.entity_type.value} {record.get('id')}")
        await self._after_mutation()
        return record

    async def update(self, record_id: str, updates: Record) -> None:
        await self.service.update(self.entity_type, record_id, updates)
        await self._after_mutation([record_id])

    async def delete(self, record_id: str) -> None:
        await self.service.delete(self.entity_type, record_id)
        await self._after_mutation([record_id])

    async def bulk_update(self, record_ids: List[str], updates: Record) -> None:
        if not record_ids:
            return
        await self.service.bulk_update(self.entity_type, record_ids, updates)
        await self._after_mutation(list(record_ids))

    async def _get_cached_detail(self, record_id: str, ttl: Optional[float] = None) -> Optional[Record]:
        key = self.detail_key(record_id)
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        record = await self.service.get_by_id(self.entity_type, record_id)
        if record is not None:
            self.cache.set(key, record, self.ttl if ttl is None else ttl)
        return record
