"""
Mock Data Service

In-memory backend seeded with sample data. Used in development and tests.
Change notifications are pushed on the event loop right after each write, so
subscribers see a fresh snapshot without polling.
"""

import asyncio
import copy
import logging
import uuid
from typing import Dict, List, Optional

from src.database.data_service import (
    DataService,
    Filters,
    OnData,
    OnError,
    Record,
    SubscriptionHandle,
    Unsubscribe,
    prepare_new_record,
    prepare_update,
)
from src.database.mock_data import build_seed_data
from src.errors import NotFoundError
from src.models.entities import EntityType
from src.models.filters import coerce_filters

# Configure logging
logger = logging.getLogger(__name__)

ID_PREFIXES = {
    EntityType.INVOICE: "inv",
    EntityType.VENDOR: "v",
    EntityType.RULE: "r",
    EntityType.LINE_ITEM: "li",
}


class MockDataService(DataService):
    """Backend that keeps every collection in insertion-ordered dicts."""

    def __init__(self,
                 seed: Optional[Dict[EntityType, List[Record]]] = None,
                 latency: float = 0.0):
        """
        Args:
            seed: Initial records per entity type. Defaults to the sample data set.
            latency: Simulated network delay in seconds applied to each request
        """
        seed = build_seed_data() if seed is None else seed
        self.latency = latency
        self._tables: Dict[EntityType, Dict[str, Record]] = {et: {} for et in EntityType}
        for entity_type, records in seed.items():
            table = self._tables[EntityType(entity_type)]
            for record in records:
                table[record["id"]] = copy.deepcopy(record)
        self._created = {et: len(table) for et, table in self._tables.items()}
        self._subscriptions: List[SubscriptionHandle] = []

        logger.info(
            "Mock data service ready with "
            + ", ".join(f"{len(t)} {et.value}s" for et, t in self._tables.items())
        )

    async def _simulate_latency(self) -> None:
        if self.latency > 0:
            await asyncio.sleep(self.latency)

    def _table(self, entity_type: EntityType) -> Dict[str, Record]:
        return self._tables[EntityType(entity_type)]

    async def list(self, entity_type: EntityType, filters: Filters = None) -> List[Record]:
        criteria = coerce_filters(entity_type, filters)
        await self._simulate_latency()
        return copy.deepcopy(criteria.apply(self._table(entity_type).values()))

    async def get_by_id(self, entity_type: EntityType, record_id: str) -> Optional[Record]:
        await self._simulate_latency()
        record = self._table(entity_type).get(record_id)
        return copy.deepcopy(record) if record is not None else None

    async def create(self, entity_type: EntityType, data: Record) -> Record:
        entity_type = EntityType(entity_type)
        await self._simulate_latency()

        sequence = self._created[entity_type] + 1
        record_id = f"{ID_PREFIXES[entity_type]}-{uuid.uuid4().hex[:10]}"
        record = prepare_new_record(entity_type, data, record_id, f"{sequence:03d}")

        self._table(entity_type)[record_id] = record
        self._created[entity_type] = sequence
        logger.info(f"Created {entity_type.value} {record_id}")

        self._notify(entity_type, [record])
        return copy.deepcopy(record)

    async def update(self, entity_type: EntityType, record_id: str, updates: Record) -> None:
        entity_type = EntityType(entity_type)
        await self._simulate_latency()

        table = self._table(entity_type)
        existing = table.get(record_id)
        if existing is None:
            raise NotFoundError(entity_type, record_id)

        table[record_id] = prepare_update(entity_type, existing, updates)
        logger.debug(f"Updated {entity_type.value} {record_id}: {sorted(updates)}")

        self._notify(entity_type, [existing, table[record_id]])

    async def delete(self, entity_type: EntityType, record_id: str) -> None:
        entity_type = EntityType(entity_type)
        await self._simulate_latency()

        removed = self._table(entity_type).pop(record_id, None)
        if removed is None:
            logger.debug(f"Delete of missing {entity_type.value} {record_id} ignored")
            return

        logger.info(f"Deleted {entity_type.value} {record_id}")
        self._notify(entity_type, [removed])

    async def bulk_update(self, entity_type: EntityType, record_ids: List[str], updates: Record) -> None:
        entity_type = EntityType(entity_type)
        await self._simulate_latency()

        table = self._table(entity_type)
        missing = [rid for rid in record_ids if rid not in table]
        if missing:
            raise NotFoundError(entity_type, missing[0])

        # Validate everything before writing anything
        staged = {rid: prepare_update(entity_type, table[rid], updates) for rid in record_ids}
        before = [table[rid] for rid in record_ids]
        table.update(staged)
        logger.info(f"Bulk updated {len(staged)} {entity_type.value} records")

        self._notify(entity_type, before + list(staged.values()))

    def subscribe(self, entity_type: EntityType, filters: Filters,
                  on_data: OnData, on_error: Optional[OnError] = None) -> Unsubscribe:
        entity_type = EntityType(entity_type)
        handle = SubscriptionHandle(entity_type, coerce_filters(entity_type, filters), on_data, on_error)
        self._subscriptions.append(handle)
        self._schedule(handle)

        def unsubscribe() -> None:
            handle.cancel()
            if handle in self._subscriptions:
                self._subscriptions.remove(handle)

        return unsubscribe

    def _schedule(self, handle: SubscriptionHandle) -> None:
        asyncio.get_running_loop().call_soon(self._deliver, handle)

    def _deliver(self, handle: SubscriptionHandle) -> None:
        # The snapshot is taken at delivery time, so it always reflects the latest writes
        if not handle.active:
            return
        snapshot = handle.filters.apply(self._table(handle.entity_type).values())
        handle.deliver(copy.deepcopy(snapshot))

    def _notify(self, entity_type: EntityType, changed: List[Record]) -> None:
        """Schedule a snapshot for every subscription a changed record matched before or after the write."""
        for handle in list(self._subscriptions):
            if handle.entity_type != entity_type or not handle.active:
                continue
            if any(handle.filters.matches(record) for record in changed):
                self._schedule(handle)

    @property
    def subscription_count(self) -> int:
        return sum(1 for h in self._subscriptions if h.active)

    async def close(self) -> None:
        for handle in self._subscriptions:
            handle.cancel()
        self._subscriptions.clear()
        logger.info("Mock data service closed")
