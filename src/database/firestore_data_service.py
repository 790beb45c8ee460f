"""
Firestore Data Service

DataService backed by Firestore through FirebaseClient. Blocking client calls
run in a thread pool; watch callbacks arrive on Firestore's own threads and are
handed to the event loop before any subscriber sees them.

Queries send the filters' server-side constraints to Firestore and re-apply the
full predicate locally, so search and range filters behave exactly as they do
in the mock backend.
"""

import asyncio
import functools
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, List, Optional

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
from src.database.firebase_client import FirebaseClient
from src.errors import DataServiceError, NotFoundError
from src.models.entities import EntityType
from src.models.filters import FilterCriteria, coerce_filters

# Configure logging
logger = logging.getLogger(__name__)

DEFAULT_COLLECTIONS = {
    EntityType.INVOICE: "invoices",
    EntityType.VENDOR: "vendors",
    EntityType.RULE: "validation_rules",
    EntityType.LINE_ITEM: "line_items",
}


def _by_creation(records: List[Record]) -> List[Record]:
    """Firestore returns documents in id order; restore insertion order."""
    return sorted(records, key=lambda r: r.get('created_at') or '')


class FirestoreDataService(DataService):
    """Remote backend over a FirebaseClient."""

    def __init__(self,
                 client: FirebaseClient,
                 collections: Optional[Dict[EntityType, str]] = None,
                 max_workers: int = 4):
        """
        Args:
            client: Connected Firestore client
            collections: Overrides for the collection name of each entity type
            max_workers: Size of the thread pool used for blocking calls
        """
        self.client = client
        self.collections = {**DEFAULT_COLLECTIONS, **(collections or {})}
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="firestore")
        self._watches: List[tuple] = []

    def _collection(self, entity_type: EntityType) -> str:
        return self.collections[EntityType(entity_type)]

    async def _run(self, func: Callable, *args, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, functools.partial(func, *args, **kwargs))

    async def list(self, entity_type: EntityType, filters: Filters = None) -> List[Record]:
        criteria = coerce_filters(entity_type, filters)
        docs = await self._run(
            self.client.get_documents, self._collection(entity_type), criteria.server_filters()
        )
        records = criteria.apply(_by_creation(docs))
        logger.debug(f"Fetched {len(docs)} {EntityType(entity_type).value} documents, {len(records)} matched")
        return records

    async def get_by_id(self, entity_type: EntityType, record_id: str) -> Optional[Record]:
        return await self._run(self.client.get_document, record_id, self._collection(entity_type))

    async def create(self, entity_type: EntityType, data: Record) -> Record:
        entity_type = EntityType(entity_type)
        collection = self._collection(entity_type)
        record_id = self.client.new_document_id(collection)
        record = prepare_new_record(entity_type, data, record_id, record_id[:6].upper())

        await self._run(self.client.set_document, record_id, record, collection)
        logger.info(f"Created {entity_type.value} {record_id} in {collection}")
        return record

    async def update(self, entity_type: EntityType, record_id: str, updates: Record) -> None:
        entity_type = EntityType(entity_type)
        collection = self._collection(entity_type)

        existing = await self._run(self.client.get_document, record_id, collection)
        if existing is None:
            raise NotFoundError(entity_type, record_id)

        merged = prepare_update(entity_type, existing, updates)
        await self._run(self.client.set_document, record_id, merged, collection)
        logger.debug(f"Updated {entity_type.value} {record_id}: {sorted(updates)}")

    async def delete(self, entity_type: EntityType, record_id: str) -> None:
        await self._run(self.client.delete_document, record_id, self._collection(entity_type))
        logger.info(f"Deleted {EntityType(entity_type).value} {record_id}")

    async def bulk_update(self, entity_type: EntityType, record_ids: List[str], updates: Record) -> None:
        entity_type = EntityType(entity_type)
        collection = self._collection(entity_type)

        existing = await asyncio.gather(
            *(self._run(self.client.get_document, rid, collection) for rid in record_ids)
        )
        for record_id, record in zip(record_ids, existing):
            if record is None:
                raise NotFoundError(entity_type, record_id)

        operations = [
            {"op": "set", "doc_id": record_id, "data": prepare_update(entity_type, record, updates)}
            for record_id, record in zip(record_ids, existing)
        ]
        written = await self._run(self.client.batch_write, operations, collection)
        logger.info(f"Bulk updated {written} {entity_type.value} records")

    def subscribe(self, entity_type: EntityType, filters: Filters,
                  on_data: OnData, on_error: Optional[OnError] = None) -> Unsubscribe:
        entity_type = EntityType(entity_type)
        criteria = coerce_filters(entity_type, filters)
        handle = SubscriptionHandle(entity_type, criteria, on_data, on_error)
        loop = asyncio.get_running_loop()

        def on_documents(docs: List[Record]) -> None:
            # Runs on the watch thread
            if not handle.active or loop.is_closed():
                return
            loop.call_soon_threadsafe(self._deliver, handle, docs)

        try:
            stop_watch = self.client.watch_query(
                self._collection(entity_type), criteria.server_filters(), on_documents
            )
        except DataServiceError as e:
            loop.call_soon(handle.fail, e)
            return handle.cancel

        entry = (handle, stop_watch)
        self._watches.append(entry)

        def unsubscribe() -> None:
            if not handle.active and entry not in self._watches:
                return
            handle.cancel()
            if entry in self._watches:
                self._watches.remove(entry)
            stop_watch()

        return unsubscribe

    @staticmethod
    def _deliver(handle: SubscriptionHandle, docs: List[Record]) -> None:
        if not handle.active:
            return
        criteria: FilterCriteria = handle.filters
        try:
            records = criteria.apply(_by_creation(docs))
        except (TypeError, ValueError) as e:
            handle.fail(DataServiceError(f"Malformed {handle.entity_type.value} snapshot: {e}"))
            return
        handle.deliver(records)

    @property
    def subscription_count(self) -> int:
        return len(self._watches)

    async def close(self) -> None:
        for handle, stop_watch in self._watches:
            handle.cancel()
            stop_watch()
        self._watches.clear()
        self._executor.shutdown(wait=False)
        logger.info("Firestore data service closed")
