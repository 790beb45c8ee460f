"""
Data Service Interface

Capability set every backend implements: filtered listing, CRUD, bulk update
and realtime subscriptions. Exactly one implementation is chosen per process
by the service factory; nothing else branches on which one is in use.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Union

from src.models.entities import EntityType, utc_now_iso, validate_record
from src.models.filters import FilterCriteria, LineItemFilters

# Configure logging
logger = logging.getLogger(__name__)

Record = Dict[str, Any]
OnData = Callable[[List[Record]], None]
OnError = Callable[[Exception], None]
Unsubscribe = Callable[[], None]
Filters = Union[FilterCriteria, Dict[str, Any], None]

READ_ONLY_FIELDS = ('id', 'created_at')


class SubscriptionHandle:
    """
    Book-keeping for one backend registration.

    Delivery always checks `active`, so once cancel() runs nothing reaches the
    callbacks, including events that were already scheduled on the loop.
    """

    def __init__(self, entity_type: EntityType, filters: FilterCriteria,
                 on_data: OnData, on_error: Optional[OnError] = None):
        self.entity_type = entity_type
        self.filters = filters
        self.on_data = on_data
        self.on_error = on_error
        self.active = True

    def deliver(self, records: List[Record]) -> None:
        if self.active:
            self.on_data(records)

    def fail(self, error: Exception) -> None:
        if not self.active:
            return
        self.active = False
        if self.on_error:
            self.on_error(error)
        else:
            logger.error(f"Unhandled subscription error for {self.entity_type.value}: {error}")

    def cancel(self) -> None:
        self.active = False


def prepare_new_record(entity_type: EntityType, data: Record, record_id: str,
                       sequence_token: str) -> Record:
    """Validate a new record and stamp the fields the backend owns.

    Args:
        entity_type: Entity being created
        data: Caller-supplied fields
        record_id: Id assigned by the backend
        sequence_token: Suffix for generated human-readable numbers

    Raises:
        ValidationError: If required fields are missing or invalid
    """
    record = validate_record(entity_type, {k: v for k, v in data.items() if k not in READ_ONLY_FIELDS})
    now = utc_now_iso()
    record['id'] = record_id
    record['created_at'] = now
    record['last_modified'] = now

    if entity_type == EntityType.INVOICE:
        if not record.get('invoice_number'):
            year = datetime.now(timezone.utc).year
            record['invoice_number'] = f"INV-{year}-{sequence_token}"
        if not record.get('invoice_date'):
            record['invoice_date'] = now
    elif entity_type == EntityType.RULE and not record.get('rule_id'):
        record['rule_id'] = f"CUSTOM-{sequence_token}"

    return record


def prepare_update(entity_type: EntityType, existing: Record, updates: Record) -> Record:
    """Merge updates into an existing record and validate the result.

    Returns the validated merged record. `id` and `created_at` are kept from
    the existing record.

    Raises:
        ValidationError: If the merged record is invalid
    """
    merged = dict(existing)
    merged.update({k: v for k, v in updates.items() if k not in READ_ONLY_FIELDS})
    merged['last_modified'] = utc_now_iso()
    return validate_record(entity_type, merged)


class DataService(ABC):
    """Backend capability interface."""

    @abstractmethod
    async def list(self, entity_type: EntityType, filters: Filters = None) -> List[Record]:
        """Return all records matching filters, in insertion order unless filters set sort_by."""

    @abstractmethod
    async def get_by_id(self, entity_type: EntityType, record_id: str) -> Optional[Record]:
        pass

    @abstractmethod
    async def create(self, entity_type: EntityType, data: Record) -> Record:
        """Create a record. The backend assigns id and timestamps.

        Raises:
            ValidationError: If required fields are missing
        """

    @abstractmethod
    async def update(self, entity_type: EntityType, record_id: str, updates: Record) -> None:
        """Apply partial updates.

        Raises:
            NotFoundError: If record_id does not exist
            ValidationError: If the updated record is invalid
        """

    @abstractmethod
    async def delete(self, entity_type: EntityType, record_id: str) -> None:
        """Delete a record. Deleting a missing id is not an error."""

    @abstractmethod
    async def bulk_update(self, entity_type: EntityType, record_ids: List[str], updates: Record) -> None:
        """Apply the same updates to several records. Nothing is written if any id is missing."""

    @abstractmethod
    def subscribe(self, entity_type: EntityType, filters: Filters,
                  on_data: OnData, on_error: Optional[OnError] = None) -> Unsubscribe:
        """Register for snapshots of the records matching filters.

        The current snapshot is delivered first, then a full replacement
        snapshot after every change touching a matching record. Must be called
        from a running event loop.
        """

    async def get_line_items(self, invoice_id: str) -> List[Record]:
        return await self.list(EntityType.LINE_ITEM, LineItemFilters(invoice_id=invoice_id))

    async def close(self) -> None:
        """Release backend resources."""
