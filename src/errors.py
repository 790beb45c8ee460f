"""
Error Taxonomy

Exceptions raised by the data synchronization layer. Backend errors derive from
DataServiceError; cache errors are recovered inside the cache and never escape it.
"""


class DataServiceError(Exception):
    """Base class for errors surfaced by a data service."""


class ValidationError(DataServiceError, ValueError):
    """Malformed input to a create/update call or a rejected upload."""

    def __init__(self, message: str, errors=None):
        super().__init__(message)
        self.errors = errors or []


class NotFoundError(DataServiceError, LookupError):
    """An operation referenced an id that does not exist."""

    def __init__(self, entity_type, record_id: str):
        name = getattr(entity_type, "value", entity_type)
        super().__init__(f"{name} with ID {record_id} not found")
        self.entity_type = entity_type
        self.record_id = record_id


class TransientBackendError(DataServiceError, ConnectionError):
    """Network or storage failure talking to the backend."""


class CacheError(Exception):
    """Local store failure. Always handled by the cache."""


class QuotaExceededError(CacheError):
    """The local store has no room left for a write."""
