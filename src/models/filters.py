"""
Filter Criteria

Immutable filter value objects, one per entity type. The same predicate is used
by the backends to answer list/subscribe queries and by the hooks to re-filter a
cached snapshot, so both paths return the same records.

Each class declares SERVER_FIELDS: the subset of fields a backend query is
scoped by. Everything else is applied in memory over the server-scoped result.
"""

import json
from datetime import date, datetime
from typing import Any, ClassVar, Dict, Iterable, List, Optional, Tuple, Type, Union

from pydantic import BaseModel, ConfigDict, model_validator

from src.models.entities import EntityType, InvoiceStatus, VendorStatus, VendorType, \
    RuleType, RuleEntityType, LineItemValidationStatus

GLOBAL_VENDOR_CODE = '*'


def as_date(value: Any) -> Optional[date]:
    """Coerce an ISO string, date or datetime into a date. Unparseable values give None."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(str(value).replace('Z', '+00:00')).date()
    except ValueError:
        return None


def _in_date_range(value: Any, date_from: Optional[date], date_to: Optional[date]) -> bool:
    if date_from is None and date_to is None:
        return True
    record_date = as_date(value)
    if record_date is None:
        return False
    if date_from is not None and record_date < date_from:
        return False
    if date_to is not None and record_date > date_to:
        return False
    return True


class FilterCriteria(BaseModel):
    """Base filter: free-text search plus optional sorting."""
    model_config = ConfigDict(frozen=True, extra='forbid')

    search: Optional[str] = None
    sort_by: Optional[str] = None
    descending: bool = False

    SEARCH_FIELDS: ClassVar[Tuple[str, ...]] = ()
    SERVER_FIELDS: ClassVar[Tuple[str, ...]] = ()

    def _matches_fields(self, record: Dict[str, Any]) -> bool:
        return True

    def _matches_search(self, record: Dict[str, Any]) -> bool:
        term = (self.search or '').strip().lower()
        if not term:
            return True
        return any(
            term in str(record.get(field) or '').lower()
            for field in self.SEARCH_FIELDS
        )

    def matches(self, record: Dict[str, Any]) -> bool:
        return self._matches_search(record) and self._matches_fields(record)

    def apply(self, records: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Filter records, then sort them if sort_by is set. Order is otherwise preserved."""
        matched = [r for r in records if self.matches(r)]
        if not self.sort_by:
            return matched

        key = self.sort_by
        present = [r for r in matched if r.get(key) is not None]
        missing = [r for r in matched if r.get(key) is None]
        present.sort(key=lambda r: r[key], reverse=self.descending)
        return present + missing

    def cache_key(self) -> str:
        """Canonical string form. Structurally equal filters give equal keys."""
        payload = self.model_dump(mode='json', exclude_defaults=True)
        return json.dumps(payload, sort_keys=True, separators=(',', ':'))

    def is_empty(self) -> bool:
        return self.cache_key() == '{}'

    def server_scope(self) -> 'FilterCriteria':
        """The same filter reduced to its SERVER_FIELDS."""
        values = {
            name: getattr(self, name)
            for name in self.SERVER_FIELDS
            if getattr(self, name) is not None
        }
        return type(self)(**values)

    def server_filters(self) -> List[Dict[str, Any]]:
        """Equality constraints for SERVER_FIELDS as {field, op, value} dicts."""
        return [
            {"field": name, "op": "==", "value": getattr(self, name)}
            for name in self.SERVER_FIELDS
            if getattr(self, name) is not None
        ]


class InvoiceFilters(FilterCriteria):
    vendor_id: Optional[str] = None
    status: Optional[InvoiceStatus] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None

    SEARCH_FIELDS: ClassVar[Tuple[str, ...]] = ('invoice_number', 'vendor_invoice_number', 'vendor_name')
    SERVER_FIELDS: ClassVar[Tuple[str, ...]] = ('vendor_id', 'status')

    @model_validator(mode='after')
    def _check_range(self):
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValueError("date_from must not be after date_to")
        return self

    def _matches_fields(self, record: Dict[str, Any]) -> bool:
        if self.vendor_id is not None and record.get('vendor_id') != self.vendor_id:
            return False
        if self.status is not None and record.get('status') != self.status:
            return False
        return _in_date_range(record.get('invoice_date'), self.date_from, self.date_to)


class VendorFilters(FilterCriteria):
    # Vendors are fetched whole and filtered in memory
    status: Optional[VendorStatus] = None
    vendor_type: Optional[VendorType] = None
    vendor_ids: Optional[Tuple[str, ...]] = None

    SEARCH_FIELDS: ClassVar[Tuple[str, ...]] = ('vendor_code', 'vendor_name')
    SERVER_FIELDS: ClassVar[Tuple[str, ...]] = ()

    def _matches_fields(self, record: Dict[str, Any]) -> bool:
        if self.status is not None and record.get('status') != self.status:
            return False
        if self.vendor_type is not None and record.get('vendor_type') != self.vendor_type:
            return False
        if self.vendor_ids is not None and record.get('id') not in self.vendor_ids:
            return False
        return True


class RuleFilters(FilterCriteria):
    vendor_code: Optional[str] = None
    entity_type: Optional[RuleEntityType] = None
    rule_type: Optional[RuleType] = None
    is_active: Optional[bool] = None
    priority_min: Optional[int] = None
    priority_max: Optional[int] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None

    SEARCH_FIELDS: ClassVar[Tuple[str, ...]] = ('rule_id', 'rule_name', 'description')
    SERVER_FIELDS: ClassVar[Tuple[str, ...]] = ('vendor_code', 'is_active')

    @model_validator(mode='after')
    def _check_ranges(self):
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValueError("date_from must not be after date_to")
        if (self.priority_min is not None and self.priority_max is not None
                and self.priority_min > self.priority_max):
            raise ValueError("priority_min must not exceed priority_max")
        return self

    def _matches_fields(self, record: Dict[str, Any]) -> bool:
        if self.vendor_code is not None and record.get('vendor_code') not in (self.vendor_code, GLOBAL_VENDOR_CODE):
            return False
        if self.entity_type is not None and record.get('entity_type') != self.entity_type:
            return False
        if self.rule_type is not None and record.get('rule_type') != self.rule_type:
            return False
        if self.is_active is not None and record.get('is_active') != self.is_active:
            return False

        priority = record.get('priority')
        if self.priority_min is not None and (priority is None or priority < self.priority_min):
            return False
        if self.priority_max is not None and (priority is None or priority > self.priority_max):
            return False

        return _in_date_range(record.get('effective_from'), self.date_from, self.date_to)

    def server_filters(self) -> List[Dict[str, Any]]:
        constraints = []
        if self.vendor_code is not None:
            # Global rules apply to every vendor
            constraints.append({
                "field": "vendor_code",
                "op": "in",
                "value": [self.vendor_code, GLOBAL_VENDOR_CODE]
            })
        if self.is_active is not None:
            constraints.append({"field": "is_active", "op": "==", "value": self.is_active})
        return constraints


class LineItemFilters(FilterCriteria):
    invoice_id: Optional[str] = None
    vendor_id: Optional[str] = None
    validation_status: Optional[LineItemValidationStatus] = None

    SEARCH_FIELDS: ClassVar[Tuple[str, ...]] = ('description', 'guest_name', 'confirmation_number', 'property_name')
    SERVER_FIELDS: ClassVar[Tuple[str, ...]] = ('invoice_id', 'vendor_id', 'validation_status')

    def _matches_fields(self, record: Dict[str, Any]) -> bool:
        if self.invoice_id is not None and record.get('invoice_id') != self.invoice_id:
            return False
        if self.vendor_id is not None and record.get('vendor_id') != self.vendor_id:
            return False
        if self.validation_status is not None and record.get('validation_status') != self.validation_status:
            return False
        return True


FILTER_CLASSES: Dict[EntityType, Type[FilterCriteria]] = {
    EntityType.INVOICE: InvoiceFilters,
    EntityType.VENDOR: VendorFilters,
    EntityType.RULE: RuleFilters,
    EntityType.LINE_ITEM: LineItemFilters,
}


def coerce_filters(entity_type: EntityType,
                   filters: Union[FilterCriteria, Dict[str, Any], None]) -> FilterCriteria:
    """Return a filter object of the right class for entity_type.

    Accepts None (no filtering), a dict of field values, or a filter instance.
    """
    filter_class = FILTER_CLASSES[EntityType(entity_type)]
    if filters is None:
        return filter_class()
    if isinstance(filters, dict):
        return filter_class(**filters)
    if not isinstance(filters, filter_class):
        raise TypeError(
            f"Expected {filter_class.__name__} for {EntityType(entity_type).value}, "
            f"got {type(filters).__name__}"
        )
    return filters
