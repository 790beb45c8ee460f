"""
Data models for invoices, vendors, validation rules and line items, plus the
filter criteria used to query them.
"""

from src.models.entities import (
    EntityType,
    Invoice,
    Vendor,
    ValidationRule,
    LineItem,
    ENTITY_MODELS,
    INVOICE_STATUSES,
    validate_record,
)
from src.models.filters import (
    FilterCriteria,
    InvoiceFilters,
    VendorFilters,
    RuleFilters,
    LineItemFilters,
    FILTER_CLASSES,
    coerce_filters,
)

__all__ = [
    'EntityType', 'Invoice', 'Vendor', 'ValidationRule', 'LineItem',
    'ENTITY_MODELS', 'INVOICE_STATUSES', 'validate_record',
    'FilterCriteria', 'InvoiceFilters', 'VendorFilters', 'RuleFilters',
    'LineItemFilters', 'FILTER_CLASSES', 'coerce_filters',
]
