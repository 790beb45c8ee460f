"""
Entity Models

Pydantic models for the documents the backend owns. Records travel through the
system as plain dicts; these models only validate and fill defaults when a
record is created or updated.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Type

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from src.errors import ValidationError


class EntityType(str, Enum):
    """Logical collections the data layer knows about."""
    INVOICE = "invoice"
    VENDOR = "vendor"
    RULE = "rule"
    LINE_ITEM = "line_item"


INVOICE_STATUSES = (
    'PENDING', 'EXTRACTING', 'EXTRACTED', 'VALIDATING', 'VALIDATED',
    'DISPUTED', 'APPROVED', 'REJECTED', 'PAID', 'CANCELLED'
)

InvoiceStatus = Literal[
    'PENDING', 'EXTRACTING', 'EXTRACTED', 'VALIDATING', 'VALIDATED',
    'DISPUTED', 'APPROVED', 'REJECTED', 'PAID', 'CANCELLED'
]
VendorStatus = Literal['ACTIVE', 'INACTIVE', 'SUSPENDED']
VendorType = Literal['OTA', 'DIRECT', 'CHANNEL_MANAGER', 'GDS', 'OTHER']
RuleType = Literal['HARD', 'SOFT']
RuleEntityType = Literal['INVOICE', 'LINE_ITEM']
LineItemValidationStatus = Literal['PENDING', 'PASSED', 'WARNING', 'FAILED', 'DISPUTED']


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class EntityRecord(BaseModel):
    """Fields shared by every stored document."""
    model_config = ConfigDict(extra='allow')

    id: Optional[str] = None
    created_at: Optional[str] = None
    last_modified: Optional[str] = None


class Invoice(EntityRecord):
    vendor_id: str = Field(..., min_length=1)
    vendor_invoice_number: str = Field(..., min_length=1)
    invoice_number: Optional[str] = None
    vendor_name: Optional[str] = None
    invoice_date: Optional[str] = None
    due_date: Optional[str] = None
    period_start: Optional[str] = None
    period_end: Optional[str] = None
    status: InvoiceStatus = 'PENDING'
    currency: str = 'USD'
    subtotal: float = 0.0
    tax_amount: float = 0.0
    total_amount: float = 0.0
    tags: List[str] = Field(default_factory=list)


class Vendor(EntityRecord):
    vendor_code: str = Field(..., min_length=1)
    vendor_name: str = Field(..., min_length=1)
    vendor_type: VendorType = 'OTHER'
    status: VendorStatus = 'ACTIVE'
    currency: str = 'USD'
    payment_terms_days: int = 30
    tags: List[str] = Field(default_factory=list)


class ValidationRule(EntityRecord):
    rule_name: str = Field(..., min_length=1)
    rule_id: Optional[str] = None
    description: str = ''
    vendor_code: str = '*'
    entity_type: RuleEntityType = 'LINE_ITEM'
    rule_type: RuleType = 'SOFT'
    is_active: bool = True
    priority: int = 100
    conditions: List[Dict[str, Any]] = Field(default_factory=list)
    actions: Dict[str, Any] = Field(default_factory=dict)
    effective_from: Optional[str] = None
    effective_to: Optional[str] = None


class LineItem(EntityRecord):
    invoice_id: str = Field(..., min_length=1)
    vendor_id: Optional[str] = None
    line_number: Optional[int] = None
    description: str = ''
    confirmation_number: Optional[str] = None
    guest_name: Optional[str] = None
    property_name: Optional[str] = None
    check_in_date: Optional[str] = None
    check_out_date: Optional[str] = None
    total_amount: float = 0.0
    validation_status: LineItemValidationStatus = 'PENDING'


ENTITY_MODELS: Dict[EntityType, Type[EntityRecord]] = {
    EntityType.INVOICE: Invoice,
    EntityType.VENDOR: Vendor,
    EntityType.RULE: ValidationRule,
    EntityType.LINE_ITEM: LineItem,
}


def validate_record(entity_type: EntityType, data: Dict[str, Any]) -> Dict[str, Any]:
    """Validate a record against its entity model and return it with defaults filled.

    Raises:
        ValidationError: If required fields are missing or a value is invalid
    """
    model = ENTITY_MODELS[EntityType(entity_type)]
    try:
        validated = model.model_validate(data)
    except PydanticValidationError as e:
        problems = [
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
            for err in e.errors()
        ]
        raise ValidationError(
            f"Invalid {EntityType(entity_type).value}: {'; '.join(problems)}",
            errors=problems
        ) from e
    return validated.model_dump(mode='json')
