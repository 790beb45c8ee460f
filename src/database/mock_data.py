"""
Mock Seed Data

Deterministic sample vendors, invoices, validation rules and line items used by
the in-memory backend. Dates are generated relative to the time of the call so
the data always looks recent.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from src.models.entities import EntityType

MOCK_VENDORS = [
    {
        "id": "v1",
        "vendor_code": "HOTEL001",
        "vendor_name": "Grand Plaza Hotel Group",
        "vendor_type": "DIRECT",
        "status": "ACTIVE",
        "currency": "USD",
        "payment_terms_days": 30,
        "tags": ["hotel", "direct"],
        "created_days_ago": 400,
    },
    {
        "id": "v2",
        "vendor_code": "OTA001",
        "vendor_name": "TravelBooking.com",
        "vendor_type": "OTA",
        "status": "ACTIVE",
        "currency": "USD",
        "payment_terms_days": 45,
        "tags": ["ota", "high-volume"],
        "created_days_ago": 300,
    },
    {
        "id": "v3",
        "vendor_code": "CM001",
        "vendor_name": "ChannelLink Systems",
        "vendor_type": "CHANNEL_MANAGER",
        "status": "INACTIVE",
        "currency": "EUR",
        "payment_terms_days": 60,
        "tags": ["channel-manager"],
        "created_days_ago": 200,
    },
]

# (id, vendor id, status, days ago, subtotal)
MOCK_INVOICES = [
    ("inv1", "v1", "VALIDATED", 2, 12500.00),
    ("inv2", "v2", "EXTRACTING", 3, 8450.50),
    ("inv3", "v1", "PAID", 20, 15200.00),
    ("inv4", "v2", "VALIDATING", 5, 6320.75),
    ("inv5", "v1", "REJECTED", 12, 4100.00),
    ("inv6", "v2", "PENDING", 1, 9875.25),
    ("inv7", "v1", "EXTRACTING", 0, 11040.00),
]

MOCK_RULES = [
    {
        "id": "r1",
        "rule_id": "HOTEL001_RATE_CHECK",
        "rule_name": "Room Rate Validation",
        "description": "Validates room rates match the contracted rate within tolerance",
        "vendor_code": "HOTEL001",
        "entity_type": "LINE_ITEM",
        "rule_type": "HARD",
        "is_active": True,
        "priority": 1,
        "conditions": [
            {"type": "NUMERIC_COMPARISON", "operator": "IN_RANGE",
             "invoice_field": "room_rate", "tolerance_percentage": 2}
        ],
        "actions": {"on_match": "CONTINUE", "on_mismatch": "DISPUTED"},
        "effective_days_ago": 90,
    },
    {
        "id": "r2",
        "rule_id": "GLOBAL_DUPLICATE_CHECK",
        "rule_name": "Global Duplicate Invoice Check",
        "description": "Prevents duplicate invoice processing",
        "vendor_code": "*",
        "entity_type": "INVOICE",
        "rule_type": "HARD",
        "is_active": True,
        "priority": 1,
        "conditions": [
            {"type": "DUPLICATE_CHECK", "operator": "EQUALS",
             "invoice_field": "vendor_invoice_number", "lookback_days": 90}
        ],
        "actions": {"on_match": "DISPUTED", "on_mismatch": "CONTINUE"},
        "effective_days_ago": 180,
    },
    {
        "id": "r3",
        "rule_id": "OTA001_COMMISSION_CHECK",
        "rule_name": "Commission Percentage Check",
        "description": "Flags commission amounts outside the agreed percentage",
        "vendor_code": "OTA001",
        "entity_type": "LINE_ITEM",
        "rule_type": "SOFT",
        "is_active": False,
        "priority": 50,
        "conditions": [
            {"type": "NUMERIC_COMPARISON", "operator": "EQUALS",
             "invoice_field": "commission_percentage", "expected": 15}
        ],
        "actions": {"on_match": "CONTINUE", "on_mismatch": "WARNING"},
        "effective_days_ago": 30,
    },
]

LINE_ITEMS_PER_INVOICE = 2


def _iso(moment: datetime) -> str:
    return moment.isoformat()


def _vendor_records(now: datetime) -> List[Dict[str, Any]]:
    records = []
    for seed in MOCK_VENDORS:
        record = {k: v for k, v in seed.items() if k != "created_days_ago"}
        created = now - timedelta(days=seed["created_days_ago"])
        record["created_at"] = _iso(created)
        record["last_modified"] = _iso(created)
        records.append(record)
    return records


def _invoice_records(now: datetime) -> List[Dict[str, Any]]:
    vendors = {v["id"]: v for v in MOCK_VENDORS}
    records = []
    for index, (invoice_id, vendor_id, status, days_ago, subtotal) in enumerate(MOCK_INVOICES, start=1):
        vendor = vendors[vendor_id]
        invoice_date = now - timedelta(days=days_ago)
        tax = round(subtotal * 0.1, 2)
        records.append({
            "id": invoice_id,
            "invoice_number": f"INV-{invoice_date.year}-{index:03d}",
            "vendor_id": vendor_id,
            "vendor_name": vendor["vendor_name"],
            "vendor_invoice_number": f"{vendor['vendor_code']}-{index:04d}",
            "invoice_date": _iso(invoice_date),
            "due_date": _iso(invoice_date + timedelta(days=vendor["payment_terms_days"])),
            "period_start": _iso(invoice_date - timedelta(days=30)),
            "period_end": _iso(invoice_date),
            "status": status,
            "currency": vendor["currency"],
            "subtotal": subtotal,
            "tax_amount": tax,
            "total_amount": round(subtotal + tax, 2),
            "tags": ["monthly", vendor["vendor_code"].lower()],
            "created_at": _iso(invoice_date),
            "last_modified": _iso(invoice_date),
        })
    return records


def _rule_records(now: datetime) -> List[Dict[str, Any]]:
    records = []
    for seed in MOCK_RULES:
        record = {k: v for k, v in seed.items() if k != "effective_days_ago"}
        effective = now - timedelta(days=seed["effective_days_ago"])
        record["effective_from"] = _iso(effective)
        record["effective_to"] = None
        record["created_at"] = _iso(effective)
        record["last_modified"] = _iso(effective)
        records.append(record)
    return records


def _line_item_records(invoices: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    records = []
    for invoice in invoices:
        for i in range(LINE_ITEMS_PER_INVOICE):
            rate = 150 + i * 10
            disputed = invoice["status"] == "REJECTED" and i == LINE_ITEMS_PER_INVOICE - 1
            records.append({
                "id": f"li-{invoice['id']}-{i + 1}",
                "invoice_id": invoice["id"],
                "vendor_id": invoice["vendor_id"],
                "line_number": i + 1,
                "description": "Standard Room, 2 nights",
                "confirmation_number": f"CONF-{100000 + i:08d}",
                "guest_name": f"Guest {i + 1}",
                "property_name": f"Hotel Property {i + 1}",
                "check_in_date": invoice["period_start"],
                "check_out_date": invoice["period_end"],
                "room_rate": rate,
                "nights": 2,
                "total_amount": round(rate * 2 * 1.1 + 25, 2),
                "validation_status": "DISPUTED" if disputed else "PASSED",
                "created_at": invoice["created_at"],
                "last_modified": invoice["last_modified"],
            })
    return records


def build_seed_data(now: Optional[datetime] = None) -> Dict[EntityType, List[Dict[str, Any]]]:
    """Build a fresh copy of the seed records keyed by entity type."""
    now = now or datetime.now(timezone.utc)
    invoices = _invoice_records(now)
    return {
        EntityType.VENDOR: _vendor_records(now),
        EntityType.INVOICE: invoices,
        EntityType.RULE: _rule_records(now),
        EntityType.LINE_ITEM: _line_item_records(invoices),
    }
