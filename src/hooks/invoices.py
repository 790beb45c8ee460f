"""
Invoices hook.

Server scope: vendor_id and status. Date range and search are applied in memory.
"""

import logging
from typing import List, Optional

from src.Caching.cache_manager import CACHE_KEYS, CACHE_TTL
from src.database.data_service import Record
from src.hooks.base_hook import DataHook
from src.models.entities import EntityType, InvoiceStatus

# Configure logging
logger = logging.getLogger(__name__)


class InvoicesHook(DataHook):
    entity_type = EntityType.INVOICE
    cache_base = CACHE_KEYS["INVOICES"]
    detail_key = staticmethod(CACHE_KEYS["INVOICE_DETAIL"])
    default_ttl = CACHE_TTL["SHORT"]

    async def update_status(self, invoice_id: str, status: InvoiceStatus) -> None:
        logger.info(f"Setting invoice {invoice_id} status to {status}")
        await self.update(invoice_id, {"status": status})

    async def bulk_update_status(self, invoice_ids: List[str], status: InvoiceStatus) -> None:
        logger.info(f"Setting {len(invoice_ids)} invoices to {status}")
        await self.bulk_update(invoice_ids, {"status": status})

    async def delete(self, record_id: str) -> None:
        await super().delete(record_id)
        self.cache.remove(CACHE_KEYS["INVOICE_LINE_ITEMS"](record_id))

    async def get_invoice(self, invoice_id: str) -> Optional[Record]:
        return await self._get_cached_detail(invoice_id)

    async def get_line_items(self, invoice_id: str) -> List[Record]:
        """Line items for one invoice, served from the cache when fresh."""
        key = CACHE_KEYS["INVOICE_LINE_ITEMS"](invoice_id)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        items = await self.service.get_line_items(invoice_id)
        self.cache.set(key, items, self.ttl)
        return items
