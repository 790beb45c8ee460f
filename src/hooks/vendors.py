"""
Vendors hook.

The vendor list is small, so the full set is always fetched and every filter
is applied in memory. Changing filters never triggers a backend query.
"""

from typing import Optional

from src.Caching.cache_manager import CACHE_KEYS, CACHE_TTL
from src.database.data_service import Record
from src.hooks.base_hook import DataHook
from src.models.entities import EntityType, VendorStatus


class VendorsHook(DataHook):
    entity_type = EntityType.VENDOR
    cache_base = CACHE_KEYS["VENDORS"]
    detail_key = staticmethod(CACHE_KEYS["VENDOR_DETAIL"])
    default_ttl = CACHE_TTL["LONG"]

    async def set_status(self, vendor_id: str, status: VendorStatus) -> None:
        await self.update(vendor_id, {"status": status})

    async def get_vendor(self, vendor_id: str) -> Optional[Record]:
        """Single vendor, served from the cache when fresh. None if it does not exist."""
        return await self._get_cached_detail(vendor_id)
