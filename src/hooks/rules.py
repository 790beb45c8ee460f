"""
Validation rules hook.

Server scope: vendor_code (which also matches global '*' rules) and is_active.
Entity type, rule type, priority range, date range and search are applied in
memory.
"""

import logging

from src.Caching.cache_manager import CACHE_KEYS, CACHE_TTL
from src.errors import NotFoundError
from src.hooks.base_hook import DataHook
from src.models.entities import EntityType

# Configure logging
logger = logging.getLogger(__name__)


class RulesHook(DataHook):
    entity_type = EntityType.RULE
    cache_base = CACHE_KEYS["RULES"]
    detail_key = staticmethod(CACHE_KEYS["RULE_DETAIL"])
    default_ttl = CACHE_TTL["MEDIUM"]

    async def toggle_rule_status(self, rule_id: str) -> bool:
        """Flip a rule's is_active flag.

        Returns:
            The new is_active value

        Raises:
            NotFoundError: If the rule does not exist
        """
        rule = next((r for r in self._records if r.get('id') == rule_id), None)
        if rule is None:
            rule = await self.service.get_by_id(self.entity_type, rule_id)
        if rule is None:
            raise NotFoundError(self.entity_type, rule_id)

        is_active = not rule.get('is_active', True)
        logger.info(f"Toggling rule {rule_id} to {'active' if is_active else 'inactive'}")
        await self.update(rule_id, {"is_active": is_active})
        return is_active
