"""
Service Factory

Composition root: builds the one data service variant, the cache and the
multiplexer a process uses, and hands out hooks wired to them. Nothing else in
the code base decides between the mock and Firestore backends.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from src.Caching.cache_manager import ExpiringCache
from src.Caching.local_store import JsonFileStore, LocalStore, MemoryStore
from src.config import AppConfig
from src.database.data_service import DataService, Filters
from src.database.mock_data_service import MockDataService
from src.hooks.invoices import InvoicesHook
from src.hooks.rules import RulesHook
from src.hooks.vendors import VendorsHook
from src.models.entities import EntityType
from src.subscriptions.multiplexer import SubscriptionMultiplexer

# Configure logging
logger = logging.getLogger(__name__)


def create_data_service(config: AppConfig) -> DataService:
    if config.use_mock_data:
        logger.info("Using mock data service")
        return MockDataService(latency=config.mock_latency_seconds)

    # Imported here so mock-only runs never initialize firebase-admin
    from src.database.firebase_client import FirebaseClient
    from src.database.firestore_data_service import FirestoreDataService

    logger.info(f"Using Firestore data service for project {config.firebase_project_id or '(default)'}")
    client = FirebaseClient(
        credentials_path=config.firebase_credentials,
        project_id=config.firebase_project_id,
    )
    return FirestoreDataService(client, collections=config.collections)


def create_store(config: AppConfig) -> LocalStore:
    if config.cache_store_path:
        logger.info(f"Using file cache store at {config.cache_store_path}")
        return JsonFileStore(config.cache_store_path, capacity_bytes=config.cache_capacity_bytes)
    return MemoryStore(capacity_bytes=config.cache_capacity_bytes)


def create_cache(config: AppConfig, store: Optional[LocalStore] = None) -> ExpiringCache:
    return ExpiringCache(store or create_store(config), namespace=config.cache_namespace)


@dataclass
class Services:
    """Everything a consumer needs, built once per process."""
    config: AppConfig
    data_service: DataService
    cache: ExpiringCache
    multiplexer: SubscriptionMultiplexer

    def _hook_options(self, entity_type: EntityType, realtime: Optional[bool]) -> dict:
        return {
            "realtime": self.config.enable_realtime if realtime is None else realtime,
            "ttl": self.config.cache_ttl.get(entity_type),
        }

    def invoices(self, filters: Filters = None, realtime: Optional[bool] = None) -> InvoicesHook:
        return InvoicesHook(self.data_service, self.cache, self.multiplexer, filters,
                            **self._hook_options(EntityType.INVOICE, realtime))

    def vendors(self, filters: Filters = None, realtime: Optional[bool] = None) -> VendorsHook:
        return VendorsHook(self.data_service, self.cache, self.multiplexer, filters,
                           **self._hook_options(EntityType.VENDOR, realtime))

    def rules(self, filters: Filters = None, realtime: Optional[bool] = None) -> RulesHook:
        return RulesHook(self.data_service, self.cache, self.multiplexer, filters,
                         **self._hook_options(EntityType.RULE, realtime))

    async def close(self) -> None:
        self.multiplexer.close()
        await self.data_service.close()


def build_services(config: Optional[AppConfig] = None,
                   data_service: Optional[DataService] = None,
                   store: Optional[LocalStore] = None) -> Services:
    """Wire the data service, cache and multiplexer together.

    Args:
        config: Configuration; read from the environment when omitted
        data_service: Use this backend instead of creating one from config
        store: Use this local store instead of creating one from config
    """
    config = config or AppConfig.from_env()
    service = data_service or create_data_service(config)
    return Services(
        config=config,
        data_service=service,
        cache=create_cache(config, store),
        multiplexer=SubscriptionMultiplexer(service),
    )
