"""
Application configuration read from environment variables.

A .env file in the working directory is loaded first via python-dotenv.
"""

import os
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from dotenv import load_dotenv

from src.Caching.cache_manager import CACHE_TTL, DEFAULT_NAMESPACE
from src.Caching.local_store import DEFAULT_CAPACITY_BYTES
from src.models.entities import EntityType

# Configure logging
logger = logging.getLogger(__name__)

TRUE_VALUES = ('1', 'true', 'yes', 'on')


def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    value = env.get(name)
    if value is None or value.strip() == '':
        return default
    return value.strip().lower() in TRUE_VALUES


def _env_number(env: Mapping[str, str], name: str, default, cast=float):
    value = env.get(name)
    if value is None or value.strip() == '':
        return default
    try:
        return cast(value)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {value!r}") from e


@dataclass
class AppConfig:
    environment: str = "development"
    use_mock_data: bool = True
    enable_realtime: bool = False

    firebase_project_id: Optional[str] = None
    firebase_credentials: Optional[str] = None
    collections: Dict[EntityType, str] = field(default_factory=lambda: {
        EntityType.INVOICE: "invoices",
        EntityType.VENDOR: "vendors",
        EntityType.RULE: "validation_rules",
        EntityType.LINE_ITEM: "line_items",
    })

    cache_namespace: str = DEFAULT_NAMESPACE
    cache_store_path: Optional[str] = None
    cache_capacity_bytes: int = DEFAULT_CAPACITY_BYTES
    cache_ttl: Dict[EntityType, float] = field(default_factory=lambda: {
        EntityType.INVOICE: CACHE_TTL["SHORT"],
        EntityType.VENDOR: CACHE_TTL["LONG"],
        EntityType.RULE: CACHE_TTL["MEDIUM"],
    })

    mock_latency_seconds: float = 0.0
    log_level: str = "INFO"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None, dotenv: bool = True) -> "AppConfig":
        """Build a config from environment variables.

        Args:
            env: Mapping to read instead of os.environ
            dotenv: Load a .env file into os.environ first (only when env is None)
        """
        if env is None:
            if dotenv:
                load_dotenv()
            env = os.environ

        defaults = cls()
        collections = dict(defaults.collections)
        for entity_type, var in ((EntityType.INVOICE, 'COLLECTION_INVOICES'),
                                 (EntityType.VENDOR, 'COLLECTION_VENDORS'),
                                 (EntityType.RULE, 'COLLECTION_RULES'),
                                 (EntityType.LINE_ITEM, 'COLLECTION_LINE_ITEMS')):
            if env.get(var):
                collections[entity_type] = env[var]

        cache_ttl = dict(defaults.cache_ttl)
        for entity_type, var in ((EntityType.INVOICE, 'CACHE_TTL_INVOICES'),
                                 (EntityType.VENDOR, 'CACHE_TTL_VENDORS'),
                                 (EntityType.RULE, 'CACHE_TTL_RULES')):
            cache_ttl[entity_type] = _env_number(env, var, cache_ttl[entity_type])

        return cls(
            environment=env.get('APP_ENVIRONMENT', defaults.environment),
            use_mock_data=_env_bool(env, 'USE_MOCK_DATA', True),
            enable_realtime=_env_bool(env, 'ENABLE_REALTIME', False),
            firebase_project_id=env.get('FIREBASE_PROJECT_ID') or None,
            firebase_credentials=(env.get('FIREBASE_CREDENTIALS')
                                  or env.get('GOOGLE_APPLICATION_CREDENTIALS') or None),
            collections=collections,
            cache_namespace=env.get('CACHE_NAMESPACE', defaults.cache_namespace),
            cache_store_path=env.get('CACHE_STORE_PATH') or None,
            cache_capacity_bytes=_env_number(env, 'CACHE_CAPACITY_BYTES', DEFAULT_CAPACITY_BYTES, int),
            cache_ttl=cache_ttl,
            mock_latency_seconds=_env_number(env, 'MOCK_LATENCY_SECONDS', 0.0),
            log_level=env.get('LOG_LEVEL', defaults.log_level).upper(),
        )


def validate_config(config: AppConfig) -> List[str]:
    """Return a list of configuration problems. An empty list means the config is usable."""
    errors = []

    if not config.use_mock_data:
        if not config.firebase_project_id and not config.firebase_credentials:
            errors.append("Firebase project ID or credentials file is required when mock data is disabled")
        if config.firebase_credentials and not os.path.isfile(config.firebase_credentials):
            errors.append(f"Firebase credentials file not found: {config.firebase_credentials}")
    if config.cache_capacity_bytes <= 0:
        errors.append("Cache capacity must be positive")
    for entity_type, ttl in config.cache_ttl.items():
        if ttl <= 0:
            errors.append(f"Cache TTL for {entity_type.value} must be positive")
    if config.mock_latency_seconds < 0:
        errors.append("Mock latency cannot be negative")
    if config.log_level not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
        errors.append(f"Unknown log level: {config.log_level}")

    for error in errors:
        logger.warning(f"Configuration problem: {error}")
    return errors
