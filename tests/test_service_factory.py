"""
Unit tests for the service factory.
"""
import os
import shutil
import tempfile
import unittest
from unittest.mock import MagicMock, patch

from src.Caching.local_store import JsonFileStore, MemoryStore
from src.config import AppConfig
from src.database.mock_data_service import MockDataService
from src.database.service_factory import build_services, create_data_service, create_store
from src.hooks import HookState, InvoicesHook, RulesHook


class TestFactories(unittest.TestCase):
    """Test cases for the backend and store factories."""

    def test_mock_backend(self):
        service = create_data_service(AppConfig(mock_latency_seconds=0.5))
        self.assertIsInstance(service, MockDataService)
        self.assertEqual(service.latency, 0.5)

    @patch('src.database.firebase_client.FirebaseClient')
    def test_firestore_backend(self, mock_client_class):
        from src.database.firestore_data_service import FirestoreDataService

        config = AppConfig(use_mock_data=False, firebase_project_id="recon-test")
        service = create_data_service(config)

        self.assertIsInstance(service, FirestoreDataService)
        mock_client_class.assert_called_once_with(credentials_path=None, project_id="recon-test")
        service._executor.shutdown(wait=False)

    def test_memory_store_by_default(self):
        store = create_store(AppConfig(cache_capacity_bytes=2048))
        self.assertIsInstance(store, MemoryStore)
        self.assertEqual(store.capacity_bytes, 2048)

    def test_file_store_when_path_set(self):
        temp_dir = tempfile.mkdtemp()
        try:
            store = create_store(AppConfig(cache_store_path=os.path.join(temp_dir, "cache.json")))
            self.assertIsInstance(store, JsonFileStore)
        finally:
            shutil.rmtree(temp_dir, ignore_errors=True)


class TestServices(unittest.IsolatedAsyncioTestCase):
    """Test cases for the wired Services bundle."""

    async def asyncSetUp(self):
        self.config = AppConfig(enable_realtime=True)
        self.config.cache_ttl = dict(self.config.cache_ttl)
        self.services = build_services(self.config)

    async def asyncTearDown(self):
        await self.services.close()

    async def test_hooks_share_cache_and_multiplexer(self):
        invoices = self.services.invoices()
        rules = self.services.rules({"vendor_code": "HOTEL001"})

        self.assertIsInstance(invoices, InvoicesHook)
        self.assertIsInstance(rules, RulesHook)
        self.assertIs(invoices.cache, rules.cache)
        self.assertIs(invoices.multiplexer, self.services.multiplexer)
        self.assertIs(invoices.service, self.services.data_service)

    async def test_hook_options_follow_config(self):
        self.assertTrue(self.services.vendors().realtime)
        self.assertFalse(self.services.vendors(realtime=False).realtime)
        self.assertEqual(self.services.invoices().ttl, 300)
        self.assertEqual(self.services.rules().ttl, 900)

    async def test_end_to_end(self):
        hook = self.services.invoices({"status": "PAID"}, realtime=False)
        async with hook:
            result = await hook.wait_until_settled(timeout=1)

        self.assertEqual(result.state, HookState.READY)
        self.assertEqual([r["id"] for r in result.data], ["inv3"])
        self.assertIsNotNone(self.services.cache.get('invoices:{"status":"PAID"}'))

    async def test_injected_backend(self):
        backend = MagicMock()
        services = build_services(self.config, data_service=backend, store=MemoryStore())
        self.assertIs(services.data_service, backend)
        self.assertIs(services.multiplexer.service, backend)


if __name__ == '__main__':
    unittest.main()
