"""
Unit tests for the data hooks.
Covers stale-while-revalidate, superseded fetches, realtime mode, filter
changes and mutations.
"""
import asyncio
import unittest
from unittest.mock import AsyncMock, MagicMock

from src.Caching.cache_manager import ExpiringCache
from src.Caching.local_store import MemoryStore
from src.database.data_service import DataService
from src.database.mock_data_service import MockDataService
from src.errors import NotFoundError, TransientBackendError
from src.hooks import HookState, InvoicesHook, RulesHook, VendorsHook
from src.models.entities import EntityType
from src.subscriptions.multiplexer import SubscriptionMultiplexer


class CountingService(MockDataService):
    """MockDataService that counts list() calls."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.list_calls = 0

    async def list(self, entity_type, filters=None):
        self.list_calls += 1
        return await super().list(entity_type, filters)


class GatedService(MockDataService):
    """MockDataService whose list() calls block until released."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.gates = []

    async def list(self, entity_type, filters=None):
        gate = asyncio.Event()
        self.gates.append(gate)
        await gate.wait()
        return await super().list(entity_type, filters)


class HookTestCase(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.service = CountingService()
        self.cache = ExpiringCache(MemoryStore(), namespace="test_")
        self.hooks = []

    async def asyncTearDown(self):
        for hook in self.hooks:
            hook.deactivate()
        await self.service.close()

    def track(self, hook):
        self.hooks.append(hook)
        self.states = []
        hook.add_listener(lambda result: self.states.append(result.state))
        return hook


class TestLoadSequence(HookTestCase):
    """Test cases for cache hydration and revalidation."""

    async def test_cold_load(self):
        hook = self.track(InvoicesHook(self.service, self.cache))
        await hook.activate()

        self.assertEqual(hook.state, HookState.LOADING_FRESH)
        self.assertTrue(hook.loading)
        self.assertEqual(hook.data, [])

        await hook.wait_for_fetch()
        self.assertEqual(hook.state, HookState.READY)
        self.assertFalse(hook.loading)
        self.assertEqual(len(hook.data), 7)
        self.assertEqual(self.states, [HookState.LOADING_FRESH, HookState.READY])
        self.assertEqual(len(self.cache.get("invoices:{}")), 7)

    async def test_stale_while_revalidate(self):
        self.cache.set("invoices:{}", [{"id": "cached"}])
        hook = self.track(InvoicesHook(self.service, self.cache))

        await hook.activate()
        self.assertEqual(hook.state, HookState.HYDRATED_STALE)
        self.assertFalse(hook.loading)
        self.assertEqual(hook.data, [{"id": "cached"}])

        await hook.wait_for_fetch()
        self.assertEqual(hook.state, HookState.READY)
        self.assertEqual(len(hook.data), 7)
        self.assertEqual(self.states, [HookState.HYDRATED_STALE, HookState.READY])

    async def test_stale_data_kept_on_failure(self):
        self.cache.set("invoices:{}", [{"id": "cached"}])
        error = TransientBackendError("offline")
        self.service.list = AsyncMock(side_effect=error)
        hook = self.track(InvoicesHook(self.service, self.cache))

        await hook.activate()
        await hook.wait_for_fetch()

        self.assertEqual(hook.state, HookState.ERROR)
        self.assertIs(hook.error, error)
        self.assertFalse(hook.loading)
        self.assertEqual(hook.data, [{"id": "cached"}])

    async def test_wait_until_settled(self):
        hook = self.track(VendorsHook(self.service, self.cache))
        await hook.activate()

        result = await hook.wait_until_settled(timeout=1)

        self.assertEqual(result.state, HookState.READY)
        self.assertEqual([v["id"] for v in result.data], ["v1", "v2", "v3"])

    async def test_context_manager(self):
        async with InvoicesHook(self.service, self.cache) as hook:
            self.assertTrue(hook.active)
            await hook.wait_for_fetch()
        self.assertFalse(hook.active)

    async def test_refresh_requires_active_hook(self):
        hook = InvoicesHook(self.service, self.cache)
        with self.assertRaises(RuntimeError):
            await hook.refresh()

    async def test_refresh_failure_is_not_raised(self):
        hook = self.track(InvoicesHook(self.service, self.cache))
        await hook.activate()
        await hook.wait_for_fetch()

        self.service.list = AsyncMock(side_effect=TransientBackendError("offline"))
        await hook.refresh()

        self.assertEqual(hook.state, HookState.ERROR)
        self.assertEqual(len(hook.data), 7)

    async def test_refresh_writes_cache(self):
        hook = self.track(VendorsHook(self.service, self.cache))
        await hook.activate()
        await hook.wait_for_fetch()
        self.cache.clear_all()

        await hook.refresh()

        self.assertEqual(hook.state, HookState.READY)
        self.assertEqual(len(self.cache.get("vendors:{}")), 3)

    async def test_custom_ttl(self):
        hook = InvoicesHook(self.service, self.cache, ttl=42)
        self.assertEqual(hook.ttl, 42)
        self.assertEqual(VendorsHook(self.service, self.cache).ttl, 1800)


class TestSupersededFetches(unittest.IsolatedAsyncioTestCase):
    """Test cases for generation tracking."""

    async def asyncSetUp(self):
        self.service = GatedService()
        self.cache = ExpiringCache(MemoryStore(), namespace="test_")

    async def test_older_fetch_completing_last_is_discarded(self):
        hook = InvoicesHook(self.service, self.cache, filters={"vendor_id": "v1"})
        await hook.activate()
        await asyncio.sleep(0)

        hook.set_filters({"vendor_id": "v2"})
        await asyncio.sleep(0)
        self.assertEqual(len(self.service.gates), 2)

        self.service.gates[1].set()
        self.service.gates[0].set()
        await hook.wait_for_fetch()

        self.assertEqual([r["id"] for r in hook.data], ["inv2", "inv4", "inv6"])
        self.assertEqual(hook.state, HookState.READY)
        self.assertIsNone(self.cache.get('invoices:{"vendor_id":"v1"}'))
        self.assertIsNotNone(self.cache.get('invoices:{"vendor_id":"v2"}'))
        hook.deactivate()

    async def test_deactivate_discards_in_flight_fetch(self):
        hook = InvoicesHook(self.service, self.cache)
        emitted = []
        hook.add_listener(emitted.append)

        await hook.activate()
        await asyncio.sleep(0)
        hook.deactivate()
        self.service.gates[0].set()
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        self.assertEqual(len(emitted), 1)
        self.assertEqual(hook.data, [])
        self.assertEqual(hook.state, HookState.LOADING_FRESH)
        self.assertIsNone(self.cache.get("invoices:{}"))


class TestFilters(HookTestCase):
    """Test cases for set_filters / update_filters."""

    async def test_local_only_change_does_not_refetch(self):
        hook = self.track(InvoicesHook(self.service, self.cache))
        await hook.activate()
        await hook.wait_for_fetch()
        calls = self.service.list_calls

        hook.set_filters({"search": "grand"})

        self.assertEqual(self.service.list_calls, calls)
        self.assertEqual(hook.state, HookState.READY)
        self.assertEqual([r["id"] for r in hook.data], ["inv1", "inv3", "inv5", "inv7"])

    async def test_scope_change_refetches(self):
        hook = self.track(InvoicesHook(self.service, self.cache, filters={"search": "grand"}))
        await hook.activate()
        await hook.wait_for_fetch()
        calls = self.service.list_calls

        hook.update_filters(status="PAID")
        self.assertEqual(hook.state, HookState.LOADING_FRESH)
        await hook.wait_for_fetch()

        self.assertEqual(self.service.list_calls, calls + 1)
        self.assertEqual([r["id"] for r in hook.data], ["inv3"])
        self.assertEqual(hook.filters.search, "grand")

    async def test_clearing_a_filter_with_none(self):
        hook = self.track(InvoicesHook(self.service, self.cache, filters={"status": "PAID"}))
        await hook.activate()
        await hook.wait_for_fetch()

        hook.update_filters(status=None)
        await hook.wait_for_fetch()

        self.assertTrue(hook.filters.is_empty())
        self.assertEqual(len(hook.data), 7)

    async def test_same_filters_are_a_noop(self):
        hook = self.track(VendorsHook(self.service, self.cache, filters={"status": "ACTIVE"}))
        await hook.activate()
        await hook.wait_for_fetch()
        emitted = len(self.states)

        hook.set_filters({"status": "ACTIVE"})
        self.assertEqual(len(self.states), emitted)

    async def test_vendor_filters_never_hit_the_backend(self):
        hook = self.track(VendorsHook(self.service, self.cache))
        await hook.activate()
        await hook.wait_for_fetch()
        calls = self.service.list_calls

        hook.set_filters({"status": "ACTIVE", "vendor_type": "OTA"})

        self.assertEqual(self.service.list_calls, calls)
        self.assertEqual([v["id"] for v in hook.data], ["v2"])

    async def test_filters_change_while_inactive(self):
        hook = InvoicesHook(self.service, self.cache)
        hook.set_filters({"status": "PAID"})
        self.assertEqual(self.service.list_calls, 0)

        await hook.activate()
        await hook.wait_for_fetch()
        self.assertEqual([r["id"] for r in hook.data], ["inv3"])
        hook.deactivate()


class TestMutations(HookTestCase):
    """Test cases for mutations through hooks."""

    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.hook = self.track(InvoicesHook(self.service, self.cache))
        await self.hook.activate()
        await self.hook.wait_for_fetch()

    async def test_update_invalidates_and_reloads(self):
        self.cache.set("invoice_inv1", {"id": "inv1", "status": "VALIDATED"})
        self.cache.set('invoices:{"status":"PAID"}', [])

        await self.hook.update_status("inv1", "APPROVED")

        inv1 = next(r for r in self.hook.data if r["id"] == "inv1")
        self.assertEqual(inv1["status"], "APPROVED")
        self.assertEqual(self.hook.state, HookState.READY)
        self.assertIsNone(self.cache.get("invoice_inv1"))
        self.assertIsNone(self.cache.get('invoices:{"status":"PAID"}'))
        self.assertEqual(len(self.cache.get("invoices:{}")), 7)

    async def test_create_shows_new_record(self):
        created = await self.hook.create({"vendor_id": "v2", "vendor_invoice_number": "OTA001-0100"})

        self.assertIn(created["id"], [r["id"] for r in self.hook.data])
        self.assertEqual(len(self.hook.data), 8)

    async def test_delete_clears_line_items_cache(self):
        await self.hook.get_line_items("inv5")
        self.assertIsNotNone(self.cache.get("line_items_inv5"))

        await self.hook.delete("inv5")

        self.assertNotIn("inv5", [r["id"] for r in self.hook.data])
        self.assertIsNone(self.cache.get("line_items_inv5"))

    async def test_bulk_update_status(self):
        await self.hook.bulk_update_status(["inv2", "inv7"], "EXTRACTED")
        statuses = {r["id"]: r["status"] for r in self.hook.data}
        self.assertEqual(statuses["inv2"], "EXTRACTED")
        self.assertEqual(statuses["inv7"], "EXTRACTED")

    async def test_bulk_update_with_no_ids(self):
        calls = self.service.list_calls
        await self.hook.bulk_update([], {"status": "PAID"})
        self.assertEqual(self.service.list_calls, calls)

    async def test_failed_mutation_leaves_state_alone(self):
        before = self.hook.data

        with self.assertRaises(NotFoundError):
            await self.hook.update_status("nope", "PAID")

        self.assertEqual(self.hook.state, HookState.READY)
        self.assertIsNone(self.hook.error)
        self.assertEqual(self.hook.data, before)

    async def test_get_invoice_is_cached(self):
        invoice = await self.hook.get_invoice("inv3")
        self.assertEqual(invoice["status"], "PAID")
        self.assertEqual(self.cache.get("invoice_inv3"), invoice)

    async def test_get_line_items_is_cached(self):
        items = await self.hook.get_line_items("inv1")
        self.assertEqual(len(items), 2)
        self.assertEqual(self.cache.get("line_items_inv1"), items)


class TestVendorsAndRules(HookTestCase):
    """Test cases for entity-specific hook operations."""

    async def test_get_vendor(self):
        hook = VendorsHook(self.service, self.cache)
        vendor = await hook.get_vendor("v2")

        self.assertEqual(vendor["vendor_code"], "OTA001")
        self.assertEqual(self.cache.get("vendor_v2"), vendor)
        self.assertIsNone(await hook.get_vendor("missing"))
        self.assertIsNone(self.cache.get("vendor_missing"))

    async def test_set_vendor_status(self):
        hook = self.track(VendorsHook(self.service, self.cache, filters={"status": "ACTIVE"}))
        await hook.activate()
        await hook.wait_for_fetch()

        await hook.set_status("v3", "ACTIVE")

        self.assertEqual([v["id"] for v in hook.data], ["v1", "v2", "v3"])

    async def test_toggle_rule_status(self):
        hook = self.track(RulesHook(self.service, self.cache))
        await hook.activate()
        await hook.wait_for_fetch()

        self.assertTrue(await hook.toggle_rule_status("r3"))
        r3 = next(r for r in hook.data if r["id"] == "r3")
        self.assertTrue(r3["is_active"])

        self.assertFalse(await hook.toggle_rule_status("r3"))

    async def test_toggle_unknown_rule(self):
        hook = RulesHook(self.service, self.cache)
        with self.assertRaises(NotFoundError):
            await hook.toggle_rule_status("missing")

    async def test_rule_scope_includes_global_rules(self):
        hook = self.track(RulesHook(self.service, self.cache, filters={"vendor_code": "HOTEL001"}))
        await hook.activate()
        await hook.wait_for_fetch()
        self.assertEqual([r["id"] for r in hook.data], ["r1", "r2"])


class TestRealtime(HookTestCase):
    """Test cases for realtime hooks."""

    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.mux = SubscriptionMultiplexer(self.service)

    async def asyncTearDown(self):
        await super().asyncTearDown()
        self.mux.close()

    async def test_requires_multiplexer(self):
        with self.assertRaises(ValueError):
            RulesHook(self.service, self.cache, realtime=True)

    async def test_snapshots_update_data_without_caching(self):
        hook = self.track(RulesHook(self.service, self.cache, self.mux,
                                    filters={"vendor_code": "HOTEL001"}, realtime=True))
        await hook.activate()
        self.assertEqual(hook.state, HookState.LOADING_FRESH)

        await asyncio.sleep(0)
        self.assertEqual(hook.state, HookState.READY)
        self.assertEqual([r["id"] for r in hook.data], ["r1", "r2"])

        created = await hook.create({"rule_name": "Minibar check", "vendor_code": "HOTEL001"})
        await asyncio.sleep(0)

        self.assertEqual([r["id"] for r in hook.data], ["r1", "r2", created["id"]])
        self.assertEqual(self.service.list_calls, 0)
        self.assertFalse(any(k.startswith("rules:") for k in self.cache.keys()))

    async def test_hooks_share_one_subscription(self):
        first = self.track(VendorsHook(self.service, self.cache, self.mux, realtime=True))
        second = VendorsHook(self.service, self.cache, self.mux, filters={"status": "ACTIVE"}, realtime=True)
        self.hooks.append(second)

        await first.activate()
        await second.activate()
        await asyncio.sleep(0)

        self.assertEqual(self.service.subscription_count, 1)
        self.assertEqual(len(first.data), 3)
        self.assertEqual([v["id"] for v in second.data], ["v1", "v2"])

    async def test_deactivate_releases_subscription(self):
        hook = VendorsHook(self.service, self.cache, self.mux, realtime=True)
        await hook.activate()
        self.assertEqual(self.mux.subscription_count(), 1)

        hook.deactivate()
        await asyncio.sleep(0)

        self.assertEqual(self.mux.subscription_count(), 0)
        self.assertEqual(self.service.subscription_count, 0)
        self.assertEqual(hook.data, [])

    async def test_scope_change_resubscribes(self):
        hook = self.track(InvoicesHook(self.service, self.cache, self.mux,
                                       filters={"vendor_id": "v1"}, realtime=True))
        await hook.activate()
        await asyncio.sleep(0)

        hook.set_filters({"vendor_id": "v2"})
        await asyncio.sleep(0)

        self.assertEqual([r["id"] for r in hook.data], ["inv2", "inv4", "inv6"])
        self.assertEqual(self.mux.subscription_count(), 1)
        self.assertEqual(self.mux.listener_count(EntityType.INVOICE, {"vendor_id": "v2"}), 1)

    async def test_subscription_error_sets_error_state(self):
        backend = MagicMock(spec=DataService)
        backend.subscribe.return_value = MagicMock()
        mux = SubscriptionMultiplexer(backend)
        hook = VendorsHook(backend, self.cache, mux, realtime=True)
        await hook.activate()

        on_data, on_error = backend.subscribe.call_args.args[2:4]
        on_data([{"id": "v1", "vendor_name": "Grand Plaza Hotel Group"}])
        self.assertEqual(hook.state, HookState.READY)

        error = TransientBackendError("stream closed")
        on_error(error)

        self.assertEqual(hook.state, HookState.ERROR)
        self.assertIs(hook.error, error)
        self.assertFalse(hook.loading)
        self.assertEqual(hook.data, [{"id": "v1", "vendor_name": "Grand Plaza Hotel Group"}])
        hook.deactivate()

    async def test_failed_subscribe_sets_error_state(self):
        backend = MagicMock(spec=DataService)
        error = TransientBackendError("refused")
        backend.subscribe.side_effect = [error, MagicMock()]
        backend.list = AsyncMock(return_value=[{"id": "v1"}])
        mux = SubscriptionMultiplexer(backend)
        hook = VendorsHook(backend, self.cache, mux, realtime=True)

        await hook.activate()

        self.assertTrue(hook.active)
        self.assertEqual(hook.state, HookState.ERROR)
        self.assertIs(hook.error, error)
        self.assertFalse(hook.loading)
        self.assertEqual(mux.subscription_count(), 0)

        await hook.refresh()

        self.assertEqual(backend.subscribe.call_count, 2)
        self.assertEqual(mux.subscription_count(), 1)
        self.assertEqual(hook.state, HookState.READY)
        self.assertEqual(hook.data, [{"id": "v1"}])
        hook.deactivate()

    async def test_hooks_do_not_share_snapshot_records(self):
        first = self.track(VendorsHook(self.service, self.cache, self.mux, realtime=True))
        second = VendorsHook(self.service, self.cache, self.mux, realtime=True)
        self.hooks.append(second)
        await first.activate()
        await second.activate()
        await asyncio.sleep(0)

        first.data[0]["vendor_name"] = "Edited"

        self.assertEqual(second.data[0]["vendor_name"], "Grand Plaza Hotel Group")


if __name__ == '__main__':
    unittest.main()
