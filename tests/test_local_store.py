"""
Unit tests for the local stores underneath the expiring cache.
"""
import errno
import json
import os
import shutil
import tempfile
import unittest
from unittest.mock import patch

from src.Caching.local_store import JsonFileStore, MemoryStore
from src.errors import CacheError, QuotaExceededError


class TestMemoryStore(unittest.TestCase):
    """Test cases for MemoryStore."""

    def test_set_get_remove(self):
        store = MemoryStore()
        store.set_item("a", "1")
        self.assertEqual(store.get_item("a"), "1")
        self.assertEqual(store.keys(), ["a"])

        store.remove_item("a")
        self.assertIsNone(store.get_item("a"))
        self.assertEqual(store.used_bytes, 0)

    def test_remove_missing_key_is_noop(self):
        store = MemoryStore()
        store.remove_item("missing")
        self.assertEqual(store.keys(), [])

    def test_quota_exceeded(self):
        # "k" + 9 chars = 10 chars = 20 bytes
        store = MemoryStore(capacity_bytes=20)
        store.set_item("k", "x" * 9)
        with self.assertRaises(QuotaExceededError):
            store.set_item("j", "y")
        self.assertIsNone(store.get_item("j"))

    def test_overwrite_reuses_space(self):
        store = MemoryStore(capacity_bytes=20)
        store.set_item("k", "x" * 9)
        store.set_item("k", "z" * 9)
        self.assertEqual(store.get_item("k"), "z" * 9)
        self.assertEqual(store.used_bytes, 20)

    def test_unbounded_capacity(self):
        store = MemoryStore(capacity_bytes=None)
        store.set_item("big", "x" * 100000)
        self.assertEqual(len(store.get_item("big")), 100000)


class TestJsonFileStore(unittest.TestCase):
    """Test cases for JsonFileStore."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.path = os.path.join(self.temp_dir, "cache", "store.json")

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_persists_between_instances(self):
        store = JsonFileStore(self.path)
        store.set_item("a", "1")
        store.set_item("b", "2")
        store.remove_item("a")

        reopened = JsonFileStore(self.path)
        self.assertIsNone(reopened.get_item("a"))
        self.assertEqual(reopened.get_item("b"), "2")

        with open(self.path, encoding="utf-8") as f:
            self.assertEqual(json.load(f), {"b": "2"})

    def test_corrupt_file_starts_empty(self):
        os.makedirs(os.path.dirname(self.path))
        with open(self.path, "w", encoding="utf-8") as f:
            f.write("{not json")

        store = JsonFileStore(self.path)
        self.assertEqual(store.keys(), [])

    def test_quota_exceeded_leaves_file_untouched(self):
        store = JsonFileStore(self.path, capacity_bytes=20)
        store.set_item("k", "x" * 9)
        with self.assertRaises(QuotaExceededError):
            store.set_item("j", "y")

        self.assertEqual(JsonFileStore(self.path).keys(), ["k"])

    def test_disk_full_maps_to_quota(self):
        store = JsonFileStore(self.path)
        with patch("src.Caching.local_store.json.dump", side_effect=OSError(errno.ENOSPC, "No space left")):
            with self.assertRaises(QuotaExceededError):
                store.set_item("a", "1")
        self.assertIsNone(store.get_item("a"))

    def test_other_os_errors_raise_cache_error(self):
        store = JsonFileStore(self.path)
        with patch("src.Caching.local_store.json.dump", side_effect=OSError(errno.EACCES, "Denied")):
            with self.assertRaises(CacheError) as ctx:
                store.set_item("a", "1")
        self.assertNotIsInstance(ctx.exception, QuotaExceededError)
        # No temp files left behind
        self.assertEqual(os.listdir(os.path.dirname(self.path)), [])


if __name__ == '__main__':
    unittest.main()
