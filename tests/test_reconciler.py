"""Tests for storage reconciliation against an in-memory product store."""

import unittest
from datetime import datetime, timezone

from fakes import FakeProductStore, make_record

from coffee_crawler.storage.reconciler import StorageReconciler


def records(n):
    return [make_record(f"https://shop.example.com/product/item/{i}") for i in range(n)]


class TestUpsert(unittest.TestCase):
    """Test the source_url-keyed upsert."""

    def setUp(self):
        self.store = FakeProductStore()
        self.reconciler = StorageReconciler(self.store)

    def test_first_run_inserts(self):
        result = self.reconciler.reconcile(records(3))
        self.assertEqual((result.inserted_count, result.updated_count), (3, 0))
        self.assertTrue(result.success)
        self.assertEqual(len(self.store.rows), 3)

    def test_second_run_is_idempotent(self):
        self.reconciler.reconcile(records(3))
        result = self.reconciler.reconcile(records(3))
        self.assertEqual(result.inserted_count, 0)
        self.assertEqual(result.updated_count, 3)
        self.assertEqual(len(self.store.rows), 3)

    def test_same_url_keeps_one_row_with_latest_values(self):
        url = "https://shop.example.com/product/guji/1"
        self.reconciler.reconcile([make_record(url, price=18000)])
        first = next(iter(self.store.rows.values()))
        first_id, first_created = first["id"], first["created_at"]

        self.reconciler.reconcile([make_record(url, price=21000, name="Guji Hambela")])
        self.assertEqual(len(self.store.rows), 1)
        row = self.store.rows[first_id]
        self.assertEqual(row["price"], 21000)
        self.assertEqual(row["name"], "Guji Hambela")
        self.assertEqual(row["created_at"], first_created)
        self.assertIsNotNone(row["updated_at"])

    def test_per_record_failures_do_not_block_others(self):
        batch = records(3)
        self.store.failing_urls.add(batch[1].source_url)
        result = self.reconciler.reconcile(batch)
        self.assertEqual(result.inserted_count, 2)
        self.assertEqual(len(result.errors), 1)
        self.assertIn(batch[1].source_url, result.errors[0])
        self.assertFalse(result.success)

    def test_unreachable_store_skips(self):
        store = FakeProductStore(reachable=False)
        result = StorageReconciler(store).reconcile(records(2))
        self.assertTrue(result.skipped)
        self.assertEqual(store.rows, {})

    def test_empty_input(self):
        result = self.reconciler.reconcile([])
        self.assertEqual((result.inserted_count, result.updated_count), (0, 0))
        self.assertFalse(result.skipped)


class TestCleanupDuplicates(unittest.TestCase):
    """Test duplicate removal keeps the newest row per URL."""

    def setUp(self):
        self.store = FakeProductStore()
        self.reconciler = StorageReconciler(self.store)

    def at(self, day):
        return datetime(2024, 8, day, tzinfo=timezone.utc)

    def test_keeps_newest_per_url(self):
        self.store.add_row("a1", "https://x/a", self.at(1))
        self.store.add_row("a2", "https://x/a", self.at(3))
        self.store.add_row("a3", "https://x/a", self.at(2))
        self.store.add_row("b1", "https://x/b", self.at(1))

        deleted = self.reconciler.cleanup_duplicates()

        self.assertEqual(deleted, 2)
        self.assertEqual(sorted(self.store.rows), ["a2", "b1"])

    def test_failed_delete_not_counted(self):
        self.store.add_row("a1", "https://x/a", self.at(1))
        self.store.add_row("a2", "https://x/a", self.at(2))
        self.store.failing_deletes.add("a1")
        self.assertEqual(self.reconciler.cleanup_duplicates(), 0)
        self.assertIn("a1", self.store.rows)

    def test_nothing_to_clean(self):
        self.store.add_row("a1", "https://x/a", self.at(1))
        self.assertEqual(self.reconciler.cleanup_duplicates(), 0)


if __name__ == "__main__":
    unittest.main()
