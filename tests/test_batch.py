"""Tests for checkpointed large-scale runs."""

import json
import os
import tempfile
import unittest
from pathlib import Path

from fakes import make_record, make_site

from coffee_crawler.batch import BatchRunner, CheckpointStore
from coffee_crawler.models import Checkpoint, CrawlError, CrawlResult, RunReport
from coffee_crawler.storage.snapshot import SnapshotStore


def records(n):
    return [make_record(f"https://shop.example.com/product/item/{i}") for i in range(n)]


class FakeOrchestrator:
    """Calls the site callback with pre-built results."""

    def __init__(self, snapshots, results):
        self.snapshots = snapshots
        self.results = results
        self.requested = None

    async def run_all(self, site_ids=None, on_site_complete=None):
        self.requested = site_ids
        report = RunReport()
        for site, result in self.results:
            report.results.append(result)
            on_site_complete(site, result)
        return report


class BatchTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.snapshots = SnapshotStore(self.path("snapshots"), self.path("reports"))
        self.checkpoints = CheckpointStore(self.path("checkpoint.json"))
        self.batch_dir = self.path("batches")

    def path(self, name):
        return os.path.join(self._tmp.name, name)

    def runner(self, orchestrator=None):
        return BatchRunner(
            orchestrator=orchestrator or FakeOrchestrator(self.snapshots, []),
            snapshots=self.snapshots,
            checkpoints=self.checkpoints,
            batch_dir=self.batch_dir,
            batch_size=10,
        )


class TestSplitIntoBatches(BatchTestCase):
    """Test fixed-size batch files."""

    def test_23_records_make_10_10_3(self):
        batch = records(23)
        files = self.runner().split_into_batches("alpha", batch)

        self.assertEqual(len(files), 3)
        self.assertEqual([f.name.split("-")[2] for f in files], ["000", "001", "002"])
        sizes, urls = [], []
        for path in files:
            with open(path, encoding="utf-8") as f:
                rows = json.load(f)
            sizes.append(len(rows))
            urls.extend(r["source_url"] for r in rows)
        self.assertEqual(sizes, [10, 10, 3])
        self.assertEqual(urls, [r.source_url for r in batch])


class TestCheckpoints(BatchTestCase):
    """Test checkpoint load, resume and persistence."""

    def test_resume_reports_saved_progress(self):
        self.checkpoints.save({"alpha": Checkpoint(total_products=20, completed_products=7)})
        runner = self.runner()
        self.assertEqual(runner.progress["alpha"].completed_products, 7)
        self.assertEqual(runner.progress_summary()["alpha"]["completed"], 7)

    def test_missing_file_is_empty(self):
        self.assertEqual(self.runner().progress, {})

    def test_corrupt_file_is_empty(self):
        with open(self.path("checkpoint.json"), "w", encoding="utf-8") as f:
            f.write("{not json")
        with self.assertLogs("coffee_crawler.batch", level="WARNING"):
            self.assertEqual(self.runner().progress, {})


class TestBatchRun(BatchTestCase):
    """Test the per-site callback path end to end."""

    async def test_run_updates_checkpoint_and_writes_batches(self):
        site = make_site("alpha")
        accepted = records(12)
        snapshot = self.snapshots.write_products("alpha", accepted)
        result = CrawlResult(
            site_id="alpha",
            total_products=15,
            successful_products=12,
            errors=[CrawlError(url="https://shop.example.com/product/x/9", message="timeout")],
            snapshot_path=str(snapshot),
            products=accepted,
        )
        orchestrator = FakeOrchestrator(self.snapshots, [(site, result)])

        progress = await self.runner(orchestrator).run(["alpha"])

        self.assertEqual(orchestrator.requested, ["alpha"])
        checkpoint = progress["alpha"]
        self.assertEqual(checkpoint.total_products, 15)
        self.assertEqual(checkpoint.completed_products, 12)
        self.assertEqual(checkpoint.current_batch, 2)
        self.assertEqual(len(checkpoint.errors), 1)
        self.assertEqual(len(os.listdir(self.batch_dir)), 2)

        saved = CheckpointStore(self.path("checkpoint.json")).load()
        self.assertEqual(saved["alpha"].completed_products, 12)

    async def test_unwritable_batch_dir_does_not_stop_run(self):
        blocker = self.path("blocker")
        with open(blocker, "w", encoding="utf-8") as f:
            f.write("not a directory")
        outcomes = []
        for site_id in ("a", "b"):
            site = make_site(site_id)
            accepted = records(3)
            snapshot = self.snapshots.write_products(site_id, accepted)
            outcomes.append((site, CrawlResult(
                site_id=site_id,
                total_products=3,
                successful_products=3,
                snapshot_path=str(snapshot),
                products=accepted,
            )))
        runner = self.runner(FakeOrchestrator(self.snapshots, outcomes))
        runner.batch_dir = Path(blocker) / "batches"

        with self.assertLogs("coffee_crawler.batch", level="ERROR"):
            progress = await runner.run()

        self.assertEqual(sorted(progress), ["a", "b"])
        for site_id in ("a", "b"):
            self.assertEqual(progress[site_id].current_batch, 0)
            self.assertTrue(progress[site_id].errors[-1].startswith("batch: "))
        self.assertEqual(sorted(self.checkpoints.load()), ["a", "b"])

    async def test_site_without_products_writes_no_batches(self):
        site = make_site("beta")
        result = CrawlResult(site_id="beta", errors=[CrawlError(url="u", message="session")])
        await self.runner(FakeOrchestrator(self.snapshots, [(site, result)])).run()
        self.assertFalse(os.path.exists(self.batch_dir))
        self.assertEqual(self.checkpoints.load()["beta"].current_batch, 0)


if __name__ == "__main__":
    unittest.main()
