"""Large-scale runs: per-site checkpoints and fixed-size batch files.

Progress survives the process. The checkpoint file is read when the
runner is built and rewritten after every site, and each site's accepted
products are split into numbered batch files for downstream loading.
"""

import json
import logging
from pathlib import Path
from typing import Any, Optional, Union

from coffee_crawler.models import Checkpoint, CrawlResult, ProductRecord, SiteConfig, utc_now
from coffee_crawler.orchestrator import CrawlOrchestrator
from coffee_crawler.storage.snapshot import SnapshotStore, file_timestamp, read_json, write_json

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 10


class CheckpointStore:
    """Site id → ``Checkpoint`` mapping kept in one JSON file."""

    def __init__(self, path: Union[str, Path] = "results/checkpoint.json"):
        self.path = Path(path)

    def load(self) -> dict[str, Checkpoint]:
        if not self.path.exists():
            return {}
        try:
            data = read_json(self.path)
            return {site_id: Checkpoint.from_dict(cp) for site_id, cp in data.items()}
        except (OSError, ValueError, TypeError, AttributeError) as e:
            logger.warning("Ignoring unreadable checkpoint %s: %s", self.path, e)
            return {}

    def save(self, progress: dict[str, Checkpoint]) -> None:
        write_json(self.path, {site_id: cp.to_dict() for site_id, cp in progress.items()})


class BatchRunner:
    """Crawls through the orchestrator and batches each site's output."""

    def __init__(
        self,
        orchestrator: CrawlOrchestrator,
        snapshots: SnapshotStore,
        checkpoints: CheckpointStore,
        batch_dir: Union[str, Path] = "results/batches",
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self.orchestrator = orchestrator
        self.snapshots = snapshots
        self.checkpoints = checkpoints
        self.batch_dir = Path(batch_dir)
        self.batch_size = batch_size
        self.progress = checkpoints.load()
        if self.progress:
            logger.info("Resuming with checkpoints for %d sites", len(self.progress))

    async def run(self, site_ids: Optional[list[str]] = None) -> dict[str, Checkpoint]:
        await self.orchestrator.run_all(site_ids, on_site_complete=self._on_site_complete)
        logger.info("Large-scale run complete: %s", json.dumps(self.progress_summary()))
        return self.progress

    def _on_site_complete(self, site: SiteConfig, result: CrawlResult) -> None:
        checkpoint = self.progress.get(site.id) or Checkpoint()
        checkpoint.total_products = result.total_products
        checkpoint.completed_products = result.successful_products
        checkpoint.errors = [f"{e.url}: {e.message}" for e in result.errors]
        checkpoint.last_checkpoint = utc_now()
        self.progress[site.id] = checkpoint

        records = self._site_records(site, result)
        if records:
            try:
                files = self.split_into_batches(site.id, records)
                checkpoint.current_batch = len(files)
            except OSError as e:
                logger.error("%s: could not write batches to %s: %s", site.id, self.batch_dir, e)
                checkpoint.current_batch = 0
                checkpoint.errors.append(f"batch: {e}")
        else:
            logger.info("%s: nothing to batch", site.id)
            checkpoint.current_batch = 0

        try:
            self.checkpoints.save(self.progress)
        except OSError as e:
            logger.error("Could not save checkpoint %s: %s", self.checkpoints.path, e)

    def _site_records(self, site: SiteConfig, result: CrawlResult) -> list[ProductRecord]:
        path = result.snapshot_path or self.snapshots.latest_snapshot(site.id)
        if path is None:
            return list(result.products)
        try:
            return self.snapshots.read_products(path)
        except (OSError, ValueError) as e:
            logger.warning("Could not read snapshot %s: %s", path, e)
            return list(result.products)

    def split_into_batches(self, site_id: str, records: list[ProductRecord]) -> list[Path]:
        """Write ``records`` in slices of ``batch_size``, order preserved."""
        stamp = file_timestamp()
        files = []
        for number, start in enumerate(range(0, len(records), self.batch_size)):
            path = self.batch_dir / f"{site_id}-batch-{number:03d}-{stamp}.json"
            chunk = records[start:start + self.batch_size]
            write_json(path, [r.to_dict() for r in chunk])
            logger.debug("Wrote %d records to %s", len(chunk), path)
            files.append(path)
        logger.info("%s: %d records in %d batches", site_id, len(records), len(files))
        return files

    def progress_summary(self) -> dict[str, dict[str, Any]]:
        return {
            site_id: {
                "total": cp.total_products,
                "completed": cp.completed_products,
                "batches": cp.current_batch,
                "errors": len(cp.errors),
                "last_checkpoint": cp.last_checkpoint.isoformat(),
            }
            for site_id, cp in self.progress.items()
        }


def build_batch_runner(config: dict[str, Any], orchestrator: CrawlOrchestrator) -> BatchRunner:
    output = config.get("output", {})
    return BatchRunner(
        orchestrator=orchestrator,
        snapshots=orchestrator.snapshots,
        checkpoints=CheckpointStore(output.get("checkpoint_path", "results/checkpoint.json")),
        batch_dir=output.get("batch_dir", "results/batches"),
        batch_size=config.get("batch", {}).get("batch_size", DEFAULT_BATCH_SIZE),
    )
