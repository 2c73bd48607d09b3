"""Local JSON artifacts: per-site product snapshots and run reports.

The snapshot is written before anything touches the product store, so a
store outage never loses crawl work.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Union

from coffee_crawler.models import ProductRecord, RunReport

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def file_timestamp(moment: Optional[datetime] = None) -> str:
    """UTC timestamp for file names; sorts lexicographically."""
    moment = moment or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")


def write_json(path: Path, data: Any) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)
    tmp.replace(path)
    return path


def read_json(path: PathLike) -> Any:
    with open(path, encoding="utf-8") as f:
        return json.load(f)


class SnapshotStore:
    """Writes and reads run artifacts under two output directories."""

    def __init__(self, snapshot_dir: PathLike = "results/snapshots", report_dir: PathLike = "results/reports"):
        self.snapshot_dir = Path(snapshot_dir)
        self.report_dir = Path(report_dir)

    def write_products(self, site_id: str, products: list[ProductRecord]) -> Path:
        """Persist a site's accepted products as ``crawl-results-<site>-<ts>.json``."""
        path = self.snapshot_dir / f"crawl-results-{site_id}-{file_timestamp()}.json"
        write_json(path, [p.to_dict() for p in products])
        logger.info("Snapshot of %d products written to %s", len(products), path)
        return path

    def read_products(self, path: PathLike) -> list[ProductRecord]:
        return [ProductRecord.from_dict(row) for row in read_json(path)]

    def latest_snapshot(self, site_id: str) -> Optional[Path]:
        """Most recent snapshot file for a site, if any."""
        prefix = f"crawl-results-{site_id}-"
        # "<site>-*" also matches ids that merely start with site_id
        candidates = sorted(
            p for p in self.snapshot_dir.glob(f"{prefix}*.json")
            if p.name[len(prefix):][:1].isdigit()
        )
        return candidates[-1] if candidates else None

    def write_run_report(self, report: RunReport) -> Path:
        path = self.report_dir / f"crawl-report-{file_timestamp(report.started_at)}.json"
        write_json(path, report.to_dict())
        logger.info("Run report written to %s", path)
        return path
