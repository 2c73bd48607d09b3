"""Pipeline orchestrator for the coffee product crawler.

Ties together all pipeline stages for every configured site:
1. Crawl the site with its extraction strategy (validated, snapshotted)
2. Reconcile accepted products into BigQuery
3. Write a run report covering all sites
"""

import asyncio
import logging
from typing import Any, Callable, Optional

from coffee_crawler.config import SiteCatalog, load_sites, store_config_from
from coffee_crawler.crawler.runner import CrawlRunner
from coffee_crawler.crawler.session import DEFAULT_USER_AGENT, PlaywrightSession
from coffee_crawler.models import CrawlError, CrawlResult, RunReport, SiteConfig, utc_now
from coffee_crawler.quality.validator import DEFAULT_MIN_SCORE, QualityValidator
from coffee_crawler.storage.bigquery_client import ProductStore, StorageError
from coffee_crawler.storage.reconciler import StorageReconciler
from coffee_crawler.storage.snapshot import SnapshotStore
from coffee_crawler.strategies.registry import STRATEGIES, create_strategy

logger = logging.getLogger(__name__)

SiteCallback = Callable[[SiteConfig, CrawlResult], None]


class CrawlOrchestrator:
    """Runs sites one after another and aggregates their results."""

    def __init__(
        self,
        catalog: SiteCatalog,
        runner: CrawlRunner,
        snapshots: SnapshotStore,
        reconciler: Optional[StorageReconciler] = None,
        store: Optional[ProductStore] = None,
    ):
        self.catalog = catalog
        self.runner = runner
        self.snapshots = snapshots
        self.reconciler = reconciler
        self.store = store

    def list_sites(self) -> list[SiteConfig]:
        """Active sites with a supported family, in catalog order."""
        return [s for s in self.catalog.active_sites if s.site_type in STRATEGIES]

    async def run_one(self, site_id: str) -> Optional[CrawlResult]:
        site = next((s for s in self.list_sites() if s.id == site_id), None)
        if site is None:
            logger.error(
                "Unknown site %r. Available: %s",
                site_id, ", ".join(s.id for s in self.list_sites()),
            )
            return None
        return await self._run_site(site)

    async def run_all(
        self,
        site_ids: Optional[list[str]] = None,
        on_site_complete: Optional[SiteCallback] = None,
    ) -> RunReport:
        """Crawl every selected site sequentially and write a run report.

        Args:
            site_ids: Restrict the run to these site ids (catalog order kept).
            on_site_complete: Called with each site and its result as soon as
                that site is done.
        """
        wanted = set(site_ids) if site_ids is not None else None
        for site in self.catalog.active_sites:
            if site.site_type not in STRATEGIES and (wanted is None or site.id in wanted):
                logger.warning("Skipping %s: unsupported site family %r", site.id, site.site_type)

        sites = self.list_sites()
        if wanted is not None:
            known = {s.id for s in self.catalog.active_sites}
            unknown = wanted - known
            if unknown:
                logger.warning("Ignoring unknown site ids: %s", ", ".join(sorted(unknown)))
            sites = [s for s in sites if s.id in wanted]

        report = RunReport()
        logger.info("=== Crawl run %s starting: %d sites ===", report.run_id, len(sites))

        for idx, site in enumerate(sites, 1):
            logger.info("--- Site %d/%d: %s (%s) ---", idx, len(sites), site.name, site.id)
            result = await self._run_site(site)
            report.results.append(result)
            if on_site_complete is not None:
                try:
                    on_site_complete(site, result)
                except Exception as e:
                    logger.error("Site callback failed for %s: %s", site.id, e, exc_info=True)
            if idx < len(sites):
                await asyncio.sleep(self.catalog.inter_site_delay_seconds)

        report.finished_at = utc_now()
        self._log_summary(report)
        self._write_report(report)
        return report

    async def _run_site(self, site: SiteConfig) -> CrawlResult:
        strategy = create_strategy(site)
        if strategy is None:
            return CrawlResult(
                site_id=site.id,
                errors=[CrawlError(url=site.listing_url, message=f"unsupported site type {site.site_type}")],
            )

        try:
            result = await self.runner.crawl(site, strategy)
        except Exception as e:
            logger.error("Failed to crawl site %s: %s", site.id, e, exc_info=True)
            return CrawlResult(
                site_id=site.id,
                errors=[CrawlError(url=site.listing_url, message=str(e))],
            )

        if self.reconciler is not None and result.products:
            try:
                result.storage = self.reconciler.reconcile(result.products)
            except Exception as e:
                logger.error("Storage reconciliation failed for %s: %s", site.id, e, exc_info=True)
        return result

    def _log_summary(self, report: RunReport) -> None:
        logger.info(
            "=== Crawl run %s complete: sites=%d/%d, products=%d/%d, errors=%d, %.1fs ===",
            report.run_id, report.successful_sites, len(report.results),
            report.successful_products, report.total_products,
            report.error_count, report.duration_seconds,
        )
        for result in report.results:
            logger.info(
                "  %-20s %3d/%-3d accepted (%.0f%%), %d errors",
                result.site_id, result.successful_products, result.total_products,
                result.success_rate * 100, len(result.errors),
            )

    def _write_report(self, report: RunReport) -> None:
        try:
            self.snapshots.write_run_report(report)
        except OSError as e:
            logger.error("Could not write run report: %s", e)
        if self.store is not None:
            self.store.insert_run_report(report)


def build_store(config: dict[str, Any]) -> Optional[ProductStore]:
    """ProductStore from configuration, or None when storage is off."""
    store_config = store_config_from(config)
    if store_config is None:
        return None
    return ProductStore(store_config)


def build_orchestrator(config: dict[str, Any]) -> CrawlOrchestrator:
    """Wire the production object graph from configuration."""
    catalog = load_sites(config)
    output = config.get("output", {})
    crawl = config.get("crawl", {})

    snapshots = SnapshotStore(
        snapshot_dir=output.get("snapshot_dir", "results/snapshots"),
        report_dir=output.get("report_dir", "results/reports"),
    )
    validator = QualityValidator(
        min_score=config.get("quality", {}).get("min_score", DEFAULT_MIN_SCORE)
    )

    def session_factory(site: SiteConfig) -> PlaywrightSession:
        return PlaywrightSession(
            headless=crawl.get("headless", True),
            user_agent=crawl.get("user_agent", DEFAULT_USER_AGENT),
            page_timeout_ms=site.crawl.page_timeout_ms,
            locale=crawl.get("locale", "ko-KR"),
        )

    runner = CrawlRunner(
        session_factory=session_factory,
        validator=validator,
        snapshots=snapshots,
        retry_backoff_seconds=crawl.get("retry_backoff_seconds", 1.0),
    )

    store = build_store(config)
    reconciler = None
    if store is not None:
        try:
            store.ensure_tables_exist()
        except StorageError as e:
            logger.warning("%s; products will be reconciled only if the store recovers", e)
        reconciler = StorageReconciler(store)

    return CrawlOrchestrator(
        catalog=catalog,
        runner=runner,
        snapshots=snapshots,
        reconciler=reconciler,
        store=store,
    )
