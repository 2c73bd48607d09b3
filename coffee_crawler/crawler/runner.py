"""Per-site crawl session: open, check robots.txt, enumerate, extract, close.

One ``CrawlRunner.crawl`` call owns one browser session for one site. Items
are fetched strictly one after another with the site's politeness delay in
between, and a failing item never aborts the rest of the site.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional
from urllib.robotparser import RobotFileParser

from playwright.async_api import TimeoutError as PlaywrightTimeout

from coffee_crawler.crawler.robots import load_robots
from coffee_crawler.crawler.session import BrowserSession, FetchError
from coffee_crawler.models import CrawlError, CrawlResult, ProductRecord, SiteConfig
from coffee_crawler.quality.validator import QualityValidator
from coffee_crawler.storage.snapshot import SnapshotStore
from coffee_crawler.strategies.base import ExtractionStrategy

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (FetchError, PlaywrightTimeout, asyncio.TimeoutError)

SessionFactory = Callable[[SiteConfig], BrowserSession]
RobotsLoader = Callable[[str], Awaitable[RobotFileParser]]


class CrawlRunner:
    """Runs one site's crawl lifecycle and reports the outcome."""

    def __init__(
        self,
        session_factory: SessionFactory,
        validator: QualityValidator,
        snapshots: SnapshotStore,
        robots_loader: Optional[RobotsLoader] = load_robots,
        retry_backoff_seconds: float = 1.0,
        robots_user_agent: str = "*",
    ):
        self.session_factory = session_factory
        self.validator = validator
        self.snapshots = snapshots
        self.robots_loader = robots_loader
        self.retry_backoff_seconds = retry_backoff_seconds
        self.robots_user_agent = robots_user_agent

    async def crawl(self, site: SiteConfig, strategy: ExtractionStrategy) -> CrawlResult:
        """Crawl one site. Only cancellation escapes; everything else is recorded."""
        started = time.monotonic()
        result = CrawlResult(site_id=site.id)
        logger.info("Starting crawl of %s (%s)", site.name, site.listing_url)

        session = self.session_factory(site)
        try:
            try:
                await session.open()
            except Exception as e:
                logger.error("Could not open browser session for %s: %s", site.id, e, exc_info=True)
                result.errors.append(CrawlError(url=site.listing_url, message=f"session: {e}"))
                return result

            await self._check_permission(site)

            try:
                urls = await strategy.enumerate_item_urls(session)
            except Exception as e:
                logger.error("URL discovery failed for %s: %s", site.id, e, exc_info=True)
                result.errors.append(CrawlError(url=site.listing_url, message=f"enumerate: {e}"))
                urls = []

            result.total_products = len(urls)
            logger.info("%s: %d candidate items", site.name, len(urls))

            for index, url in enumerate(urls, 1):
                await asyncio.sleep(site.crawl.request_delay_seconds)
                logger.debug("[%d/%d] %s", index, len(urls), url)
                await self._process_item(site, strategy, session, url, result)
        finally:
            await self._close_session(session, site)
            result.duration_seconds = time.monotonic() - started

        result.snapshot_path = self._write_snapshot(site, result.products)
        logger.info(
            "Finished %s: %d/%d accepted, %d rejected, %d errors in %.1fs",
            site.name, result.successful_products, result.total_products,
            result.rejected_products, len(result.errors), result.duration_seconds,
        )
        return result

    # ── Lifecycle steps ────────────────────────────────────────────

    async def _check_permission(self, site: SiteConfig) -> None:
        if self.robots_loader is None:
            return
        try:
            robots = await self.robots_loader(site.crawl.base_url)
        except Exception as e:
            logger.info("Could not load robots.txt for %s: %s (continuing)", site.id, e)
            return
        if not robots.can_fetch(self.robots_user_agent, site.listing_url):
            logger.warning("robots.txt disallows %s; crawling anyway", site.listing_url)

    async def _process_item(
        self,
        site: SiteConfig,
        strategy: ExtractionStrategy,
        session: BrowserSession,
        url: str,
        result: CrawlResult,
    ) -> None:
        attempts = max(site.crawl.max_retries, 1)
        for attempt in range(attempts):
            try:
                record = await strategy.extract_item(session, url)
                break
            except TRANSIENT_ERRORS as e:
                if attempt + 1 >= attempts:
                    logger.error("Giving up on %s after %d attempts: %s", url, attempts, e)
                    result.errors.append(CrawlError(url=url, message=str(e), retries=attempt))
                    return
                delay = self.retry_backoff_seconds * 2 ** attempt
                logger.warning(
                    "Attempt %d/%d failed for %s: %s (retrying in %.1fs)",
                    attempt + 1, attempts, url, e, delay,
                )
                await asyncio.sleep(delay)
            except Exception as e:
                logger.error("Extraction failed for %s: %s", url, e, exc_info=True)
                result.errors.append(CrawlError(url=url, message=str(e), retries=attempt))
                return

        if record is None:
            logger.info("Skipped %s: no product found", url)
            return

        verdict = self.validator.validate(record)
        if not verdict:
            result.rejected_products += 1
            logger.info("Rejected %s (score %d): %s", url, verdict.score, verdict.reason)
            return

        result.products.append(record)
        result.successful_products += 1
        logger.info("Collected %s (score %d)", record.name, verdict.score)

    async def _close_session(self, session: BrowserSession, site: SiteConfig) -> None:
        try:
            await session.close()
        except Exception as e:
            logger.warning("Error closing browser session for %s: %s", site.id, e)

    def _write_snapshot(self, site: SiteConfig, products: list[ProductRecord]) -> Optional[str]:
        try:
            return str(self.snapshots.write_products(site.id, products))
        except (OSError, TypeError, ValueError) as e:
            logger.error("Could not write snapshot for %s: %s", site.id, e)
            return None
