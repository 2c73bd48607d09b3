"""Extraction strategy contract shared by all site families.

A strategy knows how to enumerate candidate item URLs on one site and how
to turn one item page into a ``ProductRecord``. It does not own the
browser session, the politeness delay or error isolation; the crawl runner
does.
"""

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from typing import Optional
from urllib.parse import urlparse

from coffee_crawler.crawler.normalize import (
    canonical_name,
    dedupe,
    extract_price,
    is_same_domain,
    normalize_url,
    pick_label_image,
    resolve_image_url,
    should_skip_url,
    split_tasting_notes,
)
from coffee_crawler.crawler.session import BrowserSession, PageHandle
from coffee_crawler.models import FieldRule, ProductRecord, SiteConfig
from coffee_crawler.strategies.rules import ProductPage, first_match, labeled_pattern

logger = logging.getLogger(__name__)

_SCROLL_SCRIPT = "window.scrollTo(0, document.body.scrollHeight)"
_MAX_KEYWORD_NOTES = 5

# Label-driven rules every family falls back to last
COMMON_FIELD_RULES: dict[str, tuple[FieldRule, ...]] = {
    "origin": (FieldRule(pattern=labeled_pattern(r"origin|country|원산지|생산국")),),
    "region": (FieldRule(pattern=labeled_pattern(r"region|지역|(?<!원)산지")),),
    "variety": (FieldRule(pattern=labeled_pattern(r"variet(?:y|al|ies)|품종")),),
    "processing": (FieldRule(pattern=labeled_pattern(r"process(?:ing)?|가공(?:\s*방식)?|프로세스")),),
    "roast_level": (
        FieldRule(pattern=labeled_pattern(r"roast(?:ing)?(?: level)?|로스팅(?:\s*포인트)?|배전도")),
    ),
    "tasting_notes": (
        FieldRule(pattern=labeled_pattern(
            r"tasting notes?|flavou?r notes?|cup notes?|컵\s*노트|테이스팅\s*노트|노트"
        )),
    ),
}


class ExtractionStrategy(ABC):
    """Per-site URL discovery and field extraction.

    Field values come from an ordered fallback chain: the site's configured
    rules first, then ``DEFAULT_FIELD_RULES`` of the family, then
    ``COMMON_FIELD_RULES``.
    """

    site_type = ""
    DEFAULT_FIELD_RULES: dict[str, tuple[FieldRule, ...]] = {}
    DEFAULT_IMAGE_SELECTORS: tuple[str, ...] = ("img",)
    DEFAULT_NOTE_KEYWORDS: tuple[str, ...] = ()

    def __init__(self, site: SiteConfig):
        self.site = site
        self._item_pattern = re.compile(site.crawl.product_url_pattern)
        self._domain = urlparse(site.crawl.base_url).netloc

    # ── Contract ───────────────────────────────────────────────────

    @abstractmethod
    async def enumerate_item_urls(self, session: BrowserSession) -> list[str]:
        """De-duplicated, pattern-filtered item URLs in discovery order."""

    async def extract_item(
        self, session: BrowserSession, url: str
    ) -> Optional[ProductRecord]:
        """Load one item page and build a record from it.

        Returns None when the page holds no recognizable product. Fetch
        errors propagate to the runner, which records and retries them.
        """
        page = await session.open_page(url)
        try:
            wait_selector = self.site.crawl.wait_selector
            if wait_selector and not await page.wait_for(wait_selector, timeout_ms=15000):
                logger.debug("Wait selector %s not found on %s", wait_selector, url)
            html = await page.content()
            title = await page.title()
        finally:
            await page.close()
        return self.parse_product(url, html, title)

    # ── Field extraction ───────────────────────────────────────────

    def rules(self, field_name: str) -> tuple[FieldRule, ...]:
        return (
            self.site.rules_for(field_name)
            + self.DEFAULT_FIELD_RULES.get(field_name, ())
            + COMMON_FIELD_RULES.get(field_name, ())
        )

    def extract_field(self, doc: ProductPage, field_name: str) -> Optional[str]:
        return first_match(doc, self.rules(field_name))

    def extract_price(self, doc: ProductPage):
        pattern = self.site.parsing.price_pattern
        return first_match(doc, self.rules("price"), convert=lambda text: extract_price(text, pattern))

    def extract_tasting_notes(self, doc: ProductPage) -> list[str]:
        parser = self.site.parsing.notes_parser
        notes = first_match(
            doc, self.rules("tasting_notes"),
            convert=lambda text: split_tasting_notes(text, parser),
        )
        if notes:
            return notes
        keywords = self.site.parsing.note_keywords or self.DEFAULT_NOTE_KEYWORDS
        if not keywords:
            return []
        text = doc.body_text
        return [k for k in keywords if k in text][:_MAX_KEYWORD_NOTES]

    def extract_images(self, doc: ProductPage) -> list[str]:
        parsing = self.site.parsing
        selectors = self.site.image_selectors or self.DEFAULT_IMAGE_SELECTORS
        images = []
        for selector in selectors:
            for src in doc.image_sources(selector):
                try:
                    url = resolve_image_url(src, self.site.crawl.base_url)
                except ValueError as e:
                    logger.debug("Skipping malformed image URL %r: %s", src, e)
                    continue
                lowered = url.lower()
                if parsing.image_include and not any(s in lowered for s in parsing.image_include):
                    continue
                if any(s in lowered for s in parsing.image_exclude):
                    continue
                images.append(url)
        return dedupe(images)[: parsing.max_images]

    def parse_product(self, url: str, html: str, title: str = "") -> Optional[ProductRecord]:
        """Build a record from a loaded page. Pure: no I/O."""
        doc = ProductPage(url, html, title)

        raw_name = self.extract_field(doc, "name")
        if not raw_name:
            logger.warning("No product name found on %s", url)
            return None

        images = self.extract_images(doc)
        return ProductRecord(
            source_url=url,
            name=canonical_name(raw_name),
            site_name=self.site.name,
            site_url=self.site.domain,
            origin=self.extract_field(doc, "origin"),
            region=self.extract_field(doc, "region"),
            variety=self.extract_field(doc, "variety"),
            processing=self.extract_field(doc, "processing"),
            roast_level=self.extract_field(doc, "roast_level"),
            tasting_notes=self.extract_tasting_notes(doc),
            price=self.extract_price(doc),
            currency=self.site.parsing.currency,
            image_urls=images,
            label_image_url=pick_label_image(images, self.site.parsing.label_image_keywords),
        )

    # ── URL discovery helpers ──────────────────────────────────────

    def canonical_item_url(self, url: str) -> str:
        return normalize_url(url)

    def is_item_url(self, url: str) -> bool:
        try:
            return (
                bool(self._item_pattern.search(url))
                and not should_skip_url(url)
                and is_same_domain(url, self._domain)
            )
        except ValueError as e:
            logger.debug("Skipping malformed URL %r: %s", url, e)
            return False

    def item_links(self, doc: ProductPage) -> list[str]:
        """Item URLs from the first link selector that yields any."""
        for selector in self.site.crawl.product_link_selectors:
            urls = dedupe(
                self.canonical_item_url(u) for u in doc.links(selector) if self.is_item_url(u)
            )
            if urls:
                logger.debug("Selector %r yielded %d item links", selector, len(urls))
                return urls
        return []

    async def read_page(self, page: PageHandle) -> ProductPage:
        return ProductPage(page.url, await page.content(), await page.title())

    async def scroll_for_more(self, page: PageHandle, urls: list[str]) -> list[str]:
        """Trigger lazy loading until a scroll yields nothing new.

        Bounded by ``max_scrolls``. New URLs are appended to ``urls`` in place.
        """
        seen = set(urls)
        for attempt in range(1, self.site.crawl.max_scrolls + 1):
            await page.evaluate(_SCROLL_SCRIPT)
            await asyncio.sleep(self.site.crawl.scroll_wait_seconds)
            fresh = [u for u in self.item_links(await self.read_page(page)) if u not in seen]
            seen.update(fresh)
            urls.extend(fresh)
            logger.debug("Scroll %d on %s: %d new item URLs", attempt, self.site.id, len(fresh))
            if not fresh:
                break
        return urls
