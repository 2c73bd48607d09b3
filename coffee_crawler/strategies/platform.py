"""Storefronts hosted on an e-commerce platform (Shopify-style themes).

Listings lazy-load more products as the page scrolls, and product links
often come collection-scoped (``/collections/<c>/products/<handle>``). Both
forms point at the same product, so links are reduced to ``/products/<handle>``.
"""

import logging
import re
from urllib.parse import urlparse, urlunparse

from coffee_crawler.crawler.normalize import normalize_url
from coffee_crawler.crawler.session import BrowserSession
from coffee_crawler.models import FieldRule
from coffee_crawler.strategies.base import ExtractionStrategy
from coffee_crawler.strategies.rules import labeled_pattern, vocabulary_pattern
from coffee_crawler.strategies.vocabulary import ORIGINS_EN, PROCESSES, ROAST_LEVELS, VARIETIES_EN

logger = logging.getLogger(__name__)

_COLLECTION_PREFIX = re.compile(r"^/collections/[^/]+(?=/products/)")

_DESCRIPTION = ".product__description, .product-single__description, .rte"
_ORIGINS = vocabulary_pattern(ORIGINS_EN)


class PlatformStorefrontStrategy(ExtractionStrategy):
    """Category link, then scroll-triggered lazy loading bounded by max_scrolls."""

    site_type = "platform_storefront"

    DEFAULT_FIELD_RULES = {
        "name": (
            FieldRule(selector="h1.product__title"),
            FieldRule(selector='h1[itemprop="name"]'),
            FieldRule(selector=".product-single__title"),
            FieldRule(selector="h1"),
            FieldRule(selector=".product-name"),
            FieldRule(source="title", strip=r"\s+[-|–]\s+[^-|–]+$"),
        ),
        "origin": (
            FieldRule(selector=_DESCRIPTION, pattern=_ORIGINS),
            FieldRule(selector="h1", pattern=_ORIGINS),
            FieldRule(source="title", pattern=_ORIGINS),
        ),
        "variety": (
            FieldRule(selector=_DESCRIPTION, pattern=labeled_pattern(r"variet(?:y|al)")),
            FieldRule(selector=_DESCRIPTION, pattern=vocabulary_pattern(VARIETIES_EN)),
        ),
        "processing": (
            FieldRule(selector=_DESCRIPTION, pattern=labeled_pattern(r"process(?:ing)?")),
            FieldRule(selector=_DESCRIPTION, pattern=vocabulary_pattern(PROCESSES)),
        ),
        "roast_level": (
            FieldRule(selector=_DESCRIPTION, pattern=labeled_pattern(r"roast(?: level)?")),
            FieldRule(selector=_DESCRIPTION, pattern=vocabulary_pattern(ROAST_LEVELS)),
        ),
        "tasting_notes": (
            FieldRule(
                selector=_DESCRIPTION,
                pattern=r"(?:tasting notes?|flavou?r notes?|notes?)[:\s]+([^.]+)",
            ),
        ),
        "price": (
            FieldRule(selector=".product__price"),
            FieldRule(selector=".price__regular"),
            FieldRule(selector=".product-single__price"),
            FieldRule(selector="[data-price]"),
            FieldRule(selector=".price"),
            FieldRule(selector='span[itemprop="price"]'),
        ),
    }

    def canonical_item_url(self, url: str) -> str:
        parsed = urlparse(normalize_url(url))
        path = _COLLECTION_PREFIX.sub("", parsed.path)
        return urlunparse(parsed._replace(path=path))

    async def enumerate_item_urls(self, session: BrowserSession) -> list[str]:
        page = await session.open_page(self.site.listing_url)
        try:
            doc = await self.read_page(page)

            category_selector = self.site.crawl.category_link_selector
            if category_selector:
                category_links = doc.links(category_selector)
                if category_links and normalize_url(category_links[0]) != normalize_url(doc.url):
                    logger.debug("Following category link %s", category_links[0])
                    await page.goto(category_links[0])
                    doc = await self.read_page(page)

            urls = self.item_links(doc)
            await self.scroll_for_more(page, urls)
        finally:
            await page.close()

        logger.info("%s: %d item URLs", self.site.name, len(urls))
        return urls
