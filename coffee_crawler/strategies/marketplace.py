"""Marketplace storefronts whose listings are rendered by JavaScript."""

import logging

from coffee_crawler.crawler.session import BrowserSession
from coffee_crawler.models import FieldRule
from coffee_crawler.strategies.base import ExtractionStrategy
from coffee_crawler.strategies.rules import vocabulary_pattern
from coffee_crawler.strategies.vocabulary import (
    ORIGINS_EN,
    ORIGINS_KO,
    PROCESSES,
    ROAST_LEVELS,
    TASTE_KEYWORDS_KO,
    VARIETIES_EN,
    VARIETIES_KO,
)

logger = logging.getLogger(__name__)

_LISTING_WAIT_MS = 10000
_DESCRIPTION = ".product_description, .product_detail, .product_info_text, [class*=description]"


class MarketplaceStrategy(ExtractionStrategy):
    """Wait for rendered product links, then scroll for lazily loaded ones.

    Marketplace pages carry little structured markup, so most fields come
    from vocabulary matches over the page text, and tasting notes fall back
    to a flavor keyword scan.
    """

    site_type = "marketplace"

    DEFAULT_NOTE_KEYWORDS = TASTE_KEYWORDS_KO

    DEFAULT_FIELD_RULES = {
        "name": (
            FieldRule(selector=".product_title h1"),
            FieldRule(selector=".product_info h1"),
            FieldRule(selector=".product_detail h1"),
            FieldRule(selector='h1[class*="product"]'),
            FieldRule(selector=".product_name"),
            FieldRule(selector='[data-testid*="product-title"]'),
            FieldRule(
                source="title",
                strip=r"\s*[-:|]\s*[^-:|]*$",
                exclude=("네이버", "스마트스토어"),
                min_length=2,
            ),
        ),
        "origin": (
            FieldRule(pattern=vocabulary_pattern(ORIGINS_KO)),
            FieldRule(pattern=vocabulary_pattern(ORIGINS_EN)),
            FieldRule(selector=_DESCRIPTION, pattern=vocabulary_pattern(ORIGINS_KO + ORIGINS_EN)),
        ),
        "variety": (
            FieldRule(pattern=vocabulary_pattern(VARIETIES_KO)),
            FieldRule(pattern=vocabulary_pattern(VARIETIES_EN)),
        ),
        "processing": (
            FieldRule(pattern=vocabulary_pattern(PROCESSES)),
        ),
        "roast_level": (
            FieldRule(pattern=vocabulary_pattern(ROAST_LEVELS)),
        ),
        "price": (
            FieldRule(selector=".product_price .price"),
            FieldRule(selector=".price_area .price"),
            FieldRule(selector=".product_info .price"),
            FieldRule(selector=".product_detail .price"),
            FieldRule(selector="[class*=price]"),
        ),
    }

    async def enumerate_item_urls(self, session: BrowserSession) -> list[str]:
        page = await session.open_page(self.site.listing_url)
        try:
            first_selector = self.site.crawl.product_link_selectors[0]
            if not await page.wait_for(first_selector, timeout_ms=_LISTING_WAIT_MS):
                logger.warning(
                    "%s: product links (%s) did not render, trying fallbacks",
                    self.site.name, first_selector,
                )

            urls = self.item_links(await self.read_page(page))
            await self.scroll_for_more(page, urls)
        finally:
            await page.close()

        logger.info("%s: %d item URLs", self.site.name, len(urls))
        return urls
