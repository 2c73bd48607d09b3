"""Storefronts with server-rendered listings and "next page" links."""

import logging
from typing import Optional

from coffee_crawler.crawler.normalize import normalize_url
from coffee_crawler.crawler.session import BrowserSession
from coffee_crawler.models import FieldRule
from coffee_crawler.strategies.base import ExtractionStrategy
from coffee_crawler.strategies.rules import ProductPage, vocabulary_pattern
from coffee_crawler.strategies.vocabulary import (
    ORIGINS_EN,
    ORIGINS_KO,
    PROCESSES,
    VARIETIES_EN,
    VARIETIES_KO,
)

logger = logging.getLogger(__name__)

_BRACKETS = r"\[[^\]]*\]|\([^)]*\)"
_ORIGINS = vocabulary_pattern(ORIGINS_KO + ORIGINS_EN)
_VARIETIES = vocabulary_pattern(VARIETIES_KO + VARIETIES_EN)
_PROCESSES = vocabulary_pattern(PROCESSES)

_NEXT_LINK_SELECTORS = (
    ".pagination .next:not(.disabled)",
    ".paging .next:not(.disabled)",
    "a[rel=next]",
)


class PaginatedStorefrontStrategy(ExtractionStrategy):
    """Harvest item links page by page, following pagination up to max_pages.

    Item pages on these shops tend to put coffee facts into the option
    dropdown, so option labels are checked before free page text.
    """

    site_type = "paginated_storefront"

    DEFAULT_FIELD_RULES = {
        "name": (
            FieldRule(selector="h2", strip=_BRACKETS, exclude=("상품 상세", "관련상품"), min_length=3),
            FieldRule(source="title", strip=r"\s+[-|]\s+[^-|]+$", exclude=("상품 상세",), min_length=3),
            FieldRule(selector="h1", exclude=("상품 상세",)),
            FieldRule(selector=".product-title, .prd-name, .item-name, .coffee-name"),
        ),
        "origin": (
            FieldRule(source="options", pattern=_ORIGINS),
            FieldRule(pattern=_ORIGINS),
        ),
        "variety": (
            FieldRule(source="options", pattern=_VARIETIES),
        ),
        "processing": (
            FieldRule(source="options", pattern=_PROCESSES),
        ),
        "price": (
            FieldRule(selector=".price, .prd-price, [itemprop=price]"),
        ),
    }

    async def enumerate_item_urls(self, session: BrowserSession) -> list[str]:
        page = await session.open_page(self.site.listing_url)
        try:
            doc = await self.read_page(page)
            urls = self.item_links(doc)
            current = 1

            while current < self.site.crawl.max_pages:
                next_url = self.find_next_page(doc, current + 1)
                if not next_url:
                    logger.debug("Page %d is the last listing page for %s", current, self.site.id)
                    break

                logger.debug("Following listing page %d: %s", current + 1, next_url)
                await page.goto(next_url)
                doc = await self.read_page(page)
                fresh = [u for u in self.item_links(doc) if u not in urls]
                if not fresh:
                    logger.debug("No new items on page %d for %s", current + 1, self.site.id)
                    break

                urls.extend(fresh)
                current += 1
        finally:
            await page.close()

        logger.info("%s: %d item URLs across %d listing page(s)", self.site.name, len(urls), current)
        return urls

    def find_next_page(self, doc: ProductPage, page_number: int) -> Optional[str]:
        """Locate the link to ``page_number`` on the current listing page."""
        current_url = normalize_url(doc.url)

        for selector in (f'a[href*="page={page_number}"]', f'a[href*="p={page_number}"]'):
            for link in doc.links(selector):
                if normalize_url(link) != current_url:
                    return link

        for anchor in doc.soup.select(".pagination a[href], .paging a[href]"):
            if anchor.get_text(strip=True) == str(page_number):
                link = doc.absolute(anchor["href"])
                if link:
                    return link

        for selector in _NEXT_LINK_SELECTORS:
            for element in doc.soup.select(selector):
                anchor = element if element.name == "a" else element.find("a", href=True)
                if anchor is not None and anchor.get("href"):
                    link = doc.absolute(anchor["href"])
                    if link and normalize_url(link) != current_url:
                        return link
        return None
