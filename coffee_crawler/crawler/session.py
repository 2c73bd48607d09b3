"""Browser session and the narrow page interface strategies depend on.

Extraction strategies never see the Playwright API directly. They get a
``BrowserSession`` that opens ``PageHandle`` objects exposing only
navigation, content/title reads, script evaluation, waiting for a selector
and closing.
"""

import logging
from typing import Any, Optional, Protocol

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeout

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36"
)

_EXTRA_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
    "Accept-Language": "ko-KR,ko;q=0.9,en-US;q=0.8,en;q=0.7",
    "DNT": "1",
    "Upgrade-Insecure-Requests": "1",
}


class FetchError(Exception):
    """A page could not be loaded. Treated as transient and retried."""


class PageHandle(Protocol):
    """The page capabilities extraction needs."""

    @property
    def url(self) -> str: ...

    async def goto(self, url: str) -> None: ...

    async def content(self) -> str: ...

    async def title(self) -> str: ...

    async def evaluate(self, script: str) -> Any: ...

    async def wait_for(self, selector: str, timeout_ms: int = 10000) -> bool: ...

    async def close(self) -> None: ...


class BrowserSession(Protocol):
    """A per-site network session owned by the crawl runner."""

    async def open(self) -> None: ...

    async def open_page(self, url: str) -> PageHandle: ...

    async def close(self) -> None: ...


class PlaywrightPage:
    """PageHandle backed by a Playwright page."""

    def __init__(self, page: Page, timeout_ms: int):
        self._page = page
        self._timeout_ms = timeout_ms

    @property
    def url(self) -> str:
        return self._page.url

    async def goto(self, url: str) -> None:
        try:
            response = await self._page.goto(
                url, timeout=self._timeout_ms, wait_until="domcontentloaded"
            )
        except PlaywrightTimeout as e:
            raise FetchError(f"timeout after {self._timeout_ms}ms: {url}") from e
        except PlaywrightError as e:
            raise FetchError(f"navigation failed for {url}: {str(e)[:300]}") from e

        if response is not None and response.status >= 400:
            raise FetchError(f"HTTP {response.status} for {url}")

        # Allow a short time for JS rendering after DOM is loaded
        try:
            await self._page.wait_for_load_state("networkidle", timeout=5000)
        except PlaywrightTimeout:
            pass  # Use whatever content loaded

    async def content(self) -> str:
        return await self._page.content()

    async def title(self) -> str:
        return await self._page.title()

    async def evaluate(self, script: str) -> Any:
        return await self._page.evaluate(script)

    async def wait_for(self, selector: str, timeout_ms: int = 10000) -> bool:
        try:
            await self._page.wait_for_selector(selector, timeout=timeout_ms)
            return True
        except PlaywrightTimeout:
            return False

    async def close(self) -> None:
        try:
            await self._page.close()
        except PlaywrightError as e:
            logger.debug("Error closing page %s: %s", self._page.url, e)


class PlaywrightSession:
    """Chromium session for one site run.

    ``open()`` launches the browser; ``close()`` releases everything and is
    safe to call after a partial or failed ``open()``.
    """

    def __init__(
        self,
        headless: bool = True,
        user_agent: str = DEFAULT_USER_AGENT,
        page_timeout_ms: int = 30000,
        locale: str = "ko-KR",
    ):
        self.headless = headless
        self.user_agent = user_agent
        self.page_timeout_ms = page_timeout_ms
        self.locale = locale
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None

    async def open(self) -> None:
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self.headless,
            args=["--no-sandbox", "--disable-dev-shm-usage"],
        )
        self._context = await self._browser.new_context(
            user_agent=self.user_agent,
            locale=self.locale,
            viewport={"width": 1920, "height": 1080},
            extra_http_headers=_EXTRA_HEADERS,
        )
        logger.info("Browser launched (headless=%s)", self.headless)

    async def open_page(self, url: str) -> PageHandle:
        if self._context is None:
            raise RuntimeError("Browser session is not open")
        page = PlaywrightPage(await self._context.new_page(), self.page_timeout_ms)
        try:
            await page.goto(url)
        except BaseException:
            await page.close()
            raise
        return page

    async def close(self) -> None:
        if self._context is not None:
            try:
                await self._context.close()
            except PlaywrightError as e:
                logger.debug("Error closing browser context: %s", e)
            self._context = None
        if self._browser is not None:
            try:
                await self._browser.close()
            except PlaywrightError as e:
                logger.debug("Error closing browser: %s", e)
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
        logger.debug("Browser session closed")
