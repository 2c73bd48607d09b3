"""robots.txt loading for the crawl-permission check."""

import asyncio
import logging
from urllib.parse import urljoin
from urllib.robotparser import RobotFileParser

logger = logging.getLogger(__name__)


def _read_robots(site_url: str) -> RobotFileParser:
    rp = RobotFileParser()
    robots_url = urljoin(site_url, "/robots.txt")
    rp.set_url(robots_url)
    rp.read()
    logger.debug("Loaded robots.txt from %s", robots_url)
    return rp


async def load_robots(site_url: str) -> RobotFileParser:
    """Fetch and parse robots.txt for ``site_url`` without blocking the loop.

    Network errors propagate; the caller decides they are non-fatal.
    """
    return await asyncio.to_thread(_read_robots, site_url)
