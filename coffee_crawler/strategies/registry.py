"""Site family → extraction strategy lookup."""

import logging
from typing import Optional

from coffee_crawler.models import SiteConfig
from coffee_crawler.strategies.base import ExtractionStrategy
from coffee_crawler.strategies.marketplace import MarketplaceStrategy
from coffee_crawler.strategies.paginated import PaginatedStorefrontStrategy
from coffee_crawler.strategies.platform import PlatformStorefrontStrategy

logger = logging.getLogger(__name__)

STRATEGIES: dict[str, type[ExtractionStrategy]] = {
    cls.site_type: cls
    for cls in (PaginatedStorefrontStrategy, PlatformStorefrontStrategy, MarketplaceStrategy)
}


def create_strategy(
    site: SiteConfig,
    registry: Optional[dict[str, type[ExtractionStrategy]]] = None,
) -> Optional[ExtractionStrategy]:
    """Instantiate the strategy for the site's family, or None if unknown."""
    strategy_cls = (registry if registry is not None else STRATEGIES).get(site.site_type)
    if strategy_cls is None:
        logger.warning("Unsupported site family %r for %s, skipping", site.site_type, site.id)
        return None
    return strategy_cls(site)
