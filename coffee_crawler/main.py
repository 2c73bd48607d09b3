"""CLI entry point for the coffee product crawler.

Usage:
    python -m coffee_crawler.main [--config path/to/config.yaml] [-v]
        [--site ID | --list | --large-scale | --cleanup-duplicates | --stats]
"""

import argparse
import asyncio
import json
import logging
import sys

from coffee_crawler.batch import build_batch_runner
from coffee_crawler.config import ConfigError, load_config, load_sites
from coffee_crawler.orchestrator import build_orchestrator, build_store
from coffee_crawler.storage.reconciler import StorageReconciler
from coffee_crawler.strategies.registry import STRATEGIES


def _parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Coffee crawler: collect specialty coffee products from roastery sites",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to configuration YAML (default: $CONFIG_PATH or config/config.yaml)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--site", metavar="ID", help="Crawl a single site")
    mode.add_argument("--list", action="store_true", help="List configured sites and exit")
    mode.add_argument(
        "--large-scale", action="store_true",
        help="Crawl all sites with checkpoints and batch files",
    )
    mode.add_argument(
        "--cleanup-duplicates", action="store_true",
        help="Delete duplicate product rows, keeping the newest per URL",
    )
    mode.add_argument("--stats", action="store_true", help="Print product store statistics")
    return parser.parse_args(argv)


def _list_sites(config) -> None:
    catalog = load_sites(config)
    for site in catalog.sites:
        supported = site.site_type in STRATEGIES
        status = "active" if site.is_active and supported else "inactive"
        print(f"{site.id:<24} {site.site_type:<22} {status:<8} {site.name} ({site.listing_url})")


def _reconciler(config) -> StorageReconciler:
    store = build_store(config)
    if store is None:
        raise ConfigError("Product store is not configured (gcp.project_id / gcp.bigquery_dataset)")
    return StorageReconciler(store)


async def _run(args, config) -> None:
    if args.list:
        _list_sites(config)
        return
    if args.cleanup_duplicates:
        _reconciler(config).cleanup_duplicates()
        return
    if args.stats:
        print(json.dumps(_reconciler(config).stats(), ensure_ascii=False, indent=2, default=str))
        return

    orchestrator = build_orchestrator(config)
    if args.large_scale:
        await build_batch_runner(config, orchestrator).run()
    elif args.site:
        await orchestrator.run_one(args.site)
    else:
        await orchestrator.run_all()


def main(argv=None) -> None:
    """Parse arguments and run the selected command."""
    args = _parse_args(argv)

    # Configure logging
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
    )
    # Suppress noisy libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("google").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info("Coffee crawler starting")

    try:
        config = load_config(args.config)
        asyncio.run(_run(args, config))
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Crawl interrupted by user")
        sys.exit(130)
    except Exception as e:
        logger.error("Crawl failed: %s", e, exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
