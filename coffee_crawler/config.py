"""Configuration loading for the coffee product crawler."""

import logging
import os
import re
from dataclasses import dataclass
from typing import Any, Optional

import yaml

from coffee_crawler.models import CrawlSettings, FieldRule, ParsingRules, SiteConfig

logger = logging.getLogger(__name__)

_DEFAULT_CONFIG_PATH = "config/config.yaml"
_DEFAULT_SITE_LIST_PATH = "config/sites.yaml"

_FIELD_RULE_KEYS = frozenset(FieldRule.__dataclass_fields__)
_NOTES_PARSERS = frozenset({"comma_separated", "line_separated", "custom"})
# Keys of the global `crawl` section that seed every site's CrawlSettings.
_SITE_CRAWL_DEFAULTS = ("page_timeout_ms",)


class ConfigError(Exception):
    """Raised when configuration or the site catalog cannot be used."""


@dataclass(frozen=True)
class StoreConfig:
    """Connection settings for the BigQuery product store."""

    project_id: str
    dataset_id: str
    location: str = "asia-northeast3"
    products_table: str = "coffee_products"
    runs_table: str = "crawl_runs"


@dataclass(frozen=True)
class SiteCatalog:
    """All configured sites plus catalog-wide settings."""

    sites: tuple[SiteConfig, ...]
    inter_site_delay_seconds: float = 5.0

    @property
    def active_sites(self) -> list[SiteConfig]:
        return [s for s in self.sites if s.is_active]


def _read_yaml(path: str) -> dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"Configuration file not found: {path}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Could not parse {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a mapping at the top of {path}")
    return data


def load_config(config_path: Optional[str] = None) -> dict[str, Any]:
    """Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to config YAML. Falls back to CONFIG_PATH env var,
                     then to config/config.yaml.

    Returns:
        Merged configuration dictionary.
    """
    path = config_path or os.environ.get("CONFIG_PATH", _DEFAULT_CONFIG_PATH)
    logger.info("Loading config from %s", path)

    config = _read_yaml(path)

    if os.environ.get("GCP_PROJECT_ID"):
        config.setdefault("gcp", {})["project_id"] = os.environ["GCP_PROJECT_ID"]
    if os.environ.get("GCP_REGION"):
        config.setdefault("gcp", {})["region"] = os.environ["GCP_REGION"]
    if os.environ.get("BIGQUERY_DATASET"):
        config.setdefault("gcp", {})["bigquery_dataset"] = os.environ["BIGQUERY_DATASET"]
    if os.environ.get("SITE_LIST_PATH"):
        config["site_list_path"] = os.environ["SITE_LIST_PATH"]

    return config


def store_config_from(config: dict[str, Any]) -> Optional[StoreConfig]:
    """Build the store settings, or None when storage is disabled or unset."""
    if not config.get("storage_enabled", True):
        return None
    gcp = config.get("gcp") or {}
    if not gcp.get("project_id") or not gcp.get("bigquery_dataset"):
        logger.warning("No BigQuery project/dataset configured; storage disabled")
        return None
    return StoreConfig(
        project_id=gcp["project_id"],
        dataset_id=gcp["bigquery_dataset"],
        location=gcp.get("region", "asia-northeast3"),
    )


def _compile_check(pattern: Optional[str], where: str) -> None:
    if pattern is None:
        return
    try:
        re.compile(pattern)
    except re.error as e:
        raise ConfigError(f"Invalid regex {pattern!r} in {where}: {e}") from e


def _as_tuple(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(str(v) for v in value)


def parse_field_rule(entry: Any, where: str) -> FieldRule:
    """Parse one rule mapping; a bare string is shorthand for a selector."""
    if isinstance(entry, str):
        return FieldRule(selector=entry)
    if not isinstance(entry, dict):
        raise ConfigError(f"Field rule in {where} must be a string or mapping")
    unknown = set(entry) - _FIELD_RULE_KEYS
    if unknown:
        raise ConfigError(f"Unknown field rule keys {sorted(unknown)} in {where}")
    _compile_check(entry.get("pattern"), where)
    _compile_check(entry.get("strip"), where)
    kwargs = dict(entry)
    if "exclude" in kwargs:
        kwargs["exclude"] = _as_tuple(kwargs["exclude"])
    return FieldRule(**kwargs)


def parse_site(
    entry: dict[str, Any],
    region: Optional[str] = None,
    defaults: Optional[dict[str, Any]] = None,
) -> SiteConfig:
    """Parse one site catalog entry into an immutable SiteConfig.

    ``defaults`` fill crawl settings the entry does not set itself.
    """
    site_id = entry["id"]
    crawl = {**(defaults or {}), **(entry.get("crawl") or {})}
    if "product_link_selectors" in crawl:
        crawl["product_link_selectors"] = _as_tuple(crawl["product_link_selectors"])
    _compile_check(crawl.get("product_url_pattern"), f"{site_id}.crawl")
    try:
        settings = CrawlSettings(**crawl)
    except TypeError as e:
        raise ConfigError(f"Invalid crawl settings for {site_id}: {e}") from e

    parsing_raw = dict(entry.get("parsing") or {})
    for key in ("note_keywords", "label_image_keywords", "image_include", "image_exclude"):
        if key in parsing_raw:
            parsing_raw[key] = _as_tuple(parsing_raw[key])
    _compile_check(parsing_raw.get("price_pattern"), f"{site_id}.parsing")
    if parsing_raw.get("notes_parser", "comma_separated") not in _NOTES_PARSERS:
        raise ConfigError(
            f"Unknown notes_parser {parsing_raw['notes_parser']!r} for {site_id}"
        )
    try:
        parsing = ParsingRules(**parsing_raw)
    except TypeError as e:
        raise ConfigError(f"Invalid parsing rules for {site_id}: {e}") from e

    fields = {}
    for field_name, rules in (entry.get("fields") or {}).items():
        if isinstance(rules, (str, dict)):
            rules = [rules]
        fields[field_name] = tuple(
            parse_field_rule(rule, f"{site_id}.fields.{field_name}") for rule in rules
        )

    return SiteConfig(
        id=site_id,
        name=entry.get("name") or site_id,
        url=entry.get("url"),
        country=entry.get("country"),
        site_type=entry.get("type", "paginated_storefront"),
        region=region,
        crawl=settings,
        fields=fields,
        image_selectors=_as_tuple(entry.get("images")),
        parsing=parsing,
        is_active=bool(entry.get("is_active", True)),
    )


def load_sites(config: dict[str, Any]) -> SiteCatalog:
    """Load target sites from the site catalog file.

    The catalog groups sites by region::

        settings:
          inter_site_delay_seconds: 5
        regions:
          korean: [...]
          global: [...]

    A flat ``sites:`` list is also accepted.

    Args:
        config: Application configuration dict.

    Returns:
        SiteCatalog in catalog order.

    Raises:
        ConfigError: If the catalog is missing, unparseable or invalid.
    """
    site_list_path = config.get("site_list_path", _DEFAULT_SITE_LIST_PATH)
    logger.info("Loading sites from %s", site_list_path)

    data = _read_yaml(site_list_path)
    global_crawl = config.get("crawl") or {}
    defaults = {k: global_crawl[k] for k in _SITE_CRAWL_DEFAULTS if k in global_crawl}

    groups: list[tuple[Optional[str], list[Any]]] = []
    for region, entries in (data.get("regions") or {}).items():
        groups.append((region, entries or []))
    if data.get("sites"):
        groups.append((None, data["sites"]))
    if not groups:
        raise ConfigError(f"No sites defined in {site_list_path}")

    sites = []
    seen: set[str] = set()
    for region, entries in groups:
        for entry in entries:
            if not isinstance(entry, dict) or not entry.get("id"):
                logger.warning("Skipping site entry with no id: %s", entry)
                continue
            if not (entry.get("crawl") or {}).get("base_url"):
                logger.warning("Skipping site %s with no crawl.base_url", entry["id"])
                continue
            if entry["id"] in seen:
                logger.warning("Skipping duplicate site id %s", entry["id"])
                continue
            seen.add(entry["id"])
            sites.append(parse_site(entry, region=region, defaults=defaults))

    settings = data.get("settings") or {}
    catalog = SiteCatalog(
        sites=tuple(sites),
        inter_site_delay_seconds=float(settings.get("inter_site_delay_seconds", 5.0)),
    )
    logger.info(
        "Loaded %d sites (%d active)", len(catalog.sites), len(catalog.active_sites)
    )
    return catalog
