"""Shared data models for the coffee product crawler pipeline."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Optional
from urllib.parse import urlparse

# Record provenance values
SOURCE_WEB_CRAWLED = "web_crawled"
SOURCE_MANUAL_ENTRY = "manual_entry"
SOURCE_USER_FEEDBACK = "user_feedback"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_dt(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


@dataclass(frozen=True)
class FieldRule:
    """One step of an ordered field-extraction fallback chain.

    ``source`` decides what text the rule looks at:
    ``text`` (elements matched by ``selector``, or the whole page body),
    ``title`` (the document title), ``options`` (``<option>`` labels) or
    ``attr`` (``attribute`` of elements matched by ``selector``).
    """

    selector: Optional[str] = None
    pattern: Optional[str] = None
    source: str = "text"  # text | title | options | attr
    attribute: Optional[str] = None
    strip: Optional[str] = None
    exclude: tuple[str, ...] = ()
    min_length: int = 1


@dataclass(frozen=True)
class CrawlSettings:
    """Per-site crawl parameters."""

    base_url: str
    listing_path: str = "/"
    product_url_pattern: str = r"/products?/"
    request_delay_seconds: float = 2.0
    max_retries: int = 3
    max_pages: int = 10
    max_scrolls: int = 5
    scroll_wait_seconds: float = 2.0
    page_timeout_ms: int = 30000
    product_link_selectors: tuple[str, ...] = ("a[href]",)
    wait_selector: Optional[str] = None
    category_link_selector: Optional[str] = None


@dataclass(frozen=True)
class ParsingRules:
    """Value-level parsing rules for a site."""

    price_pattern: str = r"([\d,]+(?:\.\d+)?)"
    notes_parser: str = "comma_separated"  # comma_separated | line_separated | custom
    currency: str = "KRW"
    note_keywords: tuple[str, ...] = ()
    label_image_keywords: tuple[str, ...] = ("label", "bag", "package", "라벨", "포장")
    image_include: tuple[str, ...] = ()
    image_exclude: tuple[str, ...] = ("logo", "icon", "payment")
    max_images: int = 10


@dataclass(frozen=True)
class SiteConfig:
    """A target site to crawl, loaded once per run from the site catalog."""

    id: str
    name: str
    crawl: CrawlSettings
    site_type: str = "paginated_storefront"
    url: Optional[str] = None
    country: Optional[str] = None
    region: Optional[str] = None
    fields: Mapping[str, tuple[FieldRule, ...]] = field(default_factory=dict)
    image_selectors: tuple[str, ...] = ()
    parsing: ParsingRules = field(default_factory=ParsingRules)
    is_active: bool = True

    @property
    def domain(self) -> str:
        """Site domain without www., used when no display URL is configured."""
        if self.url:
            return self.url
        domain = urlparse(self.crawl.base_url).netloc.lower()
        if domain.startswith("www."):
            domain = domain[4:]
        return domain

    @property
    def listing_url(self) -> str:
        return self.crawl.base_url.rstrip("/") + self.crawl.listing_path

    def rules_for(self, field_name: str) -> tuple[FieldRule, ...]:
        return tuple(self.fields.get(field_name, ()))


@dataclass
class ProductRecord:
    """Canonical product extracted from a single item page.

    ``source_url`` is the natural key: two records with the same URL are the
    same logical product seen at different times.
    """

    source_url: str
    name: str
    site_name: str
    site_url: Optional[str] = None
    origin: Optional[str] = None
    region: Optional[str] = None
    variety: Optional[str] = None
    processing: Optional[str] = None
    roast_level: Optional[str] = None
    tasting_notes: list[str] = field(default_factory=list)
    price: Optional[float] = None
    currency: Optional[str] = None
    image_urls: list[str] = field(default_factory=list)
    label_image_url: Optional[str] = None
    crawled_at: datetime = field(default_factory=utc_now)
    updated_at: Optional[datetime] = None
    source: str = SOURCE_WEB_CRAWLED  # web_crawled | manual_entry | user_feedback
    verified: bool = False
    quality_score: int = 0
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "source_url": self.source_url,
            "name": self.name,
            "site_name": self.site_name,
            "site_url": self.site_url,
            "origin": self.origin,
            "region": self.region,
            "variety": self.variety,
            "processing": self.processing,
            "roast_level": self.roast_level,
            "tasting_notes": list(self.tasting_notes),
            "price": self.price,
            "currency": self.currency,
            "image_urls": list(self.image_urls),
            "label_image_url": self.label_image_url,
            "crawled_at": _iso(self.crawled_at),
            "updated_at": _iso(self.updated_at),
            "source": self.source,
            "verified": self.verified,
            "quality_score": self.quality_score,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ProductRecord":
        kwargs = dict(data)
        kwargs["crawled_at"] = _parse_dt(kwargs.get("crawled_at")) or utc_now()
        kwargs["updated_at"] = _parse_dt(kwargs.get("updated_at"))
        kwargs["tasting_notes"] = list(kwargs.get("tasting_notes") or [])
        kwargs["image_urls"] = list(kwargs.get("image_urls") or [])
        if not kwargs.get("id"):
            kwargs.pop("id", None)
        known = cls.__dataclass_fields__.keys()
        return cls(**{k: v for k, v in kwargs.items() if k in known})


@dataclass
class CrawlError:
    """A per-item failure recorded during a site run."""

    url: str
    message: str
    retries: int = 0
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "message": self.message,
            "retries": self.retries,
            "timestamp": _iso(self.timestamp),
        }


@dataclass
class StorageResult:
    """Outcome of reconciling a batch of records into the product store."""

    inserted_count: int = 0
    updated_count: int = 0
    errors: list[str] = field(default_factory=list)
    skipped: bool = False

    @property
    def success(self) -> bool:
        return not self.skipped and not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "inserted_count": self.inserted_count,
            "updated_count": self.updated_count,
            "errors": list(self.errors),
            "skipped": self.skipped,
        }


@dataclass
class CrawlResult:
    """Summary of one site run."""

    site_id: str
    total_products: int = 0
    successful_products: int = 0
    rejected_products: int = 0
    errors: list[CrawlError] = field(default_factory=list)
    duration_seconds: float = 0.0
    timestamp: datetime = field(default_factory=utc_now)
    snapshot_path: Optional[str] = None
    storage: Optional[StorageResult] = None
    products: list[ProductRecord] = field(default_factory=list, repr=False)

    @property
    def failed_products(self) -> int:
        return max(self.total_products - self.successful_products, 0)

    @property
    def success(self) -> bool:
        return self.successful_products > 0

    @property
    def success_rate(self) -> float:
        if not self.total_products:
            return 0.0
        return self.successful_products / self.total_products

    def to_dict(self) -> dict[str, Any]:
        return {
            "site_id": self.site_id,
            "success": self.success,
            "total_products": self.total_products,
            "successful_products": self.successful_products,
            "failed_products": self.failed_products,
            "rejected_products": self.rejected_products,
            "errors": [e.to_dict() for e in self.errors],
            "duration_seconds": round(self.duration_seconds, 3),
            "timestamp": _iso(self.timestamp),
            "snapshot_path": self.snapshot_path,
            "storage": self.storage.to_dict() if self.storage else None,
        }


@dataclass
class RunReport:
    """Aggregated results of one orchestrator run across all sites."""

    run_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    started_at: datetime = field(default_factory=utc_now)
    finished_at: Optional[datetime] = None
    results: list[CrawlResult] = field(default_factory=list)

    @property
    def total_products(self) -> int:
        return sum(r.total_products for r in self.results)

    @property
    def successful_products(self) -> int:
        return sum(r.successful_products for r in self.results)

    @property
    def failed_products(self) -> int:
        return sum(r.failed_products for r in self.results)

    @property
    def error_count(self) -> int:
        return sum(len(r.errors) for r in self.results)

    @property
    def successful_sites(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def duration_seconds(self) -> float:
        end = self.finished_at or utc_now()
        return (end - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "started_at": _iso(self.started_at),
            "finished_at": _iso(self.finished_at),
            "duration_seconds": round(self.duration_seconds, 3),
            "sites": len(self.results),
            "successful_sites": self.successful_sites,
            "total_products": self.total_products,
            "successful_products": self.successful_products,
            "failed_products": self.failed_products,
            "error_count": self.error_count,
            "results": [r.to_dict() for r in self.results],
        }


@dataclass
class Checkpoint:
    """Per-site batching progress, persisted between processes."""

    total_products: int = 0
    completed_products: int = 0
    current_batch: int = 0
    errors: list[str] = field(default_factory=list)
    start_time: datetime = field(default_factory=utc_now)
    last_checkpoint: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_products": self.total_products,
            "completed_products": self.completed_products,
            "current_batch": self.current_batch,
            "errors": list(self.errors),
            "start_time": _iso(self.start_time),
            "last_checkpoint": _iso(self.last_checkpoint),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Checkpoint":
        return cls(
            total_products=int(data.get("total_products", 0)),
            completed_products=int(data.get("completed_products", 0)),
            current_batch=int(data.get("current_batch", 0)),
            errors=[str(e) for e in data.get("errors", [])],
            start_time=_parse_dt(data.get("start_time")) or utc_now(),
            last_checkpoint=_parse_dt(data.get("last_checkpoint")) or utc_now(),
        )
