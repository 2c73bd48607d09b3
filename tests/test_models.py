"""Minimal tests for data models."""

import unittest
from datetime import datetime, timezone

from coffee_crawler.models import (
    Checkpoint,
    CrawlError,
    CrawlResult,
    CrawlSettings,
    ProductRecord,
    RunReport,
    SiteConfig,
    StorageResult,
)


class TestSiteConfig(unittest.TestCase):
    """Test SiteConfig model."""

    def _site(self, base_url, url=None, listing_path="/"):
        return SiteConfig(
            id="s", name="S", url=url,
            crawl=CrawlSettings(base_url=base_url, listing_path=listing_path),
        )

    def test_domain_strips_www(self):
        self.assertEqual(self._site("https://www.Example.COM").domain, "example.com")

    def test_domain_prefers_configured_url(self):
        site = self._site("https://www.example.com", url="example.com/shop")
        self.assertEqual(site.domain, "example.com/shop")

    def test_listing_url_joins_path(self):
        site = self._site("https://example.com/", listing_path="/collections/all")
        self.assertEqual(site.listing_url, "https://example.com/collections/all")

    def test_rules_for_unknown_field_is_empty(self):
        self.assertEqual(self._site("https://example.com").rules_for("origin"), ())


class TestProductRecord(unittest.TestCase):
    """Test ProductRecord serialization."""

    def test_from_dict_restores_datetimes_and_id(self):
        record = ProductRecord(
            source_url="https://example.com/products/a",
            name="A", site_name="Shop",
            crawled_at=datetime(2024, 8, 1, 12, 0, tzinfo=timezone.utc),
            tasting_notes=["plum"],
        )
        restored = ProductRecord.from_dict(record.to_dict())
        self.assertEqual(restored.id, record.id)
        self.assertEqual(restored.crawled_at, record.crawled_at)
        self.assertEqual(restored.tasting_notes, ["plum"])

    def test_from_dict_ignores_unknown_keys(self):
        restored = ProductRecord.from_dict({
            "source_url": "https://example.com/p/1", "name": "A",
            "site_name": "Shop", "created_at": "2024-08-01T00:00:00Z",
        })
        self.assertEqual(restored.name, "A")
        self.assertTrue(restored.id)

    def test_defaults(self):
        record = ProductRecord(source_url="https://e.com/p/1", name="A", site_name="S")
        self.assertEqual(record.source, "web_crawled")
        self.assertFalse(record.verified)
        self.assertEqual(record.image_urls, [])


class TestCrawlResult(unittest.TestCase):
    """Test CrawlResult and RunReport aggregates."""

    def test_failed_and_success_rate(self):
        result = CrawlResult(site_id="s", total_products=10, successful_products=7)
        self.assertEqual(result.failed_products, 3)
        self.assertAlmostEqual(result.success_rate, 0.7)
        self.assertTrue(result.success)

    def test_empty_result_is_not_success(self):
        result = CrawlResult(site_id="s")
        self.assertFalse(result.success)
        self.assertEqual(result.success_rate, 0.0)

    def test_to_dict_omits_products(self):
        result = CrawlResult(site_id="s", errors=[CrawlError(url="u", message="boom")])
        data = result.to_dict()
        self.assertNotIn("products", data)
        self.assertEqual(data["errors"][0]["message"], "boom")

    def test_run_report_totals(self):
        report = RunReport(results=[
            CrawlResult(site_id="a", total_products=5, successful_products=5),
            CrawlResult(site_id="b", total_products=3, successful_products=0,
                        errors=[CrawlError(url="u", message="x")]),
        ])
        self.assertEqual(report.total_products, 8)
        self.assertEqual(report.successful_products, 5)
        self.assertEqual(report.failed_products, 3)
        self.assertEqual(report.error_count, 1)
        self.assertEqual(report.successful_sites, 1)
        self.assertEqual(report.to_dict()["sites"], 2)


class TestStorageResult(unittest.TestCase):
    """Test StorageResult success flag."""

    def test_skipped_is_not_success(self):
        self.assertFalse(StorageResult(skipped=True).success)

    def test_errors_are_not_success(self):
        self.assertFalse(StorageResult(inserted_count=1, errors=["x"]).success)
        self.assertTrue(StorageResult(inserted_count=1).success)


class TestCheckpoint(unittest.TestCase):
    """Test Checkpoint persistence shape."""

    def test_round_trip(self):
        checkpoint = Checkpoint(total_products=12, completed_products=7, current_batch=1, errors=["e"])
        restored = Checkpoint.from_dict(checkpoint.to_dict())
        self.assertEqual(restored.completed_products, 7)
        self.assertEqual(restored.errors, ["e"])
        self.assertEqual(restored.start_time, checkpoint.start_time)


if __name__ == "__main__":
    unittest.main()
