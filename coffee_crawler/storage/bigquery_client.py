"""BigQuery client for the coffee product store.

Products are written with parameterized DML rather than streaming inserts:
rows still in the streaming buffer cannot be updated or deleted, and every
product row must stay updatable by a later crawl.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from google.api_core.exceptions import GoogleAPIError, NotFound
from google.auth.exceptions import GoogleAuthError
from google.cloud import bigquery

from coffee_crawler.config import StoreConfig
from coffee_crawler.models import ProductRecord, RunReport
from coffee_crawler.storage.schema import PRODUCT_DATA_COLUMNS, TABLE_SCHEMAS

logger = logging.getLogger(__name__)

_STORE_ERRORS = (GoogleAPIError, GoogleAuthError, OSError)

_ARRAY_COLUMNS = frozenset({"tasting_notes", "image_urls"})
_SCALAR_TYPES = {
    "price": "FLOAT64",
    "crawled_at": "TIMESTAMP",
    "verified": "BOOL",
    "quality_score": "INT64",
}


class StorageError(Exception):
    """A product store operation failed."""


def _param(name: str, value: Any):
    if name in _ARRAY_COLUMNS:
        return bigquery.ArrayQueryParameter(name, "STRING", list(value or []))
    type_ = _SCALAR_TYPES.get(name, "STRING")
    if type_ == "FLOAT64" and value is not None:
        value = float(value)
    return bigquery.ScalarQueryParameter(name, type_, value)


def product_row(record: ProductRecord) -> dict[str, Any]:
    """Column values for a product, identity columns excluded."""
    data = record.to_dict()
    data["crawled_at"] = record.crawled_at
    return {column: data.get(column) for column in PRODUCT_DATA_COLUMNS}


class ProductStore:
    """All BigQuery operations of the product store."""

    def __init__(self, config: StoreConfig, client: Optional[bigquery.Client] = None):
        self.config = config
        self._client = client
        self.dataset_ref = f"{config.project_id}.{config.dataset_id}"
        self.products_table = f"{self.dataset_ref}.{config.products_table}"
        self.runs_table = f"{self.dataset_ref}.{config.runs_table}"

    @property
    def client(self) -> bigquery.Client:
        if self._client is None:
            self._client = bigquery.Client(project=self.config.project_id)
        return self._client

    def _query(self, sql: str, params: Optional[list] = None) -> list[Any]:
        job_config = bigquery.QueryJobConfig(query_parameters=params or [])
        try:
            return list(self.client.query(sql, job_config=job_config).result())
        except _STORE_ERRORS as e:
            raise StorageError(str(e)[:500]) from e

    # ── Setup / health ─────────────────────────────────────────────

    def ensure_tables_exist(self) -> None:
        """Create dataset and all tables if they don't exist."""
        try:
            self._ensure_tables()
        except _STORE_ERRORS as e:
            raise StorageError(f"Could not prepare {self.dataset_ref}: {e}") from e

    def _ensure_tables(self) -> None:
        dataset = bigquery.Dataset(self.dataset_ref)
        dataset.location = self.config.location
        try:
            self.client.get_dataset(self.dataset_ref)
            logger.info("Dataset %s already exists", self.dataset_ref)
        except NotFound:
            self.client.create_dataset(dataset)
            logger.info("Created dataset %s", self.dataset_ref)

        names = {
            "coffee_products": self.products_table,
            "crawl_runs": self.runs_table,
        }
        for table_name, schema in TABLE_SCHEMAS.items():
            table_ref = names[table_name]
            try:
                self.client.get_table(table_ref)
                logger.debug("Table %s already exists", table_ref)
            except NotFound:
                self.client.create_table(bigquery.Table(table_ref, schema=schema))
                logger.info("Created table %s", table_ref)

    def test_connection(self) -> bool:
        """True when the products table is reachable."""
        try:
            self.client.get_table(self.products_table)
            return True
        except Exception as e:
            logger.warning("BigQuery connection test failed: %s", e)
            return False

    # ── Products ───────────────────────────────────────────────────

    def find_by_source_url(self, source_url: str) -> Optional[dict[str, Any]]:
        """Newest persisted row for a source URL, or None."""
        rows = self._query(
            f"""
            SELECT id, source_url, created_at, updated_at
            FROM `{self.products_table}`
            WHERE source_url = @source_url
            ORDER BY created_at DESC
            LIMIT 1
            """,
            [_param("source_url", source_url)],
        )
        if not rows:
            return None
        row = rows[0]
        return {
            "id": row.id,
            "source_url": row.source_url,
            "created_at": row.created_at,
            "updated_at": row.updated_at,
        }

    def insert_product(self, record: ProductRecord, created_at: Optional[datetime] = None) -> None:
        row = product_row(record)
        columns = ["id", *row, "created_at"]
        params = [_param(name, value) for name, value in row.items()]
        params.append(bigquery.ScalarQueryParameter("id", "STRING", record.id))
        params.append(bigquery.ScalarQueryParameter(
            "created_at", "TIMESTAMP", created_at or datetime.now(timezone.utc)
        ))
        self._query(
            f"""
            INSERT INTO `{self.products_table}` ({", ".join(columns)})
            VALUES ({", ".join("@" + c for c in columns)})
            """,
            params,
        )

    def update_product(
        self, row_id: str, record: ProductRecord, updated_at: Optional[datetime] = None
    ) -> None:
        """Overwrite every non-identity column of an existing row."""
        row = product_row(record)
        assignments = ", ".join(f"{c} = @{c}" for c in row)
        params = [_param(name, value) for name, value in row.items()]
        params.append(bigquery.ScalarQueryParameter("row_id", "STRING", row_id))
        params.append(bigquery.ScalarQueryParameter(
            "updated_at", "TIMESTAMP", updated_at or datetime.now(timezone.utc)
        ))
        self._query(
            f"""
            UPDATE `{self.products_table}`
            SET {assignments}, updated_at = @updated_at
            WHERE id = @row_id
            """,
            params,
        )

    def list_product_keys(self) -> list[dict[str, Any]]:
        """id, source_url and created_at of every row, newest first."""
        rows = self._query(
            f"""
            SELECT id, source_url, created_at
            FROM `{self.products_table}`
            ORDER BY created_at DESC
            """
        )
        return [
            {"id": r.id, "source_url": r.source_url, "created_at": r.created_at}
            for r in rows
        ]

    def delete_product(self, row_id: str) -> None:
        self._query(
            f"DELETE FROM `{self.products_table}` WHERE id = @row_id",
            [bigquery.ScalarQueryParameter("row_id", "STRING", row_id)],
        )

    def get_storage_stats(self) -> dict[str, Any]:
        """Totals by site and origin, plus rows crawled within the last hour."""
        totals = self._query(
            f"""
            SELECT
              COUNT(*) AS total_products,
              COUNTIF(crawled_at >= TIMESTAMP_SUB(CURRENT_TIMESTAMP(), INTERVAL 1 HOUR))
                AS recent_crawls
            FROM `{self.products_table}`
            """
        )
        by_site = self._query(
            f"""
            SELECT site_name AS key, COUNT(*) AS n
            FROM `{self.products_table}`
            WHERE site_name IS NOT NULL
            GROUP BY site_name
            ORDER BY n DESC
            """
        )
        by_origin = self._query(
            f"""
            SELECT origin AS key, COUNT(*) AS n
            FROM `{self.products_table}`
            WHERE origin IS NOT NULL
            GROUP BY origin
            ORDER BY n DESC
            """
        )
        total = totals[0] if totals else None
        return {
            "total_products": total.total_products if total else 0,
            "recent_crawls": total.recent_crawls if total else 0,
            "site_stats": {r.key: r.n for r in by_site},
            "origin_stats": {r.key: r.n for r in by_origin},
        }

    # ── Run reports ────────────────────────────────────────────────

    def insert_run_report(self, report: RunReport) -> None:
        """Append a run summary row. Errors are logged, not raised."""
        summary = report.to_dict()
        row = {
            "run_id": report.run_id,
            "started_at": summary["started_at"],
            "finished_at": summary["finished_at"],
            "sites": summary["sites"],
            "successful_sites": summary["successful_sites"],
            "total_products": summary["total_products"],
            "successful_products": summary["successful_products"],
            "failed_products": summary["failed_products"],
            "error_count": summary["error_count"],
            "report_json": json.dumps(summary, ensure_ascii=False),
        }
        try:
            errors = self.client.insert_rows_json(self.runs_table, [row])
        except _STORE_ERRORS as e:
            logger.error("Could not record run %s in BigQuery: %s", report.run_id, e)
            return
        if errors:
            logger.error("BigQuery insert errors (crawl_runs): %s", errors)
        else:
            logger.debug("Recorded run %s in %s", report.run_id, self.runs_table)
