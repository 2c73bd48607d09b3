"""Reconciles accepted products with the persistent product store.

``source_url`` is the identity of a product: reconciling the same records
twice updates rows in place instead of inserting duplicates.
"""

import logging
from collections import defaultdict
from typing import Any, Optional

from coffee_crawler.models import ProductRecord, StorageResult
from coffee_crawler.storage.bigquery_client import ProductStore, StorageError

logger = logging.getLogger(__name__)


class StorageReconciler:
    """Upserts products and maintains the store's one-row-per-URL invariant."""

    def __init__(self, store: ProductStore):
        self.store = store

    def reconcile(self, records: list[ProductRecord]) -> StorageResult:
        """Upsert records if the store is reachable; otherwise skip."""
        if not records:
            return StorageResult()
        if not self.store.test_connection():
            logger.warning(
                "Product store unreachable; %d records kept in the local snapshot only",
                len(records),
            )
            return StorageResult(skipped=True)
        return self.upsert_all(records)

    def upsert_all(self, records: list[ProductRecord]) -> StorageResult:
        result = StorageResult()
        for record in records:
            try:
                existing = self.store.find_by_source_url(record.source_url)
                if existing:
                    self.store.update_product(existing["id"], record)
                    result.updated_count += 1
                    logger.debug("Updated %s", record.source_url)
                else:
                    self.store.insert_product(record)
                    result.inserted_count += 1
                    logger.debug("Inserted %s", record.source_url)
            except StorageError as e:
                logger.error("Could not store %s: %s", record.source_url, e)
                result.errors.append(f"{record.source_url}: {e}")

        logger.info(
            "Storage: %d inserted, %d updated, %d errors",
            result.inserted_count, result.updated_count, len(result.errors),
        )
        return result

    def cleanup_duplicates(self) -> int:
        """Delete all but the most recently created row per ``source_url``."""
        groups: dict[str, list[dict[str, Any]]] = defaultdict(list)
        for row in self.store.list_product_keys():
            groups[row["source_url"]].append(row)

        deleted = 0
        for source_url, rows in groups.items():
            if len(rows) < 2:
                continue
            rows.sort(key=lambda r: _sort_key(r.get("created_at")), reverse=True)
            for stale in rows[1:]:
                try:
                    self.store.delete_product(stale["id"])
                    deleted += 1
                except StorageError as e:
                    logger.error("Could not delete duplicate %s of %s: %s", stale["id"], source_url, e)

        logger.info("Removed %d duplicate product rows", deleted)
        return deleted

    def stats(self) -> dict[str, Any]:
        return self.store.get_storage_stats()


def _sort_key(created_at: Optional[Any]) -> str:
    # Rows without created_at sort oldest
    return created_at.isoformat() if created_at is not None else ""
