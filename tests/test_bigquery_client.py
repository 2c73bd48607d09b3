"""Tests for the BigQuery product store with a mocked client."""

import unittest
from types import SimpleNamespace
from unittest import mock

from google.api_core.exceptions import BadRequest, NotFound
from google.cloud import bigquery

from fakes import make_record

from coffee_crawler.config import StoreConfig
from coffee_crawler.models import RunReport
from coffee_crawler.storage.bigquery_client import ProductStore, StorageError, product_row
from coffee_crawler.storage.schema import PRODUCT_DATA_COLUMNS


def query_returning(*row_sets):
    """Mock client whose successive query() calls yield the given rows."""
    client = mock.MagicMock()
    jobs = []
    for rows in row_sets:
        job = mock.MagicMock()
        job.result.return_value = rows
        jobs.append(job)
    client.query.side_effect = jobs
    return client


class StoreTestCase(unittest.TestCase):
    def make_store(self, client):
        return ProductStore(StoreConfig(project_id="proj", dataset_id="coffee"), client=client)

    def params(self, client, call=0):
        job_config = client.query.call_args_list[call].kwargs["job_config"]
        return {p.name: p for p in job_config.query_parameters}


class TestProductStoreQueries(StoreTestCase):
    """Test parameterized DML for product rows."""

    def test_find_by_source_url(self):
        row = SimpleNamespace(id="abc", source_url="https://x/p/1", created_at=None, updated_at=None)
        client = query_returning([row])
        found = self.make_store(client).find_by_source_url("https://x/p/1")

        self.assertEqual(found["id"], "abc")
        sql = client.query.call_args.args[0]
        self.assertIn("`proj.coffee.coffee_products`", sql)
        self.assertIn("@source_url", sql)
        self.assertEqual(self.params(client)["source_url"].value, "https://x/p/1")

    def test_find_returns_none_when_absent(self):
        self.assertIsNone(self.make_store(query_returning([])).find_by_source_url("https://x/p/2"))

    def test_insert_binds_every_column(self):
        client = query_returning([])
        record = make_record(price=18000, variety="Heirloom")
        self.make_store(client).insert_product(record)

        sql = client.query.call_args.args[0]
        self.assertIn("INSERT INTO `proj.coffee.coffee_products`", sql)
        params = self.params(client)
        for column in ["id", "created_at", *PRODUCT_DATA_COLUMNS]:
            self.assertIn(column, params)
        self.assertEqual(params["id"].value, record.id)
        self.assertEqual(params["price"].value, 18000.0)
        self.assertEqual(params["price"].type_, "FLOAT64")
        self.assertIsInstance(params["tasting_notes"], bigquery.ArrayQueryParameter)
        self.assertEqual(params["tasting_notes"].values, ["jasmine", "peach"])

    def test_update_keeps_identity(self):
        client = query_returning([])
        self.make_store(client).update_product("row-1", make_record())

        sql = client.query.call_args.args[0]
        self.assertIn("UPDATE `proj.coffee.coffee_products`", sql)
        self.assertIn("updated_at = @updated_at", sql)
        self.assertNotIn("created_at =", sql)
        self.assertNotIn(" id = @id", sql)
        self.assertEqual(self.params(client)["row_id"].value, "row-1")

    def test_query_errors_become_storage_errors(self):
        client = mock.MagicMock()
        client.query.side_effect = BadRequest("bad sql")
        with self.assertRaises(StorageError):
            self.make_store(client).delete_product("row-1")

    def test_list_product_keys(self):
        rows = [SimpleNamespace(id="a", source_url="u", created_at="t")]
        keys = self.make_store(query_returning(rows)).list_product_keys()
        self.assertEqual(keys, [{"id": "a", "source_url": "u", "created_at": "t"}])

    def test_storage_stats(self):
        client = query_returning(
            [SimpleNamespace(total_products=5, recent_crawls=2)],
            [SimpleNamespace(key="Alpha", n=3), SimpleNamespace(key="Beta", n=2)],
            [SimpleNamespace(key="Ethiopia", n=4)],
        )
        stats = self.make_store(client).get_storage_stats()
        self.assertEqual(stats["total_products"], 5)
        self.assertEqual(stats["recent_crawls"], 2)
        self.assertEqual(stats["site_stats"], {"Alpha": 3, "Beta": 2})
        self.assertEqual(stats["origin_stats"], {"Ethiopia": 4})


class TestProductStoreSetup(StoreTestCase):
    """Test table creation and the connection probe."""

    def test_creates_missing_dataset_and_tables(self):
        client = mock.MagicMock()
        client.get_dataset.side_effect = NotFound("no dataset")
        client.get_table.side_effect = NotFound("no table")
        self.make_store(client).ensure_tables_exist()
        client.create_dataset.assert_called_once()
        self.assertEqual(client.create_table.call_count, 2)

    def test_existing_tables_untouched(self):
        client = mock.MagicMock()
        self.make_store(client).ensure_tables_exist()
        client.create_dataset.assert_not_called()
        client.create_table.assert_not_called()

    def test_connection_probe(self):
        client = mock.MagicMock()
        self.assertTrue(self.make_store(client).test_connection())
        client.get_table.side_effect = NotFound("gone")
        self.assertFalse(self.make_store(client).test_connection())

    def test_run_report_insert(self):
        client = mock.MagicMock()
        client.insert_rows_json.return_value = []
        report = RunReport()
        self.make_store(client).insert_run_report(report)
        table, rows = client.insert_rows_json.call_args.args
        self.assertEqual(table, "proj.coffee.crawl_runs")
        self.assertEqual(rows[0]["run_id"], report.run_id)


class TestProductRow(unittest.TestCase):
    """Test row mapping."""

    def test_excludes_identity_columns(self):
        row = product_row(make_record())
        self.assertNotIn("id", row)
        self.assertNotIn("created_at", row)
        self.assertEqual(row["origin"], "Ethiopia")


if __name__ == "__main__":
    unittest.main()
