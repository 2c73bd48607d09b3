"""BigQuery table schemas for the coffee product store."""

from google.cloud.bigquery import SchemaField

COFFEE_PRODUCTS_SCHEMA = [
    SchemaField("id", "STRING", mode="REQUIRED"),
    SchemaField("source_url", "STRING", mode="REQUIRED"),
    SchemaField("name", "STRING", mode="REQUIRED"),
    SchemaField("site_name", "STRING", mode="REQUIRED"),
    SchemaField("site_url", "STRING"),
    SchemaField("origin", "STRING"),
    SchemaField("region", "STRING"),
    SchemaField("variety", "STRING"),
    SchemaField("processing", "STRING"),
    SchemaField("roast_level", "STRING"),
    SchemaField("tasting_notes", "STRING", mode="REPEATED"),
    SchemaField("price", "FLOAT"),
    SchemaField("currency", "STRING"),
    SchemaField("image_urls", "STRING", mode="REPEATED"),
    SchemaField("label_image_url", "STRING"),
    SchemaField("crawled_at", "TIMESTAMP", mode="REQUIRED"),
    SchemaField("source", "STRING"),
    SchemaField("verified", "BOOLEAN"),
    SchemaField("quality_score", "INTEGER"),
    SchemaField("created_at", "TIMESTAMP", mode="REQUIRED"),
    SchemaField("updated_at", "TIMESTAMP"),
]

CRAWL_RUNS_SCHEMA = [
    SchemaField("run_id", "STRING", mode="REQUIRED"),
    SchemaField("started_at", "TIMESTAMP", mode="REQUIRED"),
    SchemaField("finished_at", "TIMESTAMP"),
    SchemaField("sites", "INTEGER"),
    SchemaField("successful_sites", "INTEGER"),
    SchemaField("total_products", "INTEGER"),
    SchemaField("successful_products", "INTEGER"),
    SchemaField("failed_products", "INTEGER"),
    SchemaField("error_count", "INTEGER"),
    SchemaField("report_json", "STRING"),
]

# Columns written for a product, in schema order (identity excluded)
PRODUCT_DATA_COLUMNS = [
    f.name for f in COFFEE_PRODUCTS_SCHEMA if f.name not in ("id", "created_at", "updated_at")
]

# Map table names to schemas for easy iteration
TABLE_SCHEMAS = {
    "coffee_products": COFFEE_PRODUCTS_SCHEMA,
    "crawl_runs": CRAWL_RUNS_SCHEMA,
}
