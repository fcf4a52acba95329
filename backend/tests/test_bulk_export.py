import csv
import io
import json
from datetime import datetime, timezone

from bulk.export import EXPORT_COLUMNS, build_artifact, build_export_row
from bulk.models import ExportFormat

NOW = datetime(2026, 3, 1, tzinfo=timezone.utc)

SOURCES = [
    {
        "businessName": "Green Valley Farms",
        "ownerName": "Sam Ortiz",
        "email": "sam@greenvalley.example",
        "verificationStatus": "approved",
        "businessMetrics": {"totalRevenue": 12500.5, "totalOrders": 42, "rating": 4.7},
    },
    {
        "businessName": "Harbor Bistro",
        "email": "orders@harbor.example",
        "revenueTotal": "300",
    },
]


def test_row_mapping_reads_metrics_and_defaults():
    first = build_export_row(SOURCES[0])
    assert first["revenueTotal"] == 12500.5
    assert first["orderTotal"] == 42
    assert first["rating"] == 4.7

    second = build_export_row(SOURCES[1])
    assert second["ownerName"] == ""
    assert second["verificationStatus"] == "pending"
    assert second["revenueTotal"] == 300
    assert second["orderTotal"] == 0


def test_csv_artifact_has_fixed_columns():
    artifact = build_artifact(SOURCES, ExportFormat.CSV, "vendors", now=NOW)

    assert artifact.filename == "vendors_export_20260301.csv"
    assert artifact.content_type == "text/csv"
    assert artifact.row_count == 2
    reader = csv.DictReader(io.StringIO(artifact.content))
    assert tuple(reader.fieldnames) == EXPORT_COLUMNS
    rows = list(reader)
    assert rows[0]["businessName"] == "Green Valley Farms"
    assert rows[1]["email"] == "orders@harbor.example"


def test_json_artifact_preserves_column_order():
    artifact = build_artifact(SOURCES, ExportFormat.JSON, "restaurants", now=NOW)

    assert artifact.filename == "restaurants_export_20260301.json"
    rows = json.loads(artifact.content)
    assert list(rows[0]) == list(EXPORT_COLUMNS)


def test_empty_export_still_has_header():
    artifact = build_artifact([], ExportFormat.CSV, now=NOW)
    assert artifact.content == ",".join(EXPORT_COLUMNS) + "\n"
    assert artifact.row_count == 0
