"""Export artifacts for bulk export jobs. Column order is fixed for downstream tooling."""

from __future__ import annotations

import csv
import io
import json
from datetime import datetime, timezone
from typing import Any

from bulk.models import ExportArtifact, ExportFormat

EXPORT_COLUMNS = (
    "businessName",
    "ownerName",
    "email",
    "verificationStatus",
    "revenueTotal",
    "orderTotal",
    "rating",
)

_NUMERIC_SOURCES = {
    "revenueTotal": ("revenueTotal", "totalRevenue"),
    "orderTotal": ("orderTotal", "totalOrders"),
    "rating": ("rating",),
}


def _number(value: Any) -> float | int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            parsed = float(value)
        except ValueError:
            return 0
        return int(parsed) if parsed.is_integer() else parsed
    return 0


def build_export_row(source: dict[str, Any]) -> dict[str, Any]:
    """Map one entity payload onto the export schema. Metrics may sit under ``businessMetrics``."""
    metrics = source.get("businessMetrics") if isinstance(source.get("businessMetrics"), dict) else {}
    row: dict[str, Any] = {
        "businessName": source.get("businessName") or "",
        "ownerName": source.get("ownerName") or "",
        "email": source.get("email") or "",
        "verificationStatus": source.get("verificationStatus") or "pending",
    }
    for column, keys in _NUMERIC_SOURCES.items():
        value = None
        for key in keys:
            if source.get(key) is not None:
                value = source[key]
                break
            if metrics.get(key) is not None:
                value = metrics[key]
                break
        row[column] = _number(value)
    return row


def render_csv(rows: list[dict[str, Any]]) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=list(EXPORT_COLUMNS), lineterminator="\n")
    writer.writeheader()
    writer.writerows(rows)
    return buffer.getvalue()


def render_json(rows: list[dict[str, Any]]) -> str:
    return json.dumps([{column: row[column] for column in EXPORT_COLUMNS} for row in rows], indent=2)


def build_artifact(
    sources: list[dict[str, Any]],
    export_format: ExportFormat,
    entity_label: str = "entities",
    now: datetime | None = None,
) -> ExportArtifact:
    rows = [build_export_row(source) for source in sources]
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y%m%d")
    if export_format == ExportFormat.JSON:
        return ExportArtifact(
            filename=f"{entity_label}_export_{stamp}.json",
            content_type="application/json",
            content=render_json(rows),
            row_count=len(rows),
        )
    return ExportArtifact(
        filename=f"{entity_label}_export_{stamp}.csv",
        content_type="text/csv",
        content=render_csv(rows),
        row_count=len(rows),
    )
