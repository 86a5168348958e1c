"""Export helpers for the address history viewer."""

from __future__ import annotations

import csv
import json
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

EXPORT_FIELDS = ["timestamp", "address", "verified", "name", "platform", "channel", "sender", "message"]


def flatten_record(record: dict[str, Any]) -> dict[str, Any]:
    """Flatten one history record into the export columns."""

    token_info = record.get("token_info") or {}
    return {
        "timestamp": record.get("timestamp", ""),
        "address": record.get("address", ""),
        "verified": record.get("verified"),
        "name": token_info.get("name") or "",
        "platform": token_info.get("platform") or "",
        "channel": record.get("channel", ""),
        "sender": record.get("sender", ""),
        "message": record.get("message", ""),
    }


def export_records(
    records: list[dict[str, Any]],
    fmt: str,
    directory: Path,
    now: Optional[datetime] = None,
) -> Path:
    """Write records as JSON or CSV into directory and return the file path."""

    if fmt not in {"json", "csv"}:
        raise ValueError(f"Unsupported export format: {fmt}")
    directory.mkdir(parents=True, exist_ok=True)
    timestamp = (now or datetime.now()).strftime("%Y%m%d-%H%M%S")
    path = directory / f"addresses-{timestamp}.{fmt}"
    rows = [flatten_record(record) for record in records]
    if fmt == "json":
        path.write_text(json.dumps(rows, indent=2, ensure_ascii=True), encoding="utf-8")
        return path
    with path.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.DictWriter(handle, fieldnames=EXPORT_FIELDS)
        writer.writeheader()
        writer.writerows(rows)
    return path


def newest_first(records: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return sorted(records, key=lambda record: record.get("timestamp", ""), reverse=True)
