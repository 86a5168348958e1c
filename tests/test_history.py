from __future__ import annotations

import csv
import json
from datetime import datetime, timezone
from typing import Any

import pytest

from core.history import AddressHistory
from core.models import VerificationResult
from frontend.export import EXPORT_FIELDS, export_records, flatten_record, newest_first

ADDRESS = "4k3Dyjzvzp8eMZWUXbBCjEvwSkkk59S5iCNLY3QrkX6R"


class MemoryStore:
    def __init__(self) -> None:
        self.data: dict[str, Any] = {}

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.data[key] = value


def _history_with_record() -> AddressHistory:
    history = AddressHistory(MemoryStore())
    history.append(ADDRESS, datetime(2024, 1, 1, tzinfo=timezone.utc), "calls", "CA: x", "alice")
    return history


def test_append_and_record_verification() -> None:
    history = _history_with_record()

    history.record_verification(ADDRESS, VerificationResult(verified=True, name="EX", platform="Birdeye"))

    (record,) = history.records()
    assert record["verified"] is True
    assert record["token_info"] == {"verified": True, "name": "EX", "platform": "Birdeye", "reason": None}
    assert record["sender"] == "alice"


def test_record_verification_for_unknown_address_is_ignored() -> None:
    history = _history_with_record()

    history.record_verification("other", VerificationResult(verified=False))

    assert "verified" not in history.records()[0]


def test_clear_empties_history() -> None:
    history = _history_with_record()

    history.clear()

    assert history.records() == []


def test_auto_forward_flag_defaults_and_toggles() -> None:
    history = AddressHistory(MemoryStore())

    assert history.auto_forward() is False
    assert history.auto_forward(default=True) is True

    history.set_auto_forward(True)
    assert history.auto_forward(default=False) is True
    history.set_auto_forward(False)
    assert history.auto_forward(default=True) is False


def test_flatten_and_sort_records() -> None:
    older = {"timestamp": "2024-01-01T00:00:00", "address": "a"}
    newer = {
        "timestamp": "2024-01-02T00:00:00",
        "address": "b",
        "verified": True,
        "token_info": {"name": "EX", "platform": "Jupiter"},
    }

    assert [r["address"] for r in newest_first([older, newer])] == ["b", "a"]
    flat = flatten_record(newer)
    assert list(flat) == EXPORT_FIELDS
    assert flat["name"] == "EX"
    assert flatten_record(older)["platform"] == ""


def test_export_json_and_csv(tmp_path) -> None:
    records = _history_with_record().records()
    now = datetime(2024, 5, 6, 7, 8, 9)

    json_path = export_records(records, "json", tmp_path, now=now)
    csv_path = export_records(records, "csv", tmp_path, now=now)

    assert json_path.name == "addresses-20240506-070809.json"
    assert json.loads(json_path.read_text(encoding="utf-8"))[0]["address"] == ADDRESS
    with csv_path.open(encoding="utf-8", newline="") as handle:
        rows = list(csv.DictReader(handle))
    assert rows[0]["channel"] == "calls"


def test_export_rejects_unknown_format(tmp_path) -> None:
    with pytest.raises(ValueError):
        export_records([], "xml", tmp_path)
