import json
from pathlib import Path

import pytest

from locatorheal.exceptions import StoreError
from locatorheal.history import HISTORY_KEY, HealingHistory
from locatorheal.models import HealingRecord
from locatorheal.stores import InMemoryKeyValueStore, SqliteKeyValueStore


def test_sqlite_store_round_trips_and_persists(tmp_path: Path) -> None:
    store = SqliteKeyValueStore(tmp_path)
    assert store.backend == "sqlite"
    assert store.get("missing") is None

    store.set("strategyRanking", ["partial-text", "exact-match"])
    store.set("strategyRanking", ["exact-match", "partial-text"])

    reopened = SqliteKeyValueStore(tmp_path)
    assert reopened.get("strategyRanking") == ["exact-match", "partial-text"]
    assert (tmp_path / "history.db").exists()


def test_store_falls_back_to_json_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(SqliteKeyValueStore, "_initialize_sqlite", lambda self: False)
    store = SqliteKeyValueStore(tmp_path)
    assert store.backend == "json"

    history = HealingHistory(store)
    history.append(HealingRecord.create("#a", "#b", "exact-match", 1.0, "https://example.com"))

    payload = json.loads((tmp_path / "history.json").read_text(encoding="utf-8"))
    assert payload[HISTORY_KEY][0]["originalSelector"] == "#a"
    assert payload[HISTORY_KEY][0]["strategyName"] == "exact-match"
    assert history.records()[0].healed_selector == "#b"


def test_corrupt_json_file_raises_store_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(SqliteKeyValueStore, "_initialize_sqlite", lambda self: False)
    (tmp_path / "history.json").write_text("{not json", encoding="utf-8")
    store = SqliteKeyValueStore(tmp_path)

    with pytest.raises(StoreError):
        store.get(HISTORY_KEY)


def test_in_memory_store_returns_copies() -> None:
    store = InMemoryKeyValueStore({"values": [1, 2]})
    first = store.get("values")
    first.append(3)

    assert store.get("values") == [1, 2]
    assert store.get("other") is None
