from __future__ import annotations

import json
import sqlite3
import threading
from pathlib import Path
from typing import Any, Protocol

from .exceptions import StoreError

STORE_DIR = Path.home() / ".locatorheal"


class KeyValueStore(Protocol):
    def get(self, key: str) -> Any | None:
        ...

    def set(self, key: str, value: Any) -> None:
        ...


class InMemoryKeyValueStore:
    """Process-local store. Values round-trip through JSON like the persistent one."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._lock = threading.Lock()
        self._values: dict[str, str] = {key: json.dumps(value) for key, value in (initial or {}).items()}

    def get(self, key: str) -> Any | None:
        with self._lock:
            raw = self._values.get(key)
        return None if raw is None else json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        encoded = json.dumps(value)
        with self._lock:
            self._values[key] = encoded


class SqliteKeyValueStore:
    """JSON values in a sqlite ``kv`` table, with a plain JSON file when sqlite is unusable."""

    def __init__(self, base_dir: Path | None = None) -> None:
        root = base_dir or STORE_DIR
        try:
            root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StoreError(f"Could not create store folder {root}: {exc}") from exc
        self.db_path = root / "history.db"
        self.json_path = root / "history.json"
        self._lock = threading.Lock()
        self._use_sqlite = self._initialize_sqlite()
        if not self._use_sqlite:
            self._initialize_json()

    @property
    def backend(self) -> str:
        return "sqlite" if self._use_sqlite else "json"

    def _initialize_sqlite(self) -> bool:
        try:
            with sqlite3.connect(self.db_path) as conn:
                cur = conn.cursor()
                cur.execute(
                    """
                    CREATE TABLE IF NOT EXISTS kv (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL
                    )
                    """
                )
                conn.commit()
            return True
        except sqlite3.Error:
            return False

    def _initialize_json(self) -> None:
        if self.json_path.exists():
            return
        try:
            self.json_path.write_text(json.dumps({}, indent=2), encoding="utf-8")
        except OSError as exc:
            raise StoreError(f"Could not initialize {self.json_path}: {exc}") from exc

    def get(self, key: str) -> Any | None:
        with self._lock:
            if self._use_sqlite:
                try:
                    with sqlite3.connect(self.db_path) as conn:
                        cur = conn.cursor()
                        cur.execute("SELECT value FROM kv WHERE key = ?", (key,))
                        row = cur.fetchone()
                    return None if row is None else json.loads(row[0])
                except json.JSONDecodeError as exc:
                    raise StoreError(f"Corrupt value for {key!r} in {self.db_path}: {exc}") from exc
                except sqlite3.Error:
                    self._use_sqlite = False
                    self._initialize_json()
            return self._read_json().get(key)

    def set(self, key: str, value: Any) -> None:
        encoded = json.dumps(value)
        with self._lock:
            if self._use_sqlite:
                try:
                    with sqlite3.connect(self.db_path) as conn:
                        cur = conn.cursor()
                        cur.execute(
                            """
                            INSERT INTO kv (key, value)
                            VALUES (?, ?)
                            ON CONFLICT(key) DO UPDATE SET value = excluded.value
                            """,
                            (key, encoded),
                        )
                        conn.commit()
                    return
                except sqlite3.Error:
                    self._use_sqlite = False
                    self._initialize_json()
            payload = self._read_json()
            payload[key] = json.loads(encoded)
            try:
                self.json_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            except OSError as exc:
                raise StoreError(f"Could not write {self.json_path}: {exc}") from exc

    def _read_json(self) -> dict[str, Any]:
        if not self.json_path.exists():
            return {}
        try:
            payload = json.loads(self.json_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise StoreError(f"Could not read {self.json_path}: {exc}") from exc
        return payload if isinstance(payload, dict) else {}
