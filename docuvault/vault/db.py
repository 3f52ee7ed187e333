from __future__ import annotations

import sqlite3
import time
from pathlib import Path


SCHEMA_SQL = """
PRAGMA journal_mode=WAL;

CREATE TABLE IF NOT EXISTS blobs (
  id TEXT PRIMARY KEY,
  filename TEXT,
  mime_type TEXT,
  size INTEGER NOT NULL,
  data BLOB NOT NULL,
  updated_at INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS settings (
  key TEXT PRIMARY KEY,
  value TEXT,
  updated_at INTEGER NOT NULL
);
"""


def open_db(db_path: str | Path) -> sqlite3.Connection:
    p = Path(db_path)
    p.parent.mkdir(parents=True, exist_ok=True)
    con = sqlite3.connect(str(p), timeout=30)
    con.executescript(SCHEMA_SQL)
    return con


def now_ts() -> int:
    return int(time.time())


class SettingsStore:
    """Small key/value table for state that must survive between sessions."""

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)

    def get(self, key: str) -> str | None:
        con = open_db(self.db_path)
        try:
            row = con.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
            return row[0] if row else None
        finally:
            con.close()

    def set(self, key: str, value: str | None) -> None:
        con = open_db(self.db_path)
        try:
            con.execute(
                """
                INSERT INTO settings(key, value, updated_at) VALUES(?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at
                """,
                (key, value, now_ts()),
            )
            con.commit()
        finally:
            con.close()

    def delete(self, key: str) -> None:
        con = open_db(self.db_path)
        try:
            con.execute("DELETE FROM settings WHERE key = ?", (key,))
            con.commit()
        finally:
            con.close()


DATASET_KEY = "app_data"


def load_dataset(settings: SettingsStore):
    from .models import Dataset

    raw = settings.get(DATASET_KEY)
    return Dataset.from_json(raw) if raw else Dataset()


def save_dataset(settings: SettingsStore, dataset) -> None:
    settings.set(DATASET_KEY, dataset.to_json())
