from __future__ import annotations

import mimetypes
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Dict, Iterable, Optional, Protocol

from .db import now_ts, open_db


@dataclass(frozen=True)
class StoredBlob:
    data: bytes
    filename: Optional[str] = None
    mime_type: Optional[str] = None


class BlobStore(Protocol):
    """ID-addressed attachment storage."""

    def put(self, blob_id: str, data: bytes, filename: Optional[str] = None, mime_type: Optional[str] = None) -> None: ...

    def get(self, blob_id: str) -> Optional[StoredBlob]: ...


def guess_mime(filename: Optional[str]) -> Optional[str]:
    if not filename:
        return None
    return mimetypes.guess_type(filename)[0]


class MemoryBlobStore:
    def __init__(self) -> None:
        self._items: Dict[str, StoredBlob] = {}
        self._lock = Lock()

    def put(self, blob_id: str, data: bytes, filename: Optional[str] = None, mime_type: Optional[str] = None) -> None:
        with self._lock:
            self._items[blob_id] = StoredBlob(bytes(data), filename, mime_type or guess_mime(filename))

    def get(self, blob_id: str) -> Optional[StoredBlob]:
        return self._items.get(blob_id)

    def delete(self, blob_id: str) -> None:
        with self._lock:
            self._items.pop(blob_id, None)

    def ids(self) -> Iterable[str]:
        return list(self._items)


class SqliteBlobStore:
    """Blob store backed by the `blobs` table of the local database."""

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        # sqlite allows one writer at a time; restore workers share this store
        self._write_lock = Lock()

    def put(self, blob_id: str, data: bytes, filename: Optional[str] = None, mime_type: Optional[str] = None) -> None:
        with self._write_lock:
            con = open_db(self.db_path)
            try:
                con.execute(
                    """
                    INSERT INTO blobs(id, filename, mime_type, size, data, updated_at)
                    VALUES(?, ?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                      filename=excluded.filename,
                      mime_type=excluded.mime_type,
                      size=excluded.size,
                      data=excluded.data,
                      updated_at=excluded.updated_at
                    """,
                    (blob_id, filename, mime_type or guess_mime(filename), len(data), bytes(data), now_ts()),
                )
                con.commit()
            finally:
                con.close()

    def get(self, blob_id: str) -> Optional[StoredBlob]:
        con = open_db(self.db_path)
        try:
            row = con.execute(
                "SELECT data, filename, mime_type FROM blobs WHERE id = ?",
                (blob_id,),
            ).fetchone()
        finally:
            con.close()
        if not row:
            return None
        return StoredBlob(bytes(row[0]), row[1], row[2])

    def delete(self, blob_id: str) -> None:
        with self._write_lock:
            con = open_db(self.db_path)
            try:
                con.execute("DELETE FROM blobs WHERE id = ?", (blob_id,))
                con.commit()
            finally:
                con.close()

    def ids(self) -> Iterable[str]:
        con = open_db(self.db_path)
        try:
            return [row[0] for row in con.execute("SELECT id FROM blobs ORDER BY id").fetchall()]
        finally:
            con.close()
