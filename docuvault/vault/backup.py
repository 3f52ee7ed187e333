"""Portable backup archives.

A backup is a ZIP holding the dataset JSON, every attachment the dataset
references, and ``file_mapping.json`` which maps each attachment ID to its
path inside the archive. Restore reinstalls the attachments under their
original IDs so the references in the dataset stay valid.
"""

from __future__ import annotations

import concurrent.futures
import io
import json
import logging
import zipfile
from pathlib import PurePosixPath
from typing import Dict, List, Optional, Set, Tuple

from pydantic import ValidationError

from docuvault import config

from .blobstore import BlobStore, StoredBlob, guess_mime
from .errors import DocuVaultError, InvalidArchive
from .filesystem import VaultFileSystem
from .models import Dataset, NoteDocument
from .utils import file_ext, join_path, safe_name, safe_segment, unique_name

logger = logging.getLogger(__name__)


class _ArchiveWriter:
    """Adds attachments to an open ZIP and records the ID mapping.

    The first placement of an ID wins; later references to the same ID are
    ignored so every ID appears once in the mapping.
    """

    def __init__(self, zf: zipfile.ZipFile) -> None:
        self.zf = zf
        self.mapping: Dict[str, str] = {}
        self._paths: Set[str] = set()

    def is_mapped(self, blob_id: str) -> bool:
        return blob_id in self.mapping

    def place(self, blob_id: str, path: str, data: bytes) -> str:
        path = unique_name(path, self._paths)
        self.zf.writestr(path, data)
        self._paths.add(path)
        self.mapping[blob_id] = path
        return path


def _blob_ext(blob: StoredBlob, default: str = "bin") -> str:
    ext = file_ext(blob.filename or "").lstrip(".")
    if ext:
        return ext
    if blob.mime_type and "/" in blob.mime_type:
        return blob.mime_type.split("/")[1].split(";")[0] or default
    return default


class BackupArchiver:
    def __init__(self, blobs: BlobStore, vault: Optional[VaultFileSystem] = None) -> None:
        self.blobs = blobs
        self.vault = vault

    def create_archive(self, dataset: Dataset) -> bytes:
        buf = io.BytesIO()
        with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            zf.writestr(config.BACKUP_DATA_FILE, dataset.to_json())
            writer = _ArchiveWriter(zf)

            self._add_tax_receipts(writer, dataset)
            self._add_trade_screenshots(writer, dataset)
            self._add_salary_documents(writer, dataset)
            self._add_documents(writer, dataset)
            self._add_expense_receipts(writer, dataset)

            zf.writestr(config.BACKUP_MAPPING_FILE, json.dumps(writer.mapping, indent=2, ensure_ascii=False))

        logger.info("Backup created with %d attachments", len(writer.mapping))
        return buf.getvalue()

    def _blob(self, blob_id: str) -> Optional[StoredBlob]:
        try:
            blob = self.blobs.get(blob_id)
        except Exception as e:
            logger.warning("Attachment %s could not be read: %s", blob_id, e)
            return None
        if blob is None:
            logger.warning("Attachment %s not found, skipping", blob_id)
        return blob

    # -- stages, in mapping precedence order -------------------------------

    def _add_tax_receipts(self, writer: _ArchiveWriter, dataset: Dataset) -> None:
        for expense in dataset.tax.expenses:
            for receipt_id in expense.receipts:
                if writer.is_mapped(receipt_id):
                    continue
                blob = self._blob(receipt_id)
                if blob is None:
                    continue
                name = f"{safe_segment(expense.cat)}_{safe_name(blob.filename or 'Beleg')}"
                writer.place(receipt_id, join_path("Steuern", name), blob.data)

    def _add_trade_screenshots(self, writer: _ArchiveWriter, dataset: Dataset) -> None:
        for day, entry in dataset.trades.items():
            for i, shot_id in enumerate(entry.screenshots, start=1):
                if writer.is_mapped(shot_id):
                    continue
                blob = self._blob(shot_id)
                if blob is None:
                    continue
                day_part = day.replace("/", "_")
                name = f"{day_part}_img_{i}.{_blob_ext(blob, 'png')}"
                writer.place(shot_id, join_path("Trades", name), blob.data)

    def _add_salary_documents(self, writer: _ArchiveWriter, dataset: Dataset) -> None:
        for year, months in dataset.salary.items():
            for month, entry in months.items():
                blob_id = entry.pdf_filename
                if not blob_id or writer.is_mapped(blob_id):
                    continue
                blob = self._blob(blob_id)
                if blob is None:
                    continue
                name = f"{safe_name(month)}_{safe_name(blob.filename or 'Lohn')}"
                writer.place(blob_id, join_path("Salary", safe_segment(year), name), blob.data)

    def _add_documents(self, writer: _ArchiveWriter, dataset: Dataset) -> None:
        for doc in dataset.notes.values():
            folder = join_path("Documents", safe_segment(doc.year), safe_segment(doc.category))
            if not writer.is_mapped(doc.id):
                resolved = self._document_bytes(doc)
                if resolved is not None:
                    data, filename = resolved
                    writer.place(doc.id, join_path(folder, safe_name(filename)), data)
            for att_id in doc.attachments or []:
                if writer.is_mapped(att_id):
                    continue
                blob = self._blob(att_id)
                if blob is None:
                    continue
                writer.place(att_id, join_path(folder, safe_name(blob.filename or att_id)), blob.data)

    def _document_bytes(self, doc: NoteDocument) -> Optional[Tuple[bytes, str]]:
        """Bytes of a document: the blob store first, then the vault file."""
        fallback = doc.file_name or doc.title or doc.id
        try:
            blob = self.blobs.get(doc.id)
        except Exception as e:
            logger.warning("Document blob %s could not be read: %s", doc.id, e)
            blob = None
        if blob is not None:
            return blob.data, blob.filename or fallback

        if not doc.file_path:
            return None
        if self.vault is None or not self.vault.is_connected:
            logger.warning("Document %s lives in the vault but no vault is connected, skipping", doc.id)
            return None
        try:
            data = self.vault.resolve(doc.file_path)
        except (DocuVaultError, OSError) as e:
            logger.warning("Document %s unresolvable at %s: %s", doc.id, doc.file_path, e)
            return None
        return data, PurePosixPath(doc.file_path).name or fallback

    def _add_expense_receipts(self, writer: _ArchiveWriter, dataset: Dataset) -> None:
        for entries in dataset.daily_expenses.values():
            for entry in entries:
                receipt_id = entry.receipt_id
                if not receipt_id or writer.is_mapped(receipt_id):
                    continue
                blob = self._blob(receipt_id)
                if blob is None:
                    continue
                name = f"exp_{safe_segment(entry.id)}.{_blob_ext(blob)}"
                writer.place(receipt_id, join_path("DailyExpenses", name), blob.data)


class RestoreEngine:
    def __init__(self, blobs: BlobStore, max_workers: int = config.MAX_WORKERS) -> None:
        self.blobs = blobs
        self.max_workers = max_workers

    def restore_archive(self, data: bytes) -> Dataset:
        try:
            zf = zipfile.ZipFile(io.BytesIO(data))
        except zipfile.BadZipFile as e:
            raise InvalidArchive("Not a backup archive (no ZIP container)") from e

        with zf:
            try:
                raw = zf.read(config.BACKUP_DATA_FILE)
            except KeyError as e:
                raise InvalidArchive(f"Not a backup archive ({config.BACKUP_DATA_FILE} missing)") from e
            try:
                dataset = Dataset.from_json(raw)
            except ValidationError as e:
                raise InvalidArchive(f"{config.BACKUP_DATA_FILE} is not a valid dataset") from e

            mapping = self._read_mapping(zf)
            pending: List[Tuple[str, str, bytes]] = []
            for blob_id, zip_path in mapping.items():
                try:
                    pending.append((blob_id, zip_path, zf.read(zip_path)))
                except KeyError:
                    logger.warning("Archive entry %s for %s is missing, skipping", zip_path, blob_id)

        restored = 0
        with concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {executor.submit(self._reinstall, *item): item[0] for item in pending}
            for future in concurrent.futures.as_completed(futures):
                try:
                    future.result()
                    restored += 1
                except Exception as e:
                    logger.warning("Could not restore attachment %s: %s", futures[future], e)

        logger.info("Restore finished: %d of %d attachments reinstalled", restored, len(mapping))
        return dataset

    @staticmethod
    def _read_mapping(zf: zipfile.ZipFile) -> Dict[str, str]:
        try:
            raw = zf.read(config.BACKUP_MAPPING_FILE)
        except KeyError:
            return {}
        try:
            mapping = json.loads(raw)
        except ValueError as e:
            logger.warning("Ignoring unreadable %s: %s", config.BACKUP_MAPPING_FILE, e)
            return {}
        if not isinstance(mapping, dict):
            return {}
        return {str(k): v for k, v in mapping.items() if isinstance(v, str)}

    def _reinstall(self, blob_id: str, zip_path: str, data: bytes) -> None:
        filename = PurePosixPath(zip_path).name or "restored_file"
        self.blobs.put(blob_id, data, filename, guess_mime(filename))
