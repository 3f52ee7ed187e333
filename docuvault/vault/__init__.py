"""Vault core: extraction, classification, archival, index rebuild and backups.

Everything here works on a local directory tree plus a blob store; no
network access is needed unless an analyzer is plugged into the scanner.
"""

from .backup import BackupArchiver, RestoreEngine
from .blobstore import MemoryBlobStore, SqliteBlobStore, StoredBlob
from .classifier import classify, extract_year
from .documents import DocumentService, ForcedMetadata
from .errors import (
    DocuVaultError,
    InvalidArchive,
    RelocationFailure,
    VaultBusy,
    VaultFileNotFound,
    VaultNotConnected,
    VaultPermissionDenied,
)
from .filesystem import VaultFileSystem
from .indexer import VaultIndexer
from .models import Dataset, NoteDocument
from .scanner import InboxScanner, ScanReport
from .taxonomy import Category, CustomCategory
from .text_extractors import ContentExtractor

__all__ = [
    "BackupArchiver",
    "Category",
    "ContentExtractor",
    "CustomCategory",
    "Dataset",
    "DocuVaultError",
    "DocumentService",
    "ForcedMetadata",
    "InboxScanner",
    "InvalidArchive",
    "MemoryBlobStore",
    "NoteDocument",
    "RelocationFailure",
    "RestoreEngine",
    "ScanReport",
    "SqliteBlobStore",
    "StoredBlob",
    "VaultBusy",
    "VaultFileNotFound",
    "VaultFileSystem",
    "VaultIndexer",
    "VaultNotConnected",
    "VaultPermissionDenied",
    "classify",
    "extract_year",
]
