#!/usr/bin/env python3
"""
Command Line Interface for DocuVault
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from docuvault import config
from docuvault.log import setup_logging
from docuvault.vault.analyzer import OpenAIDocumentAnalyzer
from docuvault.vault.backup import BackupArchiver, RestoreEngine
from docuvault.vault.blobstore import SqliteBlobStore
from docuvault.vault.db import SettingsStore, load_dataset, save_dataset
from docuvault.vault.documents import DocumentService
from docuvault.vault.errors import DocuVaultError, VaultNotConnected
from docuvault.vault.filesystem import VaultFileSystem
from docuvault.vault.indexer import VaultIndexer
from docuvault.vault.ocr import OcrEngine
from docuvault.vault.scanner import InboxScanner
from docuvault.vault.text_extractors import ContentExtractor

logger = logging.getLogger(__name__)


def _ask_permission(root: Path) -> bool:
    answer = input(f"Allow DocuVault to read and write {root}? [y/N] ").strip().lower()
    return answer in ("y", "yes", "j", "ja")


def _open_vault(args, settings: SettingsStore) -> VaultFileSystem:
    vault = VaultFileSystem(prompt=_ask_permission)
    if getattr(args, "vault", None):
        vault.connect(args.vault)
    else:
        vault.restore_handle(settings)
    if not vault.is_connected:
        raise VaultNotConnected("No vault connected; run `docuvault connect <folder>` first")
    return vault


def _extractor() -> ContentExtractor:
    return ContentExtractor(OcrEngine())


def connect_cli(args, settings: SettingsStore, blobs: SqliteBlobStore) -> int:
    """Connect command"""
    vault = VaultFileSystem(args.path, prompt=_ask_permission)
    if not vault.request_permission():
        print(f"❌ No read/write access to {vault.root}")
        return 1
    vault.get_or_create_dir(config.INBOX_DIR)
    vault.get_or_create_dir(config.ARCHIVE_DIR)
    vault.persist_handle(settings)
    print(f"✅ Vault connected: {vault.root}")
    return 0


def scan_cli(args, settings: SettingsStore, blobs: SqliteBlobStore) -> int:
    """Scan command"""
    vault = _open_vault(args, settings)
    dataset = load_dataset(settings)
    analyzer = OpenAIDocumentAnalyzer() if args.ai else None
    if args.ai and not config.OPENAI_API_KEY:
        print("⚠️  DOCUVAULT_OPENAI_API_KEY is not set; the analyzer will fail and keyword rules are used")

    scanner = InboxScanner(vault, _extractor(), blobs, analyzer=analyzer)
    report = scanner.scan(dataset, progress=print)
    report.apply_to(dataset)
    save_dataset(settings, dataset)

    print("\n📊 SCAN RESULT")
    print("=" * 40)
    for key, value in report.counts().items():
        print(f"{key}: {value}")
    for outcome in report.skipped:
        print(f"✗ {outcome.name}: {outcome.reason}")
    return 0


def reindex_cli(args, settings: SettingsStore, blobs: SqliteBlobStore) -> int:
    """Reindex command"""
    vault = _open_vault(args, settings)
    dataset = load_dataset(settings)
    stats = VaultIndexer(vault, _extractor()).rebuild(dataset, progress=print)
    dataset.add_notes(stats.new_documents)
    save_dataset(settings, dataset)
    print(f"\n✅ Recovered {stats.added} documents ({stats.existing} already indexed, {stats.failed} failed)")
    return 0


def backup_cli(args, settings: SettingsStore, blobs: SqliteBlobStore) -> int:
    """Backup command"""
    vault: Optional[VaultFileSystem] = None
    try:
        vault = _open_vault(args, settings)
    except DocuVaultError as e:
        logger.info("Backup without vault files: %s", e)
    dataset = load_dataset(settings)
    data = BackupArchiver(blobs, vault).create_archive(dataset)
    out = Path(args.output)
    out.write_bytes(data)
    print(f"✅ Backup written: {out} ({len(data)} bytes)")
    return 0


def restore_cli(args, settings: SettingsStore, blobs: SqliteBlobStore) -> int:
    """Restore command"""
    data = Path(args.archive).read_bytes()
    dataset = RestoreEngine(blobs).restore_archive(data)
    save_dataset(settings, dataset)
    print(f"✅ Restored {len(dataset.notes)} documents, {len(dataset.tax.expenses)} tax expenses")
    return 0


def classify_cli(args, settings: SettingsStore, blobs: SqliteBlobStore) -> int:
    """Classify command"""
    from docuvault.vault.classifier import classify, extract_year

    path = Path(args.file)
    dataset = load_dataset(settings)
    extraction = _extractor().extract(path.read_bytes(), path.name)
    category = classify(extraction.text, path.name, dataset.category_rules)
    print(f"File: {path.name}")
    print(f"Kind: {extraction.kind}")
    print(f"Category: {category}")
    print(f"Year: {extract_year(extraction.text)}")
    if args.show_text:
        print("-" * 40)
        print(extraction.text[:2000])
    return 0


def import_cli(args, settings: SettingsStore, blobs: SqliteBlobStore) -> int:
    """Import command"""
    dataset = load_dataset(settings)
    service = DocumentService(_extractor(), blobs)
    if args.zip:
        docs = service.import_zip(Path(args.zip).read_bytes(), dataset.category_rules)
    else:
        docs = service.import_uploads(args.files, dataset.category_rules)
    dataset.add_notes(docs)
    save_dataset(settings, dataset)
    for doc in docs:
        print(f"✓ {doc.title} -> {doc.year}/{doc.category}")
    print(f"\n✅ Imported {len(docs)} documents")
    return 0


COMMANDS = {
    "connect": connect_cli,
    "scan": scan_cli,
    "reindex": reindex_cli,
    "backup": backup_cli,
    "restore": restore_cli,
    "classify": classify_cli,
    "import": import_cli,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="docuvault", description="DocuVault - personal document archive")
    parser.add_argument("--db", default=str(config.DB_PATH), help="Path of the local SQLite database")
    parser.add_argument("--log-level", default=None, help="Logging level (default: DOCUVAULT_LOG_LEVEL or INFO)")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    connect_parser = subparsers.add_parser("connect", help="Connect a vault folder")
    connect_parser.add_argument("path", help="Vault root folder")

    scan_parser = subparsers.add_parser("scan", help="Sort the _INBOX into the archive")
    scan_parser.add_argument("--vault", help="Vault root (default: the connected vault)")
    scan_parser.add_argument("--ai", action="store_true", help="Use the OpenAI analyzer for enrichment")

    reindex_parser = subparsers.add_parser("reindex", help="Rebuild the index from _ARCHIVE")
    reindex_parser.add_argument("--vault", help="Vault root (default: the connected vault)")

    backup_parser = subparsers.add_parser("backup", help="Write a backup ZIP")
    backup_parser.add_argument("output", help="Target .zip file")
    backup_parser.add_argument("--vault", help="Vault root (default: the connected vault)")

    restore_parser = subparsers.add_parser("restore", help="Restore a backup ZIP")
    restore_parser.add_argument("archive", help="Backup .zip file")

    classify_parser = subparsers.add_parser("classify", help="Show how a file would be classified")
    classify_parser.add_argument("file", help="File to classify")
    classify_parser.add_argument("--show-text", action="store_true", help="Print the extracted text")

    import_parser = subparsers.add_parser("import", help="Import files without a vault")
    import_group = import_parser.add_mutually_exclusive_group(required=True)
    import_group.add_argument("-f", "--files", nargs="+", help="Files to import")
    import_group.add_argument("-z", "--zip", help="ZIP archive to import")

    return parser


def main(argv=None) -> int:
    """Main CLI function"""
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level)

    handler = COMMANDS.get(args.command)
    if handler is None:
        parser.print_help()
        return 2

    settings = SettingsStore(args.db)
    blobs = SqliteBlobStore(args.db)
    try:
        return handler(args, settings, blobs)
    except DocuVaultError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
