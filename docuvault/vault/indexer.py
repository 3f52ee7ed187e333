from __future__ import annotations

import concurrent.futures
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterator, List, Optional, Tuple

from docuvault import config

from .constants import IGNORED_FILE_NAMES
from .errors import VaultNotConnected
from .filesystem import VaultFileSystem
from .models import Dataset, NoteDocument
from .text_extractors import ContentExtractor
from .utils import join_path, path_key

logger = logging.getLogger(__name__)

ProgressCb = Callable[[str], None]

_NON_WORD = re.compile(r"\W")

# (year, category, sub_category) accumulated while descending
PathMeta = Tuple[str, ...]


@dataclass
class IndexStats:
    scanned: int = 0
    added: int = 0
    existing: int = 0
    failed: int = 0
    new_documents: List[NoteDocument] = field(default_factory=list)


@dataclass
class _Candidate:
    path: str
    name: str
    year: str
    category: str
    sub_category: Optional[str] = None


def record_id(year: str, category: str, file_name: str, sub_category: Optional[str] = None) -> str:
    part = f"{category}_{sub_category}" if sub_category else category
    return f"rec_{year}_{part}_{_NON_WORD.sub('', file_name)}"


def _visible(name: str) -> bool:
    return name not in IGNORED_FILE_NAMES and not name.startswith(".")


class VaultIndexer:
    """Rebuild the document index from the `_ARCHIVE` directory tree.

    The tree position is authoritative: depth 1 is the year, depth 2 the
    category and depth 3 an optional sub category. Content only fills in the
    text. Files already indexed (same `filePath`) are left alone.
    """

    def __init__(self, vault: VaultFileSystem, extractor: ContentExtractor, max_workers: int = config.MAX_WORKERS) -> None:
        self.vault = vault
        self.extractor = extractor
        self.max_workers = max_workers

    def rebuild(self, dataset: Optional[Dataset] = None, progress: Optional[ProgressCb] = None) -> IndexStats:
        if not self.vault.is_connected:
            raise VaultNotConnected("Vault not connected")

        stats = IndexStats()
        known = dataset.indexed_paths() if dataset else set()
        taken_ids = set(dataset.notes) if dataset else set()

        if progress:
            progress(f"Walking {config.ARCHIVE_DIR}...")
        pending: List[_Candidate] = []
        for cand in self._descend(config.ARCHIVE_DIR, ()):
            stats.scanned += 1
            key = path_key(cand.path)
            if key in known:
                stats.existing += 1
                continue
            known.add(key)
            pending.append(cand)

        if pending:
            if progress:
                progress(f"Extracting text from {len(pending)} files (parallel)...")
            with concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                futures = {executor.submit(self._build, cand): cand for cand in pending}
                for future in concurrent.futures.as_completed(futures):
                    cand = futures[future]
                    try:
                        doc = future.result()
                    except Exception as e:
                        logger.warning("Could not index %s: %s", cand.path, e)
                        stats.failed += 1
                        continue
                    stats.new_documents.append(doc)

        # ids are assigned after the barrier so the result does not depend on completion order
        stats.new_documents.sort(key=lambda d: d.file_path or "")
        for doc in stats.new_documents:
            base, n = doc.id, 1
            while doc.id in taken_ids:
                doc.id = f"{base}_{n}"
                n += 1
            taken_ids.add(doc.id)
        stats.added = len(stats.new_documents)

        if progress:
            progress(f"Done. Added: {stats.added}, already indexed: {stats.existing}, failed: {stats.failed}")
        return stats

    def _descend(self, rel_dir: str, meta: PathMeta) -> Iterator[_Candidate]:
        for entry in self.vault.list_entries(rel_dir):
            if not _visible(entry.name):
                continue
            child = join_path(rel_dir, entry.name)
            if entry.is_dir and len(meta) < 3:
                yield from self._descend(child, meta + (entry.name,))
            elif entry.is_file and len(meta) >= 2:
                year, category = meta[0], meta[1]
                sub = meta[2] if len(meta) > 2 else None
                yield _Candidate(path=child, name=entry.name, year=year, category=category, sub_category=sub)

    def _build(self, cand: _Candidate) -> NoteDocument:
        data = self.vault.read_file(cand.path)
        extraction = self.extractor.extract(data, cand.name)
        content = extraction.text
        if len(content.strip()) < config.MIN_CONTENT_CHARS:
            content = f"File: {cand.name}"
        created = datetime.fromtimestamp(self.vault.stat_mtime(cand.path)).isoformat(timespec="seconds")
        return NoteDocument(
            id=record_id(cand.year, cand.category, cand.name, cand.sub_category),
            title=cand.name,
            type=extraction.kind,
            category=cand.category,
            sub_category=cand.sub_category,
            year=cand.year,
            created=created,
            content=content,
            file_name=cand.name,
            file_path=cand.path,
            tags=[],
            is_new=False,
        )
