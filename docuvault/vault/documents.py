from __future__ import annotations

import io
import logging
import re
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Union

from docuvault import config

from .blobstore import BlobStore, guess_mime
from .classifier import DEFAULT_RULES, UserRules, classify, extract_year
from .errors import DocuVaultError, InvalidArchive, RelocationFailure, VaultPermissionDenied
from .filesystem import VaultFileSystem, archive_path
from .models import NoteDocument, new_id
from .taxonomy import CategoryRef, builtin_category, valid_subcategory
from .text_extractors import ContentExtractor
from .utils import numbered_name, split_path

logger = logging.getLogger(__name__)

_YEAR_SEGMENT = re.compile(r"^20\d{2}$")
_ZIP_JUNK = ("__MACOSX", ".DS_Store")


@dataclass(frozen=True)
class ForcedMetadata:
    """Placement taken from where a file came from, overriding its content."""

    year: Optional[str] = None
    category: Optional[str] = None


def metadata_from_zip_path(rel_path: str) -> Optional[ForcedMetadata]:
    """Infer year and category from the folders of a ZIP member path."""
    folders = split_path(rel_path)[:-1]
    year = None
    category = None
    for part in folders:
        if _YEAR_SEGMENT.match(part):
            year = part
    for part in folders:
        builtin = builtin_category(part)
        if builtin is not None:
            category = builtin.value
        if category is None:
            lower = part.lower()
            for keyword, cat in DEFAULT_RULES.items():
                if keyword in lower:
                    category = cat.value
                    break
    if year is None and category is None:
        return None
    return ForcedMetadata(year=year, category=category)


class DocumentService:
    """Manual document operations next to the inbox scan."""

    def __init__(self, extractor: ContentExtractor, blobs: BlobStore, vault: Optional[VaultFileSystem] = None) -> None:
        self.extractor = extractor
        self.blobs = blobs
        self.vault = vault

    def process_file(
        self,
        data: bytes,
        file_name: str,
        user_rules: Optional[UserRules] = None,
        forced: Optional[ForcedMetadata] = None,
    ) -> NoteDocument:
        extraction = self.extractor.extract(data, file_name, guess_mime(file_name))
        category = (forced.category if forced else None) or str(classify(extraction.text, file_name, user_rules))
        year = (forced.year if forced else None) or extract_year(extraction.text)
        return NoteDocument(
            id=new_id("doc"),
            title=file_name,
            type=extraction.kind,
            category=category,
            year=year,
            content=extraction.text,
            file_name=file_name,
            tags=[],
            is_new=True,
        )

    def import_uploads(self, paths: Iterable[Union[str, Path]], user_rules: Optional[UserRules] = None) -> List[NoteDocument]:
        """Index loose files; the bytes go to the blob store under the document ID."""
        docs: List[NoteDocument] = []
        for p in paths:
            path = Path(p)
            try:
                data = path.read_bytes()
            except OSError as e:
                logger.warning("Cannot read %s: %s", path, e)
                continue
            doc = self.process_file(data, path.name, user_rules)
            self.blobs.put(doc.id, data, path.name, guess_mime(path.name))
            docs.append(doc)
        return docs

    def import_zip(self, data: bytes, user_rules: Optional[UserRules] = None) -> List[NoteDocument]:
        """Bulk import of a ZIP, using its folder names as placement hints."""
        try:
            zf = zipfile.ZipFile(io.BytesIO(data))
        except zipfile.BadZipFile as e:
            raise InvalidArchive("Import file is not a ZIP archive") from e

        docs: List[NoteDocument] = []
        with zf:
            for info in zf.infolist():
                rel = info.filename
                if info.is_dir() or any(junk in rel for junk in _ZIP_JUNK):
                    continue
                parts = split_path(rel)
                if not parts:
                    continue
                name = parts[-1]
                try:
                    payload = zf.read(info)
                except (zipfile.BadZipFile, OSError) as e:
                    logger.warning("Skipping unreadable ZIP member %s: %s", rel, e)
                    continue
                doc = self.process_file(payload, name, user_rules, metadata_from_zip_path(rel))
                self.blobs.put(doc.id, payload, name, guess_mime(name))
                docs.append(doc)
        logger.info("Imported %d documents from ZIP", len(docs))
        return docs

    def recategorize(
        self,
        doc: NoteDocument,
        category: Union[CategoryRef, str],
        sub_category: Optional[str] = None,
    ) -> NoteDocument:
        """Move an archived document to another category folder.

        Returns the updated document; the input is not modified. Documents
        without a vault file only get new metadata.
        """
        new_category = str(category)
        builtin = builtin_category(new_category)
        if builtin is not None:
            sub_category = valid_subcategory(builtin, sub_category)

        if doc.category == new_category and doc.sub_category == sub_category:
            return doc
        if not doc.file_path or self.vault is None or not self.vault.is_connected:
            return doc.model_copy(update={"category": new_category, "sub_category": sub_category})

        name = doc.file_name or split_path(doc.file_path)[-1]
        try:
            source = self.vault.resolve_path(doc.file_path)
            data = self.vault.read_file(source)
            if sub_category:
                self.vault.get_or_create_dir(config.ARCHIVE_DIR, doc.year, new_category, sub_category)
            else:
                self.vault.get_or_create_dir(config.ARCHIVE_DIR, doc.year, new_category)

            target_name, n = name, 0
            target = archive_path(doc.year, new_category, target_name, sub_category)
            while self.vault.exists(target):
                n += 1
                target_name = numbered_name(name, n)
                target = archive_path(doc.year, new_category, target_name, sub_category)
            self.vault.write_file(target, data)
            self.vault.delete_file(source)
        except VaultPermissionDenied:
            raise
        except (DocuVaultError, OSError) as e:
            raise RelocationFailure(f"could not move {doc.file_path}: {e}") from e

        logger.info("Moved %s -> %s", doc.file_path, target)
        return doc.model_copy(
            update={
                "category": new_category,
                "sub_category": sub_category,
                "file_name": target_name,
                "file_path": target,
            }
        )
