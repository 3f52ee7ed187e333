from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from docuvault import config

from .analyzer import Analysis, DocumentAnalyzer, parse_analysis
from .blobstore import BlobStore, guess_mime
from .classifier import classify, extract_year
from .constants import IGNORED_FILE_NAMES
from .errors import RelocationFailure, VaultBusy, VaultNotConnected, VaultPermissionDenied
from .filesystem import VaultEntry, VaultFileSystem, archive_path
from .models import Dataset, ExpenseEntry, NoteDocument, SalaryEntry, TaxExpense, new_id
from .taxonomy import CategoryRef
from .text_extractors import ContentExtractor, Extraction
from .utils import join_path, numbered_name, path_key

logger = logging.getLogger(__name__)

ProgressCb = Callable[[str], None]


class FileState(str, Enum):
    DISCOVERED = "discovered"
    EXTRACTED = "extracted"
    ENRICHED = "enriched"
    CLASSIFIED = "classified"
    RELOCATED = "relocated"
    INDEXED = "indexed"
    SKIPPED = "skipped"


@dataclass
class FileOutcome:
    name: str
    state: FileState
    reason: Optional[str] = None
    file_path: Optional[str] = None


@dataclass
class SalaryRecord:
    year: str
    month: str
    entry: SalaryEntry


@dataclass
class ScanReport:
    moved: int = 0
    new_documents: List[NoteDocument] = field(default_factory=list)
    new_tax_expenses: List[TaxExpense] = field(default_factory=list)
    new_daily_expenses: List[ExpenseEntry] = field(default_factory=list)
    new_salary_entries: List[SalaryRecord] = field(default_factory=list)
    outcomes: List[FileOutcome] = field(default_factory=list)

    @property
    def skipped(self) -> List[FileOutcome]:
        return [o for o in self.outcomes if o.state == FileState.SKIPPED]

    def counts(self) -> Dict[str, int]:
        return {
            "moved": self.moved,
            "newDocuments": len(self.new_documents),
            "newTaxExpenses": len(self.new_tax_expenses),
            "newDailyExpenses": len(self.new_daily_expenses),
            "newSalaryEntries": len(self.new_salary_entries),
        }

    def apply_to(self, dataset: Dataset) -> Dataset:
        """Merge the scan results into the dataset (in place) and return it."""
        rates = {
            "USD": dataset.tax.rate_usd or config.DEFAULT_RATE_USD,
            "EUR": dataset.tax.rate_eur or config.DEFAULT_RATE_EUR,
        }
        dataset.add_notes(self.new_documents)
        for exp in self.new_tax_expenses:
            exp.rate = rates.get(exp.currency, exp.rate)
            dataset.tax.expenses.append(exp)
        for entry in self.new_daily_expenses:
            entry.rate = rates.get(entry.currency, entry.rate)
            dataset.daily_expenses.setdefault(entry.date[:4], []).append(entry)
        for rec in self.new_salary_entries:
            months = dataset.salary.setdefault(rec.year, {})
            if rec.month in months:
                logger.info("Replacing salary entry %s/%s with scanned payslip", rec.year, rec.month)
            months[rec.month] = rec.entry
        return dataset


@dataclass
class _Placement:
    doc: NoteDocument
    category: str
    sub_category: Optional[str]
    analysis: Optional[Analysis]


@dataclass
class _SideRecords:
    salary: Optional[SalaryRecord] = None
    expense: Optional[ExpenseEntry] = None
    tax: Optional[TaxExpense] = None


class InboxScanner:
    """One sequential pass over `_INBOX`.

    Each file goes extract -> (enrich) -> classify -> relocate -> index; a
    failure at any stage skips that file and the batch continues. Only a
    missing vault permission aborts the pass.
    """

    def __init__(
        self,
        vault: VaultFileSystem,
        extractor: ContentExtractor,
        blobs: BlobStore,
        analyzer: Optional[DocumentAnalyzer] = None,
        delay_seconds: float = config.ANALYZER_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        max_file_size_mb: int = config.MAX_FILE_SIZE_MB,
    ) -> None:
        self.vault = vault
        self.extractor = extractor
        self.blobs = blobs
        self.analyzer = analyzer
        self.delay_seconds = delay_seconds
        self.sleep = sleep
        self.max_file_size = max_file_size_mb * 1024 * 1024

    def scan(self, dataset: Optional[Dataset] = None, progress: Optional[ProgressCb] = None) -> ScanReport:
        if not self.vault.is_connected:
            raise VaultNotConnected("Vault not connected")
        self.vault.ensure_writable()

        user_rules = dataset.category_rules if dataset else {}
        known = dataset.indexed_paths() if dataset else set()
        report = ScanReport()

        with self.vault.lock():
            self.vault.get_or_create_dir(config.INBOX_DIR)
            self.vault.get_or_create_dir(config.ARCHIVE_DIR)

            entries = [e for e in self.vault.list_entries(config.INBOX_DIR) if self._wanted(e)]
            if progress:
                progress(f"Found {len(entries)} files in {config.INBOX_DIR}")

            for i, entry in enumerate(entries, start=1):
                if progress:
                    progress(f"[{i}/{len(entries)}] {entry.name}")
                if entry.size > self.max_file_size:
                    logger.info("Skipping %s: larger than %d bytes", entry.name, self.max_file_size)
                    report.outcomes.append(FileOutcome(entry.name, FileState.SKIPPED, "too large"))
                    continue
                report.outcomes.append(self._process(entry.name, user_rules, known, report))

        if progress:
            progress(f"Done. Moved: {report.moved}, skipped: {len(report.skipped)}")
        return report

    @staticmethod
    def _wanted(entry: VaultEntry) -> bool:
        if not entry.is_file:
            return False
        return entry.name not in IGNORED_FILE_NAMES and not entry.name.startswith(".")

    def _process(self, name: str, user_rules, known: set, report: ScanReport) -> FileOutcome:
        state = FileState.DISCOVERED
        src = join_path(config.INBOX_DIR, name)
        try:
            data = self.vault.read_file(src)
            extraction = self.extractor.extract(data, name, guess_mime(name))
            state = FileState.EXTRACTED

            analysis = None
            if self.analyzer is not None:
                analysis = self._enrich(data, name, extraction.mime_type, user_rules)
                if analysis is not None:
                    state = FileState.ENRICHED

            placement = self._classify(name, extraction, analysis, user_rules)
            state = FileState.CLASSIFIED

            target, written = self._relocate(src, name, data, placement)
            state = FileState.RELOCATED
            if written:
                report.moved += 1

            if path_key(target) in known:
                return FileOutcome(name, FileState.SKIPPED, "already indexed", target)
            placement.doc.file_path = target
            lost = self._index(placement, name, data, report)
            known.add(path_key(target))
            return FileOutcome(name, FileState.INDEXED, lost, target)
        except (VaultPermissionDenied, VaultBusy):
            raise
        except Exception as e:
            logger.warning("Skipping %s after %s: %s", name, state.value, e)
            return FileOutcome(name, FileState.SKIPPED, f"{state.value}: {e}")

    def _enrich(self, data: bytes, name: str, mime_type: Optional[str], user_rules) -> Optional[Analysis]:
        # cooperative rate limit for the external analyzer
        self.sleep(self.delay_seconds)
        try:
            payload = self.analyzer.analyze(data, name, mime_type)
        except Exception as e:
            logger.warning("Analyzer failed for %s, using keyword rules: %s", name, e)
            return None
        return parse_analysis(payload, user_rules)

    def _classify(self, name: str, extraction: Extraction, analysis: Optional[Analysis], user_rules) -> _Placement:
        if analysis is not None:
            category: CategoryRef = analysis.category
            year = analysis.year
            sub = analysis.sub_category
            content = extraction.text
            if analysis.summary:
                content = f"{analysis.summary}\n\n{content}" if content else analysis.summary
            doc = NoteDocument(
                id=new_id("doc"),
                title=analysis.title or name,
                type=extraction.kind,
                category=str(category),
                sub_category=sub,
                year=year,
                content=content,
                file_name=name,
                tags=["AI-Scanned"],
                is_new=True,
                tax_relevant=analysis.tax_relevant or None,
            )
        else:
            category = classify(extraction.text, name, user_rules)
            sub = None
            doc = NoteDocument(
                id=new_id("doc"),
                title=name,
                type=extraction.kind,
                category=str(category),
                year=extract_year(extraction.text),
                content=extraction.text,
                file_name=name,
                is_new=True,
            )
        return _Placement(doc=doc, category=str(category), sub_category=sub, analysis=analysis)

    def _relocate(self, src: str, name: str, data: bytes, placement: _Placement) -> Tuple[str, bool]:
        """Move the inbox file into the archive; returns (target, whether a copy was written)."""
        doc = placement.doc
        written = False
        try:
            if placement.sub_category:
                self.vault.get_or_create_dir(config.ARCHIVE_DIR, doc.year, placement.category, placement.sub_category)
            else:
                self.vault.get_or_create_dir(config.ARCHIVE_DIR, doc.year, placement.category)

            n = 0
            target_name = name
            while True:
                target = archive_path(doc.year, placement.category, target_name, placement.sub_category)
                if not self.vault.exists(target):
                    self.vault.move_file(src, target)
                    written = True
                    break
                if self.vault.read_file(target) == data:
                    # copy from an interrupted earlier move; finish it
                    self.vault.delete_file(src)
                    break
                n += 1
                target_name = numbered_name(name, n)
        except VaultPermissionDenied:
            raise
        except Exception as e:
            raise RelocationFailure(f"could not archive {name}: {e}") from e
        doc.file_name = target_name
        return target, written

    def _index(self, placement: _Placement, name: str, data: bytes, report: ScanReport) -> Optional[str]:
        """Record the archived document and its side records.

        The file has already left the inbox, so the document is always
        recorded. When the attachment for its side records cannot be stored
        the records are dropped and the reason is returned.
        """
        doc = placement.doc
        lost = None
        records = _SideRecords()
        if placement.analysis is not None and placement.analysis.facts:
            try:
                records = self._side_records(placement, name, data)
            except Exception as e:
                logger.error("Side records for %s not saved: %s", name, e)
                lost = f"side records not saved: {e}"
                doc.tax_relevant = None

        if records.salary is not None:
            report.new_salary_entries.append(records.salary)
        if records.expense is not None:
            doc.is_expense = True
            doc.expense_id = records.expense.id
            report.new_daily_expenses.append(records.expense)
        if records.tax is not None:
            doc.tax_relevant = True
            report.new_tax_expenses.append(records.tax)
        report.new_documents.append(doc)
        return lost

    def _side_records(self, placement: _Placement, name: str, data: bytes) -> _SideRecords:
        doc = placement.doc
        analysis = placement.analysis
        mime = guess_mime(name)

        salary = analysis.salary
        if salary is not None:
            blob_id = new_id("salary")
            self.blobs.put(blob_id, data, name, mime)
            return _SideRecords(
                salary=SalaryRecord(
                    year=salary.year,
                    month=salary.month,
                    entry=SalaryEntry(
                        brutto=salary.gross_income,
                        abzuege=salary.deductions,
                        netto=salary.net_income,
                        auszahlung=salary.net_income,
                        kommentar=salary.employer or doc.title,
                        pdf_filename=blob_id,
                    ),
                )
            )

        receipt_id = new_id("receipt")
        self.blobs.put(receipt_id, data, name, mime)
        records = _SideRecords()

        expense = analysis.expense
        if expense is not None:
            records.expense = ExpenseEntry(
                id=new_id("exp"),
                date=expense.date,
                merchant=expense.merchant,
                description=doc.title,
                amount=expense.amount,
                currency=expense.currency,
                category=expense.category,
                location=expense.location,
                receipt_id=receipt_id,
                is_tax_relevant=analysis.tax_relevant,
            )

        tax = analysis.tax
        if tax is not None:
            records.tax = TaxExpense(
                id=new_id("tax"),
                note_ref=doc.id,
                desc=doc.title,
                amount=tax.amount,
                currency=tax.currency,
                cat=tax.tax_category,
                year=doc.year,
                receipts=[receipt_id],
            )
        return records
