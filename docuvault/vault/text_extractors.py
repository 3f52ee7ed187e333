from __future__ import annotations

import io
import logging
import zipfile
from dataclasses import dataclass
from typing import Optional, Tuple

from docuvault import config

from .constants import (
    EXCEL_EXTS,
    EXCEL_MIME_TYPES,
    IMAGE_EXTS,
    NOTE_EXTS,
    OCR_MARKER,
    PAGES_EXTS,
    PDF_EXTS,
    SIG_JPEG,
    SIG_OLE,
    SIG_PDF,
    SIG_PNG,
    SIG_ZIP,
    WORD_EXTS,
    WORD_MIME_TYPES,
)
from .engines import DocxEngine, ImageOcr, PdfEngine, PyMuPdfEngine, SheetEngine, WordEngine, WorkbookEngine
from .models import DocType
from .utils import file_ext

logger = logging.getLogger(__name__)

MIME_PDF = "application/pdf"
MIME_DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
MIME_XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
MIME_DOC = "application/msword"
MIME_XLS = "application/vnd.ms-excel"


@dataclass(frozen=True)
class Extraction:
    text: str
    kind: DocType
    mime_type: Optional[str] = None


def needs_ocr(text_layer: str) -> bool:
    """A PDF whose text layer is this short is treated as a scanned image."""
    return len(text_layer.strip()) < config.PDF_OCR_MIN_CHARS


def sniff_signature(data: bytes, file_name: str) -> Optional[Tuple[DocType, str]]:
    """Identify the format from the first bytes; None when not confident."""
    head = data[:4]
    ext = file_ext(file_name)
    if head == SIG_PDF:
        return "pdf", MIME_PDF
    if head[:3] == SIG_JPEG:
        return "image", "image/jpeg"
    if head == SIG_PNG:
        return "image", "image/png"
    if head == SIG_ZIP:
        return _sniff_zip(data, ext)
    if head == SIG_OLE:
        if ext == ".xls":
            return "excel", MIME_XLS
        return "word", MIME_DOC
    return None


def _sniff_zip(data: bytes, ext: str) -> Optional[Tuple[DocType, str]]:
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            names = zf.namelist()
    except zipfile.BadZipFile:
        names = []
    if any(n.startswith("word/") for n in names):
        return "word", MIME_DOCX
    if any(n.startswith("xl/") for n in names):
        return "excel", MIME_XLSX
    if ext in WORD_EXTS:
        return "word", MIME_DOCX
    if ext in EXCEL_EXTS:
        return "excel", MIME_XLSX
    return None


def kind_from_mime(mime_type: Optional[str]) -> Optional[DocType]:
    if not mime_type:
        return None
    mime = mime_type.split(";")[0].strip().lower()
    if mime == MIME_PDF:
        return "pdf"
    if mime.startswith("image/"):
        return "image"
    if mime in WORD_MIME_TYPES:
        return "word"
    if mime in EXCEL_MIME_TYPES:
        return "excel"
    if mime.startswith("text/"):
        return "note"
    return None


def kind_from_extension(file_name: str) -> DocType:
    ext = file_ext(file_name)
    if ext in PDF_EXTS:
        return "pdf"
    if ext in IMAGE_EXTS:
        return "image"
    if ext in WORD_EXTS or ext in PAGES_EXTS:
        return "word"
    if ext in EXCEL_EXTS:
        return "excel"
    if ext in NOTE_EXTS:
        return "note"
    return "other"


def detect_kind(data: bytes, file_name: str, mime_type: Optional[str] = None) -> Tuple[DocType, Optional[str]]:
    """Decide the document kind.

    A `.pdf` extension always wins. Otherwise a confident signature match
    decides, then the declared MIME type, then the extension.
    """
    if file_ext(file_name) in PDF_EXTS:
        return "pdf", MIME_PDF
    sniffed = sniff_signature(data, file_name)
    if sniffed is not None:
        return sniffed
    by_mime = kind_from_mime(mime_type)
    if by_mime is not None:
        return by_mime, mime_type
    return kind_from_extension(file_name), mime_type


class ContentExtractor:
    """Best-effort plain text for any supported document; never raises."""

    def __init__(
        self,
        ocr: ImageOcr,
        pdf: Optional[PdfEngine] = None,
        word: Optional[WordEngine] = None,
        sheets: Optional[SheetEngine] = None,
    ) -> None:
        self.ocr = ocr
        self.pdf = pdf or PyMuPdfEngine()
        self.word = word or DocxEngine()
        self.sheets = sheets or WorkbookEngine()

    def extract(self, data: bytes, file_name: str, mime_type: Optional[str] = None) -> Extraction:
        try:
            kind, detected_mime = detect_kind(data, file_name, mime_type)
        except Exception as e:
            logger.debug("Kind detection failed for %s: %s", file_name, e)
            kind, detected_mime = kind_from_extension(file_name), mime_type

        try:
            text = self._extract_kind(kind, data, file_name)
        except Exception as e:
            logger.debug("Extraction failed for %s: %s", file_name, e)
            text = ""
        return Extraction(text=text, kind=kind, mime_type=detected_mime)

    def _extract_kind(self, kind: DocType, data: bytes, file_name: str) -> str:
        if kind == "pdf":
            return self._extract_pdf(data)
        if kind == "image":
            return self._safe(self.ocr.image_to_text, data)
        if kind == "word":
            if file_ext(file_name) in PAGES_EXTS:
                return f"Apple Pages: {file_name}"
            return self._safe(self.word.extract, data) or file_name
        if kind == "excel":
            return self._safe(self.sheets.extract, data, file_name, config.EXCEL_MAX_SHEETS) or file_name
        if kind == "note":
            return data.decode("utf-8", errors="ignore")
        return file_name

    def _extract_pdf(self, data: bytes) -> str:
        try:
            pages = self.pdf.page_texts(data, config.PDF_TEXT_PAGES)
        except Exception as e:
            logger.debug("PDF text layer unreadable: %s", e)
            return ""
        text = "".join(f"{page}\n" for page in pages)

        if needs_ocr(text):
            try:
                png = self.pdf.render_page(data, 0, config.PDF_OCR_SCALE)
            except Exception as e:
                logger.debug("PDF rasterization failed: %s", e)
                return text
            ocr_text = self._safe(self.ocr.image_to_text, png)
            if ocr_text:
                text += OCR_MARKER + ocr_text
        return text

    @staticmethod
    def _safe(fn, *args) -> str:
        try:
            return fn(*args) or ""
        except Exception as e:
            logger.debug("Engine call %s failed: %s", getattr(fn, "__qualname__", fn), e)
            return ""
