"""Format engines consumed by the content extractor.

Each engine is a small capability; the defaults wrap PyMuPDF (with pypdf as
text-only fallback), python-docx and openpyxl. Engines may raise freely; the
extractor isolates every call.
"""

from __future__ import annotations

import csv
import io
import logging
from typing import List, Protocol

from docuvault import config

from .errors import ExtractionFailure
from .utils import file_ext

logger = logging.getLogger(__name__)


class PdfEngine(Protocol):
    def page_texts(self, data: bytes, max_pages: int) -> List[str]: ...

    def render_page(self, data: bytes, page_index: int, scale: float) -> bytes: ...


class ImageOcr(Protocol):
    def image_to_text(self, image: bytes) -> str: ...


class WordEngine(Protocol):
    def extract(self, data: bytes) -> str: ...


class SheetEngine(Protocol):
    def extract(self, data: bytes, file_name: str, max_sheets: int) -> str: ...


class PyMuPdfEngine:
    def page_texts(self, data: bytes, max_pages: int) -> List[str]:
        try:
            import fitz  # PyMuPDF

            doc = fitz.open(stream=data, filetype="pdf")
            try:
                count = min(max_pages, doc.page_count)
                return [doc.load_page(i).get_text("text") for i in range(count)]
            finally:
                doc.close()
        except Exception as e:
            logger.debug("PyMuPDF could not read the PDF, trying pypdf: %s", e)

        return self._pypdf_page_texts(data, max_pages)

    def _pypdf_page_texts(self, data: bytes, max_pages: int) -> List[str]:
        try:
            from pypdf import PdfReader  # type: ignore
        except ImportError as e:
            raise ExtractionFailure("Neither PyMuPDF nor pypdf is installed") from e

        reader = PdfReader(io.BytesIO(data))
        parts = []
        for page in reader.pages[:max_pages]:
            parts.append(page.extract_text() or "")
        return parts

    def render_page(self, data: bytes, page_index: int, scale: float) -> bytes:
        try:
            import fitz  # PyMuPDF
        except ImportError as e:
            raise ExtractionFailure("PyMuPDF is required to rasterize PDF pages") from e

        doc = fitz.open(stream=data, filetype="pdf")
        try:
            page = doc.load_page(page_index)
            pix = page.get_pixmap(matrix=fitz.Matrix(scale, scale))
            return pix.tobytes("png")
        finally:
            doc.close()


class DocxEngine:
    def extract(self, data: bytes) -> str:
        if data[:4] != b"PK\x03\x04":
            # Legacy binary .doc has no parser in python-docx
            raise ExtractionFailure("Not an OOXML word document")
        import docx  # python-docx

        document = docx.Document(io.BytesIO(data))
        parts = [p.text for p in document.paragraphs if p.text]
        for table in document.tables:
            for row in table.rows:
                cells = [c.text.strip() for c in row.cells if c.text and c.text.strip()]
                if cells:
                    parts.append(" | ".join(cells))
        return "\n".join(parts).strip()


class WorkbookEngine:
    def extract(self, data: bytes, file_name: str, max_sheets: int = config.EXCEL_MAX_SHEETS) -> str:
        if file_ext(file_name) == ".csv":
            return data.decode("utf-8", errors="ignore")
        if data[:4] != b"PK\x03\x04":
            raise ExtractionFailure("Not an OOXML workbook")

        from openpyxl import load_workbook

        wb = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
        try:
            text = []
            for sheet_name in wb.sheetnames[:max_sheets]:
                ws = wb[sheet_name]
                buf = io.StringIO()
                writer = csv.writer(buf, lineterminator="\n")
                for row in ws.iter_rows(values_only=True):
                    writer.writerow(["" if cell is None else cell for cell in row])
                text.append(f"--- Sheet: {sheet_name} ---\n{buf.getvalue()}")
            return "\n".join(text)
        finally:
            wb.close()
