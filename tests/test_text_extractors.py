import io
import sys
import types

import pytest

from docuvault.vault.constants import OCR_MARKER
from docuvault.vault.engines import PyMuPdfEngine
from docuvault.vault.errors import ExtractionFailure
from docuvault.vault.text_extractors import ContentExtractor, detect_kind, needs_ocr


class BrokenEngine:
    def page_texts(self, data, max_pages):
        raise RuntimeError("corrupt xref table")

    def render_page(self, data, page_index, scale):
        raise RuntimeError("cannot render")

    def extract(self, *args):
        raise ExtractionFailure("broken")

    def image_to_text(self, image):
        raise RuntimeError("ocr crashed")


def test_ocr_threshold_is_fifty_characters():
    assert needs_ocr("x" * 49)
    assert needs_ocr("  " + "x" * 49 + "\n\n")
    assert not needs_ocr("x" * 50)


def test_short_text_layer_triggers_ocr_of_first_page(ocr, fake_pdf, pdf_bytes):
    ocr.text = "Steuerbescheid 2023"
    extractor = ContentExtractor(ocr, pdf=fake_pdf)

    result = extractor.extract(pdf_bytes("x" * 49), "scan.pdf")

    assert result.kind == "pdf"
    assert fake_pdf.rendered == [0]
    assert result.text.endswith(OCR_MARKER + "Steuerbescheid 2023")


def test_long_text_layer_skips_ocr(ocr, fake_pdf, pdf_bytes):
    extractor = ContentExtractor(ocr, pdf=fake_pdf)

    result = extractor.extract(pdf_bytes("x" * 50), "text.pdf")

    assert fake_pdf.rendered == []
    assert ocr.calls == []
    assert OCR_MARKER not in result.text


def test_only_first_three_pages_are_read(extractor, pdf_bytes):
    result = extractor.extract(pdf_bytes("eins " * 10, "zwei " * 10, "drei " * 10, "vier " * 10), "long.pdf")

    assert "drei" in result.text
    assert "vier" not in result.text


def test_empty_ocr_result_adds_no_marker(extractor, fake_pdf, pdf_bytes):
    result = extractor.extract(pdf_bytes(""), "blank.pdf")

    assert fake_pdf.rendered == [0]
    assert OCR_MARKER not in result.text


def test_pdf_extension_wins_over_signature():
    png_header = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16
    kind, mime = detect_kind(png_header, "scan.PDF", "image/png")

    assert kind == "pdf"
    assert mime == "application/pdf"


def test_signature_beats_misleading_extension():
    kind, _ = detect_kind(b"\xff\xd8\xff\xe0 jpeg data", "photo.txt")
    assert kind == "image"


def test_extractor_never_raises():
    broken = BrokenEngine()
    extractor = ContentExtractor(broken, pdf=broken, word=broken, sheets=broken)

    assert extractor.extract(b"%PDF-1.7 garbage", "a.pdf").text == ""
    assert extractor.extract(b"\xff\xd8\xff garbage", "a.jpg").text == ""
    assert extractor.extract(b"PK\x03\x04 garbage", "a.docx").text == "a.docx"
    assert extractor.extract(b"PK\x03\x04 garbage", "a.xlsx").text == "a.xlsx"


def test_image_goes_through_ocr(ocr, extractor):
    ocr.text = "Quittung Migros"
    result = extractor.extract(b"\xff\xd8\xff\xe0 jpeg", "beleg.jpg")

    assert result.kind == "image"
    assert result.text == "Quittung Migros"


def test_legacy_word_document_falls_back_to_file_name(extractor):
    result = extractor.extract(b"\xd0\xcf\x11\xe0" + b"\x00" * 32, "alt.doc")

    assert result.kind == "word"
    assert result.text == "alt.doc"


def test_ole_container_is_excel_only_for_xls():
    ole = b"\xd0\xcf\x11\xe0" + b"\x00" * 32

    assert detect_kind(ole, "kosten.xls") == ("excel", "application/vnd.ms-excel")
    assert detect_kind(ole, "vorlage.dot") == ("word", "application/msword")
    assert detect_kind(ole, "export") == ("word", "application/msword")


def test_pages_document_gets_placeholder(extractor):
    result = extractor.extract(b"PK\x03\x04 not really a zip", "Brief.pages")

    assert result.kind == "word"
    assert result.text == "Apple Pages: Brief.pages"


def test_note_is_decoded_as_utf8(extractor):
    result = extractor.extract("Notiz für später".encode("utf-8"), "todo.md")

    assert result.kind == "note"
    assert result.text == "Notiz für später"


def test_csv_is_read_as_text(extractor):
    result = extractor.extract(b"Datum,Betrag\n2024-01-31,1500\n", "konto.csv")

    assert result.kind == "excel"
    assert "2024-01-31,1500" in result.text


def test_unknown_format_uses_file_name(extractor):
    result = extractor.extract(b"\x00\x01\x02", "archive.bin")

    assert result.kind == "other"
    assert result.text == "archive.bin"


def test_docx_paragraphs_and_tables(extractor):
    docx = pytest.importorskip("docx")
    document = docx.Document()
    document.add_paragraph("Arbeitsvertrag zwischen Muster AG und Erika")
    table = document.add_table(rows=1, cols=2)
    table.rows[0].cells[0].text = "Pensum"
    table.rows[0].cells[1].text = "80%"
    buf = io.BytesIO()
    document.save(buf)

    result = extractor.extract(buf.getvalue(), "vertrag.docx")

    assert result.kind == "word"
    assert "Arbeitsvertrag zwischen Muster AG" in result.text
    assert "Pensum | 80%" in result.text


def test_xlsx_sheets_become_csv_blocks(extractor):
    openpyxl = pytest.importorskip("openpyxl")
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Januar"
    ws.append(["Miete", 1500])
    buf = io.BytesIO()
    wb.save(buf)

    result = extractor.extract(buf.getvalue(), "budget.xlsx")

    assert result.kind == "excel"
    assert "--- Sheet: Januar ---" in result.text
    assert "Miete,1500" in result.text


def test_real_pdf_text_layer(ocr):
    fitz = pytest.importorskip("fitz")
    doc = fitz.open()
    page = doc.new_page()
    page.insert_text((72, 72), "Rechnung 2024 Stromverbrauch")
    data = doc.tobytes()
    doc.close()

    result = ContentExtractor(ocr).extract(data, "strom.pdf")

    assert result.kind == "pdf"
    assert "Rechnung 2024" in result.text
    # short text layer: page 1 was rasterized and handed to OCR
    assert len(ocr.calls) == 1


@pytest.fixture
def broken_fitz(monkeypatch):
    fitz = types.ModuleType("fitz")

    def refuse(*args, **kwargs):
        raise RuntimeError("cannot open broken document")

    fitz.open = refuse
    monkeypatch.setitem(sys.modules, "fitz", fitz)
    return fitz


class PypdfPage:
    def __init__(self, text):
        self.text = text

    def extract_text(self):
        return self.text


def test_pdf_engine_uses_pypdf_when_fitz_fails(broken_fitz, monkeypatch):
    pypdf = types.ModuleType("pypdf")
    pypdf.PdfReader = lambda stream: types.SimpleNamespace(
        pages=[PypdfPage("Seite 1"), PypdfPage(None), PypdfPage("Seite 3"), PypdfPage("Seite 4")]
    )
    monkeypatch.setitem(sys.modules, "pypdf", pypdf)

    assert PyMuPdfEngine().page_texts(b"%PDF-1.4 broken", 3) == ["Seite 1", "", "Seite 3"]


def test_real_pypdf_reads_document_fitz_rejects(broken_fitz):
    pypdf = pytest.importorskip("pypdf")
    writer = pypdf.PdfWriter()
    writer.add_blank_page(width=200, height=200)
    buf = io.BytesIO()
    writer.write(buf)

    assert PyMuPdfEngine().page_texts(buf.getvalue(), 3) == [""]
