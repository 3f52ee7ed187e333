import io
import zipfile
from datetime import date

import pytest

from docuvault.vault.documents import DocumentService, ForcedMetadata, metadata_from_zip_path
from docuvault.vault.errors import InvalidArchive, RelocationFailure
from docuvault.vault.models import NoteDocument
from docuvault.vault.taxonomy import Category


@pytest.fixture
def service(extractor, blobs, vault):
    return DocumentService(extractor, blobs, vault)


def make_zip(entries):
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for name, data in entries.items():
            zf.writestr(name, data)
    return buf.getvalue()


def test_process_file_classifies_content(service, pdf_bytes):
    doc = service.process_file(pdf_bytes("Rechnung vom 03.02.2022"), "scan.pdf")

    assert doc.category == Category.FINANCE.value
    assert doc.year == "2022"
    assert doc.type == "pdf"
    assert doc.file_path is None
    assert doc.is_new


def test_forced_metadata_overrides_content(service, pdf_bytes):
    doc = service.process_file(
        pdf_bytes("Rechnung vom 03.02.2022"), "scan.pdf", forced=ForcedMetadata(year="2020", category="Versicherungen")
    )

    assert doc.category == "Versicherungen"
    assert doc.year == "2020"


def test_import_uploads_stores_bytes_under_document_id(service, blobs, tmp_path):
    path = tmp_path / "notiz.txt"
    path.write_bytes("Brief an die Bank".encode())

    [doc] = service.import_uploads([path, tmp_path / "missing.txt"])

    assert doc.title == "notiz.txt"
    assert blobs.get(doc.id).data == b"Brief an die Bank"
    assert blobs.get(doc.id).filename == "notiz.txt"


def test_zip_path_hints():
    assert metadata_from_zip_path("2023/Versicherungen/police.pdf") == ForcedMetadata("2023", "Versicherungen")
    assert metadata_from_zip_path("misc/steuer_belege/a.txt") == ForcedMetadata(None, Category.TAXES.value)
    assert metadata_from_zip_path("archiv/2021/a.txt") == ForcedMetadata("2021", None)
    assert metadata_from_zip_path("a.txt") is None


def test_import_zip_skips_mac_metadata(service, blobs, pdf_bytes):
    data = make_zip(
        {
            "export/2023/Versicherungen/police.pdf": pdf_bytes("Grunddeckung"),
            "__MACOSX/export/._police.pdf": b"resource fork",
            "export/.DS_Store": b"finder",
            "export/2023/": b"",
        }
    )

    [doc] = service.import_zip(data)

    assert doc.title == "police.pdf"
    assert doc.year == "2023"
    assert doc.category == "Versicherungen"
    assert blobs.get(doc.id).data == pdf_bytes("Grunddeckung")


def test_import_zip_rejects_non_zip(service):
    with pytest.raises(InvalidArchive):
        service.import_zip(b"plain bytes")


@pytest.fixture
def archived(vault_root):
    folder = vault_root / "_ARCHIVE" / "2024" / "Sonstiges"
    folder.mkdir(parents=True)
    (folder / "brief.pdf").write_bytes(b"letter")
    return NoteDocument(
        id="doc_1",
        title="brief.pdf",
        category="Sonstiges",
        year="2024",
        file_name="brief.pdf",
        file_path="_ARCHIVE/2024/Sonstiges/brief.pdf",
    )


def test_recategorize_moves_file(service, archived, vault_root):
    moved = service.recategorize(archived, Category.CORRESPONDENCE, "Wichtige Post")

    assert moved.category == Category.CORRESPONDENCE.value
    assert moved.sub_category == "Wichtige Post"
    assert moved.file_path == "_ARCHIVE/2024/Kommunikation & Korrespondenz/Wichtige Post/brief.pdf"
    assert (vault_root / moved.file_path).read_bytes() == b"letter"
    assert not (vault_root / "_ARCHIVE" / "2024" / "Sonstiges" / "brief.pdf").exists()
    # the input document is not modified
    assert archived.category == "Sonstiges"


def test_recategorize_unchanged_is_a_no_op(service, archived):
    assert service.recategorize(archived, "Sonstiges") is archived


def test_recategorize_drops_foreign_subcategory(service, archived):
    moved = service.recategorize(archived, Category.INSURANCE, "Lohnabrechnungen")

    assert moved.sub_category is None
    assert moved.file_path == "_ARCHIVE/2024/Versicherungen/brief.pdf"


def test_recategorize_avoids_overwriting(service, archived, vault_root):
    target = vault_root / "_ARCHIVE" / "2024" / "Versicherungen"
    target.mkdir(parents=True)
    (target / "brief.pdf").write_bytes(b"someone else")

    moved = service.recategorize(archived, Category.INSURANCE)

    assert moved.file_name == "brief (1).pdf"
    assert (target / "brief.pdf").read_bytes() == b"someone else"


def test_recategorize_without_file_changes_metadata_only(service):
    doc = NoteDocument(id="n1", title="Notiz", category="Sonstiges", year=str(date.today().year))

    updated = service.recategorize(doc, "Technik & IT", "Lizenzen")

    assert updated.category == "Technik & IT"
    assert updated.sub_category == "Lizenzen"
    assert updated.file_path is None


def test_recategorize_missing_file_fails(service, archived, vault_root):
    (vault_root / "_ARCHIVE" / "2024" / "Sonstiges" / "brief.pdf").unlink()

    with pytest.raises(RelocationFailure):
        service.recategorize(archived, Category.INSURANCE)
