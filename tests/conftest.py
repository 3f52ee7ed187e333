from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

import pytest

from docuvault import config
from docuvault.vault.blobstore import MemoryBlobStore
from docuvault.vault.filesystem import VaultFileSystem
from docuvault.vault.text_extractors import ContentExtractor


class FakeOcr:
    def __init__(self, text: str = "") -> None:
        self.text = text
        self.calls: List[bytes] = []

    def image_to_text(self, image: bytes) -> str:
        self.calls.append(image)
        return self.text


class FakePdf:
    """Reads "PDFs" made by `pdf_bytes`: a %PDF header line, then pages split by form feeds."""

    def __init__(self) -> None:
        self.rendered: List[int] = []

    def page_texts(self, data: bytes, max_pages: int) -> List[str]:
        if not data.startswith(b"%PDF"):
            raise ValueError("not a pdf")
        body = data.split(b"\n", 1)[1] if b"\n" in data else b""
        return body.decode("utf-8").split("\f")[:max_pages]

    def render_page(self, data: bytes, page_index: int, scale: float) -> bytes:
        self.rendered.append(page_index)
        return b"\x89PNG rendered page"


class FakeAnalyzer:
    def __init__(self, results: Mapping[str, Any], events: Optional[list] = None) -> None:
        self.results = results
        self.events = events if events is not None else []

    def analyze(self, data: bytes, file_name: str, mime_type: Optional[str]) -> Optional[Dict[str, Any]]:
        self.events.append(("analyze", file_name))
        result = self.results.get(file_name)
        if isinstance(result, Exception):
            raise result
        return result


def make_pdf(*pages: str) -> bytes:
    return b"%PDF-1.4\n" + "\f".join(pages).encode("utf-8")


@pytest.fixture
def pdf_bytes() -> Callable[..., bytes]:
    return make_pdf


@pytest.fixture
def vault_root(tmp_path: Path) -> Path:
    root = tmp_path / "vault"
    (root / config.INBOX_DIR).mkdir(parents=True)
    (root / config.ARCHIVE_DIR).mkdir()
    return root


@pytest.fixture
def vault(vault_root: Path) -> VaultFileSystem:
    return VaultFileSystem(vault_root, prompt=lambda root: True)


@pytest.fixture
def blobs() -> MemoryBlobStore:
    return MemoryBlobStore()


@pytest.fixture
def ocr() -> FakeOcr:
    return FakeOcr()


@pytest.fixture
def fake_pdf() -> FakePdf:
    return FakePdf()


@pytest.fixture
def extractor(ocr: FakeOcr, fake_pdf: FakePdf) -> ContentExtractor:
    return ContentExtractor(ocr, pdf=fake_pdf)


@pytest.fixture
def inbox(vault_root: Path) -> Callable[[str, bytes], Path]:
    def put(name: str, data: bytes) -> Path:
        p = vault_root / config.INBOX_DIR / name
        p.write_bytes(data)
        return p

    return put


@pytest.fixture
def make_analyzer() -> Callable[..., FakeAnalyzer]:
    return FakeAnalyzer
