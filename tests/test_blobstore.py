import concurrent.futures
import unicodedata

import pytest

from docuvault.vault.blobstore import MemoryBlobStore, SqliteBlobStore
from docuvault.vault.db import SettingsStore, load_dataset, save_dataset
from docuvault.vault.models import Dataset, NoteDocument


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        return MemoryBlobStore()
    return SqliteBlobStore(tmp_path / "blobs.sqlite3")


def test_put_and_get(store):
    store.put("receipt_1", b"\x00\x01bytes", "beleg.pdf")

    blob = store.get("receipt_1")
    assert blob.data == b"\x00\x01bytes"
    assert blob.filename == "beleg.pdf"
    assert blob.mime_type == "application/pdf"


def test_missing_id_returns_none(store):
    assert store.get("nope") is None


def test_put_overwrites(store):
    store.put("x", b"old", "a.txt")
    store.put("x", b"new", "b.png", "image/png")

    blob = store.get("x")
    assert blob.data == b"new"
    assert blob.filename == "b.png"
    assert blob.mime_type == "image/png"


def test_delete_and_ids(store):
    store.put("a", b"1")
    store.put("b", b"2")
    store.delete("a")

    assert list(store.ids()) == ["b"]


def test_concurrent_puts(store):
    with concurrent.futures.ThreadPoolExecutor(max_workers=4) as executor:
        list(executor.map(lambda i: store.put(f"id_{i:02d}", bytes([i]) * 10), range(20)))

    assert sorted(store.ids()) == [f"id_{i:02d}" for i in range(20)]
    assert store.get("id_07").data == bytes([7]) * 10


def test_settings_store(tmp_path):
    settings = SettingsStore(tmp_path / "state.sqlite3")
    assert settings.get("vault_root") is None

    settings.set("vault_root", "/data/vault")
    settings.set("vault_root", "/data/other")
    assert settings.get("vault_root") == "/data/other"

    settings.delete("vault_root")
    assert settings.get("vault_root") is None


def test_dataset_persistence(tmp_path):
    settings = SettingsStore(tmp_path / "state.sqlite3")
    assert load_dataset(settings) == Dataset()

    dataset = Dataset(notes={"n1": NoteDocument(id="n1", title="Notiz", category="Sonstiges", year="2024")})
    save_dataset(settings, dataset)

    assert load_dataset(settings).notes["n1"].title == "Notiz"


def test_indexed_paths_are_normalised():
    dataset = Dataset(
        notes={
            "a": NoteDocument(
                id="a",
                title="A",
                category="Sonstiges",
                year="2024",
                file_path=unicodedata.normalize("NFD", "_ARCHIVE/2024/Sonstiges/Bühler.pdf "),
            ),
            "b": NoteDocument(id="b", title="B", category="Sonstiges", year="2024"),
        }
    )

    assert dataset.indexed_paths() == {unicodedata.normalize("NFC", "_ARCHIVE/2024/Sonstiges/Bühler.pdf")}
