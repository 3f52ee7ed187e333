import pytest

from docuvault import cli
from docuvault.vault.blobstore import SqliteBlobStore
from docuvault.vault.db import SettingsStore, load_dataset


@pytest.fixture
def db(tmp_path, extractor, monkeypatch):
    monkeypatch.setattr(cli, "_extractor", lambda: extractor)
    return str(tmp_path / "state.sqlite3")


def test_connect_scan_backup_restore(db, vault_root, tmp_path, inbox):
    assert cli.main(["--db", db, "connect", str(vault_root)]) == 0
    inbox("brief_gemeinde.txt", "Schreiben der Gemeinde vom 01.02.2024".encode())

    assert cli.main(["--db", db, "scan"]) == 0

    dataset = load_dataset(SettingsStore(db))
    [doc] = dataset.notes.values()
    assert doc.file_path == "_ARCHIVE/2024/Kommunikation & Korrespondenz/brief_gemeinde.txt"

    backup = tmp_path / "backup.zip"
    assert cli.main(["--db", db, "backup", str(backup)]) == 0
    assert backup.exists()

    other_db = str(tmp_path / "other.sqlite3")
    assert cli.main(["--db", other_db, "restore", str(backup)]) == 0
    restored = load_dataset(SettingsStore(other_db))
    assert list(restored.notes) == [doc.id]
    assert SqliteBlobStore(other_db).get(doc.id).data == "Schreiben der Gemeinde vom 01.02.2024".encode()


def test_scan_without_vault_fails(db, capsys):
    assert cli.main(["--db", db, "scan"]) == 1
    assert "No vault connected" in capsys.readouterr().err


def test_import_files(db, tmp_path):
    f = tmp_path / "police.txt"
    f.write_text("Versicherung Police 2022", encoding="utf-8")

    assert cli.main(["--db", db, "import", "-f", str(f)]) == 0

    [doc] = load_dataset(SettingsStore(db)).notes.values()
    assert doc.category == "Versicherungen"
    assert doc.year == "2022"
    assert SqliteBlobStore(db).get(doc.id).data == b"Versicherung Police 2022"


def test_classify_prints_category(db, tmp_path, capsys):
    f = tmp_path / "lohn.txt"
    f.write_text("Gehalt und Lohn März 2023", encoding="utf-8")

    assert cli.main(["--db", db, "classify", str(f)]) == 0

    out = capsys.readouterr().out
    assert "Category: Beruf & Beschäftigung" in out
    assert "Year: 2023" in out


def test_restore_invalid_archive(db, tmp_path, capsys):
    bad = tmp_path / "bad.zip"
    bad.write_bytes(b"nope")

    assert cli.main(["--db", db, "restore", str(bad)]) == 1
    assert "Not a backup archive" in capsys.readouterr().err
