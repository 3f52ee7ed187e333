"""Permissioned access to the vault directory tree.

Layout::

    <root>/_INBOX/*                                         unsorted drop zone
    <root>/_ARCHIVE/<Year>/<Category>/[<SubCategory>/]<file>

All paths handed to and returned from this module are vault-relative and use
``/`` as separator.
"""

from __future__ import annotations

import fcntl
import logging
import os
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Iterator, Optional

from docuvault import config

from .db import SettingsStore
from .errors import VaultBusy, VaultFileNotFound, VaultNotConnected, VaultPermissionDenied
from .utils import join_path, name_key, split_path

logger = logging.getLogger(__name__)

PermissionPrompt = Callable[[Path], bool]

VAULT_ROOT_KEY = "vault_root"


class PermissionState(str, Enum):
    UNCHECKED = "unchecked"
    GRANTED = "granted"
    DENIED = "denied"


@dataclass(frozen=True)
class VaultEntry:
    name: str
    kind: str  # "file" or "directory"
    size: int = 0

    @property
    def is_file(self) -> bool:
        return self.kind == "file"

    @property
    def is_dir(self) -> bool:
        return self.kind == "directory"


def archive_path(year: str, category: str, file_name: str, sub_category: Optional[str] = None) -> str:
    if sub_category:
        return join_path(config.ARCHIVE_DIR, year, category, sub_category, file_name)
    return join_path(config.ARCHIVE_DIR, year, category, file_name)


class VaultFileSystem:
    """A vault rooted at a local directory.

    The root is an explicit field with a connect/init/disconnect lifecycle.
    Write access goes through a small permission state machine: a probe
    (`verify_permission`) that never prompts, and `request_permission`, which
    asks the injected `prompt` callback when the probe fails.
    """

    def __init__(self, root: str | Path | None = None, prompt: Optional[PermissionPrompt] = None) -> None:
        self.root: Optional[Path] = None
        self.permission = PermissionState.UNCHECKED
        self._prompt = prompt
        if root is not None:
            self.connect(root)

    # -- lifecycle --------------------------------------------------------

    @staticmethod
    def is_supported() -> bool:
        return hasattr(os, "scandir") and hasattr(os, "replace")

    @property
    def is_connected(self) -> bool:
        return self.root is not None

    def connect(self, root: str | Path) -> Path:
        p = Path(root).expanduser()
        if not p.is_dir():
            raise VaultFileNotFound(str(p))
        self.root = p.resolve()
        self.permission = PermissionState.UNCHECKED
        logger.info("Vault connected: %s", self.root)
        return self.root

    def disconnect(self) -> None:
        self.root = None
        self.permission = PermissionState.UNCHECKED

    def persist_handle(self, settings: SettingsStore) -> None:
        settings.set(VAULT_ROOT_KEY, str(self._require_root()))

    def restore_handle(self, settings: SettingsStore) -> bool:
        """Reconnect to the persisted root; True when it is usable for writing."""
        raw = settings.get(VAULT_ROOT_KEY)
        if not raw:
            return False
        try:
            self.connect(raw)
        except VaultFileNotFound:
            logger.warning("Persisted vault root no longer exists: %s", raw)
            return False
        return self.verify_permission()

    init = restore_handle

    # -- permissions ------------------------------------------------------

    def verify_permission(self) -> bool:
        if self.root is None:
            return False
        ok = os.access(self.root, os.R_OK | os.W_OK | os.X_OK)
        return ok and self.permission != PermissionState.DENIED

    def request_permission(self) -> bool:
        root = self._require_root()
        if self.verify_permission():
            self.permission = PermissionState.GRANTED
            return True
        granted = False
        if self._prompt is not None:
            try:
                granted = bool(self._prompt(root)) and os.access(root, os.R_OK | os.W_OK | os.X_OK)
            except Exception as e:
                logger.warning("Permission prompt failed: %s", e)
        self.permission = PermissionState.GRANTED if granted else PermissionState.DENIED
        return granted

    def ensure_writable(self) -> None:
        if self.permission == PermissionState.GRANTED and self.verify_permission():
            return
        if not self.request_permission():
            raise VaultPermissionDenied(f"No read/write access to vault {self.root}")

    # -- paths ------------------------------------------------------------

    def _require_root(self) -> Path:
        if self.root is None:
            raise VaultNotConnected("Vault not connected")
        return self.root

    def _abs(self, rel: str) -> Path:
        root = self._require_root()
        parts = split_path(rel)
        if any(p == ".." for p in parts):
            raise VaultFileNotFound(rel)
        return root.joinpath(*parts)

    # -- directory operations --------------------------------------------

    def get_or_create_dir(self, *segments: str) -> str:
        self.ensure_writable()
        rel = join_path(*segments)
        try:
            self._abs(rel).mkdir(parents=True, exist_ok=True)
        except PermissionError as e:
            raise VaultPermissionDenied(str(e)) from e
        return rel

    def list_entries(self, rel_dir: str = "") -> Iterator[VaultEntry]:
        path = self._abs(rel_dir)
        if not path.is_dir():
            return
        with os.scandir(path) as it:
            for entry in it:
                try:
                    if entry.is_dir(follow_symlinks=False):
                        yield VaultEntry(entry.name, "directory")
                    elif entry.is_file():
                        yield VaultEntry(entry.name, "file", entry.stat().st_size)
                except OSError:
                    continue

    def exists(self, rel: str) -> bool:
        return self._abs(rel).exists()

    def stat_mtime(self, rel: str) -> float:
        return self._abs(rel).stat().st_mtime

    # -- file operations --------------------------------------------------

    def read_file(self, rel: str) -> bytes:
        path = self._abs(rel)
        try:
            return path.read_bytes()
        except FileNotFoundError as e:
            raise VaultFileNotFound(rel) from e
        except PermissionError as e:
            raise VaultPermissionDenied(str(e)) from e

    def write_file(self, rel: str, data: bytes) -> None:
        """Write through a temp file in the target directory, then swap it in."""
        self.ensure_writable()
        target = self._abs(rel)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(prefix=".tmp-", dir=str(target.parent))
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
                os.replace(tmp, target)
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise
        except PermissionError as e:
            raise VaultPermissionDenied(str(e)) from e

    def delete_file(self, rel: str) -> None:
        self.ensure_writable()
        try:
            self._abs(rel).unlink()
        except FileNotFoundError as e:
            raise VaultFileNotFound(rel) from e
        except PermissionError as e:
            raise VaultPermissionDenied(str(e)) from e

    def move_file(self, src: str, dst: str) -> None:
        """Move a file in two phases: write the new copy, then delete the old one.

        If the process dies between the phases both copies exist; a later
        scan or reindex sees the archived copy and the inbox copy separately.
        """
        data = self.read_file(src)
        self.write_file(dst, data)
        self.delete_file(src)

    # -- fuzzy lookup -----------------------------------------------------

    def resolve_path(self, rel: str) -> str:
        """Return the on-disk vault path for `rel`.

        Each segment is tried by exact name first, then by comparing
        NFC-normalised, stripped names against the directory listing. This
        finds files whose names differ only by Unicode composition or by
        stray whitespace added by other tools.
        """
        root = self._require_root()
        current = root
        resolved: list[str] = []
        parts = split_path(rel)
        if not parts:
            raise VaultFileNotFound(rel)
        for part in parts:
            exact = current / part
            if exact.exists():
                current = exact
                resolved.append(part)
                continue
            match = self._fuzzy_child(current, part)
            if match is None:
                raise VaultFileNotFound(rel)
            current = current / match
            resolved.append(match)
        if not current.is_file():
            raise VaultFileNotFound(rel)
        return "/".join(resolved)

    def resolve(self, rel: str) -> bytes:
        return self.read_file(self.resolve_path(rel))

    @staticmethod
    def _fuzzy_child(directory: Path, name: str) -> Optional[str]:
        if not directory.is_dir():
            return None
        wanted = name_key(name)
        with os.scandir(directory) as it:
            for entry in it:
                if name_key(entry.name) == wanted:
                    return entry.name
        return None

    # -- advisory lock ----------------------------------------------------

    @contextmanager
    def lock(self) -> Iterator[None]:
        """Hold the vault's advisory lock for the duration of the block.

        The lock file itself stays in place; the kernel lock on it is what
        excludes other holders, and it goes away with the holding process.
        """
        lock_path = self._require_root() / config.LOCK_FILE
        try:
            fd = lock_path.open("a")
        except PermissionError as e:
            raise VaultPermissionDenied(str(e)) from e
        try:
            fcntl.flock(fd.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            fd.close()
            raise VaultBusy(f"Vault is locked by another process ({lock_path})") from None
        try:
            yield
        finally:
            fcntl.flock(fd.fileno(), fcntl.LOCK_UN)
            fd.close()
