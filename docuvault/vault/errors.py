from __future__ import annotations


class DocuVaultError(Exception):
    """Base class for every error raised by the vault core."""


class VaultNotConnected(DocuVaultError):
    pass


class VaultPermissionDenied(DocuVaultError):
    """Read/write access to the vault root was not granted."""


class VaultFileNotFound(DocuVaultError):
    """A vault path could not be resolved, not even by fuzzy name matching."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Not found in vault: {path}")
        self.path = path


class VaultBusy(DocuVaultError):
    """Another process holds the advisory lock of the vault."""


class RelocationFailure(DocuVaultError):
    pass


class ExtractionFailure(DocuVaultError):
    """Raised by extraction engines; never escapes ContentExtractor."""


class InvalidArchive(DocuVaultError):
    """The backup archive is not a ZIP or lacks the dataset document."""
