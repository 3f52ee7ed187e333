"""DocuVault: local document archive with inbox sorting and portable backups."""

__version__ = "0.1.0"
