import os
from pathlib import Path


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


# Base paths
DATA_DIR = Path(os.getenv("DOCUVAULT_DATA_DIR", str(Path.home() / ".docuvault"))).expanduser()
DB_PATH = DATA_DIR / "docuvault.sqlite3"
LOG_LEVEL = os.getenv("DOCUVAULT_LOG_LEVEL", "INFO")

# Vault layout
INBOX_DIR = "_INBOX"
ARCHIVE_DIR = "_ARCHIVE"
LOCK_FILE = ".docuvault.lock"

# Processing settings
MAX_FILE_SIZE_MB = 50
PDF_TEXT_PAGES = 3
PDF_OCR_MIN_CHARS = 50
PDF_OCR_SCALE = 2.0
EXCEL_MAX_SHEETS = 3
MIN_CONTENT_CHARS = 5
MAX_WORKERS = 4  # Thread pool size for reindex extraction and restore
OCR_LANGUAGES = os.getenv("DOCUVAULT_OCR_LANGUAGES", "deu+eng")

# AI enrichment
ANALYZER_DELAY_SECONDS = _env_float("DOCUVAULT_ANALYZER_DELAY", 4.0)
OPENAI_API_KEY = os.getenv("DOCUVAULT_OPENAI_API_KEY", "").strip()
OPENAI_MODEL = os.getenv("DOCUVAULT_OPENAI_MODEL", "gpt-4o-mini")

# Exchange rates to CHF used when ingested records carry a foreign currency
DEFAULT_RATE_USD = 0.85
DEFAULT_RATE_EUR = 0.94

# Backup archive
BACKUP_DATA_FILE = "TradeLog_Data.json"
BACKUP_MAPPING_FILE = "file_mapping.json"
