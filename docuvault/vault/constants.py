from __future__ import annotations


PDF_EXTS = {".pdf"}
IMAGE_EXTS = {".jpg", ".jpeg", ".png", ".heic", ".gif", ".bmp", ".tif", ".tiff", ".webp"}
WORD_EXTS = {".doc", ".docx"}
PAGES_EXTS = {".pages"}
EXCEL_EXTS = {".xls", ".xlsx", ".csv"}
NOTE_EXTS = {".txt", ".md", ".json", ".log"}

SUPPORTED_EXTS = PDF_EXTS | IMAGE_EXTS | WORD_EXTS | PAGES_EXTS | EXCEL_EXTS | NOTE_EXTS

# First bytes of the container formats we can recognise without the extension
SIG_PDF = b"%PDF"
SIG_ZIP = b"PK\x03\x04"
SIG_OLE = b"\xd0\xcf\x11\xe0"
SIG_JPEG = b"\xff\xd8\xff"
SIG_PNG = b"\x89PNG"

IGNORED_FILE_NAMES = {".DS_Store", "Thumbs.db", "desktop.ini"}

WORD_MIME_TYPES = {
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}
EXCEL_MIME_TYPES = {
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "text/csv",
}

OCR_MARKER = "\n[OCR RESULT]\n"
