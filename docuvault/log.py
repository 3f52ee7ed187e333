from __future__ import annotations

import logging
import sys

from docuvault import config


def setup_logging(level: str | None = None) -> None:
    """Setup basic logging for the application."""

    level_name = (level or config.LOG_LEVEL).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    # PyMuPDF and the OCR runtimes are chatty at INFO
    logging.getLogger("fitz").setLevel(logging.WARNING)
    logging.getLogger("RapidOCR").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
