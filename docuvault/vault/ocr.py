from __future__ import annotations

import io
import logging
from typing import Optional

from docuvault import config

logger = logging.getLogger(__name__)


class OcrEngine:
    """OCR wrapper.

    We prefer ONNX-based OCR (RapidOCR) because it needs no system binary;
    pytesseract is used when RapidOCR is not installed but a Tesseract binary
    is. If neither is available we gracefully return an empty string.
    """

    def __init__(self, languages: str = config.OCR_LANGUAGES) -> None:
        self.languages = languages
        self._engine = None
        self._tesseract = None
        self._init_error: Optional[str] = None

        try:
            from rapidocr_onnxruntime import RapidOCR  # type: ignore

            self._engine = RapidOCR()
        except Exception as e:
            self._init_error = str(e)
            self._engine = None

        if self._engine is None:
            try:
                import pytesseract  # type: ignore

                pytesseract.get_tesseract_version()
                self._tesseract = pytesseract
                self._init_error = None
            except Exception as e:
                self._init_error = f"{self._init_error}; {e}" if self._init_error else str(e)
                self._tesseract = None

    @property
    def available(self) -> bool:
        return self._engine is not None or self._tesseract is not None

    @property
    def init_error(self) -> Optional[str]:
        return self._init_error

    def image_to_text(self, image: bytes) -> str:
        if self._engine is not None:
            return self._rapidocr(image)
        if self._tesseract is not None:
            return self._pytesseract(image)
        return ""

    def _rapidocr(self, image: bytes) -> str:
        try:
            # RapidOCR returns (result, elapsed)
            result, _ = self._engine(image)
            if not result:
                return ""
            # result: list of [box, text, score]
            lines = []
            for item in result:
                if not item or len(item) < 2:
                    continue
                text = item[1]
                if text:
                    lines.append(str(text))
            return "\n".join(lines).strip()
        except Exception as e:
            logger.debug("RapidOCR failed: %s", e)
            return ""

    def _pytesseract(self, image: bytes) -> str:
        try:
            from PIL import Image

            img = Image.open(io.BytesIO(image)).convert("RGB")
            return self._tesseract.image_to_string(img, lang=self.languages).strip()
        except Exception as e:
            logger.debug("Tesseract failed: %s", e)
            return ""
