"""
Text Extraction Orchestrator
════════════════════════════

Selects the extraction strategy for an uploaded file and normalises
the result.

Strategy selection flow:
  1.  First four bytes == b"%PDF"  →  PyMuPDFExtractor (text layer)
  2.  Anything else                →  TesseractExtractor (image OCR)
  3.  PDF output has runs of blank lines collapsed to a single newline;
      OCR output is returned as the engine produced it.

Any engine failure surfaces as ExtractionError with a fixed,
user-presentable message. The underlying error is logged only.

This module is the only place that knows about strategy selection.
The pipeline only sees extract(bytes) → str.
"""

from __future__ import annotations

import logging
import re
import time
from uuid import UUID

from intake.core.config import Settings, settings as default_settings
from intake.processing.ocr import (
    BaseTextExtractor,
    PyMuPDFExtractor,
    TesseractExtractor,
)

logger = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF"

EXTRACTION_FAILED_MESSAGE = "Failed to extract text from the file."

_BLANK_LINES_RE = re.compile(r"\n\s*\n")


class ExtractionError(Exception):
    """
    Raised when no text could be read from a file.
    document_id is filled in by the pipeline once the row is marked FAILED.
    """

    def __init__(self, message: str = EXTRACTION_FAILED_MESSAGE) -> None:
        super().__init__(message)
        self.message = message
        self.document_id: UUID | None = None


def is_pdf(file_bytes: bytes) -> bool:
    return file_bytes[:4] == PDF_MAGIC


def collapse_blank_lines(text: str) -> str:
    """Replace every newline/whitespace/newline run with a single newline."""
    return _BLANK_LINES_RE.sub("\n", text)


class TextExtractor:
    """
    Stateless orchestrator — pick and run the right strategy.

    Usage:
        extractor = TextExtractor()
        text = await extractor.extract(file_bytes)
    """

    def __init__(
        self,
        pdf_strategy: BaseTextExtractor | None = None,
        image_strategy: BaseTextExtractor | None = None,
        config: Settings | None = None,
    ) -> None:
        cfg = config or default_settings
        self._pdf = pdf_strategy or PyMuPDFExtractor()
        self._image = image_strategy or TesseractExtractor(
            languages=cfg.ocr_languages,
            tesseract_cmd=cfg.tesseract_cmd,
        )

    def select_strategy(self, file_bytes: bytes) -> BaseTextExtractor:
        return self._pdf if is_pdf(file_bytes) else self._image

    async def extract(self, file_bytes: bytes) -> str:
        """
        Extract plain text from a PDF or image.

        Raises:
            ExtractionError: the selected engine failed for any reason.
        """
        strategy = self.select_strategy(file_bytes)
        t0 = time.monotonic()

        try:
            result = await strategy.extract(file_bytes)
        except Exception as exc:
            logger.error(
                "Extraction failed | strategy=%s size=%d error=%s",
                strategy.strategy_name, len(file_bytes), exc,
                exc_info=True,
            )
            raise ExtractionError() from exc

        text = result.text
        if strategy is self._pdf:
            text = collapse_blank_lines(text)

        logger.info(
            "Extraction ok | strategy=%s used_ocr=%s chars=%d elapsed_ms=%.0f",
            strategy.strategy_name, result.used_ocr, len(text),
            (time.monotonic() - t0) * 1000,
        )
        return text
