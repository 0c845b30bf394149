"""
OCR Strategy Pattern  —  Text Extraction from PDFs and Images
══════════════════════════════════════════════════════════════

Design: Strategy
────────────────
Two strategies share one interface, selected by the orchestrator in
extractor.py from the file's magic bytes:

  Strategy 1: PyMuPDF (fitz)
    - Native PDF text layer extraction (microseconds per page)
    - Zero external processes, runs entirely in-process
    - Scanned PDFs yield little or no text; no OCR fallback is attempted

  Strategy 2: Tesseract (pytesseract + Pillow)
    - Image OCR for JPEG / PNG uploads
    - Requires the tesseract binary and language packs in the container
    - Language spec from settings (default "por+eng")

Both engines are blocking and run in the default thread executor so the
event loop keeps serving requests while a file is being read.

Unlike a cascade, a strategy failure here is final: strategies raise and
the orchestrator converts the error into ExtractionError.
"""

from __future__ import annotations

import asyncio
import io
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Shared data types
# ---------------------------------------------------------------------------

@dataclass
class ExtractionStrategyResult:
    """
    Full result from a single strategy run.

    text          : raw extracted text (not yet normalised)
    strategy_name : which strategy produced this result
    page_count    : pages read (1 for images)
    elapsed_ms    : wall-clock time for the strategy (ms)
    used_ocr      : True if image-based OCR was invoked
    """
    text:          str
    strategy_name: str
    page_count:    int
    elapsed_ms:    float = 0.0
    used_ocr:      bool = False

    @property
    def total_chars(self) -> int:
        return len(self.text)


# ---------------------------------------------------------------------------
# Abstract strategy
# ---------------------------------------------------------------------------

class BaseTextExtractor(ABC):
    """
    Abstract base for text extraction strategies.

    All implementations:
      - Accept raw bytes (never a file path — keeps workers stateless)
      - Return ExtractionStrategyResult
      - Raise on engine failure; the orchestrator decides what the caller sees
      - Are safe for concurrent use (no shared mutable state)
    """

    @property
    @abstractmethod
    def strategy_name(self) -> str:
        """Unique name for logging."""

    async def extract(self, file_bytes: bytes) -> ExtractionStrategyResult:
        loop = asyncio.get_running_loop()
        t0 = time.monotonic()

        result = await loop.run_in_executor(None, self._extract_sync, file_bytes)

        result.elapsed_ms = (time.monotonic() - t0) * 1000
        logger.info(
            "%s | pages=%d total_chars=%d elapsed_ms=%.0f",
            self.strategy_name, result.page_count, result.total_chars, result.elapsed_ms,
        )
        return result

    @abstractmethod
    def _extract_sync(self, file_bytes: bytes) -> ExtractionStrategyResult:
        """Blocking extraction — runs in thread executor."""


# ---------------------------------------------------------------------------
# Strategy 1: PyMuPDF (fitz)
# ---------------------------------------------------------------------------

class PyMuPDFExtractor(BaseTextExtractor):
    """
    Uses PyMuPDF to read the native PDF text layer.

    Limitations:
      - Cannot OCR image-only pages (returns empty string for those)
      - Multi-column layouts may come out in an unexpected order
      - Encrypted PDFs raise

    Thread-safety: fitz.open() returns an independent document object
    per call — safe for concurrent use.
    """

    @property
    def strategy_name(self) -> str:
        return "pymupdf"

    def _extract_sync(self, file_bytes: bytes) -> ExtractionStrategyResult:
        import fitz  # PyMuPDF; imported here to avoid module-level import cost

        texts: list[str] = []
        with fitz.open(stream=file_bytes, filetype="pdf") as doc:
            for page in doc:
                texts.append(page.get_text("text") or "")

        return ExtractionStrategyResult(
            text="".join(texts),
            strategy_name=self.strategy_name,
            page_count=len(texts),
        )


# ---------------------------------------------------------------------------
# Strategy 2: Tesseract
# ---------------------------------------------------------------------------

class TesseractExtractor(BaseTextExtractor):
    """
    Image OCR via pytesseract.

    languages   : tesseract language spec, e.g. "por+eng"
    tesseract_cmd : optional path to the tesseract binary (empty = PATH)
    """

    def __init__(self, languages: str = "por+eng", tesseract_cmd: str = "") -> None:
        self._languages = languages

        # module-wide in pytesseract; set once, not per extraction
        if tesseract_cmd:
            import pytesseract
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd

    @property
    def strategy_name(self) -> str:
        return "tesseract"

    def _extract_sync(self, file_bytes: bytes) -> ExtractionStrategyResult:
        import pytesseract
        from PIL import Image

        with Image.open(io.BytesIO(file_bytes)) as image:
            text = pytesseract.image_to_string(image, lang=self._languages) or ""

        return ExtractionStrategyResult(
            text=text,
            strategy_name=self.strategy_name,
            page_count=1,
            used_ocr=True,
        )
