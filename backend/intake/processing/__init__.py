"""
Document Processing Package
════════════════════════════

Turns an uploaded file into plain text:

  Magic-byte sniff → PDF text layer | image OCR → normalised text

Modules
───────
  ocr.py        Strategy pattern for text extraction (PyMuPDF, Tesseract)
  extractor.py  Orchestrator that selects the correct extraction strategy

Design principles
─────────────────
  • Every component is stateless and dependency-injected.
  • Blocking engines run in a thread executor, never on the event loop.
  • Callers see one failure type: ExtractionError.
"""

from intake.processing.extractor import ExtractionError, TextExtractor
from intake.processing.ocr import PyMuPDFExtractor, TesseractExtractor

__all__ = [
    "ExtractionError",
    "TextExtractor",
    "PyMuPDFExtractor",
    "TesseractExtractor",
]
