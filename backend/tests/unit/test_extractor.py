"""
Unit Tests — Text Extraction
═════════════════════════════
Tests for intake/processing/extractor.py and intake/processing/ocr.py

Coverage:
  ✅ %PDF magic bytes select PyMuPDF, anything else selects Tesseract
  ✅ PDF text has blank-line runs collapsed; OCR text is left untouched
  ✅ Engine failure surfaces as ExtractionError with the fixed message
  ✅ Real PyMuPDF round trip on a generated one-page PDF
  ✅ Unreadable image bytes raise ExtractionError
  ✅ Tesseract is called with the configured language spec
  ✅ A configured tesseract binary path is applied at construction only
"""

from __future__ import annotations

import io
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from intake.core.config import Settings
from intake.processing.extractor import (
    EXTRACTION_FAILED_MESSAGE,
    ExtractionError,
    TextExtractor,
    collapse_blank_lines,
    is_pdf,
)
from intake.processing.ocr import (
    BaseTextExtractor,
    ExtractionStrategyResult,
    PyMuPDFExtractor,
    TesseractExtractor,
)


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

def _strategy(name: str, text: str = "", used_ocr: bool = False) -> MagicMock:
    strategy = MagicMock(spec=BaseTextExtractor)
    strategy.strategy_name = name
    strategy.extract = AsyncMock(
        return_value=ExtractionStrategyResult(
            text=text, strategy_name=name, page_count=1, used_ocr=used_ocr,
        )
    )
    return strategy


def _make_pdf(*lines: str) -> bytes:
    import fitz

    doc = fitz.open()
    page = doc.new_page()
    y = 72
    for line in lines:
        page.insert_text((72, y), line)
        y += 20
    data = doc.tobytes()
    doc.close()
    return data


def _make_png() -> bytes:
    from PIL import Image

    buf = io.BytesIO()
    Image.new("RGB", (64, 32), "white").save(buf, format="PNG")
    return buf.getvalue()


# ─────────────────────────────────────────────────────────────────────────────
# Strategy selection + normalisation
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
@pytest.mark.extraction
class TestTextExtractor:

    def test_is_pdf_checks_magic_bytes(self):
        assert is_pdf(b"%PDF-1.7 ...")
        assert not is_pdf(b"\x89PNG\r\n\x1a\n")
        assert not is_pdf(b"")

    def test_collapse_blank_lines(self):
        assert collapse_blank_lines("a\n\n\nb\n  \t\nc") == "a\nb\nc"
        assert collapse_blank_lines("single\nbreaks\nstay") == "single\nbreaks\nstay"

    def test_pdf_bytes_select_pdf_strategy(self):
        pdf, image = _strategy("pymupdf"), _strategy("tesseract")
        extractor = TextExtractor(pdf_strategy=pdf, image_strategy=image)

        assert extractor.select_strategy(b"%PDF-1.4") is pdf
        assert extractor.select_strategy(b"\xff\xd8\xff\xe0") is image

    async def test_pdf_output_is_collapsed(self):
        pdf = _strategy("pymupdf", text="Invoice\n\n\nTotal: 150\n \nDue")
        extractor = TextExtractor(pdf_strategy=pdf, image_strategy=_strategy("tesseract"))

        text = await extractor.extract(b"%PDF-1.4 body")

        assert text == "Invoice\nTotal: 150\nDue"

    async def test_image_output_is_returned_as_is(self):
        raw = "Recibo\n\n\nValor: R$ 20,00\n"
        image = _strategy("tesseract", text=raw, used_ocr=True)
        extractor = TextExtractor(pdf_strategy=_strategy("pymupdf"), image_strategy=image)

        text = await extractor.extract(b"\x89PNG\r\n\x1a\n")

        assert text == raw
        image.extract.assert_awaited_once()

    async def test_engine_failure_raises_extraction_error(self):
        image = _strategy("tesseract")
        image.extract.side_effect = RuntimeError("tesseract is not installed")
        extractor = TextExtractor(pdf_strategy=_strategy("pymupdf"), image_strategy=image)

        with pytest.raises(ExtractionError) as exc_info:
            await extractor.extract(b"\xff\xd8\xff")

        assert exc_info.value.message == EXTRACTION_FAILED_MESSAGE
        assert str(exc_info.value) == EXTRACTION_FAILED_MESSAGE
        assert exc_info.value.document_id is None

    def test_default_image_strategy_uses_configured_languages(self):
        extractor = TextExtractor(config=Settings(ocr_languages="eng"))
        strategy = extractor.select_strategy(b"\x89PNG")

        assert isinstance(strategy, TesseractExtractor)
        assert strategy._languages == "eng"


# ─────────────────────────────────────────────────────────────────────────────
# Real engines
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
@pytest.mark.extraction
class TestPyMuPDFExtractor:

    async def test_reads_text_layer(self):
        pdf_bytes = _make_pdf("ACME Energy", "Total due: 150.00")

        result = await PyMuPDFExtractor().extract(pdf_bytes)

        assert result.strategy_name == "pymupdf"
        assert result.page_count == 1
        assert result.used_ocr is False
        assert "ACME Energy" in result.text
        assert "Total due: 150.00" in result.text

    async def test_orchestrator_round_trip(self):
        pdf_bytes = _make_pdf("First line", "Second line")

        text = await TextExtractor().extract(pdf_bytes)

        assert "First line" in text
        assert "\n\n" not in text


@pytest.mark.unit
@pytest.mark.extraction
class TestTesseractExtractor:

    async def test_calls_tesseract_with_language_spec(self):
        with patch("pytesseract.image_to_string", return_value="Boleto\nR$ 89,90\n") as ocr:
            result = await TesseractExtractor(languages="por+eng").extract(_make_png())

        assert result.text == "Boleto\nR$ 89,90\n"
        assert result.used_ocr is True
        assert result.page_count == 1
        assert ocr.call_args.kwargs["lang"] == "por+eng"

    async def test_unreadable_image_raises_extraction_error(self):
        extractor = TextExtractor(image_strategy=TesseractExtractor())

        with pytest.raises(ExtractionError):
            await extractor.extract(b"\xff\xd8\xff not an image")

    def test_tesseract_cmd_applied_at_construction(self):
        import pytesseract

        with patch("pytesseract.pytesseract.tesseract_cmd", "tesseract"):
            TesseractExtractor(tesseract_cmd="/opt/tess/bin/tesseract")

            assert pytesseract.pytesseract.tesseract_cmd == "/opt/tess/bin/tesseract"

    def test_empty_tesseract_cmd_keeps_default(self):
        import pytesseract

        with patch("pytesseract.pytesseract.tesseract_cmd", "tesseract"):
            TesseractExtractor()

            assert pytesseract.pytesseract.tesseract_cmd == "tesseract"

    async def test_extract_does_not_touch_tesseract_cmd(self):
        import pytesseract

        with patch("pytesseract.pytesseract.tesseract_cmd", "tesseract"):
            extractor = TesseractExtractor(tesseract_cmd="/opt/tess/bin/tesseract")
            pytesseract.pytesseract.tesseract_cmd = "/usr/local/bin/tesseract"

            with patch("pytesseract.image_to_string", return_value="ok"):
                await extractor.extract(_make_png())

            assert pytesseract.pytesseract.tesseract_cmd == "/usr/local/bin/tesseract"
