"""Tests for OCR engines and the fallback policy."""

from pathlib import Path

import pytest
import pytesseract
from PIL import Image

from vnscan.config import LanguageConfig
from vnscan.exceptions import OCRError
from vnscan.ocr.engine import (
    OCREngine,
    TesseractEngine,
    is_tesseract_available,
    recognize_with_fallback,
)

VIE = LanguageConfig("vie+eng")
ENG = LanguageConfig("eng")


class ScriptedEngine(OCREngine):
    """Fails for the listed languages, otherwise echoes the language used."""

    def __init__(self, failing=()):
        self.failing = set(failing)
        self.attempts = []

    def recognize(self, image_path, language):
        self.attempts.append(language.languages)
        if language.languages in self.failing:
            raise OCRError(f"{language.languages} broke")
        return f"text via {language.languages}"


@pytest.fixture
def image(tmp_path) -> Path:
    path = tmp_path / "page.png"
    Image.new("RGB", (40, 20), "white").save(path)
    return path


class TestFallback:
    """recognize_with_fallback retries once with the narrower language."""

    def test_primary_succeeds(self, image):
        engine = ScriptedEngine()

        assert recognize_with_fallback(engine, image, VIE, ENG) == "text via vie+eng"
        assert engine.attempts == ["vie+eng"]

    def test_fallback_used(self, image):
        engine = ScriptedEngine(failing={"vie+eng"})

        assert recognize_with_fallback(engine, image, VIE, ENG) == "text via eng"
        assert engine.attempts == ["vie+eng", "eng"]

    def test_both_fail(self, image):
        engine = ScriptedEngine(failing={"vie+eng", "eng"})

        with pytest.raises(OCRError) as excinfo:
            recognize_with_fallback(engine, image, VIE, ENG)

        assert "vie+eng broke" in str(excinfo.value)
        assert "fallback: eng broke" in str(excinfo.value)

    def test_no_fallback(self, image):
        engine = ScriptedEngine(failing={"vie+eng"})

        with pytest.raises(OCRError, match="vie\\+eng broke"):
            recognize_with_fallback(engine, image, VIE, None)
        assert engine.attempts == ["vie+eng"]


class TestTesseractEngine:
    """TesseractEngine maps pytesseract failures to OCRError."""

    def test_passes_language_and_modes(self, image, monkeypatch):
        seen = {}

        def fake_image_to_string(img, lang, config, timeout):
            seen.update(lang=lang, config=config, timeout=timeout, size=img.size)
            return "Hợp đồng"

        monkeypatch.setattr(pytesseract, "image_to_string", fake_image_to_string)

        text = TesseractEngine(timeout=30).recognize(image, LanguageConfig("vie+eng", psm=6))

        assert text == "Hợp đồng"
        assert seen == {"lang": "vie+eng", "config": "--oem 1 --psm 6", "timeout": 30, "size": (40, 20)}

    @pytest.mark.parametrize(
        "error",
        [
            pytesseract.TesseractError(1, "Failed loading language 'vie'"),
            pytesseract.TesseractNotFoundError(),
            RuntimeError("Tesseract process timeout"),
        ],
    )
    def test_failures_become_ocr_error(self, image, monkeypatch, error):
        def failing(*args, **kwargs):
            raise error

        monkeypatch.setattr(pytesseract, "image_to_string", failing)

        with pytest.raises(OCRError):
            TesseractEngine().recognize(image, VIE)

    def test_unreadable_image(self, tmp_path):
        with pytest.raises(OCRError, match="Cannot read image"):
            TesseractEngine().recognize(tmp_path / "missing.png", VIE)


@pytest.mark.skipif(not is_tesseract_available(), reason="Tesseract not installed")
class TestTesseractBinary:
    """Runs the real binary."""

    def test_blank_page_recognizes(self, image):
        text = TesseractEngine().recognize(image, ENG)
        assert text.strip() == ""
