"""
OCR engines.

TesseractEngine drives the Tesseract binary through pytesseract. The
streaming pipeline and the whole-document strategy both call
recognize_with_fallback, which retries a failed page once with a narrower
language configuration before giving up.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path

import pytesseract
from PIL import Image

from vnscan.config import LanguageConfig
from vnscan.exceptions import OCRError

logger = logging.getLogger(__name__)


# =============================================================================
# ENGINE DETECTION
# =============================================================================


def is_tesseract_available() -> bool:
    """Check if Tesseract is installed and usable."""
    try:
        pytesseract.get_tesseract_version()
        return True
    except pytesseract.TesseractNotFoundError:
        logger.debug("Tesseract binary not found")
        return False


def available_languages() -> list[str]:
    """Languages installed for Tesseract, or an empty list if it is missing."""
    try:
        return sorted(pytesseract.get_languages(config=""))
    except (pytesseract.TesseractNotFoundError, pytesseract.TesseractError):
        return []


# =============================================================================
# ENGINES
# =============================================================================


class OCREngine(ABC):
    """Interface for OCR engines."""

    @abstractmethod
    def recognize(self, image_path: Path, language: LanguageConfig) -> str:
        """
        Recognize the text in an image.

        Raises:
            OCRError: If recognition fails.
        """


class TesseractEngine(OCREngine):
    """
    Tesseract via pytesseract.

    Example:
        >>> engine = TesseractEngine()
        >>> engine.recognize(Path("page.jpg"), LanguageConfig("vie+eng"))
        'HỢP ĐỒNG CHO THUÊ ...'
    """

    def __init__(self, tesseract_cmd: str | None = None, timeout: float = 0):
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd
        self.timeout = timeout

    def recognize(self, image_path: Path, language: LanguageConfig) -> str:
        try:
            with Image.open(image_path) as image:
                return pytesseract.image_to_string(
                    image,
                    lang=language.languages,
                    config=language.tesseract_args,
                    timeout=self.timeout,
                )
        except (pytesseract.TesseractError, pytesseract.TesseractNotFoundError) as e:
            raise OCRError(f"Tesseract failed ({language.languages}): {e}") from e
        except RuntimeError as e:
            # pytesseract signals timeouts with a bare RuntimeError
            raise OCRError(f"Tesseract timed out ({language.languages}): {e}") from e
        except OSError as e:
            raise OCRError(f"Cannot read image {image_path}: {e}") from e


def recognize_with_fallback(
    engine: OCREngine,
    image_path: Path,
    primary: LanguageConfig,
    fallback: LanguageConfig | None = None,
) -> str:
    """
    Recognize with ``primary``, retrying once with ``fallback``.

    Raises:
        OCRError: If both attempts fail. The message names both errors.
    """
    try:
        return engine.recognize(image_path, primary)
    except OCRError as primary_error:
        if fallback is None:
            raise
        logger.warning("Primary OCR (%s) failed: %s", primary.languages, primary_error)
        try:
            return engine.recognize(image_path, fallback)
        except OCRError as fallback_error:
            raise OCRError(
                f"{primary_error}; fallback: {fallback_error}"
            ) from fallback_error
