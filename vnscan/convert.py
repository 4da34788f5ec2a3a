"""
Whole-document extraction for small files.

Small documents are cheaper to process in one pass: render every page into a
temporary directory, recognize each, join the pages and clean the result in
memory. Large documents go through the streaming pipeline instead; callers
use ``choose_strategy`` to decide.

Example:
    >>> result = extract_text("invoice.pdf")
    >>> print(result.cleaned[:80])
    >>> result.metadata.document_type
    <DocumentType.INVOICE: 'invoice'>
"""

from __future__ import annotations

import logging
import tempfile
import time
from datetime import datetime
from enum import Enum
from pathlib import Path

from vnscan.config import PipelineConfig
from vnscan.exceptions import DocumentError, ExtractionError, OCRError, RasterizeError
from vnscan.models import ExtractionResult
from vnscan.normalizers.cleaner import VietnameseOCRCleaner
from vnscan.ocr.engine import OCREngine, TesseractEngine, recognize_with_fallback
from vnscan.ocr.rasterizer import PyMuPDFRasterizer, Rasterizer
from vnscan.storage.sessions import SEPARATOR

logger = logging.getLogger(__name__)

SUPPORTED_SUFFIXES = (".pdf",)


class ProcessingStrategy(Enum):
    """How a document is processed."""

    STREAMING = "streaming"
    WHOLE_DOCUMENT = "whole_document"


def choose_strategy(
    document_path: str | Path,
    config: PipelineConfig | None = None,
) -> ProcessingStrategy:
    """
    Pick the processing strategy for a document by file size.

    Streaming is used when it is enabled and the file is larger than
    ``streaming_threshold_mb``.
    """
    streaming = (config or PipelineConfig()).streaming
    if not streaming.enabled:
        return ProcessingStrategy.WHOLE_DOCUMENT
    try:
        size_mb = Path(document_path).stat().st_size / (1024 * 1024)
    except OSError as e:
        raise DocumentError(f"Cannot stat {document_path}: {e}") from e
    if size_mb > streaming.streaming_threshold_mb:
        return ProcessingStrategy.STREAMING
    return ProcessingStrategy.WHOLE_DOCUMENT


def extract_text(
    source: str | Path,
    config: PipelineConfig | None = None,
    rasterizer: Rasterizer | None = None,
    engine: OCREngine | None = None,
    cleaner: VietnameseOCRCleaner | None = None,
) -> ExtractionResult:
    """
    Extract and clean the text of a whole document in one pass.

    Args:
        source: Path to a PDF.
        config: Configuration (defaults if None).
        rasterizer: Page rasterizer (PyMuPDF if None).
        engine: OCR engine (Tesseract if None).
        cleaner: Text cleaner (built from ``config.cleaner`` if None).

    Returns:
        ExtractionResult with original and cleaned text.

    Raises:
        FileNotFoundError: If source doesn't exist.
        DocumentError: If the file is not a PDF.
        ExtractionError: If the document cannot be read or a page fails
            both OCR attempts.
    """
    source = Path(source)
    config = config or PipelineConfig()
    rasterizer = rasterizer or PyMuPDFRasterizer(image_format=config.ocr.image_format)
    engine = engine or TesseractEngine(config.ocr.tesseract_cmd, config.ocr.timeout)
    cleaner = cleaner or VietnameseOCRCleaner(config.cleaner)

    if not source.exists():
        raise FileNotFoundError(f"Source file not found: {source}")
    if source.suffix.lower() not in SUPPORTED_SUFFIXES:
        raise DocumentError(f"Format '{source.suffix}' not supported. Supported: pdf")

    started = time.perf_counter()
    try:
        page_count = rasterizer.get_page_count(source)
    except DocumentError as e:
        raise ExtractionError(f"Failed to read {source}: {e}") from e

    pages: list[str] = []
    with tempfile.TemporaryDirectory(prefix="vnscan-") as tmp:
        for page in range(1, page_count + 1):
            try:
                image = rasterizer.render_page(
                    source, page, config.ocr.dpi, Path(tmp) / f"page_{page:04d}"
                )
                text = recognize_with_fallback(
                    engine, image, config.ocr.primary, config.ocr.fallback
                )
            except (RasterizeError, OCRError) as e:
                raise ExtractionError(f"Failed on page {page} of {source}: {e}") from e
            image.unlink(missing_ok=True)
            pages.append(text.strip())
            logger.debug("Recognized page %d/%d of %s", page, page_count, source.name)

    original = combine_pages(pages)
    ocr_time = time.perf_counter() - started

    result = cleaner.clean(original)
    total_time = time.perf_counter() - started

    logger.info(
        "Extracted %s: %d pages, %d corrections, confidence %.2f",
        source.name,
        page_count,
        result.metadata.total_corrections,
        result.metadata.confidence,
    )
    return ExtractionResult(
        original=original,
        cleaned=result.cleaned,
        metadata=result.metadata,
        pages=page_count,
        processing_time_ms=round(total_time * 1000, 2),
        ocr_time_ms=round(ocr_time * 1000, 2),
        cleaning_time_ms=round((total_time - ocr_time) * 1000, 2),
    )


def combine_pages(pages: list[str]) -> str:
    """Join page texts with page markers; empty pages get a placeholder."""
    blocks = []
    for number, text in enumerate(pages, start=1):
        if text:
            blocks.append(f"--- Page {number} ---\n{text}")
        else:
            blocks.append(f"[Page {number}: No text detected]")
    return "\n\n".join(blocks)


def write_text_file(
    text: str,
    original_filename: str,
    output_dir: str | Path,
    languages: str = "vie+eng",
) -> Path:
    """
    Write extracted text with a short provenance header.

    Returns:
        Path of the written file, ``<stem>_ocr_<timestamp>.txt`` in ``output_dir``.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    now = datetime.now()
    path = output_dir / f"{Path(original_filename).stem}_ocr_{now:%Y%m%dT%H%M%S%f}.txt"

    header = (
        f"OCR Extraction Results\n{SEPARATOR}\n"
        f"Original File: {original_filename}\n"
        f"Extracted: {now.isoformat(timespec='seconds')}\n"
        f"Languages: {languages}\n\n"
        f"{SEPARATOR}\n"
    )
    path.write_text(header + text, encoding="utf-8")
    logger.info("Wrote text file %s", path)
    return path
