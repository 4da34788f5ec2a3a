"""
Rasterization, text recognition and the streaming pipeline.

- Rasterizer / PyMuPDFRasterizer / PopplerRasterizer: one PDF page to one image
- OCREngine / TesseractEngine: one image to text
- StreamingPipeline: page-by-page processing with checkpoint recovery

Example:
    >>> from vnscan.ocr import StreamingPipeline
    >>> pipeline = StreamingPipeline()
    >>> pipeline.process("scan.pdf", "scan-001").last_page_processed
    42
"""

from vnscan.ocr.engine import (
    OCREngine,
    TesseractEngine,
    available_languages,
    is_tesseract_available,
    recognize_with_fallback,
)
from vnscan.ocr.rasterizer import (
    PopplerRasterizer,
    PyMuPDFRasterizer,
    Rasterizer,
    is_poppler_available,
)
from vnscan.ocr.streaming import (
    OCR_FAILED_TEMPLATE,
    ProgressCallback,
    SessionContext,
    StreamingPipeline,
)

__all__ = [
    # Pipeline
    "StreamingPipeline",
    "SessionContext",
    "ProgressCallback",
    "OCR_FAILED_TEMPLATE",
    # Rasterizers
    "Rasterizer",
    "PyMuPDFRasterizer",
    "PopplerRasterizer",
    "is_poppler_available",
    # Engines
    "OCREngine",
    "TesseractEngine",
    "recognize_with_fallback",
    "is_tesseract_available",
    "available_languages",
]
