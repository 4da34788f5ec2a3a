"""
Pytest configuration and fixtures for vnscan tests.

The streaming tests run against in-memory stand-ins for the rasterizer and
OCR engine so they need neither Tesseract nor real scans. Tests that do need
the binaries skip themselves when they are missing.
"""

from __future__ import annotations

from pathlib import Path

import fitz
import pytest

from vnscan.config import LanguageConfig, PipelineConfig, StreamingConfig
from vnscan.exceptions import DocumentError, OCRError, RasterizeError
from vnscan.ocr.engine import OCREngine
from vnscan.ocr.rasterizer import Rasterizer


class FakeRasterizer(Rasterizer):
    """
    Writes a tiny "image" whose content is the page number.

    Attributes tests can set:
        page_count: Pages the document has.
        broken: Raise DocumentError from get_page_count.
        fail_pages: Pages whose render raises RasterizeError.
        on_render: Called with the page number before each render.
    """

    image_format = "png"

    def __init__(self, page_count: int = 5):
        self.page_count = page_count
        self.broken = False
        self.fail_pages: set[int] = set()
        self.on_render = None
        self.rendered: list[int] = []
        self.max_images_on_disk = 0

    def get_page_count(self, document_path: Path) -> int:
        if self.broken:
            raise DocumentError(f"Cannot open {document_path}: corrupt")
        return self.page_count

    def render_page(self, document_path: Path, page_number: int, dpi: int, dest_stem: Path) -> Path:
        if self.on_render is not None:
            self.on_render(page_number)
        if page_number in self.fail_pages:
            raise RasterizeError(f"cannot render page {page_number}")
        dest = self.image_path(dest_stem)
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_text(str(page_number), encoding="utf-8")
        self.rendered.append(page_number)
        on_disk = len(list(dest.parent.glob("*_page_*.png")))
        self.max_images_on_disk = max(self.max_images_on_disk, on_disk)
        return dest


class FakeEngine(OCREngine):
    """
    Returns ``Trang <n>: Hop dong cho thue`` for page n.

    Attributes tests can set:
        fail: Map of page number to the languages that fail on it.
        empty_pages: Pages that recognize to an empty string.
    """

    def __init__(self):
        self.fail: dict[int, set[str]] = {}
        self.empty_pages: set[int] = set()
        self.calls: list[tuple[int, str]] = []

    def recognize(self, image_path: Path, language: LanguageConfig) -> str:
        page = int(Path(image_path).read_text(encoding="utf-8"))
        self.calls.append((page, language.languages))
        if language.languages in self.fail.get(page, set()):
            raise OCRError(f"engine failure on page {page} ({language.languages})")
        if page in self.empty_pages:
            return ""
        return f"Trang {page}: Hop dong cho thue\n"


@pytest.fixture
def rasterizer() -> FakeRasterizer:
    return FakeRasterizer()


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def config(tmp_path: Path) -> PipelineConfig:
    """Config writing checkpoints and outputs under tmp_path, checkpointing every 3 pages."""
    return PipelineConfig(
        streaming=StreamingConfig(
            checkpoint_interval=3,
            checkpoint_dir=tmp_path / "checkpoints",
            sessions_dir=tmp_path / "sessions",
        )
    )


@pytest.fixture
def document(tmp_path: Path) -> Path:
    """Placeholder document path; the fake rasterizer never opens it."""
    path = tmp_path / "scan.pdf"
    path.write_bytes(b"%PDF-1.4 fake")
    return path


@pytest.fixture
def make_pdf(tmp_path: Path):
    """Factory building a real PDF with one line of text per page."""

    def _make(pages: int = 3, name: str = "sample.pdf") -> Path:
        path = tmp_path / name
        doc = fitz.open()
        for number in range(1, pages + 1):
            page = doc.new_page(width=595, height=842)
            page.insert_text((72, 100), f"Page {number} Contract text", fontsize=24)
        doc.save(path)
        doc.close()
        return path

    return _make
