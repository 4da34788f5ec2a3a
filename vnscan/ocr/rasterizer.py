"""
Page rasterizers: turn one PDF page into an image file on disk.

Two implementations share the Rasterizer interface:
- PyMuPDFRasterizer renders in-process with PyMuPDF and writes with Pillow
- PopplerRasterizer shells out to ``pdfinfo`` / ``pdftoppm``

Only one page is rendered per call and nothing is cached between calls, so
memory stays proportional to a single page image.
"""

from __future__ import annotations

import logging
import re
import shutil
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path

import fitz
from PIL import Image

from vnscan.exceptions import DocumentError, RasterizeError

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

DEFAULT_DPI = 300
PDF_POINTS_PER_INCH = 72.0

_EXTENSIONS = {"jpeg": ".jpg", "png": ".png"}
_PAGES_LINE_RE = re.compile(r"^Pages:\s+(\d+)\s*$", re.MULTILINE)


class Rasterizer(ABC):
    """Interface for page rasterizers."""

    image_format: str = "jpeg"

    @abstractmethod
    def get_page_count(self, document_path: Path) -> int:
        """
        Count the document's pages.

        Raises:
            DocumentError: If the document is missing, unreadable or empty.
        """

    @abstractmethod
    def render_page(self, document_path: Path, page_number: int, dpi: int, dest_stem: Path) -> Path:
        """
        Render one page (1-based) to an image file.

        Args:
            document_path: PDF to render.
            page_number: 1-based page number.
            dpi: Render resolution.
            dest_stem: Output path without extension; the rasterizer adds one.

        Returns:
            Path of the written image.

        Raises:
            RasterizeError: If the page cannot be rendered or written.
        """

    def image_path(self, dest_stem: Path) -> Path:
        return dest_stem.with_name(dest_stem.name + _EXTENSIONS[self.image_format])


# =============================================================================
# PYMUPDF
# =============================================================================


class PyMuPDFRasterizer(Rasterizer):
    """
    Render pages with PyMuPDF.

    Example:
        >>> rasterizer = PyMuPDFRasterizer()
        >>> rasterizer.get_page_count(Path("scan.pdf"))
        12
        >>> rasterizer.render_page(Path("scan.pdf"), 1, 300, Path("tmp/s1_page_0001"))
        PosixPath('tmp/s1_page_0001.jpg')
    """

    def __init__(self, image_format: str = "jpeg", grayscale: bool = False):
        if image_format not in _EXTENSIONS:
            raise ValueError(f"Unsupported image format: {image_format}")
        self.image_format = image_format
        self.grayscale = grayscale

    def _open(self, document_path: Path) -> fitz.Document:
        if not Path(document_path).is_file():
            raise DocumentError(f"Document not found: {document_path}")
        try:
            doc = fitz.open(document_path)
        except Exception as e:
            raise DocumentError(f"Cannot open {document_path}: {e}") from e
        if doc.needs_pass:
            doc.close()
            raise DocumentError(f"Document is encrypted: {document_path}")
        return doc

    def get_page_count(self, document_path: Path) -> int:
        with self._open(document_path) as doc:
            count = doc.page_count
        if count <= 0:
            raise DocumentError(f"Document has no pages: {document_path}")
        return count

    def render_page(self, document_path: Path, page_number: int, dpi: int, dest_stem: Path) -> Path:
        dest = self.image_path(dest_stem)
        try:
            with self._open(document_path) as doc:
                if not 1 <= page_number <= doc.page_count:
                    raise RasterizeError(
                        f"Page {page_number} out of range (document has {doc.page_count})"
                    )
                page = doc.load_page(page_number - 1)
                scale = dpi / PDF_POINTS_PER_INCH
                colorspace = fitz.csGRAY if self.grayscale else fitz.csRGB
                pix = page.get_pixmap(matrix=fitz.Matrix(scale, scale), colorspace=colorspace)
                mode = "L" if self.grayscale else "RGB"
                image = Image.frombytes(mode, (pix.width, pix.height), pix.samples)
                del pix
        except DocumentError as e:
            raise RasterizeError(str(e)) from e
        except RuntimeError as e:
            raise RasterizeError(f"Failed to render page {page_number}: {e}") from e

        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            image.save(dest, format=self.image_format.upper())
        except OSError as e:
            raise RasterizeError(f"Failed to write page image {dest}: {e}") from e
        finally:
            image.close()

        logger.debug("Rendered page %d at %d dpi to %s", page_number, dpi, dest.name)
        return dest


# =============================================================================
# POPPLER
# =============================================================================


def is_poppler_available() -> bool:
    """Check whether the pdfinfo and pdftoppm binaries are on PATH."""
    return shutil.which("pdfinfo") is not None and shutil.which("pdftoppm") is not None


class PopplerRasterizer(Rasterizer):
    """Render pages by invoking Poppler's command-line tools."""

    def __init__(self, image_format: str = "jpeg", timeout: float = 120.0):
        if image_format not in _EXTENSIONS:
            raise ValueError(f"Unsupported image format: {image_format}")
        self.image_format = image_format
        self.timeout = timeout

    def get_page_count(self, document_path: Path) -> int:
        if not Path(document_path).is_file():
            raise DocumentError(f"Document not found: {document_path}")
        try:
            completed = subprocess.run(
                ["pdfinfo", str(document_path)],
                capture_output=True,
                text=True,
                check=True,
                timeout=self.timeout,
            )
        except (OSError, subprocess.SubprocessError) as e:
            raise DocumentError(f"pdfinfo failed for {document_path}: {e}") from e

        match = _PAGES_LINE_RE.search(completed.stdout)
        if not match or int(match.group(1)) <= 0:
            raise DocumentError(f"Could not determine page count of {document_path}")
        return int(match.group(1))

    def render_page(self, document_path: Path, page_number: int, dpi: int, dest_stem: Path) -> Path:
        flag = "-jpeg" if self.image_format == "jpeg" else "-png"
        dest_stem.parent.mkdir(parents=True, exist_ok=True)
        command = [
            "pdftoppm",
            flag,
            "-r",
            str(dpi),
            "-f",
            str(page_number),
            "-l",
            str(page_number),
            "-singlefile",
            str(document_path),
            str(dest_stem),
        ]
        try:
            subprocess.run(command, capture_output=True, check=True, timeout=self.timeout)
        except (OSError, subprocess.SubprocessError) as e:
            raise RasterizeError(f"pdftoppm failed on page {page_number}: {e}") from e

        dest = self.image_path(dest_stem)
        if not dest.is_file():
            raise RasterizeError(f"pdftoppm produced no image for page {page_number}")
        return dest
