"""
Integration tests: real PDFs rendered with PyMuPDF through the streaming pipeline.

The Tesseract-backed tests skip themselves when the binary (or its English
data) is not installed.
"""

import re
from pathlib import Path

import pytest
from PIL import Image

from vnscan.config import LanguageConfig, OCRConfig, PipelineConfig, StreamingConfig
from vnscan.ocr.engine import OCREngine, TesseractEngine, available_languages, is_tesseract_available
from vnscan.ocr.rasterizer import PyMuPDFRasterizer
from vnscan.ocr.streaming import StreamingPipeline
from vnscan.service import SessionService

TESSERACT_ENG = is_tesseract_available() and "eng" in available_languages()


class ImageCheckingEngine(OCREngine):
    """Verifies each page image is a real raster and reports its page number."""

    def __init__(self):
        self.sizes = []

    def recognize(self, image_path: Path, language: LanguageConfig) -> str:
        with Image.open(image_path) as image:
            image.verify()
            self.sizes.append(image.size)
        page = int(re.search(r"_page_(\d+)", Path(image_path).stem).group(1))
        return f"Nội dung trang {page}"


@pytest.fixture
def streaming_config(tmp_path) -> PipelineConfig:
    return PipelineConfig(
        ocr=OCRConfig(dpi=72),
        streaming=StreamingConfig(
            checkpoint_interval=3,
            checkpoint_dir=tmp_path / "checkpoints",
            sessions_dir=tmp_path / "sessions",
            fsync=False,
        ),
    )


class TestStreamingWithPyMuPDF:
    """The pipeline over real rendered pages."""

    def test_full_run(self, make_pdf, streaming_config):
        pdf = make_pdf(7)
        engine = ImageCheckingEngine()
        pipeline = StreamingPipeline(streaming_config, PyMuPDFRasterizer(), engine)

        result = pipeline.process(pdf, "real")

        assert result.complete
        assert engine.sizes == [(595, 842)] * 7
        assert pipeline.outputs.page_numbers("real") == list(range(1, 8))
        assert list(streaming_config.streaming.sessions_dir.glob("*.jpg")) == []

    def test_interrupted_run_resumes(self, make_pdf, streaming_config):
        """Stopping mid-run and resuming with a new pipeline writes each page once."""
        pdf = make_pdf(10)

        def stop_at_eight(event):
            if event.page == 8:
                raise KeyboardInterrupt

        first = StreamingPipeline(streaming_config, PyMuPDFRasterizer(), ImageCheckingEngine())
        with pytest.raises(KeyboardInterrupt):
            first.process(pdf, "real", stop_at_eight)
        assert first.checkpoints.load("real").last_page_processed == 6

        second = StreamingPipeline(streaming_config, PyMuPDFRasterizer(), ImageCheckingEngine())
        result = second.process(pdf, "real")

        assert result.resumed_from == 6
        text = second.outputs.read("real")
        for page in range(1, 11):
            assert text.count(f"Nội dung trang {page}\n") == 1

    def test_service_picks_up_stored_sessions(self, make_pdf, streaming_config):
        """A new service instance sees sessions written by an earlier one."""
        pdf = make_pdf(4)
        with SessionService(streaming_config, PyMuPDFRasterizer(), ImageCheckingEngine()) as first:
            first.start_session(pdf, "kept").result(timeout=30)

        with SessionService(streaming_config, PyMuPDFRasterizer(), ImageCheckingEngine()) as second:
            status = second.get_status("kept")
            assert status.complete
            assert status.total_pages == 4
            assert "Nội dung trang 4" in second.fetch_output("kept")


@pytest.mark.skipif(not TESSERACT_ENG, reason="Tesseract with English data not installed")
class TestStreamingWithTesseract:
    """End to end with the real OCR engine."""

    def test_recognizes_rendered_text(self, make_pdf, tmp_path):
        config = PipelineConfig(
            ocr=OCRConfig(primary=LanguageConfig("eng"), fallback=LanguageConfig("eng")),
            streaming=StreamingConfig(
                checkpoint_dir=tmp_path / "checkpoints",
                sessions_dir=tmp_path / "sessions",
            ),
        )
        pipeline = StreamingPipeline(config, PyMuPDFRasterizer(), TesseractEngine())

        result = pipeline.process(make_pdf(2), "tess")

        assert result.complete
        assert result.ocr_failures == 0
        text = pipeline.outputs.read("tess")
        assert "Contract" in text
        assert "--- Page 2 ---" in text
