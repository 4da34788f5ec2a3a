"""
Streaming OCR pipeline with checkpoint recovery.

Documents are processed one page at a time: render the page, recognize it,
delete the image, append the page block to the session output, and every
``checkpoint_interval`` pages persist a checkpoint. Memory use therefore
depends on the largest page, not on the page count.

Interrupting a session at any point loses at most the pages since the last
checkpoint. Calling ``process`` again with the same session id resumes after
the checkpointed page; the output is first cut back to that page so no block
appears twice.

Example:
    >>> pipeline = StreamingPipeline(PipelineConfig())
    >>> result = pipeline.process(Path("contract.pdf"), "contract-2024")
    >>> result.complete
    True
"""

from __future__ import annotations

import gc
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

import psutil

from vnscan.config import PipelineConfig
from vnscan.exceptions import (
    CheckpointError,
    DocumentError,
    FailureKind,
    OCRError,
    OutputError,
    PipelineError,
    RasterizeError,
)
from vnscan.models import (
    Checkpoint,
    ProgressEvent,
    StreamingResult,
    validate_session_id,
)
from vnscan.ocr.engine import OCREngine, TesseractEngine, recognize_with_fallback
from vnscan.ocr.rasterizer import PyMuPDFRasterizer, Rasterizer
from vnscan.storage.checkpoints import CheckpointStore
from vnscan.storage.sessions import SessionOutputStore, SessionWriter

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]

OCR_FAILED_TEMPLATE = "[OCR failed for this page - Error: {error}]"


@dataclass
class SessionContext:
    """
    Per-session state owned by the caller.

    Holds the cancellation signal checked between pages. Sessions share no
    mutable state with each other.
    """

    session_id: str
    document_path: Path | None = None
    cancel_event: threading.Event = field(default_factory=threading.Event)
    started_at: float = field(default_factory=time.monotonic)

    def __post_init__(self):
        validate_session_id(self.session_id)

    def cancel(self) -> None:
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()


class StreamingPipeline:
    """Page-by-page OCR of one document per ``process`` call."""

    def __init__(
        self,
        config: PipelineConfig | None = None,
        rasterizer: Rasterizer | None = None,
        engine: OCREngine | None = None,
        checkpoints: CheckpointStore | None = None,
        outputs: SessionOutputStore | None = None,
    ):
        self.config = config or PipelineConfig()
        streaming = self.config.streaming
        self.rasterizer = rasterizer or PyMuPDFRasterizer(image_format=self.config.ocr.image_format)
        self.engine = engine or TesseractEngine(
            tesseract_cmd=self.config.ocr.tesseract_cmd,
            timeout=self.config.ocr.timeout,
        )
        self.checkpoints = checkpoints or CheckpointStore(streaming.checkpoint_dir)
        self.outputs = outputs or SessionOutputStore(streaming.sessions_dir, fsync=streaming.fsync)
        self._process = psutil.Process()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def process(
        self,
        document_path: Path | str,
        session_id: str,
        on_progress: ProgressCallback | None = None,
        *,
        context: SessionContext | None = None,
    ) -> StreamingResult:
        """
        Process (or resume) a session.

        Args:
            document_path: PDF to extract.
            session_id: Caller-chosen id; reusing it resumes the session.
            on_progress: Called after each page is written. Exceptions it
                raises propagate and stop processing.
            context: Carries the cancellation signal. One is created if omitted.

        Returns:
            StreamingResult describing how far the session got.

        Raises:
            PipelineError: If the document cannot be read, a page cannot be
                rendered, or the output cannot be written.
        """
        validate_session_id(session_id)
        document_path = Path(document_path)
        context = context or SessionContext(session_id, document_path)
        streaming = self.config.streaming

        try:
            total_pages = self.rasterizer.get_page_count(document_path)
        except DocumentError as e:
            raise PipelineError(
                f"Failed to get page count: {e}", FailureKind.DOCUMENT, session_id
            ) from e

        checkpoint = self._resumable_checkpoint(session_id, total_pages)
        if checkpoint is not None and checkpoint.complete:
            logger.info("Session %s already complete", session_id)
            return self._result(checkpoint, resumed_from=total_pages)
        if context.cancelled:
            logger.info("Session %s cancelled before start", session_id)
            last_page = checkpoint.last_page_processed if checkpoint else 0
            return StreamingResult(
                session_id=session_id,
                output_path=self.outputs.output_path(session_id),
                total_pages=total_pages,
                last_page_processed=last_page,
                resumed_from=last_page,
                cancelled=True,
            )

        writer, checkpoint = self._open_output(session_id, total_pages, document_path, checkpoint)
        resumed_from = checkpoint.last_page_processed
        processed = 0
        failures = 0
        cancelled = False

        with writer:
            for page in range(resumed_from + 1, total_pages + 1):
                if context.cancelled:
                    logger.info("Session %s cancelled before page %d", session_id, page)
                    cancelled = True
                    break

                started = time.perf_counter()
                text, failed = self._recognize_page(document_path, session_id, page, checkpoint)
                failures += failed

                try:
                    offset = writer.write_page(page, text)
                except OutputError as e:
                    raise PipelineError(str(e), FailureKind.OUTPUT, session_id, page) from e

                checkpoint.record_page(
                    page,
                    time.perf_counter() - started,
                    offset,
                    streaming.max_recorded_durations,
                )
                processed += 1
                if page % streaming.checkpoint_interval == 0:
                    self._save_checkpoint(checkpoint)

                rss = self._check_memory()
                if on_progress is not None:
                    on_progress(
                        ProgressEvent(
                            session_id=session_id,
                            page=page,
                            total_pages=total_pages,
                            percentage=checkpoint.percentage,
                            elapsed_seconds=round(time.monotonic() - context.started_at, 3),
                            memory_rss=rss,
                        )
                    )

        if not cancelled:
            checkpoint.complete = True
            self._save_checkpoint(checkpoint)
            logger.info(
                "Session %s complete: %d pages (%d this run, %d OCR failures)",
                session_id,
                total_pages,
                processed,
                failures,
            )

        return self._result(
            checkpoint,
            resumed_from=resumed_from,
            processed=processed,
            cancelled=cancelled,
            failures=failures,
        )

    # ------------------------------------------------------------------
    # Session setup
    # ------------------------------------------------------------------

    def _resumable_checkpoint(self, session_id: str, total_pages: int) -> Checkpoint | None:
        checkpoint = self.checkpoints.load(session_id)
        if checkpoint is None:
            return None
        if checkpoint.total_pages != total_pages:
            logger.warning(
                "Checkpoint for %s expects %d pages, document has %d; starting over",
                session_id,
                checkpoint.total_pages,
                total_pages,
            )
            return None
        if not self.outputs.exists(session_id):
            logger.warning("Output for %s is missing; starting over", session_id)
            return None
        return checkpoint

    def _open_output(
        self,
        session_id: str,
        total_pages: int,
        document_path: Path,
        checkpoint: Checkpoint | None,
    ) -> tuple[SessionWriter, Checkpoint]:
        try:
            if checkpoint is not None and checkpoint.last_page_processed > 0:
                writer = self.outputs.reopen(
                    session_id,
                    checkpoint.last_page_processed,
                    checkpoint.output_offset,
                )
                if writer is not None:
                    logger.info(
                        "Resuming session %s after page %d/%d",
                        session_id,
                        checkpoint.last_page_processed,
                        total_pages,
                    )
                    return writer, checkpoint
                logger.warning(
                    "Output for %s does not reach page %d; starting over",
                    session_id,
                    checkpoint.last_page_processed,
                )

            writer = self.outputs.create(session_id, total_pages, document_path.name)
        except OutputError as e:
            raise PipelineError(str(e), FailureKind.OUTPUT, session_id) from e

        fresh = Checkpoint(session_id, total_pages, output_offset=writer.offset)
        if checkpoint is not None:
            fresh.error_count = checkpoint.error_count
            fresh.last_error = checkpoint.last_error
        self._save_checkpoint(fresh)
        logger.info("Started session %s: %d pages", session_id, total_pages)
        return writer, fresh

    # ------------------------------------------------------------------
    # Per-page work
    # ------------------------------------------------------------------

    def _recognize_page(
        self,
        document_path: Path,
        session_id: str,
        page: int,
        checkpoint: Checkpoint,
    ) -> tuple[str, int]:
        """Render and OCR one page. Returns the text and 1 if OCR failed, else 0."""
        ocr = self.config.ocr
        try:
            image_path = self.rasterizer.render_page(
                document_path, page, ocr.dpi, self.outputs.image_stem(session_id, page)
            )
        except RasterizeError as e:
            raise PipelineError(
                f"Failed to render page {page}: {e}", FailureKind.RASTERIZE, session_id, page
            ) from e

        try:
            text = recognize_with_fallback(self.engine, image_path, ocr.primary, ocr.fallback)
        except OCRError as e:
            logger.error("OCR failed for %s page %d: %s", session_id, page, e)
            checkpoint.error_count += 1
            checkpoint.last_error = f"Page {page}: {e}"
            return OCR_FAILED_TEMPLATE.format(error=e), 1
        finally:
            try:
                image_path.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning("Could not delete page image %s: %s", image_path, e)

        logger.debug("Recognized %s page %d (%d chars)", session_id, page, len(text))
        return text, 0

    def _save_checkpoint(self, checkpoint: Checkpoint) -> None:
        try:
            self.checkpoints.save(checkpoint)
        except CheckpointError as e:
            logger.error("%s; continuing", e)
            return
        logger.info(
            "Checkpoint %s: page %d/%d",
            checkpoint.session_id,
            checkpoint.last_page_processed,
            checkpoint.total_pages,
        )

    def _check_memory(self) -> int:
        rss = self._process.memory_info().rss
        if rss > self.config.streaming.memory_threshold_bytes:
            logger.debug("RSS %d bytes above threshold; collecting garbage", rss)
            gc.collect()
        return rss

    def _result(
        self,
        checkpoint: Checkpoint,
        resumed_from: int,
        processed: int = 0,
        cancelled: bool = False,
        failures: int = 0,
    ) -> StreamingResult:
        return StreamingResult(
            session_id=checkpoint.session_id,
            output_path=self.outputs.output_path(checkpoint.session_id),
            total_pages=checkpoint.total_pages,
            last_page_processed=checkpoint.last_page_processed,
            pages_processed_this_run=processed,
            resumed_from=resumed_from,
            complete=checkpoint.complete,
            cancelled=cancelled,
            ocr_failures=failures,
        )
