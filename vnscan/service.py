"""
Session service: the operations an HTTP layer (or any caller) needs.

Streaming sessions run on a thread pool. Each one gets its own
SessionContext; the service keeps a handle per running session so it can
report activity and cancel a session before removing its files.

Example:
    >>> with SessionService(PipelineConfig.from_env()) as service:
    ...     handle = service.start_session("big-scan.pdf", "scan-42")
    ...     handle.result()
    ...     print(service.get_status("scan-42").percentage)
    100
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

from vnscan.config import PipelineConfig
from vnscan.convert import extract_text
from vnscan.exceptions import PipelineError, SessionActiveError, SessionNotFoundError
from vnscan.models import (
    Checkpoint,
    CleaningResult,
    ExtractionResult,
    ProgressEvent,
    SessionStatistics,
    SessionStatus,
    StreamingResult,
    SweepStats,
    validate_session_id,
)
from vnscan.normalizers.cleaner import VietnameseOCRCleaner
from vnscan.ocr.engine import OCREngine
from vnscan.ocr.rasterizer import Rasterizer
from vnscan.ocr.streaming import SessionContext, StreamingPipeline
from vnscan.storage.checkpoints import CheckpointStore
from vnscan.storage.sessions import SessionOutputStore

logger = logging.getLogger(__name__)


@dataclass
class SessionHandle:
    """A streaming session running in the background."""

    context: SessionContext
    future: Future

    @property
    def session_id(self) -> str:
        return self.context.session_id

    def done(self) -> bool:
        return self.future.done()

    def result(self, timeout: float | None = None) -> StreamingResult:
        """Wait for the session; re-raises its PipelineError if it failed."""
        return self.future.result(timeout)

    def cancel(self) -> None:
        """Ask the session to stop before its next page."""
        self.context.cancel()


class SessionService:
    """Start, inspect, fetch and remove OCR sessions."""

    def __init__(
        self,
        config: PipelineConfig | None = None,
        rasterizer: Rasterizer | None = None,
        engine: OCREngine | None = None,
        cleaner: VietnameseOCRCleaner | None = None,
        max_workers: int = 2,
    ):
        self.config = config or PipelineConfig()
        streaming = self.config.streaming
        self.checkpoints = CheckpointStore(streaming.checkpoint_dir)
        self.outputs = SessionOutputStore(streaming.sessions_dir, fsync=streaming.fsync)
        self.pipeline = StreamingPipeline(
            self.config,
            rasterizer=rasterizer,
            engine=engine,
            checkpoints=self.checkpoints,
            outputs=self.outputs,
        )
        self.cleaner = cleaner or VietnameseOCRCleaner(self.config.cleaner)
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="vnscan-session"
        )
        self._active: dict[str, SessionHandle] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def start_session(
        self,
        document_path: str | Path,
        session_id: str | None = None,
        on_progress: Callable[[ProgressEvent], None] | None = None,
    ) -> SessionHandle:
        """
        Start (or resume) a streaming session in the background.

        Args:
            document_path: PDF to process.
            session_id: Reuse an id to resume; a random id is generated if None.
            on_progress: Called from the worker thread after each page.

        Raises:
            SessionActiveError: If the session is already running.
            InvalidSessionIdError: If ``session_id`` cannot name a file.
        """
        if session_id is None:
            session_id = uuid.uuid4().hex
        session_id = validate_session_id(session_id)
        document_path = Path(document_path)
        with self._lock:
            existing = self._active.get(session_id)
            if existing is not None and not existing.done():
                raise SessionActiveError(f"Session {session_id} is already running")
            context = SessionContext(session_id, document_path)
            future = self._executor.submit(self._run, context, on_progress)
            handle = SessionHandle(context, future)
            self._active[session_id] = handle
        logger.info("Queued session %s for %s", session_id, document_path.name)
        return handle

    def _run(
        self,
        context: SessionContext,
        on_progress: Callable[[ProgressEvent], None] | None,
    ) -> StreamingResult:
        try:
            return self.pipeline.process(
                context.document_path,
                context.session_id,
                on_progress,
                context=context,
            )
        except PipelineError as e:
            logger.error("Session %s failed: %s", context.session_id, e)
            self._record_failure(context.session_id, str(e))
            raise
        finally:
            with self._lock:
                current = self._active.get(context.session_id)
                if current is not None and current.context is context:
                    del self._active[context.session_id]

    def _record_failure(self, session_id: str, message: str) -> None:
        checkpoint = self.checkpoints.load(session_id)
        if checkpoint is None:
            return
        self.checkpoints.update(
            session_id,
            error_count=checkpoint.error_count + 1,
            last_error=message,
        )

    def is_active(self, session_id: str) -> bool:
        with self._lock:
            handle = self._active.get(session_id)
        return handle is not None and not handle.done()

    def get_status(self, session_id: str) -> SessionStatus:
        """Progress of a session; ``exists`` is False when there is no checkpoint."""
        checkpoint = self.checkpoints.load(session_id)
        if checkpoint is None:
            return SessionStatus(
                session_id=session_id,
                exists=False,
                has_output=self.outputs.exists(session_id),
                output_size=self.outputs.size(session_id),
                active=self.is_active(session_id),
            )
        return self._status_from(checkpoint)

    def _status_from(self, checkpoint: Checkpoint) -> SessionStatus:
        session_id = checkpoint.session_id
        return SessionStatus(
            session_id=session_id,
            exists=True,
            complete=checkpoint.complete,
            last_page_processed=checkpoint.last_page_processed,
            total_pages=checkpoint.total_pages,
            percentage=checkpoint.percentage,
            has_output=self.outputs.exists(session_id),
            output_size=self.outputs.size(session_id),
            error_count=checkpoint.error_count,
            last_error=checkpoint.last_error,
            updated_at=checkpoint.updated_at,
            average_page_seconds=checkpoint.average_page_seconds,
            estimated_seconds_remaining=checkpoint.estimated_seconds_remaining,
            active=self.is_active(session_id),
        )

    def fetch_output(self, session_id: str) -> str:
        """
        Return the session output as written so far.

        Raises:
            SessionNotFoundError: If the session has no output.
        """
        text = self.outputs.read(session_id)
        if text is None:
            raise SessionNotFoundError(f"No output for session {session_id}")
        return text

    def clean_output(self, session_id: str) -> CleaningResult:
        """Run the text cleaner over the session output."""
        return self.cleaner.clean(self.fetch_output(session_id))

    def remove_session(self, session_id: str, timeout: float | None = None) -> bool:
        """
        Cancel a running session and delete its checkpoint, output and page images.

        Returns:
            True if anything was removed.

        Raises:
            SessionActiveError: If the session did not stop within ``timeout``.
        """
        validate_session_id(session_id)
        with self._lock:
            handle = self._active.get(session_id)
        if handle is not None and not handle.done():
            handle.cancel()
            timeout = self.config.streaming.removal_timeout if timeout is None else timeout
            try:
                handle.future.exception(timeout)
            except FutureTimeoutError as e:
                raise SessionActiveError(
                    f"Session {session_id} did not stop within {timeout}s"
                ) from e

        removed_checkpoint = self.checkpoints.remove(session_id)
        removed_output = self.outputs.remove(session_id)
        removed_images = self.outputs.remove_page_images(session_id)
        return removed_checkpoint or removed_output or removed_images > 0

    def list_sessions(self) -> list[SessionStatus]:
        """Status of every stored session, most recently updated first."""
        return [self._status_from(cp) for cp in self.checkpoints.list()]

    def statistics(self) -> SessionStatistics:
        return self.checkpoints.summarize()

    def sweep_expired(self, max_age: timedelta | None = None) -> SweepStats:
        """Remove sessions older than ``max_age`` (default: configured retention)."""
        if max_age is None:
            max_age = timedelta(days=self.config.streaming.retention_days)
        return self.checkpoints.sweep_expired(max_age, self.outputs)

    # ------------------------------------------------------------------
    # One-shot operations
    # ------------------------------------------------------------------

    def clean_text(self, text: str) -> CleaningResult:
        return self.cleaner.clean(text)

    def extract_text(self, document_path: str | Path) -> ExtractionResult:
        """Whole-document extraction with this service's rasterizer and engine."""
        return extract_text(
            document_path,
            self.config,
            rasterizer=self.pipeline.rasterizer,
            engine=self.pipeline.engine,
            cleaner=self.cleaner,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def shutdown(self, wait: bool = True, cancel_sessions: bool = True) -> None:
        """Stop accepting sessions; optionally cancel the running ones."""
        if cancel_sessions:
            with self._lock:
                handles = list(self._active.values())
            for handle in handles:
                handle.cancel()
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> SessionService:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()
