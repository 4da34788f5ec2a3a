"""
Exception classes for vnscan.

All vnscan exceptions inherit from VnScanError,
making it easy to catch all library errors.

Example:
    >>> try:
    ...     service.fetch_output("missing-session")
    ... except vnscan.SessionNotFoundError as e:
    ...     print(f"No such session: {e}")
    ... except vnscan.VnScanError as e:
    ...     print(f"vnscan error: {e}")
"""

from __future__ import annotations

from enum import Enum


class VnScanError(Exception):
    """
    Base exception for all vnscan errors.

    Catch this to handle any vnscan-specific error.
    """

    pass


class ConfigurationError(VnScanError, ValueError):
    """
    Raised for invalid configuration.

    Example:
        >>> StreamingConfig(checkpoint_interval=0)
        ConfigurationError: checkpoint_interval must be >= 1, got 0
    """

    pass


class InvalidSessionIdError(VnScanError, ValueError):
    """Raised when a session id cannot be used to namespace files."""

    pass


class DocumentError(VnScanError):
    """
    Raised when the input document cannot be opened or has no pages.

    Nothing is written for a session whose document fails this way.
    """

    pass


class RasterizeError(VnScanError):
    """Raised when a single page cannot be rendered to an image."""

    pass


class OCRError(VnScanError):
    """Raised when the OCR engine fails on an image."""

    pass


class CheckpointError(VnScanError):
    """
    Raised when a checkpoint cannot be persisted.

    The streaming pipeline logs these and keeps going; the previous
    checkpoint file is never left half-written.
    """

    pass


class OutputError(VnScanError):
    """Raised when the session output cannot be created, reopened or written."""

    pass


class ExtractionError(VnScanError):
    """Raised when whole-document extraction fails."""

    pass


class SessionNotFoundError(VnScanError):
    """Raised when a session has no checkpoint and no output."""

    pass


class SessionActiveError(VnScanError):
    """Raised when starting a session whose id is already being processed."""

    pass


class FailureKind(Enum):
    """What stage of the pipeline failed."""

    DOCUMENT = "document"
    RASTERIZE = "rasterize"
    OCR = "ocr"
    OUTPUT = "output"


_PUBLIC_MESSAGES = {
    FailureKind.DOCUMENT: "The document could not be read.",
    FailureKind.RASTERIZE: "A page of the document could not be rendered.",
    FailureKind.OCR: "Text recognition failed.",
    FailureKind.OUTPUT: "The extraction output could not be written.",
}


class PipelineError(VnScanError):
    """
    Raised when a streaming session cannot continue.

    The last persisted checkpoint is left untouched so the session can be
    resumed by calling the pipeline again with the same session id.

    Attributes:
        kind: Stage that failed.
        session_id: Session being processed.
        page: Page number being processed, if any.
    """

    def __init__(
        self,
        message: str,
        kind: FailureKind,
        session_id: str | None = None,
        page: int | None = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.session_id = session_id
        self.page = page

    @property
    def public_message(self) -> str:
        """Generic message safe to show outside the process."""
        return _PUBLIC_MESSAGES[self.kind]
