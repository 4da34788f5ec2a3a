"""
vnscan: OCR extraction and correction for scanned Vietnamese/English PDFs.

Large documents are processed page by page with checkpoints, so an
interrupted session resumes where it stopped without duplicating pages.
Recognized text can be passed through a deterministic Vietnamese correction
engine that repairs dropped diacritics, normalizes numbers and dates, and
reports every change it made.

Example:
    >>> import vnscan
    >>> with vnscan.SessionService() as service:
    ...     handle = service.start_session("lease.pdf", "lease-2024")
    ...     handle.result()
    ...     cleaned = service.clean_output("lease-2024")
    >>> cleaned.metadata.document_type
    <DocumentType.CONTRACT_LEASE: 'contract_lease'>
"""

from vnscan.config import (
    CleanerConfig,
    LanguageConfig,
    OCRConfig,
    PipelineConfig,
    StreamingConfig,
)
from vnscan.convert import (
    ProcessingStrategy,
    choose_strategy,
    combine_pages,
    extract_text,
    write_text_file,
)
from vnscan.exceptions import (
    CheckpointError,
    ConfigurationError,
    DocumentError,
    ExtractionError,
    FailureKind,
    InvalidSessionIdError,
    OCRError,
    OutputError,
    PipelineError,
    RasterizeError,
    SessionActiveError,
    SessionNotFoundError,
    VnScanError,
)
from vnscan.models import (
    Checkpoint,
    CleaningMetadata,
    CleaningResult,
    CorrectionCategory,
    CorrectionDetail,
    CorrectionRecord,
    DocumentType,
    ExtractionResult,
    ProgressEvent,
    SessionStatistics,
    SessionStatus,
    StreamingResult,
    SweepStats,
)
from vnscan.normalizers import DocumentFields, VietnameseOCRCleaner, extract_fields
from vnscan.ocr import (
    OCREngine,
    PopplerRasterizer,
    PyMuPDFRasterizer,
    Rasterizer,
    SessionContext,
    StreamingPipeline,
    TesseractEngine,
)
from vnscan.service import SessionHandle, SessionService
from vnscan.storage import CheckpointStore, SessionOutputStore

__version__ = "0.1.0"

__all__ = [
    # Entry points
    "SessionService",
    "SessionHandle",
    "StreamingPipeline",
    "SessionContext",
    "extract_text",
    "choose_strategy",
    "combine_pages",
    "write_text_file",
    "ProcessingStrategy",
    # Config
    "PipelineConfig",
    "OCRConfig",
    "StreamingConfig",
    "CleanerConfig",
    "LanguageConfig",
    # Components
    "Rasterizer",
    "PyMuPDFRasterizer",
    "PopplerRasterizer",
    "OCREngine",
    "TesseractEngine",
    "CheckpointStore",
    "SessionOutputStore",
    "VietnameseOCRCleaner",
    "DocumentFields",
    "extract_fields",
    # Models
    "Checkpoint",
    "ProgressEvent",
    "StreamingResult",
    "SessionStatus",
    "SessionStatistics",
    "SweepStats",
    "DocumentType",
    "CorrectionCategory",
    "CorrectionDetail",
    "CorrectionRecord",
    "CleaningMetadata",
    "CleaningResult",
    "ExtractionResult",
    # Exceptions
    "VnScanError",
    "ConfigurationError",
    "InvalidSessionIdError",
    "DocumentError",
    "RasterizeError",
    "OCRError",
    "CheckpointError",
    "OutputError",
    "ExtractionError",
    "SessionNotFoundError",
    "SessionActiveError",
    "PipelineError",
    "FailureKind",
    # Version
    "__version__",
]
