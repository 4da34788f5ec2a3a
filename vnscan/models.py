"""
Data models for vnscan.

Persistent records (Checkpoint), progress and status views of a streaming
session, and the results of text correction and whole-document extraction.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from vnscan.exceptions import InvalidSessionIdError

SESSION_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


def validate_session_id(session_id: str) -> str:
    """Return ``session_id`` unchanged, or raise if it cannot namespace a file."""
    if not isinstance(session_id, str) or not SESSION_ID_PATTERN.match(session_id):
        raise InvalidSessionIdError(
            f"Invalid session id {session_id!r}: use 1-128 letters, digits, '_' or '-'"
        )
    return session_id


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


# =============================================================================
# CHECKPOINT
# =============================================================================


@dataclass
class Checkpoint:
    """
    Durable progress record for one streaming session.

    ``last_page_processed`` counts pages whose blocks are durably in the
    session output. ``output_offset`` is the output's byte length at that
    moment, so a resumed session can cut away anything written afterwards.
    """

    session_id: str
    total_pages: int
    last_page_processed: int = 0
    complete: bool = False
    updated_at: datetime = field(default_factory=utcnow)
    page_durations: list[float] = field(default_factory=list)
    error_count: int = 0
    last_error: str | None = None
    output_offset: int | None = None

    def __post_init__(self):
        validate_session_id(self.session_id)
        if not _is_int(self.total_pages) or self.total_pages <= 0:
            raise ValueError(f"total_pages must be a positive integer, got {self.total_pages!r}")
        if not _is_int(self.last_page_processed) or not (
            0 <= self.last_page_processed <= self.total_pages
        ):
            raise ValueError(
                f"last_page_processed must be between 0 and {self.total_pages}, "
                f"got {self.last_page_processed!r}"
            )
        if self.complete and self.last_page_processed != self.total_pages:
            raise ValueError("complete checkpoint must have processed every page")
        if not _is_int(self.error_count) or self.error_count < 0:
            raise ValueError(f"error_count must be a non-negative integer, got {self.error_count!r}")
        if self.output_offset is not None and (
            not _is_int(self.output_offset) or self.output_offset < 0
        ):
            raise ValueError(f"output_offset must be a non-negative integer, got {self.output_offset!r}")

    @property
    def percentage(self) -> int:
        return round(self.last_page_processed / self.total_pages * 100)

    @property
    def average_page_seconds(self) -> float | None:
        if not self.page_durations:
            return None
        return sum(self.page_durations) / len(self.page_durations)

    @property
    def estimated_seconds_remaining(self) -> float | None:
        average = self.average_page_seconds
        if average is None:
            return None
        return round(average * (self.total_pages - self.last_page_processed), 1)

    def record_page(self, page: int, seconds: float, offset: int, keep: int) -> None:
        """Advance to ``page`` and remember its duration (last ``keep`` only)."""
        self.last_page_processed = page
        self.output_offset = offset
        self.page_durations.append(round(seconds, 3))
        if len(self.page_durations) > keep:
            del self.page_durations[:-keep]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "session_id": self.session_id,
            "total_pages": self.total_pages,
            "last_page_processed": self.last_page_processed,
            "complete": self.complete,
            "updated_at": self.updated_at.isoformat(),
            "page_durations": list(self.page_durations),
            "error_count": self.error_count,
            "last_error": self.last_error,
            "output_offset": self.output_offset,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Checkpoint:
        """
        Create from dictionary.

        Raises:
            ValueError: If the record is structurally invalid.
        """
        if not isinstance(data, dict):
            raise ValueError("checkpoint record must be a mapping")
        for key in ("session_id", "total_pages", "last_page_processed"):
            if key not in data:
                raise ValueError(f"checkpoint record is missing {key!r}")

        updated_raw = data.get("updated_at")
        try:
            updated_at = datetime.fromisoformat(updated_raw) if updated_raw else utcnow()
        except (TypeError, ValueError) as e:
            raise ValueError(f"invalid updated_at {updated_raw!r}") from e
        if updated_at.tzinfo is None:
            updated_at = updated_at.replace(tzinfo=timezone.utc)

        durations = data.get("page_durations") or []
        if not isinstance(durations, list) or not all(
            isinstance(d, (int, float)) and not isinstance(d, bool) for d in durations
        ):
            raise ValueError("page_durations must be a list of numbers")

        complete = data.get("complete", False)
        if not isinstance(complete, bool):
            raise ValueError("complete must be a boolean")
        last_error = data.get("last_error")
        if last_error is not None and not isinstance(last_error, str):
            raise ValueError("last_error must be a string")

        try:
            return cls(
                session_id=data["session_id"],
                total_pages=data["total_pages"],
                last_page_processed=data["last_page_processed"],
                complete=complete,
                updated_at=updated_at,
                page_durations=[float(d) for d in durations],
                error_count=data.get("error_count", 0),
                last_error=last_error,
                output_offset=data.get("output_offset"),
            )
        except InvalidSessionIdError as e:
            raise ValueError(str(e)) from e


# =============================================================================
# STREAMING SESSION VIEWS
# =============================================================================


@dataclass(frozen=True)
class ProgressEvent:
    """Emitted after each page block is written."""

    session_id: str
    page: int
    total_pages: int
    percentage: int
    elapsed_seconds: float
    memory_rss: int  # Bytes


@dataclass
class StreamingResult:
    """Outcome of one call to StreamingPipeline.process."""

    session_id: str
    output_path: Path
    total_pages: int
    last_page_processed: int
    pages_processed_this_run: int = 0
    resumed_from: int = 0  # Last page already done when this run started
    complete: bool = False
    cancelled: bool = False
    ocr_failures: int = 0


@dataclass
class SessionStatus:
    """Snapshot of a session's progress, built from its checkpoint and output."""

    session_id: str
    exists: bool
    complete: bool = False
    last_page_processed: int = 0
    total_pages: int = 0
    percentage: int = 0
    has_output: bool = False
    output_size: int = 0
    error_count: int = 0
    last_error: str | None = None
    updated_at: datetime | None = None
    average_page_seconds: float | None = None
    estimated_seconds_remaining: float | None = None
    active: bool = False

    @property
    def state(self) -> str:
        if not self.exists:
            return "not_found"
        return "completed" if self.complete else "in_progress"

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "exists": self.exists,
            "state": self.state,
            "complete": self.complete,
            "last_page_processed": self.last_page_processed,
            "total_pages": self.total_pages,
            "percentage": self.percentage,
            "has_output": self.has_output,
            "output_size": self.output_size,
            "error_count": self.error_count,
            "last_error": self.last_error,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "average_page_seconds": self.average_page_seconds,
            "estimated_seconds_remaining": self.estimated_seconds_remaining,
            "active": self.active,
        }


@dataclass
class SessionStatistics:
    """Totals over every stored checkpoint."""

    total_sessions: int = 0
    completed: int = 0
    in_progress: int = 0
    with_errors: int = 0
    pages_processed: int = 0
    pages_queued: int = 0

    @property
    def completion_rate(self) -> int:
        if not self.total_sessions:
            return 0
        return round(self.completed / self.total_sessions * 100)

    @property
    def processed_percentage(self) -> int:
        if not self.pages_queued:
            return 0
        return round(self.pages_processed / self.pages_queued * 100)


@dataclass
class SweepStats:
    """What a retention sweep removed."""

    checkpoints_removed: int = 0
    outputs_removed: int = 0
    images_removed: int = 0
    errors: list[str] = field(default_factory=list)


# =============================================================================
# TEXT CORRECTION
# =============================================================================


class DocumentType(Enum):
    """Document families recognized by signature matching, in priority order."""

    CONTRACT_LEASE = "contract_lease"
    CONTRACT_EMPLOYMENT = "contract_employment"
    CONTRACT_SERVICE = "contract_service"
    CONTRACT_SALE = "contract_sale"
    INVOICE = "invoice"
    RECEIPT = "receipt"
    PAYMENT_REQUEST = "payment_request"
    PURCHASE_ORDER = "purchase_order"
    DELIVERY_NOTE = "delivery_note"
    MEETING_MINUTES = "meeting_minutes"
    MEMO = "memo"
    REPORT = "report"
    CERTIFICATE = "certificate"
    POWER_OF_ATTORNEY = "power_of_attorney"
    PROPOSAL = "proposal"
    UNKNOWN = "unknown"

    @property
    def family(self) -> str:
        """``contract_lease`` -> ``contract``; single-word types are their own family."""
        return self.value.split("_")[0]


class CorrectionCategory(Enum):
    CHARACTER_FIX = "character_fix"
    VOCABULARY_FIX = "vocabulary_fix"
    LEGAL_VOCABULARY_FIX = "legal_vocabulary_fix"
    ARTIFACT_REMOVAL = "artifact_removal"
    WHITESPACE_NORMALIZATION = "whitespace_normalization"
    NUMBER_FORMATTING = "number_formatting"
    STRUCTURE_FORMATTING = "structure_formatting"


@dataclass(frozen=True)
class CorrectionDetail:
    before: str
    after: str
    context: str


@dataclass
class CorrectionRecord:
    """
    Every change of one kind made during a clean.

    ``count`` is exact; ``details`` holds only the first few samples.
    """

    category: CorrectionCategory
    group: str | None = None  # Vocabulary group for domain corrections
    count: int = 0
    details: list[CorrectionDetail] = field(default_factory=list)

    @property
    def remaining(self) -> int:
        return self.count - len(self.details)

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category.value,
            "group": self.group,
            "count": self.count,
            "details": [
                {"before": d.before, "after": d.after, "context": d.context} for d in self.details
            ],
            "remaining": self.remaining,
        }


@dataclass
class CleaningMetadata:
    """Summary of a clean: what changed and how much to trust the result."""

    document_type: DocumentType = DocumentType.UNKNOWN
    original_length: int = 0
    cleaned_length: int = 0
    corrections: list[CorrectionRecord] = field(default_factory=list)
    confidence: float = 0.0
    processing_time_ms: float = 0.0
    timestamp: datetime = field(default_factory=utcnow)

    @property
    def total_corrections(self) -> int:
        return sum(r.count for r in self.corrections)

    @property
    def changes_count(self) -> int:
        return len(self.corrections)

    @property
    def reduction(self) -> float:
        """Percent of characters removed (negative when the text grew)."""
        if not self.original_length:
            return 0.0
        return round((1 - self.cleaned_length / self.original_length) * 100, 2)

    def corrections_for(self, category: CorrectionCategory) -> list[CorrectionRecord]:
        return [r for r in self.corrections if r.category is category]

    def to_dict(self) -> dict[str, Any]:
        return {
            "document_type": self.document_type.value,
            "original_length": self.original_length,
            "cleaned_length": self.cleaned_length,
            "reduction": self.reduction,
            "changes_count": self.changes_count,
            "total_corrections": self.total_corrections,
            "corrections": [r.to_dict() for r in self.corrections],
            "confidence": self.confidence,
            "processing_time_ms": self.processing_time_ms,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class CleaningResult:
    cleaned: str
    metadata: CleaningMetadata

    def to_dict(self) -> dict[str, Any]:
        return {"cleaned": self.cleaned, "metadata": self.metadata.to_dict()}


# =============================================================================
# WHOLE-DOCUMENT EXTRACTION
# =============================================================================


@dataclass
class ExtractionResult:
    """Result of extracting a small document in one pass."""

    original: str
    cleaned: str
    metadata: CleaningMetadata
    pages: int
    processing_time_ms: float = 0.0
    ocr_time_ms: float = 0.0
    cleaning_time_ms: float = 0.0
