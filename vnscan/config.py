"""
Configuration for vnscan extraction sessions.

Configuration is plain dataclasses validated on construction. A full
PipelineConfig can also be read from environment variables or a YAML file.

Example:
    >>> config = PipelineConfig(
    ...     streaming=StreamingConfig(checkpoint_interval=5)
    ... )
    >>> service = SessionService(config)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Literal

import yaml

from vnscan.exceptions import ConfigurationError


@dataclass(frozen=True)
class LanguageConfig:
    """
    One OCR attempt: Tesseract languages plus engine and segmentation modes.

    Example:
        >>> LanguageConfig("vie+eng").tesseract_args
        '--oem 1 --psm 3'
    """

    languages: str = "vie+eng"
    oem: int = 1  # LSTM engine
    psm: int = 3  # Fully automatic page segmentation

    def __post_init__(self):
        if not self.languages:
            raise ConfigurationError("languages must not be empty")
        if not 0 <= self.oem <= 3:
            raise ConfigurationError(f"oem must be between 0 and 3, got {self.oem}")
        if not 0 <= self.psm <= 13:
            raise ConfigurationError(f"psm must be between 0 and 13, got {self.psm}")

    @property
    def tesseract_args(self) -> str:
        return f"--oem {self.oem} --psm {self.psm}"


@dataclass
class OCRConfig:
    """Rendering and recognition settings."""

    dpi: int = 300
    image_format: Literal["jpeg", "png"] = "jpeg"

    # Primary attempt, then a narrower retry before giving up on a page
    primary: LanguageConfig = field(default_factory=LanguageConfig)
    fallback: LanguageConfig = field(default_factory=lambda: LanguageConfig("eng"))

    tesseract_cmd: str | None = None  # Override tesseract binary location
    timeout: float = 0  # Seconds per OCR call, 0 = no limit

    def __post_init__(self):
        """Validate configuration."""
        if not 72 <= self.dpi <= 1200:
            raise ConfigurationError(f"dpi must be between 72 and 1200, got {self.dpi}")
        if self.image_format not in ("jpeg", "png"):
            raise ConfigurationError(
                f"image_format must be 'jpeg' or 'png', got {self.image_format!r}"
            )
        if self.timeout < 0:
            raise ConfigurationError(f"timeout must be >= 0, got {self.timeout}")


@dataclass
class StreamingConfig:
    """
    Settings for the page-by-page streaming pipeline.

    Checkpoints are persisted every ``checkpoint_interval`` pages and at
    completion. When the process RSS crosses
    ``max_memory_mb * memory_threshold_ratio`` a garbage collection is forced.
    """

    enabled: bool = True
    streaming_threshold_mb: float = 10  # Files above this size use streaming

    checkpoint_interval: int = 10
    max_memory_mb: int = 1024
    memory_threshold_ratio: float = 0.8

    checkpoint_dir: Path = Path("checkpoints")
    sessions_dir: Path = Path("temp/sessions")
    retention_days: int = 7

    max_recorded_durations: int = 200
    fsync: bool = True  # fsync the output after every page block
    removal_timeout: float = 30.0  # Seconds to wait for a cancelled worker

    def __post_init__(self):
        """Validate configuration."""
        self.checkpoint_dir = Path(self.checkpoint_dir)
        self.sessions_dir = Path(self.sessions_dir)
        if self.checkpoint_interval < 1:
            raise ConfigurationError(
                f"checkpoint_interval must be >= 1, got {self.checkpoint_interval}"
            )
        if self.max_memory_mb < 1:
            raise ConfigurationError(f"max_memory_mb must be >= 1, got {self.max_memory_mb}")
        if not 0.0 < self.memory_threshold_ratio <= 1.0:
            raise ConfigurationError(
                f"memory_threshold_ratio must be in (0, 1], got {self.memory_threshold_ratio}"
            )
        if self.retention_days < 0:
            raise ConfigurationError(f"retention_days must be >= 0, got {self.retention_days}")
        if self.max_recorded_durations < 1:
            raise ConfigurationError(
                f"max_recorded_durations must be >= 1, got {self.max_recorded_durations}"
            )
        if self.streaming_threshold_mb < 0:
            raise ConfigurationError(
                f"streaming_threshold_mb must be >= 0, got {self.streaming_threshold_mb}"
            )

    @property
    def memory_threshold_bytes(self) -> int:
        return int(self.max_memory_mb * 1024 * 1024 * self.memory_threshold_ratio)


@dataclass
class CleanerConfig:
    """
    Settings for the Vietnamese text correction engine.

    The confidence weights must sum to 1.0.
    """

    detect_document_type: bool = True
    fix_structure: bool = True
    preserve_codes: bool = True

    min_signature_matches: int = 2  # Signature hits needed to classify a document

    # Change tracking
    max_details: int = 100  # Detail samples kept per correction record
    context_width: int = 20  # Characters of context on each side of a change

    # Whitespace caps
    max_indent: int = 4
    max_blank_lines: int = 2

    # Confidence scoring
    change_weight: float = 0.30
    type_weight: float = 0.35
    count_weight: float = 0.20
    vocabulary_weight: float = 0.15
    count_penalty: float = 0.01
    high_confidence_types: tuple[str, ...] = (
        "contract_lease",
        "contract_employment",
        "invoice",
        "payment_request",
    )

    def __post_init__(self):
        """Validate configuration."""
        if self.min_signature_matches < 1:
            raise ConfigurationError(
                f"min_signature_matches must be >= 1, got {self.min_signature_matches}"
            )
        if self.max_details < 0:
            raise ConfigurationError(f"max_details must be >= 0, got {self.max_details}")
        if self.context_width < 0:
            raise ConfigurationError(f"context_width must be >= 0, got {self.context_width}")
        if self.max_indent < 0:
            raise ConfigurationError(f"max_indent must be >= 0, got {self.max_indent}")
        if self.max_blank_lines < 1:
            raise ConfigurationError(f"max_blank_lines must be >= 1, got {self.max_blank_lines}")
        if self.count_penalty < 0:
            raise ConfigurationError(f"count_penalty must be >= 0, got {self.count_penalty}")
        weights = (
            self.change_weight,
            self.type_weight,
            self.count_weight,
            self.vocabulary_weight,
        )
        if any(w < 0 for w in weights):
            raise ConfigurationError("confidence weights must be non-negative")
        if abs(sum(weights) - 1.0) > 0.01:
            raise ConfigurationError(f"confidence weights must sum to 1.0, got {sum(weights):.2f}")


# Environment variable -> (section, field, converter)
_ENV_VARS: dict[str, tuple[str, str, Any]] = {
    "ENABLE_STREAMING": ("streaming", "enabled", lambda v: v.strip().lower() != "false"),
    "STREAMING_THRESHOLD_MB": ("streaming", "streaming_threshold_mb", float),
    "MAX_MEMORY_MB": ("streaming", "max_memory_mb", int),
    "CHECKPOINT_INTERVAL": ("streaming", "checkpoint_interval", int),
    "CHECKPOINT_DIR": ("streaming", "checkpoint_dir", Path),
    "SESSIONS_DIR": ("streaming", "sessions_dir", Path),
    "OCR_DPI": ("ocr", "dpi", int),
    "TESSERACT_CMD": ("ocr", "tesseract_cmd", str),
}


@dataclass
class PipelineConfig:
    """
    Complete configuration for vnscan.

    All options have sensible defaults. Create a config only
    if you need to customize behavior.
    """

    ocr: OCRConfig = field(default_factory=OCRConfig)
    streaming: StreamingConfig = field(default_factory=StreamingConfig)
    cleaner: CleanerConfig = field(default_factory=CleanerConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PipelineConfig:
        """Build a config from nested ``ocr`` / ``streaming`` / ``cleaner`` sections."""
        unknown = set(data) - {"ocr", "streaming", "cleaner"}
        if unknown:
            raise ConfigurationError(f"Unknown config sections: {sorted(unknown)}")

        ocr_data = dict(data.get("ocr") or {})
        for key in ("primary", "fallback"):
            if isinstance(ocr_data.get(key), dict):
                ocr_data[key] = LanguageConfig(**ocr_data[key])
        cleaner_data = dict(data.get("cleaner") or {})
        if "high_confidence_types" in cleaner_data:
            cleaner_data["high_confidence_types"] = tuple(cleaner_data["high_confidence_types"])

        try:
            return cls(
                ocr=OCRConfig(**ocr_data),
                streaming=StreamingConfig(**(data.get("streaming") or {})),
                cleaner=CleanerConfig(**cleaner_data),
            )
        except TypeError as e:
            raise ConfigurationError(f"Invalid config: {e}") from e

    @classmethod
    def from_yaml(cls, path: str | Path) -> PipelineConfig:
        """Load configuration from a YAML file."""
        path = Path(path)
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Cannot read config file {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")
        return cls.from_dict(data)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> PipelineConfig:
        """
        Build a config from environment variables.

        Recognized: ENABLE_STREAMING, STREAMING_THRESHOLD_MB, MAX_MEMORY_MB,
        CHECKPOINT_INTERVAL, CHECKPOINT_DIR, SESSIONS_DIR, OCR_DPI,
        TESSERACT_CMD, OCR_LANG and OCR_FALLBACK_LANG.
        """
        environ = os.environ if environ is None else environ
        sections: dict[str, dict[str, Any]] = {"ocr": {}, "streaming": {}, "cleaner": {}}

        for name, (section, key, convert) in _ENV_VARS.items():
            raw = environ.get(name)
            if raw is None or raw == "":
                continue
            try:
                sections[section][key] = convert(raw)
            except ValueError as e:
                raise ConfigurationError(f"Invalid value for {name}: {raw!r}") from e

        if environ.get("OCR_LANG"):
            sections["ocr"]["primary"] = LanguageConfig(environ["OCR_LANG"])
        if environ.get("OCR_FALLBACK_LANG"):
            sections["ocr"]["fallback"] = LanguageConfig(environ["OCR_FALLBACK_LANG"])

        return cls.from_dict(sections)

    def to_dict(self) -> dict[str, Any]:
        """Plain-data view, suitable for YAML round trips."""

        def section(obj: Any) -> dict[str, Any]:
            out = {}
            for f in fields(obj):
                value = getattr(obj, f.name)
                if isinstance(value, LanguageConfig):
                    value = {"languages": value.languages, "oem": value.oem, "psm": value.psm}
                elif isinstance(value, Path):
                    value = str(value)
                elif isinstance(value, tuple):
                    value = list(value)
                out[f.name] = value
            return out

        return {
            "ocr": section(self.ocr),
            "streaming": section(self.streaming),
            "cleaner": section(self.cleaner),
        }
