"""
Deterministic correction of Vietnamese OCR output.

The cleaner runs a fixed sequence of stages over a text blob:

1. Document-type detection (signature matching on the raw text)
2. Token preservation (codes, tax numbers, phones swapped for placeholders)
3. Mechanical artifact removal
4. Whitespace normalization (once, idempotent)
5. Vietnamese character repair
6. Core business vocabulary
7. Domain vocabulary, one record per group
8. Number and date formatting
9. Structure formatting for the detected document family
10. Token restoration
11. Document-level trim

Every substitution that changes text is counted. Detail samples are bounded
per record so memory stays flat on very noisy input.

Example:
    >>> cleaner = VietnameseOCRCleaner()
    >>> result = cleaner.clean("Dia chi: 123, Dien thoai: 456")
    >>> result.cleaned
    'Địa chỉ: 123, Điện thoại: 456'
"""

from __future__ import annotations

import logging
import re
import time
from typing import Any

from vnscan.config import CleanerConfig
from vnscan.models import (
    CleaningMetadata,
    CleaningResult,
    CorrectionCategory,
    CorrectionDetail,
    CorrectionRecord,
    DocumentType,
)
from vnscan.normalizers.fields import DocumentFields, extract_fields
from vnscan.normalizers.vocabulary import (
    ARTIFACT_RULES,
    CHARACTER_RULES,
    CHARACTER_RULES_EXACT,
    COMPILED_SIGNATURES,
    CORE_VOCABULARY,
    DOMAIN_VOCABULARY,
    NUMBER_RULES,
    PRESERVE_PATTERNS,
    Rule,
    structure_rules_for,
)

logger = logging.getLogger(__name__)

# Categories that keep before/after samples
DETAILED_CATEGORIES = frozenset(
    {
        CorrectionCategory.CHARACTER_FIX,
        CorrectionCategory.VOCABULARY_FIX,
        CorrectionCategory.LEGAL_VOCABULARY_FIX,
        CorrectionCategory.NUMBER_FORMATTING,
        CorrectionCategory.STRUCTURE_FORMATTING,
    }
)

# Private-use delimiters; digits are shifted into the private-use area too so
# no rule can see a placeholder as a word or a number.
_TOKEN_OPEN = "\ue000"
_TOKEN_CLOSE = "\ue001"
_TOKEN_DIGIT_BASE = 0xE010
_TOKEN_RE = re.compile("\ue000[\ue010-\ue019]+\ue001")


def _placeholder(index: int) -> str:
    digits = "".join(chr(_TOKEN_DIGIT_BASE + int(d)) for d in str(index))
    return f"{_TOKEN_OPEN}{digits}{_TOKEN_CLOSE}"


class _ChangeTracker:
    """Counts changes per (category, group) and keeps the first few samples."""

    def __init__(self, max_details: int, context_width: int, tokens: dict[str, str]):
        self.max_details = max_details
        self.context_width = context_width
        self.tokens = tokens
        self._records: dict[tuple[CorrectionCategory, str | None], CorrectionRecord] = {}

    @property
    def records(self) -> list[CorrectionRecord]:
        return list(self._records.values())

    def restore(self, text: str) -> str:
        if not self.tokens or _TOKEN_OPEN not in text:
            return text
        return _TOKEN_RE.sub(lambda m: self.tokens.get(m.group(0), m.group(0)), text)

    def substitute(self, rule: Rule, text: str) -> str:
        detailed = rule.category in DETAILED_CATEGORIES

        def replace(match: re.Match) -> str:
            before = match.group(0)
            after = rule.render(match)
            if after != before:
                self._record(rule, before, after, text, match, detailed)
            return after

        return rule.pattern.sub(replace, text)

    def _record(
        self,
        rule: Rule,
        before: str,
        after: str,
        text: str,
        match: re.Match,
        detailed: bool,
    ) -> None:
        key = (rule.category, rule.group)
        record = self._records.get(key)
        if record is None:
            record = self._records[key] = CorrectionRecord(rule.category, rule.group)
        record.count += 1
        if detailed and len(record.details) < self.max_details:
            start, end = self._context_bounds(text, match)
            record.details.append(
                CorrectionDetail(
                    before=self.restore(before),
                    after=self.restore(after),
                    context=self.restore(text[start:end]),
                )
            )

    def _context_bounds(self, text: str, match: re.Match) -> tuple[int, int]:
        """Window around a match, widened so no placeholder is cut in half."""
        start = max(0, match.start() - self.context_width)
        end = match.end() + self.context_width
        if self.tokens:
            opened = text.rfind(_TOKEN_OPEN, 0, start)
            if opened > text.rfind(_TOKEN_CLOSE, 0, start):
                start = opened
            closed = text.find(_TOKEN_CLOSE, end)
            next_open = text.find(_TOKEN_OPEN, end)
            if closed != -1 and (next_open == -1 or closed < next_open):
                end = closed + 1
        return start, end


class VietnameseOCRCleaner:
    """
    Rule-based cleaner for Tesseract ``vie+eng`` output.

    Stateless between calls; one instance can be shared across threads.
    """

    def __init__(self, config: CleanerConfig | None = None):
        self.config = config or CleanerConfig()
        self._whitespace_rules = self._build_whitespace_rules()

    def _build_whitespace_rules(self) -> tuple[Rule, ...]:
        category = CorrectionCategory.WHITESPACE_NORMALIZATION
        indent = self.config.max_indent
        blank = self.config.max_blank_lines
        indent_rule = (
            Rule(re.compile(rf"^( {{{indent}}}) +", re.MULTILINE), r"\1", category)
            if indent
            else Rule(re.compile(r"^ +", re.MULTILINE), "", category)
        )
        return (
            Rule(re.compile(r"\r\n?"), "\n", category),
            Rule(re.compile(r"\t"), " ", category),
            Rule(re.compile(r"[^\S\n]+$", re.MULTILINE), "", category),
            indent_rule,
            Rule(re.compile(r"(?<=\S) {2,}(?=\S)"), " ", category),
            Rule(re.compile(rf"\n{{{blank + 2},}}"), "\n" * (blank + 1), category),
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def clean(self, text: str) -> CleaningResult:
        """
        Clean OCR text.

        Args:
            text: Raw OCR output. Anything other than a non-empty string
                yields an empty result with zero confidence.

        Returns:
            CleaningResult with the cleaned text and change metadata.
        """
        started = time.perf_counter()
        if not isinstance(text, str) or not text:
            return CleaningResult(cleaned="", metadata=CleaningMetadata())

        doc_type = (
            self.detect_document_type(text)
            if self.config.detect_document_type
            else DocumentType.UNKNOWN
        )

        tokens: dict[str, str] = {}
        cleaned = self._preserve_tokens(text, tokens) if self.config.preserve_codes else text
        tracker = _ChangeTracker(self.config.max_details, self.config.context_width, tokens)

        cleaned = self._apply(ARTIFACT_RULES, cleaned, tracker)
        cleaned = self._apply(self._whitespace_rules, cleaned, tracker)
        cleaned = self._apply(CHARACTER_RULES, cleaned, tracker)
        cleaned = self._apply(CHARACTER_RULES_EXACT, cleaned, tracker)
        cleaned = self._apply(CORE_VOCABULARY, cleaned, tracker)
        for rules in DOMAIN_VOCABULARY.values():
            cleaned = self._apply(rules, cleaned, tracker)
        cleaned = self._apply(NUMBER_RULES, cleaned, tracker)
        if self.config.fix_structure:
            cleaned = self._apply(structure_rules_for(doc_type), cleaned, tracker)

        cleaned = tracker.restore(cleaned).strip()

        metadata = CleaningMetadata(
            document_type=doc_type,
            original_length=len(text),
            cleaned_length=len(cleaned),
            corrections=tracker.records,
        )
        metadata.confidence = self._confidence(metadata)
        metadata.processing_time_ms = round((time.perf_counter() - started) * 1000, 2)

        logger.debug(
            "Cleaned %d chars as %s: %d corrections, confidence %.2f",
            metadata.original_length,
            doc_type.value,
            metadata.total_corrections,
            metadata.confidence,
        )
        return CleaningResult(cleaned=cleaned, metadata=metadata)

    def detect_document_type(self, text: str) -> DocumentType:
        """Return the type with the most signature hits, if it reaches the threshold."""
        best_type = DocumentType.UNKNOWN
        best_score = 0
        for doc_type, patterns in COMPILED_SIGNATURES.items():
            score = sum(1 for p in patterns if p.search(text))
            if score > best_score:
                best_type, best_score = doc_type, score
        if best_score < self.config.min_signature_matches:
            return DocumentType.UNKNOWN
        return best_type

    def extract_fields(self, text: str) -> DocumentFields:
        """Pull dates, amounts, parties and legal references out of cleaned text."""
        return extract_fields(text, self.detect_document_type(text))

    def vocabulary_stats(self) -> dict[str, Any]:
        domain_patterns = sum(len(rules) for rules in DOMAIN_VOCABULARY.values())
        return {
            "document_types": len(COMPILED_SIGNATURES),
            "vocabulary_groups": len(DOMAIN_VOCABULARY),
            "total_patterns": (
                domain_patterns
                + len(CORE_VOCABULARY)
                + len(CHARACTER_RULES)
                + len(CHARACTER_RULES_EXACT)
            ),
        }

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _preserve_tokens(self, text: str, tokens: dict[str, str]) -> str:
        def stash(match: re.Match) -> str:
            placeholder = _placeholder(len(tokens))
            tokens[placeholder] = match.group(0)
            return placeholder

        for pattern in PRESERVE_PATTERNS:
            text = pattern.sub(stash, text)
        return text

    @staticmethod
    def _apply(rules: tuple[Rule, ...], text: str, tracker: _ChangeTracker) -> str:
        for rule in rules:
            text = tracker.substitute(rule, text)
        return text

    def _confidence(self, metadata: CleaningMetadata) -> float:
        cfg = self.config
        if not metadata.original_length:
            return 0.0

        length_change = abs(metadata.original_length - metadata.cleaned_length)
        change_score = max(0.0, 1 - 2 * length_change / metadata.original_length)

        if metadata.document_type.value in cfg.high_confidence_types:
            type_score = 1.0
        elif metadata.document_type is DocumentType.UNKNOWN:
            type_score = 0.5
        else:
            type_score = 0.8

        count_score = 1 / (1 + cfg.count_penalty * metadata.total_corrections)

        domain_groups = len(metadata.corrections_for(CorrectionCategory.LEGAL_VOCABULARY_FIX))
        vocabulary_score = min(1.0, 0.7 + 0.03 * domain_groups)

        confidence = (
            change_score * cfg.change_weight
            + type_score * cfg.type_weight
            + count_score * cfg.count_weight
            + vocabulary_score * cfg.vocabulary_weight
        )
        return round(min(1.0, max(0.0, confidence)), 2)
