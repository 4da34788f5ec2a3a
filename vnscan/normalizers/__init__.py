"""
Normalizers for Vietnamese OCR text.

- VietnameseOCRCleaner: ordered rule pipeline with change tracking
- extract_fields: dates, amounts, parties and references from cleaned text
- vocabulary: the declarative rule tables the cleaner applies
"""

from vnscan.normalizers.cleaner import DETAILED_CATEGORIES, VietnameseOCRCleaner
from vnscan.normalizers.fields import DocumentFields, extract_fields
from vnscan.normalizers.vocabulary import (
    DOCUMENT_SIGNATURES,
    DOMAIN_VOCABULARY,
    PRESERVE_PATTERNS,
    Rule,
    structure_rules_for,
)

__all__ = [
    # Cleaner
    "VietnameseOCRCleaner",
    "DETAILED_CATEGORIES",
    # Fields
    "DocumentFields",
    "extract_fields",
    # Rule tables
    "Rule",
    "DOCUMENT_SIGNATURES",
    "DOMAIN_VOCABULARY",
    "PRESERVE_PATTERNS",
    "structure_rules_for",
]
