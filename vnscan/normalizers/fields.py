"""
Field extraction from cleaned Vietnamese business documents.

Works on the output of VietnameseOCRCleaner: dates are expected as
``d/m/yyyy`` and amounts with ``.`` thousand separators.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from vnscan.models import DocumentType

DATE_PATTERN = re.compile(r"\b(\d{1,2}/\d{1,2}/\d{4})\b")
AMOUNT_PATTERN = re.compile(r"\b(\d{1,3}(?:\.\d{3})*)\s*(?:đồng|VNĐ|VND|đ)(?!\w)", re.IGNORECASE)
REFERENCE_PATTERN = re.compile(r"(?:Bộ luật|Luật|Nghị định|Thông tư)[^\n]+")

_LESSOR_SECTION = re.compile(r"BÊN CHO THUÊ.*?(?=II\.|BÊN THUÊ|ĐIỀU|$)", re.IGNORECASE | re.DOTALL)
_LESSEE_SECTION = re.compile(r"BÊN THUÊ.*?(?=ĐIỀU|Bên A và Bên B|$)", re.IGNORECASE | re.DOTALL)
_COMPANY_LINE = re.compile(r"CÔNG TY[^\n]+", re.IGNORECASE)
_BUSINESS_NAME = re.compile(r"Tên doanh nghiệp:\s*([^\n]+)", re.IGNORECASE)

# Per document type: field name -> pattern whose first group is the value
_SPECIFIC_FIELDS: dict[DocumentType, dict[str, re.Pattern]] = {
    DocumentType.CONTRACT_LEASE: {
        "rental_period": re.compile(r"thời hạn thuê.*?(\d+[^\n]*?(?:tháng|năm))", re.IGNORECASE),
        "deposit": re.compile(r"đặt cọc\D*?(\d[\d.]*)", re.IGNORECASE),
    },
    DocumentType.INVOICE: {
        "invoice_number": re.compile(r"số[^\n]*?hóa đơn:?\s*(\S+)", re.IGNORECASE),
        "tax_code": re.compile(r"mã số thuế:?\s*(\d+)", re.IGNORECASE),
    },
    DocumentType.PAYMENT_REQUEST: {
        "request_number": re.compile(r"số:?\s*(\S+)", re.IGNORECASE),
        "department": re.compile(r"bộ phận[^\n]*?(\d+_\w+)", re.IGNORECASE),
    },
}


@dataclass
class DocumentFields:
    """Structured fields found in a cleaned document."""

    document_type: DocumentType
    dates: list[str] = field(default_factory=list)
    amounts: list[str] = field(default_factory=list)
    references: list[str] = field(default_factory=list)
    parties: dict[str, str | None] = field(default_factory=dict)
    specific: dict[str, str | None] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "document_type": self.document_type.value,
            "dates": self.dates,
            "amounts": self.amounts,
            "references": self.references,
            "parties": self.parties,
            "specific": self.specific,
        }


def _unique(values: list[str]) -> list[str]:
    return list(dict.fromkeys(values))


def _extract_parties(text: str) -> dict[str, str | None]:
    parties: dict[str, str | None] = {}
    lessor = _LESSOR_SECTION.search(text)
    if lessor:
        company = _COMPANY_LINE.search(lessor.group(0))
        parties["party_a"] = company.group(0).strip() if company else None
    lessee = _LESSEE_SECTION.search(text, lessor.end() if lessor else 0)
    if lessee:
        name = _BUSINESS_NAME.search(lessee.group(0))
        parties["party_b"] = name.group(1).strip() if name else None
    return parties


def extract_fields(text: str, document_type: DocumentType = DocumentType.UNKNOWN) -> DocumentFields:
    """
    Extract dates, amounts, legal references, parties and type-specific fields.

    Args:
        text: Cleaned document text.
        document_type: Detected type; selects the type-specific fields.

    Returns:
        DocumentFields with de-duplicated values in order of appearance.
    """
    specific = {}
    for name, pattern in _SPECIFIC_FIELDS.get(document_type, {}).items():
        match = pattern.search(text)
        specific[name] = match.group(1).strip() if match else None

    return DocumentFields(
        document_type=document_type,
        dates=_unique(DATE_PATTERN.findall(text)),
        amounts=_unique(AMOUNT_PATTERN.findall(text)),
        references=[m.group(0).strip() for m in REFERENCE_PATTERN.finditer(text)],
        parties=_extract_parties(text),
        specific=specific,
    )
