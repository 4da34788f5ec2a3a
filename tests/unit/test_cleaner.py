"""Tests for the Vietnamese OCR text cleaner."""

import pytest

from vnscan.config import CleanerConfig
from vnscan.models import CorrectionCategory, DocumentType
from vnscan.normalizers.cleaner import VietnameseOCRCleaner


@pytest.fixture
def cleaner():
    return VietnameseOCRCleaner()


LEASE_TEXT = """HỢP ĐỒNG CHO THUÊ VĂN PHÒNG
I. BEN CHO THUE
CÔNG TY CỔ PHẦN ABC
II. BEN THUE
Dieu 1 Doi tuong
thời hạn thuê 24 tháng, tiền đặt cọc 150000000 đồng
"""


# =============================================================================
# CHANGE TRACKING
# =============================================================================


class TestChangeTracking:
    """Counting and sampling of corrections."""

    def test_address_and_phone_labels(self, cleaner):
        """The canonical example: two character fixes, both sampled."""
        result = cleaner.clean("Dia chi: 123, Dien thoai: 456")

        assert result.cleaned == "Địa chỉ: 123, Điện thoại: 456"
        records = result.metadata.corrections_for(CorrectionCategory.CHARACTER_FIX)
        assert len(records) == 1
        record = records[0]
        assert record.count == 2
        assert [(d.before, d.after) for d in record.details] == [
            ("Dia chi", "Địa chỉ"),
            ("Dien thoai", "Điện thoại"),
        ]
        assert record.remaining == 0
        assert result.metadata.total_corrections == 2

    def test_detail_context_surrounds_change(self, cleaner):
        """Each sample carries text on both sides of the change."""
        result = cleaner.clean("Thong tin lien he khach hang. Dia chi: 12")
        detail = result.metadata.corrections_for(CorrectionCategory.CHARACTER_FIX)[0].details[0]

        assert "Dia chi" in detail.context
        assert detail.context.startswith("lien he")

    def test_details_are_bounded(self, cleaner):
        """Counts stay exact while only the first 100 samples are kept."""
        text = "\n".join(["Dia chi: 1"] * 150)
        result = cleaner.clean(text)
        record = result.metadata.corrections_for(CorrectionCategory.CHARACTER_FIX)[0]

        assert record.count == 150
        assert len(record.details) == 100
        assert record.remaining == 50

    def test_custom_detail_limit(self):
        """max_details caps the samples per record."""
        cleaner = VietnameseOCRCleaner(CleanerConfig(max_details=3))
        result = cleaner.clean(" ".join(["Dien thoai"] * 10))
        record = result.metadata.corrections_for(CorrectionCategory.CHARACTER_FIX)[0]

        assert record.count == 10
        assert len(record.details) == 3

    def test_unchanged_matches_are_not_counted(self, cleaner):
        """Already-correct text produces no correction records."""
        result = cleaner.clean("Địa chỉ: 123, Điện thoại: 456")

        assert result.cleaned == "Địa chỉ: 123, Điện thoại: 456"
        assert result.metadata.corrections == []
        assert result.metadata.total_corrections == 0

    def test_artifacts_counted_without_details(self, cleaner):
        """Artifact removal is counted but not sampled."""
        result = cleaner.clean("Hop\u200b dong\u00a0so 5")
        records = result.metadata.corrections_for(CorrectionCategory.ARTIFACT_REMOVAL)

        assert result.cleaned == "Hợp đồng so 5"
        assert records[0].count == 2
        assert records[0].details == []

    def test_domain_corrections_grouped(self, cleaner):
        """Domain vocabulary produces one record per group."""
        result = cleaner.clean("Theo Bo luat Dan su va Nghi dinh, tai benh vien")
        records = result.metadata.corrections_for(CorrectionCategory.LEGAL_VOCABULARY_FIX)
        by_group = {r.group: r for r in records}

        assert result.cleaned == "Theo Bộ luật Dân sự va Nghị định, tai bệnh viện"
        assert by_group["general_legal"].count == 2
        assert by_group["healthcare_terms"].count == 1
        assert result.metadata.changes_count == 2

    def test_metadata_to_dict(self, cleaner):
        """Metadata serializes with counts and remaining samples."""
        data = cleaner.clean("Dia chi: 1").metadata.to_dict()

        assert data["document_type"] == "unknown"
        assert data["total_corrections"] == 1
        assert data["corrections"][0]["category"] == "character_fix"
        assert data["corrections"][0]["remaining"] == 0


# =============================================================================
# CORRECTION STAGES
# =============================================================================


class TestCorrections:
    """Behaviour of the individual stages."""

    def test_case_follows_match(self, cleaner):
        """All-caps input gives all-caps output, capitalised gives capitalised."""
        assert cleaner.clean("CONG TY").cleaned == "CÔNG TY"
        assert cleaner.clean("Cong ty").cleaned == "Công ty"

    def test_exact_rules_are_case_sensitive(self, cleaner):
        """Ben A is fixed; 'ben a' in running text is left alone."""
        assert cleaner.clean("Ben A va Ben B").cleaned == "Bên A va Bên B"
        assert cleaner.clean("ben a").cleaned == "ben a"

    def test_district_numbers(self, cleaner):
        assert cleaner.clean("Phuong 6, Quan 3").cleaned == "Phường 6, Quận 3"

    def test_uppercase_law_code(self, cleaner):
        assert cleaner.clean("Luat so qh14").cleaned == "Luat so QH14"

    def test_date_separators_normalized(self, cleaner):
        """Dates use slashes; the year is not given a thousands separator."""
        result = cleaner.clean("Ngay ky 15-03-2024")

        assert result.cleaned == "Ngay ky 15/03/2024"
        record = result.metadata.corrections_for(CorrectionCategory.NUMBER_FORMATTING)[0]
        assert record.count == 1

    def test_thousands_separator(self, cleaner):
        assert cleaner.clean("Gia 5000000 dong").cleaned == "Gia 5.000.000 dong"

    def test_years_and_leading_zero_codes_untouched(self, cleaner):
        """Four-digit years and zero-padded codes keep their digits."""
        result = cleaner.clean("Nam 2024, ma 0123")

        assert result.cleaned == "Nam 2024, ma 0123"
        assert result.metadata.corrections_for(CorrectionCategory.NUMBER_FORMATTING) == []

    def test_digit_letter_split(self, cleaner):
        assert cleaner.clean("Tai trong 15kg").cleaned == "Tai trong 15 kg"


# =============================================================================
# TOKEN PRESERVATION
# =============================================================================


class TestPreservation:
    """Codes and identifiers pass through the rules untouched."""

    def test_document_number_preserved(self, cleaner):
        """A document number is not reformatted as an amount."""
        result = cleaner.clean("Hop dong so 123456/HD-ABC")

        assert result.cleaned == "Hợp đồng so 123456/HD-ABC"
        assert result.metadata.corrections_for(CorrectionCategory.NUMBER_FORMATTING) == []

    def test_preservation_can_be_disabled(self):
        cleaner = VietnameseOCRCleaner(CleanerConfig(preserve_codes=False))
        assert cleaner.clean("so 123456/HD-ABC").cleaned == "so 123.456/HD-ABC"

    def test_codes_and_phones_preserved(self, cleaner):
        text = "Ma so thue: 0312345678, Dien thoai: 0909123456, phong 02_KT, mau F_QT_B01_02"
        result = cleaner.clean(text)

        assert result.cleaned == (
            "Mã số thuế: 0312345678, Điện thoại: 0909123456, phong 02_KT, mau F_QT_B01_02"
        )

    def test_samples_show_original_tokens(self, cleaner):
        """Detail context never exposes internal placeholders."""
        result = cleaner.clean("So 123456/HD-ABC Dia chi: 5")
        detail = result.metadata.corrections_for(CorrectionCategory.CHARACTER_FIX)[0].details[0]

        assert "123456/HD-ABC" in detail.context

    @pytest.mark.parametrize(
        "text",
        [
            "0312345678 abcdefghijklmnopq Dia chi",
            "Dia chi abcdefghijklmnopq 0312345678",
        ],
    )
    def test_context_edge_keeps_whole_token(self, cleaner, text):
        """A preserved token at the edge of the sample window is shown whole."""
        result = cleaner.clean(text)
        detail = result.metadata.corrections_for(CorrectionCategory.CHARACTER_FIX)[0].details[0]

        assert detail.before == "Dia chi"
        assert "0312345678" in detail.context
        assert not any("\ue000" <= ch <= "\uf8ff" for ch in detail.context)


# =============================================================================
# WHITESPACE
# =============================================================================


class TestWhitespace:
    """Whitespace normalization."""

    MESSY = "Dong 1    dong\t\tmot   \r\n\n\n\n\n\n        thut le\nDong 2   "

    def test_normalization(self, cleaner):
        """Runs collapse, indents are capped and blank lines limited to two."""
        result = cleaner.clean(self.MESSY)

        assert result.cleaned == "Dong 1 dong mot\n\n\n    thut le\nDong 2"

    def test_idempotent(self, cleaner):
        """Cleaning cleaned text changes nothing further."""
        once = cleaner.clean(self.MESSY).cleaned
        twice = cleaner.clean(once)

        assert twice.cleaned == once
        assert twice.metadata.corrections_for(CorrectionCategory.WHITESPACE_NORMALIZATION) == []

    def test_unicode_trailing_spaces_stripped(self, cleaner):
        result = cleaner.clean("Dong 1\u2003\u3000\nDong 2")

        assert result.cleaned == "Dong 1\nDong 2"
        record = result.metadata.corrections_for(CorrectionCategory.WHITESPACE_NORMALIZATION)[0]
        assert record.count == 1

    def test_document_is_trimmed(self, cleaner):
        assert cleaner.clean("\n\n  Cong ty  \n\n").cleaned == "Công ty"


# =============================================================================
# DOCUMENT TYPES AND STRUCTURE
# =============================================================================


class TestDocumentType:
    """Signature-based classification."""

    def test_lease_detected(self, cleaner):
        assert cleaner.detect_document_type(LEASE_TEXT) is DocumentType.CONTRACT_LEASE

    def test_single_signature_is_unknown(self, cleaner):
        """One hit is below the default threshold of two."""
        assert cleaner.detect_document_type("Kính gửi quý khách") is DocumentType.UNKNOWN

    def test_threshold_configurable(self):
        cleaner = VietnameseOCRCleaner(CleanerConfig(min_signature_matches=1))
        assert cleaner.detect_document_type("Kính gửi quý khách") is DocumentType.MEMO

    def test_tie_goes_to_earlier_type(self, cleaner):
        """Two lease and two employment hits: lease is listed first."""
        text = "thời hạn thuê, tiền đặt cọc, người lao động, mức lương"
        assert cleaner.detect_document_type(text) is DocumentType.CONTRACT_LEASE

    def test_invoice_detected(self, cleaner):
        text = "HÓA ĐƠN GIÁ TRỊ GIA TĂNG\nMã số thuế: 0312345678\nTổng tiền: 1.000.000"
        assert cleaner.detect_document_type(text) is DocumentType.INVOICE

    def test_detection_can_be_disabled(self):
        cleaner = VietnameseOCRCleaner(CleanerConfig(detect_document_type=False))
        result = cleaner.clean(LEASE_TEXT)
        assert result.metadata.document_type is DocumentType.UNKNOWN


class TestStructure:
    """Structure formatting applies only to the detected family."""

    def test_contract_headings(self, cleaner):
        result = cleaner.clean(LEASE_TEXT)

        assert result.metadata.document_type is DocumentType.CONTRACT_LEASE
        assert "I. BÊN CHO THUÊ" in result.cleaned
        assert "II. BÊN THUÊ" in result.cleaned
        assert "\nĐIỀU 1 Doi tuong" in result.cleaned
        assert result.metadata.corrections_for(CorrectionCategory.STRUCTURE_FORMATTING)

    def test_amount_formatted_in_contract(self, cleaner):
        assert "150.000.000 đồng" in cleaner.clean(LEASE_TEXT).cleaned

    def test_unknown_document_keeps_structure(self, cleaner):
        result = cleaner.clean("Dieu 1 Doi tuong")

        assert result.cleaned == "Dieu 1 Doi tuong"
        assert result.metadata.corrections_for(CorrectionCategory.STRUCTURE_FORMATTING) == []

    def test_structure_can_be_disabled(self):
        cleaner = VietnameseOCRCleaner(CleanerConfig(fix_structure=False))
        assert "\nDieu 1 Doi tuong" in cleaner.clean(LEASE_TEXT).cleaned


# =============================================================================
# CONFIDENCE AND EDGE CASES
# =============================================================================


class TestConfidence:
    """Confidence scoring and degenerate input."""

    def test_known_value(self, cleaner):
        """Unknown type, no length change, two corrections."""
        result = cleaner.clean("Dia chi: 123, Dien thoai: 456")
        assert result.metadata.confidence == 0.78

    def test_high_confidence_type_scores_higher(self, cleaner):
        lease = cleaner.clean(LEASE_TEXT).metadata.confidence
        plain = cleaner.clean("Dieu 1 Doi tuong").metadata.confidence

        assert lease > plain

    def test_bounds_on_noisy_input(self, cleaner):
        noisy = "\n".join(["Dia chi....., Dien thoai,,, 12kg"] * 300)
        confidence = cleaner.clean(noisy).metadata.confidence

        assert 0.0 <= confidence <= 1.0

    @pytest.mark.parametrize("value", ["", None, 42, b"Dia chi"])
    def test_empty_or_non_string(self, cleaner, value):
        """Anything but a non-empty string gives an empty, zero-confidence result."""
        result = cleaner.clean(value)

        assert result.cleaned == ""
        assert result.metadata.confidence == 0.0
        assert result.metadata.corrections == []

    def test_length_and_reduction(self, cleaner):
        result = cleaner.clean("  Cong ty  ")

        assert result.metadata.original_length == 11
        assert result.metadata.cleaned_length == 7
        assert result.metadata.reduction == pytest.approx(36.36)


class TestFieldsAndStats:
    """Helpers exposed on the cleaner."""

    def test_extract_fields_uses_detected_type(self, cleaner):
        cleaned = cleaner.clean(LEASE_TEXT).cleaned
        fields = cleaner.extract_fields(cleaned)

        assert fields.document_type is DocumentType.CONTRACT_LEASE
        assert fields.specific["rental_period"] == "24 tháng"

    def test_vocabulary_stats(self, cleaner):
        stats = cleaner.vocabulary_stats()

        assert stats["document_types"] == 15
        assert stats["vocabulary_groups"] == 10
        assert stats["total_patterns"] > 100
