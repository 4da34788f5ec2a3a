"""
Rule tables for Vietnamese OCR correction.

Everything here is data: document-type signatures, token preservation
patterns and ordered substitution rules. The cleaner applies the tables in a
fixed order; adding a rule means adding a line to the right table.

Tesseract's ``vie`` model tends to drop diacritics in runs ("Hop dong" for
"Hợp đồng") and confuse Đ/D, so most rules restore the marked form of a
diacritic-less phrase. Rules are case-insensitive unless listed in a
``*_EXACT`` table.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass

from vnscan.models import CorrectionCategory, DocumentType

Replacement = str | Callable[[re.Match], str]


@dataclass(frozen=True)
class Rule:
    """
    One substitution: compiled pattern, replacement and the category it counts under.

    Case-insensitive rules with a string replacement follow the case of the
    matched text: an all-caps match gives an all-caps replacement, a
    capitalised match a capitalised one.
    """

    pattern: re.Pattern
    replacement: Replacement
    category: CorrectionCategory
    group: str | None = None

    @property
    def matches_case(self) -> bool:
        return isinstance(self.replacement, str) and bool(self.pattern.flags & re.IGNORECASE)

    def render(self, match: re.Match) -> str:
        if callable(self.replacement):
            return self.replacement(match)
        result = match.expand(self.replacement)
        if not self.matches_case or not result:
            return result
        matched = match.group(0)
        letters = [c for c in matched if c.isalpha()]
        if len(letters) > 1 and all(c.isupper() for c in letters):
            return result.upper()
        if matched[:1].isupper():
            return result[:1].upper() + result[1:]
        return result


def _compile(
    entries: list[tuple[str, Replacement]],
    category: CorrectionCategory,
    group: str | None = None,
    flags: int = re.IGNORECASE,
) -> tuple[Rule, ...]:
    return tuple(Rule(re.compile(p, flags), r, category, group) for p, r in entries)


# ============================================================================
# DOCUMENT TYPE SIGNATURES
# ============================================================================

# Order matters: on a tie the earlier type wins.
DOCUMENT_SIGNATURES: dict[DocumentType, tuple[str, ...]] = {
    # Contracts
    DocumentType.CONTRACT_LEASE: (
        r"HỢP ĐỒNG CHO THUÊ",
        r"BÊN CHO THUÊ.*BÊN THUÊ",
        r"thời hạn thuê",
        r"tiền đặt cọc",
    ),
    DocumentType.CONTRACT_EMPLOYMENT: (
        r"HỢP ĐỒNG LAO ĐỘNG",
        r"người lao động",
        r"người sử dụng lao động",
        r"thời gian thử việc",
        r"mức lương",
    ),
    DocumentType.CONTRACT_SERVICE: (
        r"HỢP ĐỒNG DỊCH VỤ",
        r"BÊN CUNG CẤP DỊCH VỤ",
        r"BÊN SỬ DỤNG DỊCH VỤ",
        r"phạm vi dịch vụ",
    ),
    DocumentType.CONTRACT_SALE: (
        r"HỢP ĐỒNG MUA BÁN",
        r"BÊN BÁN.*BÊN MUA",
        r"hàng hóa",
        r"bảo hành",
    ),
    # Financial
    DocumentType.INVOICE: (
        r"HÓA ĐƠN",
        r"VAT",
        r"Mã số thuế",
        r"Đơn giá.*Thành tiền",
        r"Tổng tiền",
    ),
    DocumentType.RECEIPT: (
        r"BIÊN LAI",
        r"PHIẾU THU",
        r"đã nhận của",
        r"tổng số tiền",
    ),
    DocumentType.PAYMENT_REQUEST: (
        r"PHIẾU ĐỀ NGHỊ THANH TOÁN",
        r"đề nghị thanh toán",
        r"người đề nghị",
        r"bộ phận đề nghị",
    ),
    DocumentType.PURCHASE_ORDER: (
        r"ĐƠN ĐẶT HÀNG",
        r"ĐƠN HÀNG",
        r"số lượng.*đơn giá",
        r"ngày giao hàng",
    ),
    # Administrative
    DocumentType.DELIVERY_NOTE: (
        r"PHIẾU GIAO HÀNG",
        r"PHIẾU XUẤT KHO",
        r"người giao hàng",
        r"người nhận hàng",
    ),
    DocumentType.MEETING_MINUTES: (
        r"BIÊN BẢN HỌP",
        r"BIÊN BẢN CUỘC HỌP",
        r"thành phần tham dự",
        r"nội dung cuộc họp",
        r"kết luận",
    ),
    DocumentType.MEMO: (
        r"CÔNG VĂN",
        r"THÔNG BÁO",
        r"Kính gửi",
        r"V/v:",
        r"Trân trọng",
    ),
    DocumentType.REPORT: (
        r"BÁO CÁO",
        r"kết quả.*đạt được",
        r"tình hình.*thực hiện",
        r"đề xuất.*kiến nghị",
    ),
    # Legal
    DocumentType.CERTIFICATE: (
        r"GIẤY CHỨNG NHẬN",
        r"CHỨNG NHẬN",
        r"cấp cho",
        r"có giá trị",
    ),
    DocumentType.POWER_OF_ATTORNEY: (
        r"GIẤY ỦY QUYỀN",
        r"ỦY QUYỀN",
        r"người ủy quyền",
        r"người được ủy quyền",
        r"phạm vi ủy quyền",
    ),
    DocumentType.PROPOSAL: (
        r"ĐỀ XUẤT",
        r"TỜ TRÌNH",
        r"lý do đề xuất",
        r"phương án",
        r"kinh phí",
    ),
}

COMPILED_SIGNATURES: dict[DocumentType, tuple[re.Pattern, ...]] = {
    doc_type: tuple(re.compile(p, re.IGNORECASE | re.DOTALL) for p in patterns)
    for doc_type, patterns in DOCUMENT_SIGNATURES.items()
}


# ============================================================================
# TOKEN PRESERVATION
# ============================================================================

# Applied in order; a token captured by an earlier pattern is not seen by later ones.
PRESERVE_PATTERNS: tuple[re.Pattern, ...] = (
    re.compile(r"\b\d{2,3}_[A-Z]{2,10}\b"),  # Department codes: 02_KT
    re.compile(r"\b[A-Z]_[A-Z]{2}_[A-Z]\d{2}_\d{2}\b"),  # Form codes: F_QT_B01_02
    re.compile(r"\b\d{2}\.\d{2}\.\d{2}\.\d{2}\b"),  # Dotted reference numbers
    re.compile(r"\b\d{6,}/[A-Z0-9-]+\b", re.IGNORECASE),  # Document numbers: 123456/HD-ABC
    re.compile(r"\b[A-Z]{2,}\d+\b"),  # QH14, HD2023
    re.compile(r"\b\d{10,13}\b"),  # Tax codes, account numbers
    re.compile(r"\b0\d{9,10}\b"),  # Phone numbers
)


# ============================================================================
# MECHANICAL ARTIFACTS
# ============================================================================

ARTIFACT_RULES: tuple[Rule, ...] = _compile(
    [
        (r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]", ""),  # Control characters
        (r"[\u200b-\u200d\u2060\ufeff]", ""),  # Zero-width characters
        (r"\u00ad", ""),  # Soft hyphen
        (r"[\u00a0\u202f]", " "),  # Non-breaking spaces
        (r"^¬\d+[ \t]*", ""),  # Scanner line markers
        (r"[„“”]", '"'),
        (r"[\u2044\uff0f]", "/"),
        (r"\.{4,}", "..."),
        (r",{2,}", ","),
        (r"(?<=[ \t])[¬_¦│]{1,2}(?=[ \t]|$)", ""),  # Isolated glyphs
    ],
    CorrectionCategory.ARTIFACT_REMOVAL,
    flags=re.MULTILINE,
)


# ============================================================================
# VIETNAMESE CHARACTER FIXES
# ============================================================================

CHARACTER_RULES: tuple[Rule, ...] = _compile(
    [
        # Đ/đ
        (r"\bDia\s+chi\b", "Địa chỉ"),
        (r"\bDien\s+thoai\b", "Điện thoại"),
        (r"\bdai\s+dien\b", "đại diện"),
        (r"\bDon\s+gia\b", "Đơn giá"),
        (r"\bđon\s+vi\b", "đơn vị"),
        (r"\bđang\s+ky\b", "đăng ký"),
        (r"\bđieu\b", "điều"),
        (r"\bđên\b", "đến"),
        # Ô/ô, Ơ/ơ
        (r"\bHop\s+dong\b", "Hợp đồng"),
        (r"\btoa\s+nha\b", "toà nhà"),
        (r"\bToa\s+an\b", "Toà án"),
        (r"\bbo\s+phan\b", "bộ phận"),
        # Ư/ư
        (r"\btru\s+so\b", "trụ sở"),
        (r"\bdu\s+an\b", "dự án"),
        (r"\bthu\s+tuc\b", "thủ tục"),
        # Ă/ă
        (r"\bBat\s+dong\s+san\b", "Bất động sản"),
        (r"\bnang\s+cap\b", "nâng cấp"),
        (r"\bthang\s+may\b", "thang máy"),
        # Â/â
        (r"\bCan\s+cu\b", "Căn cứ"),
        (r"\bcam\s+doan\b", "cam đoan"),
        (r"\bthao\s+thuan\b", "thoả thuận"),
        # Ê/ê
        (r"\bthiet\s+hai\b", "thiệt hại"),
        (r"\bkiem\s+tra\b", "kiểm tra"),
        (r"\bhieu\s+luc\b", "hiệu lực"),
        # Form labels
        (r"\bNgay\s+cap\b", "Ngày cấp"),
        (r"\bSo\s*:", "Số:"),
        (r"\bNgay\s*:", "Ngày:"),
        (r"\bTP\.\s*HCM\b", "TP.HCM"),
        (r"\bTPHCM\b", "TP.HCM"),
    ],
    CorrectionCategory.CHARACTER_FIX,
)

CHARACTER_RULES_EXACT: tuple[Rule, ...] = _compile(
    [
        (r"\bDIEU\b", "ĐIỀU"),
        (r"\bBen\s+A\b", "Bên A"),
        (r"\bBen\s+B\b", "Bên B"),
        (r"\bBEN\b", "BÊN"),
        (r"\bQuan\s+(\d+)\b", r"Quận \1"),
        (r"\bPhuong\s+(\d+)\b", r"Phường \1"),
    ],
    CorrectionCategory.CHARACTER_FIX,
    flags=0,
)


# ============================================================================
# CORE BUSINESS VOCABULARY
# ============================================================================

CORE_VOCABULARY: tuple[Rule, ...] = _compile(
    [
        # Organisation
        (r"\bCong\s+ty\b", "Công ty"),
        (r"\bCo\s+phan\b", "Cổ phần"),
        (r"\bTong\s+giam\s+doc\b", "Tổng giám đốc"),
        (r"\bGiam\s+doc\b", "Giám đốc"),
        (r"\bHoi\s+dong\b", "Hội đồng"),
        (r"\bquan\s+tri\b", "quản trị"),
        (r"\bGiay\s+chung\s+nhan\b", "Giấy chứng nhận"),
        (r"\bMa\s+so\s+thue\b", "Mã số thuế"),
        # Obligations
        (r"\bnghia\s+vu\b", "nghĩa vụ"),
        (r"\bquyen\s+loi\b", "quyền lợi"),
        (r"\btranh\s+chap\b", "tranh chấp"),
        (r"\bboi\s+thuong\b", "bồi thường"),
        (r"\bphat\s+sinh\b", "phát sinh"),
        (r"\bthuc\s+hien\b", "thực hiện"),
        # Money
        (r"\bthanh\s+toan\b", "thanh toán"),
        (r"\bdat\s+coc\b", "đặt cọc"),
        (r"\bTong\s+cong\b", "Tổng cộng"),
        (r"\bBang\s+chu\b", "Bằng chữ"),
        (r"\bchi\s+phi\b", "chi phí"),
        # Time
        (r"\bThoi\s+han\b", "Thời hạn"),
        (r"\bthoi\s+gian\b", "thời gian"),
        (r"\bban\s+giao\b", "bàn giao"),
        (r"\bgia\s+han\b", "gia hạn"),
        # Verbs and services
        (r"\bsu\s+dung\b", "sử dụng"),
        (r"\bquan\s+ly\b", "quản lý"),
        (r"\bbao\s+ve\b", "bảo vệ"),
        (r"\bve\s+sinh\b", "vệ sinh"),
        (r"\ban\s+ninh\b", "an ninh"),
        (r"\btrat\s+tu\b", "trật tự"),
        # Number words
        (r"\btrieu\b", "triệu"),
        (r"\bnghin\b", "nghìn"),
        (r"\btram\b", "trăm"),
        (r"\bmuoi\b", "mươi"),
        (r"\blam\b(?=\s+(?:nghin|nghìn|tram|trăm|muoi|mươi))", "lăm"),
    ],
    CorrectionCategory.VOCABULARY_FIX,
)


# ============================================================================
# DOMAIN VOCABULARY
# ============================================================================

_DOMAIN_ENTRIES: dict[str, list[tuple[str, Replacement]]] = {
    "general_legal": [
        (r"\bBo\s+luat\s+Dan\s+su\b", "Bộ luật Dân sự"),
        (r"\bBo\s+luat\s+Lao\s+dong\b", "Bộ luật Lao động"),
        (r"\bLuat\s+Doanh\s+nghiep\b", "Luật Doanh nghiệp"),
        (r"\bLuat\s+Kinh\s+Doanh\s+Bat\s+Dong\s+San\b", "Luật Kinh Doanh Bất Động Sản"),
        (r"\bLuat\s+Thuong\s+mai\b", "Luật Thương mại"),
        (r"\bNghi\s+dinh\b", "Nghị định"),
        (r"\bThong\s+tu\b", "Thông tư"),
        (r"\bQuyet\s+dinh\b", "Quyết định"),
        (r"\bqh\d+\b", lambda m: m.group(0).upper()),
    ],
    "contract_terms": [
        (r"\btrach\s+nhiem\b", "trách nhiệm"),
        (r"\bvi\s+pham\b", "vi phạm"),
        (r"\btoan\s+bo\b", "toàn bộ"),
        (r"\bđon\s+phuong\b", "đơn phương"),
        (r"\bcham\s+dut\b", "chấm dứt"),
        (r"\bhuy\s+bo\b", "hủy bỏ"),
        (r"\bco\s+hieu\s+luc\b", "có hiệu lực"),
        (r"\bhet\s+hieu\s+luc\b", "hết hiệu lực"),
        (r"\btrong\s+truong\s+hop\b", "trong trường hợp"),
        (r"\bkhong\s+duoc\b", "không được"),
        (r"\bduoc\s+quyen\b", "được quyền"),
    ],
    "corporate_terms": [
        (r"\bHoi\s+dong\s+quan\s+tri\b", "Hội đồng quản trị"),
        (r"\bBan\s+giam\s+doc\b", "Ban giám đốc"),
        (r"\bPho\s+giam\s+doc\b", "Phó giám đốc"),
        (r"\bKe\s+toan\s+truong\b", "Kế toán trưởng"),
        (r"\bNguoi\s+dai\s+dien\s+phap\s+luat\b", "Người đại diện pháp luật"),
        (r"\bVon\s+dieu\s+le\b", "Vốn điều lệ"),
        (
            r"\bGiay\s+chung\s+nhan\s+dang\s+ky\s+kinh\s+doanh\b",
            "Giấy chứng nhận đăng ký kinh doanh",
        ),
    ],
    "financial_terms": [
        (r"\btam\s+ung\b", "tạm ứng"),
        (r"\bung\s+truoc\b", "ứng trước"),
        (r"\bhoan\s+tra\b", "hoàn trả"),
        (r"\bkhau\s+tru\b", "khấu trừ"),
        (r"\bquyet\s+toan\b", "quyết toán"),
        (r"\blai\s+suat\b", "lãi suất"),
        (r"\bthue\s+GTGT\b", "thuế GTGT"),
        (r"\bthue\s+VAT\b", "thuế VAT"),
        (r"\bhoa\s+don\b", "hóa đơn"),
        (r"\bchung\s+tu\b", "chứng từ"),
        (r"\bphieu\s+chi\b", "phiếu chi"),
        (r"\bphieu\s+thu\b", "phiếu thu"),
        (r"\bbien\s+lai\b", "biên lai"),
    ],
    "real_estate_terms": [
        (r"\bcho\s+thue\b", "cho thuê"),
        (r"\bmua\s+ban\b", "mua bán"),
        (r"\bchuyen\s+nhuong\b", "chuyển nhượng"),
        (r"\bdat\s+dai\b", "đất đai"),
        (r"\bvan\s+phong\b", "văn phòng"),
        (r"\bmat\s+bang\b", "mặt bằng"),
        (r"\bdien\s+tich\b", "diện tích"),
        (r"\bcan\s+ho\b", "căn hộ"),
        (r"\bquyen\s+su\s+dung\s+dat\b", "quyền sử dụng đất"),
        (r"\bphi\s+quan\s+ly\b", "phí quản lý"),
        (r"\bphi\s+bao\s+tri\b", "phí bảo trì"),
        (r"\bphi\s+dich\s+vu\b", "phí dịch vụ"),
    ],
    "employment_terms": [
        (r"\bhop\s+dong\s+lao\s+dong\b", "hợp đồng lao động"),
        (r"\bnguoi\s+lao\s+dong\b", "người lao động"),
        (r"\bnhan\s+vien\b", "nhân viên"),
        (r"\bmuc\s+luong\b", "mức lương"),
        (r"\bluong\b", "lương"),
        (r"\bphu\s+cap\b", "phụ cấp"),
        (r"\bthuong\b", "thưởng"),
        (r"\bnghi\s+phep\b", "nghỉ phép"),
        (r"\bthu\s+viec\b", "thử việc"),
        (r"\bbao\s+hiem\s+xa\s+hoi\b", "bảo hiểm xã hội"),
        (r"\bbao\s+hiem\s+y\s+te\b", "bảo hiểm y tế"),
    ],
    "healthcare_terms": [
        (r"\bbenh\s+vien\b", "bệnh viện"),
        (r"\bphong\s+kham\b", "phòng khám"),
        (r"\bbac\s+si\b", "bác sĩ"),
        (r"\by\s+ta\b", "y tá"),
        (r"\bdieu\s+duong\b", "điều dưỡng"),
        (r"\bbenh\s+nhan\b", "bệnh nhân"),
        (r"\bkham\s+benh\b", "khám bệnh"),
        (r"\bdieu\s+tri\b", "điều trị"),
        (r"\bxet\s+nghiem\b", "xét nghiệm"),
        (r"\bthiet\s+bi\s+y\s+te\b", "thiết bị y tế"),
    ],
    "agriculture_terms": [
        (r"\bnong\s+nghiep\b", "nông nghiệp"),
        (r"\bnong\s+trai\b", "nông trại"),
        (r"\bnong\s+san\b", "nông sản"),
        (r"\ban\s+toan\s+thuc\s+pham\b", "an toàn thực phẩm"),
        (r"\bthuc\s+pham\b", "thực phẩm"),
        (r"\bphan\s+bon\b", "phân bón"),
        (r"\bbao\s+quan\b", "bảo quản"),
        (r"\bche\s+bien\b", "chế biến"),
        (r"\bquy\s+trinh\s+san\s+xuat\b", "quy trình sản xuất"),
    ],
    "administrative_terms": [
        (r"\bthu\s+tuc\s+hanh\s+chinh\b", "thủ tục hành chính"),
        (r"\bgiay\s+to\b", "giấy tờ"),
        (r"\bho\s+so\b", "hồ sơ"),
        (r"\bcan\s+cuoc\s+cong\s+dan\b", "căn cước công dân"),
        (r"\bcong\s+chung\b", "công chứng"),
        (r"\bgiay\s+phep\s+kinh\s+doanh\b", "giấy phép kinh doanh"),
    ],
    "government_terms": [
        (r"\bNha\s+nuoc\b", "Nhà nước"),
        (r"\bChinh\s+phu\b", "Chính phủ"),
        (r"\bUy\s+ban\s+nhan\s+dan\b", "Ủy ban nhân dân"),
        (r"\bCong\s+an\b", "Công an"),
    ],
}

DOMAIN_VOCABULARY: dict[str, tuple[Rule, ...]] = {
    group: _compile(entries, CorrectionCategory.LEGAL_VOCABULARY_FIX, group)
    for group, entries in _DOMAIN_ENTRIES.items()
}


# ============================================================================
# NUMBERS AND DATES
# ============================================================================


def _thousands(match: re.Match) -> str:
    digits = match.group(0)
    # Leave leading-zero codes and year-like values alone
    if digits.startswith("0") or (len(digits) == 4 and 1900 <= int(digits) <= 2099):
        return digits
    return f"{int(digits):,}".replace(",", ".")


NUMBER_RULES: tuple[Rule, ...] = _compile(
    [
        (r"\b(\d{1,2})[/\u2044\\.-](\d{1,2})[/\u2044\\.-](\d{4})\b", r"\1/\2/\3"),
        (r"(?<![\d.,])\d{4,9}(?![\d]|[.,]\d)", _thousands),
        (r"(\d)[ \t]+([.,]\d)", r"\1\2"),
        (r"(\d)([^\W\d_])", r"\1 \2"),
    ],
    CorrectionCategory.NUMBER_FORMATTING,
    flags=0,
)


# ============================================================================
# DOCUMENT STRUCTURE
# ============================================================================

STRUCTURE_RULES: dict[str, tuple[Rule, ...]] = {
    "contract": _compile(
        [
            (r"^([ ]*)(?:DIEU|Dieu|ĐIỀU|Điều)[ ]*(\d+)\b", r"\1ĐIỀU \2"),
            (r"\bI\.[ ]*B[EÊ]N[ ]+CHO[ ]+THU[EÊ]\b", "I. BÊN CHO THUÊ"),
            (r"\bII\.[ ]*B[EÊ]N[ ]+THU[EÊ]\b", "II. BÊN THUÊ"),
            (r"\bPH[UỤ][ ]+L[UỤ]C\b", "PHỤ LỤC"),
        ],
        CorrectionCategory.STRUCTURE_FORMATTING,
        flags=re.MULTILINE,
    ),
    "invoice": _compile(
        [
            (r"\bH[OÓ]A[ ]+[DĐ][OƠ]N[ ]*GTGT\b", "HÓA ĐƠN GTGT"),
            (r"\bH[OÓ]A[ ]+[DĐ][OƠ]N\b", "HÓA ĐƠN"),
        ],
        CorrectionCategory.STRUCTURE_FORMATTING,
        flags=0,
    ),
}


def structure_rules_for(doc_type: DocumentType) -> tuple[Rule, ...]:
    """Rules for a document type, falling back to its family (``contract_*`` -> contract)."""
    return STRUCTURE_RULES.get(doc_type.value) or STRUCTURE_RULES.get(doc_type.family, ())
