import docx
import fitz
import pytest

from reportlens.core.errors import FormatError
from reportlens.services import text_extractor as extractor_module
from reportlens.services.text_extractor import (
    DocumentKind,
    TextExtractor,
    classify_document,
    content_type_for,
)


@pytest.fixture
def extractor():
    return TextExtractor()


def _write_pdf(path, pages):
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        if text:
            page.insert_text((72, 72), text)
    doc.save(str(path))
    doc.close()


def test_plain_text_is_decoded_verbatim(extractor, tmp_path):
    content = "  LIPID PANEL\n\nTotal Cholesterol: 210 mg/dL\t(high)\n"
    path = tmp_path / "lipids.txt"
    path.write_text(content, encoding="utf-8")

    assert extractor.extract(str(path), "text/plain") == content


def test_pdf_pages_are_joined_in_order(extractor, tmp_path):
    path = tmp_path / "panel.pdf"
    _write_pdf(path, ["Page one: Hemoglobin 13.5", "Page two: Platelets 250"])

    text = extractor.extract(str(path), "application/pdf")

    assert "Hemoglobin 13.5" in text
    assert "Platelets 250" in text
    assert text.index("Hemoglobin") < text.index("Platelets")


def test_pdf_without_text_is_rejected(extractor, tmp_path):
    path = tmp_path / "scan.pdf"
    _write_pdf(path, [None])

    with pytest.raises(FormatError, match="no text content"):
        extractor.extract(str(path), "application/pdf")


def test_corrupt_pdf_is_rejected(extractor, tmp_path):
    path = tmp_path / "broken.pdf"
    path.write_bytes(b"this is not a pdf")

    with pytest.raises(FormatError):
        extractor.extract(str(path), "application/pdf")


class _FakePage:
    def __init__(self, text):
        self._text = text

    def get_text(self, _kind):
        return self._text


class _FakePdf:
    page_count = 3

    def __init__(self):
        self.closed = False

    def load_page(self, number):
        if number == 1:
            raise RuntimeError("corrupt content stream")
        return _FakePage(f"page {number + 1} text")

    def close(self):
        self.closed = True


def test_failing_pdf_page_is_skipped(extractor, tmp_path, monkeypatch, caplog):
    fake = _FakePdf()
    monkeypatch.setattr(extractor_module.fitz, "open", lambda _path: fake)

    text = extractor.extract(str(tmp_path / "report.pdf"), "application/pdf")

    assert text == "page 1 text\npage 3 text"
    assert fake.closed
    assert "Skipping PDF page 2" in caplog.text


def test_docx_paragraphs_are_extracted(extractor, tmp_path):
    path = tmp_path / "discharge.docx"
    document = docx.Document()
    document.add_paragraph("Discharge summary")
    document.add_paragraph("Creatinine: 1.1 mg/dL")
    document.save(str(path))

    text = extractor.extract(str(path), "docx")

    assert text == "Discharge summary\nCreatinine: 1.1 mg/dL"


def _lab_table(document):
    table = document.add_table(rows=2, cols=3)
    for col, text in enumerate(["Test", "Result", "Range"]):
        table.cell(0, col).text = text
    for col, text in enumerate(["Hemoglobin", "13.5 g/dL", "12.0-15.5"]):
        table.cell(1, col).text = text


def test_docx_table_only_report_is_extracted(extractor, tmp_path):
    path = tmp_path / "cbc_table.docx"
    document = docx.Document()
    _lab_table(document)
    document.save(str(path))

    text = extractor.extract(str(path), "docx")

    assert text == "Test\tResult\tRange\nHemoglobin\t13.5 g/dL\t12.0-15.5"


def test_docx_tables_keep_their_place_between_paragraphs(extractor, tmp_path):
    path = tmp_path / "mixed.docx"
    document = docx.Document()
    document.add_paragraph("COMPLETE BLOOD COUNT")
    _lab_table(document)
    document.add_paragraph("Reviewed by Dr. Patel")
    document.save(str(path))

    text = extractor.extract(str(path), "docx")

    assert text.splitlines() == [
        "COMPLETE BLOOD COUNT",
        "Test\tResult\tRange",
        "Hemoglobin\t13.5 g/dL\t12.0-15.5",
        "Reviewed by Dr. Patel",
    ]


def test_docx_merged_cells_are_not_repeated(extractor, tmp_path):
    path = tmp_path / "merged.docx"
    document = docx.Document()
    table = document.add_table(rows=1, cols=2)
    merged = table.cell(0, 0).merge(table.cell(0, 1))
    merged.text = "LIPID PANEL"
    document.save(str(path))

    assert extractor.extract(str(path), "docx") == "LIPID PANEL"


def test_legacy_word_is_a_format_error(extractor, tmp_path):
    path = tmp_path / "old.doc"
    path.write_bytes(b"\xd0\xcf\x11\xe0legacy")

    with pytest.raises(FormatError, match="not yet supported"):
        extractor.extract(str(path), "application/msword")


def test_unknown_type_is_a_format_error(extractor, tmp_path):
    path = tmp_path / "image.png"
    path.write_bytes(b"\x89PNG")

    with pytest.raises(FormatError, match="unsupported file type"):
        extractor.extract(str(path), "image/png")


def test_missing_file_is_a_format_error(extractor, tmp_path):
    with pytest.raises(FormatError, match="could not read"):
        extractor.extract(str(tmp_path / "gone.txt"), "text/plain")


def test_declared_type_takes_precedence_over_extension(extractor, tmp_path):
    path = tmp_path / "upload.bin"
    path.write_text("Sodium 140 mmol/L", encoding="utf-8")

    assert extractor.extract(str(path), "text/plain; charset=utf-8") == "Sodium 140 mmol/L"


@pytest.mark.parametrize(
    "path, declared, expected",
    [
        ("a.txt", "", DocumentKind.TEXT),
        ("a.PDF", "application/octet-stream", DocumentKind.PDF),
        ("a.docx", "", DocumentKind.DOCX),
        ("a.doc", "", DocumentKind.LEGACY_WORD),
        ("a", ".pdf", DocumentKind.PDF),
        ("a.exe", "", DocumentKind.UNKNOWN),
    ],
)
def test_classify_document(path, declared, expected):
    assert classify_document(path, declared) == expected


def test_content_type_for_known_and_unknown_names():
    assert content_type_for("labs.pdf") == "application/pdf"
    assert content_type_for("notes.TXT") == "text/plain"
    assert content_type_for("archive.zip") == "application/octet-stream"
