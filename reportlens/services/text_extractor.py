"""
Document Text Extractor
Medical Report Insights

Turns a stored upload into plain text for the AI prompt.
Supports TXT (chardet), PDF (PyMuPDF) and DOCX (python-docx).
Legacy .doc files are recognized but not yet supported.
"""

import logging
import os
from enum import Enum

import chardet
import docx
from docx.table import Table
import fitz  # PyMuPDF

from reportlens.core.errors import FormatError

logger = logging.getLogger(__name__)


class DocumentKind(str, Enum):
    TEXT = "txt"
    PDF = "pdf"
    DOCX = "docx"
    LEGACY_WORD = "doc"
    UNKNOWN = "unknown"


# Declared types arrive either as MIME types (from the upload's
# Content-Type header) or as bare extensions.
_DECLARED_TYPES: dict[str, DocumentKind] = {
    "text/plain": DocumentKind.TEXT,
    "txt": DocumentKind.TEXT,
    "application/pdf": DocumentKind.PDF,
    "pdf": DocumentKind.PDF,
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": DocumentKind.DOCX,
    "docx": DocumentKind.DOCX,
    "application/msword": DocumentKind.LEGACY_WORD,
    "doc": DocumentKind.LEGACY_WORD,
}

CONTENT_TYPES: dict[DocumentKind, str] = {
    DocumentKind.TEXT: "text/plain",
    DocumentKind.PDF: "application/pdf",
    DocumentKind.DOCX: "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    DocumentKind.LEGACY_WORD: "application/msword",
}


def classify_document(path: str, declared_type: str = "") -> DocumentKind:
    """Resolve the document kind from the declared type, then the file extension."""
    declared = (declared_type or "").split(";", 1)[0].strip().lower().lstrip(".")
    kind = _DECLARED_TYPES.get(declared)
    if kind is not None:
        return kind
    ext = os.path.splitext(path)[1].lower().lstrip(".")
    return _DECLARED_TYPES.get(ext, DocumentKind.UNKNOWN)


def content_type_for(filename: str) -> str:
    """Content type to record for an upload whose client sent none."""
    return CONTENT_TYPES.get(classify_document(filename), "application/octet-stream")


class TextExtractor:
    """Document-to-text capability used by the report pipeline."""

    def extract(self, path: str, declared_type: str = "") -> str:
        """
        Extract the text of a stored report.

        Raises:
            FormatError: unsupported type, unreadable file or no text content.
        """
        kind = classify_document(path, declared_type)
        logger.info("Extracting %s text from %s", kind.value, path)

        if kind == DocumentKind.TEXT:
            return self._extract_txt(path)
        if kind == DocumentKind.PDF:
            return self._extract_pdf(path)
        if kind == DocumentKind.DOCX:
            return self._extract_docx(path)
        if kind == DocumentKind.LEGACY_WORD:
            raise FormatError(
                "Legacy Word (.doc) files are not yet supported. "
                "Please upload a PDF, DOCX or TXT file."
            )
        ext = os.path.splitext(path)[1] or declared_type or "unknown"
        raise FormatError(f"unsupported file type: {ext}")

    # ── Plain text ───────────────────────────────────────────────
    @staticmethod
    def _read_bytes(path: str) -> bytes:
        try:
            with open(path, "rb") as fh:
                return fh.read()
        except OSError as e:
            raise FormatError(f"could not read stored file: {e.strerror or e}") from e

    def _extract_txt(self, path: str) -> str:
        """Decode a text file verbatim, detecting its encoding."""
        content = self._read_bytes(path)
        detected = chardet.detect(content)
        encoding = detected.get("encoding") or "utf-8"
        try:
            return content.decode(encoding)
        except (UnicodeDecodeError, LookupError):
            return content.decode("utf-8", errors="replace")

    # ── PDF ──────────────────────────────────────────────────────
    def _extract_pdf(self, path: str) -> str:
        try:
            doc = fitz.open(path)
        except Exception as e:
            raise FormatError(f"failed to open PDF: {e}") from e

        pages_text = []
        try:
            for page_num in range(doc.page_count):
                try:
                    page = doc.load_page(page_num)
                    pages_text.append(page.get_text("text"))
                except Exception as e:
                    logger.warning("Skipping PDF page %d of %s: %s", page_num + 1, path, e)
        finally:
            doc.close()

        text = "\n".join(pages_text)
        if not text.strip():
            raise FormatError("no text content found in PDF (possibly image-based)")
        return text

    # ── DOCX ─────────────────────────────────────────────────────
    def _extract_docx(self, path: str) -> str:
        try:
            document = docx.Document(path)
        except Exception as e:
            raise FormatError(f"failed to open DOCX: {e}") from e

        # Body order: lab results usually sit in tables between paragraphs.
        lines = []
        for block in document.iter_inner_content():
            if isinstance(block, Table):
                lines.extend(self._table_rows(block))
            elif block.text:
                lines.append(block.text)

        text = "\n".join(lines)
        if not text.strip():
            raise FormatError("no text content found in DOCX")
        return text

    @staticmethod
    def _table_rows(table: Table) -> list[str]:
        """One tab-separated line per row; merged cells are emitted once."""
        rows = []
        for row in table.rows:
            cells, seen = [], []
            for cell in row.cells:
                if cell._tc in seen:
                    continue
                seen.append(cell._tc)
                cells.append(cell.text.strip())
            if any(cells):
                rows.append("\t".join(cells))
        return rows


text_extractor = TextExtractor()
