from __future__ import annotations

import logging
import re
from io import BytesIO

from app.core.errors import UnsupportedFileType

logger = logging.getLogger(__name__)

PDF_MIME = "application/pdf"
DOC_MIME = "application/msword"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
SUPPORTED_MIME_TYPES = (PDF_MIME, DOC_MIME, DOCX_MIME)

ZIP_MAGIC = b"PK\x03\x04"

# Printable runs inside a binary Word 97-2003 stream.
_ANSI_RUN = re.compile(rb"[\x20-\x7e\x91-\x97\t\r\n]{4,}")
_UTF16_RUN = re.compile(rb"(?:[\x20-\x7e\t\r\n]\x00){4,}")


def _extract_pdf(content: bytes) -> str:
    from pypdf import PdfReader

    reader = PdfReader(BytesIO(content))
    page_chunks: list[str] = []
    for page in reader.pages:
        page_text = page.extract_text() or ""
        if page_text.strip():
            page_chunks.append(page_text)
    return "\n".join(page_chunks)


def _extract_docx(content: bytes) -> str:
    from docx import Document

    doc = Document(BytesIO(content))
    lines = [paragraph.text for paragraph in doc.paragraphs if paragraph.text.strip()]
    for table in doc.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
            if cells:
                lines.append("\t".join(cells))
    return "\n".join(lines)


def _extract_legacy_doc(content: bytes) -> str:
    # Some tools save OOXML with a .doc name and msword MIME type.
    if content.startswith(ZIP_MAGIC):
        return _extract_docx(content)

    utf16_runs = [run.decode("utf-16-le") for run in _UTF16_RUN.findall(content)]
    ansi_runs = [run.decode("cp1252", errors="ignore") for run in _ANSI_RUN.findall(content)]
    runs = utf16_runs if sum(map(len, utf16_runs)) >= sum(map(len, ansi_runs)) else ansi_runs
    cleaned = [run.replace("\r", "\n").strip() for run in runs]
    return "\n".join(run for run in cleaned if run)


def extract_text(content: bytes, content_type: str) -> str:
    """Return the raw text stream of a resume file.

    PDF text comes from pypdf, Word text from python-docx. Output from
    scanned documents is returned as-is; there is no OCR.
    """
    mime = (content_type or "").split(";")[0].strip().lower()
    if mime == PDF_MIME:
        return _extract_pdf(content)
    if mime == DOCX_MIME:
        return _extract_docx(content)
    if mime == DOC_MIME:
        return _extract_legacy_doc(content)
    logger.info("extract_unsupported_type content_type=%s", mime or "<empty>")
    raise UnsupportedFileType(f"Unsupported file type: {mime or 'unknown'}")
