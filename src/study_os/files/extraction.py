"""Plain-text extraction from course documents held as base64 payloads."""

from __future__ import annotations

import base64
import binascii
import codecs
import io
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)

MIME_PDF = "application/pdf"
MIME_DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
MIME_XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
MIME_PPTX = "application/vnd.openxmlformats-officedocument.presentationml.presentation"

_KIND_BY_MIME = {
    MIME_PDF: "pdf",
    MIME_DOCX: "docx",
    MIME_XLSX: "xlsx",
    MIME_PPTX: "pptx",
}

_KIND_BY_EXTENSION = {
    ".pdf": "pdf",
    ".docx": "docx",
    ".xlsx": "xlsx",
    ".pptx": "pptx",
    ".txt": "text",
    ".md": "text",
}

_TEXT_ENCODINGS = ("utf-8-sig", "cp1252", "latin-1")


@dataclass(frozen=True, slots=True)
class ExtractionInput:
    name: str
    content_type: str
    data: str  # base64, optionally a data: URL


def detect_kind(file_name: str, content_type: str) -> Optional[str]:
    kind = _KIND_BY_MIME.get(content_type or "")
    if kind:
        return kind
    lower_name = (file_name or "").lower()
    for extension, ext_kind in _KIND_BY_EXTENSION.items():
        if lower_name.endswith(extension):
            return ext_kind
    if (content_type or "").startswith("text/"):
        return "text"
    return None


def is_file_type_supported(file_name: str, content_type: str) -> bool:
    return detect_kind(file_name, content_type) is not None


def decode_base64_payload(data: str) -> bytes:
    if "," in data:
        data = data.split(",", 1)[1]
    return base64.b64decode(data)


def extract_text_from_pdf(content: bytes) -> str:
    from PyPDF2 import PdfReader

    reader = PdfReader(io.BytesIO(content))
    pages = [(page.extract_text() or "") for page in reader.pages]
    return "\n".join(pages).strip()


def extract_text_from_docx(content: bytes) -> str:
    from docx import Document

    doc = Document(io.BytesIO(content))
    parts = [p.text for p in doc.paragraphs if p.text.strip()]
    for table in doc.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
            if cells:
                parts.append(" | ".join(cells))
    return "\n".join(parts).strip()


def extract_text_from_xlsx(content: bytes) -> str:
    from openpyxl import load_workbook

    workbook = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    try:
        sheets: List[str] = []
        for worksheet in workbook.worksheets:
            lines = [f"Sheet: {worksheet.title}"]
            for row in worksheet.iter_rows(values_only=True):
                cells = [str(value) for value in row if value is not None and str(value).strip()]
                if cells:
                    lines.append(" | ".join(cells))
            sheets.append("\n".join(lines))
        return "\n\n".join(sheets).strip()
    finally:
        workbook.close()


def extract_text_from_pptx(content: bytes) -> str:
    from pptx import Presentation

    presentation = Presentation(io.BytesIO(content))
    slides: List[str] = []
    for number, slide in enumerate(presentation.slides, 1):
        runs = [
            run.text
            for shape in slide.shapes
            if shape.has_text_frame
            for paragraph in shape.text_frame.paragraphs
            for run in paragraph.runs
            if run.text.strip()
        ]
        slide_text = " ".join(runs)
        if slide_text.strip():
            slides.append(f"Slide {number}:\n{slide_text}")
    return "\n\n".join(slides).strip()


def extract_text_from_plain(content: bytes) -> str:
    if content.startswith((codecs.BOM_UTF16_LE, codecs.BOM_UTF16_BE)):
        return content.decode("utf-16").strip()
    for encoding in _TEXT_ENCODINGS:
        try:
            return content.decode(encoding).strip()
        except UnicodeDecodeError:
            continue
    return content.decode("utf-8", errors="ignore").strip()


_EXTRACTORS: Dict[str, Callable[[bytes], str]] = {
    "pdf": extract_text_from_pdf,
    "docx": extract_text_from_docx,
    "xlsx": extract_text_from_xlsx,
    "pptx": extract_text_from_pptx,
    "text": extract_text_from_plain,
}


def extract_text(file_name: str, content_type: str, data: str) -> str:
    """
    Extract plain text from one base64 document.

    Unsupported formats and extractor failures yield "" and are logged; they never
    raise, so one bad file cannot break a batch.
    """
    kind = detect_kind(file_name, content_type)
    if kind is None:
        logger.warning("Unsupported file type for text extraction. name=%s type=%s", file_name, content_type)
        return ""

    try:
        content = decode_base64_payload(data)
    except (binascii.Error, ValueError) as e:
        logger.warning("File payload is not valid base64. name=%s error=%s", file_name, e)
        return ""

    try:
        return _EXTRACTORS[kind](content)
    except Exception:
        logger.exception("Text extraction failed. name=%s kind=%s", file_name, kind)
        return ""


def extract_texts(inputs: Sequence[ExtractionInput]) -> List[Optional[str]]:
    """Extract every input; position i holds input i's text, or None when it produced none."""
    results: List[Optional[str]] = []
    for item in inputs:
        text = extract_text(item.name, item.content_type, item.data)
        results.append(text if text.strip() else None)
    return results
