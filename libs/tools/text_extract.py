from __future__ import annotations

import io
import re
import zipfile
from typing import Callable, Dict, Optional, Tuple

from docx import Document
from docx.opc.exceptions import PackageNotFoundError
from docx.oxml.ns import qn
from lxml.etree import XMLSyntaxError
from pypdf import PdfReader
from pypdf.errors import PdfReadError

from libs.core import logging as core_logging
from libs.core.errors import ExtractionTooShort, InvalidFormat, WrongFormatDetected
from libs.core.models import ExtractedText, SourceFormat

LOGGER = core_logging.get_logger("text_extract")

MIN_EXTRACTED_CHARS = 200

ZIP_SIGNATURE = b"PK\x03\x04"
PDF_SIGNATURE = b"%PDF-"

DOCX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
PDF_MIME_TYPE = "application/pdf"

PDF_MARKERS = (
    "%PDF-",
    " obj <</",
    "/Title (",
    "/Producer (",
    "/Creator (",
    "endobj",
    "/Type /Catalog",
    "/Type /Page",
    "%%EOF",
)
DOCX_MARKERS = (
    "PK\x03\x04",
    "word/document.xml",
    "[Content_Types].xml",
    "_rels/.rels",
)

LIST_BULLET = "• "

# A decoder returns the decoded text and, when known, the page count.
Decoder = Callable[[bytes], Tuple[str, Optional[int]]]


def resolve_format(file_name: str | None = None, mime_type: str | None = None) -> SourceFormat:
    mime = (mime_type or "").strip().lower()
    if mime == DOCX_MIME_TYPE:
        return SourceFormat.docx
    if mime == PDF_MIME_TYPE:
        return SourceFormat.pdf
    name = (file_name or "").strip().lower()
    if name.endswith(".docx"):
        return SourceFormat.docx
    if name.endswith(".pdf"):
        return SourceFormat.pdf
    if name.endswith(".doc") or mime == "application/msword":
        raise InvalidFormat(
            "Old Word format (.doc) is not supported. Save the file as .docx and try again."
        )
    raise InvalidFormat("Unsupported file format. Supported formats: DOCX, PDF.")


def normalize_text(text: str) -> str:
    cleaned = text.replace("\r\n", "\n").replace("\r", "\n")
    cleaned = re.sub(r"\n{3,}", "\n\n", cleaned)
    cleaned = re.sub(r"[ \t]{2,}", " ", cleaned)
    return cleaned.strip()


def decode_docx(data: bytes) -> Tuple[str, Optional[int]]:
    try:
        document = Document(io.BytesIO(data))
    except (PackageNotFoundError, zipfile.BadZipFile, XMLSyntaxError, KeyError, ValueError) as exc:
        raise InvalidFormat(
            "This DOCX file appears to be corrupted. Re-save it as .docx and try again."
        ) from exc

    body: list[str] = []
    for element in document.element.body.iterchildren():
        if element.tag == qn("w:p"):
            body.append(_paragraph_text(element))
        elif element.tag == qn("w:tbl"):
            body.extend(_table_lines(element))

    headers: list[str] = []
    footers: list[str] = []
    for section in document.sections:
        for part, sink in ((section.header, headers), (section.footer, footers)):
            if part.is_linked_to_previous:
                continue
            text = "\n".join(p.text for p in part.paragraphs).strip()
            if text and text not in sink:
                sink.append(text)

    return "\n".join(headers + body + footers), None


def _paragraph_text(element) -> str:
    parts: list[str] = []
    for run in element.iter(qn("w:r")):
        for node in run:
            if node.tag == qn("w:t"):
                parts.append(node.text or "")
            elif node.tag == qn("w:tab"):
                parts.append("\t")
            elif node.tag in (qn("w:br"), qn("w:cr")):
                parts.append("\n")
    text = "".join(parts)
    p_pr = element.find(qn("w:pPr"))
    is_list = False
    if p_pr is not None:
        if p_pr.find(qn("w:numPr")) is not None:
            is_list = True
        style = p_pr.find(qn("w:pStyle"))
        if style is not None and str(style.get(qn("w:val")) or "").lower().startswith("list"):
            is_list = True
    if is_list and text.strip():
        return LIST_BULLET + text.strip()
    return text


def _table_lines(table) -> list[str]:
    lines: list[str] = []
    for row in table.iter(qn("w:tr")):
        cells = []
        for cell in row.iter(qn("w:tc")):
            texts = [_paragraph_text(p).strip() for p in cell.iter(qn("w:p"))]
            cell_text = " ".join(t for t in texts if t)
            if cell_text:
                cells.append(cell_text)
        if cells:
            lines.append(" | ".join(cells))
    return lines


def decode_pdf(data: bytes) -> Tuple[str, Optional[int]]:
    try:
        reader = PdfReader(io.BytesIO(data))
        pages = [page.extract_text() or "" for page in reader.pages]
    except (PdfReadError, ValueError) as exc:
        raise InvalidFormat(f"Failed to extract text from PDF: {exc}") from exc
    return "\n".join(pages), len(pages)


DEFAULT_DECODERS: Dict[SourceFormat, Decoder] = {
    SourceFormat.docx: decode_docx,
    SourceFormat.pdf: decode_pdf,
}


def check_signature(data: bytes, source_format: SourceFormat) -> None:
    if source_format == SourceFormat.docx and not data.startswith(ZIP_SIGNATURE):
        raise InvalidFormat(
            "This file isn't a valid .docx Word document. "
            "Please export/save as .docx (Word 2007+) and try again."
        )
    if source_format == SourceFormat.pdf and not data.startswith(PDF_SIGNATURE):
        raise InvalidFormat("This file isn't a valid PDF document.")


def detect_foreign_markers(text: str) -> str | None:
    for marker in PDF_MARKERS:
        if marker in text:
            return "pdf"
    for marker in DOCX_MARKERS:
        if marker in text:
            return "docx"
    return None


def is_probably_binary(text: str) -> bool:
    preview = text[:500]
    if not preview:
        return False
    if "\x00" in preview:
        return True
    control = sum(1 for ch in preview if ord(ch) < 32 and ch not in "\t\n\r")
    return control > len(preview) * 0.1


def extract(
    document_bytes: bytes,
    declared_format: SourceFormat | str,
    decoder: Decoder | None = None,
) -> ExtractedText:
    try:
        source_format = SourceFormat(declared_format)
    except ValueError as exc:
        raise InvalidFormat(f"Unsupported document format: {declared_format}") from exc
    check_signature(document_bytes, source_format)

    decode = decoder or DEFAULT_DECODERS[source_format]
    raw, pages = decode(document_bytes)
    cleaned = normalize_text(raw)
    LOGGER.info(
        "text_extracted",
        source_format=source_format.value,
        input_bytes=len(document_bytes),
        raw_length=len(raw),
        cleaned_length=len(cleaned),
        pages=pages,
    )

    if len(cleaned) < MIN_EXTRACTED_CHARS:
        LOGGER.warning("extraction_too_short", cleaned_length=len(cleaned))
        raise ExtractionTooShort(
            "Could not extract enough text from the document (possibly scanned). "
            "Try DOCX or enable OCR.",
            extracted_length=len(cleaned),
        )

    foreign = detect_foreign_markers(cleaned)
    if foreign is not None:
        LOGGER.error("foreign_format_markers", source_format=source_format.value, detected=foreign)
        raise WrongFormatDetected(
            f"Invalid extracted text: {foreign.upper()} structure detected in "
            f"{source_format.value.upper()} content."
        )
    if is_probably_binary(cleaned):
        LOGGER.error("binary_content_detected", source_format=source_format.value)
        raise WrongFormatDetected("Invalid extracted text: binary content detected.")

    return ExtractedText(
        raw=raw,
        cleaned=cleaned,
        length=len(cleaned),
        source_format=source_format,
        pages=pages,
    )
