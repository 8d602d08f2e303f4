from __future__ import annotations

import io
from typing import Any, Dict, Iterable, List

from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.oxml import OxmlElement
from docx.oxml.ns import qn
from docx.shared import Inches, Pt
from docx.text.paragraph import Paragraph

from libs.core import logging as core_logging
from libs.core.errors import RenderFailed

LOGGER = core_logging.get_logger("docx_writer")

BULLET_PREFIX = "• "

DEFAULT_THEME: Dict[str, Any] = {
    "fonts": {"body": "Calibri"},
    "font_sizes": {"body": 10.5, "h1": 12},
    "spacing": {"para_after_pt": 2, "heading_before_pt": 10, "tight_after_heading_pt": 3},
    "page_margins_in": {"top": 0.7, "bottom": 0.7, "left": 0.75, "right": 0.75},
}


def write_document(blocks: Iterable[Dict[str, Any]], theme: Dict[str, Any] | None = None) -> bytes:
    """Write layout blocks to a .docx document and return its bytes.

    Supported block types: ``name``, ``contact``, ``heading``, ``paragraph``,
    ``role`` (bold ``title`` followed by `` | company``), ``dates`` and
    ``bullets``. Text is written verbatim. Unknown block types are skipped.
    """
    block_list = [block for block in blocks if isinstance(block, dict)]
    try:
        document = Document()
        _apply_theme(document, theme if isinstance(theme, dict) else DEFAULT_THEME)
        _render_blocks(document, block_list)
        buffer = io.BytesIO()
        document.save(buffer)
    except (KeyError, ValueError, TypeError, OSError) as exc:
        LOGGER.error("docx_write_failed", error=str(exc), blocks=len(block_list))
        raise RenderFailed(f"Failed to write document: {exc}") from exc
    data = buffer.getvalue()
    LOGGER.info("docx_written", blocks=len(block_list), bytes_written=len(data))
    return data


def _apply_theme(document: Document, theme: Dict[str, Any]) -> None:
    fonts = theme.get("fonts", {}) if isinstance(theme.get("fonts", {}), dict) else {}
    font_sizes = (
        theme.get("font_sizes", {}) if isinstance(theme.get("font_sizes", {}), dict) else {}
    )
    normal_style = document.styles["Normal"]
    normal_style.font.name = fonts.get("body", "Calibri")
    normal_style.font.size = Pt(float(font_sizes.get("body", 11)))

    spacing = theme.get("spacing", {}) if isinstance(theme.get("spacing", {}), dict) else {}
    para_after = spacing.get("para_after_pt")
    if para_after is not None:
        normal_style.paragraph_format.space_after = Pt(float(para_after))

    heading_style = document.styles["Heading 1"]
    heading_size = font_sizes.get("h1")
    if heading_size is not None:
        heading_style.font.size = Pt(float(heading_size))
    heading_style.font.bold = True
    heading_style.paragraph_format.space_before = Pt(float(spacing.get("heading_before_pt", 12)))
    heading_style.paragraph_format.space_after = Pt(float(spacing.get("tight_after_heading_pt", 4)))

    margins = (
        theme.get("page_margins_in", {})
        if isinstance(theme.get("page_margins_in", {}), dict)
        else {}
    )
    section = document.sections[0]
    for key, attr in (
        ("top", "top_margin"),
        ("bottom", "bottom_margin"),
        ("left", "left_margin"),
        ("right", "right_margin"),
    ):
        value = margins.get(key)
        if value is not None:
            setattr(section, attr, Inches(float(value)))


def _render_blocks(document: Document, blocks: List[Dict[str, Any]]) -> None:
    for block in blocks:
        block_type = block.get("type")

        if block_type == "name":
            paragraph = document.add_paragraph()
            run = paragraph.add_run(str(block.get("text", "")))
            run.bold = True
            run.font.size = Pt(20)
            paragraph.alignment = WD_ALIGN_PARAGRAPH.CENTER
            paragraph.paragraph_format.space_before = Pt(0)
            paragraph.paragraph_format.space_after = Pt(2)

        elif block_type == "contact":
            paragraph = document.add_paragraph()
            run = paragraph.add_run(str(block.get("text", "")))
            run.font.size = Pt(10)
            paragraph.alignment = WD_ALIGN_PARAGRAPH.CENTER
            paragraph.paragraph_format.space_before = Pt(0)
            paragraph.paragraph_format.space_after = Pt(8)

        elif block_type == "heading":
            paragraph = document.add_heading(str(block.get("text", "")), level=1)
            paragraph.paragraph_format.keep_with_next = True
            _set_paragraph_bottom_border(paragraph)

        elif block_type == "paragraph":
            _add_paragraph(document, str(block.get("text", "")), block.get("style"))

        elif block_type == "role":
            paragraph = document.add_paragraph()
            title_run = paragraph.add_run(str(block.get("title", "")))
            title_run.bold = True
            company = str(block.get("company", "") or "")
            if company:
                paragraph.add_run(f" | {company}")
            paragraph.paragraph_format.space_before = Pt(6)
            paragraph.paragraph_format.space_after = Pt(1)
            paragraph.paragraph_format.keep_with_next = True

        elif block_type == "dates":
            paragraph = document.add_paragraph()
            run = paragraph.add_run(str(block.get("text", "")))
            run.italic = True
            paragraph.paragraph_format.space_before = Pt(0)
            paragraph.paragraph_format.space_after = Pt(2)
            paragraph.paragraph_format.keep_with_next = True

        elif block_type == "bullets":
            items = block.get("items") or []
            for item in items:
                _add_paragraph(document, BULLET_PREFIX + str(item), "bullet")

        else:
            LOGGER.warning("docx_block_skipped", block_type=block_type)


def _add_paragraph(document: Document, text: str, style_hint: Any) -> Paragraph:
    paragraph = document.add_paragraph()
    if style_hint == "term_def":
        paragraph.paragraph_format.space_after = Pt(1)
        _add_term_definition_runs(paragraph, text)
        return paragraph
    paragraph.add_run(text)
    if style_hint == "bullet":
        paragraph.paragraph_format.space_after = Pt(1)
        paragraph.paragraph_format.left_indent = Pt(18)
        paragraph.paragraph_format.first_line_indent = Pt(-9)
    return paragraph


def _set_paragraph_bottom_border(paragraph: Paragraph) -> None:
    p_pr = paragraph._p.get_or_add_pPr()
    p_bdr = p_pr.find(qn("w:pBdr"))
    if p_bdr is None:
        p_bdr = OxmlElement("w:pBdr")
        p_pr.append(p_bdr)
    bottom = OxmlElement("w:bottom")
    bottom.set(qn("w:val"), "single")
    bottom.set(qn("w:sz"), "6")
    bottom.set(qn("w:space"), "1")
    bottom.set(qn("w:color"), "999999")
    p_bdr.append(bottom)


def _add_term_definition_runs(paragraph: Paragraph, text: str) -> None:
    if ":" in text:
        term, definition = text.split(":", 1)
        term_run = paragraph.add_run(term.strip() + ":")
        term_run.bold = True
        if definition.strip():
            paragraph.add_run(" " + definition.strip())
        return
    paragraph.add_run(text)
