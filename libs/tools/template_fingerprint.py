"""Structural fingerprint of a reference resume.

The fingerprint records which sections a template has and how much text its
experience section carries, so generation can target the same footprint.
Section order follows the canonical resume convention rather than the
physical layout of the source, and the entry count is estimated from year
tokens. Both heuristics live behind named functions so a layout-aware parser
can replace them without touching the renderer.
"""

from __future__ import annotations

import re
from typing import List

from libs.core import logging as core_logging
from libs.core.models import (
    DEFAULT_EXPERIENCE_BUDGET,
    ExperienceBudget,
    SectionTag,
    TemplateFingerprint,
)

LOGGER = core_logging.get_logger("template_fingerprint")

SECTION_KEYWORDS: tuple[tuple[SectionTag, tuple[str, ...]], ...] = (
    (SectionTag.summary, ("summary", "objective")),
    (SectionTag.experience, ("experience",)),
    (SectionTag.skills, ("skills",)),
    (SectionTag.education, ("education",)),
    (SectionTag.certifications, ("certification",)),
)

BULLET_MARKERS = ("•", "●", "◦", "▪", "‣", "-", "*")
TOTAL_BUDGET_RATIO = 0.8
MIN_BULLETS_PER_ENTRY = 2

_YEAR_TOKEN = re.compile(r"\b(?:19|20)\d{2}\b")
_EXPERIENCE_START = re.compile(r"experience", re.IGNORECASE)
# A blank line followed by a line opening with a capital letter starts the next block.
_NEXT_BLOCK = re.compile(r"\n[ \t]*\n[ \t]*(?=[A-Z])")


def fingerprint(reference_text: str) -> TemplateFingerprint:
    text = reference_text or ""
    if not text.strip():
        return TemplateFingerprint()

    lines = split_lines(text)
    has_summary = any("summary" in line.lower() or "objective" in line.lower() for line in lines)
    section_order = detect_section_order(text)

    bullets = collect_bullets(experience_block(text))
    budgets = experience_budgets(bullets, estimate_entry_count(text))
    total_char_budget = int(TOTAL_BUDGET_RATIO * len(text))

    result = TemplateFingerprint(
        has_summary=has_summary,
        section_order=section_order,
        experience_budgets=budgets,
        total_char_budget=total_char_budget,
    )
    LOGGER.info(
        "template_fingerprinted",
        sections=[tag.value for tag in section_order],
        bullets_found=len(bullets),
        entries=len(budgets),
        bullet_count=budgets[0].bullet_count,
        total_char_budget=total_char_budget,
    )
    return result


def split_lines(text: str) -> List[str]:
    return [line.strip() for line in text.split("\n") if line.strip()]


def detect_section_order(text: str) -> List[SectionTag]:
    lowered = text.lower()
    return [
        tag
        for tag, keywords in SECTION_KEYWORDS
        if any(keyword in lowered for keyword in keywords)
    ]


def experience_block(text: str) -> str:
    start = _EXPERIENCE_START.search(text)
    if start is None:
        return ""
    end = _NEXT_BLOCK.search(text, start.end())
    return text[start.start() : end.start() if end else len(text)]


def collect_bullets(block: str) -> List[str]:
    bullets: List[str] = []
    for line in split_lines(block):
        if line.startswith(BULLET_MARKERS):
            content = line.lstrip("".join(BULLET_MARKERS)).strip()
            bullets.append(content)
    return bullets


def estimate_entry_count(text: str) -> int:
    """Two year tokens per entry (start and end), rounded up, never zero."""
    years = len(_YEAR_TOKEN.findall(text))
    return max(1, (years + 1) // 2)


def experience_budgets(bullets: List[str], entry_count: int) -> List[ExperienceBudget]:
    if not bullets:
        return [DEFAULT_EXPERIENCE_BUDGET]
    entries = max(1, entry_count)
    bullet_count = max(MIN_BULLETS_PER_ENTRY, len(bullets) // entries)
    mean_length = sum(len(bullet) for bullet in bullets) // len(bullets)
    budget = ExperienceBudget(
        bullet_count=bullet_count,
        bullet_char_budgets=[mean_length] * bullet_count,
    )
    return [budget] * entries
