from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from libs.core import logging as core_logging
from libs.core.models import ResumeDocument, TemplateFingerprint
from libs.tools.docx_writer import DEFAULT_THEME, write_document

LOGGER = core_logging.get_logger("resume_render_docx")

DEFAULT_CANDIDATE_NAME = "Candidate Name"


@dataclass(frozen=True)
class BudgetOverrun:
    entry_index: int
    bullet_index: int
    length: int
    budget: int


def render_resume_docx(
    resume: ResumeDocument, fingerprint: Optional[TemplateFingerprint] = None
) -> bytes:
    blocks = build_resume_blocks(resume)
    if fingerprint is not None:
        overruns = budget_overruns(resume, fingerprint)
        if overruns:
            LOGGER.warning(
                "resume_budget_overruns",
                count=len(overruns),
                entries=sorted({item.entry_index for item in overruns}),
            )
    data = write_document(blocks, DEFAULT_THEME)
    LOGGER.info(
        "resume_rendered",
        experience_entries=len(resume.experience),
        blocks=len(blocks),
        templated=fingerprint is not None,
        bytes_written=len(data),
    )
    return data


def build_resume_blocks(resume: ResumeDocument) -> List[Dict[str, Any]]:
    """Layout blocks in canonical section order; empty sections get no heading."""
    header = resume.header
    blocks: List[Dict[str, Any]] = [
        {"type": "name", "text": header.name if _non_blank(header.name) else DEFAULT_CANDIDATE_NAME}
    ]
    contact_line = " | ".join(
        part for part in (header.location, header.phone, header.email) if _non_blank(part)
    )
    if contact_line:
        blocks.append({"type": "contact", "text": contact_line})

    if _non_blank(resume.summary):
        blocks.append({"type": "heading", "text": "SUMMARY"})
        blocks.append({"type": "paragraph", "text": resume.summary})

    if resume.experience:
        blocks.append({"type": "heading", "text": "EXPERIENCE"})
        for entry in resume.experience:
            blocks.append({"type": "role", "title": entry.title, "company": entry.company})
            if _non_blank(entry.dates):
                blocks.append({"type": "dates", "text": entry.dates})
            if entry.bullets:
                blocks.append({"type": "bullets", "items": list(entry.bullets)})

    skills = resume.skills
    if skills is not None:
        skill_lines = [
            f"{label}: {', '.join(items)}"
            for label, items in (
                ("Core", skills.core),
                ("Tools", skills.tools),
                ("Domains", skills.domains),
            )
            if items
        ]
        if skill_lines:
            blocks.append({"type": "heading", "text": "SKILLS"})
            blocks.extend({"type": "paragraph", "style": "term_def", "text": line} for line in skill_lines)

    if resume.education:
        blocks.append({"type": "heading", "text": "EDUCATION"})
        for item in resume.education:
            line = " | ".join(
                part for part in (item.degree, item.school, item.dates) if _non_blank(part)
            )
            blocks.append({"type": "paragraph", "text": line})

    if resume.certifications:
        blocks.append({"type": "heading", "text": "CERTIFICATIONS"})
        blocks.extend({"type": "paragraph", "text": cert} for cert in resume.certifications)

    return blocks


def budget_overruns(
    resume: ResumeDocument, fingerprint: TemplateFingerprint
) -> List[BudgetOverrun]:
    """Bullets longer than the fingerprint allows. Advisory only, nothing is cut."""
    overruns: List[BudgetOverrun] = []
    budgets = fingerprint.experience_budgets
    for entry_index, entry in enumerate(resume.experience):
        budget = budgets[min(entry_index, len(budgets) - 1)]
        limits = budget.bullet_char_budgets
        for bullet_index, bullet in enumerate(entry.bullets):
            limit = limits[min(bullet_index, len(limits) - 1)]
            if len(bullet) > limit:
                overruns.append(
                    BudgetOverrun(
                        entry_index=entry_index,
                        bullet_index=bullet_index,
                        length=len(bullet),
                        budget=limit,
                    )
                )
    return overruns


def _non_blank(value: Optional[str]) -> bool:
    return bool(value and value.strip())
