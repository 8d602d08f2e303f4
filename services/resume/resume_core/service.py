from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, List, Optional

from libs.core import logging as core_logging, prompts
from libs.core.errors import ResumeError, UpstreamFailed
from libs.core.llm_provider import LLMProvider, LLMProviderError, LLMResponse
from libs.core.models import (
    ClarifyingQuestion,
    ClarifyingQuestionSet,
    FitScore,
    JobAnalysis,
    JobPosting,
    RenderMode,
    RenderOptions,
    ResumeDocument,
    TemplateFingerprint,
    UserProfile,
)
from libs.core.record_store import new_record_id
from libs.tools.structured_response import repair

LOGGER = core_logging.get_logger("resume")

ELLIPSIS = "..."
MAX_CLARIFYING_QUESTIONS = 5
JOB_DESCRIPTION_FALLBACK_CHARS = 200


def analyze_fit(profile: UserProfile, job: JobPosting, provider: LLMProvider) -> FitScore:
    response = _generate(provider, prompts.fit_score_prompt(profile, job))
    score = repair(response.content, FitScore)
    LOGGER.info("fit_score_analyzed", job_id=job.id, overall=score.overall)
    return score


def analyze_job_posting(job_text: str, provider: LLMProvider) -> JobPosting:
    """Parse pasted posting text into a JobPosting, filling defaults for missing fields."""
    text = (job_text or "").strip()
    if not text:
        raise ResumeError("Job posting text is required", status_code=400)
    response = _generate(provider, prompts.job_analysis_prompt(text))
    parsed = repair(response.content, JobAnalysis)
    job = JobPosting(
        id=new_record_id("job"),
        title=_or_default(parsed.title, "Untitled Position"),
        company=_or_default(parsed.company, "Unknown Company"),
        description=_or_default(parsed.description, text[:JOB_DESCRIPTION_FALLBACK_CHARS]),
        required_skills=parsed.required_skills,
        preferred_skills=parsed.preferred_skills,
        responsibilities=parsed.responsibilities,
        seniority=_or_default(parsed.seniority, "mid"),
        domain=_or_default(parsed.domain, "general"),
        location=parsed.location,
        salary=parsed.salary,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )
    LOGGER.info(
        "job_posting_analyzed",
        job_id=job.id,
        required_skills=len(job.required_skills),
        seniority=job.seniority,
    )
    return job


def generate_clarifying_questions(
    profile: UserProfile, job: JobPosting, provider: LLMProvider
) -> List[ClarifyingQuestion]:
    """Ask about job topics the profile does not cover; already-answered topics are dropped."""
    prompt = prompts.clarifying_questions_prompt(profile, job, MAX_CLARIFYING_QUESTIONS)
    response = _generate(provider, prompt)
    parsed = repair(response.content, ClarifyingQuestionSet)
    answered = _answered_topics(profile)
    questions = []
    for index, question in enumerate(parsed.questions, start=1):
        if question.topic_key.strip().lower() in answered or question.text.strip().lower() in answered:
            continue
        questions.append(question.model_copy(update={"id": question.id or f"q-{index}"}))
    questions = questions[:MAX_CLARIFYING_QUESTIONS]
    LOGGER.info(
        "clarifying_questions_generated",
        job_id=job.id,
        generated=len(parsed.questions),
        returned=len(questions),
    )
    return questions


def _answered_topics(profile: UserProfile) -> set[str]:
    topics = set()
    for answer in profile.clarifying_answers.values():
        topics.add(answer.category.strip().lower())
        topics.add(answer.question.strip().lower())
    topics.discard("")
    return topics


def _or_default(value: Optional[str], default: str) -> str:
    cleaned = (value or "").strip()
    return cleaned or default


def generate_tailored_resume(
    profile: UserProfile,
    job: JobPosting,
    extracted_resume_text: str,
    options: RenderOptions,
    provider: LLMProvider,
    fingerprint: Optional[TemplateFingerprint] = None,
) -> ResumeDocument:
    templated = options.mode == RenderMode.template and fingerprint is not None
    prompt = prompts.tailored_resume_prompt(
        profile,
        job,
        extracted_resume_text,
        options.mode,
        fingerprint if templated else None,
    )
    response = _generate(provider, prompt)
    resume = repair(response.content, ResumeDocument)
    if templated:
        resume = fit_resume_to_fingerprint(resume, fingerprint)
    _warn_unknown_companies(resume, profile)
    LOGGER.info(
        "tailored_resume_generated",
        job_id=job.id,
        mode=options.mode.value,
        experience_entries=len(resume.experience),
        total_bullets=sum(len(entry.bullets) for entry in resume.experience),
    )
    return resume


def fit_resume_to_fingerprint(
    resume: ResumeDocument, fingerprint: TemplateFingerprint
) -> ResumeDocument:
    """Trim entries and bullets to the template's slots and shorten long bullets.

    A bullet over its budget keeps its first ``budget - 3`` characters followed
    by ``...``; budgets of 3 or less are hard cuts with no ellipsis.
    """
    budgets = fingerprint.experience_budgets
    if len(resume.experience) > len(budgets):
        LOGGER.warning(
            "template_entries_trimmed",
            generated=len(resume.experience),
            template=len(budgets),
        )
    fitted = []
    for index, (entry, budget) in enumerate(zip(resume.experience, budgets)):
        bullets = list(entry.bullets)
        if len(bullets) > budget.bullet_count:
            LOGGER.warning(
                "template_bullets_trimmed",
                entry=index,
                generated=len(bullets),
                template=budget.bullet_count,
            )
            bullets = bullets[: budget.bullet_count]
        shortened = []
        for bullet, limit in zip(bullets, budget.bullet_char_budgets):
            if len(bullet) > limit:
                LOGGER.warning("template_bullet_shortened", entry=index, length=len(bullet), budget=limit)
                bullet = _shorten(bullet, limit)
            shortened.append(bullet)
        fitted.append(entry.model_copy(update={"bullets": shortened}))
    return resume.model_copy(update={"experience": fitted})


def _shorten(text: str, limit: int) -> str:
    if limit <= len(ELLIPSIS):
        return text[: max(0, limit)]
    return text[: limit - len(ELLIPSIS)] + ELLIPSIS


def _warn_unknown_companies(resume: ResumeDocument, profile: UserProfile) -> None:
    known = {exp.company.strip().lower() for exp in profile.experience}
    if not known:
        return
    unknown = [entry.company for entry in resume.experience if entry.company.strip().lower() not in known]
    if unknown:
        LOGGER.warning("generated_company_not_in_profile", companies=unknown)


def _generate(provider: Any, prompt: str) -> LLMResponse:
    started_at = time.monotonic()
    try:
        response = provider.generate(prompt)
    except (LLMProviderError, ValueError, OSError) as exc:
        LOGGER.warning(
            "llm_generate_failed",
            provider_type=provider.__class__.__name__,
            prompt_chars=len(prompt),
            duration_ms=int((time.monotonic() - started_at) * 1000),
            error=str(exc),
        )
        raise UpstreamFailed(str(exc)) from exc
    LOGGER.info(
        "llm_generate_finished",
        provider_type=provider.__class__.__name__,
        prompt_chars=len(prompt),
        duration_ms=int((time.monotonic() - started_at) * 1000),
    )
    return response
