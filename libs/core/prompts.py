from __future__ import annotations

import json
from typing import Any, Optional

from libs.core.models import JobPosting, RenderMode, TemplateFingerprint, UserProfile

SOURCE_TEXT_LIMIT = 2000

RESUME_JSON_SHAPE = """{
  "header": {"name": "string", "location": "string", "phone": "string", "email": "string", "links": ["string"]},
  "summary": "2-3 sentences, only if the resume should include a summary",
  "experience": [
    {"company": "string", "title": "string", "dates": "Start - End", "bullets": ["string"]}
  ],
  "skills": {"core": ["string"], "tools": ["string"], "domains": ["string"]},
  "education": [{"school": "string", "degree": "string", "dates": "string"}],
  "certifications": ["string"]
}"""

FIT_SCORE_JSON_SHAPE = """{
  "overall": number,
  "experienceAlignment": number,
  "technicalSkillMatch": number,
  "domainRelevance": number,
  "stageCulturalFit": number,
  "impactPotential": number,
  "rationale": {
    "experienceAlignment": "string",
    "technicalSkillMatch": "string",
    "domainRelevance": "string",
    "stageCulturalFit": "string",
    "impactPotential": "string"
  }
}"""


def _dump(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, indent=2, default=str)


def _job_requirements(job: JobPosting) -> dict[str, Any]:
    return {
        "title": job.title,
        "company": job.company,
        "requiredSkills": list(job.required_skills),
        "preferredSkills": list(job.preferred_skills),
        "responsibilities": list(job.responsibilities),
        "seniority": job.seniority,
        "domain": job.domain,
    }


def fit_score_prompt(profile: UserProfile, job: JobPosting) -> str:
    profile_summary = {
        "experience": [
            {
                "title": exp.title,
                "company": exp.company,
                "duration": f"{exp.start_date} - {'Present' if exp.current else exp.end_date or ''}",
                "description": exp.description,
            }
            for exp in profile.experience
        ],
        "skills": [skill.name for skill in profile.skills],
        "certifications": [cert.name for cert in profile.certifications],
    }
    return (
        "You are an expert career advisor. Analyze the fit between this candidate profile "
        "and job posting.\n\n"
        f"Candidate Profile:\n{_dump(profile_summary)}\n\n"
        f"Job Posting:\n{_dump(_job_requirements(job))}\n\n"
        "Score each dimension from 0 to 100: overall, experience alignment, technical skill "
        "match, domain relevance, stage/cultural fit and impact potential. Give a 2-3 sentence "
        "rationale for every dimension except overall.\n\n"
        f"Return ONLY valid JSON in this exact format:\n{FIT_SCORE_JSON_SHAPE}"
    )


def tailored_resume_prompt(
    profile: UserProfile,
    job: JobPosting,
    extracted_resume_text: str,
    mode: RenderMode,
    fingerprint: Optional[TemplateFingerprint] = None,
) -> str:
    profile_summary = {
        "experience": [
            {
                "title": exp.title,
                "company": exp.company,
                "startDate": exp.start_date,
                "endDate": exp.end_date,
                "current": exp.current,
                "description": exp.description,
                "achievements": list(exp.achievements),
            }
            for exp in profile.experience
        ],
        "skills": [skill.name for skill in profile.skills],
        "tools": [tool.name for tool in profile.tools],
        "certifications": [
            {"name": cert.name, "issuer": cert.issuer, "date": cert.date}
            for cert in profile.certifications
        ],
        "domainExperience": list(profile.domain_experience),
    }
    answers = "\n".join(
        f"{key}: {answer.answer}" for key, answer in profile.clarifying_answers.items()
    )
    prompt = (
        "You are an expert resume writer. Generate a tailored resume in JSON format for this "
        "job posting.\n\n"
        "Use ONLY the candidate profile and the job posting below. Do not invent experiences, "
        "companies, roles or skills that are not in the profile; rearrange, highlight and "
        "tailor the existing content.\n\n"
        f"Candidate Profile:\n{_dump(profile_summary)}\n\n"
        f"Job Posting:\n{_dump(_job_requirements(job))}\n\n"
        f"Clarifying Answers:\n{answers or 'none'}\n\n"
        f"Source Resume Text (for reference on phrasing):\n"
        f"{(extracted_resume_text or '')[:SOURCE_TEXT_LIMIT]}\n\n"
    )
    if mode == RenderMode.template and fingerprint is not None:
        prompt += template_constraints(fingerprint)
    else:
        prompt += (
            "STANDARD MODE:\n"
            "- Generate a clean, ATS-friendly one-page resume.\n"
            "- Use 3-4 bullets per experience entry (at most 5 for the most relevant one).\n"
            "- Keep bullets between 80 and 110 characters, never more than 120.\n"
            "- Select the 2-3 most relevant experiences for this job.\n\n"
        )
    prompt += (
        "Return ONLY valid JSON (no markdown, no backticks) with this structure:\n"
        f"{RESUME_JSON_SHAPE}\n"
        "Take header details from the source resume text when available."
    )
    return prompt


def template_constraints(fingerprint: TemplateFingerprint) -> str:
    budgets = fingerprint.experience_budgets
    entry_lines = []
    for index, budget in enumerate(budgets, start=1):
        limits = ", ".join(
            f"#{position}: {limit} chars"
            for position, limit in enumerate(budget.bullet_char_budgets, start=1)
        )
        entry_lines.append(
            f"  Entry {index}: EXACTLY {budget.bullet_count} bullets\n"
            f"    Character limits per bullet: {limits}"
        )
    total_bullets = sum(budget.bullet_count for budget in budgets)
    sections = " -> ".join(tag.value for tag in fingerprint.section_order) or "none detected"
    return (
        "TEMPLATE MODE CONSTRAINTS (must stay on one page):\n"
        f"- Has summary section: {str(fingerprint.has_summary).lower()}\n"
        f"- Section order: {sections}\n"
        f"- Experience entries: EXACTLY {len(budgets)}\n"
        "Per-entry bullet constraints:\n"
        + "\n".join(entry_lines)
        + "\n"
        "- Every bullet MUST stay under its character limit.\n"
        f"- At most {total_bullets} bullets in total.\n"
        "- Do not add sections the template does not have.\n"
        f"- If the profile has more experiences than slots, choose the {len(budgets)} most relevant.\n\n"
    )


JOB_ANALYSIS_JSON_SHAPE = """{
  "title": "string",
  "company": "string",
  "description": "brief summary",
  "requiredSkills": ["string"],
  "preferredSkills": ["string"],
  "responsibilities": ["string"],
  "seniority": "entry | mid | senior | lead",
  "domain": "string (e.g. healthcare, fintech)"
}"""

CLARIFYING_QUESTIONS_JSON_SHAPE = """{
  "questions": [
    {
      "id": "unique-id",
      "text": "Do you have experience with [skill/tool/domain]?",
      "topic": "exact name of the skill, tool or domain",
      "category": "skill | tool | domain | experience",
      "topicKey": "skill:[name] or tool:[name] or domain:[name]",
      "requiresProficiency": true
    }
  ]
}"""


def job_analysis_prompt(job_text: str) -> str:
    return (
        "Parse this job posting and extract the key information.\n\n"
        f"Job Posting:\n{job_text}\n\n"
        f"Return ONLY valid JSON in this format, no additional text:\n{JOB_ANALYSIS_JSON_SHAPE}"
    )


def clarifying_questions_prompt(profile: UserProfile, job: JobPosting, max_questions: int) -> str:
    profile_summary = {
        "skills": [skill.name for skill in profile.skills],
        "tools": [tool.name for tool in profile.tools],
        "domainExperience": list(profile.domain_experience),
        "experience": [
            {"title": exp.title, "description": exp.description} for exp in profile.experience
        ],
    }
    return (
        "You are analyzing gaps between a job posting and a candidate's profile.\n\n"
        "Job Posting:\n"
        f"- Title: {job.title}\n"
        f"- Required Skills: {', '.join(job.required_skills)}\n"
        f"- Preferred Skills: {', '.join(job.preferred_skills)}\n"
        f"- Domain: {job.domain}\n\n"
        f"Candidate Profile:\n{_dump(profile_summary)}\n\n"
        "Generate clarifying questions for skills, tools or domains in the job that are not "
        "clearly present in the profile, or that are mentioned but need a proficiency level.\n"
        "Rules:\n"
        "- Only ask about items directly relevant to the job.\n"
        f"- At most {max_questions} questions.\n"
        "- Each question is short, specific and answerable with yes or no.\n"
        "- Set requiresProficiency for skills and tools.\n"
        "- Return an empty questions array if the profile already covers the job.\n\n"
        f"Return ONLY valid JSON in this format:\n{CLARIFYING_QUESTIONS_JSON_SHAPE}"
    )
