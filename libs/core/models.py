from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class SectionTag(str, Enum):
    summary = "summary"
    experience = "experience"
    skills = "skills"
    education = "education"
    certifications = "certifications"


class RenderMode(str, Enum):
    standard = "standard"
    template = "template"


class SourceFormat(str, Enum):
    docx = "docx"
    pdf = "pdf"


class ExtractedText(CamelModel):
    model_config = ConfigDict(frozen=True)

    raw: str
    cleaned: str
    length: int
    source_format: SourceFormat
    pages: Optional[int] = None

    @model_validator(mode="after")
    def _length_matches(self) -> "ExtractedText":
        if self.length != len(self.cleaned):
            raise ValueError("length must equal len(cleaned)")
        return self


class ExperienceBudget(CamelModel):
    model_config = ConfigDict(frozen=True)

    bullet_count: int = Field(ge=1)
    bullet_char_budgets: List[int]

    @model_validator(mode="after")
    def _budgets_match_count(self) -> "ExperienceBudget":
        if len(self.bullet_char_budgets) != self.bullet_count:
            raise ValueError("bulletCharBudgets length must equal bulletCount")
        return self


DEFAULT_EXPERIENCE_BUDGET = ExperienceBudget(bullet_count=3, bullet_char_budgets=[100, 100, 100])


class TemplateFingerprint(CamelModel):
    model_config = ConfigDict(frozen=True)

    has_summary: bool = False
    section_order: List[SectionTag] = Field(default_factory=list)
    experience_budgets: List[ExperienceBudget] = Field(
        default_factory=lambda: [DEFAULT_EXPERIENCE_BUDGET], alias="experience"
    )
    total_char_budget: int = Field(default=0, ge=0)

    @field_validator("section_order")
    @classmethod
    def _unique_sections(cls, value: List[SectionTag]) -> List[SectionTag]:
        if len(set(value)) != len(value):
            raise ValueError("sectionOrder entries must be unique")
        return value

    @field_validator("experience_budgets")
    @classmethod
    def _non_empty_budgets(cls, value: List[ExperienceBudget]) -> List[ExperienceBudget]:
        if not value:
            raise ValueError("experience budgets must not be empty")
        return value


# Resume payload produced by the text-generation collaborator.


def _none_as_empty(value: object) -> object:
    return [] if value is None else value


class ResumeHeader(CamelModel):
    name: Optional[str] = None
    location: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    links: List[str] = Field(default_factory=list)

    @field_validator("links", mode="before")
    @classmethod
    def _links_default(cls, value: object) -> object:
        return _none_as_empty(value)


class ResumeExperience(CamelModel):
    title: str
    company: str
    dates: Optional[str] = None
    bullets: List[str] = Field(default_factory=list)

    @field_validator("bullets", mode="before")
    @classmethod
    def _bullets_default(cls, value: object) -> object:
        return _none_as_empty(value)


class ResumeSkills(CamelModel):
    core: List[str] = Field(default_factory=list)
    tools: List[str] = Field(default_factory=list)
    domains: List[str] = Field(default_factory=list)

    @field_validator("core", "tools", "domains", mode="before")
    @classmethod
    def _lists_default(cls, value: object) -> object:
        return _none_as_empty(value)


class ResumeEducation(CamelModel):
    school: str
    degree: str
    dates: Optional[str] = None


class ResumeDocument(CamelModel):
    header: ResumeHeader
    summary: Optional[str] = None
    experience: List[ResumeExperience] = Field(default_factory=list)
    skills: Optional[ResumeSkills] = None
    education: Optional[List[ResumeEducation]] = None
    certifications: Optional[List[str]] = None


class RenderOptions(CamelModel):
    mode: RenderMode = RenderMode.standard
    enforce_one_page: bool = False


# Fit score analysis.

FIT_DIMENSIONS = (
    "experience_alignment",
    "technical_skill_match",
    "domain_relevance",
    "stage_cultural_fit",
    "impact_potential",
)


class FitRationale(CamelModel):
    model_config = ConfigDict(extra="forbid")

    experience_alignment: str
    technical_skill_match: str
    domain_relevance: str
    stage_cultural_fit: str
    impact_potential: str


class FitGaps(CamelModel):
    missing_skills: List[str] = Field(default_factory=list)
    missing_tools: List[str] = Field(default_factory=list)
    missing_domains: List[str] = Field(default_factory=list)


class FitScore(CamelModel):
    overall: int = Field(ge=0, le=100)
    experience_alignment: int = Field(ge=0, le=100)
    technical_skill_match: int = Field(ge=0, le=100)
    domain_relevance: int = Field(ge=0, le=100)
    stage_cultural_fit: int = Field(ge=0, le=100)
    impact_potential: int = Field(ge=0, le=100)
    rationale: FitRationale
    gaps: Optional[FitGaps] = None


# Persisted profile records.


class Experience(CamelModel):
    id: Optional[str] = None
    title: str = Field(min_length=1)
    company: str = Field(min_length=1)
    start_date: str = Field(min_length=1)
    end_date: Optional[str] = None
    current: bool = False
    description: str = Field(min_length=1)
    achievements: List[str] = Field(default_factory=list)


class Skill(CamelModel):
    id: Optional[str] = None
    name: str = Field(min_length=1)
    category: str = "General"
    proficiency: Optional[int] = None
    source: Optional[str] = None


class Certification(CamelModel):
    id: Optional[str] = None
    name: str = Field(min_length=1)
    issuer: str = Field(min_length=1)
    date: str = Field(min_length=1)


class Tool(CamelModel):
    id: Optional[str] = None
    name: str = Field(min_length=1)
    category: str = "General"
    proficiency: Optional[int] = None
    source: Optional[str] = None


class Project(CamelModel):
    id: Optional[str] = None
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    technologies: List[str] = Field(default_factory=list)
    url: Optional[str] = None


class ClarifyingAnswer(CamelModel):
    question: str
    answer: str
    category: str
    timestamp: str


class UserProfile(CamelModel):
    experience: List[Experience] = Field(default_factory=list)
    skills: List[Skill] = Field(default_factory=list)
    certifications: List[Certification] = Field(default_factory=list)
    tools: List[Tool] = Field(default_factory=list)
    projects: List[Project] = Field(default_factory=list)
    domain_experience: List[str] = Field(default_factory=list)
    notes: List[str] = Field(default_factory=list)
    achievements: List[str] = Field(default_factory=list)
    responsibilities: List[str] = Field(default_factory=list)
    clarifying_answers: Dict[str, ClarifyingAnswer] = Field(default_factory=dict)
    work_styles: List[str] = Field(default_factory=list)
    preferences: Dict[str, str] = Field(default_factory=dict)
    resume_bullets: List[str] = Field(default_factory=list)


class QAItem(CamelModel):
    id: str
    question: str = Field(min_length=1)
    answer: str = Field(min_length=1)
    timestamp: str
    category: Optional[str] = None
    options: Optional[List[str]] = None
    asked_in_context: Optional[str] = None


class JobPosting(CamelModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str = Field(min_length=1)
    company: str = Field(min_length=1)
    description: str = Field(min_length=1)
    required_skills: List[str] = Field(default_factory=list)
    preferred_skills: List[str] = Field(default_factory=list)
    responsibilities: List[str] = Field(default_factory=list)
    seniority: str = "mid"
    domain: str = "Technology"
    location: Optional[str] = None
    salary: Optional[str] = None
    timestamp: str


class JobAnalysis(CamelModel):
    """Job fields as parsed from pasted posting text; any may be missing."""

    title: Optional[str] = None
    company: Optional[str] = None
    description: Optional[str] = None
    required_skills: List[str] = Field(default_factory=list)
    preferred_skills: List[str] = Field(default_factory=list)
    responsibilities: List[str] = Field(default_factory=list)
    seniority: Optional[str] = None
    domain: Optional[str] = None
    location: Optional[str] = None
    salary: Optional[str] = None

    @field_validator("required_skills", "preferred_skills", "responsibilities", mode="before")
    @classmethod
    def _lists_default(cls, value: object) -> object:
        return _none_as_empty(value)


class ClarifyingQuestion(CamelModel):
    id: Optional[str] = None
    text: str = Field(min_length=1)
    topic: str = ""
    category: str = "skill"
    topic_key: str = ""
    requires_proficiency: bool = False


class ClarifyingQuestionSet(CamelModel):
    questions: List[ClarifyingQuestion] = Field(default_factory=list)

    @field_validator("questions", mode="before")
    @classmethod
    def _questions_default(cls, value: object) -> object:
        return _none_as_empty(value)


class AppSettings(CamelModel):
    default_render_mode: RenderMode = RenderMode.standard
    enforce_one_page: bool = False
