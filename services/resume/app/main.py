from __future__ import annotations

import base64
import binascii
import os
from typing import Any, Dict, Optional

from fastapi import FastAPI, File, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import Counter, make_asgi_app
from pydantic import Field, ValidationError

from libs.core import logging as core_logging, record_store
from libs.core.errors import ExtractionTooShort, InvalidFormat, ResumeError
from libs.core.models import (
    CamelModel,
    ClarifyingQuestionSet,
    FitScore,
    JobPosting,
    RenderMode,
    RenderOptions,
    ResumeDocument,
    SourceFormat,
    TemplateFingerprint,
    UserProfile,
)
from libs.core.record_store import JobPostingStore, ProfileStore
from libs.tools import text_extract
from libs.tools.resume_render_docx import budget_overruns, render_resume_docx
from libs.tools.template_fingerprint import fingerprint
from resume_core import (
    analyze_fit,
    analyze_job_posting,
    create_provider_from_env,
    create_record_store_from_env,
    generate_clarifying_questions,
    generate_tailored_resume,
    max_upload_bytes,
)

SERVICE_NAME = "resume-extractor"
RESUME_FILE_NAME = "tailored_resume.docx"

core_logging.configure_logging("resume")
LOGGER = core_logging.get_logger("resume")

extractions_total = Counter("resume_extractions_total", "Document extractions", ["source", "outcome"])
renders_total = Counter("resume_renders_total", "Rendered resumes", ["mode", "outcome"])
generations_total = Counter("resume_generations_total", "AI generations", ["kind", "outcome"])

app = FastAPI(title="Resume Pipeline Service")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()
    ],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.mount("/metrics", make_asgi_app())
app.state.llm_provider = create_provider_from_env()
app.state.record_store = create_record_store_from_env()


class ExtractDocxRequest(CamelModel):
    base64: str
    file_name: Optional[str] = None
    mime_type: Optional[str] = None


class ExtractDocxResponse(CamelModel):
    text: str


class FingerprintRequest(CamelModel):
    template_docx_base64: str


class RenderRequest(CamelModel):
    resume_json: Dict[str, Any]
    options: RenderOptions = Field(default_factory=RenderOptions)
    template_docx_base64: Optional[str] = None


class FitScoreRequest(CamelModel):
    profile: Optional[UserProfile] = None
    job: Optional[JobPosting] = None
    job_id: Optional[str] = None


class JobAnalyzeRequest(CamelModel):
    job_text: str = ""


class ClarifyingQuestionsRequest(CamelModel):
    profile: Optional[UserProfile] = None
    job: Optional[JobPosting] = None
    job_id: Optional[str] = None


class ClarifyingAnswerRequest(CamelModel):
    question: str
    answer: str
    category: str


class GenerateRequest(CamelModel):
    profile: Optional[UserProfile] = None
    job: Optional[JobPosting] = None
    job_id: Optional[str] = None
    extracted_resume_text: str = ""
    options: RenderOptions = Field(default_factory=RenderOptions)
    template_docx_base64: Optional[str] = None


def _http_error(error: ResumeError) -> HTTPException:
    return HTTPException(status_code=error.status_code, detail=error.detail)


def _decode_base64(value: str, field: str) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidFormat(f"{field} is not valid base64") from exc


def _template_fingerprint(template_base64: str) -> TemplateFingerprint:
    """Fingerprint a reference .docx. Any failure is a server-side 500."""
    try:
        data = _decode_base64(template_base64, "templateDocxBase64")
        text_extract.check_signature(data, SourceFormat.docx)
        raw, _ = text_extract.decode_docx(data)
    except ResumeError as exc:
        LOGGER.error("template_fingerprint_failed", error=exc.detail)
        raise HTTPException(status_code=500, detail=f"Failed to fingerprint template: {exc.detail}") from exc
    return fingerprint(text_extract.normalize_text(raw))


def _resolve_profile(profile: Optional[UserProfile]) -> UserProfile:
    if profile is not None:
        return profile
    return ProfileStore(app.state.record_store).load()


def _resolve_job(job: Optional[JobPosting], job_id: Optional[str]) -> JobPosting:
    if job is not None:
        return job
    if job_id:
        stored = JobPostingStore(app.state.record_store).get(job_id)
        if stored is not None:
            return stored
        raise HTTPException(status_code=404, detail=f"Job posting not found: {job_id}")
    raise HTTPException(status_code=400, detail="job or jobId is required")


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok", "service": SERVICE_NAME}


@app.post("/extract/docx", response_model=ExtractDocxResponse)
def extract_docx_endpoint(request: ExtractDocxRequest) -> ExtractDocxResponse:
    try:
        if request.file_name or request.mime_type:
            text_extract.resolve_format(request.file_name or ".docx", request.mime_type)
        data = _decode_base64(request.base64, "base64")
        extracted = text_extract.extract(data, SourceFormat.docx)
    except ResumeError as exc:
        extractions_total.labels(source="docx", outcome="rejected").inc()
        raise _http_error(exc) from exc
    extractions_total.labels(source="docx", outcome="ok").inc()
    return ExtractDocxResponse(text=extracted.cleaned)


@app.post("/extract-resume-text")
async def extract_resume_text_endpoint(file: Optional[UploadFile] = File(None)) -> JSONResponse:
    if file is None:
        raise HTTPException(status_code=400, detail="No file uploaded")
    is_pdf = file.content_type == text_extract.PDF_MIME_TYPE or (
        not file.content_type and (file.filename or "").lower().endswith(".pdf")
    )
    if not is_pdf:
        raise HTTPException(status_code=400, detail="Only PDF files are allowed")
    limit = max_upload_bytes()
    data = await file.read(limit + 1)
    if len(data) > limit:
        extractions_total.labels(source="pdf", outcome="too_large").inc()
        raise HTTPException(status_code=413, detail=f"File too large (max {limit} bytes)")
    LOGGER.info("pdf_upload_received", file_name=file.filename, size=len(data))

    try:
        text_extract.check_signature(data, SourceFormat.pdf)
    except InvalidFormat as exc:
        raise _http_error(exc) from exc
    try:
        extracted = text_extract.extract(data, SourceFormat.pdf)
    except ExtractionTooShort as exc:
        extractions_total.labels(source="pdf", outcome="too_short").inc()
        return JSONResponse(
            status_code=400,
            content={"detail": exc.detail, "extractedLength": exc.extracted_length},
        )
    except InvalidFormat as exc:
        extractions_total.labels(source="pdf", outcome="error").inc()
        raise HTTPException(status_code=500, detail=f"Failed to extract text from PDF: {exc.detail}") from exc
    except ResumeError as exc:
        extractions_total.labels(source="pdf", outcome="rejected").inc()
        raise _http_error(exc) from exc

    extractions_total.labels(source="pdf", outcome="ok").inc()
    return JSONResponse(
        content={
            "text": extracted.cleaned,
            "metadata": {
                "pages": extracted.pages,
                "originalLength": len(extracted.raw),
                "cleanedLength": extracted.length,
            },
        }
    )


@app.post(
    "/resume/fingerprint-template",
    response_model=TemplateFingerprint,
    response_model_by_alias=True,
)
def fingerprint_template_endpoint(request: FingerprintRequest) -> TemplateFingerprint:
    return _template_fingerprint(request.template_docx_base64)


@app.post("/resume/render-docx")
def render_docx_endpoint(request: RenderRequest) -> Response:
    try:
        resume = ResumeDocument.model_validate(request.resume_json)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid resumeJson: {exc.error_count()} errors") from exc

    template = None
    if request.options.mode == RenderMode.template and request.template_docx_base64:
        template = _template_fingerprint(request.template_docx_base64)

    try:
        data = render_resume_docx(resume, template)
    except ResumeError as exc:
        renders_total.labels(mode=request.options.mode.value, outcome="error").inc()
        raise _http_error(exc) from exc
    renders_total.labels(mode=request.options.mode.value, outcome="ok").inc()

    headers = {"Content-Disposition": f'attachment; filename="{RESUME_FILE_NAME}"'}
    if template is not None:
        headers["X-Budget-Overruns"] = str(len(budget_overruns(resume, template)))
    return Response(content=data, media_type=text_extract.DOCX_MIME_TYPE, headers=headers)


@app.post("/job/fit-score", response_model=FitScore, response_model_exclude_none=True)
def fit_score_endpoint(request: FitScoreRequest) -> FitScore:
    profile = _resolve_profile(request.profile)
    job = _resolve_job(request.job, request.job_id)
    try:
        score = analyze_fit(profile, job, app.state.llm_provider)
    except ResumeError as exc:
        generations_total.labels(kind="fit_score", outcome="error").inc()
        raise _http_error(exc) from exc
    generations_total.labels(kind="fit_score", outcome="ok").inc()
    return score


@app.post("/resume/generate", response_model=ResumeDocument, response_model_exclude_none=True)
def generate_resume_endpoint(request: GenerateRequest) -> ResumeDocument:
    profile = _resolve_profile(request.profile)
    job = _resolve_job(request.job, request.job_id)
    template = None
    if request.options.mode == RenderMode.template and request.template_docx_base64:
        template = _template_fingerprint(request.template_docx_base64)
    try:
        resume = generate_tailored_resume(
            profile,
            job,
            request.extracted_resume_text,
            request.options,
            app.state.llm_provider,
            fingerprint=template,
        )
    except ResumeError as exc:
        generations_total.labels(kind="resume", outcome="error").inc()
        raise _http_error(exc) from exc
    generations_total.labels(kind="resume", outcome="ok").inc()
    return resume


@app.post("/job/analyze", response_model=JobPosting)
def analyze_job_endpoint(request: JobAnalyzeRequest) -> JobPosting:
    try:
        job = analyze_job_posting(request.job_text, app.state.llm_provider)
        JobPostingStore(app.state.record_store).add(job)
    except ResumeError as exc:
        generations_total.labels(kind="job_analysis", outcome="error").inc()
        raise _http_error(exc) from exc
    generations_total.labels(kind="job_analysis", outcome="ok").inc()
    return job


@app.post("/job/clarifying-questions", response_model=ClarifyingQuestionSet)
def clarifying_questions_endpoint(request: ClarifyingQuestionsRequest) -> ClarifyingQuestionSet:
    profile = _resolve_profile(request.profile)
    job = _resolve_job(request.job, request.job_id)
    try:
        questions = generate_clarifying_questions(profile, job, app.state.llm_provider)
    except ResumeError as exc:
        generations_total.labels(kind="clarifying_questions", outcome="error").inc()
        raise _http_error(exc) from exc
    generations_total.labels(kind="clarifying_questions", outcome="ok").inc()
    return ClarifyingQuestionSet(questions=questions)


@app.post("/profile/clarifying-answers", response_model=UserProfile)
def add_clarifying_answer_endpoint(request: ClarifyingAnswerRequest) -> UserProfile:
    store = ProfileStore(app.state.record_store)
    try:
        return record_store.add_clarifying_answer(
            store, request.question, request.answer, request.category
        )
    except ResumeError as exc:
        raise _http_error(exc) from exc
