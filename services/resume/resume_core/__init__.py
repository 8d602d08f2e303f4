from .config import create_provider_from_env, create_record_store_from_env, max_upload_bytes
from .service import (
    analyze_fit,
    analyze_job_posting,
    fit_resume_to_fingerprint,
    generate_clarifying_questions,
    generate_tailored_resume,
)

__all__ = [
    "analyze_fit",
    "analyze_job_posting",
    "create_provider_from_env",
    "create_record_store_from_env",
    "fit_resume_to_fingerprint",
    "generate_clarifying_questions",
    "generate_tailored_resume",
    "max_upload_bytes",
]
