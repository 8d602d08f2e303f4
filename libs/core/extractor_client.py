from __future__ import annotations

import base64
import json
import time
from typing import Any, Callable, Dict, Optional, TypeVar
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from libs.core import logging as core_logging
from libs.core.errors import ResumeError, UploadFailed
from libs.core.models import RenderMode, ResumeDocument, TemplateFingerprint

LOGGER = core_logging.get_logger("extractor_client")

T = TypeVar("T")


def upload_with_retry(
    upload: Callable[[], T],
    max_attempts: int = 3,
    retry_delay_s: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``upload`` until it succeeds, sleeping ``retry_delay_s * attempt`` between tries.

    Only ``UploadFailed`` is retried; anything else propagates immediately. The
    last ``UploadFailed`` is re-raised once attempts run out.
    """
    attempts = max(1, max_attempts)
    for attempt in range(1, attempts + 1):
        try:
            return upload()
        except UploadFailed as exc:
            if attempt >= attempts:
                LOGGER.error("upload_failed", attempts=attempt, error=exc.detail)
                raise
            delay = retry_delay_s * attempt
            LOGGER.warning("upload_retry", attempt=attempt, delay_s=delay, error=exc.detail)
            sleep(delay)
    raise UploadFailed("upload failed")  # pragma: no cover - loop always returns or raises


class ExtractorClient:
    def __init__(
        self,
        base_url: str,
        timeout_s: float = 30.0,
        max_attempts: int = 3,
        retry_delay_s: float = 1.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self.max_attempts = max_attempts
        self.retry_delay_s = retry_delay_s

    def extract_docx(self, data: bytes, file_name: str = "resume.docx", mime_type: str = "") -> str:
        body = {
            "base64": base64.b64encode(data).decode("ascii"),
            "fileName": file_name,
            "mimeType": mime_type,
        }
        response = self._with_retry(lambda: self._post_json("/extract/docx", body))
        return str(response.get("text", ""))

    def fingerprint_template(self, template_docx: bytes) -> TemplateFingerprint:
        body = {"templateDocxBase64": base64.b64encode(template_docx).decode("ascii")}
        response = self._with_retry(lambda: self._post_json("/resume/fingerprint-template", body))
        return TemplateFingerprint.model_validate(response)

    def render_docx(
        self,
        resume: ResumeDocument,
        mode: RenderMode = RenderMode.standard,
        template_docx: Optional[bytes] = None,
    ) -> bytes:
        body: Dict[str, Any] = {
            "resumeJson": resume.to_json_dict(),
            "options": {"mode": RenderMode(mode).value},
        }
        if template_docx is not None:
            body["templateDocxBase64"] = base64.b64encode(template_docx).decode("ascii")
        return self._with_retry(lambda: self._post("/resume/render-docx", body))

    def _with_retry(self, call: Callable[[], T]) -> T:
        return upload_with_retry(call, self.max_attempts, self.retry_delay_s)

    def _post_json(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        raw = self._post(path, body)
        try:
            payload = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise UploadFailed(f"Invalid response from {path}: {exc}") from exc
        if not isinstance(payload, dict):
            raise UploadFailed(f"Invalid response from {path}: expected an object")
        return payload

    def _post(self, path: str, body: Dict[str, Any]) -> bytes:
        request = Request(
            f"{self.base_url}{path}",
            data=json.dumps(body).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        try:
            with urlopen(request, timeout=self.timeout_s) as response:
                return response.read()
        except HTTPError as exc:
            detail = _error_detail(exc)
            if exc.code >= 500:
                raise UploadFailed(f"{path} failed ({exc.code}): {detail}") from exc
            raise ResumeError(detail, status_code=exc.code) from exc
        except (URLError, TimeoutError) as exc:
            raise UploadFailed(f"{path} unreachable: {exc}") from exc


def _error_detail(exc: HTTPError) -> str:
    raw = exc.read().decode("utf-8", errors="replace") if exc.fp else ""
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        return raw or str(exc)
    if isinstance(payload, dict) and payload.get("detail"):
        return str(payload["detail"])
    return raw
