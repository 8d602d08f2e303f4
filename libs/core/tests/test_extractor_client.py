from __future__ import annotations

import io
import json
from urllib.error import HTTPError, URLError

import pytest

from libs.core import extractor_client as extractor_client_module
from libs.core.errors import ResumeError, UploadFailed
from libs.core.extractor_client import ExtractorClient, upload_with_retry
from libs.core.models import RenderMode, ResumeDocument


class _FakeHTTPResponse:
    def __init__(self, body: bytes) -> None:
        self._raw = body

    def read(self) -> bytes:
        return self._raw

    def __enter__(self) -> "_FakeHTTPResponse":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        return False


def _http_error(code: int, body: dict) -> HTTPError:
    return HTTPError(
        url="http://extractor/route",
        code=code,
        msg="error",
        hdrs=None,
        fp=io.BytesIO(json.dumps(body).encode("utf-8")),
    )


def test_upload_retry_uses_linear_backoff_and_reraises_last_error() -> None:
    sleeps: list[float] = []
    calls = {"count": 0}

    def _upload() -> str:
        calls["count"] += 1
        raise UploadFailed(f"attempt {calls['count']}")

    with pytest.raises(UploadFailed) as exc_info:
        upload_with_retry(_upload, max_attempts=3, retry_delay_s=0.5, sleep=sleeps.append)

    assert calls["count"] == 3
    assert sleeps == [0.5, 1.0]
    assert exc_info.value.detail == "attempt 3"


def test_upload_retry_returns_first_success() -> None:
    sleeps: list[float] = []
    outcomes = [UploadFailed("flaky"), "done"]

    def _upload() -> str:
        outcome = outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    assert upload_with_retry(_upload, retry_delay_s=1.0, sleep=sleeps.append) == "done"
    assert sleeps == [1.0]


def test_upload_retry_does_not_retry_other_errors() -> None:
    calls = {"count": 0}

    def _upload() -> str:
        calls["count"] += 1
        raise ResumeError("bad request", status_code=400)

    with pytest.raises(ResumeError):
        upload_with_retry(_upload, sleep=lambda _delay: None)
    assert calls["count"] == 1


def test_client_extracts_docx_text(monkeypatch) -> None:
    captured: list[dict] = []

    def _fake_urlopen(request, timeout=0):  # type: ignore[no-untyped-def]
        captured.append({"url": request.full_url, "body": json.loads(request.data.decode("utf-8"))})
        return _FakeHTTPResponse(b'{"text": "Jane Doe"}')

    monkeypatch.setattr(extractor_client_module, "urlopen", _fake_urlopen)

    client = ExtractorClient("http://extractor/", retry_delay_s=0)
    assert client.extract_docx(b"PK\x03\x04", file_name="cv.docx") == "Jane Doe"
    assert captured[0]["url"] == "http://extractor/extract/docx"
    assert captured[0]["body"]["base64"] == "UEsDBA=="
    assert captured[0]["body"]["fileName"] == "cv.docx"


def test_client_does_not_retry_client_errors(monkeypatch) -> None:
    calls = {"count": 0}

    def _fake_urlopen(request, timeout=0):  # type: ignore[no-untyped-def]
        calls["count"] += 1
        raise _http_error(400, {"detail": "This file isn't a valid .docx Word document."})

    monkeypatch.setattr(extractor_client_module, "urlopen", _fake_urlopen)

    client = ExtractorClient("http://extractor", retry_delay_s=0)
    with pytest.raises(ResumeError) as exc_info:
        client.extract_docx(b"not a docx")
    assert calls["count"] == 1
    assert exc_info.value.status_code == 400
    assert ".docx" in exc_info.value.detail
    assert not isinstance(exc_info.value, UploadFailed)


def test_client_retries_server_and_connection_errors(monkeypatch) -> None:
    failures = [_http_error(503, {"detail": "busy"}), URLError("connection refused")]

    def _fake_urlopen(request, timeout=0):  # type: ignore[no-untyped-def]
        if failures:
            raise failures.pop(0)
        return _FakeHTTPResponse(b"docx-bytes")

    monkeypatch.setattr(extractor_client_module, "urlopen", _fake_urlopen)

    client = ExtractorClient("http://extractor", max_attempts=3, retry_delay_s=0)
    resume = ResumeDocument.model_validate({"header": {"name": "Jane"}})
    assert client.render_docx(resume, RenderMode.standard) == b"docx-bytes"


def test_client_parses_fingerprint_response(monkeypatch) -> None:
    body = {
        "hasSummary": True,
        "sectionOrder": ["summary", "experience"],
        "experience": [{"bulletCount": 2, "bulletCharBudgets": [90, 90]}],
        "totalCharBudget": 1200,
    }

    def _fake_urlopen(request, timeout=0):  # type: ignore[no-untyped-def]
        return _FakeHTTPResponse(json.dumps(body).encode("utf-8"))

    monkeypatch.setattr(extractor_client_module, "urlopen", _fake_urlopen)

    result = ExtractorClient("http://extractor").fingerprint_template(b"PK\x03\x04")
    assert result.has_summary is True
    assert result.experience_budgets[0].bullet_char_budgets == [90, 90]
    assert result.total_char_budget == 1200
