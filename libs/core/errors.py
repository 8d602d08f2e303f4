from __future__ import annotations


class ResumeError(Exception):
    def __init__(self, detail: str, status_code: int = 400) -> None:
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code


class InvalidFormat(ResumeError):
    def __init__(self, detail: str) -> None:
        super().__init__(detail, status_code=400)


class ExtractionTooShort(ResumeError):
    def __init__(self, detail: str, extracted_length: int) -> None:
        super().__init__(detail, status_code=400)
        self.extracted_length = extracted_length


class WrongFormatDetected(ResumeError):
    def __init__(self, detail: str) -> None:
        super().__init__(detail, status_code=400)


class UnparsableResponse(ResumeError):
    def __init__(self, detail: str, stage: str = "") -> None:
        super().__init__(detail, status_code=502)
        self.stage = stage


class ValidationFailed(ResumeError):
    def __init__(self, detail: str) -> None:
        super().__init__(detail, status_code=422)


class UploadFailed(ResumeError):
    def __init__(self, detail: str) -> None:
        super().__init__(detail, status_code=502)


class RenderFailed(ResumeError):
    def __init__(self, detail: str) -> None:
        super().__init__(detail, status_code=500)


class UpstreamFailed(ResumeError):
    def __init__(self, detail: str) -> None:
        super().__init__(detail, status_code=502)
