from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from libs.core import logging as core_logging

LOGGER = core_logging.get_logger("llm_provider")

RETRYABLE_STATUS = {429, 500, 502, 503, 504}
MAX_BACKOFF_S = 8


@dataclass
class LLMResponse:
    content: str


class LLMProviderError(Exception):
    pass


class LLMProvider:
    name = "base"

    def generate(self, prompt: str, instructions: Optional[str] = None) -> LLMResponse:  # pragma: no cover - interface
        raise NotImplementedError


class MockLLMProvider(LLMProvider):
    """Replays canned outputs in order, repeating the last one once exhausted."""

    name = "mock"

    def __init__(self, outputs: Optional[List[str]] = None) -> None:
        self.outputs = list(outputs or ["Mock response"])
        self.prompts: List[str] = []

    def generate(self, prompt: str, instructions: Optional[str] = None) -> LLMResponse:
        self.prompts.append(prompt)
        index = min(len(self.prompts) - 1, len(self.outputs) - 1)
        return LLMResponse(content=self.outputs[index])


class OpenAIProvider(LLMProvider):
    name = "openai"

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str = "https://api.openai.com",
        temperature: Optional[float] = None,
        max_output_tokens: Optional[int] = None,
        timeout_s: float = 30.0,
        max_retries: int = 0,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self.timeout_s = timeout_s
        self.max_retries = max_retries

    def generate(self, prompt: str, instructions: Optional[str] = None) -> LLMResponse:
        payload: Dict[str, Any] = {"model": self.model, "input": prompt}
        if instructions:
            payload["instructions"] = instructions
        if self.temperature is not None and _model_supports_temperature(self.model):
            payload["temperature"] = self.temperature
        if self.max_output_tokens is not None:
            payload["max_output_tokens"] = self.max_output_tokens
        attempts = self.max_retries + 1
        retried_without_temperature = False
        attempt = 0
        while attempt < attempts:
            started = time.monotonic()
            try:
                data = self._post(payload)
            except HTTPError as exc:
                detail = exc.read().decode("utf-8") if exc.fp else str(exc)
                if (
                    "temperature" in payload
                    and not retried_without_temperature
                    and _is_unsupported_temperature_error(detail)
                ):
                    payload.pop("temperature", None)
                    retried_without_temperature = True
                    continue
                if exc.code in RETRYABLE_STATUS and attempt < attempts - 1:
                    LOGGER.warning("llm_request_retry", status=exc.code, attempt=attempt + 1)
                    time.sleep(min(2**attempt, MAX_BACKOFF_S))
                    attempt += 1
                    continue
                raise LLMProviderError(f"OpenAI API error: {detail}") from exc
            except (URLError, TimeoutError) as exc:
                if attempt < attempts - 1:
                    LOGGER.warning("llm_request_retry", error=str(exc), attempt=attempt + 1)
                    time.sleep(min(2**attempt, MAX_BACKOFF_S))
                    attempt += 1
                    continue
                raise LLMProviderError(f"OpenAI API connection error: {exc}") from exc
            text = _extract_output_text(data)
            if not text:
                raise LLMProviderError("OpenAI API returned empty output")
            LOGGER.info(
                "llm_request_completed",
                model=self.model,
                prompt_chars=len(prompt),
                output_chars=len(text),
                duration_s=round(time.monotonic() - started, 3),
            )
            return LLMResponse(content=text)
        raise LLMProviderError("OpenAI API request failed after retries")

    def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        request = Request(
            f"{self.base_url}/v1/responses",
            data=json.dumps(payload).encode("utf-8"),
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            method="POST",
        )
        with urlopen(request, timeout=self.timeout_s) as response:
            body = response.read().decode("utf-8")
        try:
            return json.loads(body)
        except json.JSONDecodeError as exc:
            raise LLMProviderError(f"OpenAI API returned invalid JSON: {exc}") from exc


def resolve_provider(
    provider_name: str,
    *,
    api_key: Optional[str] = None,
    model: Optional[str] = None,
    base_url: Optional[str] = None,
    temperature: Optional[float] = None,
    max_output_tokens: Optional[int] = None,
    timeout_s: Optional[float] = None,
    max_retries: Optional[int] = None,
) -> LLMProvider:
    name = (provider_name or "mock").lower()
    if name == "openai":
        if not api_key:
            raise ValueError("OPENAI_API_KEY is required when LLM_PROVIDER=openai")
        if not model:
            raise ValueError("OPENAI_MODEL is required when LLM_PROVIDER=openai")
        return OpenAIProvider(
            api_key=api_key,
            model=model,
            base_url=base_url or "https://api.openai.com",
            temperature=temperature,
            max_output_tokens=max_output_tokens,
            timeout_s=timeout_s or 30.0,
            max_retries=max_retries or 0,
        )
    return MockLLMProvider()


def _extract_output_text(response: Dict[str, Any]) -> str:
    parts: list[str] = []
    for item in response.get("output", []):
        if item.get("type") != "message":
            continue
        for content in item.get("content", []):
            if content.get("type") == "output_text":
                parts.append(content.get("text", ""))
    return "".join(parts).strip()


def _model_supports_temperature(model: str) -> bool:
    normalized = (model or "").strip().lower()
    # GPT-5 responses currently reject temperature.
    return not normalized.startswith("gpt-5")


def _is_unsupported_temperature_error(detail: str) -> bool:
    lowered = (detail or "").lower()
    return "unsupported parameter" in lowered and "temperature" in lowered
