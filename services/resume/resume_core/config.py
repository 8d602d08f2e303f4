from __future__ import annotations

import os

from libs.core import llm_provider
from libs.core.record_store import (
    FileKeyValueStore,
    InMemoryKeyValueStore,
    KeyValueStore,
    RedisKeyValueStore,
)

DEFAULT_OPENAI_TIMEOUT_S = 30.0
DEFAULT_OPENAI_MAX_RETRIES = 1
DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024


def _parse_optional_float(value: str | None) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _parse_optional_int(value: str | None) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _resolve_float(primary: str | None, default: float) -> float:
    parsed = _parse_optional_float(primary)
    return parsed if parsed is not None and parsed > 0 else default


def _resolve_int(primary: str | None, default: int) -> int:
    parsed = _parse_optional_int(primary)
    return parsed if parsed is not None and parsed >= 0 else default


def max_upload_bytes() -> int:
    configured = _parse_optional_int(os.getenv("MAX_UPLOAD_BYTES"))
    if configured is None or configured <= 0:
        return DEFAULT_MAX_UPLOAD_BYTES
    return configured


def create_provider_from_env() -> llm_provider.LLMProvider:
    return llm_provider.resolve_provider(
        os.getenv("LLM_PROVIDER", "mock"),
        api_key=os.getenv("OPENAI_API_KEY", ""),
        model=os.getenv("OPENAI_MODEL", ""),
        base_url=os.getenv("OPENAI_BASE_URL", "https://api.openai.com"),
        temperature=_parse_optional_float(os.getenv("OPENAI_TEMPERATURE")),
        max_output_tokens=_parse_optional_int(os.getenv("OPENAI_MAX_OUTPUT_TOKENS")),
        timeout_s=_resolve_float(os.getenv("OPENAI_TIMEOUT_S"), DEFAULT_OPENAI_TIMEOUT_S),
        max_retries=_resolve_int(os.getenv("OPENAI_MAX_RETRIES"), DEFAULT_OPENAI_MAX_RETRIES),
    )


def create_record_store_from_env() -> KeyValueStore:
    backend = os.getenv("RECORD_STORE_BACKEND", "memory").strip().lower()
    if backend == "file":
        return FileKeyValueStore(os.getenv("RECORD_STORE_DIR", "/shared/records"))
    if backend == "redis":
        return RedisKeyValueStore.from_url(os.getenv("REDIS_URL", "redis://redis:6379/0"))
    return InMemoryKeyValueStore()
