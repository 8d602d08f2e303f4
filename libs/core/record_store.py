"""Persisted profile, Q&A history, job postings and settings.

Each record lives under a fixed key in a key-value backend as a JSON document.
Loads never fail: missing, corrupt or invalid data degrades to the default
record with a warning. Saves validate first and leave stored data untouched
when validation fails. Writes replace the whole record; the last write wins.
"""

from __future__ import annotations

import os
import tempfile
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Mapping, Optional, TypeVar

import redis
from pydantic import BaseModel, TypeAdapter, ValidationError

from libs.core import logging as core_logging
from libs.core.errors import ValidationFailed
from libs.core.models import (
    AppSettings,
    ClarifyingAnswer,
    JobPosting,
    QAItem,
    UserProfile,
)

LOGGER = core_logging.get_logger("record_store")

PROFILE_KEY = "user_profile"
QA_HISTORY_KEY = "qa_history"
JOBS_KEY = "job_postings"
SETTINGS_KEY = "app_settings"
ALL_KEYS = (PROFILE_KEY, QA_HISTORY_KEY, JOBS_KEY, SETTINGS_KEY)

RecordT = TypeVar("RecordT")


class KeyValueStore:
    def get(self, key: str) -> Optional[str]:  # pragma: no cover - interface
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def delete(self, key: str) -> None:  # pragma: no cover - interface
        raise NotImplementedError


class InMemoryKeyValueStore(KeyValueStore):
    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class FileKeyValueStore(KeyValueStore):
    """One ``<key>.json`` file per key, replaced atomically on write."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(value)
            os.replace(tmp_name, self._path(key))
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


class RedisKeyValueStore(KeyValueStore):
    def __init__(self, client: Any, prefix: str = "resume:") -> None:
        self.client = client
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str, prefix: str = "resume:") -> "RedisKeyValueStore":
        return cls(redis.Redis.from_url(url, decode_responses=True), prefix=prefix)

    def get(self, key: str) -> Optional[str]:
        return self.client.get(self.prefix + key)

    def set(self, key: str, value: str) -> None:
        self.client.set(self.prefix + key, value)

    def delete(self, key: str) -> None:
        self.client.delete(self.prefix + key)


@dataclass(frozen=True)
class StoreResult:
    ok: bool
    error: Optional[str] = None
    value: Any = None


def _to_plain(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True, mode="json")
    if isinstance(value, (list, tuple)):
        return [_to_plain(item) for item in value]
    if isinstance(value, Mapping):
        return {key: _to_plain(item) for key, item in value.items()}
    return value


class _RecordStore(Generic[RecordT]):
    key: str = ""

    def __init__(self, backend: KeyValueStore, adapter: TypeAdapter, default: Callable[[], RecordT]) -> None:
        self.backend = backend
        self._adapter = adapter
        self._default = default

    def load(self) -> RecordT:
        try:
            stored = self.backend.get(self.key)
        except (UnicodeDecodeError, OSError) as exc:
            LOGGER.warning("record_load_invalid", key=self.key, error=str(exc))
            return self._default()
        if not stored:
            return self._default()
        try:
            return self._adapter.validate_json(stored)
        except ValidationError as exc:
            LOGGER.warning("record_load_invalid", key=self.key, errors=exc.error_count())
            return self._default()

    def save(self, record: Any) -> StoreResult:
        try:
            validated = self._adapter.validate_python(_to_plain(record))
        except ValidationError as exc:
            LOGGER.error("record_save_rejected", key=self.key, errors=exc.error_count())
            return StoreResult(ok=False, error=str(exc))
        payload = self._adapter.dump_json(validated, by_alias=True).decode("utf-8")
        self.backend.set(self.key, payload)
        LOGGER.info("record_saved", key=self.key, bytes_written=len(payload))
        return StoreResult(ok=True, value=validated)

    def clear(self) -> None:
        self.backend.delete(self.key)


class ProfileStore(_RecordStore[UserProfile]):
    key = PROFILE_KEY

    def __init__(self, backend: KeyValueStore) -> None:
        super().__init__(backend, TypeAdapter(UserProfile), UserProfile)


class QAHistoryStore(_RecordStore[List[QAItem]]):
    key = QA_HISTORY_KEY

    def __init__(self, backend: KeyValueStore) -> None:
        super().__init__(backend, TypeAdapter(List[QAItem]), list)

    def append(self, item: QAItem | Dict[str, Any]) -> List[QAItem]:
        data = _to_plain(item)
        data.setdefault("id", new_record_id("qa"))
        data.setdefault("timestamp", _now_iso())
        return _require_saved(self.save(_to_plain(self.load()) + [data]))


class JobPostingStore(_RecordStore[List[JobPosting]]):
    key = JOBS_KEY

    def __init__(self, backend: KeyValueStore) -> None:
        super().__init__(backend, TypeAdapter(List[JobPosting]), list)

    def add(self, job: JobPosting | Dict[str, Any]) -> List[JobPosting]:
        data = _to_plain(job)
        data.setdefault("id", new_record_id("job"))
        data.setdefault("timestamp", _now_iso())
        return _require_saved(self.save([data] + _to_plain(self.load())))

    def get(self, job_id: str) -> Optional[JobPosting]:
        for job in self.load():
            if job.id == job_id:
                return job
        return None


class SettingsStore(_RecordStore[AppSettings]):
    key = SETTINGS_KEY

    def __init__(self, backend: KeyValueStore) -> None:
        super().__init__(backend, TypeAdapter(AppSettings), AppSettings)


def new_record_id(category: str) -> str:
    return f"{category}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _require_saved(result: StoreResult) -> Any:
    if not result.ok:
        raise ValidationFailed(result.error or "record failed validation")
    return result.value


def _append_entries(store: ProfileStore, field: str, entries: List[Any], category: str) -> UserProfile:
    data = _to_plain(store.load())
    for entry in entries:
        item = _to_plain(entry)
        if isinstance(item, dict) and not item.get("id"):
            item["id"] = new_record_id(category)
        data[field].append(item)
    return _require_saved(store.save(data))


def add_experience(store: ProfileStore, experience: Any) -> UserProfile:
    return _append_entries(store, "experience", [experience], "exp")


def add_skills(store: ProfileStore, skills: List[Any]) -> UserProfile:
    return _append_entries(store, "skills", list(skills), "skill")


def add_certification(store: ProfileStore, certification: Any) -> UserProfile:
    return _append_entries(store, "certifications", [certification], "cert")


def add_tools(store: ProfileStore, tools: List[Any]) -> UserProfile:
    return _append_entries(store, "tools", list(tools), "tool")


def add_project(store: ProfileStore, project: Any) -> UserProfile:
    return _append_entries(store, "projects", [project], "project")


def add_clarifying_answer(store: ProfileStore, question: str, answer: str, category: str) -> UserProfile:
    data = _to_plain(store.load())
    key = f"{category}-{int(time.time() * 1000)}"
    data["clarifyingAnswers"][key] = ClarifyingAnswer(
        question=question, answer=answer, category=category, timestamp=_now_iso()
    ).model_dump(by_alias=True)
    return _require_saved(store.save(data))


def update_profile(store: ProfileStore, updates: Mapping[str, Any]) -> UserProfile:
    """Shallow merge; keys may use either the attribute or the JSON name."""
    aliases = {name: field.alias or name for name, field in UserProfile.model_fields.items()}
    data = _to_plain(store.load())
    for key, value in updates.items():
        data[aliases.get(key, key)] = _to_plain(value)
    return _require_saved(store.save(data))


def clear_all_data(backend: KeyValueStore) -> None:
    for key in ALL_KEYS:
        backend.delete(key)
    LOGGER.info("records_cleared", keys=list(ALL_KEYS))


def export_all_data(backend: KeyValueStore) -> Dict[str, Any]:
    return {
        "profile": _to_plain(ProfileStore(backend).load()),
        "qaHistory": _to_plain(QAHistoryStore(backend).load()),
        "jobPostings": _to_plain(JobPostingStore(backend).load()),
        "exportedAt": _now_iso(),
    }


def import_data(backend: KeyValueStore, data: Mapping[str, Any]) -> bool:
    results = []
    if data.get("profile") is not None:
        results.append(ProfileStore(backend).save(data["profile"]))
    if data.get("qaHistory") is not None:
        results.append(QAHistoryStore(backend).save(data["qaHistory"]))
    if data.get("jobPostings") is not None:
        results.append(JobPostingStore(backend).save(data["jobPostings"]))
    return all(result.ok for result in results)
