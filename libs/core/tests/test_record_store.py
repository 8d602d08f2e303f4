from __future__ import annotations

from pathlib import Path

import pytest

from libs.core import record_store
from libs.core.errors import ValidationFailed
from libs.core.models import AppSettings, RenderMode, UserProfile
from libs.core.record_store import (
    FileKeyValueStore,
    InMemoryKeyValueStore,
    JobPostingStore,
    ProfileStore,
    QAHistoryStore,
    RedisKeyValueStore,
    SettingsStore,
)


class _FakeRedis:
    def __init__(self) -> None:
        self.data: dict[str, str] = {}

    def get(self, key: str):
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def delete(self, key: str) -> None:
        self.data.pop(key, None)


def _experience(**overrides) -> dict:
    payload = {
        "title": "Staff Engineer",
        "company": "Acme",
        "startDate": "2020-01",
        "current": True,
        "description": "Payments platform lead.",
    }
    payload.update(overrides)
    return payload


def _job(job_id: str) -> dict:
    return {
        "id": job_id,
        "title": "Engineer",
        "company": "Gamma",
        "description": "Build things.",
        "timestamp": "2024-01-01T00:00:00Z",
    }


def test_load_missing_profile_returns_defaults() -> None:
    store = ProfileStore(InMemoryKeyValueStore())
    assert store.load() == UserProfile()


def test_load_corrupt_json_degrades_to_defaults() -> None:
    backend = InMemoryKeyValueStore()
    backend.set(record_store.PROFILE_KEY, "{not json")
    assert ProfileStore(backend).load() == UserProfile()


def test_load_undecodable_file_degrades_to_defaults(tmp_path: Path) -> None:
    (tmp_path / "user_profile.json").write_bytes(b"\xff\xfe\x00garbage")
    backend = FileKeyValueStore(tmp_path)
    assert ProfileStore(backend).load() == UserProfile()
    assert record_store.export_all_data(backend)["profile"]["experience"] == []


def test_load_invalid_shape_degrades_to_defaults() -> None:
    backend = InMemoryKeyValueStore()
    backend.set(record_store.PROFILE_KEY, '{"experience": [{"title": ""}]}')
    assert ProfileStore(backend).load() == UserProfile()


def test_save_invalid_profile_is_rejected_and_leaves_data_untouched() -> None:
    backend = InMemoryKeyValueStore()
    store = ProfileStore(backend)
    record_store.add_experience(store, _experience())
    before = backend.get(record_store.PROFILE_KEY)

    result = store.save({"experience": [_experience(title="")]})

    assert result.ok is False
    assert result.error
    assert backend.get(record_store.PROFILE_KEY) == before


def test_add_experience_assigns_synthetic_id() -> None:
    store = ProfileStore(InMemoryKeyValueStore())
    profile = record_store.add_experience(store, _experience())
    assert profile.experience[0].id.startswith("exp-")
    assert store.load().experience[0].company == "Acme"


def test_add_experience_keeps_supplied_id() -> None:
    store = ProfileStore(InMemoryKeyValueStore())
    profile = record_store.add_experience(store, _experience(id="exp-fixed"))
    assert profile.experience[0].id == "exp-fixed"


def test_invalid_mutation_raises_validation_failed() -> None:
    store = ProfileStore(InMemoryKeyValueStore())
    with pytest.raises(ValidationFailed) as exc_info:
        record_store.add_experience(store, _experience(company=""))
    assert exc_info.value.status_code == 422
    assert store.load() == UserProfile()


def test_profile_mutations_append() -> None:
    store = ProfileStore(InMemoryKeyValueStore())
    record_store.add_skills(store, [{"name": "Python"}, {"name": "SQL", "category": "Data"}])
    record_store.add_tools(store, [{"name": "Docker"}])
    record_store.add_certification(store, {"name": "CKA", "issuer": "CNCF", "date": "2023"})
    profile = record_store.add_project(store, {"title": "Ledger", "description": "Rewrite."})

    assert [skill.name for skill in profile.skills] == ["Python", "SQL"]
    assert all(skill.id.startswith("skill-") for skill in profile.skills)
    assert profile.tools[0].id.startswith("tool-")
    assert profile.certifications[0].id.startswith("cert-")
    assert profile.projects[0].id.startswith("project-")


def test_add_clarifying_answer_keys_by_category_and_time() -> None:
    store = ProfileStore(InMemoryKeyValueStore())
    profile = record_store.add_clarifying_answer(store, "Biggest win?", "Halved latency.", "impact")
    (key, answer), = profile.clarifying_answers.items()
    assert key.startswith("impact-")
    assert key.split("-", 1)[1].isdigit()
    assert answer.answer == "Halved latency."


def test_update_profile_accepts_attribute_and_json_names() -> None:
    store = ProfileStore(InMemoryKeyValueStore())
    record_store.update_profile(store, {"domain_experience": ["Payments"]})
    profile = record_store.update_profile(store, {"workStyles": ["Remote"]})
    assert profile.domain_experience == ["Payments"]
    assert profile.work_styles == ["Remote"]


def test_file_store_round_trips_and_clears(tmp_path: Path) -> None:
    backend = FileKeyValueStore(tmp_path / "records")
    store = ProfileStore(backend)
    record_store.add_experience(store, _experience())

    assert (tmp_path / "records" / "user_profile.json").exists()
    assert not list((tmp_path / "records").glob("*.tmp"))
    assert ProfileStore(FileKeyValueStore(tmp_path / "records")).load().experience[0].title == "Staff Engineer"

    store.clear()
    assert store.load() == UserProfile()


def test_redis_store_uses_prefixed_keys() -> None:
    client = _FakeRedis()
    store = SettingsStore(RedisKeyValueStore(client))
    store.save(AppSettings(default_render_mode=RenderMode.template))
    assert "resume:app_settings" in client.data
    assert store.load().default_render_mode == RenderMode.template


def test_job_postings_are_prepended_and_found_by_id() -> None:
    store = JobPostingStore(InMemoryKeyValueStore())
    store.add(_job("job-1"))
    jobs = store.add(_job("job-2"))
    assert [job.id for job in jobs] == ["job-2", "job-1"]
    assert store.get("job-1").company == "Gamma"
    assert store.get("missing") is None
    assert jobs[0].seniority == "mid"


def test_qa_history_appends_with_generated_ids() -> None:
    store = QAHistoryStore(InMemoryKeyValueStore())
    store.append({"question": "Why us?", "answer": "Mission."})
    history = store.append({"id": "qa-2", "question": "Salary?", "answer": "Flexible."})
    assert [item.question for item in history] == ["Why us?", "Salary?"]
    assert history[0].id.startswith("qa-")
    assert history[1].id == "qa-2"


def test_clear_export_and_import_all_data() -> None:
    backend = InMemoryKeyValueStore()
    record_store.add_experience(ProfileStore(backend), _experience())
    JobPostingStore(backend).add(_job("job-1"))

    exported = record_store.export_all_data(backend)
    record_store.clear_all_data(backend)
    assert ProfileStore(backend).load() == UserProfile()

    assert record_store.import_data(backend, exported) is True
    assert ProfileStore(backend).load().experience[0].company == "Acme"
    assert JobPostingStore(backend).get("job-1") is not None
