from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import redis

from app.core.config import Settings
from app.services import session_store
from app.services.pipeline_rules import generate_action_items
from app.services.pipeline_types import PipelineData
from app.services.session_store import (
    FileSessionRepository,
    InMemorySessionRepository,
    RedisSessionRepository,
    build_session_repository,
    can_reanalyze,
    create_session,
    get_storage_key,
    is_session_stale,
    load_session,
    save_session,
)

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


def _data() -> PipelineData:
    return PipelineData.model_validate(
        {
            "stuckByStage": {"3": {"count": 5, "maxDays": 8, "stageName": "Screening"}},
            "unreviewedCount": 4,
            "oldestUnreviewedHours": 10,
            "shortlistedNoInterview": 1,
            "jdIssues": [
                {"jobId": 2, "title": "Analyst", "issue": "too short"},
                {"jobId": 3, "title": "Nurse", "issue": "no requirements listed"},
            ],
            "staleJobs": [{"jobId": 5, "title": "Clerk", "daysSinceActivity": 40}],
            "candidatesNeedingUpdate": 2,
            "jobsWithLowPipeline": [
                {"jobId": 6, "title": "SRE", "activeCount": 0},
                {"jobId": 7, "title": "QA", "activeCount": 2},
            ],
            "pendingOffers": [{"applicationId": 9, "candidateName": "Lee", "daysSinceSent": 4}],
        }
    )


def _session(generated_hours_ago: float = 0):
    data = _data()
    return create_session(
        42,
        "recruiter",
        data,
        generate_action_items(data),
        now=NOW - timedelta(hours=generated_hours_ago),
    )


def test_create_session_starts_empty_with_snapshot():
    session = _session()

    assert session.user_id == 42
    assert session.completed_ids == []
    assert session.ai_enhanced is False
    assert session.last_verification is None
    assert session.snapshot.stuck_by_stage == {3: 5}
    assert session.snapshot.pending_offer_count == 1
    assert session.snapshot.low_pipeline_job_ids == [6, 7]
    assert len(session.items) == 10
    assert session.id != _session().id


def test_storage_key_format():
    assert get_storage_key(42, "recruiter") == "pipeline-checklist-42-recruiter"


def test_memory_repository_round_trip_uses_camel_case_json():
    repository = InMemorySessionRepository()
    session = _session()
    session.completed_ids = ["unreviewed-apps"]

    save_session(repository, session)
    raw = repository.read("pipeline-checklist-42-recruiter")
    loaded = load_session(repository, 42, "recruiter")

    assert '"completedIds"' in raw
    assert '"generatedAt"' in raw
    assert loaded.model_dump() == session.model_dump()


def test_missing_or_corrupt_session_loads_as_none():
    repository = InMemorySessionRepository()
    assert load_session(repository, 1, "admin") is None

    repository.write(get_storage_key(1, "admin"), "{not json")
    assert load_session(repository, 1, "admin") is None

    repository.write(get_storage_key(1, "admin"), '{"id": "x"}')
    assert load_session(repository, 1, "admin") is None


def test_file_repository_round_trip(tmp_path: Path):
    repository = FileSessionRepository(tmp_path / "sessions")
    session = _session()

    save_session(repository, session)

    assert (tmp_path / "sessions" / "pipeline-checklist-42-recruiter.json").exists()
    assert load_session(repository, 42, "recruiter").model_dump() == session.model_dump()
    assert load_session(repository, 42, "admin") is None


def test_file_repository_keeps_distinct_roles_apart(tmp_path: Path):
    repository = FileSessionRepository(tmp_path)
    repository.write("pipeline-checklist-1-hiring/manager", "slash")
    repository.write("pipeline-checklist-1-hiring_manager", "underscore")

    assert (tmp_path / "pipeline-checklist-1-hiring%2Fmanager.json").exists()
    assert repository.read("pipeline-checklist-1-hiring/manager") == "slash"
    assert repository.read("pipeline-checklist-1-hiring_manager") == "underscore"


def test_file_with_invalid_bytes_loads_as_none(tmp_path: Path):
    repository = FileSessionRepository(tmp_path)
    (tmp_path / "pipeline-checklist-1-recruiter.json").write_bytes(b"\xff\xfe\x00garbage")

    assert load_session(repository, 1, "recruiter") is None


class _FakeRedis:
    def __init__(self) -> None:
        self.values: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self.values.get(key)

    def set(self, key: str, value: str) -> None:
        self.values[key] = value


class _DownRedis(_FakeRedis):
    def get(self, key: str) -> str | None:
        raise redis.ConnectionError("redis down")


def test_redis_repository_round_trip():
    client = _FakeRedis()
    repository = RedisSessionRepository(client)
    session = _session()

    save_session(repository, session)

    assert list(client.values) == ["pipeline-checklist-42-recruiter"]
    assert '"completedIds"' in client.values["pipeline-checklist-42-recruiter"]
    assert load_session(repository, 42, "recruiter").model_dump() == session.model_dump()
    assert load_session(repository, 42, "admin") is None


def test_redis_repository_corrupt_value_loads_as_none():
    client = _FakeRedis()
    client.values["pipeline-checklist-42-recruiter"] = "{broken"

    assert load_session(RedisSessionRepository(client), 42, "recruiter") is None


def test_redis_read_failure_loads_as_none():
    assert load_session(RedisSessionRepository(_DownRedis()), 42, "recruiter") is None


def test_build_session_repository_redis_backend(monkeypatch):
    urls = []

    def fake_from_url(url, **kwargs):
        urls.append((url, kwargs))
        return _FakeRedis()

    monkeypatch.setattr(session_store.redis, "from_url", fake_from_url)

    repository = build_session_repository(Settings(session_store="redis", redis_url="redis://cache:6379/2"))

    assert isinstance(repository, RedisSessionRepository)
    assert urls == [("redis://cache:6379/2", {"decode_responses": True})]


def test_build_session_repository_selects_backend(tmp_path: Path):
    assert isinstance(build_session_repository(Settings(session_store="memory")), InMemorySessionRepository)

    file_repo = build_session_repository(Settings(session_store="file", session_store_dir=tmp_path))
    assert isinstance(file_repo, FileSessionRepository)
    assert file_repo.directory == tmp_path

    with pytest.raises(ValueError):
        build_session_repository(Settings(session_store="sqlite"))


def test_session_staleness_after_24_hours():
    assert is_session_stale(_session(generated_hours_ago=25), now=NOW) is True
    assert is_session_stale(_session(generated_hours_ago=23), now=NOW) is False


def test_reanalyze_allowed_at_seventy_percent_completion():
    session = _session()
    completed = {item.id for item in session.items[:7]}

    check = can_reanalyze(session, completed, now=NOW)

    assert check.allowed is True
    assert check.reason == "70% completed"


def test_reanalyze_allowed_once_session_expired():
    session = _session(generated_hours_ago=25)

    check = can_reanalyze(session, set(), now=NOW)

    assert is_session_stale(session, now=NOW) is True
    assert check.allowed is True
    assert "expired" in check.reason


def test_reanalyze_blocked_with_helpful_reason():
    session = _session(generated_hours_ago=20)

    check = can_reanalyze(session, {session.items[0].id}, now=NOW)

    assert check.allowed is False
    assert check.reason == "Complete 9 more items (70%) or wait 4hrs"


def test_reanalyze_reason_uses_singular_forms():
    session = _session(generated_hours_ago=23.5)
    completed = {item.id for item in session.items[:2]}
    session.items = session.items[:3]

    check = can_reanalyze(session, completed, now=NOW)

    assert check.allowed is False
    assert check.reason == "Complete 1 more item (70%) or wait 1hr"


def test_reanalyze_allowed_without_items():
    session = create_session(1, "recruiter", PipelineData(), [], now=NOW)
    assert can_reanalyze(session, set(), now=NOW).allowed is True
