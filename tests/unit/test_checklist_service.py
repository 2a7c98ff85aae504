from datetime import datetime, timedelta, timezone

import httpx
import pytest

from app.core.config import Settings
from app.services.ai_enhancement import AIEnhancementClient
from app.services.checklist_service import ChecklistService, ReanalyzeNotAllowed
from app.services.pipeline_types import PipelineData
from app.services.session_store import InMemorySessionRepository, get_storage_key, load_session

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
SETTINGS = Settings()


def _data(**overrides) -> PipelineData:
    payload = {
        "stuckByStage": {"3": {"count": 5, "maxDays": 8, "stageName": "Screening"}},
        "unreviewedCount": 4,
        "oldestUnreviewedHours": 10,
        "jdIssues": [{"jobId": 2, "title": "Analyst", "issue": "too short"}],
        "candidatesNeedingUpdate": 2,
    }
    payload.update(overrides)
    return PipelineData.model_validate(payload)


def _service(enhancement_client=None) -> ChecklistService:
    return ChecklistService(InMemorySessionRepository(), enhancement_client=enhancement_client, settings=SETTINGS)


def _enhancer(handler) -> AIEnhancementClient:
    return AIEnhancementClient(base_url="http://ai.test", transport=httpx.MockTransport(handler))


def test_load_creates_and_persists_session():
    service = _service()

    view = service.load_or_create(7, "recruiter", _data(), health_score=70, now=NOW)

    stored = load_session(service.repository, 7, "recruiter")
    assert stored.id == view.session.id
    assert [item.id for item in view.session.items] == [
        "stuck-stage-3",
        "unreviewed-apps",
        "jd-quality-2",
        "status-updates",
    ]
    assert view.progress == 0
    assert view.reanalyze.allowed is False
    assert view.health_impact.projected_improvement == 10 + 5 + 5 + 2
    assert view.projected_score == 92


def test_load_keeps_session_when_items_mostly_match():
    service = _service()
    first = service.load_or_create(7, "recruiter", _data(), now=NOW)
    service.toggle_item(7, "recruiter", "unreviewed-apps", now=NOW)

    # Two of four fresh ids were in the old session, exactly the 50% bar.
    changed = _data(
        jdIssues=[],
        candidatesNeedingUpdate=0,
        shortlistedNoInterview=2,
        staleJobs=[{"jobId": 8, "title": "Clerk", "daysSinceActivity": 40}],
    )
    view = service.load_or_create(7, "recruiter", changed, now=NOW + timedelta(hours=1))

    assert view.session.id == first.session.id
    assert view.session.completed_ids == ["unreviewed-apps"]
    assert view.progress == 25


def test_load_replaces_session_with_low_overlap():
    service = _service()
    first = service.load_or_create(7, "recruiter", _data(), now=NOW)

    fresh = PipelineData.model_validate(
        {
            "jobsWithLowPipeline": [
                {"jobId": 4, "title": "SRE", "activeCount": 1},
                {"jobId": 5, "title": "QA", "activeCount": 0},
                {"jobId": 6, "title": "PM", "activeCount": 2},
            ],
            "unreviewedCount": 1,
        }
    )
    view = service.load_or_create(7, "recruiter", fresh, now=NOW + timedelta(hours=1))

    assert view.session.id != first.session.id
    assert view.session.completed_ids == []


def test_load_replaces_stale_session():
    service = _service()
    first = service.load_or_create(7, "recruiter", _data(), now=NOW)

    view = service.load_or_create(7, "recruiter", _data(), now=NOW + timedelta(hours=25))

    assert view.session.id != first.session.id


def test_corrupt_stored_session_is_replaced():
    service = _service()
    service.repository.write(get_storage_key(7, "recruiter"), "corrupted")

    view = service.load_or_create(7, "recruiter", _data(), now=NOW)

    assert load_session(service.repository, 7, "recruiter").id == view.session.id


def test_toggle_flips_completion_and_rejects_unknown_items():
    service = _service()
    service.load_or_create(7, "recruiter", _data(), now=NOW)

    view = service.toggle_item(7, "recruiter", "jd-quality-2", now=NOW)
    assert view.session.completed_ids == ["jd-quality-2"]

    view = service.toggle_item(7, "recruiter", "jd-quality-2", now=NOW)
    assert view.session.completed_ids == []

    with pytest.raises(KeyError):
        service.toggle_item(7, "recruiter", "not-an-item", now=NOW)
    with pytest.raises(LookupError):
        service.toggle_item(8, "recruiter", "jd-quality-2", now=NOW)


def test_reanalyze_refused_until_threshold_reached():
    service = _service()
    service.load_or_create(7, "recruiter", _data(), now=NOW)
    service.toggle_item(7, "recruiter", "stuck-stage-3", now=NOW)

    with pytest.raises(ReanalyzeNotAllowed) as exc:
        service.reanalyze(7, "recruiter", _data(), now=NOW)
    assert "Complete 3 more items" in str(exc.value)
    assert service.check_reanalyze(7, "recruiter", now=NOW).allowed is False


def test_reanalyze_verifies_completed_items_and_replaces_session():
    service = _service()
    old = service.load_or_create(7, "recruiter", _data(), now=NOW)
    for item_id in ("stuck-stage-3", "unreviewed-apps", "jd-quality-2"):
        service.toggle_item(7, "recruiter", item_id, now=NOW)

    new_data = _data(stuckByStage={"3": {"count": 2, "maxDays": 4, "stageName": "Screening"}}, unreviewedCount=4)
    outcome = service.reanalyze(7, "recruiter", new_data, now=NOW + timedelta(hours=2))

    assert outcome.verification.results["stuck-stage-3"].verified is True
    assert outcome.verification.results["unreviewed-apps"].verified is False
    assert outcome.verification.results["jd-quality-2"].verified is True
    assert outcome.verification.verified_count == 2
    assert [change.item_id for change in outcome.changes] == ["stuck-stage-3", "unreviewed-apps", "jd-quality-2"]
    assert outcome.changes[0].change == "5 -> 2"

    session = load_session(service.repository, 7, "recruiter")
    assert session.id != old.session.id
    assert session.completed_ids == []
    assert session.snapshot.stuck_by_stage == {3: 2}
    assert session.last_verification.verified_count == 2
    assert session.last_verification.total_count == 3
    assert session.last_verification.results == {}


def test_forced_reanalyze_without_completions_has_no_verification():
    service = _service()
    service.load_or_create(7, "recruiter", _data(), now=NOW)

    outcome = service.reanalyze(7, "recruiter", _data(), force=True, now=NOW)

    assert outcome.verification is None
    assert outcome.changes == []
    assert load_session(service.repository, 7, "recruiter").last_verification is None


def test_ai_enhancement_decorates_session_once():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(
            200,
            json={
                "enhancements": [{"itemId": "unreviewed-apps", "description": "Batch-review in the morning."}],
                "additionalInsights": ["Screening is the bottleneck."],
                "model_version": "mock",
                "timestamp": "2026-03-02T09:00:00Z",
            },
        )

    service = _service(_enhancer(handler))
    view = service.load_or_create(7, "recruiter", _data(), health_score=50, now=NOW)

    assert view.session.ai_enhanced is True
    assert view.insights == ["Screening is the bottleneck."]
    descriptions = {item.id: item.description for item in view.session.items}
    assert descriptions["unreviewed-apps"] == "Batch-review in the morning."
    assert descriptions["stuck-stage-3"] is None
    assert load_session(service.repository, 7, "recruiter").ai_enhanced is True

    reloaded = service.load_or_create(7, "recruiter", _data(), health_score=50, now=NOW)
    assert len(calls) == 1
    assert reloaded.insights == ["Screening is the bottleneck."]


def test_enhancement_with_no_matching_ids_is_retried_later():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(
            200,
            json={
                "enhancements": [{"itemId": "someone-else", "description": "Not ours."}],
                "additionalInsights": ["Ignored."],
                "model_version": "mock",
                "timestamp": "2026-03-02T09:00:00Z",
            },
        )

    service = _service(_enhancer(handler))
    view = service.load_or_create(7, "recruiter", _data(), now=NOW)

    assert view.session.ai_enhanced is False
    assert view.insights == []
    assert all(item.description is None for item in view.session.items)

    service.load_or_create(7, "recruiter", _data(), now=NOW)
    assert len(calls) == 2


def test_ai_failure_keeps_rule_only_items():
    service = _service(_enhancer(lambda request: httpx.Response(500, json={"error": "down"})))

    view = service.load_or_create(7, "recruiter", _data(), now=NOW)

    assert view.session.ai_enhanced is False
    assert all(item.description is None for item in view.session.items)
    assert view.insights == []


def test_empty_pipeline_is_complete():
    service = _service()

    view = service.load_or_create(7, "recruiter", PipelineData(), now=NOW)

    assert view.session.items == []
    assert view.progress == 100
    assert view.reanalyze.allowed is True
