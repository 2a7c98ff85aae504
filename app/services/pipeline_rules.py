"""Rule engine for the pipeline action checklist.

Action items are derived from aggregate pipeline counts with plain rules so
the checklist can render instantly, without waiting on any AI call. Rules run
in a fixed order and that order is kept in the output.
"""

from app.core.enums import Category, Priority
from app.services.pipeline_types import (
    OFFER_FOLLOW_UP_DAYS,
    STALE_JOB_DAYS,
    STUCK_DAYS_IMPORTANT,
    STUCK_DAYS_URGENT,
    UNREVIEWED_HOURS_URGENT,
    ActionItem,
    GroupedActionItems,
    HealthImpact,
    JdQualityMetadata,
    LowPipelineMetadata,
    NoInterviewsMetadata,
    PendingOfferMetadata,
    PipelineData,
    PipelineStats,
    StaleJobMetadata,
    StatusUpdatesMetadata,
    StuckCandidatesMetadata,
    UnreviewedAppsMetadata,
)

HEALTH_POINTS = {
    Priority.URGENT: 10,
    Priority.IMPORTANT: 5,
    Priority.MAINTENANCE: 2,
}
MAX_PROJECTED_IMPROVEMENT = 40


def _plural(count: int, word: str) -> str:
    return word if count == 1 else f"{word}s"


def _pending_offer_items(data: PipelineData) -> list[ActionItem]:
    items: list[ActionItem] = []
    for offer in data.pending_offers:
        if offer.days_since_sent < OFFER_FOLLOW_UP_DAYS:
            continue
        items.append(
            ActionItem(
                id=f"pending-offer-{offer.application_id}",
                priority=Priority.URGENT,
                category=Category.COMMUNICATION,
                title=f"Follow up on offer to {offer.candidate_name} ({offer.days_since_sent} days)",
                link=f"/applications/{offer.application_id}",
                metadata=PendingOfferMetadata(
                    days_since=offer.days_since_sent,
                    candidate_name=offer.candidate_name,
                ),
            )
        )
    return items


def _stuck_candidate_items(data: PipelineData) -> list[ActionItem]:
    items: list[ActionItem] = []
    for stage_id, info in data.stuck_by_stage.items():
        if info.count <= 0 or info.max_days < STUCK_DAYS_IMPORTANT:
            continue
        priority = Priority.URGENT if info.max_days >= STUCK_DAYS_URGENT else Priority.IMPORTANT
        items.append(
            ActionItem(
                id=f"stuck-stage-{stage_id}",
                priority=priority,
                category=Category.CANDIDATE,
                title=(
                    f"Review {info.count} {_plural(info.count, 'candidate')} stuck in "
                    f"{info.stage_name} ({info.max_days}+ days)"
                ),
                link=f"/applications?stage={stage_id}&stale=true",
                metadata=StuckCandidatesMetadata(
                    stage_id=stage_id,
                    count=info.count,
                    stage_name=info.stage_name,
                    days_since=info.max_days,
                ),
            )
        )
    return items


def _unreviewed_items(data: PipelineData) -> list[ActionItem]:
    if data.unreviewed_count <= 0:
        return []
    urgent = data.oldest_unreviewed_hours >= UNREVIEWED_HOURS_URGENT
    return [
        ActionItem(
            id="unreviewed-apps",
            priority=Priority.URGENT if urgent else Priority.IMPORTANT,
            category=Category.CANDIDATE,
            title=f"Review {data.unreviewed_count} new {_plural(data.unreviewed_count, 'application')}",
            link="/applications?status=new",
            metadata=UnreviewedAppsMetadata(count=data.unreviewed_count),
        )
    ]


def _interview_items(data: PipelineData) -> list[ActionItem]:
    count = data.shortlisted_no_interview
    if count <= 0:
        return []
    return [
        ActionItem(
            id="schedule-interviews",
            priority=Priority.IMPORTANT,
            category=Category.CANDIDATE,
            title=f"Schedule interviews for {count} shortlisted {_plural(count, 'candidate')}",
            link="/applications?status=shortlisted&noInterview=true",
            metadata=NoInterviewsMetadata(count=count),
        )
    ]


def _low_pipeline_items(data: PipelineData) -> list[ActionItem]:
    return [
        ActionItem(
            id=f"low-pipeline-{job.job_id}",
            priority=Priority.IMPORTANT,
            category=Category.JOB,
            title=(
                f'Source more for "{job.title}" '
                f"(only {job.active_count} {_plural(job.active_count, 'candidate')})"
            ),
            link=f"/jobs/{job.job_id}",
            metadata=LowPipelineMetadata(
                job_id=job.job_id,
                count=job.active_count,
                job_title=job.title,
            ),
        )
        for job in data.jobs_with_low_pipeline
    ]


def _jd_quality_items(data: PipelineData) -> list[ActionItem]:
    return [
        ActionItem(
            id=f"jd-quality-{job.job_id}",
            priority=Priority.IMPORTANT,
            category=Category.JOB,
            title=f'Improve JD for "{job.title}" - {job.issue}',
            link=f"/jobs/{job.job_id}",
            metadata=JdQualityMetadata(job_id=job.job_id, job_title=job.title, issue=job.issue),
        )
        for job in data.jd_issues
    ]


def _stale_job_items(data: PipelineData) -> list[ActionItem]:
    return [
        ActionItem(
            id=f"stale-job-{job.job_id}",
            priority=Priority.MAINTENANCE,
            category=Category.JOB,
            title=f'Review or archive "{job.title}" ({job.days_since_activity} days inactive)',
            link=f"/jobs/{job.job_id}",
            metadata=StaleJobMetadata(
                job_id=job.job_id,
                job_title=job.title,
                days_since=job.days_since_activity,
            ),
        )
        for job in data.stale_jobs
        if job.days_since_activity >= STALE_JOB_DAYS
    ]


def _status_update_items(data: PipelineData) -> list[ActionItem]:
    count = data.candidates_needing_update
    if count <= 0:
        return []
    return [
        ActionItem(
            id="status-updates",
            priority=Priority.MAINTENANCE,
            category=Category.COMMUNICATION,
            title=f"Send updates to {count} {_plural(count, 'candidate')} awaiting response",
            link="/applications?needsUpdate=true",
            metadata=StatusUpdatesMetadata(count=count),
        )
    ]


RULES = (
    _pending_offer_items,
    _stuck_candidate_items,
    _unreviewed_items,
    _interview_items,
    _low_pipeline_items,
    _jd_quality_items,
    _stale_job_items,
    _status_update_items,
)


def generate_action_items(data: PipelineData) -> list[ActionItem]:
    items: list[ActionItem] = []
    for rule in RULES:
        items.extend(rule(data))
    return items


def group_by_priority(items: list[ActionItem]) -> GroupedActionItems:
    return GroupedActionItems(
        urgent=[item for item in items if item.priority == Priority.URGENT],
        important=[item for item in items if item.priority == Priority.IMPORTANT],
        maintenance=[item for item in items if item.priority == Priority.MAINTENANCE],
    )


def calculate_health_impact(items: list[ActionItem]) -> HealthImpact:
    """Estimate how many health-score points completing every item would add."""
    grouped = group_by_priority(items)
    projected = (
        len(grouped.urgent) * HEALTH_POINTS[Priority.URGENT]
        + len(grouped.important) * HEALTH_POINTS[Priority.IMPORTANT]
        + len(grouped.maintenance) * HEALTH_POINTS[Priority.MAINTENANCE]
    )
    return HealthImpact(
        urgent_count=len(grouped.urgent),
        important_count=len(grouped.important),
        maintenance_count=len(grouped.maintenance),
        projected_improvement=min(projected, MAX_PROJECTED_IMPROVEMENT),
    )


def build_pipeline_stats(data: PipelineData, health_score: float) -> PipelineStats:
    stuck_total = sum(info.count for info in data.stuck_by_stage.values())
    return PipelineStats(
        health_score=health_score,
        total_candidates=data.unreviewed_count + stuck_total,
        open_jobs=len(data.jobs_with_low_pipeline) + len(data.stale_jobs),
    )
