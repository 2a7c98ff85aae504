from app.core.enums import VerificationMode
from app.core.logging import get_logger
from app.services.pipeline_types import (
    AI_READY_THRESHOLD,
    LOW_PIPELINE_THRESHOLD,
    ActionItem,
    ItemVerification,
    JdQualityMetadata,
    LightweightSnapshot,
    LowPipelineMetadata,
    NoInterviewsMetadata,
    PendingOfferMetadata,
    PipelineData,
    StaleJobMetadata,
    StatusUpdatesMetadata,
    StuckCandidatesMetadata,
    UnreviewedAppsMetadata,
    VerificationResult,
)

logger = get_logger(__name__)

# No measurable signal separates "fixed" from "not fixed" for these, so the
# user's checkbox is trusted.
MANUAL_METADATA_TYPES = (JdQualityMetadata, StaleJobMetadata, StatusUpdatesMetadata)


def create_snapshot(data: PipelineData) -> LightweightSnapshot:
    return LightweightSnapshot(
        stuck_by_stage={stage_id: info.count for stage_id, info in data.stuck_by_stage.items()},
        unreviewed_count=data.unreviewed_count,
        pending_offer_count=len(data.pending_offers),
        low_pipeline_job_ids=[job.job_id for job in data.jobs_with_low_pipeline],
        stale_job_ids=[job.job_id for job in data.stale_jobs],
        shortlisted_no_interview_count=data.shortlisted_no_interview,
    )


def _count_drop(old_count: int, new_count: int) -> ItemVerification:
    return ItemVerification(
        verified=new_count < old_count,
        change=f"{old_count} -> {new_count}",
        mode=VerificationMode.AUTO,
    )


def _verify_low_pipeline(
    metadata: LowPipelineMetadata,
    old_snapshot: LightweightSnapshot,
    new_data: PipelineData,
) -> ItemVerification:
    was_low = metadata.job_id in old_snapshot.low_pipeline_job_ids
    new_job = next((job for job in new_data.jobs_with_low_pipeline if job.job_id == metadata.job_id), None)
    healthy = new_job is None or new_job.active_count >= LOW_PIPELINE_THRESHOLD
    return ItemVerification(
        verified=was_low and healthy,
        change=f"{metadata.count} -> {new_job.active_count}" if new_job else "healthy",
        mode=VerificationMode.AUTO,
    )


def verify_item(
    item: ActionItem,
    old_snapshot: LightweightSnapshot,
    new_data: PipelineData,
) -> ItemVerification:
    metadata = item.metadata
    if isinstance(metadata, StuckCandidatesMetadata):
        old_count = old_snapshot.stuck_by_stage.get(metadata.stage_id, 0)
        new_stage = new_data.stuck_by_stage.get(metadata.stage_id)
        return _count_drop(old_count, new_stage.count if new_stage else 0)
    if isinstance(metadata, UnreviewedAppsMetadata):
        return _count_drop(old_snapshot.unreviewed_count, new_data.unreviewed_count)
    if isinstance(metadata, PendingOfferMetadata):
        return _count_drop(old_snapshot.pending_offer_count, len(new_data.pending_offers))
    if isinstance(metadata, LowPipelineMetadata):
        return _verify_low_pipeline(metadata, old_snapshot, new_data)
    if isinstance(metadata, NoInterviewsMetadata):
        return _count_drop(old_snapshot.shortlisted_no_interview_count, new_data.shortlisted_no_interview)
    if isinstance(metadata, MANUAL_METADATA_TYPES):
        return ItemVerification(verified=True, change="manual check", mode=VerificationMode.MANUAL)

    logger.warning(
        "No verification policy for action item",
        extra={"extra": {"item_id": item.id, "metadata_type": getattr(metadata, "type", None)}},
    )
    return ItemVerification(verified=True, change="n/a", mode=VerificationMode.AUTO)


def verify_completions(
    items: list[ActionItem],
    old_snapshot: LightweightSnapshot,
    new_data: PipelineData,
    *,
    ready_threshold: float = AI_READY_THRESHOLD,
) -> VerificationResult:
    """Check each completed item against fresh pipeline data.

    ``items`` should be the subset the user marked complete. Auto-verifiable
    items pass only when the counts they target went down; manual ones pass
    unconditionally.
    """
    results = {item.id: verify_item(item, old_snapshot, new_data) for item in items}
    verified_count = sum(1 for result in results.values() if result.verified)
    manual_count = sum(1 for result in results.values() if result.mode == VerificationMode.MANUAL)
    return VerificationResult(
        results=results,
        verified_count=verified_count,
        total_count=len(items),
        manual_count=manual_count,
        ready_for_ai=verified_count >= len(items) * ready_threshold,
    )
