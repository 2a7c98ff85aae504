from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.core.enums import Category, Priority, VerificationMode

LOW_PIPELINE_THRESHOLD = 3
STUCK_DAYS_URGENT = 7
STUCK_DAYS_IMPORTANT = 3
UNREVIEWED_HOURS_URGENT = 48
OFFER_FOLLOW_UP_DAYS = 3
STALE_JOB_DAYS = 30
SESSION_EXPIRY_HOURS = 24
REANALYZE_COMPLETION_THRESHOLD = 0.7
AI_READY_THRESHOLD = 0.7
SESSION_OVERLAP_THRESHOLD = 0.5


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Aggregate input produced by the pipeline-aggregation backend.


class PendingOffer(CamelModel):
    application_id: int
    candidate_name: str
    days_since_sent: int


class StuckStageInfo(CamelModel):
    count: int
    max_days: int
    stage_name: str


class LowPipelineJob(CamelModel):
    job_id: int
    title: str
    active_count: int


class JdIssue(CamelModel):
    job_id: int
    title: str
    issue: str


class StaleJob(CamelModel):
    job_id: int
    title: str
    days_since_activity: int


class PipelineData(CamelModel):
    pending_offers: list[PendingOffer] = Field(default_factory=list)
    stuck_by_stage: dict[int, StuckStageInfo] = Field(default_factory=dict)
    unreviewed_count: int = 0
    oldest_unreviewed_hours: float = 0
    shortlisted_no_interview: int = 0
    jobs_with_low_pipeline: list[LowPipelineJob] = Field(default_factory=list)
    jd_issues: list[JdIssue] = Field(default_factory=list)
    stale_jobs: list[StaleJob] = Field(default_factory=list)
    candidates_needing_update: int = 0


# Action item metadata, discriminated on ``type``.


class PendingOfferMetadata(CamelModel):
    type: Literal["pending_offer"] = "pending_offer"
    days_since: int
    candidate_name: str


class StuckCandidatesMetadata(CamelModel):
    type: Literal["stuck_candidates"] = "stuck_candidates"
    stage_id: int
    count: int
    stage_name: str
    days_since: int


class UnreviewedAppsMetadata(CamelModel):
    type: Literal["unreviewed_apps"] = "unreviewed_apps"
    count: int


class NoInterviewsMetadata(CamelModel):
    type: Literal["no_interviews"] = "no_interviews"
    count: int


class LowPipelineMetadata(CamelModel):
    type: Literal["low_pipeline"] = "low_pipeline"
    job_id: int
    count: int
    job_title: str


class JdQualityMetadata(CamelModel):
    type: Literal["jd_quality"] = "jd_quality"
    job_id: int
    job_title: str
    issue: str


class StaleJobMetadata(CamelModel):
    type: Literal["stale_job"] = "stale_job"
    job_id: int
    job_title: str
    days_since: int


class StatusUpdatesMetadata(CamelModel):
    type: Literal["status_updates"] = "status_updates"
    count: int


ActionMetadata = Annotated[
    Union[
        PendingOfferMetadata,
        StuckCandidatesMetadata,
        UnreviewedAppsMetadata,
        NoInterviewsMetadata,
        LowPipelineMetadata,
        JdQualityMetadata,
        StaleJobMetadata,
        StatusUpdatesMetadata,
    ],
    Field(discriminator="type"),
]


class ActionItem(CamelModel):
    id: str
    priority: Priority
    category: Category
    title: str
    description: str | None = None
    completion_type: Literal["action"] = "action"
    link: str | None = None
    metadata: ActionMetadata


class GroupedActionItems(CamelModel):
    urgent: list[ActionItem] = Field(default_factory=list)
    important: list[ActionItem] = Field(default_factory=list)
    maintenance: list[ActionItem] = Field(default_factory=list)


class HealthImpact(CamelModel):
    urgent_count: int
    important_count: int
    maintenance_count: int
    projected_improvement: int


class PipelineStats(CamelModel):
    health_score: float
    total_candidates: int
    open_jobs: int


# Session and verification state.


class LightweightSnapshot(CamelModel):
    stuck_by_stage: dict[int, int] = Field(default_factory=dict)
    unreviewed_count: int = 0
    pending_offer_count: int = 0
    low_pipeline_job_ids: list[int] = Field(default_factory=list)
    stale_job_ids: list[int] = Field(default_factory=list)
    shortlisted_no_interview_count: int = 0


class ItemVerification(CamelModel):
    verified: bool
    change: str
    mode: VerificationMode


class VerificationResult(CamelModel):
    results: dict[str, ItemVerification] = Field(default_factory=dict)
    verified_count: int
    total_count: int
    manual_count: int
    ready_for_ai: bool


class ChecklistSession(CamelModel):
    id: str
    user_id: int
    role: str
    generated_at: datetime
    snapshot: LightweightSnapshot
    items: list[ActionItem] = Field(default_factory=list)
    completed_ids: list[str] = Field(default_factory=list)
    ai_enhanced: bool = False
    ai_insights: list[str] = Field(default_factory=list)
    last_verification: VerificationResult | None = None


class ReanalyzeCheck(CamelModel):
    allowed: bool
    reason: str


# AI enhancement wire format. ``model_version`` and ``timestamp`` keep
# their snake_case names on the wire.


class AIEnhancement(CamelModel):
    item_id: str
    description: str
    impact: str = ""


class AIEnhancementResult(CamelModel):
    model_config = ConfigDict(protected_namespaces=())

    enhancements: list[AIEnhancement] = Field(default_factory=list)
    additional_insights: list[str] = Field(default_factory=list)
    model_version: str = Field(default="", alias="model_version")
    timestamp: str = ""


class EnhancementRequestItem(CamelModel):
    id: str
    title: str
    priority: Priority
    category: Category


class EnhancementRequest(CamelModel):
    items: list[EnhancementRequestItem] = Field(default_factory=list)
    pipeline_stats: PipelineStats
