"""Load, toggle and reanalyze flow for a user's pipeline checklist.

A session is kept per (user, role). Loading reuses the stored session while
it is fresh and still describes roughly the same set of action items;
reanalyzing verifies what the user completed against new pipeline data and
replaces the session. AI descriptions are decoration only: when the
enhancement call fails the rule-generated items are used as they are.
"""

from datetime import datetime

from pydantic import Field

from app.core.config import Settings, get_settings
from app.core.logging import get_logger
from app.services.ai_enhancement import AIEnhancementClient, merge_ai_enhancements
from app.services.checklist_verification import verify_completions
from app.services.pipeline_rules import (
    build_pipeline_stats,
    calculate_health_impact,
    generate_action_items,
    group_by_priority,
)
from app.services.pipeline_types import (
    CamelModel,
    ChecklistSession,
    GroupedActionItems,
    HealthImpact,
    PipelineData,
    ReanalyzeCheck,
    VerificationResult,
)
from app.services.session_store import (
    SessionRepository,
    can_reanalyze,
    create_session,
    is_session_stale,
    load_session,
    save_session,
)

logger = get_logger(__name__)


class ReanalyzeNotAllowed(Exception):
    def __init__(self, check: ReanalyzeCheck) -> None:
        super().__init__(check.reason)
        self.check = check


class ChecklistView(CamelModel):
    session: ChecklistSession
    grouped: GroupedActionItems
    progress: int
    reanalyze: ReanalyzeCheck
    health_impact: HealthImpact
    projected_score: float
    insights: list[str] = Field(default_factory=list)


class VerificationChange(CamelModel):
    item_id: str
    title: str
    change: str
    verified: bool
    mode: str


class ReanalyzeOutcome(CamelModel):
    view: ChecklistView
    verification: VerificationResult | None = None
    changes: list[VerificationChange] = Field(default_factory=list)


def completion_progress(session: ChecklistSession) -> int:
    if not session.items:
        return 100
    item_ids = {item.id for item in session.items}
    done = len(item_ids.intersection(session.completed_ids))
    return round(done / len(session.items) * 100)


def item_overlap(session: ChecklistSession, fresh_ids: list[str]) -> int:
    stored_ids = {item.id for item in session.items}
    return sum(1 for item_id in fresh_ids if item_id in stored_ids)


class ChecklistService:
    def __init__(
        self,
        repository: SessionRepository,
        *,
        enhancement_client: AIEnhancementClient | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.repository = repository
        self.enhancement_client = enhancement_client
        self.settings = settings or get_settings()

    def _reanalyze_check(self, session: ChecklistSession, now: datetime | None = None) -> ReanalyzeCheck:
        return can_reanalyze(
            session,
            set(session.completed_ids),
            now=now,
            completion_threshold=self.settings.reanalyze_completion_threshold,
            expiry_hours=self.settings.session_expiry_hours,
        )

    def _view(
        self,
        session: ChecklistSession,
        *,
        health_score: float,
        now: datetime | None = None,
    ) -> ChecklistView:
        impact = calculate_health_impact(session.items)
        return ChecklistView(
            session=session,
            grouped=group_by_priority(session.items),
            progress=completion_progress(session),
            reanalyze=self._reanalyze_check(session, now),
            health_impact=impact,
            projected_score=min(100, health_score + impact.projected_improvement),
            insights=session.ai_insights,
        )

    def _enhance(self, session: ChecklistSession, data: PipelineData, health_score: float) -> None:
        if self.enhancement_client is None or session.ai_enhanced or not session.items:
            return

        stats = build_pipeline_stats(data, health_score)
        outcome = self.enhancement_client.fetch_ai_enhancements(session.items, stats)
        if not outcome.ok:
            logger.info(
                "Keeping rule-only checklist items",
                extra={"extra": {"session_id": session.id, "reason": outcome.error.reason}},
            )
            return

        item_ids = {item.id for item in session.items}
        matched = [enhancement for enhancement in outcome.result.enhancements if enhancement.item_id in item_ids]
        if not matched:
            logger.info(
                "AI enhancement matched no checklist items",
                extra={"extra": {"session_id": session.id, "returned": len(outcome.result.enhancements)}},
            )
            return

        session.items = merge_ai_enhancements(session.items, matched)
        session.ai_enhanced = True
        session.ai_insights = outcome.result.additional_insights
        save_session(self.repository, session)

    def _require_session(self, user_id: int, role: str) -> ChecklistSession:
        session = load_session(self.repository, user_id, role)
        if session is None:
            raise LookupError(f"No checklist session for user {user_id} ({role})")
        return session

    def load_or_create(
        self,
        user_id: int,
        role: str,
        data: PipelineData,
        *,
        health_score: float = 0,
        now: datetime | None = None,
    ) -> ChecklistView:
        fresh_items = generate_action_items(data)
        fresh_ids = [item.id for item in fresh_items]

        session = load_session(self.repository, user_id, role)
        reuse = False
        if session is not None and not is_session_stale(
            session, now=now, expiry_hours=self.settings.session_expiry_hours
        ):
            overlap = item_overlap(session, fresh_ids)
            reuse = overlap >= len(fresh_ids) * self.settings.session_overlap_threshold
            if not reuse:
                logger.info(
                    "Replacing checklist session with low item overlap",
                    extra={"extra": {"session_id": session.id, "overlap": overlap, "fresh": len(fresh_ids)}},
                )

        if not reuse:
            session = create_session(user_id, role, data, fresh_items, now=now)
            save_session(self.repository, session)

        self._enhance(session, data, health_score)
        return self._view(session, health_score=health_score, now=now)

    def toggle_item(
        self,
        user_id: int,
        role: str,
        item_id: str,
        *,
        health_score: float = 0,
        now: datetime | None = None,
    ) -> ChecklistView:
        session = self._require_session(user_id, role)
        if item_id not in {item.id for item in session.items}:
            raise KeyError(item_id)

        if item_id in session.completed_ids:
            session.completed_ids = [done for done in session.completed_ids if done != item_id]
        else:
            session.completed_ids = [*session.completed_ids, item_id]
        save_session(self.repository, session)
        return self._view(session, health_score=health_score, now=now)

    def check_reanalyze(self, user_id: int, role: str, *, now: datetime | None = None) -> ReanalyzeCheck:
        return self._reanalyze_check(self._require_session(user_id, role), now)

    def reanalyze(
        self,
        user_id: int,
        role: str,
        new_data: PipelineData,
        *,
        health_score: float = 0,
        force: bool = False,
        now: datetime | None = None,
    ) -> ReanalyzeOutcome:
        old_session = load_session(self.repository, user_id, role)

        verification = None
        changes: list[VerificationChange] = []
        if old_session is not None:
            check = self._reanalyze_check(old_session, now)
            if not check.allowed and not force:
                raise ReanalyzeNotAllowed(check)

            completed_ids = set(old_session.completed_ids)
            completed = [item for item in old_session.items if item.id in completed_ids]
            if completed:
                verification = verify_completions(
                    completed,
                    old_session.snapshot,
                    new_data,
                    ready_threshold=self.settings.ai_ready_threshold,
                )
                changes = [
                    VerificationChange(
                        item_id=item.id,
                        title=item.title,
                        change=verification.results[item.id].change,
                        verified=verification.results[item.id].verified,
                        mode=verification.results[item.id].mode.value,
                    )
                    for item in completed
                ]

        session = create_session(user_id, role, new_data, generate_action_items(new_data), now=now)
        if verification is not None:
            session.last_verification = verification.model_copy(update={"results": {}})
        save_session(self.repository, session)

        logger.info(
            "Checklist reanalyzed",
            extra={
                "extra": {
                    "session_id": session.id,
                    "items": len(session.items),
                    "verified": verification.verified_count if verification else 0,
                }
            },
        )

        self._enhance(session, new_data, health_score)
        return ReanalyzeOutcome(
            view=self._view(session, health_score=health_score, now=now),
            verification=verification,
            changes=changes,
        )
