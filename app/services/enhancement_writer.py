import json
import re
from datetime import datetime, timezone

from app.core.enums import Category, Priority
from app.core.logging import get_logger
from app.services.llm import LLMProvider
from app.services.pipeline_types import (
    AIEnhancement,
    AIEnhancementResult,
    EnhancementRequestItem,
    PipelineStats,
)

logger = get_logger(__name__)

FALLBACK_MODEL_VERSION = "rules-fallback"
JSON_BLOCK_PATTERN = re.compile(r"\{.*\}", re.DOTALL)

IMPACT_BY_PRIORITY = {
    Priority.URGENT: "high",
    Priority.IMPORTANT: "medium",
    Priority.MAINTENANCE: "low",
}

FALLBACK_DESCRIPTIONS = {
    Category.CANDIDATE: (
        "Open the filtered candidate list and move each person to a clear next step. "
        "Candidates left waiting are the first to accept other offers."
    ),
    Category.JOB: (
        "Review the job posting and its sourcing channels. "
        "A sharper description and wider reach bring in more qualified applicants."
    ),
    Category.COMMUNICATION: (
        "Send a short personal update to each candidate involved. "
        "Regular contact keeps them engaged and protects your employer brand."
    ),
}


def _build_prompt(items: list[EnhancementRequestItem], stats: PipelineStats) -> str:
    lines = [
        "Recruiter pipeline summary:",
        f"health score {stats.health_score:g}/100, "
        f"{stats.total_candidates} active candidates, {stats.open_jobs} jobs needing attention.",
        "",
        "Action items:",
    ]
    for item in items:
        lines.append(
            f"- id={item.id} priority={item.priority.value} category={item.category.value} title={item.title}"
        )
    lines.extend(
        [
            "",
            "For each item write a practical description of how to complete it and rate its impact "
            "as high, medium or low. Add up to three short pipeline-level insights.",
            'Respond with JSON: {"enhancements": [{"itemId": "...", "description": "...", '
            '"impact": "..."}], "additionalInsights": ["..."]}',
        ]
    )
    return "\n".join(lines)


def _parse_response(raw: str, known_ids: set[str]) -> tuple[list[AIEnhancement], list[str]]:
    match = JSON_BLOCK_PATTERN.search(raw or "")
    if not match:
        raise ValueError("LLM response contained no JSON object")
    parsed = AIEnhancementResult.model_validate(json.loads(match.group(0)))
    enhancements = [
        enhancement
        for enhancement in parsed.enhancements
        if enhancement.item_id in known_ids and enhancement.description.strip()
    ]
    return enhancements, parsed.additional_insights[:3]


def _fallback_insights(stats: PipelineStats) -> list[str]:
    insights: list[str] = []
    if stats.health_score < 50:
        insights.append("Pipeline health is low. Clear urgent items before taking on new requisitions.")
    if stats.open_jobs:
        insights.append(f"{stats.open_jobs} job(s) need sourcing or a posting review.")
    return insights


def fallback_enhancements(items: list[EnhancementRequestItem]) -> list[AIEnhancement]:
    return [
        AIEnhancement(
            item_id=item.id,
            description=FALLBACK_DESCRIPTIONS[item.category],
            impact=IMPACT_BY_PRIORITY[item.priority],
        )
        for item in items
    ]


def generate_enhancements(
    items: list[EnhancementRequestItem],
    stats: PipelineStats,
    provider: LLMProvider,
) -> AIEnhancementResult:
    timestamp = datetime.now(timezone.utc).isoformat()
    if not items:
        return AIEnhancementResult(model_version=provider.model_name, timestamp=timestamp)

    known_ids = {item.id for item in items}
    try:
        raw = provider.generate(_build_prompt(items, stats))
        enhancements, insights = _parse_response(raw, known_ids)
    except Exception as exc:
        logger.warning(
            "LLM enhancement failed, using rule-based descriptions",
            extra={"extra": {"provider": provider.model_name, "error": str(exc)[:300]}},
        )
        return AIEnhancementResult(
            enhancements=fallback_enhancements(items),
            additional_insights=_fallback_insights(stats),
            model_version=FALLBACK_MODEL_VERSION,
            timestamp=timestamp,
        )

    return AIEnhancementResult(
        enhancements=enhancements,
        additional_insights=insights,
        model_version=provider.model_name,
        timestamp=timestamp,
    )
