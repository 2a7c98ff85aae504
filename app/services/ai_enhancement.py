import httpx
from pydantic import BaseModel, ValidationError

from app.core.config import Settings, get_settings
from app.core.logging import get_logger
from app.services.pipeline_types import (
    ActionItem,
    AIEnhancement,
    AIEnhancementResult,
    EnhancementRequest,
    EnhancementRequestItem,
    PipelineStats,
)

logger = get_logger(__name__)

ENHANCE_PATH = "/api/ai/enhance-pipeline-actions"


class EnhancementError(BaseModel):
    reason: str
    status_code: int | None = None


class EnhancementOutcome(BaseModel):
    """Either an enhancement result or the reason none is available."""

    result: AIEnhancementResult | None = None
    error: EnhancementError | None = None

    @property
    def ok(self) -> bool:
        return self.result is not None


def build_enhancement_payload(items: list[ActionItem], stats: PipelineStats) -> dict:
    request = EnhancementRequest(
        items=[
            EnhancementRequestItem(
                id=item.id,
                title=item.title,
                priority=item.priority,
                category=item.category,
            )
            for item in items
        ],
        pipeline_stats=stats,
    )
    return request.model_dump(by_alias=True, mode="json")


def _error_reason(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = {}
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return response.reason_phrase or f"HTTP {response.status_code}"


class AIEnhancementClient:
    def __init__(
        self,
        *,
        base_url: str,
        timeout_seconds: float = 5.0,
        headers: dict[str, str] | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.headers = headers or {}
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "AIEnhancementClient":
        settings = settings or get_settings()
        return cls(
            base_url=settings.ai_enhancement_base_url,
            timeout_seconds=settings.ai_enhancement_timeout_seconds,
        )

    def fetch_ai_enhancements(self, items: list[ActionItem], stats: PipelineStats) -> EnhancementOutcome:
        """POST the items for enhancement. Never raises; failures come back as ``error``."""
        url = f"{self.base_url}{ENHANCE_PATH}"
        payload = build_enhancement_payload(items, stats)

        try:
            with httpx.Client(timeout=self.timeout_seconds, transport=self._transport) as client:
                response = client.post(url, headers=self.headers, json=payload)
        except httpx.HTTPError as exc:
            logger.warning("AI enhancement request failed", extra={"extra": {"error": str(exc)}})
            return EnhancementOutcome(error=EnhancementError(reason=f"Request failed: {exc}"))

        if not response.is_success:
            reason = _error_reason(response)
            logger.warning(
                "AI enhancement failed",
                extra={"extra": {"status_code": response.status_code, "error": reason}},
            )
            return EnhancementOutcome(
                error=EnhancementError(reason=reason, status_code=response.status_code)
            )

        try:
            result = AIEnhancementResult.model_validate_json(response.content)
        except ValidationError as exc:
            logger.warning(
                "AI enhancement response was malformed",
                extra={"extra": {"errors": exc.error_count()}},
            )
            return EnhancementOutcome(
                error=EnhancementError(
                    reason="Malformed enhancement response",
                    status_code=response.status_code,
                )
            )

        return EnhancementOutcome(result=result)


def fetch_ai_enhancements(
    items: list[ActionItem],
    stats: PipelineStats,
    *,
    client: AIEnhancementClient | None = None,
) -> EnhancementOutcome:
    return (client or AIEnhancementClient.from_settings()).fetch_ai_enhancements(items, stats)


def merge_ai_enhancements(items: list[ActionItem], enhancements: list[AIEnhancement]) -> list[ActionItem]:
    by_id = {enhancement.item_id: enhancement for enhancement in enhancements}
    merged: list[ActionItem] = []
    for item in items:
        enhancement = by_id.get(item.id)
        if enhancement:
            merged.append(item.model_copy(update={"description": enhancement.description}))
        else:
            merged.append(item)
    return merged
