from fastapi import APIRouter, Depends, HTTPException, Request

from app.api.deps import get_llm_provider
from app.core.config import get_settings
from app.core.rate_limit import rate_limiter
from app.services.enhancement_writer import generate_enhancements
from app.services.llm import LLMProvider
from app.services.pipeline_types import AIEnhancementResult, EnhancementRequest

router = APIRouter(prefix="/api/ai", tags=["ai"])


@router.post(
    "/enhance-pipeline-actions",
    response_model=AIEnhancementResult,
    response_model_by_alias=True,
)
def enhance_pipeline_actions(
    payload: EnhancementRequest,
    request: Request,
    provider: LLMProvider = Depends(get_llm_provider),
):
    settings = get_settings()
    client_host = request.client.host if request.client else "anonymous"
    key = f"ai:enhance:{client_host}"
    if not rate_limiter.allow(key, settings.ai_enhance_rate_limit, settings.rate_limit_window_seconds):
        raise HTTPException(status_code=429, detail="AI enhancement rate limit exceeded")

    return generate_enhancements(payload.items, payload.pipeline_stats, provider)
