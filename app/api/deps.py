from functools import lru_cache

from app.core.config import get_settings
from app.services.ai_enhancement import AIEnhancementClient
from app.services.checklist_service import ChecklistService
from app.services.llm import LLMProvider, build_llm_provider
from app.services.session_store import build_session_repository


@lru_cache(maxsize=1)
def get_checklist_service() -> ChecklistService:
    settings = get_settings()
    enhancement_client = AIEnhancementClient.from_settings(settings) if settings.ai_enhancement_enabled else None
    return ChecklistService(
        build_session_repository(settings),
        enhancement_client=enhancement_client,
        settings=settings,
    )


@lru_cache(maxsize=1)
def get_llm_provider() -> LLMProvider:
    return build_llm_provider(get_settings())
