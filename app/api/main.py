from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api import routes_ai, routes_checklist
from app.core.config import get_settings
from app.core.logging import get_logger, setup_logging

settings = get_settings()
setup_logging(settings.effective_log_level)
logger = get_logger(__name__)

app = FastAPI(title=settings.app_name)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(routes_checklist.router)
app.include_router(routes_ai.router)

logger.info(
    "Pipeline checklist API configured",
    extra={
        "extra": {
            "environment": settings.environment,
            "session_store": settings.session_store,
            "ai_enhancement_enabled": settings.ai_enhancement_enabled,
        }
    },
)


@app.get("/healthz")
def healthz():
    return {"status": "ok", "service": settings.app_name, "session_store": settings.session_store}
