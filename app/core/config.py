from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "VantaHire Pipeline Checklist"
    environment: str = "dev"
    debug: bool = False
    log_level: str = "INFO"
    cors_allow_origins: list[str] = ["*"]

    api_host: str = "0.0.0.0"
    api_port: int = 8000

    redis_url: str = "redis://redis:6379/0"

    session_store: str = "memory"
    session_store_dir: Path = Path("/data/checklist-sessions")
    session_expiry_hours: float = 24
    reanalyze_completion_threshold: float = 0.7
    ai_ready_threshold: float = 0.7
    # Fraction of freshly generated item ids that must already exist in the
    # stored session for its completion state to be kept.
    session_overlap_threshold: float = 0.5

    ai_enhancement_enabled: bool = False
    ai_enhancement_base_url: str = "http://localhost:5000"
    ai_enhancement_timeout_seconds: float = 5.0

    llm_provider: str = "mock"
    llm_model: str = "gpt-4o-mini"
    llm_api_key: str = ""
    llm_base_url: str = "https://api.openai.com/v1"
    llm_temperature: float = 0.2
    llm_max_tokens: int = 600
    llm_timeout_seconds: int = 45

    ai_enhance_rate_limit: int = 30
    rate_limit_window_seconds: int = 60

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def effective_log_level(self) -> str:
        return "DEBUG" if self.debug else self.log_level.upper()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
