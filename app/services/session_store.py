import math
import os
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from urllib.parse import quote

import redis
from pydantic import ValidationError

from app.core.config import Settings, get_settings
from app.core.enums import SessionStoreBackend
from app.core.logging import get_logger
from app.services.checklist_verification import create_snapshot
from app.services.pipeline_types import (
    REANALYZE_COMPLETION_THRESHOLD,
    SESSION_EXPIRY_HOURS,
    ActionItem,
    ChecklistSession,
    PipelineData,
    ReanalyzeCheck,
)

logger = get_logger(__name__)

STORAGE_KEY_PREFIX = "pipeline-checklist"


class SessionRepository(ABC):
    """Keyed store for serialized checklist sessions.

    Subclasses only move raw JSON strings; decoding lives here so every
    backend treats corrupt entries the same way.
    """

    @abstractmethod
    def read(self, key: str) -> str | None:
        raise NotImplementedError

    @abstractmethod
    def write(self, key: str, value: str) -> None:
        raise NotImplementedError

    def load(self, key: str) -> ChecklistSession | None:
        try:
            raw = self.read(key)
        except (OSError, UnicodeDecodeError, redis.RedisError) as exc:
            logger.warning(
                "Could not read checklist session",
                extra={"extra": {"key": key, "error": str(exc)}},
            )
            return None
        if not raw:
            return None
        try:
            return ChecklistSession.model_validate_json(raw)
        except ValidationError:
            logger.warning("Discarding unreadable checklist session", extra={"extra": {"key": key}})
            return None

    def save(self, key: str, session: ChecklistSession) -> None:
        self.write(key, session.model_dump_json(by_alias=True))


class InMemorySessionRepository(SessionRepository):
    def __init__(self) -> None:
        self._store: dict[str, str] = {}

    def read(self, key: str) -> str | None:
        return self._store.get(key)

    def write(self, key: str, value: str) -> None:
        self._store[key] = value


class FileSessionRepository(SessionRepository):
    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{quote(key, safe='')}.json"

    def read(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def write(self, key: str, value: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(value, encoding="utf-8")
        os.replace(tmp_path, path)


class RedisSessionRepository(SessionRepository):
    def __init__(self, client: redis.Redis) -> None:
        self._redis = client

    @classmethod
    def from_url(cls, url: str) -> "RedisSessionRepository":
        return cls(redis.from_url(url, decode_responses=True))

    def read(self, key: str) -> str | None:
        return self._redis.get(key)

    def write(self, key: str, value: str) -> None:
        self._redis.set(key, value)


def build_session_repository(settings: Settings | None = None) -> SessionRepository:
    settings = settings or get_settings()
    backend = (settings.session_store or "memory").strip().lower()

    if backend == SessionStoreBackend.MEMORY.value:
        return InMemorySessionRepository()
    if backend == SessionStoreBackend.FILE.value:
        return FileSessionRepository(settings.session_store_dir)
    if backend == SessionStoreBackend.REDIS.value:
        return RedisSessionRepository.from_url(settings.redis_url)
    raise ValueError("Unsupported SESSION_STORE. Supported values: memory, file, redis.")


def get_storage_key(user_id: int, role: str) -> str:
    return f"{STORAGE_KEY_PREFIX}-{user_id}-{role}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _age_hours(session: ChecklistSession, now: datetime | None) -> float:
    generated_at = session.generated_at
    if generated_at.tzinfo is None:
        generated_at = generated_at.replace(tzinfo=timezone.utc)
    return ((now or _utcnow()) - generated_at).total_seconds() / 3600


def create_session(
    user_id: int,
    role: str,
    data: PipelineData,
    items: list[ActionItem],
    *,
    now: datetime | None = None,
) -> ChecklistSession:
    return ChecklistSession(
        id=str(uuid.uuid4()),
        user_id=user_id,
        role=role,
        generated_at=now or _utcnow(),
        snapshot=create_snapshot(data),
        items=items,
        completed_ids=[],
        ai_enhanced=False,
    )


def load_session(repository: SessionRepository, user_id: int, role: str) -> ChecklistSession | None:
    return repository.load(get_storage_key(user_id, role))


def save_session(repository: SessionRepository, session: ChecklistSession) -> None:
    repository.save(get_storage_key(session.user_id, session.role), session)


def is_session_stale(
    session: ChecklistSession,
    *,
    now: datetime | None = None,
    expiry_hours: float = SESSION_EXPIRY_HOURS,
) -> bool:
    return _age_hours(session, now) > expiry_hours


def can_reanalyze(
    session: ChecklistSession,
    completed_ids: set[str],
    *,
    now: datetime | None = None,
    completion_threshold: float = REANALYZE_COMPLETION_THRESHOLD,
    expiry_hours: float = SESSION_EXPIRY_HOURS,
) -> ReanalyzeCheck:
    """Allow a fresh analysis once enough items are done or the session expired."""
    if not session.items:
        return ReanalyzeCheck(allowed=True, reason="No items to complete")

    completion_rate = len(completed_ids) / len(session.items)
    age_hours = _age_hours(session, now)

    if completion_rate >= completion_threshold:
        return ReanalyzeCheck(allowed=True, reason=f"{round(completion_rate * 100)}% completed")

    if age_hours >= expiry_hours:
        return ReanalyzeCheck(allowed=True, reason=f"Session expired ({expiry_hours:g}hrs)")

    remaining = len(session.items) - len(completed_ids)
    hours_left = math.ceil(expiry_hours - age_hours)
    percent_needed = round(completion_threshold * 100)
    return ReanalyzeCheck(
        allowed=False,
        reason=(
            f"Complete {remaining} more item{'s' if remaining > 1 else ''} ({percent_needed}%) "
            f"or wait {hours_left}hr{'s' if hours_left > 1 else ''}"
        ),
    )
