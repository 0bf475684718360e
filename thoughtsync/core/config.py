from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    APP_NAME: str = "thoughtsync"
    APP_ENV: str = "local"
    LOG_LEVEL: str = "INFO"

    # In unit tests / CI we avoid startup checks against external deps.
    ENSURE_EXTERNAL_DEPS_ON_STARTUP: bool = True

    # Local Store (one per browser profile / device).
    DATABASE_URL: str = "sqlite+pysqlite:///./thoughtsync.db"

    REDIS_URL: str = "redis://localhost:6379/0"
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/0"
    CELERY_TASK_ALWAYS_EAGER: bool = False

    # Remote endpoint. "loopback" delivers into the in-process reference receiver.
    REMOTE_MODE: str = "loopback"
    REMOTE_BASE_URL: str = "http://localhost:3001"
    REMOTE_SYNC_PATH: str = "/api/extension/sync"
    REMOTE_AUTH_TOKEN: str | None = None
    REMOTE_TIMEOUT_S: float = 10.0
    REMOTE_RECEIVER_ENABLED: bool = True

    # Sync policy
    SYNC_MAX_RETRIES: int = 5
    SYNC_BACKOFF_BASE_S: float = 30.0
    SYNC_INTERVAL_S: float = 300.0
    SYNC_DEBOUNCE_S: float = 2.0
    SYNC_LEASE_S: float = 300.0
    SCHEDULER_ENABLED: bool = True
    INITIAL_ONLINE: bool = True

    # Retention
    STORE_CLEANUP_THRESHOLD: int = 800
    STORE_KEEP_SYNCED: int = 100

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
