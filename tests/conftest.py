import os

# Settings() is read once at import; pin a throwaway environment before any thoughtsync import.
# Per-test overrides go through monkeypatch.setenv and a fresh Settings().
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("ENSURE_EXTERNAL_DEPS_ON_STARTUP", "0")
os.environ.setdefault("SCHEDULER_ENABLED", "0")
os.environ.setdefault("REMOTE_MODE", "loopback")
os.environ.setdefault("CELERY_TASK_ALWAYS_EAGER", "1")
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")
