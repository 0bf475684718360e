def test_import_app(monkeypatch):
    # Minimal env for Settings() to load during import.
    monkeypatch.setenv("DATABASE_URL", "sqlite+pysqlite:///:memory:")
    monkeypatch.setenv("REDIS_URL", "redis://localhost:6379/0")
    monkeypatch.setenv("ENSURE_EXTERNAL_DEPS_ON_STARTUP", "0")

    import thoughtsync.main  # noqa: F401


def test_router_exposes_the_message_contract():
    from thoughtsync.main import app

    types = app.state.background.router.supported_types
    for t in ("CAPTURE_THOUGHT", "SYNC_NOW", "GET_RECENT_THOUGHTS", "GET_SYNC_STATUS", "CLEAR_STORAGE"):
        assert t in types


def test_session_defaults_hold_and_per_test_env_overrides_a_fresh_settings(monkeypatch):
    from thoughtsync.core.config import Settings, settings

    assert settings.SCHEDULER_ENABLED is False

    monkeypatch.setenv("SYNC_MAX_RETRIES", "7")
    monkeypatch.setenv("SCHEDULER_ENABLED", "1")

    fresh = Settings()
    assert fresh.SYNC_MAX_RETRIES == 7
    assert fresh.SCHEDULER_ENABLED is True
    assert settings.SYNC_MAX_RETRIES == 5
