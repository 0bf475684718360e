from __future__ import annotations

from datetime import datetime, timedelta, timezone

from tests.utils_sync import RecordingAdapter, add_capture, make_background


def test_worker_sync_pass_delivers_pending_captures(monkeypatch, tmp_path):
    from thoughtsync.tasks import sync_tasks

    adapter = RecordingAdapter()
    bg = make_background(tmp_path, adapter=adapter)
    monkeypatch.setattr(sync_tasks, "_background", bg)
    bg.ingress.capture("from the popup")

    # Call task function directly (unit test; avoids needing a broker/backend).
    out = sync_tasks.run_sync_pass()

    assert out["ok"] is True
    assert out["synced"] == 1
    assert len(adapter.calls) == 1
    assert bg.query.get_sync_status().pending_count == 0


def test_worker_pass_reports_offline(monkeypatch, tmp_path):
    from thoughtsync.tasks import sync_tasks

    bg = make_background(tmp_path)
    monkeypatch.setattr(sync_tasks, "_background", bg)
    bg.engine.set_online(False)

    out = sync_tasks.run_sync_pass(manual=True)

    assert out["ok"] is False
    assert out["error"].startswith("Offline")


def test_worker_cleanup_keeps_unsynced_and_newest_synced(monkeypatch, tmp_path):
    from thoughtsync.tasks import sync_tasks

    bg = make_background(tmp_path)
    monkeypatch.setattr(sync_tasks, "_background", bg)
    t0 = datetime(2026, 2, 1, tzinfo=timezone.utc)
    for i in range(4):
        add_capture(bg.store, capture_id=f"s{i}", created_at=t0 + timedelta(minutes=i), state="synced")
    add_capture(bg.store, capture_id="old-pending", created_at=t0 - timedelta(days=30))

    out = sync_tasks.cleanup_storage(keep_synced=1)

    assert out == {"ok": True, "removed": 3}
    assert {c.id for c in bg.store.list()} == {"s3", "old-pending"}


def test_celery_is_configured_for_eager_with_beat_schedule():
    from thoughtsync.core.celery_app import celery

    assert celery.conf.task_always_eager is True
    schedule = celery.conf.beat_schedule
    assert schedule["sync-periodic"]["task"] == "thoughtsync.tasks.sync_tasks.run_sync_pass"
    assert schedule["cleanup-storage"]["task"] == "thoughtsync.tasks.sync_tasks.cleanup_storage"
