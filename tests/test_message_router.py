from __future__ import annotations

import pytest

from tests.utils_sync import RecordingAdapter, assert_pending_invariant, make_background


def _capture(bg, text="hello", **payload):
    return bg.router.dispatch({"type": "CAPTURE_THOUGHT", "payload": {"text": text, **payload}}, source="content-script")


def test_capture_thought_returns_the_stored_capture(tmp_path):
    bg = make_background(tmp_path)

    out = _capture(bg, "An idea", context={"url": "https://example.org", "title": "Example"}, tags=["Work"])

    assert out["success"] is True
    cap = out["capture"]
    assert cap["text"] == "An idea"
    assert cap["source"] == "content-script"
    assert cap["syncState"] == "pending"
    assert cap["retryCount"] == 0
    assert cap["context"]["url"] == "https://example.org"
    assert cap["context"]["timestamp"] is not None
    assert cap["tags"] == ["work"]
    assert_pending_invariant(bg)


def test_capture_thought_rejects_empty_text(tmp_path):
    bg = make_background(tmp_path)

    out = _capture(bg, "   ")

    assert out == {"success": False, "error": "Capture text must not be empty", "code": "invalid_input"}
    assert bg.store.count_all() == 0


def test_request_id_makes_a_resent_capture_idempotent(tmp_path):
    bg = make_background(tmp_path)
    msg = {"type": "CAPTURE_THOUGHT", "payload": {"text": "once"}, "requestId": "r-42"}

    first = bg.router.dispatch(msg, source="popup")
    second = bg.router.dispatch(msg, source="popup")

    assert first["capture"]["id"] == second["capture"]["id"]
    assert bg.store.count_all() == 1


def test_request_id_dedup_is_scoped_to_the_surface(tmp_path):
    bg = make_background(tmp_path)
    msg = {"type": "CAPTURE_THOUGHT", "payload": {"text": "same id, other tab"}, "requestId": "1"}

    from_popup = bg.router.dispatch(msg, source="popup")
    from_page = bg.router.dispatch(msg, source="content-script")
    popup_again = bg.router.dispatch(msg, source="popup")

    assert from_popup["capture"]["id"] != from_page["capture"]["id"]
    assert popup_again["capture"]["id"] == from_popup["capture"]["id"]
    assert bg.store.count_all() == 2


def test_explicit_idempotency_key_dedups_across_surfaces(tmp_path):
    bg = make_background(tmp_path)
    payload = {"text": "shortcut and popup", "idempotencyKey": "k-9"}

    first = bg.router.dispatch({"type": "CAPTURE_THOUGHT", "payload": payload}, source="popup")
    second = bg.router.dispatch({"type": "CAPTURE_THOUGHT", "payload": payload}, source="background")

    assert first["capture"]["id"] == second["capture"]["id"]
    assert bg.store.count_all() == 1


def test_recent_thoughts_are_newest_first_and_limited(tmp_path):
    bg = make_background(tmp_path)
    for i in range(12):
        _capture(bg, f"t{i}")

    default = bg.router.dispatch({"type": "GET_RECENT_THOUGHTS"})
    three = bg.router.dispatch({"type": "GET_RECENT_THOUGHTS", "payload": {"limit": 3}})

    assert default["success"] is True
    assert len(default["thoughts"]) == 10
    assert [t["text"] for t in three["thoughts"]] == ["t11", "t10", "t9"]


def test_recent_thoughts_rejects_a_bad_limit(tmp_path):
    bg = make_background(tmp_path)

    out = bg.router.dispatch({"type": "GET_RECENT_THOUGHTS", "payload": {"limit": 0}})

    assert out["success"] is False
    assert out["code"] == "invalid_input"


def test_sync_status_and_sync_now(tmp_path):
    adapter = RecordingAdapter()
    bg = make_background(tmp_path, adapter=adapter)
    _capture(bg, "a")
    _capture(bg, "b")

    before = bg.router.dispatch({"type": "GET_SYNC_STATUS"})
    assert before["success"] is True
    assert before["syncStatus"]["pendingCount"] == 2
    assert before["syncStatus"]["isOnline"] is True
    assert before["syncStatus"]["syncing"] is False
    assert before["syncStatus"]["lastSync"] is None

    out = bg.router.dispatch({"type": "SYNC_NOW"})
    assert out["success"] is True
    assert out["synced"] == 2
    assert out["details"] == {"total": 2, "successful": 2, "failed": 0, "errors": []}

    after = bg.router.dispatch({"type": "GET_SYNC_STATUS"})["syncStatus"]
    assert after["pendingCount"] == 0
    assert after["lastSync"] is not None


def test_sync_now_while_offline(tmp_path):
    bg = make_background(tmp_path)
    bg.router.dispatch({"type": "CONNECTIVITY_CHANGED", "payload": {"isOnline": False}})

    out = bg.router.dispatch({"type": "SYNC_NOW"})

    assert out["success"] is False
    assert out["synced"] == 0
    assert out["error"] == "Offline - sync will resume when online"


def test_clear_storage_resets_pending_count(tmp_path):
    bg = make_background(tmp_path)
    _capture(bg, "a")
    _capture(bg, "b")

    out = bg.router.dispatch({"type": "CLEAR_STORAGE"})

    assert out == {"success": True, "removed": 2}
    assert bg.router.dispatch({"type": "GET_RECENT_THOUGHTS"})["thoughts"] == []
    assert bg.router.dispatch({"type": "GET_SYNC_STATUS"})["syncStatus"]["pendingCount"] == 0


def test_storage_stats_and_cleanup(tmp_path):
    bg = make_background(tmp_path)
    _capture(bg, "a")
    bg.router.dispatch({"type": "SYNC_NOW"})
    _capture(bg, "b")

    stats = bg.router.dispatch({"type": "GET_STORAGE_STATS"})["stats"]
    assert stats["totalCaptures"] == 2
    assert stats["syncedCaptures"] == 1
    assert stats["unsyncedCaptures"] == 1
    assert stats["exhaustedCaptures"] == 0

    out = bg.router.dispatch({"type": "CLEANUP_STORAGE"})
    assert out == {"success": True, "removed": 0}
    assert bg.router.dispatch({"type": "GET_STORAGE_STATS"})["stats"]["lastCleanup"] is not None


def test_settings_roundtrip_through_partial_updates(tmp_path):
    bg = make_background(tmp_path)

    defaults = bg.router.dispatch({"type": "GET_SETTINGS"})["settings"]
    assert defaults == {"syncEnabled": True, "autoCapture": True, "notifications": True, "analyticsEnabled": True}

    out = bg.router.dispatch({"type": "UPDATE_SETTINGS", "payload": {"notifications": False}})
    assert out["settings"]["notifications"] is False
    assert out["settings"]["syncEnabled"] is True

    out = bg.router.dispatch({"type": "UPDATE_SETTINGS", "payload": {"syncEnabled": False}})
    assert out["settings"]["notifications"] is False
    assert out["settings"]["syncEnabled"] is False


def test_retry_capture_rearms_a_failed_capture(tmp_path):
    adapter = RecordingAdapter(fail=True)
    bg = make_background(tmp_path, adapter=adapter)
    cap_id = _capture(bg, "retry me")["capture"]["id"]
    bg.engine.run_pass()

    out = bg.router.dispatch({"type": "RETRY_CAPTURE", "payload": {"id": cap_id}})
    assert out["success"] is True
    assert out["capture"]["syncState"] == "pending"
    assert out["capture"]["retryCount"] == 0

    again = bg.router.dispatch({"type": "RETRY_CAPTURE", "payload": {"id": cap_id}})
    assert again["code"] == "invalid_transition"
    missing = bg.router.dispatch({"type": "RETRY_CAPTURE", "payload": {"id": "nope"}})
    assert missing["code"] == "capture_not_found"


def test_connectivity_changed_has_no_response(tmp_path):
    bg = make_background(tmp_path)

    assert bg.router.dispatch({"type": "CONNECTIVITY_CHANGED", "payload": {"isOnline": False}}) is None
    assert bg.router.dispatch({"type": "GET_SYNC_STATUS"})["syncStatus"]["isOnline"] is False


@pytest.mark.parametrize(
    "message,code",
    [
        ({"type": "DELETE_EVERYTHING"}, "unsupported_operation"),
        ({"payload": {"text": "no type"}}, "invalid_input"),
        ({"type": "CAPTURE_THOUGHT", "payload": {"text": 42}}, "invalid_input"),
        ({"type": "CONNECTIVITY_CHANGED", "payload": {}}, "invalid_input"),
    ],
)
def test_bad_messages_get_an_error_response(tmp_path, message, code):
    bg = make_background(tmp_path)

    out = bg.router.dispatch(message)

    assert out["success"] is False
    assert out["code"] == code
    assert out["error"]


def test_unknown_source_is_rejected(tmp_path):
    bg = make_background(tmp_path)

    out = bg.router.dispatch({"type": "GET_SYNC_STATUS"}, source="devtools")

    assert out["code"] == "invalid_input"


def test_storage_failure_is_reported_with_its_code(tmp_path):
    from thoughtsync.models.tables import Capture

    bg = make_background(tmp_path)
    Capture.__table__.drop(bg.store.bind)

    out = _capture(bg, "lost?")

    assert out["success"] is False
    assert out["code"] == "storage_unavailable"
    # Reads keep answering.
    assert bg.router.dispatch({"type": "GET_RECENT_THOUGHTS"}) == {"success": True, "thoughts": []}
