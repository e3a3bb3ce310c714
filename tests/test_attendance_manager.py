import base64
import json
import logging
import sqlite3
import threading
from datetime import timedelta

import pytest

from conftest import T0


@pytest.fixture
def issued(manager):
    manager.enrollment.enroll("student-a", 7, 3)
    result = manager.issue_session("teacher-1", 7, 3, "lecture", 10)
    assert result["success"] is True
    return result["session"]


def test_issue_session_returns_view_with_qr_image(issued):
    assert issued["status"] == "active"
    assert issued["valid_until"] == (T0 + timedelta(minutes=10)).isoformat()
    assert issued["remaining_seconds"] == 600
    assert issued["attendance_count"] == 0

    prefix = "data:image/png;base64,"
    assert issued["qr_image"].startswith(prefix)
    assert base64.b64decode(issued["qr_image"][len(prefix):])[:8] == b"\x89PNG\r\n\x1a\n"


def test_issue_session_uses_configured_defaults(manager):
    result = manager.issue_session("teacher-1", 7, 3)

    session = result["session"]
    assert session["session_type"] == "lecture"
    assert session["remaining_seconds"] == 10 * 60


@pytest.mark.parametrize("duration", [0, 61])
def test_issue_session_rejects_bad_duration(manager, duration):
    result = manager.issue_session("teacher-1", 7, 3, "lecture", duration)

    assert result == {
        "success": False,
        "message": "Duration must be between 1 and 60 minutes",
        "error_type": "invalid_duration",
    }


def test_submit_scan_success_then_duplicate(manager, issued, clock):
    clock.advance(minutes=5)
    first = manager.submit_scan("student-a", issued["payload"])
    clock.advance(minutes=1)
    second = manager.submit_scan("student-a", issued["payload"])

    assert first["success"] is True
    assert first["status"] == "success"
    assert first["attendance"]["marked_at"] == (T0 + timedelta(minutes=5)).isoformat()
    assert second["success"] is False
    assert second["status"] == "duplicate_scan"
    assert second["message"] == "Attendance already marked for this session"


def test_concurrent_scans_mark_once(manager, issued):
    workers = 10
    barrier = threading.Barrier(workers)
    statuses = []
    lock = threading.Lock()

    def scan():
        barrier.wait()
        result = manager.submit_scan("student-a", issued["payload"])
        with lock:
            statuses.append(result["status"])

    threads = [threading.Thread(target=scan) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert statuses.count("success") == 1
    assert statuses.count("duplicate_scan") == workers - 1
    assert manager.ledger.count_for_session(issued["code"]) == 1


def test_cancel_session_is_idempotent_and_guarded(manager, issued):
    forbidden = manager.cancel_session(issued["code"], "teacher-2")
    first = manager.cancel_session(issued["code"], "teacher-1")
    second = manager.cancel_session(issued["code"], "teacher-1")

    assert forbidden["error_type"] == "forbidden"
    assert first == {
        "success": True,
        "message": "Session cancelled",
        "outcome": "cancelled",
        "code": issued["code"],
    }
    assert second["success"] is True
    assert second["outcome"] == "already_cancelled"


def test_cancel_unknown_session(manager):
    result = manager.cancel_session("ATT_0_missing", "teacher-1")
    assert result["error_type"] == "not_found"


def test_scan_after_cancel_reports_cancelled(manager, issued, clock):
    manager.cancel_session(issued["code"], "teacher-1")
    clock.advance(minutes=1)

    result = manager.submit_scan("student-a", issued["payload"])

    assert result["status"] == "session_cancelled"


def test_session_views_track_attendance(manager, issued, clock):
    clock.advance(minutes=2)
    manager.submit_scan("student-a", issued["payload"])

    active = manager.list_active_sessions("teacher-1")
    attendance = manager.get_session_attendance(issued["code"], "teacher-1")
    other_teacher = manager.get_session_attendance(issued["code"], "teacher-2")
    as_admin = manager.get_session_attendance(issued["code"], "admin-1", is_admin=True)

    assert active["sessions"][0]["attendance_count"] == 1
    assert active["sessions"][0]["remaining_seconds"] == 8 * 60
    assert attendance["records"] == [{
        "student_id": "student-a",
        "marked_at": (T0 + timedelta(minutes=2)).isoformat(),
        "status": "present",
    }]
    assert other_teacher["error_type"] == "forbidden"
    assert as_admin["success"] is True


def test_history_page_size_is_capped(manager):
    for _ in range(3):
        manager.issue_session("teacher-1", 7, 3, "lecture", 10)

    result = manager.list_session_history("teacher-1", page=1, per_page=10_000)

    assert result["pagination"] == {"page": 1, "per_page": 100, "total": 3, "pages": 1}
    assert len(result["sessions"]) == 3


def test_storage_failure_is_opaque_and_logged(manager, issued, monkeypatch, caplog):
    def broken(code):
        raise sqlite3.OperationalError("disk I/O error at /var/lib/attendance.db")

    monkeypatch.setattr(manager.store, "get_by_code", broken)

    with caplog.at_level(logging.INFO):
        result = manager.submit_scan("student-a", issued["payload"])

    assert result["status"] == "system_error"
    assert "disk" not in result["message"]
    assert any(r.levelno == logging.ERROR for r in caplog.records)


def test_expected_rejections_are_not_logged_as_errors(manager, issued, clock, caplog):
    clock.advance(minutes=20)

    with caplog.at_level(logging.INFO):
        result = manager.submit_scan("student-a", issued["payload"])

    assert result["status"] == "session_expired"
    assert not [r for r in caplog.records if r.levelno >= logging.ERROR]


@pytest.mark.parametrize(
    "field,raw_value",
    [
        ("timestamp", '"0001-01-01T00:00:00+01:00"'),
        ("classId", "9" * 5000),
    ],
)
def test_out_of_range_payload_values_are_invalid_tokens(manager, issued, caplog, field, raw_value):
    data = json.loads(issued["payload"])
    data[field] = "__VALUE__"
    payload = json.dumps(data).replace('"__VALUE__"', raw_value)

    with caplog.at_level(logging.INFO):
        result = manager.submit_scan("student-a", payload)

    assert result["status"] == "invalid_token"
    assert not [r for r in caplog.records if r.levelno >= logging.ERROR]


@pytest.mark.parametrize(
    "session_type,accepted",
    [("exam", True), ("seminar", True), ("lab", False)],
)
def test_issue_session_checks_session_type(manager, session_type, accepted):
    result = manager.issue_session("teacher-1", 7, 3, session_type, 10)

    assert result["success"] is accepted
    if not accepted:
        assert result["error_type"] == "invalid_scope"
