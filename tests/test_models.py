from __future__ import annotations

from datetime import datetime, timezone

from timetracker_mcp.sessions import ErrorCode, Session, SessionResult, TaskRecord, TaskStatus
from timetracker_mcp.timekeeping import TICKS_PER_SECOND, ticks_to_ms

START = datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)


def _session(**overrides) -> Session:
    values = dict(
        session_id="abc",
        milestone_id="m1",
        task_ids=["t1", "t2"],
        start_time=START,
        start_ticks=10 * TICKS_PER_SECOND,
        timezone="UTC",
        last_activity_time=START,
        tasks=[TaskRecord(task_id="t1"), TaskRecord(task_id="t2")],
    )
    values.update(overrides)
    return Session(**values)


def test_ticks_to_ms_truncates() -> None:
    assert ticks_to_ms(0, TICKS_PER_SECOND) == 1000
    assert ticks_to_ms(0, 1_999_999) == 1
    assert ticks_to_ms(5, 5) == 0


def test_task_duration_requires_both_ticks() -> None:
    task = TaskRecord(task_id="t1", start_ticks=0)
    assert task.calculate_duration_ms() is None

    task.end_ticks = 3 * TICKS_PER_SECOND + 999_999
    assert task.calculate_duration_ms() == 3000


def test_task_elapsed_uses_fresh_sample_while_running() -> None:
    task = TaskRecord(task_id="t1", start_ticks=0, status=TaskStatus.IN_PROGRESS)

    assert task.elapsed_ms(now_ticks=2 * TICKS_PER_SECOND) == 2000
    assert TaskRecord(task_id="t2").elapsed_ms() is None

    task.end_ticks = TICKS_PER_SECOND
    task.status = TaskStatus.COMPLETED
    assert task.elapsed_ms(now_ticks=9 * TICKS_PER_SECOND) == 1000


def test_session_duration_and_elapsed() -> None:
    session = _session()

    assert session.duration_ms() is None
    assert not session.is_ended
    assert session.elapsed_ms(now_ticks=12 * TICKS_PER_SECOND) == 2000

    session.end_time = START
    session.end_ticks = 15 * TICKS_PER_SECOND
    assert session.is_ended
    assert session.duration_ms() == 5000
    assert session.elapsed_ms(now_ticks=99 * TICKS_PER_SECOND) == 5000


def test_find_task_returns_first_match() -> None:
    first = TaskRecord(task_id="dup", task_name="first")
    second = TaskRecord(task_id="dup", task_name="second")
    session = _session(tasks=[first, second])

    assert session.find_task("dup") is first
    assert session.find_task("missing") is None


def test_task_counts_cover_every_status() -> None:
    session = _session(
        tasks=[
            TaskRecord(task_id="a", status=TaskStatus.COMPLETED),
            TaskRecord(task_id="b", status=TaskStatus.SKIPPED),
            TaskRecord(task_id="c", status=TaskStatus.COMPLETED),
        ]
    )

    assert session.task_counts() == {
        "not_started": 0,
        "in_progress": 0,
        "completed": 2,
        "skipped": 1,
    }


def test_to_dict_renders_iso_timestamps() -> None:
    session = _session(metadata={"k": "v"}, tags=["x"])
    payload = session.to_dict()

    assert payload["start_time"] == "2025-01-01T09:00:00+00:00"
    assert payload["end_time"] is None
    assert payload["duration_ms"] is None
    assert payload["tags"] == ["x"]
    assert payload["tasks"][0]["status"] == "not_started"
    assert payload["tasks"][0]["already_running"] is False


def test_result_helpers() -> None:
    session = _session()

    ok = SessionResult.ok(session)
    failed = SessionResult.error("boom", ErrorCode.SESSION_NOT_FOUND)

    assert ok.success and ok.session is session
    assert not failed.success
    assert failed.error_code == "SESSION_NOT_FOUND"
    assert str(ErrorCode.SESSION_NOT_FOUND) == "SESSION_NOT_FOUND"
    assert f"{TaskStatus.SKIPPED}" == "skipped"
