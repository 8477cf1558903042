from __future__ import annotations

from datetime import datetime, timedelta, timezone

from timetracker_mcp.sessions import RetentionPolicy, Session

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def _session(
    session_id: str,
    *,
    age: timedelta,
    idle: timedelta,
    ended: bool = False,
) -> Session:
    start = NOW - age
    return Session(
        session_id=session_id,
        milestone_id="m1",
        task_ids=["t1"],
        start_time=start,
        start_ticks=0,
        timezone="UTC",
        last_activity_time=NOW - idle,
        end_time=start + timedelta(minutes=1) if ended else None,
        end_ticks=60_000_000_000 if ended else None,
    )


def test_default_windows() -> None:
    policy = RetentionPolicy()

    assert policy.max_session_age == timedelta(hours=24)
    assert policy.max_inactivity == timedelta(hours=4)


def test_age_rule_applies_to_ended_and_active_sessions() -> None:
    policy = RetentionPolicy()

    assert policy.is_expired(_session("a", age=timedelta(hours=25), idle=timedelta(0)), NOW)
    assert policy.is_expired(
        _session("b", age=timedelta(hours=25), idle=timedelta(0), ended=True), NOW
    )
    assert not policy.is_expired(_session("c", age=timedelta(hours=24), idle=timedelta(0)), NOW)


def test_inactivity_rule_skips_ended_sessions() -> None:
    policy = RetentionPolicy()

    idle_active = _session("a", age=timedelta(hours=5), idle=timedelta(hours=4, seconds=1))
    idle_ended = _session("b", age=timedelta(hours=5), idle=timedelta(hours=5), ended=True)
    boundary = _session("c", age=timedelta(hours=5), idle=timedelta(hours=4))

    assert policy.is_expired(idle_active, NOW)
    assert not policy.is_expired(idle_ended, NOW)
    assert not policy.is_expired(boundary, NOW)


def test_select_expired_returns_ids_in_order() -> None:
    policy = RetentionPolicy(max_session_age=timedelta(hours=1), max_inactivity=timedelta(minutes=10))
    sessions = [
        _session("old", age=timedelta(hours=2), idle=timedelta(0)),
        _session("fresh", age=timedelta(minutes=5), idle=timedelta(minutes=1)),
        _session("idle", age=timedelta(minutes=30), idle=timedelta(minutes=20)),
    ]

    assert policy.select_expired(sessions, NOW) == ["old", "idle"]
    assert policy.select_expired([], NOW) == []
